"""Save, destroy and fetch orchestration and its collaborator protocols."""

from recordsync.controller.controller import ObjectController, SaveRequest, class_path
from recordsync.controller.dependencies import RecordDependencyScanner, unique_dependencies
from recordsync.controller.protocol import (
    DependencyScanner,
    ManagedRecord,
    RequestOptions,
    SessionProvider,
    Transport,
)
from recordsync.controller.result import (
    BatchItemResult,
    decode_save_response,
    decode_server_data,
    normalize_batch_response,
)

__all__ = [
    # Orchestration
    "ObjectController",
    "SaveRequest",
    "class_path",
    # Collaborators
    "Transport",
    "DependencyScanner",
    "SessionProvider",
    "ManagedRecord",
    "RequestOptions",
    "RecordDependencyScanner",
    "unique_dependencies",
    # Responses
    "BatchItemResult",
    "normalize_batch_response",
    "decode_server_data",
    "decode_save_response",
]
