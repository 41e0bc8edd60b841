"""recordsync: client-side data binding for a remote object store.

Usage:
    from recordsync import Client, ClientSettings

    client = Client(ClientSettings(server_url="https://api.example.com/parse"))

    score = client.create("GameScore", {"player": "Sean"})
    score.increment("score", 3)
    await score.save()

    await client.save_all([a, b, c], batch_size=2)
"""

__version__ = "0.1.0"

# Adapters
from recordsync.adapters import InMemoryTransport

# Client
from recordsync.client import Client, Record

# Configuration
from recordsync.config import ClientSettings

# Controller
from recordsync.controller import (
    DependencyScanner,
    ObjectController,
    RecordDependencyScanner,
    SessionProvider,
    Transport,
)

# Core primitives
from recordsync.core import (
    ABSENT,
    ACL,
    AddOp,
    AddUniqueOp,
    AggregateError,
    CannotModifyDeletedRelationError,
    CycleError,
    ErrorCode,
    GeoPoint,
    IncompatibleMergeError,
    IncompatibleTypeError,
    IncrementOp,
    Identity,
    IdentityPolicy,
    InvalidPointerError,
    InvalidRelationError,
    Operation,
    OperationError,
    RecordSyncError,
    Relation,
    RelationOp,
    RemoteFile,
    RemoveOp,
    ServerError,
    SetOp,
    TransportError,
    UnsetOp,
    apply_op,
    merge_ops,
)

# Scheduling
from recordsync.scheduling import BatchBarrier, RetryPolicy, TaskQueue

# Storage
from recordsync.storage import ObjectState, ObjectStateStore, StateStore

__all__ = [
    # Version
    "__version__",
    # Client
    "Client",
    "Record",
    "ClientSettings",
    # Core
    "ABSENT",
    "Identity",
    "IdentityPolicy",
    "Operation",
    "SetOp",
    "UnsetOp",
    "IncrementOp",
    "AddOp",
    "AddUniqueOp",
    "RemoveOp",
    "RelationOp",
    "apply_op",
    "merge_ops",
    "ACL",
    "GeoPoint",
    "Relation",
    "RemoteFile",
    # Errors
    "ErrorCode",
    "RecordSyncError",
    "OperationError",
    "IncompatibleMergeError",
    "CannotModifyDeletedRelationError",
    "IncompatibleTypeError",
    "InvalidRelationError",
    "InvalidPointerError",
    "CycleError",
    "ServerError",
    "TransportError",
    "AggregateError",
    # Storage
    "StateStore",
    "ObjectStateStore",
    "ObjectState",
    # Scheduling
    "TaskQueue",
    "BatchBarrier",
    "RetryPolicy",
    # Controller
    "ObjectController",
    "Transport",
    "DependencyScanner",
    "SessionProvider",
    "RecordDependencyScanner",
    # Adapters
    "InMemoryTransport",
]
