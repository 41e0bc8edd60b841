"""Object state storage backends."""

from recordsync.storage.local import ObjectStateStore
from recordsync.storage.protocol import StateStore
from recordsync.storage.state import ObjectState

__all__ = [
    "StateStore",
    "ObjectStateStore",
    "ObjectState",
]
