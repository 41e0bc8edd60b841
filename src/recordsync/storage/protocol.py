"""Object state store protocol for swappable backends.

The store abstracts where per-record state lives, enabling:
- Local in-memory (default)
- Persistent/offline (future)

Usage:
    store = ObjectStateStore(policy=IdentityPolicy.SHARED)
    client = Client(store=store)
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol, TypeVar

from recordsync.core.identity import Identity, IdentityPolicy
from recordsync.core.operation import Operation, OpsLayer
from recordsync.core.types import AttributeMap, ObjectCache

if TYPE_CHECKING:
    import asyncio

    from recordsync.scheduling import Task
    from recordsync.storage.state import ObjectState

T = TypeVar("T")


class StateStore(Protocol):
    """Abstract object state interface. Implementations hold the actual data."""

    policy: IdentityPolicy

    def get_state(self, identity: Identity) -> ObjectState | None:
        """Get state without creating it."""
        ...

    def get_or_create(self, identity: Identity, initial: ObjectState | None = None) -> ObjectState:
        """Get state, lazily creating a fresh one."""
        ...

    def remove_state(self, identity: Identity) -> ObjectState | None:
        """Drop state and return it."""
        ...

    def get_server_data(self, identity: Identity) -> AttributeMap:
        """Last committed server attributes."""
        ...

    def set_server_data(self, identity: Identity, attributes: AttributeMap) -> None:
        """Overwrite server attributes; ABSENT deletes."""
        ...

    def existed(self, identity: Identity) -> bool:
        """Whether the server had the record before this process saved it."""
        ...

    def set_existed(self, identity: Identity, existed: bool) -> None: ...

    def get_pending_ops(self, identity: Identity) -> list[OpsLayer]:
        """Pending layers, oldest first."""
        ...

    def set_pending_op(self, identity: Identity, attr: str, op: Operation | None) -> None:
        """Merge an operation into the newest layer."""
        ...

    def clear_pending_ops(self, identity: Identity, keys: list[str] | None = None) -> None:
        """Drop entries from the newest layer."""
        ...

    def push_layer(self, identity: Identity) -> None:
        """Open a new layer before a save starts."""
        ...

    def pop_front_layer(self, identity: Identity) -> OpsLayer:
        """Remove and return the layer that was just saved."""
        ...

    def merge_front_into_second(self, identity: Identity) -> None:
        """Fold a failed layer into the next one."""
        ...

    def get_object_cache(self, identity: Identity) -> ObjectCache:
        """Committed container JSON."""
        ...

    def commit_server_changes(self, identity: Identity, changes: AttributeMap) -> None:
        """Record server-acknowledged values."""
        ...

    def estimate_attribute(self, identity: Identity, attr: str) -> Any:
        """Current value of one attribute, ABSENT if none."""
        ...

    def estimate_attributes(self, identity: Identity) -> AttributeMap:
        """Current value of every attribute."""
        ...

    def compute_dirty_container_fields(self, identity: Identity) -> set[str]:
        """Containers mutated in place since the last commit."""
        ...

    def enqueue_task(self, identity: Identity, task: Task[T]) -> asyncio.Future[T]:
        """Run a task on the record's FIFO queue."""
        ...

    def migrate_identity(self, old: Identity, new: Identity) -> None:
        """Rekey state from a local id to a server id."""
        ...

    def reset(self) -> None:
        """Drop every stored state."""
        ...
