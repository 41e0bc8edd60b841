"""Local in-memory object state store.

Dict-based storage suitable for single-process clients and testing.

Usage:
    store = ObjectStateStore()                                # shared identities
    store = ObjectStateStore(policy=IdentityPolicy.ISOLATED)  # one state per handle
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Hashable
from typing import Any, TypeVar

from recordsync.core.identity import Identity, IdentityPolicy
from recordsync.core.operation import Operation, OpsLayer
from recordsync.core.types import AttributeMap, ObjectCache
from recordsync.scheduling import Task
from recordsync.storage import state as mutations
from recordsync.storage.state import ObjectState

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ObjectStateStore:
    """Simple in-memory store of per-record state.

    Structure:
        _states[key] = ObjectState

    The identity policy only decides how an Identity maps to a key. Under
    SHARED every handle to ``(class_name, object_id)`` reaches the same
    ObjectState; under ISOLATED the handle's instance token is part of the key.
    Switching the policy affects lookups made afterwards; state already stored
    under the old keying is left where it is.

    Args:
        policy: Identity policy (default SHARED).
    """

    def __init__(self, policy: IdentityPolicy = IdentityPolicy.SHARED) -> None:
        self._policy = policy
        self._states: dict[Hashable, ObjectState] = {}

    @property
    def policy(self) -> IdentityPolicy:
        return self._policy

    @policy.setter
    def policy(self, policy: IdentityPolicy) -> None:
        if policy is not self._policy:
            logger.debug("Identity policy switched from %s to %s", self._policy.value, policy.value)
        self._policy = policy

    def _key(self, identity: Identity) -> Hashable:
        if self._policy is IdentityPolicy.SHARED:
            return (identity.class_name, identity.object_id)
        return (identity.class_name, identity.object_id, identity.instance)

    def __len__(self) -> int:
        return len(self._states)

    def __contains__(self, identity: Identity) -> bool:
        return self._key(identity) in self._states

    # State lifecycle

    def get_state(self, identity: Identity) -> ObjectState | None:
        return self._states.get(self._key(identity))

    def get_or_create(self, identity: Identity, initial: ObjectState | None = None) -> ObjectState:
        key = self._key(identity)
        state = self._states.get(key)
        if state is None:
            state = self._states[key] = initial or ObjectState()
        return state

    def remove_state(self, identity: Identity) -> ObjectState | None:
        return self._states.pop(self._key(identity), None)

    def migrate_identity(self, old: Identity, new: Identity) -> None:
        """Move state from ``old`` to ``new`` without recreating it.

        Layers, server data, the object cache and the task queue all move, so
        writes queued under the local id keep their order.
        """
        state = self.remove_state(old)
        if state is None:
            return
        key = self._key(new)
        if key in self._states:
            logger.debug("Replacing state already stored for %s during migration", new)
        self._states[key] = state
        logger.debug("Migrated state %s -> %s", old, new)

    def reset(self) -> None:
        self._states.clear()

    # Server data

    def get_server_data(self, identity: Identity) -> AttributeMap:
        state = self.get_state(identity)
        return state.server_data if state else {}

    def set_server_data(self, identity: Identity, attributes: AttributeMap) -> None:
        mutations.set_server_data(self.get_or_create(identity).server_data, attributes)

    def commit_server_changes(self, identity: Identity, changes: AttributeMap) -> None:
        state = self.get_or_create(identity)
        mutations.commit_server_changes(state.server_data, state.object_cache, changes)

    def get_object_cache(self, identity: Identity) -> ObjectCache:
        state = self.get_state(identity)
        return state.object_cache if state else {}

    def existed(self, identity: Identity) -> bool:
        state = self.get_state(identity)
        return state.existed if state else False

    def set_existed(self, identity: Identity, existed: bool) -> None:
        state = self.get_state(identity)
        if state is not None:
            state.existed = existed

    # Pending layers

    def get_pending_ops(self, identity: Identity) -> list[OpsLayer]:
        state = self.get_state(identity)
        return state.pending_ops if state else [{}]

    def set_pending_op(self, identity: Identity, attr: str, op: Operation | None) -> None:
        """Merge ``op`` into the newest layer.

        Raises:
            IncompatibleMergeError: Propagated from the merge; state is unchanged.
        """
        mutations.set_pending_op(self.get_or_create(identity).pending_ops, attr, op)

    def clear_pending_ops(self, identity: Identity, keys: list[str] | None = None) -> None:
        state = self.get_state(identity)
        if state is None:
            return
        latest = state.pending_ops[-1]
        for key in list(latest) if keys is None else keys:
            latest.pop(key, None)

    def push_layer(self, identity: Identity) -> None:
        state = self.get_or_create(identity)
        mutations.push_pending_state(state.pending_ops)
        logger.debug("Pushed layer for %s (depth %d)", identity, len(state.pending_ops))

    def pop_front_layer(self, identity: Identity) -> OpsLayer:
        state = self.get_or_create(identity)
        layer = mutations.pop_pending_state(state.pending_ops)
        logger.debug("Popped acknowledged layer for %s (%d ops)", identity, len(layer))
        return layer

    def merge_front_into_second(self, identity: Identity) -> None:
        state = self.get_or_create(identity)
        mutations.merge_first_pending_state(state.pending_ops)
        logger.debug("Merged failed layer forward for %s", identity)

    # Estimation

    def estimate_attribute(self, identity: Identity, attr: str) -> Any:
        return mutations.estimate_attribute(
            self.get_server_data(identity), self.get_pending_ops(identity), identity, attr
        )

    def estimate_attributes(self, identity: Identity) -> AttributeMap:
        return mutations.estimate_attributes(
            self.get_server_data(identity), self.get_pending_ops(identity), identity
        )

    def compute_dirty_container_fields(self, identity: Identity) -> set[str]:
        return mutations.dirty_container_fields(
            self.estimate_attributes(identity), self.get_object_cache(identity)
        )

    # Tasks

    def enqueue_task(self, identity: Identity, task: Task[T]) -> asyncio.Future[T]:
        return self.get_or_create(identity).tasks.enqueue(task)
