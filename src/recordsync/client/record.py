"""Record: the application-facing handle for one backend object.

A Record holds no attribute data itself. Reads estimate the current value
from the client's state store; writes become pending operations there.

Usage:
    score = client.create("GameScore", {"player": "Sean"})
    score.increment("score", 3)
    score.add_unique("skills", "flying")
    await score.save()

    copy = client.pointer("GameScore", score.id)
    await copy.fetch()
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Mapping
from datetime import datetime
from typing import TYPE_CHECKING, Any

from recordsync.core.codec import encode, op_from_json, to_pointer
from recordsync.core.errors import ErrorCode, IncompatibleTypeError, RecordSyncError
from recordsync.core.identity import Identity, new_local_id, next_instance_token
from recordsync.core.operation import (
    AddOp,
    AddUniqueOp,
    IncrementOp,
    Operation,
    RelationOp,
    RemoveOp,
    SetOp,
    UnsetOp,
    apply_op,
    is_number,
    is_operation,
)
from recordsync.core.types import AttributeMap
from recordsync.core.values import ACL, RecordLike, Relation
from recordsync.storage.state import merge_into_layers

if TYPE_CHECKING:
    from recordsync.client.client import Client
    from recordsync.storage import StateStore

KEY_PATTERN = re.compile(r"^[A-Za-z][0-9A-Za-z_.]*$")
READ_ONLY_KEYS = frozenset({"createdAt", "updatedAt"})
ID_KEYS = frozenset({"objectId", "id"})


class Record:
    """Handle to one object of a backend class.

    Args:
        client: Client owning the state store and controller.
        class_name: Backend class name.
        attrs: Initial attributes, recorded as pending Sets.
        object_id: Server id for a handle to an existing object.
    """

    def __init__(
        self,
        client: Client,
        class_name: str,
        attrs: Mapping[str, Any] | None = None,
        *,
        object_id: str | None = None,
    ) -> None:
        if not class_name or not isinstance(class_name, str):
            raise RecordSyncError(
                "Record requires a non-empty class name", ErrorCode.INVALID_CLASS_NAME
            )
        self._client = client
        self.class_name = class_name
        self.id: str | None = object_id
        self._local_id: str | None = None
        self._instance = next_instance_token()
        if attrs:
            self.set(attrs)

    def __repr__(self) -> str:
        return f"Record({self.class_name!r}, id={self.get_id()!r})"

    @property
    def _store(self) -> StateStore:
        return self._client.store

    # Identity

    def get_id(self) -> str:
        """Server id, or a local id generated on first use."""
        if self.id:
            return self.id
        if self._local_id is None:
            self._local_id = new_local_id()
        return self._local_id

    def get_identity(self) -> Identity:
        return Identity(self.class_name, self.get_id(), self._instance)

    def migrate_id(self, object_id: str) -> None:
        """Adopt ``object_id``, moving state kept under the local id."""
        if self.id == object_id:
            return
        old = None if self.id else self.get_identity()
        self.id = object_id
        self._local_id = None
        if old is not None:
            self._store.migrate_identity(old, self.get_identity())

    def equals(self, other: Any) -> bool:
        """True if ``other`` is a handle to the same backend object."""
        if self is other:
            return True
        return (
            isinstance(other, RecordLike)
            and self.class_name == other.class_name
            and self.get_id() == other.get_id()
            and self.id is not None
        )

    # Reading

    @property
    def attributes(self) -> AttributeMap:
        """Server data with every pending edit applied."""
        return self._store.estimate_attributes(self.get_identity())

    def get(self, attr: str, default: Any = None) -> Any:
        return self.attributes.get(attr, default)

    def has(self, attr: str) -> bool:
        return self.attributes.get(attr) is not None

    @property
    def created_at(self) -> datetime | None:
        return self._store.get_server_data(self.get_identity()).get("createdAt")

    @property
    def updated_at(self) -> datetime | None:
        return self._store.get_server_data(self.get_identity()).get("updatedAt")

    def op(self, attr: str) -> Operation | None:
        """Newest pending operation on ``attr``, if any."""
        for layer in reversed(self._store.get_pending_ops(self.get_identity())):
            if attr in layer:
                return layer[attr]
        return None

    def relation(self, attr: str) -> Relation:
        """Relation handle for ``attr``, bound to this record.

        Raises:
            IncompatibleTypeError: If ``attr`` holds something other than a relation.
        """
        identity = self.get_identity()
        value = apply_op(RelationOp(), self._store.estimate_attribute(identity, attr), owner=identity, key=attr)
        value.ensure_parent_and_key(identity, attr)
        return value

    # Dirtiness

    def dirty(self, attr: str | None = None) -> bool:
        """True if there is anything to save. A record without an id is always dirty."""
        identity = self.get_identity()
        pending = self._store.get_pending_ops(identity)
        mutated = self._store.compute_dirty_container_fields(identity)
        if attr is not None:
            return attr in mutated or any(attr in layer for layer in pending)
        return bool(pending[-1]) or bool(mutated) or not self.id

    def dirty_keys(self) -> list[str]:
        identity = self.get_identity()
        keys = dict.fromkeys(attr for layer in self._store.get_pending_ops(identity) for attr in layer)
        keys.update(dict.fromkeys(sorted(self._store.compute_dirty_container_fields(identity))))
        return list(keys)

    def is_new(self) -> bool:
        return not self.id

    def existed(self) -> bool:
        """True if the object was on the server before this process saved it."""
        return bool(self.id) and self._store.existed(self.get_identity())

    # Writing

    def set(self, key: str | Mapping[str, Any], value: Any = None) -> Record:
        """Record pending edits.

        Plain values become Sets, operations are merged as given and
        ``{"__op": ...}`` dicts are parsed first. ``createdAt``/``updatedAt``
        are ignored. A dot-notation key is ignored unless its top-level field
        already exists on the server.

        Raises:
            OperationError: If an edit cannot be merged with the pending one or
                does not fit the current value. Nothing is recorded.
            RecordSyncError: With INVALID_KEY_NAME for malformed keys.
        """
        changes = dict(key) if isinstance(key, Mapping) else {key: value}
        identity = self.get_identity()
        server_data = self._store.get_server_data(identity)

        ops: dict[str, Operation] = {}
        for attr, val in changes.items():
            if attr in READ_ONLY_KEYS:
                continue
            if attr in ID_KEYS:
                if isinstance(val, str) and val:
                    self.migrate_id(val)
                    identity = self.get_identity()
                continue
            if not KEY_PATTERN.match(attr):
                raise RecordSyncError(f"{attr} is an invalid field name.", ErrorCode.INVALID_KEY_NAME)
            if "." in attr and not server_data.get(attr.split(".", 1)[0]):
                continue
            ops[attr] = self._to_op(attr, val, identity)

        pending = self._store.get_pending_ops(identity)
        for attr, op in ops.items():
            merge_into_layers(pending, attr, op)
            if "." not in attr:
                apply_op(
                    op, self._store.estimate_attribute(identity, attr), owner=identity, key=attr
                )
        for attr, op in ops.items():
            self._store.set_pending_op(identity, attr, op)
        return self

    def _to_op(self, attr: str, value: Any, identity: Identity) -> Operation:
        if is_operation(value):
            return value
        if isinstance(value, dict) and "__op" in value:
            parsed = op_from_json(value, self._client.materialize)
            if parsed is not None:
                return parsed
        if attr == "ACL" and isinstance(value, dict):
            return SetOp(ACL.from_json(value))
        if attr == "ACL" and value is not None and not isinstance(value, ACL):
            raise RecordSyncError("ACL must be an ACL.", ErrorCode.OTHER_CAUSE)
        if isinstance(value, Relation):
            return SetOp(Relation(parent=identity, key=attr, target_class_name=value.target_class_name))
        return SetOp(value)

    def unset(self, attr: str) -> Record:
        return self.set(attr, UnsetOp())

    def increment(self, attr: str, amount: int | float = 1) -> Record:
        return self.set(attr, IncrementOp(amount))

    def decrement(self, attr: str, amount: int | float = 1) -> Record:
        if not is_number(amount):
            raise IncompatibleTypeError("Cannot decrement by a non-numeric amount")
        return self.set(attr, IncrementOp(-amount))

    def add(self, attr: str, item: Any) -> Record:
        return self.set(attr, AddOp((item,)))

    def add_all(self, attr: str, items: Iterable[Any]) -> Record:
        return self.set(attr, AddOp(tuple(items)))

    def add_unique(self, attr: str, item: Any) -> Record:
        return self.set(attr, AddUniqueOp((item,)))

    def add_all_unique(self, attr: str, items: Iterable[Any]) -> Record:
        return self.set(attr, AddUniqueOp(tuple(items)))

    def remove(self, attr: str, item: Any) -> Record:
        return self.set(attr, RemoveOp((item,)))

    def remove_all(self, attr: str, items: Iterable[Any]) -> Record:
        return self.set(attr, RemoveOp(tuple(items)))

    def add_relation(self, attr: str, records: RecordLike | Iterable[RecordLike]) -> Record:
        targets = [records] if isinstance(records, RecordLike) else list(records)
        return self.set(attr, RelationOp.build(adds=targets))

    def remove_relation(self, attr: str, records: RecordLike | Iterable[RecordLike]) -> Record:
        targets = [records] if isinstance(records, RecordLike) else list(records)
        return self.set(attr, RelationOp.build(removes=targets))

    def revert(self, *keys: str) -> None:
        """Discard unsaved edits in the newest layer, for ``keys`` or all of them."""
        for key in keys:
            if not isinstance(key, str):
                raise TypeError("revert expects attribute names")
        self._store.clear_pending_ops(self.get_identity(), list(keys) if keys else None)

    # Serialization

    def to_pointer(self) -> dict[str, Any]:
        return to_pointer(self)

    def to_json(self) -> dict[str, Any]:
        """Current attributes in wire form, with ``objectId`` when saved."""
        data = {attr: encode(value) for attr, value in self.attributes.items()}
        if self.id:
            data["objectId"] = self.id
        return data

    # Persistence

    async def save(
        self,
        attrs: Mapping[str, Any] | None = None,
        *,
        cascade: bool = True,
        **options: Any,
    ) -> Record:
        """Save pending edits, saving unsaved children first when ``cascade`` is set.

        Raises:
            InvalidPointerError: An unsaved record is nested below a child.
            AggregateError: Saving the children failed.
            ServerError: The backend rejected this record.
            TransportError: The request failed.
        """
        if attrs:
            self.set(attrs)
        controller = self._client.controller
        if cascade:
            children = controller.scanner.unsaved_children(self, cascade=False)
            if children:
                await controller.save_all(children, **options)
        await controller.save(self, **options)
        return self

    async def destroy(self, **options: Any) -> Record:
        await self._client.controller.destroy(self, **options)
        return self

    async def fetch(self, **options: Any) -> Record:
        await self._client.controller.fetch(self, **options)
        return self
