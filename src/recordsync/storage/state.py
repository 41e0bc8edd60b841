"""Per-record object state and the pure functions that mutate it.

An ObjectState holds the last committed server snapshot plus an ordered stack
of pending operation layers. Layer 0 is the one being saved (or the only one
when nothing is in flight); new local edits always land in the last layer.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from recordsync.core.codec import stringify
from recordsync.core.errors import InvalidPointerError
from recordsync.core.operation import Operation, OpsLayer, RelationOp, apply_op, merge_ops
from recordsync.core.types import ABSENT, AttributeMap, ObjectCache
from recordsync.core.values import ACL
from recordsync.scheduling import TaskQueue

if TYPE_CHECKING:
    from recordsync.core.identity import Identity


@dataclass(slots=True)
class ObjectState:
    """Everything known locally about one record.

    Attributes:
        server_data: Decoded attributes last acknowledged by the server.
        pending_ops: Never-empty list of layers, oldest first.
        object_cache: Last committed JSON of each container attribute.
        tasks: FIFO queue serializing this record's writes.
        existed: Whether the server had the record before this process saved it.
    """

    server_data: AttributeMap = field(default_factory=dict)
    pending_ops: list[OpsLayer] = field(default_factory=lambda: [{}])
    object_cache: ObjectCache = field(default_factory=dict)
    tasks: TaskQueue = field(default_factory=TaskQueue)
    existed: bool = False


def is_container(value: Any) -> bool:
    """Mutable attribute values whose in-place edits bypass the operation system."""
    return isinstance(value, list | dict | ACL)


# Server data


def set_server_data(server_data: AttributeMap, attributes: AttributeMap) -> None:
    """Overwrite keys in ``server_data``; ABSENT values delete the key."""
    for attr, value in attributes.items():
        if value is ABSENT:
            server_data.pop(attr, None)
        else:
            server_data[attr] = value


def nested_set(target: dict[str, Any], key: str, value: Any) -> None:
    """Set ``a.b.c`` style keys, creating intermediate dicts. ABSENT deletes."""
    path = key.split(".")
    for part in path[:-1]:
        child = target.get(part)
        if not isinstance(child, dict):
            child = target[part] = {}
        target = child
    if value is ABSENT:
        target.pop(path[-1], None)
    else:
        target[path[-1]] = value


def _snapshot(object_cache: ObjectCache, attr: str, value: Any) -> None:
    if not is_container(value):
        object_cache.pop(attr, None)
        return
    try:
        object_cache[attr] = stringify(value)
    except InvalidPointerError:
        object_cache.pop(attr, None)


def commit_server_changes(
    server_data: AttributeMap, object_cache: ObjectCache, changes: AttributeMap
) -> None:
    """Record server-acknowledged values and snapshot container JSON for dirty checks.

    A dot-notation key re-snapshots its top-level container.
    """
    for attr, value in changes.items():
        nested_set(server_data, attr, value)
        if "." in attr:
            parent = attr.split(".", 1)[0]
            _snapshot(object_cache, parent, server_data.get(parent, ABSENT))
        else:
            _snapshot(object_cache, attr, value)


# Pending layers


def merge_into_layers(pending_ops: list[OpsLayer], attr: str, op: Operation) -> Operation:
    """Merge ``op`` into the newest layer's entry for ``attr`` without storing it.

    The result must also fold over the same field in every older layer, since a
    failed save merges those layers forward.

    Raises:
        IncompatibleMergeError: If the operations cannot be combined.
    """
    merged = merge_ops(op, pending_ops[-1].get(attr))
    older: Operation | None = None
    for layer in pending_ops[:-1]:
        if attr in layer:
            older = merge_ops(layer[attr], older)
    merge_ops(merged, older)
    return merged


def set_pending_op(pending_ops: list[OpsLayer], attr: str, op: Operation | None) -> None:
    """Merge ``op`` into the newest layer's entry for ``attr``. None clears the entry.

    Raises:
        IncompatibleMergeError: If the operations cannot be combined, in this
            layer or across older ones. The layers are left untouched.
    """
    last = pending_ops[-1]
    if op is None:
        last.pop(attr, None)
        return
    last[attr] = merge_into_layers(pending_ops, attr, op)


def push_pending_state(pending_ops: list[OpsLayer]) -> None:
    pending_ops.append({})


def pop_pending_state(pending_ops: list[OpsLayer]) -> OpsLayer:
    first = pending_ops.pop(0)
    if not pending_ops:
        pending_ops.append({})
    return first


def merge_first_pending_state(pending_ops: list[OpsLayer]) -> None:
    """Fold layer 0 into layer 1 so failed edits retry with the ones queued after them.

    The layers are only replaced once every field has merged.
    """
    first = pending_ops[0]
    following = dict(pending_ops[1]) if len(pending_ops) > 1 else {}
    for attr, op in first.items():
        newer = following.get(attr)
        following[attr] = op if newer is None else merge_ops(newer, op)
    pending_ops[:2] = [following]


# Estimation


def _apply(op: Operation, current: Any, identity: Identity, attr: str) -> Any:
    if isinstance(op, RelationOp):
        return apply_op(op, current, owner=identity, key=attr)
    return apply_op(op, current)


def estimate_attribute(
    server_data: AttributeMap, pending_ops: list[OpsLayer], identity: Identity, attr: str
) -> Any:
    """Value of one attribute with every pending layer applied, ABSENT if none."""
    value = server_data.get(attr, ABSENT)
    for layer in pending_ops:
        if attr in layer:
            value = _apply(layer[attr], value, identity, attr)
    return value


def estimate_attributes(
    server_data: AttributeMap, pending_ops: list[OpsLayer], identity: Identity
) -> AttributeMap:
    """Server data with every pending layer folded on top, oldest layer first.

    Dot-notation keys apply inside nested dicts, copying each dict on the path
    so server data itself is never modified.
    """
    data: AttributeMap = dict(server_data)
    for layer in pending_ops:
        for attr, op in layer.items():
            if "." in attr and not isinstance(op, RelationOp):
                *parents, leaf = attr.split(".")
                node = data
                for part in parents:
                    child = node.get(part)
                    node[part] = dict(child) if isinstance(child, dict) else {}
                    node = node[part]
                result = apply_op(op, node.get(leaf, ABSENT))
                if result is ABSENT:
                    node.pop(leaf, None)
                else:
                    node[leaf] = result
                continue
            result = _apply(op, data.get(attr, ABSENT), identity, attr)
            if result is ABSENT:
                data.pop(attr, None)
            else:
                data[attr] = result
    return data


def dirty_container_fields(attributes: AttributeMap, object_cache: ObjectCache) -> set[str]:
    """Container attributes whose JSON no longer matches the committed snapshot.

    A heuristic, not a guarantee: a container mutated and then restored to an
    equal serialization is reported clean.
    """
    dirty: set[str] = set()
    for attr, value in attributes.items():
        if not is_container(value):
            continue
        try:
            if object_cache.get(attr) != stringify(value):
                dirty.add(attr)
        except InvalidPointerError:
            # a nested unsaved pointer means the container changed
            dirty.add(attr)
    return dirty
