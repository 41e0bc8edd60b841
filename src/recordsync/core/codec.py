"""Translation between in-memory values and their JSON wire form.

Special types travel as ``{"__type": ...}`` objects and pending operations as
``{"__op": ...}`` objects.

Usage:
    payload = encode({"when": datetime.now(UTC), "owner": user})
    value = decode(payload, record_factory=client.materialize)
"""

from __future__ import annotations

import base64
import json
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any, TypeAlias

from recordsync.core.errors import InvalidPointerError
from recordsync.core.operation import (
    AddOp,
    AddUniqueOp,
    IncrementOp,
    Operation,
    RelationOp,
    RemoveOp,
    SetOp,
    UnsetOp,
    is_operation,
)
from recordsync.core.values import ACL, GeoPoint, RecordLike, Relation, RemoteFile

RecordFactory: TypeAlias = Callable[[str, str, dict[str, Any] | None], RecordLike]
"""(class_name, object_id, full server data or None) -> record handle."""


# Dates


def format_date(value: datetime) -> str:
    """ISO-8601 in UTC with millisecond precision, as the backend stores it."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    value = value.astimezone(UTC)
    return f"{value:%Y-%m-%dT%H:%M:%S}.{value.microsecond // 1000:03d}Z"


def parse_date(iso: str) -> datetime:
    """Parse a backend timestamp into an aware UTC datetime."""
    parsed = datetime.fromisoformat(iso)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed.astimezone(UTC)


# Encoding


def to_pointer(record: RecordLike) -> dict[str, Any]:
    """Pointer JSON for a persisted record.

    Raises:
        InvalidPointerError: If the record has no server id yet.
    """
    if not record.id:
        raise InvalidPointerError("Cannot create a pointer to an unsaved record")
    return {"__type": "Pointer", "className": record.class_name, "objectId": record.id}


def encode(value: Any, *, allow_records: bool = True) -> Any:
    """Convert a decoded value into its JSON-compatible wire form.

    Records are always encoded as pointers.

    Raises:
        InvalidPointerError: For unsaved records or files, or any record when
            ``allow_records`` is False.
    """
    if is_operation(value):
        return op_to_json(value)
    if isinstance(value, RemoteFile):
        if not value.is_saved:
            raise InvalidPointerError("Tried to encode an unsaved file")
        return value.to_json()
    if isinstance(value, ACL | GeoPoint | Relation):
        return value.to_json()
    if isinstance(value, datetime):
        return {"__type": "Date", "iso": format_date(value)}
    if isinstance(value, bytes):
        return {"__type": "Bytes", "base64": base64.b64encode(value).decode("ascii")}
    if isinstance(value, list | tuple):
        return [encode(item, allow_records=allow_records) for item in value]
    if isinstance(value, dict):
        return {key: encode(item, allow_records=allow_records) for key, item in value.items()}
    if isinstance(value, RecordLike):
        if not allow_records:
            raise InvalidPointerError("Records not allowed here")
        return to_pointer(value)
    return value


def stringify(value: Any) -> str:
    """Stable JSON text of a value, used to detect in-place container mutation."""
    return json.dumps(encode(value), separators=(",", ":"))


def op_to_json(op: Operation) -> Any:
    """Wire form of a pending operation."""
    match op:
        case SetOp(value=value):
            return encode(value)
        case UnsetOp():
            return {"__op": "Delete"}
        case IncrementOp(amount=amount):
            return {"__op": "Increment", "amount": amount}
        case AddOp(items=items):
            return {"__op": "Add", "objects": encode(list(items))}
        case AddUniqueOp(items=items):
            return {"__op": "AddUnique", "objects": encode(list(items))}
        case RemoveOp(items=items):
            return {"__op": "Remove", "objects": encode(list(items))}
        case RelationOp():
            return _relation_to_json(op)
    raise TypeError(f"Unknown operation: {op!r}")  # pragma: no cover


def _relation_to_json(op: RelationOp) -> dict[str, Any]:
    def pointers(ids: tuple[str, ...]) -> list[dict[str, Any]]:
        return [
            {"__type": "Pointer", "className": op.target_class_name, "objectId": object_id}
            for object_id in ids
        ]

    adds = {"__op": "AddRelation", "objects": pointers(op.adds)} if op.adds else None
    removes = {"__op": "RemoveRelation", "objects": pointers(op.removes)} if op.removes else None
    if adds and removes:
        return {"__op": "Batch", "ops": [adds, removes]}
    return adds or removes or {}


# Decoding


def _relation_ids(objects: Any) -> tuple[list[str], str | None]:
    ids: list[str] = []
    target: str | None = None
    if not isinstance(objects, list):
        return ids, target
    for pointer in objects:
        if isinstance(pointer, dict) and "objectId" in pointer:
            ids.append(pointer["objectId"])
            target = target or pointer.get("className")
        elif isinstance(pointer, str):
            ids.append(pointer)
    return ids, target


def op_from_json(
    data: Any, record_factory: RecordFactory | None = None
) -> Operation | None:
    """Parse ``{"__op": ...}`` JSON into an operation.

    Returns:
        The operation, or None if ``data`` is not a recognized operation.
    """
    if not isinstance(data, dict) or not isinstance(data.get("__op"), str):
        return None
    match data["__op"]:
        case "Delete":
            return UnsetOp()
        case "Increment":
            return IncrementOp(data["amount"])
        case "Add":
            return AddOp(tuple(decode(data.get("objects", []), record_factory)))
        case "AddUnique":
            return AddUniqueOp(tuple(decode(data.get("objects", []), record_factory)))
        case "Remove":
            return RemoveOp(tuple(decode(data.get("objects", []), record_factory)))
        case "AddRelation":
            ids, target = _relation_ids(data.get("objects"))
            return RelationOp(adds=tuple(ids), target_class_name=target)
        case "RemoveRelation":
            ids, target = _relation_ids(data.get("objects"))
            return RelationOp(removes=tuple(ids), target_class_name=target)
        case "Batch":
            adds: list[str] = []
            removes: list[str] = []
            target: str | None = None
            for sub in data.get("ops", []):
                ids, sub_target = _relation_ids(sub.get("objects"))
                target = target or sub_target
                if sub.get("__op") == "AddRelation":
                    adds.extend(ids)
                elif sub.get("__op") == "RemoveRelation":
                    removes.extend(ids)
            return RelationOp(adds=tuple(adds), removes=tuple(removes), target_class_name=target)
    return None


def decode(value: Any, record_factory: RecordFactory | None = None) -> Any:
    """Convert wire JSON into decoded values.

    Pointers and embedded objects are turned into records through
    ``record_factory``; without a factory they are left as JSON.
    """
    if isinstance(value, list):
        return [decode(item, record_factory) for item in value]
    if not isinstance(value, dict):
        return value

    op = op_from_json(value, record_factory)
    if op is not None:
        return op

    match value.get("__type"):
        case "Pointer" if record_factory is not None:
            return record_factory(value["className"], value["objectId"], None)
        case "Object" if record_factory is not None and "objectId" in value:
            data = {k: v for k, v in value.items() if k not in ("__type", "className")}
            return record_factory(value["className"], value["objectId"], data)
        case "Date":
            return parse_date(value["iso"])
        case "File":
            return RemoteFile(name=value["name"], url=value.get("url"))
        case "GeoPoint":
            return GeoPoint(latitude=value["latitude"], longitude=value["longitude"])
        case "Relation":
            return Relation(target_class_name=value.get("className"))
        case "Bytes":
            return base64.b64decode(value["base64"])
    return {key: decode(item, record_factory) for key, item in value.items()}
