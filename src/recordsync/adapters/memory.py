"""In-process fake backend implementing the Transport protocol.

Speaks the same request shapes as the REST backend: single object CRUD,
``batch`` calls and ``files/<name>`` uploads. Operation JSON is applied
server-side, ids and timestamps are assigned, and results of non-Set
operations are echoed back.

Usage:
    transport = InMemoryTransport()
    client = Client(transport=transport)

    # Reject specific writes
    transport.reject = lambda method, path, body: (142, "bad") if body.get("bad") else None

    # Fail the next request at the connection level
    transport.fail_next()
"""

from __future__ import annotations

import asyncio
import re
import secrets
import string
from datetime import UTC, datetime
from typing import Any, TypeAlias

from recordsync.adapters.models import RejectHook, TransportCall
from recordsync.core.codec import decode, encode, format_date, op_from_json
from recordsync.core.errors import ErrorCode, OperationError, ServerError, TransportError
from recordsync.core.operation import RelationOp, UnsetOp, apply_op
from recordsync.core.types import ABSENT

_PATH = re.compile(
    r"(?:^|/)(?:classes/(?P<class_name>[^/]+)(?:/(?P<object_id>[^/]+))?"
    r"|(?P<users>users)(?:/(?P<user_id>[^/]+))?"
    r"|files/(?P<file_name>[^/]+))$"
)
_ID_ALPHABET = string.ascii_letters + string.digits

Row: TypeAlias = dict[str, Any]


class _Rejected(Exception):
    def __init__(self, code: int, message: str) -> None:
        super().__init__(message)
        self.code = code
        self.message = message


def _new_object_id() -> str:
    return "".join(secrets.choice(_ID_ALPHABET) for _ in range(10))


def _now() -> str:
    return format_date(datetime.now(UTC))


class InMemoryTransport:
    """Dict-backed backend for tests and examples.

    Attributes:
        calls: Every request received, in order.
        reject: Optional hook returning ``(code, message)`` to refuse a
            (sub-)request before it is applied.
        delay: Seconds to wait before answering each request.
    """

    def __init__(self, *, reject: RejectHook | None = None, delay: float = 0.0) -> None:
        self.calls: list[TransportCall] = []
        self.reject = reject
        self.delay = delay
        self._tables: dict[str, dict[str, Row]] = {}
        self._relations: dict[tuple[str, str, str], set[str]] = {}
        self._files: dict[str, bytes] = {}
        self._failures: list[Exception] = []

    # Inspection

    def fail_next(self, count: int = 1, error: Exception | None = None) -> None:
        """Make the next ``count`` requests fail before reaching the backend."""
        for _ in range(count):
            self._failures.append(error or TransportError("Simulated connection failure"))

    def get_object(self, class_name: str, object_id: str) -> Row | None:
        row = self._tables.get(class_name, {}).get(object_id)
        return dict(row) if row is not None else None

    def objects(self, class_name: str) -> dict[str, Row]:
        return {object_id: dict(row) for object_id, row in self._tables.get(class_name, {}).items()}

    def relation_ids(self, class_name: str, object_id: str, key: str) -> set[str]:
        return set(self._relations.get((class_name, object_id, key), set()))

    def file_data(self, name: str) -> bytes | None:
        return self._files.get(name)

    # Transport

    async def send(
        self,
        method: str,
        path: str,
        body: Any = None,
        options: dict[str, Any] | None = None,
    ) -> Any:
        self.calls.append(TransportCall(method, path, body, dict(options or {})))
        await asyncio.sleep(self.delay)
        if self._failures:
            raise self._failures.pop(0)

        if path == "batch" or path.endswith("/batch"):
            return [self._batch_item(request) for request in (body or {}).get("requests", [])]
        try:
            result, status = self._handle(method, path, body or {})
        except _Rejected as rejected:
            raise ServerError(rejected.message, rejected.code) from None
        if status is not None:
            result["_status"] = status
        return result

    def _batch_item(self, request: dict[str, Any]) -> dict[str, Any]:
        try:
            result, status = self._handle(request["method"], request["path"], request.get("body") or {})
        except _Rejected as rejected:
            return {"error": {"code": rejected.code, "error": rejected.message}}
        item: dict[str, Any] = {"success": result}
        if status is not None:
            item["_status"] = status
        return item

    # Routing

    def _handle(self, method: str, path: str, body: dict[str, Any]) -> tuple[Row, int | None]:
        route = _PATH.search(path)
        if route is None:
            raise _Rejected(ErrorCode.INVALID_JSON, f"Unknown path: {path}")
        if self.reject is not None and (refusal := self.reject(method, path, body)) is not None:
            raise _Rejected(*refusal)

        if route["file_name"]:
            return self._save_file(route["file_name"], body), 201
        class_name = "_User" if route["users"] else route["class_name"]
        object_id = route["user_id"] if route["users"] else route["object_id"]

        match method, object_id:
            case "POST", None:
                return self._create(class_name, body), 201
            case "PUT", str():
                return self._update(class_name, object_id, body), 200
            case "GET", str():
                return self._read(class_name, object_id), None
            case "DELETE", str():
                self._delete(class_name, object_id)
                return {}, 200
        raise _Rejected(ErrorCode.INVALID_JSON, f"Unsupported request: {method} {path}")

    def _row(self, class_name: str, object_id: str) -> Row:
        row = self._tables.get(class_name, {}).get(object_id)
        if row is None:
            raise _Rejected(ErrorCode.OBJECT_NOT_FOUND, "Object not found.")
        return row

    def _create(self, class_name: str, body: dict[str, Any]) -> Row:
        object_id = _new_object_id()
        row: Row = {}
        echoed = self._apply(class_name, object_id, row, body)
        row["createdAt"] = row["updatedAt"] = _now()
        self._tables.setdefault(class_name, {})[object_id] = row
        return {"objectId": object_id, "createdAt": row["createdAt"], **echoed}

    def _update(self, class_name: str, object_id: str, body: dict[str, Any]) -> Row:
        row = self._row(class_name, object_id)
        staged = dict(row)
        echoed = self._apply(class_name, object_id, staged, body)
        staged["updatedAt"] = _now()
        row.clear()
        row.update(staged)
        return {"updatedAt": row["updatedAt"], **echoed}

    def _read(self, class_name: str, object_id: str) -> Row:
        return {"objectId": object_id, **self._row(class_name, object_id)}

    def _delete(self, class_name: str, object_id: str) -> None:
        self._row(class_name, object_id)
        del self._tables[class_name][object_id]

    def _save_file(self, name: str, body: dict[str, Any]) -> Row:
        stored = f"{secrets.token_hex(8)}_{name}"
        self._files[stored] = decode({"__type": "Bytes", "base64": body.get("base64", "")})
        return {"name": stored, "url": f"memory://files/{stored}"}

    # Operations

    def _apply(self, class_name: str, object_id: str, row: Row, body: dict[str, Any]) -> Row:
        """Apply each field of a write body to ``row``; return non-Set results to echo."""
        echoed: Row = {}
        for attr, raw in body.items():
            if attr in ("objectId", "createdAt", "updatedAt"):
                continue
            op = op_from_json(raw)
            if op is None:
                _nested_put(row, attr, raw)
                continue
            if isinstance(op, UnsetOp):
                _nested_put(row, attr, ABSENT)
                continue
            if isinstance(op, RelationOp):
                ids = self._relations.setdefault((class_name, object_id, attr), set())
                ids.update(op.adds)
                ids.difference_update(op.removes)
                row[attr] = {"__type": "Relation", "className": op.target_class_name}
                continue
            current = _nested_get(row, attr)
            try:
                value = encode(apply_op(op, ABSENT if current is ABSENT else decode(current)))
            except OperationError as e:
                raise _Rejected(ErrorCode.INCORRECT_TYPE, e.message) from None
            _nested_put(row, attr, value)
            echoed[attr] = value
        return echoed


def _nested_get(row: Row, key: str) -> Any:
    node: Any = row
    for part in key.split("."):
        if not isinstance(node, dict) or part not in node:
            return ABSENT
        node = node[part]
    return node


def _nested_put(row: Row, key: str, value: Any) -> None:
    *parents, leaf = key.split(".")
    node = row
    for part in parents:
        child = node.get(part)
        if not isinstance(child, dict):
            child = node[part] = {}
        node = child
    if value is ABSENT:
        node.pop(leaf, None)
    else:
        node[leaf] = value
