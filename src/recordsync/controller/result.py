"""Server response normalization.

Usage:
    results = normalize_batch_response(response, expected=len(batch))
    for record, result in zip(batch, results):
        if result.error is not None:
            ...
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from recordsync.core.codec import RecordFactory, decode, parse_date
from recordsync.core.errors import ErrorCode, ServerError, TransportError
from recordsync.core.operation import UnsetOp
from recordsync.core.types import ABSENT
from recordsync.core.values import ACL, Relation

if TYPE_CHECKING:
    from recordsync.core.identity import Identity
    from recordsync.core.types import AttributeMap

STATUS_KEY = "_status"
TIMESTAMP_KEYS = ("createdAt", "updatedAt")


@dataclass(frozen=True, slots=True)
class BatchItemResult:
    """Outcome of one sub-request of a batch call."""

    success: dict[str, Any] | None = None
    error: ServerError | None = None
    status: int | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


def normalize_batch_item(item: Any) -> BatchItemResult:
    """Convert one ``{"success": ...}`` / ``{"error": ...}`` entry."""
    if not isinstance(item, dict):
        raise TransportError(f"Invalid batch item: {item!r}", ErrorCode.INVALID_JSON)
    status = item.get(STATUS_KEY)
    if "success" in item:
        success = item["success"] if isinstance(item["success"], dict) else {}
        return BatchItemResult(success=dict(success), status=status)
    if "error" in item:
        error = item["error"] if isinstance(item["error"], dict) else {}
        return BatchItemResult(
            error=ServerError(error.get("error", "Unknown error"), error.get("code")),
            status=status,
        )
    raise TransportError(f"Invalid batch item: {item!r}", ErrorCode.INVALID_JSON)


def normalize_batch_response(response: Any, expected: int) -> list[BatchItemResult]:
    """Convert a batch response into one result per sub-request.

    Raises:
        TransportError: If the response is not a list of ``expected`` entries.
    """
    if not isinstance(response, list) or len(response) != expected:
        raise TransportError(
            f"Batch response did not contain {expected} results", ErrorCode.INVALID_JSON
        )
    return [normalize_batch_item(item) for item in response]


def decode_server_data(
    data: dict[str, Any],
    identity: Identity | None = None,
    record_factory: RecordFactory | None = None,
) -> AttributeMap:
    """Decode a full server object (fetch or embedded ``Object`` payload).

    ``objectId`` and the status key are dropped, timestamps become datetimes,
    ``ACL`` becomes an ACL and relations are bound to ``identity``.
    ``updatedAt`` defaults to ``createdAt``.
    """
    decoded: AttributeMap = {}
    for attr, value in data.items():
        if attr in ("objectId", STATUS_KEY):
            continue
        if attr == "ACL" and isinstance(value, dict):
            decoded[attr] = ACL.from_json(value)
        elif attr in TIMESTAMP_KEYS and isinstance(value, str):
            decoded[attr] = parse_date(value)
        else:
            decoded[attr] = decode(value, record_factory)
            if isinstance(decoded[attr], Relation) and identity is not None:
                decoded[attr].ensure_parent_and_key(identity, attr)
    if "createdAt" in decoded and "updatedAt" not in decoded:
        decoded["updatedAt"] = decoded["createdAt"]
    return decoded


def decode_save_response(
    response: dict[str, Any],
    current: AttributeMap,
    record_factory: RecordFactory | None = None,
) -> AttributeMap:
    """Decode the fields a save response echoed back.

    Plain dict values are merged over the current attribute (nested keys
    acknowledged individually); ``{"__op": "Delete"}`` means absent.
    """
    changes: AttributeMap = {}
    for attr, value in response.items():
        if attr in TIMESTAMP_KEYS and isinstance(value, str):
            changes[attr] = parse_date(value)
        elif attr == "ACL" and isinstance(value, dict):
            changes[attr] = ACL.from_json(value)
        elif attr not in ("objectId", STATUS_KEY):
            decoded = decode(value, record_factory)
            if isinstance(decoded, UnsetOp):
                changes[attr] = ABSENT
            elif type(decoded) is dict and isinstance(current.get(attr), dict):
                changes[attr] = {**current[attr], **decoded}
            else:
                changes[attr] = decoded
    if "createdAt" in changes and "updatedAt" not in changes:
        changes["updatedAt"] = changes["createdAt"]
    return changes
