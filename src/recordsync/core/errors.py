"""Error taxonomy.

Four families, by how callers should react:

- Algebra errors (``OperationError``): programmer error, raised synchronously
  by the mutating call, never retried.
- Structural errors (``CycleError``, ``InvalidPointerError``): the object graph
  cannot be serialized as requested.
- Per-item server errors (``ServerError``): one record was rejected. Batch
  calls collect them into an ``AggregateError``.
- Transport errors (``TransportError``): the request itself failed.
"""

from __future__ import annotations

from enum import IntEnum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from recordsync.core.values import RecordLike


class ErrorCode(IntEnum):
    """Numeric error codes shared with the backend."""

    OTHER_CAUSE = -1
    INTERNAL_SERVER_ERROR = 1
    CONNECTION_FAILED = 100
    OBJECT_NOT_FOUND = 101
    INVALID_QUERY = 102
    INVALID_CLASS_NAME = 103
    MISSING_OBJECT_ID = 104
    INVALID_KEY_NAME = 105
    INVALID_POINTER = 106
    INVALID_JSON = 107
    INCORRECT_TYPE = 111
    OPERATION_FORBIDDEN = 119
    TIMEOUT = 124
    DUPLICATE_VALUE = 137
    SCRIPT_FAILED = 141
    VALIDATION_ERROR = 142
    REQUEST_LIMIT_EXCEEDED = 155
    AGGREGATE_ERROR = 600


def coerce_code(code: Any) -> ErrorCode | int:
    """Map a raw numeric code onto ErrorCode when it is a known one."""
    try:
        return ErrorCode(int(code))
    except (TypeError, ValueError):
        return code if isinstance(code, int) else ErrorCode.OTHER_CAUSE


class RecordSyncError(Exception):
    """Base class for every error raised by recordsync."""

    default_code: ErrorCode = ErrorCode.OTHER_CAUSE

    def __init__(self, message: str = "", code: ErrorCode | int | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.code = self.default_code if code is None else coerce_code(code)

    def __str__(self) -> str:
        return f"{self.message} (code {int(self.code)})"


# Algebra errors


class OperationError(RecordSyncError):
    """An operation could not be applied or merged."""

    default_code = ErrorCode.INCORRECT_TYPE


class IncompatibleMergeError(OperationError):
    """Two pending operations on the same field cannot be combined."""


class CannotModifyDeletedRelationError(IncompatibleMergeError):
    """A relation edit was queued after the relation field was unset."""


class IncompatibleTypeError(OperationError, TypeError):
    """An operation was applied to a value of the wrong type."""


class InvalidRelationError(OperationError):
    """A relation edit referenced an unsaved record or mixed target classes."""


# Structural errors


class CycleError(RecordSyncError):
    """Unsaved records point at each other, so no save order exists."""


class InvalidPointerError(RecordSyncError):
    """A pointer to an unsaved record or file was about to be serialized."""

    default_code = ErrorCode.INVALID_POINTER


# Server and transport errors


class ServerError(RecordSyncError):
    """The server rejected a request for one record.

    Attributes:
        record: The record the failed request was about, when known.
    """

    default_code = ErrorCode.INTERNAL_SERVER_ERROR

    def __init__(
        self,
        message: str = "",
        code: ErrorCode | int | None = None,
        record: RecordLike | None = None,
    ) -> None:
        super().__init__(message, code)
        self.record = record


class TransportError(RecordSyncError):
    """The request never produced a usable response."""

    default_code = ErrorCode.CONNECTION_FAILED


class AggregateError(RecordSyncError):
    """Several independent per-item failures from one batch call.

    Attributes:
        errors: One entry per failed record, in the order they were observed.
    """

    default_code = ErrorCode.AGGREGATE_ERROR

    def __init__(self, errors: list[RecordSyncError], message: str | None = None) -> None:
        super().__init__(message or f"{len(errors)} item(s) failed")
        self.errors = list(errors)

    @property
    def records(self) -> list[RecordLike]:
        """Records referenced by the collected errors."""
        return [
            err.record
            for err in self.errors
            if isinstance(err, ServerError) and err.record is not None
        ]
