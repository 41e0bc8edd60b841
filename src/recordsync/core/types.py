"""Core type definitions for recordsync."""

from __future__ import annotations

from typing import Any, Final, TypeAlias


class _Absent:
    """Marker for a field that holds no value at all.

    Distinct from ``None``, which is a legitimate JSON ``null`` on the server.
    """

    __slots__ = ()
    _instance: _Absent | None = None

    def __new__(cls) -> _Absent:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "ABSENT"

    def __bool__(self) -> bool:
        return False

    def __copy__(self) -> _Absent:
        return self

    def __deepcopy__(self, memo: dict[int, Any]) -> _Absent:
        return self


ABSENT: Final = _Absent()
"""The value of a field that has been removed or was never set."""

AttributeMap: TypeAlias = dict[str, Any]
"""Field name to decoded value."""

ObjectCache: TypeAlias = dict[str, str]
"""Field name to the last committed JSON serialization of a container value."""


def is_absent(value: Any) -> bool:
    """Check whether a value is the ABSENT marker."""
    return value is ABSENT
