"""Operation variants: one pending mutation of one field.

Operations are immutable values. Combining and applying them is done by the
pure functions in ``recordsync.core.operation.operations``.

Usage:
    op = IncrementOp(3)
    op = AddUniqueOp(["a", "b"])
    op = RelationOp.build(adds=[post], removes=[])
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any, TypeAlias

from recordsync.core.errors import IncompatibleTypeError, InvalidRelationError
from recordsync.core.values import RecordLike


def is_number(value: Any) -> bool:
    """True for ints and floats, excluding bools."""
    return isinstance(value, int | float) and not isinstance(value, bool)


def as_items(value: Any) -> tuple[Any, ...]:
    """Normalize a single item or a sequence of items into a tuple."""
    if isinstance(value, list | tuple):
        return tuple(value)
    return (value,)


@dataclass(frozen=True, slots=True)
class SetOp:
    """Replace the field with ``value``."""

    value: Any


@dataclass(frozen=True, slots=True)
class UnsetOp:
    """Remove the field."""


@dataclass(frozen=True, slots=True)
class IncrementOp:
    """Add ``amount`` to a numeric field (absent counts as zero)."""

    amount: int | float

    def __post_init__(self) -> None:
        if not is_number(self.amount):
            raise IncompatibleTypeError("Increment Op must be initialized with a numeric amount")


@dataclass(frozen=True, slots=True)
class AddOp:
    """Append ``items`` to a list field."""

    items: tuple[Any, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "items", as_items(self.items))


@dataclass(frozen=True, slots=True)
class AddUniqueOp:
    """Append each of ``items`` not already present in a list field."""

    items: tuple[Any, ...] = ()

    def __post_init__(self) -> None:
        from recordsync.core.operation.operations import unique

        object.__setattr__(self, "items", tuple(unique(as_items(self.items))))


@dataclass(frozen=True, slots=True)
class RemoveOp:
    """Remove every occurrence of each of ``items`` from a list field."""

    items: tuple[Any, ...] = ()

    def __post_init__(self) -> None:
        from recordsync.core.operation.operations import unique

        object.__setattr__(self, "items", tuple(unique(as_items(self.items))))


@dataclass(frozen=True, slots=True)
class RelationOp:
    """Add and remove record ids on a relation field.

    Only ids are kept; the edits are sent to the server and never
    materialized locally.
    """

    adds: tuple[str, ...] = ()
    removes: tuple[str, ...] = ()
    target_class_name: str | None = field(default=None)

    def __post_init__(self) -> None:
        object.__setattr__(self, "adds", tuple(dict.fromkeys(self.adds)))
        object.__setattr__(self, "removes", tuple(dict.fromkeys(self.removes)))

    @classmethod
    def build(
        cls,
        adds: Iterable[RecordLike | str] = (),
        removes: Iterable[RecordLike | str] = (),
    ) -> RelationOp:
        """Create a relation edit from records and/or raw ids.

        Raises:
            InvalidRelationError: If a record is unsaved or the records belong
                to more than one class.
        """
        target: str | None = None

        def extract(obj: RecordLike | str) -> str:
            nonlocal target
            if isinstance(obj, str):
                return obj
            if not obj.id:
                raise InvalidRelationError(
                    "You cannot add or remove an unsaved record from a relation"
                )
            if target is None:
                target = obj.class_name
            elif target != obj.class_name:
                raise InvalidRelationError(
                    f"Tried to create a Relation with 2 different object types: "
                    f"{target} and {obj.class_name}"
                )
            return obj.id

        add_ids = tuple(extract(obj) for obj in adds)
        remove_ids = tuple(extract(obj) for obj in removes)
        return cls(adds=add_ids, removes=remove_ids, target_class_name=target)


Operation: TypeAlias = SetOp | UnsetOp | IncrementOp | AddOp | AddUniqueOp | RemoveOp | RelationOp
"""Closed set of field mutations."""

OpsLayer: TypeAlias = dict[str, Operation]
"""Field name to its single pending operation within one layer."""

OPERATION_TYPES: tuple[type, ...] = (
    SetOp,
    UnsetOp,
    IncrementOp,
    AddOp,
    AddUniqueOp,
    RemoveOp,
    RelationOp,
)


def is_operation(value: Any) -> bool:
    """Check if a value is one of the operation variants."""
    return isinstance(value, OPERATION_TYPES)
