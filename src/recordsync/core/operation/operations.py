"""Pure functions for applying and composing operations.

``apply_op`` computes the value a field takes after an operation.
``merge_ops`` folds an older pending operation into a newer one so each layer
holds at most one operation per field. Merging is last-writer composition:
purely local and sensitive to arrival order.
"""

from __future__ import annotations

from dataclasses import replace
from typing import TYPE_CHECKING, Any

from recordsync.core.errors import (
    CannotModifyDeletedRelationError,
    IncompatibleMergeError,
    IncompatibleTypeError,
    InvalidRelationError,
)
from recordsync.core.operation.models import (
    AddOp,
    AddUniqueOp,
    IncrementOp,
    Operation,
    RelationOp,
    RemoveOp,
    SetOp,
    UnsetOp,
    is_number,
)
from recordsync.core.types import ABSENT
from recordsync.core.values import RecordLike, Relation

if TYPE_CHECKING:
    from recordsync.core.identity import Identity


# Item helpers


def same_record(a: Any, b: Any) -> bool:
    """True if both values are records with the same class and id."""
    if not (isinstance(a, RecordLike) and isinstance(b, RecordLike)):
        return False
    return a is b or (a.class_name == b.class_name and a.get_id() == b.get_id())


def contains_record(items: list[Any] | tuple[Any, ...], record: RecordLike) -> bool:
    """Check if a record, or another handle to the same record, is in ``items``."""
    return any(item is record or same_record(item, record) for item in items)


def contains_item(items: list[Any] | tuple[Any, ...], item: Any) -> bool:
    """Membership test matching records by identity key and other values by equality."""
    if isinstance(item, RecordLike):
        return contains_record(items, item)
    return any(not isinstance(existing, RecordLike) and existing == item for existing in items)


def unique(items: list[Any] | tuple[Any, ...]) -> list[Any]:
    """Deduplicate ``items`` preserving first occurrence order."""
    uniques: list[Any] = []
    for item in items:
        if not contains_item(uniques, item):
            uniques.append(item)
    return uniques


def _missing(value: Any) -> bool:
    return value is ABSENT or value is None


# Apply


def apply_op(
    op: Operation,
    current: Any = ABSENT,
    *,
    owner: Identity | None = None,
    key: str | None = None,
) -> Any:
    """Compute the value a field takes after ``op``.

    Args:
        op: Operation to apply.
        current: Current value of the field, ABSENT if the field has none.
        owner: Identity of the record owning the field (relations only).
        key: Field name (relations only).

    Returns:
        The new value, ABSENT if the field is removed.

    Raises:
        IncompatibleTypeError: If ``current`` has the wrong type for ``op``.
        InvalidRelationError: If a relation cannot be built or target classes disagree.
    """
    match op:
        case SetOp(value=value):
            return value
        case UnsetOp():
            return ABSENT
        case IncrementOp(amount=amount):
            if current is ABSENT:
                return amount
            if not is_number(current):
                raise IncompatibleTypeError("Cannot increment a non-numeric value")
            return current + amount
        case AddOp(items=items):
            if _missing(current):
                return list(items)
            if isinstance(current, list):
                return [*current, *items]
            raise IncompatibleTypeError("Cannot add elements to a non-array value")
        case AddUniqueOp(items=items):
            if _missing(current):
                return list(items)
            if isinstance(current, list):
                return [*current, *(item for item in items if not contains_item(current, item))]
            raise IncompatibleTypeError("Cannot add elements to a non-array value")
        case RemoveOp(items=items):
            if _missing(current):
                return []
            if isinstance(current, list):
                return [value for value in current if not contains_item(items, value)]
            raise IncompatibleTypeError("Cannot remove elements from a non-array value")
        case RelationOp(target_class_name=target):
            return _apply_relation(target, current, owner, key)
    raise TypeError(f"Unknown operation: {op!r}")  # pragma: no cover


def _apply_relation(
    target: str | None,
    current: Any,
    owner: Identity | None,
    key: str | None,
) -> Relation:
    if _missing(current):
        if owner is None or key is None:
            raise InvalidRelationError(
                "Cannot apply a RelationOp without either a previous value, or an object and a key"
            )
        return Relation(parent=owner, key=key, target_class_name=target)
    if not isinstance(current, Relation):
        raise IncompatibleTypeError("Relation cannot be applied to a non-relation field")
    if target is None:
        return current
    if current.target_class_name is None:
        return replace(current, target_class_name=target)
    if current.target_class_name != target:
        raise InvalidRelationError(
            f"Related object must be a {current.target_class_name}, but a {target} was passed in"
        )
    return current


# Merge


def merge_ops(newer: Operation, older: Operation | None) -> Operation:
    """Fold ``older`` into ``newer`` so the result has the effect of both, in order.

    Args:
        newer: The operation recorded last.
        older: The operation already pending for the same field, if any.

    Returns:
        A single operation equivalent to applying ``older`` then ``newer``.

    Raises:
        IncompatibleMergeError: If the two operations cannot be combined.
        CannotModifyDeletedRelationError: If a relation edit follows an unset.
        IncompatibleTypeError: If a Set's value has the wrong type for ``newer``.
    """
    if older is None:
        return newer

    match newer:
        case SetOp() | UnsetOp():
            return newer
        case IncrementOp(amount=amount):
            match older:
                case SetOp(value=value):
                    return SetOp(apply_op(newer, value))
                case UnsetOp():
                    return SetOp(amount)
                case IncrementOp(amount=previous):
                    return IncrementOp(previous + amount)
        case AddOp(items=items):
            match older:
                case SetOp(value=value):
                    return SetOp(apply_op(newer, value))
                case UnsetOp():
                    return SetOp(list(items))
                case AddOp(items=previous):
                    return AddOp((*previous, *items))
        case AddUniqueOp(items=items):
            match older:
                case SetOp(value=value):
                    return SetOp(apply_op(newer, value))
                case UnsetOp():
                    return SetOp(list(items))
                case AddUniqueOp(items=previous):
                    return AddUniqueOp(tuple(apply_op(newer, list(previous))))
        case RemoveOp(items=items):
            match older:
                case SetOp(value=value):
                    return SetOp(apply_op(newer, value))
                case UnsetOp():
                    return UnsetOp()
                case RemoveOp(items=previous):
                    merged = list(previous)
                    merged.extend(item for item in items if not contains_item(previous, item))
                    return RemoveOp(tuple(merged))
        case RelationOp():
            return _merge_relation(newer, older)

    raise IncompatibleMergeError(
        f"Cannot merge {type(newer).__name__} with the previous {type(older).__name__}"
    )


def _merge_relation(newer: RelationOp, older: Operation) -> RelationOp:
    match older:
        case UnsetOp():
            raise CannotModifyDeletedRelationError("You cannot modify a relation after deleting it")
        case SetOp(value=Relation()):
            return newer
        case RelationOp():
            if (
                older.target_class_name
                and newer.target_class_name
                and older.target_class_name != newer.target_class_name
            ):
                raise IncompatibleMergeError(
                    f"Related object must be of class {older.target_class_name}, "
                    f"but {newer.target_class_name} was passed in"
                )
            adds = [r for r in older.adds if r not in newer.removes]
            adds.extend(r for r in newer.adds if r not in adds)
            removes = [r for r in older.removes if r not in newer.adds]
            removes.extend(r for r in newer.removes if r not in removes)
            return RelationOp(
                adds=tuple(adds),
                removes=tuple(removes),
                target_class_name=newer.target_class_name or older.target_class_name,
            )
    raise IncompatibleMergeError(
        f"Cannot merge RelationOp with the previous {type(older).__name__}"
    )
