"""Operation algebra: field-level mutations and how pending mutations compose."""

from recordsync.core.operation.models import (
    OPERATION_TYPES,
    AddOp,
    AddUniqueOp,
    IncrementOp,
    Operation,
    OpsLayer,
    RelationOp,
    RemoveOp,
    SetOp,
    UnsetOp,
    is_number,
    is_operation,
)
from recordsync.core.operation.operations import (
    apply_op,
    contains_item,
    contains_record,
    merge_ops,
    same_record,
    unique,
)

__all__ = [
    # Variants
    "Operation",
    "OpsLayer",
    "OPERATION_TYPES",
    "SetOp",
    "UnsetOp",
    "IncrementOp",
    "AddOp",
    "AddUniqueOp",
    "RemoveOp",
    "RelationOp",
    "is_operation",
    "is_number",
    # Functions
    "apply_op",
    "merge_ops",
    # Item helpers
    "same_record",
    "contains_record",
    "contains_item",
    "unique",
]
