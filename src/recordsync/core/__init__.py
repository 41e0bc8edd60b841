"""Core functionalities: stateless values, identities, and the operation algebra.

Architecture Note:
    core/ contains pure, stateless building blocks with no runtime state
    mutation. For stateful services, see storage/, scheduling/, controller/
    and client/.
"""

from recordsync.core.codec import decode, encode, op_from_json, op_to_json, to_pointer
from recordsync.core.errors import (
    AggregateError,
    CannotModifyDeletedRelationError,
    CycleError,
    ErrorCode,
    IncompatibleMergeError,
    IncompatibleTypeError,
    InvalidPointerError,
    InvalidRelationError,
    OperationError,
    RecordSyncError,
    ServerError,
    TransportError,
)
from recordsync.core.identity import Identity, IdentityPolicy, is_local_id, new_local_id
from recordsync.core.operation import (
    AddOp,
    AddUniqueOp,
    IncrementOp,
    Operation,
    OpsLayer,
    RelationOp,
    RemoveOp,
    SetOp,
    UnsetOp,
    apply_op,
    merge_ops,
)
from recordsync.core.types import ABSENT, AttributeMap, ObjectCache
from recordsync.core.values import ACL, GeoPoint, RecordLike, Relation, RemoteFile

__all__ = [
    # Types
    "ABSENT",
    "AttributeMap",
    "ObjectCache",
    # Identity
    "Identity",
    "IdentityPolicy",
    "is_local_id",
    "new_local_id",
    # Values
    "ACL",
    "GeoPoint",
    "RecordLike",
    "Relation",
    "RemoteFile",
    # Operations
    "Operation",
    "OpsLayer",
    "SetOp",
    "UnsetOp",
    "IncrementOp",
    "AddOp",
    "AddUniqueOp",
    "RemoveOp",
    "RelationOp",
    "apply_op",
    "merge_ops",
    # Codec
    "encode",
    "decode",
    "op_to_json",
    "op_from_json",
    "to_pointer",
    # Errors
    "ErrorCode",
    "RecordSyncError",
    "OperationError",
    "IncompatibleMergeError",
    "CannotModifyDeletedRelationError",
    "IncompatibleTypeError",
    "InvalidRelationError",
    "InvalidPointerError",
    "CycleError",
    "ServerError",
    "TransportError",
    "AggregateError",
]
