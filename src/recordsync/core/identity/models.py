"""Record identity models.

Usage:
    identity = Identity(class_name="GameScore", object_id="xWMyZ4YEGZ")
    pending = Identity(class_name="GameScore", object_id=new_local_id())
"""

from __future__ import annotations

import itertools
import uuid
from dataclasses import dataclass, field, replace
from enum import Enum

LOCAL_ID_PREFIX = "local"

_instance_counter = itertools.count(1)


def new_local_id() -> str:
    """Generate a temporary id for a record the server has not seen yet."""
    return f"{LOCAL_ID_PREFIX}{uuid.uuid4().hex}"


def is_local_id(object_id: str) -> bool:
    """Check if an id was generated locally rather than assigned by the server."""
    return object_id.startswith(LOCAL_ID_PREFIX)


def next_instance_token() -> int:
    """Allocate a token unique to one record handle within this process."""
    return next(_instance_counter)


class IdentityPolicy(Enum):
    """How record handles map onto stored object state."""

    SHARED = "shared"
    """One state per (class_name, object_id). Every handle to the same record sees the same data."""

    ISOLATED = "isolated"
    """One state per handle instance. Handles never observe each other's edits."""


@dataclass(frozen=True, slots=True)
class Identity:
    """Key used to locate a record's state.

    ``object_id`` is the server id once known, otherwise a local id.
    ``instance`` identifies the handle that produced this identity and is only
    consulted under the isolated policy.
    """

    class_name: str
    object_id: str
    instance: int = field(default=0, compare=False)

    @property
    def is_local(self) -> bool:
        """True while the record has not been assigned a server id."""
        return is_local_id(self.object_id)

    def with_object_id(self, object_id: str) -> Identity:
        """Return the identity of the same handle under a new object id."""
        return replace(self, object_id=object_id)

    def __str__(self) -> str:
        return f"{self.class_name}:{self.object_id}"
