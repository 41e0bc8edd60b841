"""Value types that can appear as record attributes.

Usage:
    relation = Relation(parent=identity, key="likes", target_class_name="Post")
    acl = ACL.public(read=True)
    point = GeoPoint(latitude=40.0, longitude=-30.0)
    avatar = RemoteFile(name="me.png", data=b"...", content_type="image/png")
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from recordsync.core.identity import Identity


@runtime_checkable
class RecordLike(Protocol):
    """What the core needs from a record handle.

    Anything exposing a class name, a server id (or None) and a stable
    local/server id can act as a pointer target.
    """

    class_name: str
    id: str | None

    def get_id(self) -> str:
        """Server id if assigned, otherwise a stable local id."""
        ...

    def get_identity(self) -> Identity:
        """Identity used to locate this record's state."""
        ...


@dataclass(slots=True)
class Relation:
    """Handle for a many-to-many relation field owned by a record.

    Adds and removes are not materialized client-side; the handle only knows
    where it lives and what class it points at.
    """

    parent: Identity | None = None
    key: str | None = None
    target_class_name: str | None = None

    def ensure_parent_and_key(self, parent: Identity, key: str) -> None:
        """Bind a decoded relation to the record and field it was read from.

        Raises:
            ValueError: If the relation is already bound elsewhere.
        """
        self.key = self.key or key
        if self.key != key:
            raise ValueError("Relation retrieved from two different keys")
        if self.parent is None:
            self.parent = parent
            return
        if self.parent.class_name != parent.class_name:
            raise ValueError("Relation retrieved from two different objects")
        if not self.parent.is_local:
            if self.parent.object_id != parent.object_id:
                raise ValueError("Relation retrieved from two different objects")
        elif not parent.is_local:
            self.parent = parent

    def to_json(self) -> dict[str, Any]:
        return {"__type": "Relation", "className": self.target_class_name}


PUBLIC_KEY = "*"


@dataclass(slots=True)
class ACL:
    """Per-user and per-role read/write permissions.

    Keys are user ids, ``role:<name>`` entries, or ``*`` for the public.
    """

    permissions: dict[str, dict[str, bool]] = field(default_factory=dict)

    @classmethod
    def public(cls, read: bool = True, write: bool = False) -> ACL:
        acl = cls()
        acl.set_public_read_access(read)
        acl.set_public_write_access(write)
        return acl

    @classmethod
    def from_json(cls, data: dict[str, Any]) -> ACL:
        permissions: dict[str, dict[str, bool]] = {}
        for user_id, access in data.items():
            if not isinstance(access, dict):
                raise TypeError(f"Tried to create an ACL with an invalid permission entry: {access!r}")
            for kind, allowed in access.items():
                if kind not in ("read", "write"):
                    raise TypeError(f"Tried to create an ACL with an invalid permission type: {kind}")
                if not isinstance(allowed, bool):
                    raise TypeError("Tried to create an ACL with an invalid permission value")
            permissions[user_id] = dict(access)
        return cls(permissions=permissions)

    def _set_access(self, kind: str, user_id: str, allowed: bool) -> None:
        entry = self.permissions.get(user_id)
        if not allowed:
            if entry is None:
                return
            entry.pop(kind, None)
            if not entry:
                del self.permissions[user_id]
            return
        if entry is None:
            entry = self.permissions[user_id] = {}
        entry[kind] = True

    def _get_access(self, kind: str, user_id: str) -> bool:
        return self.permissions.get(user_id, {}).get(kind, False)

    def set_read_access(self, user_id: str, allowed: bool) -> None:
        self._set_access("read", user_id, allowed)

    def get_read_access(self, user_id: str) -> bool:
        return self._get_access("read", user_id)

    def set_write_access(self, user_id: str, allowed: bool) -> None:
        self._set_access("write", user_id, allowed)

    def get_write_access(self, user_id: str) -> bool:
        return self._get_access("write", user_id)

    def set_public_read_access(self, allowed: bool) -> None:
        self.set_read_access(PUBLIC_KEY, allowed)

    def get_public_read_access(self) -> bool:
        return self.get_read_access(PUBLIC_KEY)

    def set_public_write_access(self, allowed: bool) -> None:
        self.set_write_access(PUBLIC_KEY, allowed)

    def get_public_write_access(self) -> bool:
        return self.get_write_access(PUBLIC_KEY)

    def set_role_read_access(self, role: str, allowed: bool) -> None:
        self.set_read_access(f"role:{role}", allowed)

    def set_role_write_access(self, role: str, allowed: bool) -> None:
        self.set_write_access(f"role:{role}", allowed)

    def to_json(self) -> dict[str, dict[str, bool]]:
        return {user_id: dict(access) for user_id, access in self.permissions.items()}


@dataclass(frozen=True, slots=True)
class GeoPoint:
    """A latitude/longitude pair in degrees."""

    latitude: float = 0.0
    longitude: float = 0.0

    def __post_init__(self) -> None:
        if not -90.0 <= self.latitude <= 90.0:
            raise ValueError(f"Latitude must be within [-90, 90], got {self.latitude}")
        if not -180.0 <= self.longitude <= 180.0:
            raise ValueError(f"Longitude must be within [-180, 180], got {self.longitude}")

    def to_json(self) -> dict[str, Any]:
        return {"__type": "GeoPoint", "latitude": self.latitude, "longitude": self.longitude}


@dataclass(slots=True, eq=False)
class RemoteFile:
    """Binary content stored by the backend.

    A file is persisted once the server has given it a URL. Records pointing at
    an unsaved file cannot be serialized.
    """

    name: str
    data: bytes | None = None
    content_type: str | None = None
    url: str | None = None

    @property
    def is_saved(self) -> bool:
        return self.url is not None

    def to_json(self) -> dict[str, Any]:
        return {"__type": "File", "name": self.name, "url": self.url}
