"""Attribute value types: relations, ACLs, geo points, files, and the record protocol."""

from recordsync.core.values.models import (
    ACL,
    PUBLIC_KEY,
    GeoPoint,
    RecordLike,
    Relation,
    RemoteFile,
)

__all__ = [
    "ACL",
    "PUBLIC_KEY",
    "GeoPoint",
    "RecordLike",
    "Relation",
    "RemoteFile",
]
