"""Dependency scanning over record attribute graphs.

Usage:
    scanner = RecordDependencyScanner()
    children = scanner.unsaved_children(post, cascade=True)
    ready = [record for record in children if scanner.can_be_serialized(record)]
"""

from __future__ import annotations

from typing import Any

from recordsync.controller.protocol import ManagedRecord
from recordsync.core.errors import InvalidPointerError
from recordsync.core.values import RecordLike, Relation, RemoteFile


def record_key(record: RecordLike) -> tuple[str, str]:
    """Deduplication key: class name and server or local id."""
    return (record.class_name, record.get_id())


def unique_dependencies(
    items: list[ManagedRecord | RemoteFile],
) -> list[ManagedRecord | RemoteFile]:
    """Drop repeated records (by key) and repeated files (by object), keeping order."""
    seen_records: set[tuple[str, str]] = set()
    seen_files: list[RemoteFile] = []
    result: list[ManagedRecord | RemoteFile] = []
    for item in items:
        if isinstance(item, RemoteFile):
            if any(item is seen for seen in seen_files):
                continue
            seen_files.append(item)
        else:
            key = record_key(item)
            if key in seen_records:
                continue
            seen_records.add(key)
        result.append(item)
    return result


class RecordDependencyScanner:
    """Walks attributes recursively through lists, dicts and pointer fields.

    Relations are never followed: relation edits only carry ids of records
    that are already saved.
    """

    def unsaved_children(
        self, root: ManagedRecord, cascade: bool = True
    ) -> list[ManagedRecord | RemoteFile]:
        """Collect dirty records and unsaved files reachable from ``root``.

        Args:
            root: Record whose attributes are scanned. Never part of the result.
            cascade: If False, an unsaved record nested below a direct child
                raises instead of being collected.

        Returns:
            Dirty records first (discovery order), then unsaved files.

        Raises:
            InvalidPointerError: On a deep unsaved record when ``cascade`` is False.
        """
        encountered: dict[tuple[str, str], ManagedRecord | None] = {}
        files: list[RemoteFile] = []
        root_key = record_key(root)
        encountered[root_key] = root if root.dirty() else None
        for value in root.attributes.values():
            self._traverse(value, encountered, files, False, cascade)

        unsaved: list[ManagedRecord | RemoteFile] = [
            record
            for key, record in encountered.items()
            if key != root_key and record is not None
        ]
        return [*unsaved, *files]

    def _traverse(
        self,
        value: Any,
        encountered: dict[tuple[str, str], ManagedRecord | None],
        files: list[RemoteFile],
        should_raise: bool,
        allow_deep: bool,
    ) -> None:
        if isinstance(value, RemoteFile):
            if not value.is_saved and not any(value is seen for seen in files):
                files.append(value)
            return
        if isinstance(value, Relation):
            return
        if isinstance(value, RecordLike):
            if not value.id and should_raise:
                raise InvalidPointerError("Cannot create a pointer to an unsaved Object.")
            key = record_key(value)
            if key in encountered:
                return
            if not isinstance(value, ManagedRecord):
                encountered[key] = None
                return
            encountered[key] = value if value.dirty() else None
            for child in value.attributes.values():
                self._traverse(child, encountered, files, not allow_deep, allow_deep)
            return
        if isinstance(value, list | tuple):
            for item in value:
                self._traverse(item, encountered, files, should_raise, allow_deep)
        elif isinstance(value, dict):
            for item in value.values():
                self._traverse(item, encountered, files, should_raise, allow_deep)

    def can_be_serialized(self, record: ManagedRecord) -> bool:
        return all(_resolvable(value) for value in record.attributes.values())


def _resolvable(value: Any) -> bool:
    if isinstance(value, Relation):
        return True
    if isinstance(value, RemoteFile):
        return value.is_saved
    if isinstance(value, RecordLike):
        return bool(value.id)
    if isinstance(value, list | tuple):
        return all(_resolvable(item) for item in value)
    if isinstance(value, dict):
        return all(_resolvable(item) for item in value.values())
    return True
