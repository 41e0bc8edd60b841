"""Collaborator protocols consumed by the object controller.

Usage:
    class MyTransport:
        async def send(self, method, path, body=None, options=None):
            ...

    controller = ObjectController(store, MyTransport())
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol, TypeAlias, runtime_checkable

from recordsync.core.values import RecordLike, RemoteFile

if TYPE_CHECKING:
    from recordsync.core.types import AttributeMap

RequestOptions: TypeAlias = dict[str, Any]
"""Opaque per-call options (``session_token``, ``use_master_key``, ``context``...)."""


@runtime_checkable
class Transport(Protocol):
    """Sends one request to the backend.

    Retries and backoff are the transport's own business; the controller sees
    every call as a single attempt.
    """

    async def send(
        self,
        method: str,
        path: str,
        body: Any = None,
        options: RequestOptions | None = None,
    ) -> Any:
        """Send a request and return the decoded JSON response.

        Raises:
            ServerError: The backend rejected the request.
            TransportError: No usable response was received.
        """
        ...


@runtime_checkable
class ManagedRecord(RecordLike, Protocol):
    """A record handle the controller can save, fetch and destroy."""

    @property
    def attributes(self) -> AttributeMap:
        """Current estimated attributes."""
        ...

    def dirty(self, attr: str | None = None) -> bool:
        """True if the record (or one attribute) has unsaved changes."""
        ...

    def migrate_id(self, object_id: str) -> None:
        """Adopt the server-assigned id, moving any state kept under the local id."""
        ...


class DependencyScanner(Protocol):
    """Finds what must be saved before a record can be serialized."""

    def unsaved_children(
        self, root: ManagedRecord, cascade: bool = True
    ) -> list[ManagedRecord | RemoteFile]:
        """Unsaved records and files reachable from ``root``'s attributes."""
        ...

    def can_be_serialized(self, record: ManagedRecord) -> bool:
        """True if every pointer ``record`` holds resolves to a persisted record or file."""
        ...


class SessionProvider(Protocol):
    """Supplies the current auth token, if any."""

    def session_token(self) -> str | None: ...
