"""Client: owns the state store, controller and transport.

Usage:
    async with Client(ClientSettings(server_url="https://api.example.com/parse")) as client:
        post = client.create("Post", {"title": "Hello"})
        comment = client.create("Comment", {"post": post})
        await client.save_all([comment])   # saves post first, then comment

    # Tests and examples run against the in-process backend
    client = Client(transport=InMemoryTransport())
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any

from recordsync.client.record import Record
from recordsync.config import ClientSettings
from recordsync.controller import (
    DependencyScanner,
    ObjectController,
    RecordDependencyScanner,
    SessionProvider,
    Transport,
    decode_server_data,
)
from recordsync.storage import ObjectStateStore, StateStore


class Client:
    """Entry point for creating, saving and destroying records.

    Args:
        settings: Client configuration (default: loaded from environment).
        transport: Backend transport (default: RestTransport from settings).
        store: State store (default: ObjectStateStore with the settings' policy).
        scanner: Dependency scanner (default: RecordDependencyScanner).
        session: Supplies a session token for outgoing requests.
    """

    def __init__(
        self,
        settings: ClientSettings | None = None,
        *,
        transport: Transport | None = None,
        store: StateStore | None = None,
        scanner: DependencyScanner | None = None,
        session: SessionProvider | None = None,
    ) -> None:
        self.settings = settings or ClientSettings()
        if transport is None:
            from recordsync.adapters.rest import RestTransport

            transport = RestTransport.from_settings(self.settings)
        self._transport = transport
        self._store = store or ObjectStateStore(policy=self.settings.identity_policy)
        self._controller = ObjectController(
            self._store,
            transport,
            scanner=scanner or RecordDependencyScanner(),
            record_factory=self.materialize,
            session=session,
            batch_size=self.settings.request_batch_size,
            path_prefix=self.settings.server_path,
        )

    async def __aenter__(self) -> Client:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Close the transport if it holds resources."""
        close = getattr(self._transport, "aclose", None)
        if close is not None:
            await close()

    @property
    def store(self) -> StateStore:
        return self._store

    @property
    def controller(self) -> ObjectController:
        return self._controller

    @property
    def transport(self) -> Transport:
        return self._transport

    # Records

    def create(self, class_name: str, attrs: Mapping[str, Any] | None = None) -> Record:
        """New, unsaved record with ``attrs`` pending."""
        return Record(self, class_name, attrs)

    def pointer(self, class_name: str, object_id: str) -> Record:
        """Handle to an existing object. Nothing is fetched."""
        return Record(self, class_name, object_id=object_id)

    def materialize(
        self, class_name: str, object_id: str, data: dict[str, Any] | None = None
    ) -> Record:
        """Record for a decoded pointer, committing ``data`` when the server embedded it."""
        record = self.pointer(class_name, object_id)
        if data:
            identity = record.get_identity()
            self._store.commit_server_changes(
                identity, decode_server_data(data, identity, self.materialize)
            )
        return record

    # Batches

    async def save_all(
        self, records: Sequence[Record], *, batch_size: int | None = None, **options: Any
    ) -> Sequence[Record]:
        return await self._controller.save_all(records, batch_size=batch_size, **options)

    async def destroy_all(
        self, records: Sequence[Record], *, batch_size: int | None = None, **options: Any
    ) -> list[Record]:
        return await self._controller.destroy_all(records, batch_size=batch_size, **options)

    def reset(self) -> None:
        """Forget all locally held state."""
        self._store.reset()
