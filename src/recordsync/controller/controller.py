"""Object controller: save, destroy and fetch orchestration.

Every write for a record runs on that record's task queue, so at most one
request per record is in flight. Before a save is queued a new pending layer
is pushed; edits made while the request is in flight land in that layer. On
success the acknowledged layer is popped and the server's answer committed;
on failure it is folded into the next layer so a retry sends everything.

Usage:
    controller = ObjectController(store, transport, record_factory=client.materialize)
    await controller.save(record)
    await controller.save_all([post, comment], batch_size=20)
    await controller.destroy_all(records)
"""

from __future__ import annotations

import asyncio
import base64
import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any

from recordsync.controller.dependencies import RecordDependencyScanner, unique_dependencies
from recordsync.controller.protocol import (
    DependencyScanner,
    ManagedRecord,
    RequestOptions,
    SessionProvider,
    Transport,
)
from recordsync.controller.result import (
    STATUS_KEY,
    BatchItemResult,
    decode_save_response,
    decode_server_data,
    normalize_batch_response,
)
from recordsync.core.codec import RecordFactory, op_to_json
from recordsync.core.errors import (
    AggregateError,
    CycleError,
    ErrorCode,
    RecordSyncError,
    ServerError,
    TransportError,
)
from recordsync.core.operation import RelationOp, SetOp, UnsetOp, apply_op
from recordsync.core.types import ABSENT, AttributeMap
from recordsync.core.values import RemoteFile
from recordsync.scheduling import BatchBarrier, Task, chunk, partition_ready
from recordsync.storage import StateStore
from recordsync.storage.state import dirty_container_fields, estimate_attributes

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 20
USER_CLASS_NAME = "_User"


@dataclass(slots=True)
class SaveRequest:
    """One record's save call, plus container fields sent as implicit Sets."""

    method: str
    path: str
    body: dict[str, Any]
    implicit: AttributeMap = field(default_factory=dict)

    @property
    def creates(self) -> bool:
        return self.method == "POST"


def class_path(class_name: str, object_id: str | None = None) -> str:
    """REST path for a class or one of its objects."""
    if object_id is None:
        return "users" if class_name == USER_CLASS_NAME else f"classes/{class_name}"
    return f"classes/{class_name}/{object_id}"


class ObjectController:
    """Coordinates writes between the state store and the transport.

    Args:
        store: Where per-record state lives.
        transport: Sends requests to the backend.
        scanner: Finds unsaved dependencies (default: RecordDependencyScanner).
        record_factory: Turns decoded pointers into record handles.
        session: Supplies a session token when a call does not carry one.
        batch_size: Default number of records per batch request.
        path_prefix: Server URL path put in front of batch sub-request paths.
    """

    def __init__(
        self,
        store: StateStore,
        transport: Transport,
        *,
        scanner: DependencyScanner | None = None,
        record_factory: RecordFactory | None = None,
        session: SessionProvider | None = None,
        batch_size: int = DEFAULT_BATCH_SIZE,
        path_prefix: str = "/",
    ) -> None:
        if batch_size < 1:
            raise ValueError(f"batch_size must be >= 1, got {batch_size}")
        self._store = store
        self._transport = transport
        self._scanner = scanner or RecordDependencyScanner()
        self._record_factory = record_factory
        self._session = session
        self._batch_size = batch_size
        self._path_prefix = path_prefix if path_prefix.endswith("/") else f"{path_prefix}/"

    @property
    def store(self) -> StateStore:
        return self._store

    @property
    def scanner(self) -> DependencyScanner:
        return self._scanner

    @property
    def batch_size(self) -> int:
        return self._batch_size

    # Transport

    async def _send(
        self, method: str, path: str, body: Any, options: RequestOptions
    ) -> Any:
        if self._session is not None and not options.get("session_token"):
            token = self._session.session_token()
            if token:
                options = {**options, "session_token": token}
        try:
            return await self._transport.send(method, path, body, options)
        except RecordSyncError:
            raise
        except Exception as e:
            raise TransportError(f"{method} {path} failed: {e}") from e

    # Save payloads

    def save_request(self, record: ManagedRecord) -> SaveRequest:
        """Build the request that saves ``record``'s front pending layer.

        Dirty container fields go out as Sets unless a dot-notation operation
        targets them; front-layer operations are sent verbatim. Containers are
        compared with only the front layer applied, so edits queued behind it
        wait for their own save.
        """
        identity = record.get_identity()
        pending = self._store.get_pending_ops(identity)
        dotted = {attr.split(".", 1)[0] for layer in pending for attr in layer if "." in attr}
        front = estimate_attributes(self._store.get_server_data(identity), pending[:1], identity)

        body: dict[str, Any] = {}
        implicit: AttributeMap = {}
        for attr in sorted(dirty_container_fields(front, self._store.get_object_cache(identity))):
            if attr in dotted:
                continue
            implicit[attr] = front[attr]
            body[attr] = op_to_json(SetOp(front[attr]))
        for attr, op in pending[0].items():
            body[attr] = op_to_json(op)
            implicit.pop(attr, None)

        if record.id:
            return SaveRequest("PUT", class_path(record.class_name, record.id), body, implicit)
        return SaveRequest("POST", class_path(record.class_name), body, implicit)

    # Response handling

    def _handle_save_response(
        self, record: ManagedRecord, request: SaveRequest, response: dict[str, Any], status: int | None
    ) -> None:
        identity = record.get_identity()
        response = dict(response)
        status = response.pop(STATUS_KEY, status)
        server_data = self._store.get_server_data(identity)
        acknowledged = self._store.pop_front_layer(identity)

        changes: AttributeMap = {}
        for attr, op in acknowledged.items():
            if isinstance(op, RelationOp):
                changes[attr] = apply_op(op, server_data.get(attr, ABSENT), owner=identity, key=attr)
            elif attr not in response:
                current = ABSENT if isinstance(op, SetOp | UnsetOp) else server_data.get(attr, ABSENT)
                changes[attr] = apply_op(op, current)
        for attr, value in request.implicit.items():
            if attr not in response:
                changes[attr] = value
        changes.update(
            decode_save_response(response, self._store.estimate_attributes(identity), self._record_factory)
        )

        object_id = response.get("objectId")
        if object_id and not record.id:
            record.migrate_id(object_id)
            identity = record.get_identity()
        created = (status if status is not None else (201 if request.creates else 200)) == 201
        self._store.set_existed(identity, not created)
        self._store.commit_server_changes(identity, changes)

    def _handle_save_error(self, record: ManagedRecord) -> None:
        self._store.merge_front_into_second(record.get_identity())

    # Single record

    async def save(self, record: ManagedRecord, **options: Any) -> ManagedRecord:
        """Save one record on its task queue.

        A persisted record with nothing to send completes without a request.

        Raises:
            ServerError: The backend rejected the save. Edits stay pending.
            TransportError: The request failed. Edits stay pending.
        """
        identity = record.get_identity()

        async def task() -> None:
            try:
                request = self.save_request(record)
                if request.method == "PUT" and not request.body:
                    self._store.pop_front_layer(record.get_identity())
                    return
                response = await self._send(request.method, request.path, request.body, options)
            except Exception:
                self._handle_save_error(record)
                raise
            self._handle_save_response(
                record, request, response if isinstance(response, dict) else {}, None
            )

        self._store.push_layer(identity)
        await self._store.enqueue_task(identity, task)
        return record

    async def save_file(self, file: RemoteFile, **options: Any) -> RemoteFile:
        """Upload a file that has no URL yet."""
        if file.is_saved:
            return file
        body: dict[str, Any] = {"base64": base64.b64encode(file.data or b"").decode("ascii")}
        if file.content_type:
            body["_ContentType"] = file.content_type
        response = await self._send("POST", f"files/{file.name}", body, options)
        file.name = response.get("name", file.name)
        file.url = response["url"]
        logger.debug("Saved file %s", file.name)
        return file

    async def destroy(self, record: ManagedRecord, **options: Any) -> ManagedRecord:
        """Delete one record. Records never saved are left alone."""
        if not record.id:
            return record
        await self._send("DELETE", class_path(record.class_name, record.id), {}, options)
        return record

    async def fetch(self, record: ManagedRecord, **options: Any) -> ManagedRecord:
        """Replace server data with a fresh copy, dropping the newest pending edits.

        Raises:
            RecordSyncError: With MISSING_OBJECT_ID if the record was never saved.
        """
        if not record.id:
            raise RecordSyncError("Object does not have an ID", ErrorCode.MISSING_OBJECT_ID)
        response = await self._send("GET", class_path(record.class_name, record.id), {}, options)
        if not isinstance(response, dict):
            raise TransportError("Fetch response was not an object", ErrorCode.INVALID_JSON)
        identity = record.get_identity()
        self._store.clear_pending_ops(identity)
        self._store.set_server_data(
            identity, dict.fromkeys(self._store.get_server_data(identity), ABSENT)
        )
        self._store.commit_server_changes(
            identity, decode_server_data(response, identity, self._record_factory)
        )
        self._store.set_existed(identity, True)
        return record

    # Batches

    def _resolve_batch_size(self, batch_size: int | None) -> int:
        size = self._batch_size if batch_size is None else batch_size
        if size < 1:
            raise ValueError(f"batch_size must be >= 1, got {size}")
        return size

    async def save_all(
        self,
        records: Sequence[ManagedRecord | RemoteFile],
        *,
        batch_size: int | None = None,
        **options: Any,
    ) -> Sequence[ManagedRecord | RemoteFile]:
        """Save records and everything unsaved they point to.

        Files are uploaded first. Records are then sent in waves: each wave
        holds up to ``batch_size`` records whose pointers all resolve, and goes
        out as one batch request. After a wave with failures no further waves
        are sent.

        Returns:
            ``records`` itself, its records now carrying server ids and fields.

        Raises:
            CycleError: Unsaved records point at each other. Nothing is sent
                for the records involved.
            AggregateError: One entry per record the server rejected.
            TransportError: A batch request failed; remaining waves are skipped.
        """
        size = self._resolve_batch_size(batch_size)
        targets = list(records)
        unsaved: list[ManagedRecord | RemoteFile] = list(targets)
        for record in targets:
            if not isinstance(record, RemoteFile):
                unsaved.extend(self._scanner.unsaved_children(record, cascade=True))
        unsaved = unique_dependencies(unsaved)

        files = [item for item in unsaved if isinstance(item, RemoteFile)]
        if files:
            await asyncio.gather(*(self.save_file(file, **options) for file in files))

        pending = [
            item for item in unsaved if not isinstance(item, RemoteFile) and item.dirty()
        ]
        errors: list[RecordSyncError] = []
        while pending and not errors:
            partition = partition_ready(pending, size, self._scanner.can_be_serialized)
            if partition.stalled:
                raise CycleError("Tried to save a batch with a cycle.")
            pending = partition.deferred
            errors.extend(await self._save_wave(partition.wave.records, options))

        if errors:
            raise AggregateError(errors)
        return records

    async def _save_wave(
        self, batch: list[ManagedRecord], options: RequestOptions
    ) -> list[RecordSyncError]:
        barrier: BatchBarrier[tuple[list[SaveRequest], list[BatchItemResult]]] = BatchBarrier(
            len(batch)
        )

        def member(index: int, record: ManagedRecord) -> Task[None]:
            async def task() -> None:
                barrier.arrive()
                try:
                    requests, results = await barrier.wait()
                except Exception:
                    self._handle_save_error(record)
                    raise
                result = results[index]
                if result.error is not None:
                    self._handle_save_error(record)
                    error = result.error
                    raise ServerError(error.message, error.code, record=record)
                self._handle_save_response(record, requests[index], result.success or {}, result.status)

            return task

        futures = []
        for index, record in enumerate(batch):
            identity = record.get_identity()
            self._store.push_layer(identity)
            futures.append(self._store.enqueue_task(identity, member(index, record)))

        dispatch_error = await self._dispatch_wave(batch, barrier, options)
        outcomes = await asyncio.gather(*futures, return_exceptions=True)
        if dispatch_error is not None:
            raise dispatch_error

        errors: list[RecordSyncError] = []
        for record, outcome in zip(batch, outcomes, strict=True):
            if isinstance(outcome, ServerError):
                logger.warning("Save of %s rejected: %s", record.get_identity(), outcome)
                errors.append(outcome)
            elif isinstance(outcome, BaseException):
                raise outcome
        return errors

    async def _dispatch_wave(
        self,
        batch: list[ManagedRecord],
        barrier: BatchBarrier[tuple[list[SaveRequest], list[BatchItemResult]]],
        options: RequestOptions,
    ) -> Exception | None:
        await barrier.all_arrived()
        try:
            requests = [self.save_request(record) for record in batch]
            body = {
                "requests": [
                    {
                        "method": request.method,
                        "path": f"{self._path_prefix}{request.path}",
                        "body": request.body,
                    }
                    for request in requests
                ]
            }
            logger.debug("Dispatching batch save of %d record(s)", len(batch))
            response = await self._send("POST", "batch", body, options)
            results = normalize_batch_response(response, len(batch))
        except Exception as e:
            barrier.reject(e)
            return e
        barrier.resolve((requests, results))
        return None

    async def destroy_all(
        self,
        records: Sequence[ManagedRecord],
        *,
        batch_size: int | None = None,
        **options: Any,
    ) -> list[ManagedRecord]:
        """Delete records in sequential chunks of ``batch_size``.

        Records without an id are skipped. Deletions that succeeded are not
        undone when a later chunk fails.

        Raises:
            AggregateError: One entry per record the server refused to delete.
            TransportError: A chunk request failed; later chunks are not sent.
        """
        size = self._resolve_batch_size(batch_size)
        targets = list(records)
        errors: list[RecordSyncError] = []
        for group in chunk([record for record in targets if record.id], size):
            body = {
                "requests": [
                    {
                        "method": "DELETE",
                        "path": f"{self._path_prefix}{class_path(record.class_name, record.id)}",
                        "body": {},
                    }
                    for record in group
                ]
            }
            logger.debug("Dispatching batch destroy of %d record(s)", len(group))
            response = await self._send("POST", "batch", body, options)
            for record, result in zip(group, normalize_batch_response(response, len(group)), strict=True):
                if result.error is not None:
                    logger.warning("Destroy of %s rejected: %s", record.get_identity(), result.error)
                    errors.append(ServerError(result.error.message, result.error.code, record=record))
        if errors:
            raise AggregateError(errors)
        return targets

