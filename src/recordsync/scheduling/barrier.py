"""Counting rendezvous for batched writes.

N member tasks each call ``arrive()`` once they hold their record's queue
slot. The dispatcher waits for ``all_arrived()``, performs the one shared
request, then publishes the outcome with ``resolve()`` or ``reject()``. Every
member awaiting ``wait()`` receives the same result.

Usage:
    barrier = BatchBarrier(parties=len(batch))

    async def member(index):
        barrier.arrive()
        responses = await barrier.wait()
        return responses[index]

    async def dispatcher():
        await barrier.all_arrived()
        barrier.resolve(await send_batch())
"""

from __future__ import annotations

import asyncio
from typing import Generic, TypeVar

T = TypeVar("T")


class BatchBarrier(Generic[T]):
    """N parties register readiness, one shared result is broadcast to all.

    Args:
        parties: Number of members that must arrive before dispatch.
    """

    def __init__(self, parties: int) -> None:
        if parties < 1:
            raise ValueError("BatchBarrier needs at least one party")
        loop = asyncio.get_running_loop()
        self._parties = parties
        self._arrived = 0
        self._ready: asyncio.Future[None] = loop.create_future()
        self._outcome: asyncio.Future[T] = loop.create_future()

    @property
    def parties(self) -> int:
        return self._parties

    @property
    def arrived(self) -> int:
        return self._arrived

    @property
    def settled(self) -> bool:
        return self._outcome.done()

    def arrive(self) -> None:
        """Signal that one member is ready. The last arrival releases the dispatcher."""
        if self._arrived >= self._parties:
            raise RuntimeError("More arrivals than parties at BatchBarrier")
        self._arrived += 1
        if self._arrived == self._parties:
            self._ready.set_result(None)

    async def all_arrived(self) -> None:
        """Wait until every member has arrived."""
        await asyncio.shield(self._ready)

    def resolve(self, result: T) -> None:
        """Publish the shared result to every waiting member."""
        self._outcome.set_result(result)

    def reject(self, error: BaseException) -> None:
        """Publish a shared failure to every waiting member."""
        self._outcome.set_exception(error)
        self._outcome.exception()  # marks it retrieved

    async def wait(self) -> T:
        """Wait for the dispatcher's outcome."""
        return await asyncio.shield(self._outcome)
