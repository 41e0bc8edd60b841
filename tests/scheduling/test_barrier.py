"""Tests for BatchBarrier.

Critical Invariants:
- The dispatcher is released only after every party arrived
- Every member receives the same outcome
"""

import asyncio

import pytest

from recordsync.scheduling import BatchBarrier


@pytest.mark.asyncio
async def test_dispatch_waits_for_all_parties():
    barrier: BatchBarrier[list[str]] = BatchBarrier(parties=2)

    async def member(index: int) -> str:
        barrier.arrive()
        return (await barrier.wait())[index]

    async def dispatcher() -> None:
        await barrier.all_arrived()
        assert barrier.arrived == 2
        barrier.resolve(["a", "b"])

    first = asyncio.ensure_future(member(0))
    dispatch = asyncio.ensure_future(dispatcher())
    await asyncio.sleep(0)
    assert not dispatch.done()
    assert barrier.arrived == 1

    second = asyncio.ensure_future(member(1))
    await asyncio.gather(dispatch)
    assert await asyncio.gather(first, second) == ["a", "b"]
    assert barrier.settled


@pytest.mark.asyncio
async def test_reject_reaches_every_member():
    """CRITICAL: A failed dispatch fails all members with the same error.

    Why: Every record in the wave must fold its layer back on failure.
    """
    barrier: BatchBarrier[None] = BatchBarrier(parties=2)
    error = ConnectionError("down")

    async def member() -> None:
        barrier.arrive()
        await barrier.wait()

    members = [asyncio.ensure_future(member()) for _ in range(2)]
    await barrier.all_arrived()
    barrier.reject(error)
    outcomes = await asyncio.gather(*members, return_exceptions=True)
    assert outcomes == [error, error]


@pytest.mark.asyncio
async def test_invalid_use():
    with pytest.raises(ValueError):
        BatchBarrier(parties=0)
    barrier: BatchBarrier[None] = BatchBarrier(parties=1)
    barrier.arrive()
    with pytest.raises(RuntimeError):
        barrier.arrive()
