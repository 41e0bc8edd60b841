"""Tests for the per-record FIFO task queue.

Critical Invariants:
- Tasks start in submission order, one at a time
- A failed task does not block the ones behind it
- Each future settles with its own task's outcome
"""

import asyncio
import gc

import pytest

from recordsync.scheduling import TaskQueue


@pytest.mark.asyncio
async def test_tasks_run_one_at_a_time_in_order():
    """CRITICAL: The second task starts only after the first settles.

    Why: This is what keeps a record to one in-flight write.
    """
    queue = TaskQueue()
    release_first = asyncio.Event()
    events: list[str] = []

    async def first() -> str:
        events.append("first:start")
        await release_first.wait()
        events.append("first:end")
        return "a"

    async def second() -> str:
        events.append("second:start")
        return "b"

    first_done = queue.enqueue(first)
    second_done = queue.enqueue(second)
    await asyncio.sleep(0)
    await asyncio.sleep(0)
    assert events == ["first:start"]
    assert len(queue) == 2

    release_first.set()
    assert await asyncio.gather(first_done, second_done) == ["a", "b"]
    assert events == ["first:start", "first:end", "second:start"]
    assert queue.idle


@pytest.mark.asyncio
async def test_failure_does_not_block_queue():
    """A raising task rejects its own future; the next task still runs.

    Why: One failed save must not wedge every later write to the record.
    """
    queue = TaskQueue()

    async def boom() -> None:
        raise RuntimeError("boom")

    async def fine() -> int:
        return 1

    failed = queue.enqueue(boom)
    succeeded = queue.enqueue(fine)
    with pytest.raises(RuntimeError, match="boom"):
        await failed
    assert await succeeded == 1


@pytest.mark.asyncio
async def test_later_enqueue_after_idle_starts_immediately():
    queue = TaskQueue()

    async def value(n: int) -> int:
        return n

    assert await queue.enqueue(lambda: value(1)) == 1
    assert queue.idle
    assert await queue.enqueue(lambda: value(2)) == 2


@pytest.mark.asyncio
async def test_tasks_enqueued_while_running_keep_order():
    queue = TaskQueue()
    order: list[int] = []

    async def record(n: int) -> None:
        await asyncio.sleep(0)
        order.append(n)
        if n == 0:
            queue.enqueue(lambda: record(99))

    futures = [queue.enqueue(lambda n=n: record(n)) for n in range(3)]
    await asyncio.gather(*futures)
    await queue.enqueue(lambda: record(100))
    assert order == [0, 1, 2, 99, 100]


@pytest.mark.asyncio
async def test_failure_after_caller_cancelled_is_retrieved():
    """A task that fails after its caller gave up reports nothing to the loop.

    Why: The error has no one to go to; asyncio would otherwise log it as
    never retrieved.
    """
    loop = asyncio.get_running_loop()
    reported: list[dict] = []
    previous = loop.get_exception_handler()
    loop.set_exception_handler(lambda _loop, context: reported.append(context))
    try:
        queue = TaskQueue()
        release = asyncio.Event()

        async def boom() -> None:
            await release.wait()
            raise RuntimeError("boom")

        async def fine() -> int:
            return 1

        abandoned = queue.enqueue(boom)
        succeeded = queue.enqueue(fine)
        await asyncio.sleep(0)
        abandoned.cancel()
        release.set()

        assert await succeeded == 1
        gc.collect()
        await asyncio.sleep(0)
    finally:
        loop.set_exception_handler(previous)

    assert reported == []
