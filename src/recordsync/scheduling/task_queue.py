"""Per-record FIFO task queue.

Usage:
    queue = TaskQueue()
    first = queue.enqueue(lambda: write(record))
    second = queue.enqueue(lambda: write(record))  # starts after first settles
    await asyncio.gather(first, second)
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, TypeAlias, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

Task: TypeAlias = Callable[[], Awaitable[T]]


@dataclass(slots=True)
class _QueuedTask:
    task: Task[Any]
    completion: asyncio.Future[Any]


class TaskQueue:
    """Runs tasks one at a time in submission order.

    The head task starts as soon as it is enqueued; each later task waits until
    every earlier task has settled, successfully or not. Each returned future
    settles with its own task's outcome.

    One queue exists per record identity, which is what guarantees at most
    one in-flight write per record.
    """

    def __init__(self) -> None:
        self._queue: deque[_QueuedTask] = deque()
        self._running: asyncio.Task[Any] | None = None

    def __len__(self) -> int:
        return len(self._queue)

    @property
    def idle(self) -> bool:
        """True when nothing is running or waiting."""
        return not self._queue

    def enqueue(self, task: Task[T]) -> asyncio.Future[T]:
        """Submit a task.

        Must be called from a running event loop.

        Args:
            task: Zero-argument callable returning an awaitable.

        Returns:
            Future settling with the task's result or exception.
        """
        loop = asyncio.get_running_loop()
        entry = _QueuedTask(task=task, completion=loop.create_future())
        self._queue.append(entry)
        if len(self._queue) == 1:
            self._start(entry)
        return entry.completion

    def _start(self, entry: _QueuedTask) -> None:
        async def invoke() -> Any:
            return await entry.task()

        self._running = asyncio.ensure_future(invoke())
        self._running.add_done_callback(lambda done: self._settle(entry, done))

    def _settle(self, entry: _QueuedTask, done: asyncio.Future[Any]) -> None:
        self._queue.popleft()
        self._running = None
        if self._queue:
            self._start(self._queue[0])

        if entry.completion.cancelled():
            if not done.cancelled() and (error := done.exception()) is not None:
                logger.debug("Queued task failed after its caller cancelled: %r", error)
            return
        if done.cancelled():
            entry.completion.cancel()
        elif (error := done.exception()) is not None:
            logger.debug("Queued task failed: %r", error)
            entry.completion.set_exception(error)
        else:
            entry.completion.set_result(done.result())
