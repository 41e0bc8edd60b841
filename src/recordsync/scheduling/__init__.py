"""Write scheduling: per-record task queues, batch barriers, and wave planning."""

from recordsync.scheduling.barrier import BatchBarrier
from recordsync.scheduling.models import (
    BatchWave,
    Partition,
    RetryPolicy,
    chunk,
    partition_ready,
)
from recordsync.scheduling.task_queue import Task, TaskQueue

__all__ = [
    # Queues
    "TaskQueue",
    "Task",
    "BatchBarrier",
    # Planning
    "BatchWave",
    "Partition",
    "partition_ready",
    "chunk",
    # Models
    "RetryPolicy",
]
