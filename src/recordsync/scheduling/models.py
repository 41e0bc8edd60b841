"""Scheduling models: batch waves and retry configuration.

A batch save runs as a sequence of waves. Each wave holds records whose
pointers are all resolvable, up to the batch size. Waves run sequentially;
records within a wave go out in one request.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from typing import Literal, TypeVar

from recordsync.core.values import RecordLike


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    """Configuration for retrying failed transport calls.

    Only connection-level failures are retried; server rejections are not.
    """

    max_attempts: int = 1
    """Maximum attempts (1 = no retry). Default: no retry."""

    backoff: Literal["none", "linear", "exponential"] = "none"
    """Backoff strategy between retries."""

    base_delay: float = 0.1
    """Base delay in seconds for backoff calculation."""


@dataclass(slots=True)
class BatchWave:
    """Records saved together in one combined request."""

    records: list[RecordLike] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.records)


@dataclass(slots=True)
class Partition:
    """Result of splitting pending records into the next wave and the rest."""

    wave: BatchWave
    deferred: list[RecordLike]

    @property
    def stalled(self) -> bool:
        """True if nothing could be scheduled although records remain."""
        return not self.wave.records and bool(self.deferred)


def partition_ready(
    pending: Sequence[RecordLike],
    batch_size: int,
    can_be_serialized: Callable[[RecordLike], bool],
) -> Partition:
    """Pick the next wave from ``pending``.

    Records are taken in order while the wave has room and every pointer they
    hold is resolvable. Everything else is deferred, preserving order.

    Args:
        pending: Records still waiting to be saved.
        batch_size: Maximum wave size (>= 1).
        can_be_serialized: Check that a record's pointers all resolve.

    Returns:
        Partition with the wave and the deferred remainder.
    """
    if batch_size < 1:
        raise ValueError(f"batch_size must be >= 1, got {batch_size}")
    wave = BatchWave()
    deferred: list[RecordLike] = []
    for record in pending:
        if len(wave) < batch_size and can_be_serialized(record):
            wave.records.append(record)
        else:
            deferred.append(record)
    return Partition(wave=wave, deferred=deferred)


T = TypeVar("T")


def chunk(items: Sequence[T], size: int) -> list[list[T]]:
    """Split ``items`` into consecutive chunks of at most ``size``."""
    if size < 1:
        raise ValueError(f"chunk size must be >= 1, got {size}")
    return [list(items[i : i + size]) for i in range(0, len(items), size)]
