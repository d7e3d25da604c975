"""
Value types exchanged between the transport and its sink.

A :class:`FlushBatch` is the detached snapshot a flush hands to exactly one
write; the sink reports back with a :class:`WriteOutcome`. Neither is mutated
after creation.
"""

from __future__ import annotations

import time
from collections.abc import Iterator
from dataclasses import dataclass, field
from typing import Any, Literal

FlushTrigger = Literal["size", "timer", "drain", "manual"]


@dataclass(frozen=True)
class FlushBatch:
    """Immutable snapshot of the buffer taken at flush time."""

    sequence: int
    trigger: FlushTrigger
    records: tuple[dict[str, Any], ...]
    created_at: float = field(default_factory=time.time)

    def __len__(self) -> int:
        return len(self.records)

    def __iter__(self) -> Iterator[dict[str, Any]]:
        return iter(self.records)


@dataclass(frozen=True)
class WriteOutcome:
    """Result of one bulk write.

    ``error`` is set when any document failed; ``inserted`` may still be
    positive for an unordered insert that partially succeeded.
    """

    attempted: int
    inserted: int
    error: str | None = None

    @property
    def failed(self) -> bool:
        return self.error is not None

    @property
    def partial(self) -> bool:
        return self.failed and 0 < self.inserted < self.attempted

    @property
    def dropped(self) -> int:
        return max(0, self.attempted - self.inserted)

    @classmethod
    def success(cls, count: int) -> WriteOutcome:
        return cls(attempted=count, inserted=count)

    @classmethod
    def failure(cls, attempted: int, error: str, *, inserted: int = 0) -> WriteOutcome:
        return cls(attempted=attempted, inserted=inserted, error=error)


@dataclass(frozen=True)
class TransportStats:
    """Point-in-time counters of a batching transport."""

    accepted: int = 0
    written: int = 0
    dropped_malformed: int = 0
    dropped_failed: int = 0
    dropped_closed: int = 0
    batches_flushed: int = 0
    batches_failed: int = 0
    buffered: int = 0
    in_flight: int = 0

    @property
    def dropped(self) -> int:
        return self.dropped_malformed + self.dropped_failed + self.dropped_closed


@dataclass(frozen=True)
class DrainResult:
    """Summary of a drain: what the drain itself flushed and how it ended."""

    flushed_batches: int = 0
    written: int = 0
    dropped: int = 0
    timed_out: bool = False


__all__ = [
    "DrainResult",
    "FlushBatch",
    "FlushTrigger",
    "TransportStats",
    "WriteOutcome",
]
