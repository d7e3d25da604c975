"""
In-memory doubles for sinks and destinations.
"""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

from ..core.batch import WriteOutcome
from ..core.errors import SinkWriteError


@dataclass
class MockSinkConfig:
    """Behaviour switches for :class:`MockSink`."""

    fail: bool = False
    raise_on_write: bool = False
    reject_count: int = 0
    delay_seconds: float = 0.0
    error: str = "mock write failure"


class MockSink:
    """Sink that records every batch it is asked to write.

    ``fail`` makes writes report a failed outcome, ``raise_on_write`` makes
    them raise, ``reject_count`` reports a partial insert with that many
    documents rejected and ``delay_seconds`` holds each write open.
    """

    name = "mock"

    def __init__(self, config: MockSinkConfig | None = None, **kwargs: Any) -> None:
        self.config = config if config is not None else MockSinkConfig(**kwargs)
        self.batches: list[list[dict[str, Any]]] = []
        self.started = False
        self.stopped = False
        self.start_calls = 0
        self.stop_calls = 0
        self.write_calls = 0
        # Set while a write is awaiting its delay
        self.in_write = 0
        self.events: list[str] = []

    @property
    def documents(self) -> list[dict[str, Any]]:
        return [doc for batch in self.batches for doc in batch]

    async def start(self) -> None:
        self.start_calls += 1
        self.started = True
        self.events.append("start")

    async def stop(self) -> None:
        self.stop_calls += 1
        self.stopped = True
        self.events.append("stop")

    async def write(self, documents: Sequence[dict[str, Any]]) -> WriteOutcome:
        self.write_calls += 1
        self.events.append("write")
        batch = list(documents)
        self.in_write += 1
        try:
            if self.config.delay_seconds:
                await asyncio.sleep(self.config.delay_seconds)
        finally:
            self.in_write -= 1
        self.events.append("write-done")
        if self.config.raise_on_write:
            raise SinkWriteError(self.config.error, sink_name=self.name)
        if self.config.fail:
            return WriteOutcome.failure(len(batch), self.config.error)
        self.batches.append(batch)
        if self.config.reject_count:
            rejected = min(self.config.reject_count, len(batch))
            return WriteOutcome.failure(
                len(batch),
                f"{rejected} document(s) rejected",
                inserted=len(batch) - rejected,
            )
        return WriteOutcome.success(len(batch))

    async def health_check(self) -> bool:
        return self.started and not self.stopped

    def reset(self) -> None:
        self.batches.clear()
        self.events.clear()
        self.write_calls = 0


class MemoryDestination:
    """Destination that keeps every record it receives."""

    def __init__(self) -> None:
        self.records: list[Any] = []
        self.closed = False

    def append(self, record: Any) -> None:
        self.records.append(record)

    def close(self) -> None:
        self.closed = True


__all__ = ["MemoryDestination", "MockSink", "MockSinkConfig"]
