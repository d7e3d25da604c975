"""
Batching transport: buffer records in memory, flush them to a sink in bulk.

Two independent triggers flush the buffer, whichever fires first:

1. SIZE: ``batch_size`` records are buffered. The flush happens inside the
   ``append`` that crossed the threshold and the pending timer is cancelled.
2. TIMER: ``flush_ms`` elapsed since the first record landed in an empty
   buffer. At most one timer is pending at a time.

A flush swaps the buffer for a fresh list under the lock and hands the old
contents to the sink as an immutable :class:`FlushBatch`. Each write owns its
batch, so several writes may be in flight at once without sharing state, and
records appended meanwhile start a new buffer.

Failure policy: a failed write is neither retried nor re-buffered. The batch
is counted as dropped and exactly one diagnostic is emitted for it, while
``append`` keeps accepting records. ``drain()`` is the only operation that
waits: it flushes what is left and awaits every outstanding write.

Threading model: ``append`` may be called from any thread. Timers and writes
run on the event loop the transport is attached to.
"""

from __future__ import annotations

import asyncio
import logging
import threading
import time
from collections.abc import Mapping
from typing import Any

from . import diagnostics
from ..metrics.metrics import MetricsCollector
from ..plugins.sinks import BaseSink
from .batch import DrainResult, FlushBatch, FlushTrigger, TransportStats, WriteOutcome
from .mapper import map_chunk
from .settings import (
    DEFAULT_BATCH_SIZE,
    DEFAULT_FLUSH_MS,
    DEFAULT_SERVICE,
    resolve_positive_int,
)

_logger = logging.getLogger("moltlog.transport")


class BatchingTransport:
    """Size- and time-triggered batching in front of a :class:`BaseSink`."""

    def __init__(
        self,
        sink: BaseSink,
        *,
        service: str = DEFAULT_SERVICE,
        batch_size: object = DEFAULT_BATCH_SIZE,
        flush_ms: object = DEFAULT_FLUSH_MS,
        loop: asyncio.AbstractEventLoop | None = None,
        metrics: MetricsCollector | None = None,
    ) -> None:
        self._sink = sink
        self._service = service
        self._batch_size = resolve_positive_int(batch_size, DEFAULT_BATCH_SIZE)
        self._flush_ms = resolve_positive_int(flush_ms, DEFAULT_FLUSH_MS)
        self._loop = loop
        self._metrics = metrics

        # Guards every field below
        self._lock = threading.Lock()
        self._buffer: list[dict[str, Any]] = []
        self._timer: asyncio.TimerHandle | None = None
        self._timer_pending = False
        self._timer_generation = 0
        self._sequence = 0
        # Batches taken from the buffer whose write has not settled yet
        self._unsettled = 0
        self._closed = False
        self._counters: dict[str, int] = {
            "accepted": 0,
            "written": 0,
            "dropped_malformed": 0,
            "dropped_failed": 0,
            "dropped_closed": 0,
            "batches_flushed": 0,
            "batches_failed": 0,
        }
        # Only touched on the loop thread
        self._tasks: set[asyncio.Task[None]] = set()

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def sink(self) -> BaseSink:
        return self._sink

    @property
    def batch_size(self) -> int:
        return self._batch_size

    @property
    def flush_ms(self) -> int:
        return self._flush_ms

    @property
    def closed(self) -> bool:
        with self._lock:
            return self._closed

    @property
    def timer_pending(self) -> bool:
        with self._lock:
            return self._timer_pending

    @property
    def in_flight(self) -> int:
        with self._lock:
            return self._unsettled

    @property
    def loop(self) -> asyncio.AbstractEventLoop | None:
        return self._loop

    def attach(self, loop: asyncio.AbstractEventLoop) -> None:
        """Bind the event loop that runs timers and writes.

        Records buffered before attachment are re-evaluated immediately.
        """
        if self._loop is loop:
            return
        if self._loop is not None:
            raise RuntimeError("transport is already attached to another event loop")
        self._loop = loop
        if self._on_loop_thread():
            self.maybe_flush()
        else:
            loop.call_soon_threadsafe(self.maybe_flush)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def append(self, record: Mapping[str, Any] | str | bytes) -> int:
        """Buffer one record (or each line of a text chunk).

        Never blocks on I/O and never raises for bad input: malformed lines
        are counted and skipped. Returns the number of records buffered.
        """
        documents, malformed = map_chunk(record, self._service)
        with self._lock:
            self._counters["dropped_malformed"] += malformed
            closed = self._closed
            if closed:
                self._counters["dropped_closed"] += len(documents)
            else:
                self._buffer.extend(documents)
                self._counters["accepted"] += len(documents)
        if self._metrics is not None:
            self._metrics.record_dropped(malformed, reason="malformed")
            if closed:
                self._metrics.record_dropped(len(documents), reason="closed")
            else:
                self._metrics.record_accepted(len(documents))
        if closed or not documents:
            return 0
        self.maybe_flush()
        return len(documents)

    def maybe_flush(self) -> FlushBatch | None:
        """Flush on the size threshold, otherwise make sure a timer is armed."""
        if self._current_loop() is None:
            return None
        with self._lock:
            if len(self._buffer) >= self._batch_size:
                self._cancel_timer_locked()
                batch = self._take_locked("size")
            else:
                batch = None
                if self._buffer and not self._timer_pending and not self._closed:
                    self._arm_timer_locked()
        if batch is not None:
            self._submit(batch)
        return batch

    def flush(self, trigger: FlushTrigger = "manual") -> FlushBatch | None:
        """Detach the buffer and submit it for writing; no-op when empty."""
        if self._current_loop() is None:
            return None
        with self._lock:
            self._cancel_timer_locked()
            batch = self._take_locked(trigger)
        if batch is not None:
            self._submit(batch)
        return batch

    async def drain(self, timeout: float | None = None) -> DrainResult:
        """Flush the buffer and wait until every write has settled.

        Appends racing with the drain are flushed too. Once the buffer is
        empty and nothing is in flight the transport closes; later appends are
        counted as dropped. With ``timeout``, stop waiting after that many
        seconds and report ``timed_out``; writes still in flight keep running.
        """
        loop = asyncio.get_running_loop()
        if self._loop is None:
            self.attach(loop)
        elif self._loop is not loop:
            raise RuntimeError("drain() must run on the transport's event loop")

        before = self.stats()
        timed_out = False
        try:
            if timeout is None:
                await self._drain_until_idle()
            else:
                await asyncio.wait_for(self._drain_until_idle(), timeout)
        except asyncio.TimeoutError:
            timed_out = True
            self._close_after_timeout()
        after = self.stats()
        result = DrainResult(
            flushed_batches=after.batches_flushed - before.batches_flushed,
            written=after.written - before.written,
            dropped=(after.dropped_failed + after.dropped_closed)
            - (before.dropped_failed + before.dropped_closed),
            timed_out=timed_out,
        )
        _logger.debug("transport drained: %s", result)
        return result

    def stats(self) -> TransportStats:
        with self._lock:
            return TransportStats(
                buffered=len(self._buffer),
                in_flight=self._unsettled,
                **self._counters,
            )

    # ------------------------------------------------------------------
    # Buffer and timer internals (call with the lock held)
    # ------------------------------------------------------------------

    def _take_locked(self, trigger: FlushTrigger) -> FlushBatch | None:
        if not self._buffer:
            return None
        records, self._buffer = self._buffer, []
        self._sequence += 1
        self._unsettled += 1
        return FlushBatch(
            sequence=self._sequence, trigger=trigger, records=tuple(records)
        )

    def _arm_timer_locked(self) -> None:
        loop = self._loop
        assert loop is not None
        self._timer_pending = True
        self._timer_generation += 1
        generation = self._timer_generation
        if self._on_loop_thread():
            self._timer = loop.call_later(
                self._flush_ms / 1000.0, self._on_timer, generation
            )
        else:
            loop.call_soon_threadsafe(self._start_timer, generation)

    def _cancel_timer_locked(self) -> None:
        # Bumping the generation turns an already-scheduled callback into a no-op
        self._timer_pending = False
        self._timer_generation += 1
        timer, self._timer = self._timer, None
        if timer is None:
            return
        if self._on_loop_thread():
            timer.cancel()
        elif self._loop is not None and not self._loop.is_closed():
            self._loop.call_soon_threadsafe(timer.cancel)

    def _start_timer(self, generation: int) -> None:
        loop = self._loop
        assert loop is not None
        with self._lock:
            if not self._timer_pending or generation != self._timer_generation:
                return
            self._timer = loop.call_later(
                self._flush_ms / 1000.0, self._on_timer, generation
            )

    def _on_timer(self, generation: int) -> None:
        with self._lock:
            if not self._timer_pending or generation != self._timer_generation:
                return
            self._timer_pending = False
            self._timer = None
            batch = self._take_locked("timer")
        if batch is not None:
            self._submit(batch)

    def _close_after_timeout(self) -> None:
        with self._lock:
            self._closed = True
            self._cancel_timer_locked()
            leftover = len(self._buffer)
            self._buffer = []
            self._counters["dropped_closed"] += leftover
            unsettled = self._unsettled
        if self._metrics is not None:
            self._metrics.record_dropped(leftover, reason="closed")
        diagnostics.warn(
            "transport",
            "drain timed out",
            abandoned=leftover,
            in_flight=unsettled,
        )

    # ------------------------------------------------------------------
    # Write path
    # ------------------------------------------------------------------

    def _current_loop(self) -> asyncio.AbstractEventLoop | None:
        if self._loop is None:
            try:
                self._loop = asyncio.get_running_loop()
            except RuntimeError:
                diagnostics.warn(
                    "transport",
                    "not attached to an event loop; records stay buffered",
                    _rate_limit_key="transport-unattached",
                )
                return None
        return self._loop

    def _on_loop_thread(self) -> bool:
        try:
            return asyncio.get_running_loop() is self._loop
        except RuntimeError:
            return False

    def _submit(self, batch: FlushBatch) -> None:
        loop = self._loop
        assert loop is not None
        if self._on_loop_thread():
            self._spawn(batch)
            return
        try:
            loop.call_soon_threadsafe(self._spawn, batch)
        except RuntimeError as exc:
            # Loop already closed: the write can never run
            self._settle(batch, WriteOutcome.failure(len(batch), str(exc)), None)

    def _spawn(self, batch: FlushBatch) -> None:
        loop = self._loop
        assert loop is not None
        task = loop.create_task(self._write(batch))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _write(self, batch: FlushBatch) -> None:
        start = time.perf_counter()
        try:
            outcome = await self._sink.write(batch.records)
        except asyncio.CancelledError:
            self._settle(batch, WriteOutcome.failure(len(batch), "write cancelled"), None)
            raise
        except Exception as exc:
            outcome = WriteOutcome.failure(len(batch), f"{type(exc).__name__}: {exc}")
        self._settle(batch, outcome, time.perf_counter() - start)

    def _settle(
        self,
        batch: FlushBatch,
        outcome: WriteOutcome,
        latency_seconds: float | None,
    ) -> None:
        size = len(batch)
        inserted = min(outcome.inserted, size)
        outcome = WriteOutcome(attempted=size, inserted=inserted, error=outcome.error)
        with self._lock:
            self._unsettled -= 1
            self._counters["batches_flushed"] += 1
            self._counters["written"] += inserted
            if outcome.failed:
                self._counters["batches_failed"] += 1
                self._counters["dropped_failed"] += outcome.dropped
        if self._metrics is not None:
            self._metrics.record_batch(
                size=size,
                inserted=inserted,
                failed=outcome.failed,
                latency_seconds=latency_seconds,
            )
        if outcome.failed:
            diagnostics.warn(
                "transport",
                "batch partially written" if outcome.partial else "batch write failed",
                sink=getattr(self._sink, "name", type(self._sink).__name__),
                batch_size=size,
                inserted=inserted,
                sequence=batch.sequence,
                trigger=batch.trigger,
                error=outcome.error,
            )

    async def _drain_until_idle(self) -> None:
        while True:
            with self._lock:
                self._cancel_timer_locked()
                batch = self._take_locked("drain")
                if batch is None and self._unsettled == 0:
                    self._closed = True
                    return
            if batch is not None:
                self._submit(batch)
            pending = set(self._tasks)
            if pending:
                await asyncio.wait(pending)
            else:
                # A write submitted from another thread has not been spawned yet
                await asyncio.sleep(0)


__all__ = ["BatchingTransport"]
