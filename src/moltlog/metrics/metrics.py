"""
Transport metrics for moltlog.

Implements Prometheus-compatible counters and a flush latency histogram for
the batching transport.

Design goals:
- Callable from any thread: ``append`` runs on caller threads, writes settle
  on the event loop
- No global registration; each collector owns an isolated registry
- In-memory counters are always kept so tests and health endpoints can read
  them even when Prometheus export is disabled
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, replace
from typing import Any

from prometheus_client import CollectorRegistry, Counter, Histogram


@dataclass
class TransportMetrics:
    """Captured counters for quick assertions in tests."""

    records_accepted: int = 0
    records_written: int = 0
    records_dropped: int = 0
    batches_succeeded: int = 0
    batches_failed: int = 0


class MetricsCollector:
    """Thread-safe metrics collector for one transport."""

    def __init__(self, *, enabled: bool = False) -> None:
        self._enabled = bool(enabled)
        self._lock = threading.Lock()
        self._state = TransportMetrics()

        self._c_accepted: Any | None = None
        self._c_written: Any | None = None
        self._c_dropped: Any | None = None
        self._c_batches: Any | None = None
        self._h_flush_latency: Any | None = None
        self._registry: CollectorRegistry | None = None

        if self._enabled:
            self._registry = CollectorRegistry()
            self._c_accepted = Counter(
                "moltlog_records_accepted_total",
                "Records accepted into the transport buffer",
                registry=self._registry,
            )
            self._c_written = Counter(
                "moltlog_records_written_total",
                "Records confirmed written by the sink",
                registry=self._registry,
            )
            self._c_dropped = Counter(
                "moltlog_records_dropped_total",
                "Records dropped before reaching the sink",
                ["reason"],
                registry=self._registry,
            )
            self._c_batches = Counter(
                "moltlog_batches_total",
                "Batches handed to the sink, by outcome",
                ["outcome"],
                registry=self._registry,
            )
            self._h_flush_latency = Histogram(
                "moltlog_flush_seconds",
                "Latency of one bulk write",
                buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
                registry=self._registry,
            )

    @property
    def is_enabled(self) -> bool:
        return self._enabled

    @property
    def registry(self) -> CollectorRegistry | None:
        """Expose the isolated Prometheus registry when enabled."""
        return self._registry

    def record_accepted(self, count: int = 1) -> None:
        if count <= 0:
            return
        with self._lock:
            self._state.records_accepted += count
        if self._c_accepted is not None:
            self._c_accepted.inc(count)

    def record_dropped(self, count: int, *, reason: str) -> None:
        if count <= 0:
            return
        with self._lock:
            self._state.records_dropped += count
        if self._c_dropped is not None:
            self._c_dropped.labels(reason=reason).inc(count)

    def record_batch(
        self,
        *,
        size: int,
        inserted: int,
        failed: bool,
        latency_seconds: float | None = None,
    ) -> None:
        with self._lock:
            self._state.records_written += inserted
            if failed:
                self._state.batches_failed += 1
                self._state.records_dropped += max(0, size - inserted)
            else:
                self._state.batches_succeeded += 1
        if not self._enabled:
            return
        if self._c_written is not None and inserted:
            self._c_written.inc(inserted)
        if self._c_batches is not None:
            outcome = "failed" if failed else "ok"
            if failed and inserted:
                outcome = "partial"
            self._c_batches.labels(outcome=outcome).inc()
        if failed and self._c_dropped is not None and size > inserted:
            self._c_dropped.labels(reason="write_failed").inc(size - inserted)
        if latency_seconds is not None and self._h_flush_latency is not None:
            self._h_flush_latency.observe(latency_seconds)

    def snapshot(self) -> TransportMetrics:
        with self._lock:
            return replace(self._state)
