"""
Lifecycle controller tying settings, sink and transport together.

``LogShipper`` owns exactly one sink and one batching transport. It is built
from resolved :class:`~moltlog.core.settings.Settings` and validates them at
construction, so a missing database address fails before any record is
logged.

Two ways to run it:

- Async applications ``await shipper.start()`` (or use ``async with``) on
  their own event loop and ``await shipper.shutdown()`` before exit.
- Synchronous programs call ``start_in_thread()``; the shipper then runs a
  private event loop on a daemon thread and ``close()`` drains it from the
  calling thread.

Either way shutdown drains the transport first and closes the sink second.
"""

from __future__ import annotations

import asyncio
import concurrent.futures
import logging
import threading
from collections.abc import Mapping
from typing import Any

from . import diagnostics
from ..metrics.metrics import MetricsCollector
from ..plugins.sinks import BaseSink
from ..plugins.sinks.mongodb import MongoSink, MongoSinkConfig
from .batch import DrainResult, FlushBatch, TransportStats
from .errors import ConfigurationError
from .settings import Settings
from .shutdown import install_signal_handlers, register_shipper, unregister_shipper
from .transport import BatchingTransport

_logger = logging.getLogger("moltlog.lifecycle")

# Extra time ``close()`` allows for closing the sink after the drain budget
_CLOSE_GRACE_SECONDS = 5.0


def build_mongo_sink(settings: Settings) -> MongoSink:
    """Create the MongoDB sink described by ``settings``."""
    uri = settings.require_uri()
    try:
        config = MongoSinkConfig(
            uri=uri,
            database=settings.database,
            collection=settings.collection,
            server_selection_timeout_ms=settings.server_selection_timeout_ms,
            app_name=settings.service,
        )
    except ValueError as exc:
        raise ConfigurationError(f"Invalid MongoDB sink configuration: {exc}") from exc
    return MongoSink(config)


class LogShipper:
    """Owns the sink connection and the batching transport for one service."""

    def __init__(
        self,
        settings: Settings,
        *,
        sink: BaseSink | None = None,
        metrics: MetricsCollector | None = None,
    ) -> None:
        settings.require_uri()
        self._settings = settings
        self._sink: BaseSink = sink if sink is not None else build_mongo_sink(settings)
        self._metrics = (
            metrics
            if metrics is not None
            else MetricsCollector(enabled=settings.enable_metrics)
        )
        self._transport = BatchingTransport(
            self._sink,
            service=settings.service,
            batch_size=settings.batch_size,
            flush_ms=settings.flush_ms,
            metrics=self._metrics,
        )
        self._started = False
        self._stopping: asyncio.Task[DrainResult] | None = None
        self._last_result: DrainResult | None = None
        # Thread mode
        self._thread: threading.Thread | None = None
        self._thread_loop: asyncio.AbstractEventLoop | None = None
        self._thread_closed = False

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    @property
    def settings(self) -> Settings:
        return self._settings

    @property
    def sink(self) -> BaseSink:
        return self._sink

    @property
    def transport(self) -> BatchingTransport:
        return self._transport

    @property
    def metrics(self) -> MetricsCollector:
        return self._metrics

    @property
    def started(self) -> bool:
        return self._started

    @property
    def is_thread_mode(self) -> bool:
        return self._thread is not None

    @property
    def last_result(self) -> DrainResult | None:
        return self._last_result

    def stats(self) -> TransportStats:
        return self._transport.stats()

    # ------------------------------------------------------------------
    # Data path
    # ------------------------------------------------------------------

    def append(self, record: Mapping[str, Any] | str | bytes) -> int:
        return self._transport.append(record)

    def flush(self) -> FlushBatch | None:
        return self._transport.flush()

    # ------------------------------------------------------------------
    # Async lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Connect the sink and bind the transport to the running loop."""
        if self._started:
            return
        self._started = True
        loop = asyncio.get_running_loop()
        try:
            await self._sink.start()
        except Exception as exc:
            # Writes will fail and be reported per batch; the app keeps running
            diagnostics.warn(
                "lifecycle",
                "sink start failed",
                sink=getattr(self._sink, "name", type(self._sink).__name__),
                error_type=type(exc).__name__,
                error=str(exc),
            )
        self._transport.attach(loop)
        register_shipper(self)
        if self._settings.signal_handler_enabled and self._thread is None:
            install_signal_handlers()
        _logger.debug(
            "log shipper started (service=%s, batch_size=%d, flush_ms=%d)",
            self._settings.service,
            self._transport.batch_size,
            self._transport.flush_ms,
        )

    async def shutdown(self, timeout: float | None = None) -> DrainResult:
        """Drain outstanding records, then close the sink. Idempotent."""
        if self._stopping is None:
            self._stopping = asyncio.ensure_future(self._shutdown(timeout))
        return await asyncio.shield(self._stopping)

    async def _shutdown(self, timeout: float | None) -> DrainResult:
        if not self._started and self._transport.stats().buffered:
            await self.start()
        budget = timeout if timeout is not None else self._settings.drain_timeout_seconds
        result = DrainResult()
        try:
            result = await self._transport.drain(budget)
        except Exception as exc:
            diagnostics.warn(
                "lifecycle",
                "drain failed",
                error_type=type(exc).__name__,
                error=str(exc),
            )
        finally:
            try:
                await self._sink.stop()
            except Exception as exc:
                diagnostics.warn(
                    "lifecycle",
                    "sink stop failed",
                    error_type=type(exc).__name__,
                    error=str(exc),
                )
            unregister_shipper(self)
        self._last_result = result
        _logger.debug("log shipper stopped: %s", result)
        return result

    async def __aenter__(self) -> LogShipper:
        await self.start()
        return self

    async def __aexit__(self, exc_type: Any, exc: Any, tb: Any) -> None:
        await self.shutdown()

    # ------------------------------------------------------------------
    # Thread mode
    # ------------------------------------------------------------------

    def start_in_thread(self) -> None:
        """Run the shipper on a private event loop in a daemon thread.

        Returns once the loop is running; the sink connects in the background
        and records appended meanwhile are buffered.
        """
        if self._thread is not None:
            return
        if self._started:
            raise RuntimeError("shipper already started on another event loop")
        if self._settings.signal_handler_enabled:
            # Signal handlers can only be installed from the main thread
            install_signal_handlers()
        loop = asyncio.new_event_loop()
        ready = threading.Event()

        def run() -> None:
            asyncio.set_event_loop(loop)
            loop.call_soon(ready.set)
            try:
                loop.run_forever()
            finally:
                _cancel_remaining(loop)
                loop.close()

        thread = threading.Thread(
            target=run, name=f"moltlog-{self._settings.service}", daemon=True
        )
        thread.start()
        ready.wait()
        self._thread = thread
        self._thread_loop = loop
        # Scheduled before attach so the sink opens before any write runs
        asyncio.run_coroutine_threadsafe(self.start(), loop)
        self._transport.attach(loop)

    def close(self, timeout: float | None = None) -> DrainResult:
        """Drain and stop a thread-mode shipper from a synchronous caller."""
        thread, loop = self._thread, self._thread_loop
        if thread is None or loop is None:
            raise RuntimeError("close() requires thread mode; await shutdown() instead")
        if threading.current_thread() is thread:
            raise RuntimeError("close() cannot run on the shipper's own thread")
        if self._thread_closed:
            return self._last_result or DrainResult()
        self._thread_closed = True
        budget = timeout if timeout is not None else self._settings.drain_timeout_seconds
        result = DrainResult(timed_out=True)
        try:
            future = asyncio.run_coroutine_threadsafe(self.shutdown(budget), loop)
            try:
                result = future.result(timeout=budget + _CLOSE_GRACE_SECONDS)
            except concurrent.futures.TimeoutError:
                future.cancel()
                diagnostics.warn(
                    "lifecycle",
                    "shutdown did not finish in time",
                    timeout_seconds=budget,
                )
        finally:
            if not loop.is_closed():
                loop.call_soon_threadsafe(loop.stop)
            thread.join(timeout=_CLOSE_GRACE_SECONDS)
        return result


def _cancel_remaining(loop: asyncio.AbstractEventLoop) -> None:
    pending = [task for task in asyncio.all_tasks(loop) if not task.done()]
    for task in pending:
        task.cancel()
    if pending:
        loop.run_until_complete(asyncio.gather(*pending, return_exceptions=True))
    loop.run_until_complete(loop.shutdown_asyncgens())


__all__ = ["LogShipper", "build_mongo_sink"]
