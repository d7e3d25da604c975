"""Process-exit handling for log shippers.

This module provides:
- Atexit handler that drains shippers still running their own loop thread
- Optional SIGTERM/SIGINT handlers that drain before re-raising the signal,
  including shippers running on the application's event loop
- WeakSet-based shipper registration so forgotten shippers can be collected

Shippers started on the application's event loop cannot be drained from an
atexit hook (that loop has already stopped). For those the atexit handler only
reports how many records were left behind; a signal handler schedules their
shutdown on the loop instead.

The handlers are best-effort: they never raise and never wait longer than
the configured drain timeout per shipper.
"""

from __future__ import annotations

import asyncio
import atexit
import concurrent.futures
import os
import signal
import threading
import weakref
from typing import TYPE_CHECKING, Any

from . import diagnostics

if TYPE_CHECKING:
    from types import FrameType

    from .lifecycle import LogShipper


# Module-level state
_shutdown_in_progress: bool = False
_registered_shippers: weakref.WeakSet[Any] = weakref.WeakSet()
_signal_handlers_installed: bool = False
_original_handlers: dict[int, Any] = {}

# Extra time a signal waits for loop-bound shutdowns beyond their drain budget
_SIGNAL_GRACE_SECONDS = 5.0


def register_shipper(shipper: LogShipper) -> None:
    """Register a started shipper for drain at exit."""
    _registered_shippers.add(shipper)


def unregister_shipper(shipper: LogShipper) -> None:
    """Forget a shipper; called after an explicit shutdown."""
    _registered_shippers.discard(shipper)


def registered_shippers() -> list[Any]:
    # Snapshot: WeakSet iteration breaks if GC runs mid-loop
    return list(_registered_shippers)


def _drain_single_shipper(shipper: Any) -> None:
    timeout = shipper.settings.drain_timeout_seconds
    if not shipper.settings.atexit_drain_enabled:
        return
    try:
        if shipper.is_thread_mode:
            shipper.close(timeout=timeout)
            return
        stats = shipper.transport.stats()
        if stats.buffered or stats.in_flight:
            diagnostics.warn(
                "shutdown",
                "process exiting with undrained log records",
                service=shipper.settings.service,
                buffered=stats.buffered,
                in_flight=stats.in_flight,
            )
    except Exception as exc:
        diagnostics.error(
            "shutdown",
            "drain at exit failed",
            error_type=type(exc).__name__,
            error=str(exc),
        )


def _schedule_loop_shutdown(shipper: Any) -> concurrent.futures.Future[Any] | None:
    """Start ``shipper.shutdown()`` on the shipper's own running loop.

    Returns None for thread-mode shippers, disabled drains and shippers whose
    loop is not running.
    """
    if shipper.is_thread_mode or not shipper.settings.atexit_drain_enabled:
        return None
    loop = shipper.transport.loop
    if loop is None or loop.is_closed() or not loop.is_running():
        return None
    return asyncio.run_coroutine_threadsafe(
        shipper.shutdown(shipper.settings.drain_timeout_seconds), loop
    )


def _atexit_handler() -> None:
    """Best-effort drain of every registered shipper. Never raises."""
    global _shutdown_in_progress

    if _shutdown_in_progress:
        return
    _shutdown_in_progress = True

    for shipper in registered_shippers():
        _drain_single_shipper(shipper)


def _raise_signal(signum: int) -> None:
    try:
        signal.raise_signal(signum)
    except (OSError, ValueError):  # pragma: no cover - rare signal error
        os._exit(128 + signum)


def _reraise_when_done(
    signum: int, pending: list[concurrent.futures.Future[Any]], timeout: float
) -> None:
    concurrent.futures.wait(pending, timeout=timeout)
    _raise_signal(signum)


def _signal_handler(signum: int, _frame: FrameType | None) -> None:
    """Drain shippers, then re-raise the signal with its previous handler.

    Thread-mode shippers are drained right here. Shippers bound to an
    application loop get ``shutdown()`` scheduled on that loop, and the signal
    is re-raised from a helper thread once those finish (or after their drain
    budget plus a grace period).
    """
    global _shutdown_in_progress

    previous = _original_handlers.get(signum, signal.SIG_DFL)
    signal.signal(signum, previous)
    if _shutdown_in_progress:
        _raise_signal(signum)
        return
    _shutdown_in_progress = True

    pending: list[concurrent.futures.Future[Any]] = []
    budget = 0.0
    for shipper in registered_shippers():
        try:
            future = _schedule_loop_shutdown(shipper)
        except Exception as exc:
            diagnostics.error(
                "shutdown",
                "drain at exit failed",
                error_type=type(exc).__name__,
                error=str(exc),
            )
            continue
        if future is None:
            _drain_single_shipper(shipper)
        else:
            pending.append(future)
            budget = max(budget, shipper.settings.drain_timeout_seconds)

    if not pending:
        _raise_signal(signum)
        return
    threading.Thread(
        target=_reraise_when_done,
        args=(signum, pending, budget + _SIGNAL_GRACE_SECONDS),
        name="moltlog-signal",
        daemon=True,
    ).start()


def install_signal_handlers() -> bool:
    """Install SIGTERM/SIGINT handlers once. Returns True if installed.

    Must be called from the main thread; elsewhere nothing is installed, a
    diagnostic is emitted and False is returned.
    """
    global _signal_handlers_installed

    if _signal_handlers_installed:
        return True
    signums = [signal.SIGINT]
    # SIGTERM is not available on Windows
    if hasattr(signal, "SIGTERM"):
        signums.append(signal.SIGTERM)
    try:
        for signum in signums:
            _original_handlers[signum] = signal.signal(signum, _signal_handler)
    except ValueError as exc:
        diagnostics.warn(
            "shutdown",
            "signal handlers not installed",
            thread=threading.current_thread().name,
            error=str(exc),
        )
        return False
    _signal_handlers_installed = True
    return True


def _reset_for_tests() -> None:
    global _shutdown_in_progress, _signal_handlers_installed
    _shutdown_in_progress = False
    _registered_shippers.clear()
    for signum, handler in _original_handlers.items():
        try:
            signal.signal(signum, handler)
        except ValueError:  # pragma: no cover - not main thread
            pass
    _original_handlers.clear()
    _signal_handlers_installed = False


# Register atexit handler on module import
atexit.register(_atexit_handler)


__all__ = [
    "install_signal_handlers",
    "register_shipper",
    "registered_shippers",
    "unregister_shipper",
]
