"""
Operator-visible diagnostics for the logging path.

Failures inside moltlog (a rejected batch, an unreachable database, a
destination that cannot be written) are never raised into the host
application. They are reported here instead, as one JSON line per event on
stderr, which stays readable even when the log database is the thing that
is down.

Tests swap the writer with ``set_writer_for_tests`` to capture payloads.
"""

from __future__ import annotations

import sys
import threading
import time
from typing import Any, Callable

import orjson

Writer = Callable[[dict[str, Any]], None]

# Minimum spacing between two diagnostics that share a rate-limit key
RATE_LIMIT_WINDOW_SECONDS = 5.0

_lock = threading.Lock()
_last_emitted: dict[str, float] = {}


def _stderr_writer(payload: dict[str, Any]) -> None:
    line = orjson.dumps(payload, default=str)
    stream = sys.stderr
    stream.write(line.decode("utf-8") + "\n")
    stream.flush()


_writer: Writer = _stderr_writer


def set_writer_for_tests(writer: Writer) -> None:
    """Replace the diagnostics writer (tests only)."""
    global _writer
    _writer = writer


def _reset_for_tests() -> None:
    """Restore the stderr writer and forget rate-limit state."""
    global _writer
    with _lock:
        _last_emitted.clear()
    _writer = _stderr_writer


def _allow(key: str, now: float) -> bool:
    with _lock:
        last = _last_emitted.get(key)
        if last is not None and now - last < RATE_LIMIT_WINDOW_SECONDS:
            return False
        _last_emitted[key] = now
        return True


def emit(
    level: str,
    component: str,
    message: str,
    *,
    _rate_limit_key: str | None = None,
    **fields: Any,
) -> bool:
    """Write one diagnostic payload. Returns True when it was emitted.

    With ``_rate_limit_key``, repeated diagnostics for the same key inside
    ``RATE_LIMIT_WINDOW_SECONDS`` are suppressed. Batch write failures do not
    pass a key: each failed batch must produce exactly one line.
    """
    now = time.time()
    if _rate_limit_key is not None and not _allow(_rate_limit_key, now):
        return False
    payload: dict[str, Any] = {
        "ts": now,
        "level": level,
        "component": component,
        "message": message,
    }
    payload.update(fields)
    try:
        _writer(payload)
    except Exception:
        # A broken stderr must not take the logging path down with it
        return False
    return True


def warn(
    component: str,
    message: str,
    *,
    _rate_limit_key: str | None = None,
    **fields: Any,
) -> bool:
    return emit("WARN", component, message, _rate_limit_key=_rate_limit_key, **fields)


def error(
    component: str,
    message: str,
    *,
    _rate_limit_key: str | None = None,
    **fields: Any,
) -> bool:
    return emit("ERROR", component, message, _rate_limit_key=_rate_limit_key, **fields)


__all__ = [
    "RATE_LIMIT_WINDOW_SECONDS",
    "Writer",
    "emit",
    "error",
    "set_writer_for_tests",
    "warn",
]
