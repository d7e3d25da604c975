"""
Logger facade: level methods that build JSON records and hand them to a
destination.

Records use the numeric levels of :mod:`moltlog.core.levels` and carry an
epoch-millisecond ``time``, the logger's bindings, the call's fields and the
message under ``msg``. The same record shape is accepted by the batching
transport, the stdout writer and the JSON file writer.

Logging never raises into the caller. A destination that fails is reported
through :mod:`moltlog.core.diagnostics` and the call returns normally.
"""

from __future__ import annotations

import asyncio
import sys
import time
import traceback
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

from . import diagnostics
from .destinations import Destination
from .levels import LEVEL_VALUES, level_value, normalize_level, parse_threshold

if TYPE_CHECKING:
    from .batch import DrainResult
    from .lifecycle import LogShipper


def serialize_exception(exc: BaseException) -> dict[str, Any]:
    """Structured ``err`` field for an exception."""
    return {
        "type": type(exc).__name__,
        "message": str(exc),
        "stack": "".join(
            traceback.format_exception(type(exc), exc, exc.__traceback__)
        ).rstrip(),
    }


class Logger:
    """Structured logger bound to one destination."""

    def __init__(
        self,
        destination: Destination,
        *,
        level: object = "info",
        bindings: Mapping[str, Any] | None = None,
        shipper: LogShipper | None = None,
        owns_destination: bool = True,
    ) -> None:
        self._destination = destination
        self._level = parse_threshold(level)
        self._threshold = level_value(self._level)
        self._bindings: dict[str, Any] = dict(bindings or {})
        self._shipper = shipper
        self._owns = owns_destination
        self._closed = False

    @property
    def level(self) -> str:
        return self._level

    @property
    def bindings(self) -> dict[str, Any]:
        return dict(self._bindings)

    @property
    def destination(self) -> Destination:
        return self._destination

    @property
    def shipper(self) -> LogShipper | None:
        return self._shipper

    def is_level_enabled(self, level: object) -> bool:
        """Whether ``level`` would be emitted; unknown levels never are."""
        name = normalize_level(level, default="")
        return bool(name) and LEVEL_VALUES[name] >= self._threshold

    def child(self, **bindings: Any) -> Logger:
        """Logger sharing this destination with extra bound fields.

        Closing a child is a no-op; the parent owns the destination.
        """
        merged = {**self._bindings, **bindings}
        return Logger(
            self._destination,
            level=self._level,
            bindings=merged,
            shipper=self._shipper,
            owns_destination=False,
        )

    # ------------------------------------------------------------------
    # Level methods
    # ------------------------------------------------------------------

    def trace(self, message: str = "", /, **fields: Any) -> None:
        self._log("trace", message, fields)

    def debug(self, message: str = "", /, **fields: Any) -> None:
        self._log("debug", message, fields)

    def info(self, message: str = "", /, **fields: Any) -> None:
        self._log("info", message, fields)

    def warn(self, message: str = "", /, **fields: Any) -> None:
        self._log("warn", message, fields)

    def error(self, message: str = "", /, **fields: Any) -> None:
        self._log("error", message, fields)

    def fatal(self, message: str = "", /, **fields: Any) -> None:
        self._log("fatal", message, fields)

    # Aliases
    log = info
    verbose = debug
    warning = warn
    critical = fatal

    def exception(self, message: str = "", /, **fields: Any) -> None:
        """Log at error level with the exception currently being handled."""
        exc = fields.pop("exc", None)
        if exc is None:
            exc = sys.exc_info()[1]
        if exc is not None:
            fields["exc"] = exc
        self._log("error", message, fields)

    def _log(self, level: str, message: Any, fields: dict[str, Any]) -> None:
        if self._closed or LEVEL_VALUES[level] < self._threshold:
            return
        record = self._build(level, message, fields)
        try:
            self._destination.append(record)
        except Exception as exc:
            diagnostics.warn(
                "logger",
                "destination append failed",
                destination=type(self._destination).__name__,
                error_type=type(exc).__name__,
                error=str(exc),
                _rate_limit_key="logger-append",
            )

    def _build(self, level: str, message: Any, fields: dict[str, Any]) -> dict[str, Any]:
        record: dict[str, Any] = {
            "level": LEVEL_VALUES[level],
            "time": int(time.time() * 1000),
        }
        record.update(self._bindings)
        for key, value in fields.items():
            if key in ("exc", "err") and isinstance(value, BaseException):
                record["err"] = serialize_exception(value)
            else:
                record[key] = value
        record["msg"] = message if isinstance(message, str) else str(message)
        return record

    # ------------------------------------------------------------------
    # Flush and close
    # ------------------------------------------------------------------

    def flush(self) -> None:
        """Submit buffered records for writing without waiting."""
        if self._shipper is not None:
            self._shipper.flush()

    def close(self, timeout: float | None = None) -> DrainResult | None:
        """Drain and close from synchronous code.

        Only valid when the shipper runs in thread mode (or there is none);
        async applications use :meth:`aclose`.
        """
        if not self._owns or self._closed:
            return None
        result = None
        if self._shipper is not None:
            if not self._shipper.is_thread_mode:
                raise RuntimeError(
                    "logger ships on the application's event loop; use 'await aclose()'"
                )
            result = self._shipper.close(timeout)
        self._closed = True
        self._close_destination()
        return result

    async def aclose(self, timeout: float | None = None) -> DrainResult | None:
        """Drain and close from async code, in either shipper mode."""
        if not self._owns or self._closed:
            return None
        result = None
        if self._shipper is not None:
            if self._shipper.is_thread_mode:
                result = await asyncio.to_thread(self._shipper.close, timeout)
            else:
                result = await self._shipper.shutdown(timeout)
        self._closed = True
        self._close_destination()
        return result

    def _close_destination(self) -> None:
        close = getattr(self._destination, "close", None)
        if callable(close):
            try:
                close()
            except Exception as exc:
                diagnostics.warn(
                    "logger",
                    "destination close failed",
                    error_type=type(exc).__name__,
                    error=str(exc),
                )


__all__ = ["Logger", "serialize_exception"]
