"""
Destinations: where the logger facade hands each record.

A destination accepts one record at a time and must not block on network
I/O. The batching transport (via :class:`~moltlog.core.lifecycle.LogShipper`),
the stdout writer and the JSON file writer all qualify.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any, Protocol, runtime_checkable

from . import diagnostics


@runtime_checkable
class Destination(Protocol):
    def append(self, record: Any) -> int | None: ...


class TeeDestination:
    """Fan one record out to several destinations.

    A failing destination is reported and skipped; the others still receive
    the record.
    """

    def __init__(self, destinations: Iterable[Destination]) -> None:
        self._destinations = tuple(destinations)

    @property
    def destinations(self) -> tuple[Destination, ...]:
        return self._destinations

    def append(self, record: Any) -> None:
        for destination in self._destinations:
            try:
                destination.append(record)
            except Exception as exc:
                diagnostics.warn(
                    "destination",
                    "append failed",
                    destination=type(destination).__name__,
                    error=str(exc),
                    _rate_limit_key=f"tee-{type(destination).__name__}",
                )

    def close(self) -> None:
        for destination in self._destinations:
            close = getattr(destination, "close", None)
            if callable(close):
                try:
                    close()
                except Exception as exc:
                    diagnostics.warn(
                        "destination",
                        "close failed",
                        destination=type(destination).__name__,
                        error=str(exc),
                    )


__all__ = ["Destination", "TeeDestination"]
