"""
Error types for moltlog.

Only configuration problems are meant to reach application code. Everything
raised on the data path (bad records, failed sink writes) is caught inside
the transport and turned into counters and diagnostics.
"""

from __future__ import annotations


class MoltlogError(Exception):
    """Base class for all moltlog errors."""


class ConfigurationError(MoltlogError):
    """Raised when the logger cannot be set up from the given configuration.

    This is the one error that propagates to callers: a shipping logger with
    no sink address must fail at construction, not at its first write.
    """


class MalformedRecordError(MoltlogError):
    """Raised by the record mapper for input that is not a JSON object."""

    def __init__(self, message: str, *, raw: object = None) -> None:
        super().__init__(message)
        self.raw = raw


class SinkWriteError(MoltlogError):
    """Raised by sinks that prefer exceptions over failed outcomes.

    The transport converts it into a failed write like any other exception.
    """

    def __init__(
        self,
        message: str,
        *,
        sink_name: str | None = None,
    ) -> None:
        super().__init__(message)
        self.sink_name = sink_name


__all__ = [
    "ConfigurationError",
    "MalformedRecordError",
    "MoltlogError",
    "SinkWriteError",
]
