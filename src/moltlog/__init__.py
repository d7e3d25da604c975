"""
Public entrypoints for moltlog.

Provides `create_logger()` for synchronous programs, `create_async_logger()`
for asyncio applications and the `runtime()` context manager.
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Iterator

from ._version import __version__
from .core.batch import DrainResult, TransportStats
from .core.destinations import Destination, TeeDestination
from .core.errors import ConfigurationError, MoltlogError
from .core.lifecycle import LogShipper
from .core.logger import Logger
from .core.settings import Settings, load_settings
from .core.transport import BatchingTransport
from .plugins.sinks.json_file import JsonFileSink as _JsonFileSink
from .plugins.sinks.mongodb import MongoSink, MongoSinkConfig
from .plugins.sinks.stdout_json import StdoutJsonSink as _StdoutJsonSink

__all__ = [
    "BatchingTransport",
    "ConfigurationError",
    "DrainResult",
    "Logger",
    "LogShipper",
    "MoltlogError",
    "MongoSink",
    "MongoSinkConfig",
    "Settings",
    "TransportStats",
    "VERSION",
    "__version__",
    "create_async_logger",
    "create_logger",
    "load_settings",
    "runtime",
]


def _resolve_settings(
    settings: Settings | None,
    *,
    service: str | None,
    uri: str | None,
    database: str | None,
    collection: str | None,
    batch_size: Any,
    flush_ms: Any,
    level: Any,
    log_file: str | None,
    stdout: bool | None,
) -> Settings:
    overrides: dict[str, Any] = {
        "service": service,
        "mongodb_uri": uri,
        "database": database,
        "collection": collection,
        "batch_size": batch_size,
        "flush_ms": flush_ms,
        "level": level,
        "file": log_file,
        "stdout": stdout,
    }
    if settings is None:
        return load_settings(**overrides)
    return settings.with_overrides(**overrides)


def _local_destination(settings: Settings) -> Destination:
    destinations: list[Destination] = []
    if settings.stdout:
        destinations.append(_StdoutJsonSink())
    if settings.file:
        destinations.append(_JsonFileSink(settings.file))
    if not destinations:
        destinations.append(_StdoutJsonSink())
    if len(destinations) == 1:
        return destinations[0]
    return TeeDestination(destinations)


def _shipping_destination(settings: Settings, shipper: LogShipper) -> Destination:
    destinations: list[Destination] = [shipper.transport]
    if settings.stdout:
        destinations.append(_StdoutJsonSink())
    if settings.file:
        destinations.append(_JsonFileSink(settings.file))
    if len(destinations) == 1:
        return shipper.transport
    return TeeDestination(destinations)


def create_logger(
    service: str | None = None,
    *,
    settings: Settings | None = None,
    local: bool | None = None,
    log_file: str | None = None,
    stdout: bool | None = None,
    uri: str | None = None,
    database: str | None = None,
    collection: str | None = None,
    batch_size: Any = None,
    flush_ms: Any = None,
    level: Any = None,
) -> Logger:
    """Return a ready-to-use logger for synchronous code.

    In local mode (``local=True``, ``LOG_TO_MONGO=false`` or
    ``APP_ENV=development``) records go to stdout and/or a JSON-lines file.
    Otherwise a :class:`LogShipper` is started on a background thread and
    records are batched into MongoDB; a missing database address raises
    :class:`ConfigurationError` here, before anything is logged.

    Example:
        >>> logger = create_logger("billing", local=True)
        >>> logger.info("invoice sent", invoiceId="inv_42")
        >>> logger.close()
    """
    resolved = _resolve_settings(
        settings,
        service=service,
        uri=uri,
        database=database,
        collection=collection,
        batch_size=batch_size,
        flush_ms=flush_ms,
        level=level,
        log_file=log_file,
        stdout=stdout,
    )
    if resolved.is_local(local):
        return Logger(_local_destination(resolved), level=resolved.level)
    shipper = LogShipper(resolved)
    shipper.start_in_thread()
    return Logger(
        _shipping_destination(resolved, shipper),
        level=resolved.level,
        shipper=shipper,
    )


async def create_async_logger(
    service: str | None = None,
    *,
    settings: Settings | None = None,
    local: bool | None = None,
    log_file: str | None = None,
    stdout: bool | None = None,
    uri: str | None = None,
    database: str | None = None,
    collection: str | None = None,
    batch_size: Any = None,
    flush_ms: Any = None,
    level: Any = None,
) -> Logger:
    """Like :func:`create_logger`, shipping on the running event loop.

    Close the returned logger with ``await logger.aclose()``.
    """
    resolved = _resolve_settings(
        settings,
        service=service,
        uri=uri,
        database=database,
        collection=collection,
        batch_size=batch_size,
        flush_ms=flush_ms,
        level=level,
        log_file=log_file,
        stdout=stdout,
    )
    if resolved.is_local(local):
        return Logger(_local_destination(resolved), level=resolved.level)
    shipper = LogShipper(resolved)
    await shipper.start()
    return Logger(
        _shipping_destination(resolved, shipper),
        level=resolved.level,
        shipper=shipper,
    )


@contextmanager
def runtime(service: str | None = None, **options: Any) -> Iterator[Logger]:
    """Context manager that creates a logger and drains it on exit."""
    logger = create_logger(service, **options)
    try:
        yield logger
    finally:
        logger.close()


# Version info for compatibility
VERSION = __version__
