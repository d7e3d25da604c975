"""
Main CLI entry point for moltlog.

``moltlog-ship`` reads JSON log lines from stdin (for example the output of
another process) and ships them to MongoDB through the batching transport:

    my-service | moltlog-ship --service my-service

The shipper drains on end of input, so piping a finite file is safe.
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from typing import IO, Any, Sequence

from ..core import diagnostics
from ..core.errors import ConfigurationError
from ..core.lifecycle import LogShipper
from ..core.settings import load_settings
from ..plugins.sinks import BaseSink


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="moltlog-ship",
        description="Ship JSON log lines from stdin to MongoDB.",
    )
    parser.add_argument("--service", help="service name stamped on each document")
    parser.add_argument("--uri", help="MongoDB URI (default: LOG_MONGODB_URI)")
    parser.add_argument("--database", help="target database")
    parser.add_argument("--collection", help="target collection")
    parser.add_argument("--batch-size", dest="batch_size", help="records per bulk write")
    parser.add_argument("--flush-ms", dest="flush_ms", help="max buffering delay in ms")
    return parser


async def ship(shipper: LogShipper, stream: IO[Any]) -> int:
    """Append every line of ``stream`` to the shipper; returns lines read."""
    lines = 0
    while True:
        line = await asyncio.to_thread(stream.readline)
        if not line:
            return lines
        lines += 1
        shipper.append(line)


async def main(
    argv: Sequence[str] | None = None,
    *,
    stdin: IO[Any] | None = None,
    sink: BaseSink | None = None,
) -> int:
    """Main CLI entry point."""
    args = build_parser().parse_args(argv)
    try:
        settings = load_settings(
            service=args.service,
            mongodb_uri=args.uri,
            database=args.database,
            collection=args.collection,
            batch_size=args.batch_size,
            flush_ms=args.flush_ms,
        )
        shipper = LogShipper(settings, sink=sink)
    except ConfigurationError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2

    stream = stdin if stdin is not None else sys.stdin.buffer
    async with shipper:
        lines = await ship(shipper, stream)

    stats = shipper.stats()
    if stats.dropped:
        diagnostics.warn(
            "ship",
            "finished with dropped records",
            lines=lines,
            written=stats.written,
            dropped_malformed=stats.dropped_malformed,
            dropped_failed=stats.dropped_failed,
            dropped_closed=stats.dropped_closed,
        )
    return 0


def cli_main() -> int:
    """CLI main function for non-async entry."""
    return asyncio.run(main())


if __name__ == "__main__":
    sys.exit(cli_main())
