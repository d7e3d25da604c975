from __future__ import annotations

import sys
import threading
from typing import IO, Any, Mapping

from ...core.serialization import encode_line


class StdoutJsonSink:
    """Stdout destination that writes one JSON object per line.

    - Accepts raw records (mappings) or pre-encoded JSON text
    - Writes synchronously under a lock so lines from different threads never
      interleave
    - Resolves ``sys.stdout`` at write time unless a stream was given
    """

    name = "stdout-json"

    def __init__(self, stream: IO[str] | None = None) -> None:
        self._stream = stream
        self._lock = threading.Lock()

    def append(self, record: Mapping[str, Any] | str | bytes) -> None:
        line = encode_line(record).decode("utf-8", errors="replace")
        stream = self._stream or sys.stdout
        with self._lock:
            stream.write(line)
            stream.flush()

    def close(self) -> None:
        stream = self._stream or sys.stdout
        with self._lock:
            stream.flush()


__all__ = ["StdoutJsonSink"]
