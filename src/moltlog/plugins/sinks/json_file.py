from __future__ import annotations

import threading
from pathlib import Path
from typing import IO, Any, Mapping

from ...core import diagnostics
from ...core.serialization import encode_line


class JsonFileSink:
    """Append-only JSON-lines file destination for local development.

    The parent directory is created on first use. The file is opened lazily
    in append mode and kept open until ``close()``.
    """

    name = "json-file"

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)
        self._lock = threading.Lock()
        self._fh: IO[bytes] | None = None
        self._closed = False

    @property
    def path(self) -> Path:
        return self._path

    def _open(self) -> IO[bytes]:
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            diagnostics.warn(
                "json-file-sink",
                "could not create log directory",
                path=str(self._path.parent),
                error=str(exc),
                _rate_limit_key="json-file-mkdir",
            )
        return self._path.open("ab")

    def append(self, record: Mapping[str, Any] | str | bytes) -> None:
        line = encode_line(record)
        with self._lock:
            if self._closed:
                return
            if self._fh is None:
                self._fh = self._open()
            self._fh.write(line)
            self._fh.flush()

    def close(self) -> None:
        with self._lock:
            self._closed = True
            fh, self._fh = self._fh, None
        if fh is not None:
            fh.close()


__all__ = ["JsonFileSink"]
