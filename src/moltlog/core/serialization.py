"""
JSON helpers for log records, backed by orjson.

Records are encoded once per destination write. Values orjson cannot encode
natively (custom objects, exceptions) fall back to ``str()`` so a single
odd field never prevents a line from being written.
"""

from __future__ import annotations

from typing import Any, Mapping

import orjson

_OPTIONS = orjson.OPT_NON_STR_KEYS | orjson.OPT_UTC_Z


def _default(obj: Any) -> Any:
    if hasattr(obj, "model_dump"):
        return obj.model_dump(exclude_none=True)
    if isinstance(obj, (set, frozenset)):
        return list(obj)
    return str(obj)


def serialize_record(record: Mapping[str, Any]) -> bytes:
    """Encode one record as compact JSON bytes."""
    return orjson.dumps(dict(record), default=_default, option=_OPTIONS)


def to_json_safe(record: Mapping[str, Any]) -> dict[str, Any]:
    """Detached copy of a record holding only JSON types.

    Values orjson cannot encode natively go through the same ``str()``
    fallback as written lines. Raises ``orjson.JSONEncodeError`` (a
    ``TypeError``) for records orjson rejects outright, such as integers
    wider than 64 bits or nesting deeper than 254 levels.
    """
    return orjson.loads(serialize_record(record))


def encode_line(record: Mapping[str, Any] | str | bytes) -> bytes:
    """Encode a record as one newline-terminated JSON line.

    Pre-encoded text is passed through with its trailing newline normalized.
    """
    if isinstance(record, str):
        data = record.encode("utf-8")
    elif isinstance(record, (bytes, bytearray)):
        data = bytes(record)
    else:
        data = serialize_record(record)
    return data.rstrip(b"\r\n") + b"\n"


def decode_json(data: str | bytes) -> Any:
    """Decode JSON text; raises ``orjson.JSONDecodeError`` (a ``ValueError``)."""
    return orjson.loads(data)


__all__ = ["decode_json", "encode_line", "serialize_record", "to_json_safe"]
