"""
Record mapping: raw log line or mapping -> storage document.

Producers emit JSON objects shaped like ``{"level": 30, "time": 1700000000000,
"msg": "...", "reqId": "...", ...}``. The sink stores a normalized document:

    {
        "level": "info",
        "message": "...",
        "service": "users",
        "source": "moltlog",
        "storage": "mongodb",
        "storageTags": ["mongodb"],
        "timestamp": datetime(...),
        "reqId": "...",        # optional
        "userId": "...",       # optional
        "endpoint": "...",     # optional
        "request": {...},      # optional, mappings only
        "response": {...},     # optional, mappings only
        "meta": {...},         # every other field, when there are any
    }

Mapping is pure: it never touches the buffer or the sink, and a malformed
line raises ``MalformedRecordError`` for that line only. Mapping inputs are
copied into plain JSON types first (values without a JSON form become
strings), so a document never shares objects with the caller and the driver
can always encode it.
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from datetime import datetime, timezone
from typing import Any

from .errors import MalformedRecordError
from .levels import normalize_level
from .serialization import decode_json, to_json_safe

SOURCE = "moltlog"
STORAGE = "mongodb"

# Fields lifted out of the raw record; everything else lands in ``meta``
_ID_FIELDS = ("reqId", "userId", "endpoint")
_DETAIL_FIELDS = ("request", "response")
_CONSUMED = frozenset(("level", "msg", "time", *_ID_FIELDS, *_DETAIL_FIELDS))


def _as_mapping(raw: object) -> Mapping[str, Any]:
    if isinstance(raw, Mapping):
        try:
            return to_json_safe(raw)
        except TypeError as exc:
            raise MalformedRecordError(f"unencodable record: {exc}", raw=raw) from exc
    if isinstance(raw, (str, bytes, bytearray)):
        try:
            decoded = decode_json(bytes(raw) if isinstance(raw, bytearray) else raw)
        except ValueError as exc:
            raise MalformedRecordError(f"unparseable log line: {exc}", raw=raw) from exc
        if isinstance(decoded, dict):
            return decoded
        raise MalformedRecordError(
            f"log line must be a JSON object, got {type(decoded).__name__}", raw=raw
        )
    raise MalformedRecordError(
        f"unsupported record type {type(raw).__name__}", raw=raw
    )


def parse_timestamp(value: object, now: datetime | None = None) -> datetime:
    """Timestamp from epoch milliseconds, ISO-8601 text or ``datetime``.

    Missing or unparseable values yield ``now`` (UTC).
    """
    fallback = now or datetime.now(timezone.utc)
    if value is None or isinstance(value, bool):
        return fallback
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, (int, float)):
        try:
            return datetime.fromtimestamp(value / 1000.0, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return fallback
    if isinstance(value, str):
        text = value.strip()
        try:
            return parse_timestamp(float(text), fallback)
        except ValueError:
            pass
        try:
            parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
        except ValueError:
            return fallback
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
    return fallback


def _message(record: Mapping[str, Any]) -> tuple[str, bool]:
    """Message text and whether it came from the ``message`` field."""
    msg = record.get("msg")
    if msg is not None:
        return str(msg), False
    message = record.get("message")
    if isinstance(message, str):
        return message, True
    return "", False


def to_document(
    raw: Mapping[str, Any] | str | bytes,
    service: str,
    *,
    now: datetime | None = None,
) -> dict[str, Any]:
    """Normalize one raw record into a storage document."""
    record = _as_mapping(raw)
    message, from_message_field = _message(record)
    # ``datetime`` values do not survive the JSON copy as datetimes
    time_value = raw.get("time") if isinstance(raw, Mapping) else record.get("time")

    doc: dict[str, Any] = {
        "level": normalize_level(record.get("level")),
        "message": message,
        "service": service,
        "source": SOURCE,
        "storage": STORAGE,
        "storageTags": [STORAGE],
        "timestamp": parse_timestamp(time_value, now),
    }
    for key in _ID_FIELDS:
        value = record.get(key)
        if value is not None:
            doc[key] = str(value)
    for key in _DETAIL_FIELDS:
        value = record.get(key)
        if isinstance(value, Mapping):
            doc[key] = value

    consumed = _CONSUMED | {"message"} if from_message_field else _CONSUMED
    meta = {key: value for key, value in record.items() if key not in consumed}
    if meta:
        doc["meta"] = meta
    return doc


def iter_lines(chunk: str | bytes) -> Iterator[str | bytes]:
    """Yield the non-blank lines of a text chunk."""
    lines: list[Any]
    if isinstance(chunk, (bytes, bytearray)):
        lines = bytes(chunk).split(b"\n")
    else:
        lines = chunk.split("\n")
    for line in lines:
        if line.strip():
            yield line


def map_chunk(
    chunk: Mapping[str, Any] | str | bytes,
    service: str,
    *,
    now: datetime | None = None,
) -> tuple[list[dict[str, Any]], int]:
    """Map a mapping or a multi-line chunk; returns ``(documents, malformed)``.

    Each line is mapped on its own so one bad line never loses the others.
    """
    items: list[Any]
    if isinstance(chunk, (str, bytes, bytearray)):
        items = list(iter_lines(chunk))
    else:
        items = [chunk]
    documents: list[dict[str, Any]] = []
    malformed = 0
    for item in items:
        try:
            documents.append(to_document(item, service, now=now))
        except MalformedRecordError:
            malformed += 1
    return documents, malformed


__all__ = ["iter_lines", "map_chunk", "parse_timestamp", "to_document"]
