from __future__ import annotations

import orjson
import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from moltlog.core.levels import LEVEL_VALUES, normalize_level
from moltlog.core.mapper import map_chunk, to_document
from moltlog.core.settings import resolve_positive_int

pytestmark = pytest.mark.property

json_scalars = st.one_of(
    st.none(),
    st.booleans(),
    st.integers(min_value=-(2**53), max_value=2**53),
    st.text(max_size=20),
)
json_key = st.text(
    alphabet=st.characters(min_codepoint=97, max_codepoint=122), min_size=1, max_size=8
)
records = st.dictionaries(json_key, json_scalars, max_size=8)


@given(record=records, service=st.text(min_size=1, max_size=10))
@settings(max_examples=200)
def test_every_object_maps_to_a_complete_document(record: dict, service: str) -> None:
    doc = to_document(record, service)

    assert doc["level"] in LEVEL_VALUES
    assert isinstance(doc["message"], str)
    assert doc["service"] == service
    assert doc["timestamp"].tzinfo is not None
    for key in ("reqId", "userId", "endpoint"):
        if key in doc:
            assert isinstance(doc[key], str)


@given(record=records)
@settings(max_examples=200)
def test_unconsumed_fields_survive_in_meta(record: dict) -> None:
    doc = to_document(record, "svc")
    consumed = {
        "level", "msg", "time", "reqId", "userId", "endpoint", "request", "response"
    }
    if "msg" not in record or record["msg"] is None:
        if isinstance(record.get("message"), str):
            consumed.add("message")
    expected = {k: v for k, v in record.items() if k not in consumed}

    assert doc.get("meta", {}) == expected


@given(
    good=st.lists(records, min_size=0, max_size=10),
    bad=st.lists(st.sampled_from(["{", "nope", "[]", "1"]), max_size=5),
)
@settings(max_examples=100)
def test_chunk_mapping_counts_every_line(good: list[dict], bad: list[str]) -> None:
    lines = [orjson.dumps(r).decode() for r in good] + bad
    docs, malformed = map_chunk("\n".join(lines), "svc")

    assert len(docs) == len(good)
    assert malformed == len(bad)


@given(value=st.integers())
def test_numeric_levels_normalize_to_known_names_or_default(value: int) -> None:
    name = normalize_level(value)
    assert name in LEVEL_VALUES
    if value in LEVEL_VALUES.values():
        assert LEVEL_VALUES[name] == value


@given(value=st.one_of(st.integers(), st.text(max_size=6), st.none(), st.floats()))
def test_threshold_fallback_is_always_positive(value: object) -> None:
    assert resolve_positive_int(value, 50) > 0
