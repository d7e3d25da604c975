from __future__ import annotations

from datetime import datetime, timezone

import pytest

from moltlog.core.levels import level_value, normalize_level, parse_threshold
from moltlog.core.serialization import decode_json, encode_line, serialize_record


class _Opaque:
    def __str__(self) -> str:
        return "opaque!"


class TestSerialization:
    def test_mapping_becomes_one_line(self) -> None:
        assert encode_line({"a": 1}) == b'{"a":1}\n'

    def test_preencoded_text_newline_is_normalized(self) -> None:
        assert encode_line('{"a":1}\r\n') == b'{"a":1}\n'
        assert encode_line(b'{"a":1}') == b'{"a":1}\n'

    def test_unencodable_values_fall_back_to_str(self) -> None:
        assert decode_json(serialize_record({"v": _Opaque()})) == {"v": "opaque!"}

    def test_sets_become_lists(self) -> None:
        assert decode_json(serialize_record({"tags": {"x"}})) == {"tags": ["x"]}

    def test_non_string_keys(self) -> None:
        assert serialize_record({1: "x"}) == b'{"1":"x"}'

    def test_utc_datetimes_use_z_suffix(self) -> None:
        when = datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc)
        assert serialize_record({"t": when}) == b'{"t":"2024-01-02T03:04:05Z"}'

    def test_decode_error_is_value_error(self) -> None:
        with pytest.raises(ValueError):
            decode_json(b"{")


class TestLevels:
    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            (40, "warn"),
            (60.0, "fatal"),
            ("WARNING", "warn"),
            (" critical ", "fatal"),
            ("verbose", "debug"),
            ("50", "error"),
            ("35", "info"),
            ("²", "info"),
            (30.5, "info"),
            (True, "info"),
            (None, "info"),
            ("nope", "info"),
        ],
    )
    def test_normalize_level(self, raw: object, expected: str) -> None:
        assert normalize_level(raw) == expected

    def test_custom_default(self) -> None:
        assert normalize_level("nope", default="debug") == "debug"

    def test_silent_threshold(self) -> None:
        assert parse_threshold(" Silent ") == "silent"
        assert level_value("silent") > level_value("fatal")

    def test_threshold_aliases(self) -> None:
        assert parse_threshold("critical") == "fatal"
        assert level_value("trace") == 10
