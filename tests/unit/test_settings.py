"""
Unit tests for Settings and threshold fallbacks.
"""

from __future__ import annotations

import pytest

from moltlog.core.errors import ConfigurationError
from moltlog.core.settings import Settings, load_settings, resolve_positive_int


class TestDefaults:
    def test_default_settings(self) -> None:
        settings = load_settings()

        assert settings.mongodb_uri is None
        assert settings.database is None
        assert settings.collection == "logs"
        assert settings.service == "app"
        assert settings.batch_size == 50
        assert settings.flush_ms == 2000
        assert settings.level == "info"
        assert settings.stdout is True
        assert settings.signal_handler_enabled is False

    def test_settings_are_frozen(self) -> None:
        settings = load_settings()
        with pytest.raises(ValueError):
            settings.service = "other"  # type: ignore[misc]


class TestEnvironment:
    def test_prefixed_env_vars_apply(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("LOG_MONGODB_URI", "mongodb://db:27017/app")
        monkeypatch.setenv("LOG_COLLECTION", "events")
        monkeypatch.setenv("LOG_SERVICE", "users")
        monkeypatch.setenv("LOG_BATCH_SIZE", "10")
        monkeypatch.setenv("LOG_FLUSH_MS", "500")
        monkeypatch.setenv("LOG_LEVEL", "WARNING")

        settings = Settings()

        assert settings.mongodb_uri == "mongodb://db:27017/app"
        assert settings.collection == "events"
        assert settings.service == "users"
        assert settings.batch_size == 10
        assert settings.flush_ms == 500
        assert settings.level == "warn"

    def test_unprefixed_uri_is_a_fallback(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("MONGODB_URI", "mongodb://fallback")
        assert Settings().mongodb_uri == "mongodb://fallback"

        monkeypatch.setenv("LOG_MONGODB_URI", "mongodb://primary")
        assert Settings().mongodb_uri == "mongodb://primary"

    @pytest.mark.parametrize("raw", ["0", "-5", "abc", "", "1.5"])
    def test_bad_thresholds_fall_back(
        self, monkeypatch: pytest.MonkeyPatch, raw: str
    ) -> None:
        monkeypatch.setenv("LOG_BATCH_SIZE", raw)
        monkeypatch.setenv("LOG_FLUSH_MS", raw)

        settings = Settings()

        assert settings.batch_size == 50
        assert settings.flush_ms == 2000

    def test_blank_uri_counts_as_missing(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("LOG_MONGODB_URI", "   ")

        settings = Settings()

        assert settings.mongodb_uri is None
        with pytest.raises(ConfigurationError, match="LOG_MONGODB_URI"):
            settings.require_uri()


class TestLocalMode:
    def test_explicit_flag_wins(self) -> None:
        settings = load_settings(to_mongo=False)
        assert settings.is_local(False) is False
        assert settings.is_local(True) is True

    def test_to_mongo_false_selects_local(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("LOG_TO_MONGO", "false")
        assert Settings().is_local() is True

    def test_development_env_selects_local(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("APP_ENV", "Development")
        assert Settings().is_local() is True

    def test_shipping_is_the_default(self) -> None:
        assert load_settings().is_local() is False


class TestOverrides:
    def test_load_settings_overrides_env(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("LOG_SERVICE", "from-env")

        settings = load_settings(service="explicit", mongodb_uri="mongodb://x")

        assert settings.service == "explicit"
        assert settings.mongodb_uri == "mongodb://x"

    def test_none_overrides_are_ignored(self) -> None:
        settings = load_settings(service=None, batch_size=None)
        assert settings.service == "app"
        assert settings.batch_size == 50

    def test_with_overrides_returns_new_settings(self) -> None:
        base = load_settings(mongodb_uri="mongodb://x", service="a")

        updated = base.with_overrides(service="b", batch_size="7")

        assert base.service == "a"
        assert updated.service == "b"
        assert updated.batch_size == 7
        assert updated.mongodb_uri == "mongodb://x"

    def test_invalid_explicit_value_is_a_configuration_error(self) -> None:
        with pytest.raises(ConfigurationError):
            load_settings(service="   ")


class TestResolvePositiveInt:
    @pytest.mark.parametrize(
        ("value", "expected"),
        [
            (5, 5),
            ("12", 12),
            (" 3 ", 3),
            (4.0, 4),
            (0, 9),
            (-1, 9),
            (2.5, 9),
            ("x", 9),
            (None, 9),
            (True, 9),
            ([1], 9),
        ],
    )
    def test_resolution(self, value: object, expected: int) -> None:
        assert resolve_positive_int(value, 9) == expected
