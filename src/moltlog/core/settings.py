"""
Configuration for moltlog using Pydantic v2 Settings.

All environment lookups happen here, once, when :class:`Settings` is built.
The resulting frozen object is passed explicitly to the logger factory and
the lifecycle controller; nothing on the write path reads the environment.

Environment variables (all optional except the sink address in shipping
mode):

- ``LOG_MONGODB_URI`` (fallback ``MONGODB_URI``): sink address
- ``LOG_DATABASE`` / ``LOG_COLLECTION``: target database and collection
- ``LOG_SERVICE``: service name stamped on every document
- ``LOG_BATCH_SIZE`` / ``LOG_FLUSH_MS``: flush thresholds
- ``LOG_LEVEL``: minimum level emitted by the logger facade
- ``LOG_TO_MONGO=false`` or ``APP_ENV=development``: local mode
- ``LOG_FILE`` / ``LOG_STDOUT``: local destinations
"""

from __future__ import annotations

from typing import Any

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .errors import ConfigurationError
from .levels import DEFAULT_LEVEL, parse_threshold

DEFAULT_BATCH_SIZE = 50
DEFAULT_FLUSH_MS = 2000
DEFAULT_COLLECTION = "logs"
DEFAULT_SERVICE = "app"


def resolve_positive_int(value: object, default: int) -> int:
    """Coerce a threshold override to a positive int, else return ``default``.

    Accepts ints, integral floats and numeric strings. Anything non-positive
    or non-numeric falls back to the default instead of raising.
    """
    if value is None or isinstance(value, bool):
        return default
    candidate: int
    if isinstance(value, int):
        candidate = value
    elif isinstance(value, float):
        if not value.is_integer():
            return default
        candidate = int(value)
    elif isinstance(value, (str, bytes)):
        try:
            candidate = int(value.strip())
        except ValueError:
            return default
    else:
        return default
    return candidate if candidate > 0 else default


class Settings(BaseSettings):
    """Resolved logger configuration."""

    mongodb_uri: str | None = Field(
        default=None,
        validation_alias=AliasChoices("LOG_MONGODB_URI", "MONGODB_URI"),
        description="Sink address; required unless running in local mode",
    )
    database: str | None = Field(
        default=None,
        description="Target database; defaults to the database named in the URI",
    )
    collection: str = Field(
        default=DEFAULT_COLLECTION, description="Target collection for log documents"
    )
    service: str = Field(
        default=DEFAULT_SERVICE, description="Service name stamped on each document"
    )
    batch_size: int = Field(
        default=DEFAULT_BATCH_SIZE,
        description="Flush once this many records are buffered",
    )
    flush_ms: int = Field(
        default=DEFAULT_FLUSH_MS,
        description="Flush a partial buffer after this many milliseconds",
    )
    level: str = Field(default=DEFAULT_LEVEL, description="Minimum level to emit")
    to_mongo: bool = Field(
        default=True, description="Set false to force local (stdout/file) mode"
    )
    app_env: str | None = Field(
        default=None,
        validation_alias=AliasChoices("APP_ENV", "LOG_APP_ENV"),
        description="Deployment environment; 'development' selects local mode",
    )
    file: str | None = Field(
        default=None, description="JSON-lines log file used in local mode"
    )
    stdout: bool = Field(default=True, description="Also write records to stdout")
    server_selection_timeout_ms: int = Field(
        default=5000,
        ge=1,
        description="Driver server selection timeout; bounds each write attempt",
    )
    drain_timeout_seconds: float = Field(
        default=10.0,
        gt=0.0,
        description="Maximum time shutdown waits for outstanding writes",
    )
    atexit_drain_enabled: bool = Field(
        default=True, description="Drain registered shippers at interpreter exit"
    )
    signal_handler_enabled: bool = Field(
        default=False, description="Drain on SIGTERM/SIGINT before re-raising"
    )
    enable_metrics: bool = Field(
        default=False, description="Export Prometheus counters for the transport"
    )

    model_config = SettingsConfigDict(
        env_prefix="LOG_",
        extra="ignore",
        case_sensitive=False,
        frozen=True,
        populate_by_name=True,
    )

    @field_validator("batch_size", mode="before")
    @classmethod
    def _fallback_batch_size(cls, value: object) -> int:
        return resolve_positive_int(value, DEFAULT_BATCH_SIZE)

    @field_validator("flush_ms", mode="before")
    @classmethod
    def _fallback_flush_ms(cls, value: object) -> int:
        return resolve_positive_int(value, DEFAULT_FLUSH_MS)

    @field_validator("level", mode="before")
    @classmethod
    def _normalize_level(cls, value: object) -> str:
        return parse_threshold(value)

    @field_validator("service", "collection")
    @classmethod
    def _non_empty(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("must not be empty")
        return value

    @field_validator("mongodb_uri", "database", "file", mode="before")
    @classmethod
    def _blank_to_none(cls, value: object) -> object:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    def is_local(self, local: bool | None = None) -> bool:
        """True when records go to stdout/file only, with no database."""
        if local is not None:
            return local
        if not self.to_mongo:
            return True
        return (self.app_env or "").strip().lower() == "development"

    def require_uri(self) -> str:
        """Return the sink address or fail fast with ``ConfigurationError``."""
        if not self.mongodb_uri:
            raise ConfigurationError(
                "MongoDB URI for logs required: set LOG_MONGODB_URI "
                "(or MONGODB_URI) in the environment"
            )
        return self.mongodb_uri

    def with_overrides(self, **overrides: Any) -> Settings:
        """Return new settings with non-None overrides applied and validated."""
        updates = {key: value for key, value in overrides.items() if value is not None}
        if not updates:
            return self
        data = self.model_dump()
        data.update(updates)
        try:
            return type(self)(**_init_kwargs(data))
        except ValueError as exc:
            raise ConfigurationError(f"Invalid logger configuration: {exc}") from exc


# Fields whose environment name differs from the prefixed field name
_ALIASED_FIELDS = {"mongodb_uri": "LOG_MONGODB_URI", "app_env": "APP_ENV"}


def _init_kwargs(values: dict[str, Any]) -> dict[str, Any]:
    return {_ALIASED_FIELDS.get(key, key): value for key, value in values.items()}


def load_settings(**overrides: Any) -> Settings:
    """Build settings from the environment plus explicit non-None overrides."""
    updates = {key: value for key, value in overrides.items() if value is not None}
    try:
        return Settings(**_init_kwargs(updates))
    except ValueError as exc:
        raise ConfigurationError(f"Invalid logger configuration: {exc}") from exc


__all__ = [
    "DEFAULT_BATCH_SIZE",
    "DEFAULT_COLLECTION",
    "DEFAULT_FLUSH_MS",
    "DEFAULT_SERVICE",
    "Settings",
    "load_settings",
    "resolve_positive_int",
]
