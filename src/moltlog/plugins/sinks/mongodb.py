from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pymongo import AsyncMongoClient
from pymongo.errors import BulkWriteError, ConfigurationError

from ...core import diagnostics
from ...core.batch import WriteOutcome

DEFAULT_DATABASE = "logs"

_URI_SCHEMES = ("mongodb://", "mongodb+srv://")


class MongoSinkConfig(BaseModel):
    """Configuration for the MongoDB sink."""

    model_config = ConfigDict(frozen=True, extra="forbid", validate_default=True)

    uri: str
    database: str | None = Field(
        default=None,
        description=(
            "Target database. When unset, the database named in the URI is "
            "used, then 'logs'."
        ),
    )
    collection: str = Field(default="logs", min_length=1)
    server_selection_timeout_ms: int = Field(default=5000, ge=1)
    connect_timeout_ms: int = Field(default=5000, ge=1)
    ping_on_start: bool = True
    app_name: str | None = None

    @field_validator("uri")
    @classmethod
    def _check_scheme(cls, value: str) -> str:
        value = value.strip()
        if not value.startswith(_URI_SCHEMES):
            raise ValueError("uri must start with mongodb:// or mongodb+srv://")
        return value


class MongoSink:
    """MongoDB sink: one client, one collection, unordered bulk inserts."""

    name = "mongodb"

    _logger = logging.getLogger("moltlog.sinks.mongodb")

    def __init__(self, config: MongoSinkConfig | None = None, **kwargs: Any) -> None:
        self._config = config if config is not None else MongoSinkConfig(**kwargs)
        # Client type is AsyncMongoClient; Any keeps test doubles assignable
        self._client: Any = None
        self._collection: Any = None

    @property
    def config(self) -> MongoSinkConfig:
        return self._config

    @property
    def started(self) -> bool:
        return self._collection is not None

    async def start(self) -> None:
        if self._client is not None:
            return
        cfg = self._config
        client_kwargs: dict[str, Any] = {
            "serverSelectionTimeoutMS": cfg.server_selection_timeout_ms,
            "connectTimeoutMS": cfg.connect_timeout_ms,
        }
        if cfg.app_name:
            client_kwargs["appname"] = cfg.app_name
        self._client = AsyncMongoClient(cfg.uri, **client_kwargs)
        self._collection = self._resolve_database()[cfg.collection]
        self._logger.debug(
            "mongodb sink ready (namespace=%s)",
            getattr(self._collection, "full_name", cfg.collection),
        )
        if cfg.ping_on_start:
            try:
                await self._client.admin.command("ping")
            except Exception as exc:
                # Writes retry server selection on their own; report and go on
                diagnostics.warn(
                    "mongodb-sink",
                    "initial ping failed",
                    error_type=type(exc).__name__,
                    error=str(exc),
                )

    def _resolve_database(self) -> Any:
        if self._config.database:
            return self._client[self._config.database]
        try:
            return self._client.get_default_database()
        except ConfigurationError:
            return self._client[DEFAULT_DATABASE]

    async def stop(self) -> None:
        client, self._client = self._client, None
        self._collection = None
        if client is None:
            return
        try:
            await client.close()
        except Exception as exc:
            diagnostics.warn(
                "mongodb-sink",
                "client close failed",
                error_type=type(exc).__name__,
                error=str(exc),
            )

    async def write(self, documents: Sequence[dict[str, Any]]) -> WriteOutcome:
        count = len(documents)
        if count == 0:
            return WriteOutcome.success(0)
        collection = self._collection
        if collection is None:
            return WriteOutcome.failure(count, "sink not started")
        # The driver stamps ``_id`` onto the documents it is given
        payload = [dict(doc) for doc in documents]
        try:
            result = await collection.insert_many(payload, ordered=False)
        except BulkWriteError as exc:
            details = exc.details or {}
            inserted = int(details.get("nInserted", 0))
            errors = details.get("writeErrors") or []
            first = errors[0].get("errmsg") if errors else str(exc)
            return WriteOutcome.failure(
                count,
                f"{len(errors)} document(s) rejected: {first}",
                inserted=inserted,
            )
        except Exception as exc:  # noqa: BLE001 - network, auth, timeouts
            return WriteOutcome.failure(count, f"{type(exc).__name__}: {exc}")
        return WriteOutcome.success(len(result.inserted_ids))

    async def health_check(self) -> bool:
        if self._client is None:
            return False
        try:
            await self._client.admin.command("ping")
            return True
        except Exception:
            return False


__all__ = ["DEFAULT_DATABASE", "MongoSink", "MongoSinkConfig"]
