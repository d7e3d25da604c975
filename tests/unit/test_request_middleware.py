from __future__ import annotations

from typing import Any

import pytest

pytest.importorskip("fastapi")

from fastapi import FastAPI, HTTPException
from fastapi.testclient import TestClient

from moltlog.core.logger import Logger
from moltlog.fastapi import (
    RequestLoggingMiddleware,
    generate_request_id,
    lifespan,
    sanitize_body,
)
from moltlog.testing import MemoryDestination


def _app(dest: MemoryDestination, **options: Any) -> FastAPI:
    app = FastAPI()
    app.add_middleware(RequestLoggingMiddleware, logger=Logger(dest), **options)

    @app.get("/users/{user_id}")
    async def get_user(user_id: int) -> dict[str, int]:
        return {"id": user_id}

    @app.post("/users")
    async def create_user(payload: dict[str, Any]) -> dict[str, Any]:
        return payload

    @app.get("/missing")
    async def missing() -> None:
        raise HTTPException(status_code=404, detail="nope")

    @app.get("/boom")
    async def boom() -> None:
        raise RuntimeError("kaboom")

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    return app


class TestRequestLogging:
    def test_successful_request_record(self) -> None:
        dest = MemoryDestination()
        client = TestClient(_app(dest))

        resp = client.get("/users/7", params={"verbose": "1"})

        assert resp.status_code == 200
        record = dest.records[0]
        assert record["level"] == 30
        assert record["msg"].startswith("GET /users/7 200 ")
        assert record["msg"].endswith("ms")
        assert record["endpoint"] == "GET /users/7"
        assert record["request"] == {
            "method": "GET",
            "path": "/users/7",
            "query": {"verbose": "1"},
        }
        assert record["response"]["statusCode"] == 200
        assert isinstance(record["response"]["durationMs"], int)
        assert record["reqId"].startswith("req-")
        assert resp.headers["x-request-id"] == record["reqId"]

    def test_incoming_request_id_is_reused(self) -> None:
        dest = MemoryDestination()
        client = TestClient(_app(dest))

        resp = client.get("/users/1", headers={"x-request-id": "trace-123"})

        assert dest.records[0]["reqId"] == "trace-123"
        assert resp.headers["x-request-id"] == "trace-123"

    def test_client_errors_log_at_warn(self) -> None:
        dest = MemoryDestination()
        TestClient(_app(dest)).get("/missing")

        assert dest.records[0]["level"] == 40
        assert dest.records[0]["response"]["statusCode"] == 404

    def test_unhandled_exception_logs_500_and_reraises(self) -> None:
        dest = MemoryDestination()
        client = TestClient(_app(dest))

        with pytest.raises(RuntimeError, match="kaboom"):
            client.get("/boom")

        assert dest.records[0]["level"] == 50
        assert dest.records[0]["response"]["statusCode"] == 500

    def test_body_and_headers_when_enabled(self) -> None:
        dest = MemoryDestination()
        client = TestClient(
            _app(dest, include_body=True, include_headers=True, body_max_length=10)
        )

        resp = client.post(
            "/users",
            json={"name": "a very long name"},
            headers={"Authorization": "Bearer secret", "X-Trace": "t"},
        )

        assert resp.status_code == 200
        request = dest.records[0]["request"]
        assert request["body"] == '{"name":"a...'
        assert request["headers"]["authorization"] == "[redacted]"
        assert request["headers"]["x-trace"] == "t"

    def test_body_omitted_by_default(self) -> None:
        dest = MemoryDestination()
        TestClient(_app(dest)).post("/users", json={"name": "x"})

        assert "body" not in dest.records[0]["request"]
        assert "headers" not in dest.records[0]["request"]

    def test_skip_paths(self) -> None:
        dest = MemoryDestination()
        TestClient(_app(dest, skip_paths=["/health"])).get("/health")

        assert dest.records == []

    def test_logger_from_app_state(self) -> None:
        dest = MemoryDestination()
        app = FastAPI()
        app.add_middleware(RequestLoggingMiddleware)
        app.state.moltlog_logger = Logger(dest)

        @app.get("/")
        async def root() -> dict[str, bool]:
            return {"ok": True}

        TestClient(app).get("/")

        assert dest.records[0]["endpoint"] == "GET /"

    def test_without_logger_requests_pass_through(self) -> None:
        app = FastAPI()
        app.add_middleware(RequestLoggingMiddleware)

        @app.get("/")
        async def root() -> dict[str, bool]:
            return {"ok": True}

        resp = TestClient(app).get("/")

        assert resp.status_code == 200
        assert resp.headers["x-request-id"].startswith("req-")


class TestLifespan:
    def test_lifespan_installs_and_closes_logger(self, tmp_path: Any) -> None:
        path = tmp_path / "api.log"
        app = FastAPI(
            lifespan=lifespan("api", local=True, log_file=str(path), stdout=False)
        )
        app.add_middleware(RequestLoggingMiddleware)

        @app.get("/ping")
        async def ping() -> dict[str, str]:
            return {"pong": "yes"}

        with TestClient(app) as client:
            client.get("/ping")
            logger = app.state.moltlog_logger

        assert "GET /ping 200" in path.read_text()
        logger.info("after shutdown")
        assert len(path.read_text().splitlines()) == 1


class TestSanitizeBody:
    @pytest.mark.parametrize(
        ("body", "max_length", "expected"),
        [
            (None, 5, None),
            ("plain text", 5, "plain"),
            (12345678, 5, "12345"),
            ({"a": 1}, 50, '{"a":1}'),
            ({"long": "xxxxxxxx"}, 5, '{"lon...'),
            ([1, 2], 50, "[1,2]"),
            ({"obj": object()}, 50, "[non-serializable]"),
        ],
    )
    def test_sanitize(self, body: Any, max_length: int, expected: str | None) -> None:
        assert sanitize_body(body, max_length) == expected


def test_generate_request_id_format() -> None:
    first, second = generate_request_id(), generate_request_id()

    prefix, millis, suffix = first.split("-")
    assert prefix == "req"
    assert millis.isdigit()
    assert len(suffix) == 7
    assert suffix.isalnum() and suffix == suffix.lower()
    assert first != second
