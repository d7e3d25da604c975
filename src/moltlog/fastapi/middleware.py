"""
Request logging middleware for FastAPI/Starlette applications.

Each request produces one record when it completes:

- level ``error`` for 5xx, ``warn`` for 4xx, ``info`` otherwise
- message ``"<METHOD> <path> <status> <ms>ms"``
- fields ``reqId``, ``endpoint``, ``request`` and ``response``, which the
  record mapper lifts into top-level document fields

The logger comes from the ``logger`` option or from
``request.app.state.moltlog_logger``; without one the request passes through
untouched.
"""

from __future__ import annotations

import random
import string
import time
from collections.abc import AsyncIterator, Iterable
from contextlib import asynccontextmanager
from typing import Any, Callable

import orjson
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response
from starlette.types import ASGIApp

from ..core.logger import Logger

REQUEST_ID_HEADER = "x-request-id"
REDACTED = "[redacted]"
NON_SERIALIZABLE = "[non-serializable]"
APP_STATE_ATTR = "moltlog_logger"

_ID_ALPHABET = string.ascii_lowercase + string.digits


def generate_request_id() -> str:
    suffix = "".join(random.choices(_ID_ALPHABET, k=7))
    return f"req-{int(time.time() * 1000)}-{suffix}"


def sanitize_body(body: Any, max_length: int = 2000) -> str | None:
    """Render a request body for a log record, truncated to ``max_length``."""
    if body is None:
        return None
    if not isinstance(body, (dict, list, tuple)):
        return str(body)[:max_length]
    try:
        text = orjson.dumps(body).decode("utf-8")
    except TypeError:
        return NON_SERIALIZABLE
    if len(text) > max_length:
        return text[:max_length] + "..."
    return text


def _status_level(status_code: int) -> str:
    if status_code >= 500:
        return "error"
    if status_code >= 400:
        return "warn"
    return "info"


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Log every request with endpoint, request details and response details."""

    def __init__(
        self,
        app: ASGIApp,
        *,
        logger: Logger | None = None,
        include_body: bool = False,
        include_headers: bool = False,
        body_max_length: int = 2000,
        redact_headers: Iterable[str] = ("authorization", "cookie"),
        skip_paths: Iterable[str] = (),
        request_id_factory: Callable[[], str] = generate_request_id,
    ) -> None:
        super().__init__(app)
        self._logger = logger
        self._include_body = include_body
        self._include_headers = include_headers
        self._body_max_length = body_max_length
        self._redact = frozenset(h.lower() for h in redact_headers)
        self._skip_paths = frozenset(skip_paths)
        self._request_id_factory = request_id_factory

    def _resolve_logger(self, request: Request) -> Logger | None:
        if self._logger is not None:
            return self._logger
        return getattr(request.app.state, APP_STATE_ATTR, None)

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        path = request.url.path
        if path in self._skip_paths:
            return await call_next(request)

        start = time.perf_counter()
        request_id = request.headers.get(REQUEST_ID_HEADER) or self._request_id_factory()
        request.state.request_id = request_id
        body = await self._read_body(request) if self._include_body else None

        try:
            response = await call_next(request)
        except Exception:
            self._log(request, request_id, body, 500, start)
            raise

        response.headers[REQUEST_ID_HEADER] = request_id
        self._log(request, request_id, body, response.status_code, start)
        return response

    async def _read_body(self, request: Request) -> Any:
        raw = await request.body()
        if not raw:
            return None
        try:
            return orjson.loads(raw)
        except orjson.JSONDecodeError:
            return raw.decode("utf-8", errors="replace")

    def _log(
        self,
        request: Request,
        request_id: str,
        body: Any,
        status_code: int,
        start: float,
    ) -> None:
        logger = self._resolve_logger(request)
        if logger is None:
            return
        method = request.method
        path = request.url.path
        duration_ms = int((time.perf_counter() - start) * 1000)

        details: dict[str, Any] = {"method": method, "path": path}
        if request.query_params:
            details["query"] = dict(request.query_params)
        if self._include_body and body is not None:
            details["body"] = sanitize_body(body, self._body_max_length)
        if self._include_headers:
            details["headers"] = {
                key: REDACTED if key.lower() in self._redact else value
                for key, value in request.headers.items()
            }

        level = _status_level(status_code)
        getattr(logger, level)(
            f"{method} {path} {status_code} {duration_ms}ms",
            reqId=request_id,
            endpoint=f"{method} {path}",
            request=details,
            response={"statusCode": status_code, "durationMs": duration_ms},
        )


def lifespan(service: str | None = None, **options: Any) -> Callable[[Any], Any]:
    """FastAPI lifespan that owns an async logger for the application.

    Example:
        >>> app = FastAPI(lifespan=lifespan("orders"))
        >>> app.add_middleware(RequestLoggingMiddleware)
    """
    from .. import create_async_logger

    @asynccontextmanager
    async def _lifespan(app: Any) -> AsyncIterator[None]:
        logger = await create_async_logger(service, **options)
        setattr(app.state, APP_STATE_ATTR, logger)
        try:
            yield
        finally:
            await logger.aclose()

    return _lifespan


__all__ = [
    "REQUEST_ID_HEADER",
    "RequestLoggingMiddleware",
    "generate_request_id",
    "lifespan",
    "sanitize_body",
]
