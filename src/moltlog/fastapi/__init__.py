"""
FastAPI integration for moltlog.

Requires the ``fastapi`` extra.
"""

from __future__ import annotations

from .middleware import (
    REQUEST_ID_HEADER,
    RequestLoggingMiddleware,
    generate_request_id,
    lifespan,
    sanitize_body,
)

__all__ = [
    "REQUEST_ID_HEADER",
    "RequestLoggingMiddleware",
    "generate_request_id",
    "lifespan",
    "sanitize_body",
]
