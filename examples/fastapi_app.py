"""
FastAPI example: one request log document per request.

    LOG_MONGODB_URI=mongodb://localhost:27017/app uvicorn examples.fastapi_app:app
"""

from fastapi import FastAPI

from moltlog.fastapi import RequestLoggingMiddleware, lifespan

app = FastAPI(lifespan=lifespan("example-api"))
app.add_middleware(RequestLoggingMiddleware, skip_paths=["/health"])


@app.get("/health")
async def health() -> dict[str, str]:
    return {"status": "ok"}


@app.post("/coach/register")
async def register(payload: dict) -> dict:
    app.state.moltlog_logger.info("coach registered", userId=payload.get("id"))
    return {"registered": True}
