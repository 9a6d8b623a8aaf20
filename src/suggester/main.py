# Author: Bradley R. Kinnard — because findings don't fix themselves.

"""
Local HTTP surface for the suggestion lambda. Same service, same gateway, served by uvicorn.
"""

from contextlib import asynccontextmanager
from typing import AsyncIterator
import logging
import uuid

from fastapi import FastAPI, Request
import uvicorn
from src.suggester.adapters.redis_client import close_redis
from src.suggester.api.routes_health import router as health_router
from src.suggester.api.routes_suggestions import router as suggestions_router
from src.suggester.config import settings
from src.suggester.logging_config import setup_logging, set_request_id
from src.suggester.services.suggestion_service import build_service

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    setup_logging(level=settings.log_level)
    # tests can pre-seed a service with fakes
    if getattr(app.state, "service", None) is None:
        app.state.service = build_service(settings)
    logger.info("Service started; waiting for requests")
    yield
    await close_redis()
    logger.info("Shutdown signal received; wrapping up")


app = FastAPI(
    title="Remediation Suggester",
    version="0.1.0",
    lifespan=lifespan
)


@app.middleware("http")
async def inject_request_id(request: Request, call_next):
    # ALB might send one, otherwise make it up
    rid = request.headers.get("X-Request-ID") or str(uuid.uuid4())
    request.state.request_id = rid
    set_request_id(rid)  # push to structlog context
    response = await call_next(request)
    response.headers["X-Request-ID"] = rid
    return response


app.include_router(health_router, prefix="/api/v1")
app.include_router(suggestions_router, prefix="/api/v1")


if __name__ == "__main__":
    uvicorn.run("src.suggester.main:app", host="0.0.0.0", port=8000, reload=True)
