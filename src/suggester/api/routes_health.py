# Author: Bradley R. Kinnard — the app's pulse check

"""Health endpoint with gateway state. Also /metrics."""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Request, Response

from src.suggester.adapters.metrics_client import get_metrics
from src.suggester.api.dependencies import get_service
from src.suggester.services.suggestion_service import SuggestionService

router = APIRouter(tags=["health"])
log = logging.getLogger(__name__)


@router.get("/health")
async def health_check(
    request: Request,
    service: Annotated[SuggestionService, Depends(get_service)],
) -> dict:
    """ok while the circuit is closed, degraded otherwise"""
    rid = getattr(request.state, "request_id", "unknown")
    stats = service.gateway.statistics()
    status = "ok" if stats["circuitState"] == "CLOSED" else "degraded"

    log.info(f"health | circuit={stats['circuitState']} failures={stats['consecutiveFailures']}")

    return {"status": status, "request_id": rid, "gateway": stats}


@router.get("/metrics")
async def metrics() -> Response:
    """prometheus metrics endpoint"""
    return Response(content=get_metrics(), media_type="text/plain; charset=utf-8")
