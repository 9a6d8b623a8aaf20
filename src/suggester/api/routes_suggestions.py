# Author: Bradley R. Kinnard — the lambda, but over http

"""POST /suggestions. Same contract as the lambda event, handy for local runs."""

import logging
from typing import Annotated, Any

from fastapi import APIRouter, Body, Depends, Request

from src.suggester.api.dependencies import get_service
from src.suggester.config import settings
from src.suggester.services.scheduler import Deadline
from src.suggester.services.suggestion_service import SuggestionService

router = APIRouter(prefix="/suggestions", tags=["suggestions"])
log = logging.getLogger(__name__)


@router.post("")
async def generate_suggestions(
    request: Request,
    event: Annotated[dict[str, Any], Body()],
    service: Annotated[SuggestionService, Depends(get_service)],
) -> dict:
    """validation failures come back as 200 with status=error, same as the lambda"""
    rid = getattr(request.state, "request_id", "unknown")
    issues = event.get("issues")
    log.info(f"suggestions | rid={rid} issues={len(issues) if isinstance(issues, list) else 0}")
    response = await service.handle(event, Deadline.from_timeout(settings.invocation_timeout_ms))
    return response.to_wire()
