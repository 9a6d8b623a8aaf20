# Author: Bradley R. Kinnard — the lambda's front door

"""
Lambda entry point. The gateway lives at module level so breaker state and call stats
survive across warm invocations. Budgets don't, they're rebuilt every call.
"""

import asyncio
import logging
from typing import Any

from src.suggester.adapters import redis_client
from src.suggester.config import settings
from src.suggester.logging_config import set_request_id, setup_logging
from src.suggester.services.scheduler import Deadline
from src.suggester.services.suggestion_service import SuggestionService, build_service

log = logging.getLogger(__name__)

_service: SuggestionService | None = None


def get_service() -> SuggestionService:
    """lazy so importing this module in tests doesn't build boto sessions"""
    global _service
    if _service is None:
        setup_logging(settings.log_level)
        _service = build_service(settings)
        log.info(f"cold start, primary={settings.model_id} light={settings.light_model_id}")
    return _service


async def _invoke(service: SuggestionService, event: dict, deadline: Deadline) -> dict:
    try:
        response = await service.handle(event, deadline)
        return response.to_wire()
    finally:
        # each invocation gets a fresh event loop, the pooled connection can't outlive it
        await redis_client.close_redis()


def lambda_handler(event: dict[str, Any], context: Any) -> dict:
    service = get_service()
    set_request_id(getattr(context, "aws_request_id", None) or "local")
    deadline = Deadline.from_context(context, settings)
    return asyncio.run(_invoke(service, event, deadline))
