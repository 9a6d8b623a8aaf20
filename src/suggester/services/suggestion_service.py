# Author: Bradley R. Kinnard — the part that answers the caller

"""
One invocation end to end: validate the event, schedule the issues, persist, build the response.
Always returns a SuggestionResponse. Bad input and fatal errors come back as status=error.
"""

import logging
import time
from collections import Counter
from datetime import datetime, timezone
from typing import Any, Awaitable, Protocol

from pydantic import ValidationError

from src.suggester.adapters import metrics_client as metrics
from src.suggester.adapters.dynamo_store import SuggestionStore
from src.suggester.config import Settings, settings as default_settings
from src.suggester.core.models import ProcessingTime, Suggestion, SuggestionRequest, SuggestionResponse, Summary
from src.suggester.logging_config import bind_invocation
from src.suggester.services.gateway import ModelGateway
from src.suggester.services.scheduler import Deadline, ScheduleResult, SuggestionScheduler

log = logging.getLogger(__name__)


class ResultStore(Protocol):
    async def update_progress(self, analysis_id: str, status: str) -> bool: ...
    async def save_suggestions(self, analysis_id: str, suggestions: list[Suggestion]) -> int: ...
    async def mark_complete(self, analysis_id: str, suggestion_count: int, tokens: int, cost: float) -> bool: ...


def _iso(ts: float) -> str:
    return datetime.fromtimestamp(ts, tz=timezone.utc).isoformat()


def _opt_str(v: Any) -> str | None:
    return None if v is None else str(v)


def _validation_messages(err: ValidationError) -> list[str]:
    out = []
    for e in err.errors():
        where = ".".join(str(p) for p in e["loc"]) or "request"
        out.append(f"{where}: {e['msg']}")
    return out


def build_summary(suggestions: list[Suggestion], tokens: int, cost: float) -> Summary:
    return Summary(
        total_suggestions=len(suggestions),
        by_severity=dict(Counter(s.severity.name for s in suggestions)),
        by_category=dict(Counter(s.category.value if s.category else "unknown" for s in suggestions)),
        tokens_used=tokens,
        estimated_cost=round(cost, 6),
    )


class SuggestionService:
    def __init__(self, gateway: ModelGateway, store: ResultStore, settings: Settings | None = None,
                 scheduler: SuggestionScheduler | None = None):
        self.gateway = gateway
        self.store = store
        self.settings = settings or default_settings
        self.scheduler = scheduler or SuggestionScheduler(gateway, self.settings)

    async def handle(self, event: dict[str, Any], deadline: Deadline | None = None) -> SuggestionResponse:
        started = time.time()
        deadline = deadline or Deadline.from_timeout(self.settings.invocation_timeout_ms)
        event = event if isinstance(event, dict) else {}

        try:
            request = SuggestionRequest.model_validate(event)
        except ValidationError as e:
            errors = _validation_messages(e)
            log.warning(f"rejected invalid request: {errors}")
            return SuggestionResponse(
                status="error",
                analysis_id=_opt_str(event.get("analysisId")),
                session_id=_opt_str(event.get("sessionId")),
                errors=errors,
                processing_time=self._timing(started),
            )

        bind_invocation(request.analysis_id, request.session_id)
        log.info(f"generating suggestions for {len(request.issues)} issues, stage={request.stage}")

        try:
            with metrics.invocation_latency.time():
                return await self._run(request, deadline, started)
        except Exception as e:
            log.exception(f"suggestion run failed: {e}")
            return SuggestionResponse(
                status="error",
                analysis_id=request.analysis_id,
                session_id=request.session_id,
                errors=[f"{type(e).__name__}: {e}"],
                processing_time=self._timing(started),
            )

    async def _run(self, request: SuggestionRequest, deadline: Deadline, started: float) -> SuggestionResponse:
        warnings: list[str] = []
        issues = request.issues
        cap = self.settings.max_issues_per_analysis
        if len(issues) > cap:
            warnings.append(f"{len(issues) - cap} issue(s) over the per-analysis limit of {cap} were deferred")
            issues = issues[:cap]

        await self._store("update_progress", self.store.update_progress(request.analysis_id, "suggestions_started"))
        await self._store("update_progress", self.store.update_progress(request.analysis_id, "suggestions_in_progress"))

        result = await self.scheduler.run(issues, deadline, model_override=request.model_id)
        warnings.extend(result.warnings)

        await self._store("save_suggestions", self.store.save_suggestions(request.analysis_id, result.suggestions))
        await self._store(
            "mark_complete",
            self.store.mark_complete(request.analysis_id, len(result.suggestions), result.tokens_used, result.cost),
        )

        timing = self._timing(started)
        return SuggestionResponse(
            status="success",
            analysis_id=request.analysis_id,
            session_id=request.session_id,
            suggestions=result.suggestions,
            summary=build_summary(result.suggestions, result.tokens_used, result.cost),
            metadata=self._metadata(request, result, timing),
            processing_time=timing,
            warnings=warnings,
        )

    @staticmethod
    async def _store(op: str, call: Awaitable[Any]) -> None:
        # the caller gets its suggestions even if persistence is down
        try:
            await call
        except Exception as e:
            log.error(f"store {op} failed: {e}")
            metrics.store_errors_total.labels(operation=op).inc()

    def _metadata(self, request: SuggestionRequest, result: ScheduleResult, timing: ProcessingTime) -> dict:
        return {
            "modelUsed": request.model_id or self.settings.model_id,
            "strategy": request.strategy,
            "stage": request.stage,
            "repository": request.repository,
            "branch": request.branch,
            "scanNumber": request.scan_number,
            "issuesAttempted": result.attempted,
            "fallbackCount": result.fallbacks,
            "totalTokensUsed": result.tokens_used,
            "totalCost": round(result.cost, 6),
            "batchSize": self.settings.batch_size,
            "batchDelayMs": self.settings.batch_delay_ms,
            "processingTimeMs": timing.total_processing_time,
            "gatewayStatistics": self.gateway.statistics(),
            **({"request": request.metadata} if request.metadata else {}),
        }

    @staticmethod
    def _timing(started: float) -> ProcessingTime:
        ended = time.time()
        return ProcessingTime(
            start_time=_iso(started),
            end_time=_iso(ended),
            total_processing_time=int((ended - started) * 1000),
        )


def build_service(settings: Settings | None = None) -> SuggestionService:
    """real gateway, real store. what the lambda and the dev server run"""
    settings = settings or default_settings
    return SuggestionService(ModelGateway(settings), SuggestionStore(settings), settings)
