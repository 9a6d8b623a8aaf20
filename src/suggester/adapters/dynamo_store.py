# Author: Bradley R. Kinnard — where suggestions go to be read later

"""
DynamoDB writes for analysis progress and per-issue suggestions, Redis fallback for local dev.
Every write is best effort: failures get logged and counted, never raised.
"""

import json
import logging
import os
import time
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any

import aioboto3
from botocore.config import Config

from src.suggester.adapters import metrics_client as metrics
from src.suggester.adapters.redis_client import get_redis
from src.suggester.config import Settings, settings as default_settings
from src.suggester.core.models import Suggestion

log = logging.getLogger(__name__)

# Redis for local dev (shared across processes, unlike in-memory dict)
USE_MEMORY = os.getenv("USE_LOCAL_DYNAMO", "").lower() in ("true", "1", "yes")

_PROGRESS = {"started": 70, "in_progress": 80, "complete": 100, "completed": 100}
DEFAULT_PROGRESS = 75


def progress_for(status: str) -> int:
    key = status.lower()
    if key.startswith("suggestions_"):
        key = key[len("suggestions_"):]
    return _PROGRESS.get(key, DEFAULT_PROGRESS)


def _to_dynamo(value: Any) -> Any:
    # dynamo throws a fit if you give it floats
    return json.loads(json.dumps(value), parse_float=Decimal)


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class SuggestionStore:
    def __init__(self, settings: Settings | None = None, use_memory: bool | None = None):
        self.settings = settings or default_settings
        self.use_memory = USE_MEMORY if use_memory is None else use_memory
        self._session: aioboto3.Session | None = None

    def _get_session(self) -> aioboto3.Session:
        if self._session is None:
            self._session = aioboto3.Session(
                aws_access_key_id=self.settings.aws_access_key_id or None,
                aws_secret_access_key=self.settings.aws_secret_access_key or None,
                region_name=self.settings.aws_region,
            )
        return self._session

    def _dynamo_kwargs(self) -> dict:
        """build kwargs for dynamo resource, including local endpoint if set"""
        kwargs: dict = {"config": Config(connect_timeout=2, read_timeout=5)}
        if self.settings.dynamodb_endpoint:
            kwargs["endpoint_url"] = self.settings.dynamodb_endpoint
        return kwargs

    async def _update(self, analysis_id: str, fields: dict[str, Any], op: str) -> bool:
        if self.use_memory:
            try:
                redis = await get_redis()
                key = f"analysis:{analysis_id}"
                raw = await redis.get(key)
                current = json.loads(raw) if raw else {"analysisId": analysis_id}
                current.update(fields)
                await redis.set(key, json.dumps(current))
                return True
            except Exception as e:
                log.warning(f"[redis] {op} failed for {analysis_id}: {e}")
                metrics.store_errors_total.labels(operation=op).inc()
                return False

        names = {f"#f{i}": k for i, k in enumerate(fields)}
        values = {f":v{i}": _to_dynamo(v) for i, v in enumerate(fields.values())}
        expr = "SET " + ", ".join(f"#f{i} = :v{i}" for i in range(len(fields)))
        try:
            session = self._get_session()
            async with session.resource("dynamodb", **self._dynamo_kwargs()) as dynamo:
                table = await dynamo.Table(self.settings.analysis_results_table)
                await table.update_item(
                    Key={"analysisId": analysis_id},
                    UpdateExpression=expr,
                    ExpressionAttributeNames=names,
                    ExpressionAttributeValues=values,
                )
            return True
        except Exception as e:
            log.error(f"dynamo {op} failed for {analysis_id}: {e}")
            metrics.store_errors_total.labels(operation=op).inc()
            return False

    async def update_progress(self, analysis_id: str, status: str) -> bool:
        """status plus the progress percentage it implies"""
        ok = await self._update(
            analysis_id,
            {"status": status, "progress": progress_for(status), "lastUpdatedAt": _now_iso()},
            "update_progress",
        )
        if ok:
            log.info(f"analysis {analysis_id} -> {status} ({progress_for(status)}%)")
        return ok

    async def mark_complete(self, analysis_id: str, suggestion_count: int, tokens: int, cost: float) -> bool:
        now = _now_iso()
        return await self._update(
            analysis_id,
            {
                "suggestionCount": suggestion_count,
                "suggestionTokens": tokens,
                "suggestionCost": cost,
                "status": "completed",
                "progress": 100,
                "completedAt": now,
                "lastUpdatedAt": now,
            },
            "mark_complete",
        )

    def _item(self, analysis_id: str, s: Suggestion) -> dict[str, Any]:
        return {
            "analysisId": analysis_id,
            "issueId": s.issue_id,
            "type": s.issue_type,
            "severity": s.severity.name,
            "category": s.category.value if s.category else "unknown",
            "title": s.issue_type.replace("_", " "),
            "suggestion": s.to_wire(),
            "tokensUsed": s.tokens_used,
            "cost": s.cost,
            "modelUsed": s.model_used,
            "timestamp": s.timestamp,
            "ttl": int(time.time()) + self.settings.suggestion_ttl_seconds,
        }

    async def save_suggestions(self, analysis_id: str, suggestions: list[Suggestion]) -> int:
        """one record per issue. a bad record doesn't stop the rest. returns how many landed."""
        if not suggestions:
            return 0
        saved = 0

        if self.use_memory:
            try:
                redis = await get_redis()
            except Exception as e:
                log.warning(f"[redis] unavailable, dropping {len(suggestions)} suggestions: {e}")
                metrics.store_errors_total.labels(operation="save_suggestion").inc()
                return 0
            for s in suggestions:
                try:
                    await redis.set(
                        f"suggestion:{analysis_id}:{s.issue_id}",
                        json.dumps(self._item(analysis_id, s)),
                        ex=self.settings.suggestion_ttl_seconds,
                    )
                    saved += 1
                except Exception as e:
                    log.warning(f"[redis] save failed for issue {s.issue_id}: {e}")
                    metrics.store_errors_total.labels(operation="save_suggestion").inc()
            return saved

        try:
            session = self._get_session()
            async with session.resource("dynamodb", **self._dynamo_kwargs()) as dynamo:
                table = await dynamo.Table(self.settings.issue_details_table)
                for s in suggestions:
                    try:
                        await table.put_item(Item=_to_dynamo(self._item(analysis_id, s)))
                        saved += 1
                    except Exception as e:
                        log.error(f"dynamo put failed for issue {s.issue_id}: {e}")
                        metrics.store_errors_total.labels(operation="save_suggestion").inc()
        except Exception as e:
            log.error(f"dynamo unavailable, saved {saved}/{len(suggestions)} suggestions: {e}")
            metrics.store_errors_total.labels(operation="save_suggestion").inc()

        log.info(f"stored {saved}/{len(suggestions)} suggestions for {analysis_id}")
        return saved
