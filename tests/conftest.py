# Author: Bradley R. Kinnard — fakes all the way down

"""
Shared fakes. Virtual clock so backoff and rate limiting cost nothing,
a scriptable bedrock transport, and an in-memory store.
"""

import asyncio
import json

import pytest
from botocore.exceptions import ClientError

from src.suggester.config import Settings
from src.suggester.core.models import Issue
from src.suggester.services.gateway import ModelGateway
from src.suggester.services.scheduler import SuggestionScheduler

MODEL_JSON = {
    "issueDescription": "User input flows straight into a SQL string.",
    "immediateFix": {
        "title": "Bind the parameter",
        "searchCode": "query = 'SELECT * FROM t WHERE id=' + uid",
        "replaceCode": "cursor.execute('SELECT * FROM t WHERE id=%s', (uid,))",
        "explanation": "Placeholders keep data out of the query grammar.",
    },
    "bestPractice": {"title": "Parameterize", "code": "cursor.execute(sql, params)", "benefits": ["Safe", "Cacheable"]},
    "testing": {"testCase": "def test_injection(): ...", "validationSteps": ["Run sqlmap", "Review queries"]},
    "prevention": {
        "guidelines": ["No string-built SQL"],
        "tools": [{"name": "bandit", "description": "flags string-built SQL"}],
        "codeReviewChecklist": ["Placeholders everywhere"],
    },
}


class FakeClock:
    """monotonic clock + sleep that only moves virtual time"""

    def __init__(self, start: float = 1000.0):
        self.now = start
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += max(0.0, seconds)
        await asyncio.sleep(0)  # still yield so gathered tasks interleave


def converse_response(text: str | None = None, input_tokens: int = 300, output_tokens: int = 200, usage: dict | None = None) -> dict:
    body = text if text is not None else f"```json\n{json.dumps(MODEL_JSON)}\n```"
    if usage is None:
        usage = {"inputTokens": input_tokens, "outputTokens": output_tokens, "totalTokens": input_tokens + output_tokens}
    return {
        "output": {"message": {"role": "assistant", "content": [{"text": body}]}},
        "usage": usage,
        "stopReason": "end_turn",
    }


def client_error(code: str, status: int = 400, message: str = "boom") -> ClientError:
    return ClientError(
        {"Error": {"Code": code, "Message": message}, "ResponseMetadata": {"HTTPStatusCode": status}},
        "Converse",
    )


class FakeTransport:
    """pops scripted items per call: dicts are responses, exceptions get raised, callables get the request"""

    def __init__(self, script: list | None = None, default=None):
        self.script = list(script or [])
        self.default = default if default is not None else converse_response()
        self.calls = []

    async def converse(self, request):
        self.calls.append(request)
        item = self.script.pop(0) if self.script else self.default
        if isinstance(item, BaseException):
            raise item
        if callable(item):
            item = item(request)
            if asyncio.iscoroutine(item):
                item = await item
        return item


class FakeStore:
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.progress: list[str] = []
        self.saved: list = []
        self.completed: list[tuple] = []

    async def update_progress(self, analysis_id, status):
        if self.fail:
            raise RuntimeError("dynamo down")
        self.progress.append(status)
        return True

    async def save_suggestions(self, analysis_id, suggestions):
        if self.fail:
            raise RuntimeError("dynamo down")
        self.saved.extend(suggestions)
        return len(suggestions)

    async def mark_complete(self, analysis_id, suggestion_count, tokens, cost):
        if self.fail:
            raise RuntimeError("dynamo down")
        self.completed.append((analysis_id, suggestion_count, tokens, cost))
        return True


def make_issue(i: int = 1, **kw) -> Issue:
    data = {
        "id": f"issue-{i}",
        "type": "SQL_INJECTION",
        "severity": "HIGH",
        "language": "python",
        "description": "string-built query",
        "codeSnippet": "query = 'SELECT * FROM t WHERE id=' + uid",
        "line": 10 + i,
        "file": "app/db.py",
    }
    data.update(kw)
    return Issue.model_validate(data)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def settings() -> Settings:
    # templates off by default so every issue hits the transport
    return Settings(route_template_pct=0, circuit_breaker_enabled=True)


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def gateway(settings, transport, clock) -> ModelGateway:
    return ModelGateway(settings, transport=transport, clock=clock, sleep=clock.sleep, rng=lambda: 0.0)


@pytest.fixture
def scheduler(gateway, settings, clock) -> SuggestionScheduler:
    return SuggestionScheduler(gateway, settings, clock=clock, sleep=clock.sleep)
