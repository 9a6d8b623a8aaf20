# Author: Bradley R. Kinnard — dynamo without dynamo

"""Store writes against a fake aioboto3 resource and a fake redis."""

import json
from decimal import Decimal

import pytest

from src.suggester.adapters import dynamo_store
from src.suggester.adapters.dynamo_store import SuggestionStore, progress_for
from src.suggester.config import Settings
from src.suggester.core.issue_catalog import fallback_suggestion
from tests.conftest import make_issue


class FakeTable:
    def __init__(self, name, fail_on=()):
        self.name = name
        self.fail_on = set(fail_on)
        self.updates = []
        self.items = []

    async def update_item(self, **kw):
        self.updates.append(kw)

    async def put_item(self, Item):
        if Item["issueId"] in self.fail_on:
            raise RuntimeError("ProvisionedThroughputExceeded")
        self.items.append(Item)


class FakeResource:
    def __init__(self, tables):
        self.tables = tables

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False

    async def Table(self, name):
        return self.tables.setdefault(name, FakeTable(name))


class FakeSession:
    def __init__(self, tables=None):
        self.tables = tables if tables is not None else {}
        self.resource_kwargs = []

    def resource(self, service, **kw):
        assert service == "dynamodb"
        self.resource_kwargs.append(kw)
        return FakeResource(self.tables)


class FakeRedis:
    def __init__(self):
        self.data = {}
        self.ttls = {}

    async def get(self, key):
        return self.data.get(key)

    async def set(self, key, value, ex=None):
        self.data[key] = value
        self.ttls[key] = ex


@pytest.fixture
def store():
    s = SuggestionStore(Settings(), use_memory=False)
    s._session = FakeSession()
    return s


def _suggestions(n=2):
    return [fallback_suggestion(make_issue(i, category="security"), "amazon.nova-lite-v1:0", 100, 0.0125) for i in range(n)]


def test_progress_mapping():
    assert progress_for("suggestions_started") == 70
    assert progress_for("suggestions_in_progress") == 80
    assert progress_for("completed") == 100
    assert progress_for("SUGGESTIONS_COMPLETE") == 100
    assert progress_for("whatever") == 75


@pytest.mark.asyncio
async def test_update_progress_writes_expression(store):
    assert await store.update_progress("a-1", "suggestions_started")

    call = store._session.tables["smartcode-analysis-results"].updates[0]
    assert call["Key"] == {"analysisId": "a-1"}
    assert call["UpdateExpression"] == "SET #f0 = :v0, #f1 = :v1, #f2 = :v2"
    assert call["ExpressionAttributeNames"] == {"#f0": "status", "#f1": "progress", "#f2": "lastUpdatedAt"}
    assert call["ExpressionAttributeValues"][":v0"] == "suggestions_started"
    assert call["ExpressionAttributeValues"][":v1"] == 70


@pytest.mark.asyncio
async def test_mark_complete_uses_decimals(store):
    await store.mark_complete("a-1", 3, 4200, 0.0375)
    values = store._session.tables["smartcode-analysis-results"].updates[0]["ExpressionAttributeValues"]
    assert Decimal("0.0375") in values.values()
    assert "completed" in values.values()
    assert not any(isinstance(v, float) for v in values.values())


@pytest.mark.asyncio
async def test_save_suggestions_one_record_each(store):
    saved = await store.save_suggestions("a-1", _suggestions(2))

    assert saved == 2
    items = store._session.tables["smartcode-issue-details"].items
    assert [i["issueId"] for i in items] == ["issue-0", "issue-1"]
    first = items[0]
    assert first["analysisId"] == "a-1"
    assert first["severity"] == "HIGH" and first["category"] == "security"
    assert first["title"] == "SQL INJECTION"
    assert first["cost"] == Decimal("0.0125")
    assert first["suggestion"]["immediateFix"]["title"].startswith("Manual Review Required")
    assert first["ttl"] > 0


@pytest.mark.asyncio
async def test_one_bad_record_does_not_stop_the_rest(store):
    store._session.tables["smartcode-issue-details"] = FakeTable("smartcode-issue-details", fail_on={"issue-1"})
    assert await store.save_suggestions("a-1", _suggestions(3)) == 2


@pytest.mark.asyncio
async def test_dynamo_errors_are_swallowed(store):
    class Broken(FakeSession):
        def resource(self, service, **kw):
            raise RuntimeError("no route to host")

    store._session = Broken()
    assert await store.update_progress("a-1", "suggestions_started") is False
    assert await store.save_suggestions("a-1", _suggestions(1)) == 0


@pytest.mark.asyncio
async def test_empty_save_is_a_noop(store):
    assert await store.save_suggestions("a-1", []) == 0
    assert store._session.resource_kwargs == []


def test_local_endpoint_is_passed_through():
    s = SuggestionStore(Settings(dynamodb_endpoint="http://localhost:8000"), use_memory=False)
    assert s._dynamo_kwargs()["endpoint_url"] == "http://localhost:8000"
    assert "endpoint_url" not in SuggestionStore(Settings(), use_memory=False)._dynamo_kwargs()


@pytest.mark.asyncio
async def test_redis_mode(monkeypatch):
    fake = FakeRedis()

    async def _get_redis():
        return fake

    monkeypatch.setattr(dynamo_store, "get_redis", _get_redis)
    s = SuggestionStore(Settings(), use_memory=True)

    await s.update_progress("a-9", "suggestions_in_progress")
    await s.mark_complete("a-9", 1, 150, 0.0001)
    assert await s.save_suggestions("a-9", _suggestions(1)) == 1

    analysis = json.loads(fake.data["analysis:a-9"])
    assert analysis["status"] == "completed" and analysis["progress"] == 100
    assert analysis["suggestionCount"] == 1
    assert fake.ttls["suggestion:a-9:issue-0"] == 604800
