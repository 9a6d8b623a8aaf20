# Author: Bradley R. Kinnard — budgets, deadlines, and the order things happen in

"""Scheduler against a fake transport and a virtual clock."""

import pytest

from src.suggester.config import Settings
from src.suggester.core.models import Category
from src.suggester.services.gateway import ModelGateway
from src.suggester.services.scheduler import Deadline, RunBudget, SuggestionScheduler
from tests.conftest import FakeTransport, client_error, converse_response, make_issue


def _scheduler(clock, transport, **overrides) -> SuggestionScheduler:
    s = Settings(route_template_pct=0, **overrides)
    gw = ModelGateway(s, transport=transport, clock=clock, sleep=clock.sleep, rng=lambda: 0.0)
    return SuggestionScheduler(gw, s, clock=clock, sleep=clock.sleep)


def _deadline(clock, ms=900_000) -> Deadline:
    return Deadline.from_timeout(ms, clock)


@pytest.mark.asyncio
async def test_happy_path_batches(scheduler, transport, clock):
    issues = [make_issue(i) for i in range(3)]
    res = await scheduler.run(issues, _deadline(clock))

    assert [s.issue_id for s in res.suggestions] == ["issue-0", "issue-1", "issue-2"]
    assert res.tokens_used == 1500
    assert res.cost == pytest.approx(3 * (300 * 0.8 + 200 * 3.2) / 1_000_000)
    assert res.fallbacks == 0 and res.warnings == []
    assert len(transport.calls) == 3
    assert transport.calls[0].prompt.startswith("# Fix Required for SQL_INJECTION (HIGH)")


@pytest.mark.asyncio
async def test_every_issue_gets_a_suggestion_even_when_all_calls_fail(clock):
    t = FakeTransport(default=client_error("ValidationException", 400))
    sched = _scheduler(clock, t)

    res = await sched.run([make_issue(i) for i in range(5)], _deadline(clock))

    # three failures open the breaker, the last two never reach the transport
    assert len(t.calls) == 3
    assert len(res.suggestions) == 5
    assert res.fallbacks == 5
    assert res.tokens_used == 0
    for s in res.suggestions:
        assert s.model_used.endswith("-fallback")
        assert s.immediate_fix.title.startswith("Manual Review Required")
        assert s.best_practice.benefits and s.testing.validation_steps and s.prevention.tools


@pytest.mark.asyncio
async def test_stops_when_token_budget_runs_low(clock):
    t = FakeTransport(default=converse_response(input_tokens=3000, output_tokens=3000))
    sched = _scheduler(clock, t, token_budget=10_000, token_buffer=5000)

    res = await sched.run([make_issue(i) for i in range(3)], _deadline(clock))

    assert len(res.suggestions) == 1
    assert res.tokens_used == 6000
    assert res.warnings == ["token budget reached (6000/10000); 2 issue(s) not processed"]


@pytest.mark.asyncio
async def test_stops_before_the_deadline(clock):
    async def slow(request):
        await clock.sleep(40)
        return converse_response()

    t = FakeTransport(default=slow)
    sched = _scheduler(clock, t)

    res = await sched.run([make_issue(i) for i in range(3)], _deadline(clock, 100_000))

    assert len(res.suggestions) == 2
    assert len(t.calls) == 2
    assert len(res.warnings) == 1
    assert res.warnings[0].startswith("stopping early")
    assert res.warnings[0].endswith("1 issue(s) not processed")


@pytest.mark.asyncio
async def test_nothing_runs_without_time(scheduler, transport, clock):
    res = await scheduler.run([make_issue(1)], _deadline(clock, 10_000))
    assert res.suggestions == [] and transport.calls == []
    assert res.warnings[0].startswith("stopping early")


@pytest.mark.asyncio
async def test_categories_run_security_first_by_severity(scheduler, transport, clock):
    issues = [
        make_issue(1, category="quality", severity="LOW"),
        make_issue(2, category="security", severity="MEDIUM"),
        make_issue(3, category="performance", severity="HIGH"),
        make_issue(4, category="security", severity="CRITICAL"),
        make_issue(5),  # no category, goes with quality
    ]
    res = await scheduler.run(issues, _deadline(clock))

    assert [s.issue_id for s in res.suggestions] == ["issue-4", "issue-2", "issue-3", "issue-5", "issue-1"]
    assert transport.calls[0].prompt.startswith("# SECURITY FIX REQUIRED for SQL_INJECTION (CRITICAL)")
    assert transport.calls[2].prompt.startswith("# PERFORMANCE OPTIMIZATION")
    assert res.fallbacks == 0


def test_category_budget_math(scheduler):
    fresh = RunBudget(token_budget=40_000, token_buffer=5000)
    assert scheduler.category_budget(Category.SECURITY, 2, fresh) == 20_000
    assert scheduler.category_budget(Category.PERFORMANCE, 2, fresh) == 12_000

    late = RunBudget(token_budget=40_000, token_buffer=5000, tokens_used=36_000)
    # floor wins once the share gets small
    assert scheduler.category_budget(Category.SECURITY, 2, late) == 4000
    assert scheduler.category_budget(Category.QUALITY, 1, late) == 2000


@pytest.mark.asyncio
async def test_category_allowance_skips_the_rest(clock):
    t = FakeTransport(default=converse_response(input_tokens=6000, output_tokens=6000))
    sched = _scheduler(clock, t, token_budget=100_000)
    issues = [make_issue(i, category="performance") for i in range(4)]

    res = await sched.run(issues, _deadline(clock))

    assert len(res.suggestions) == 3
    assert res.warnings == ["performance allowance of 30000 tokens spent, skipped 1 issue(s)"]


def test_issue_delay_tracks_failure_rate(scheduler):
    assert scheduler.issue_delay_ms(0, 0) == 500
    assert scheduler.issue_delay_ms(0, 9) == 500
    assert scheduler.issue_delay_ms(1, 9) == 1000
    assert scheduler.issue_delay_ms(1, 2) == 1500
    assert scheduler.issue_delay_ms(3, 2) == 2000


def test_issue_delay_is_capped(clock):
    sched = _scheduler(clock, FakeTransport(), max_issue_delay_ms=1200)
    assert sched.issue_delay_ms(3, 2) == 1200


def test_batch_delay_is_clamped(scheduler):
    assert scheduler.batch_delay_ms(1, 0) == 5000
    assert scheduler.batch_delay_ms(3, 0) == 6000
    assert scheduler.batch_delay_ms(4, 2000) == 9000
    assert scheduler.batch_delay_ms(5, 40_000) == 30_000
    assert scheduler.batch_delay_ms(50, 1_000_000) == 30_000


@pytest.mark.asyncio
async def test_open_circuit_triggers_cooldown(scheduler, gateway, clock):
    assert not scheduler.should_slow_down()
    for _ in range(3):
        gateway.breaker.record_failure()
    assert scheduler.should_slow_down()

    await scheduler._cooldown_if_needed()
    assert clock.sleeps == [pytest.approx(4.0)]


@pytest.mark.asyncio
async def test_throttles_trigger_slowdown(clock):
    t = FakeTransport([client_error("ThrottlingException")] * 3)
    sched = _scheduler(clock, t)
    await sched.run([make_issue(1)], _deadline(clock))
    assert sched.gateway.total_throttles() == 3
    assert sched.should_slow_down()


@pytest.mark.asyncio
async def test_parallel_keeps_order_and_respects_the_limit(clock):
    active = 0
    peak = 0

    async def tracked(request):
        nonlocal active, peak
        active += 1
        peak = max(peak, active)
        await clock.sleep(1)
        active -= 1
        return converse_response()

    t = FakeTransport(default=tracked)
    sched = _scheduler(clock, t, parallel_batches=True, max_concurrent_calls=2, batch_size=4)

    res = await sched.run([make_issue(i) for i in range(4)], _deadline(clock))

    assert [s.issue_id for s in res.suggestions] == ["issue-0", "issue-1", "issue-2", "issue-3"]
    assert len(t.calls) == 4
    assert peak <= 2
    assert set(sched.gateway.statistics()["callCounts"]) == {
        "amazon.nova-lite-v1:0-worker-0",
        "amazon.nova-lite-v1:0-worker-1",
    }


@pytest.mark.asyncio
async def test_model_override_applies_to_every_issue(scheduler, transport, clock):
    res = await scheduler.run([make_issue(i) for i in range(3)], _deadline(clock), model_override="template")
    assert transport.calls == []
    assert {s.model_used for s in res.suggestions} == {"TEMPLATE_MODE"}
    assert res.tokens_used == 450


def test_batch_delay_counts_whole_thousands_of_tokens(scheduler):
    assert scheduler.batch_delay_ms(4, 2999) == 9000
    assert scheduler.batch_delay_ms(1, 10_500) == 7000


@pytest.mark.asyncio
async def test_parallel_category_allowance_skips_the_rest(clock):
    t = FakeTransport(default=converse_response(input_tokens=6000, output_tokens=6000))
    sched = _scheduler(clock, t, token_budget=100_000, parallel_batches=True, max_concurrent_calls=2)
    issues = [make_issue(i, category="performance") for i in range(6)]

    res = await sched.run(issues, _deadline(clock))

    # two at once, then one more, then the 30000 allowance is gone
    assert len(t.calls) == 3
    assert [s.issue_id for s in res.suggestions] == ["issue-0", "issue-1", "issue-2"]
    assert res.warnings == ["performance allowance of 30000 tokens spent, skipped 3 issue(s)"]


@pytest.mark.asyncio
async def test_tight_budget_and_failing_endpoint_still_favor_security(clock):
    served = 0

    def endpoint(request):
        nonlocal served
        if served >= 5000:
            raise client_error("AccessDeniedException", 403)
        served += 2500
        return converse_response(input_tokens=1500, output_tokens=1000)

    t = FakeTransport(default=endpoint)
    sched = _scheduler(clock, t, token_budget=10_000, token_buffer=5000)
    issues = (
        [make_issue(i, category="quality") for i in range(3)]
        + [make_issue(i, category="performance") for i in range(3, 6)]
        + [make_issue(i, category="security") for i in range(6, 10)]
    )

    res = await sched.run(issues, _deadline(clock))

    real = [s for s in res.suggestions if not s.model_used.endswith("-fallback")]
    assert [s.issue_id for s in real] == ["issue-6", "issue-7"]
    assert all(s.model_used != "TEMPLATE_MODE" for s in real)
    assert [s.category for s in res.suggestions[:2]] == [Category.SECURITY, Category.SECURITY]

    quality = [s for s in res.suggestions if s.category is Category.QUALITY]
    assert quality and all(s.model_used.endswith("-fallback") for s in quality)
    assert res.warnings[0] == "security allowance of 5000 tokens spent, skipped 2 issue(s)"
    assert res.tokens_used == 5000


@pytest.mark.asyncio
async def test_throttled_until_retries_run_out_still_yields_complete_fallbacks(clock):
    t = FakeTransport(default=client_error("ThrottlingException"))
    sched = _scheduler(clock, t, max_retries=2)

    res = await sched.run([make_issue(i) for i in range(4)], _deadline(clock))

    # two attempts each for the first three, then the breaker is open
    assert len(t.calls) == 6
    assert sched.gateway.total_throttles() == 6
    assert [s.issue_id for s in res.suggestions] == ["issue-0", "issue-1", "issue-2", "issue-3"]
    assert res.fallbacks == 4 and res.tokens_used == 0
    for s in res.suggestions:
        assert s.model_used.endswith("-fallback")
        assert s.immediate_fix.title and s.immediate_fix.search_code
        assert s.best_practice.benefits and s.testing.validation_steps and s.prevention.tools
