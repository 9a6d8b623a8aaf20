# Author: Bradley R. Kinnard — a budget is a promise you keep to finance

"""
Spread a fixed token budget and a hard deadline across a pile of issues.

Two paths. If any issue carries a category, issues are grouped and processed security first,
each category capped at a share of what's left. Otherwise fixed-size batches in input order.
Before every step we check the clock and the budget, and stop cleanly with a warning when either
runs short. Whatever got done before that is returned.
"""

import asyncio
import logging
import math
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable

from src.suggester.config import Settings, settings as default_settings
from src.suggester.core.circuit_breaker import CircuitState
from src.suggester.core.models import CATEGORY_ORDER, CATEGORY_SHARE, Category, Issue, Suggestion
from src.suggester.services.gateway import ModelGateway
from src.suggester.services.issue_processor import IssueOutcome, process_issue

log = logging.getLogger(__name__)

MIN_BATCH_DELAY_MS = 5000
MAX_BATCH_DELAY_MS = 30_000
MIN_TOKENS_PER_ISSUE = 2000
STAGGER_S = 0.1


class Deadline:
    """Milliseconds left in this invocation. Lambda knows, locally we count down from a timeout."""

    def __init__(self, remaining_ms: Callable[[], float]):
        self._remaining_ms = remaining_ms

    @classmethod
    def from_timeout(cls, timeout_ms: int, clock: Callable[[], float] = time.monotonic) -> "Deadline":
        start = clock()
        return cls(lambda: timeout_ms - (clock() - start) * 1000)

    @classmethod
    def from_context(cls, context: Any, settings: Settings, clock: Callable[[], float] = time.monotonic) -> "Deadline":
        fn = getattr(context, "get_remaining_time_in_millis", None)
        if callable(fn):
            return cls(lambda: float(fn()))
        return cls.from_timeout(settings.invocation_timeout_ms, clock)

    def remaining_ms(self) -> float:
        return self._remaining_ms()


@dataclass
class RunBudget:
    """Per-invocation counters. Never shared between invocations."""
    token_budget: int
    token_buffer: int
    tokens_used: int = 0
    cost: float = 0.0

    @property
    def remaining(self) -> int:
        return max(0, self.token_budget - self.tokens_used)

    def exhausted(self) -> bool:
        return self.tokens_used > self.token_budget - self.token_buffer

    def charge(self, outcome: IssueOutcome) -> None:
        self.tokens_used += outcome.tokens
        self.cost += outcome.cost


@dataclass
class ScheduleResult:
    suggestions: list[Suggestion] = field(default_factory=list)
    tokens_used: int = 0
    cost: float = 0.0
    elapsed_ms: int = 0
    warnings: list[str] = field(default_factory=list)
    attempted: int = 0
    fallbacks: int = 0


class _Run:
    """mutable state for one scheduler pass"""

    def __init__(self, issues: list[Issue], budget: RunBudget, deadline: Deadline, override: str | None):
        self.pending = len(issues)
        self.budget = budget
        self.deadline = deadline
        self.override = override
        self.result = ScheduleResult()
        self.successes = 0
        self.failures = 0
        self.stopped = False

    def record(self, outcome: IssueOutcome) -> None:
        self.budget.charge(outcome)
        self.result.suggestions.append(outcome.suggestion)
        self.result.attempted += 1
        self.pending -= 1
        if outcome.fallback:
            self.failures += 1
            self.result.fallbacks += 1
        else:
            self.successes += 1

    def stop(self, reason: str) -> None:
        if not self.stopped:
            self.stopped = True
            msg = f"{reason}; {self.pending} issue(s) not processed"
            log.warning(msg)
            self.result.warnings.append(msg)


class SuggestionScheduler:
    def __init__(
        self,
        gateway: ModelGateway,
        settings: Settings | None = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.gateway = gateway
        self.settings = settings or default_settings
        self._clock = clock
        self._sleep = sleep

    # -- delays

    def batch_delay_ms(self, batch_index: int, tokens_used: int) -> int:
        """grows with batch index and spend, clamped to 5s..30s"""
        raw = self.settings.batch_delay_ms * min(batch_index, 5) + (tokens_used // 1000) * 500
        return int(min(max(raw, MIN_BATCH_DELAY_MS), MAX_BATCH_DELAY_MS))

    def issue_delay_ms(self, failures: int, successes: int) -> int:
        base = self.settings.issue_delay_ms
        attempted = failures + successes
        if failures == 0 or attempted == 0:
            delay = base / 2
        else:
            rate = failures / attempted
            if rate > 0.5:
                delay = base * 2
            elif rate > 0.25:
                delay = base * 1.5
            else:
                delay = base
        return int(min(delay, self.settings.max_issue_delay_ms))

    def should_slow_down(self) -> bool:
        return (
            self.gateway.total_throttles() > self.settings.throttle_slowdown_threshold
            or self.gateway.breaker.state is not CircuitState.CLOSED
        )

    async def _cooldown_if_needed(self) -> None:
        if self.should_slow_down():
            pause = self.settings.batch_delay_ms * 2
            log.info(f"throttling or open circuit, cooling down {pause}ms")
            await self._sleep(pause / 1000)

    # -- guards

    def _out_of_time(self, run: _Run, extra_ms: int = 0) -> bool:
        left = run.deadline.remaining_ms()
        if left < self.settings.timeout_buffer_ms + extra_ms:
            run.stop(f"stopping early, {int(left)}ms left before timeout")
            return True
        return False

    def _out_of_tokens(self, run: _Run) -> bool:
        if run.budget.exhausted():
            run.stop(f"token budget reached ({run.budget.tokens_used}/{run.budget.token_budget})")
            return True
        return False

    def _may_continue(self, run: _Run, extra_ms: int = 0) -> bool:
        return not (run.stopped or self._out_of_time(run, extra_ms) or self._out_of_tokens(run))

    # -- entry

    async def run(self, issues: list[Issue], deadline: Deadline, model_override: str | None = None) -> ScheduleResult:
        start = self._clock()
        budget = RunBudget(self.settings.token_budget, self.settings.token_buffer)
        run = _Run(issues, budget, deadline, model_override)

        if any(i.category is not None for i in issues):
            await self._run_categories(issues, run)
        else:
            await self._run_batches(issues, run)

        res = run.result
        res.tokens_used = budget.tokens_used
        res.cost = budget.cost
        res.elapsed_ms = int((self._clock() - start) * 1000)
        log.info(
            f"scheduler done | suggestions={len(res.suggestions)} fallbacks={res.fallbacks} "
            f"tokens={res.tokens_used} cost=${res.cost:.4f} elapsed={res.elapsed_ms}ms"
        )
        return res

    async def _run_batches(self, issues: list[Issue], run: _Run) -> None:
        size = max(1, self.settings.batch_size)
        batches = [issues[i:i + size] for i in range(0, len(issues), size)]

        for idx, batch in enumerate(batches):
            if not self._may_continue(run):
                break
            if idx > 0:
                await self._sleep(self.batch_delay_ms(idx, run.budget.tokens_used) / 1000)
                if not self._may_continue(run):
                    break
            try:
                await self._process_group(batch, run, category_mode=False)
            except Exception as e:
                log.exception(f"batch {idx + 1} blew up: {e}")
                run.result.warnings.append(f"batch {idx + 1} failed: {e}")
            await self._cooldown_if_needed()

    async def _run_categories(self, issues: list[Issue], run: _Run) -> None:
        groups: dict[Category, list[Issue]] = {c: [] for c in CATEGORY_ORDER}
        for issue in issues:
            groups[issue.category or Category.QUALITY].append(issue)

        started = 0
        for cat in CATEGORY_ORDER:
            group = sorted(groups[cat], key=lambda i: i.severity, reverse=True)  # stable
            if not group:
                continue
            if not self._may_continue(run):
                break
            if started > 0:
                await self._sleep(self.batch_delay_ms(started, run.budget.tokens_used) / 1000)
                if not self._may_continue(run):
                    break
            started += 1

            cap = self.category_budget(cat, len(group), run.budget)
            log.info(f"category {cat.value}: {len(group)} issues, {cap} token allowance")
            try:
                await self._process_group(group, run, category_mode=True, token_cap=cap, label=cat.value)
            except Exception as e:
                log.exception(f"category {cat.value} blew up: {e}")
                run.result.warnings.append(f"{cat.value} issues failed: {e}")
            await self._cooldown_if_needed()

    def category_budget(self, category: Category, issue_count: int, budget: RunBudget) -> int:
        """share of what's left, but never starve a category below a floor"""
        floor = min(MIN_TOKENS_PER_ISSUE * issue_count, budget.token_budget // 3)
        return max(int(budget.remaining * CATEGORY_SHARE[category]), floor)

    async def _process_group(self, issues: list[Issue], run: _Run, category_mode: bool,
                             token_cap: int | None = None, label: str = "") -> None:
        parallel = self.settings.parallel_batches and len(issues) > 1
        limit = max(1, self.settings.max_concurrent_calls)
        spent_at_start = run.budget.tokens_used

        pos = 0
        while pos < len(issues):
            spent = run.budget.tokens_used - spent_at_start
            if token_cap is not None and spent >= token_cap:
                skipped = len(issues) - pos
                run.pending -= skipped
                msg = f"{label} allowance of {token_cap} tokens spent, skipped {skipped} issue(s)"
                log.warning(msg)
                run.result.warnings.append(msg)
                return
            if not self._may_continue(run, extra_ms=self.settings.issue_delay_ms):
                return
            if pos > 0:
                await self._sleep(self.issue_delay_ms(run.failures, run.successes) / 1000)

            if parallel:
                chunk = issues[pos:pos + self._chunk_size(limit, token_cap, spent, pos)]
                await self._process_parallel(chunk, run, category_mode, limit)
            else:
                chunk = issues[pos:pos + 1]
                outcome = await process_issue(
                    self.gateway, chunk[0], self.settings, run.override, category_mode=category_mode
                )
                run.record(outcome)
            pos += len(chunk)

    @staticmethod
    def _chunk_size(limit: int, token_cap: int | None, spent: int, done: int) -> int:
        """how many to fire at once without blowing through the allowance on average spend so far"""
        if token_cap is None or done == 0 or spent <= 0:
            return limit
        per_issue = spent / done
        return max(1, min(limit, math.ceil((token_cap - spent) / per_issue)))

    async def _process_parallel(self, issues: list[Issue], run: _Run, category_mode: bool, limit: int) -> None:
        sem = asyncio.Semaphore(limit)

        async def one(pos: int, issue: Issue) -> IssueOutcome:
            await self._sleep(pos * STAGGER_S)
            async with sem:
                return await process_issue(
                    self.gateway, issue, self.settings, run.override,
                    category_mode=category_mode, caller=f"worker-{pos % limit}",
                )

        outcomes = await asyncio.gather(*(one(pos, issue) for pos, issue in enumerate(issues)))
        for outcome in outcomes:
            run.record(outcome)
