# Author: Bradley R. Kinnard — retry, back off, give up gracefully

"""
Model invocation gateway. Every model call goes through here: template short-circuit,
circuit breaker, per-caller rate limiting, retry with exponential backoff, usage accounting.

One instance per warm container. Build it in the entry point and hand it to the scheduler.
"""

import asyncio
import logging
import random
import threading
import time
from typing import Any, Awaitable, Callable

from botocore.exceptions import BotoCoreError, ClientError

from src.suggester.adapters import metrics_client as metrics
from src.suggester.adapters.bedrock_client import BedrockTransport, Transport
from src.suggester.config import Settings, TEMPLATE_MODE, settings as default_settings
from src.suggester.core.circuit_breaker import CircuitBreaker, CircuitState
from src.suggester.core.models import ErrorKind, InvocationRequest, InvocationResult
from src.suggester.core.rate_limiter import SlidingWindowLimiter
from src.suggester.core.tokens import estimate_cost, resolve_usage
from src.suggester.services import template_library

log = logging.getLogger(__name__)

_RETRYABLE_CODES = {
    "ThrottlingException": ErrorKind.THROTTLED,
    "ModelTimeoutException": ErrorKind.TIMEOUT,
}
_TRANSIENT_WORDS = ("timeout", "timed out", "connect", "network")


class GatewayError(Exception):
    """Model call failed for good. kind says why."""

    def __init__(self, kind: ErrorKind, message: str, model_id: str, retries: int = 0):
        super().__init__(message)
        self.kind = kind
        self.model_id = model_id
        self.retries = retries

    def as_result(self) -> InvocationResult:
        return InvocationResult.failed(self.model_id, self.kind, str(self), retries=self.retries)


class CircuitOpenError(GatewayError):
    def __init__(self, model_id: str, remaining_ms: int):
        super().__init__(ErrorKind.CIRCUIT_OPEN, f"circuit open, retry in {remaining_ms}ms", model_id)
        self.remaining_ms = remaining_ms


class RetriesExhaustedError(GatewayError):
    def __init__(self, model_id: str, attempts: int, last_kind: ErrorKind, last_message: str):
        super().__init__(
            ErrorKind.RETRIES_EXHAUSTED,
            f"gave up after {attempts} attempts, last error ({last_kind.value}): {last_message}",
            model_id,
            retries=attempts - 1,
        )
        self.last_kind = last_kind


def classify_error(exc: BaseException) -> tuple[ErrorKind, bool]:
    """(kind, retryable) for anything the transport can throw"""
    if isinstance(exc, ClientError):
        err = exc.response.get("Error", {}) if isinstance(exc.response, dict) else {}
        code = err.get("Code", "")
        if code in _RETRYABLE_CODES:
            return _RETRYABLE_CODES[code], True
        status = (exc.response.get("ResponseMetadata") or {}).get("HTTPStatusCode", 0) if isinstance(exc.response, dict) else 0
        if status >= 500 or status == 429:
            return ErrorKind.SERVICE, True
        return ErrorKind.CLIENT, False

    if isinstance(exc, BotoCoreError):
        msg = str(exc).lower()
        if any(w in msg for w in _TRANSIENT_WORDS):
            return (ErrorKind.TIMEOUT if "time" in msg else ErrorKind.NETWORK), True
        return ErrorKind.NETWORK, False

    return ErrorKind.UNEXPECTED, False


def extract_text(response: Any) -> str:
    """output.message.content[*].text, then a top-level text, then whatever str() gives. Never raises."""
    if isinstance(response, dict):
        output = response.get("output")
        message = output.get("message") if isinstance(output, dict) else None
        content = message.get("content") if isinstance(message, dict) else None
        if isinstance(content, list):
            for block in content:
                if isinstance(block, dict) and isinstance(block.get("text"), str):
                    return block["text"]
        if isinstance(response.get("text"), str):
            return response["text"]
    return str(response)


class ModelGateway:
    def __init__(
        self,
        settings: Settings | None = None,
        transport: Transport | None = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        rng: Callable[[], float] = random.random,
    ):
        self.settings = settings or default_settings
        self.transport = transport or BedrockTransport(self.settings)
        self._clock = clock
        self._sleep = sleep
        self._rng = rng
        self.breaker = CircuitBreaker(
            failure_threshold=self.settings.circuit_failure_threshold,
            reset_timeout_ms=self.settings.circuit_reset_timeout_ms,
            enabled=self.settings.circuit_breaker_enabled,
            clock=clock,
        )
        self.limiter = SlidingWindowLimiter(
            window_size=self.settings.rate_limit_window_size,
            min_interval_ms=self.settings.min_call_interval_ms,
            clock=clock,
        )
        self._stats_lock = threading.Lock()
        self._call_counts: dict[str, int] = {}
        self._throttle_counts: dict[str, int] = {}
        self._latency_ms: dict[str, float] = {}
        self._latency_n: dict[str, int] = {}

    # -- accounting

    def _count_call(self, key: str) -> None:
        with self._stats_lock:
            self._call_counts[key] = self._call_counts.get(key, 0) + 1

    def _count_throttle(self, model_id: str) -> None:
        with self._stats_lock:
            self._throttle_counts[model_id] = self._throttle_counts.get(model_id, 0) + 1
        metrics.model_throttles_total.labels(model=model_id).inc()

    def _record_latency(self, model_id: str, ms: float) -> None:
        with self._stats_lock:
            self._latency_ms[model_id] = self._latency_ms.get(model_id, 0.0) + ms
            self._latency_n[model_id] = self._latency_n.get(model_id, 0) + 1
        metrics.model_call_latency.labels(model=model_id).observe(ms / 1000)

    def _sync_circuit_gauge(self) -> None:
        metrics.circuit_open.set(0 if self.breaker.state is CircuitState.CLOSED else 1)

    def total_throttles(self) -> int:
        with self._stats_lock:
            return sum(self._throttle_counts.values())

    def statistics(self) -> dict:
        """snapshot for the response metadata and /health"""
        with self._stats_lock:
            averages = {m: round(self._latency_ms[m] / n, 1) for m, n in self._latency_n.items() if n}
            return {
                "callCounts": dict(self._call_counts),
                "throttleCounts": dict(self._throttle_counts),
                "circuitState": self.breaker.state.value,
                "consecutiveFailures": self.breaker.consecutive_failures,
                "averageLatencies": averages,
            }

    def reset_statistics(self) -> None:
        with self._stats_lock:
            self._call_counts.clear()
            self._throttle_counts.clear()
            self._latency_ms.clear()
            self._latency_n.clear()
        self.limiter.reset()
        self.breaker.reset()
        self._sync_circuit_gauge()

    # -- the call

    def backoff_delay(self, attempt: int) -> float:
        """seconds to wait after failed attempt n (1-based): capped exponential plus up to 25% jitter"""
        base = min(self.settings.retry_base_delay_ms * (2 ** (attempt - 1)), self.settings.retry_max_delay_ms)
        jitter = self._rng() * self.settings.retry_jitter * base
        return (base + jitter) / 1000

    def _template_result(self, prompt: str) -> InvocationResult:
        return InvocationResult(
            success=True,
            model_id=TEMPLATE_MODE,
            response_text=template_library.render(prompt),
            input_tokens=template_library.TEMPLATE_INPUT_TOKENS,
            output_tokens=template_library.TEMPLATE_OUTPUT_TOKENS,
            total_tokens=template_library.TEMPLATE_TOTAL_TOKENS,
            estimated_cost=template_library.TEMPLATE_COST,
        )

    async def invoke(
        self,
        model_id: str,
        prompt: str,
        max_tokens: int,
        temperature: float | None = None,
        top_p: float | None = None,
        caller: str = "default",
    ) -> InvocationResult:
        """
        One logical call. Returns a successful InvocationResult or raises GatewayError.
        TEMPLATE_MODE never touches the network, the breaker or the limiter.
        """
        if model_id == TEMPLATE_MODE:
            return self._template_result(prompt)

        remaining = self.breaker.before_call()
        if remaining:
            metrics.model_calls_total.labels(model=model_id, outcome="circuit_open").inc()
            raise CircuitOpenError(model_id, remaining)

        key = f"{model_id}-{caller}"
        temperature = self.settings.temperature if temperature is None else temperature
        attempts = self.settings.max_retries
        start = self._clock()
        last_kind, last_msg = ErrorKind.UNEXPECTED, "no attempt made"

        for attempt in range(1, attempts + 1):
            await self.limiter.acquire(key, self._sleep)
            self._count_call(key)
            request = InvocationRequest(
                model_id=model_id, prompt=prompt, max_tokens=max_tokens, temperature=temperature, top_p=top_p
            )
            try:
                response = await self.transport.converse(request)
            except Exception as e:
                kind, retryable = classify_error(e)
                if kind is ErrorKind.THROTTLED:
                    self._count_throttle(model_id)
                if not retryable:
                    self.breaker.record_failure()
                    self._sync_circuit_gauge()
                    self._finish(model_id, start, attempt - 1, ok=False)
                    raise GatewayError(kind, f"{type(e).__name__}: {e}", model_id, retries=attempt - 1) from e

                last_kind, last_msg = kind, f"{type(e).__name__}: {e}"
                if attempt < attempts:
                    delay = self.backoff_delay(attempt)
                    metrics.model_retries_total.labels(model=model_id).inc()
                    log.warning(f"{kind.value} on {model_id} attempt {attempt}/{attempts}, backing off {delay:.2f}s")
                    await self._sleep(delay)
                continue

            self.breaker.record_success()
            self._sync_circuit_gauge()
            return self._build_result(model_id, prompt, response, start, attempt - 1)

        self.breaker.record_failure()
        self._sync_circuit_gauge()
        self._finish(model_id, start, attempts - 1, ok=False)
        raise RetriesExhaustedError(model_id, attempts, last_kind, last_msg)

    def _build_result(self, model_id: str, prompt: str, response: Any, start: float, retries: int) -> InvocationResult:
        text = extract_text(response)
        usage = response.get("usage") if isinstance(response, dict) else None
        inp, out, total = resolve_usage(usage, prompt, text)
        cost = estimate_cost(inp, out, self.settings)
        latency = self._finish(model_id, start, retries, ok=True, tokens=total, cost=cost)

        metrics.llm_tokens_total.labels(model=model_id, direction="input").inc(inp)
        metrics.llm_tokens_total.labels(model=model_id, direction="output").inc(out)
        return InvocationResult(
            success=True,
            model_id=model_id,
            response_text=text,
            input_tokens=inp,
            output_tokens=out,
            total_tokens=total,
            estimated_cost=cost,
            latency_ms=latency,
            retries=retries,
        )

    def _finish(self, model_id: str, start: float, retries: int, ok: bool, tokens: int = 0, cost: float = 0.0) -> int:
        latency = int((self._clock() - start) * 1000)
        self._record_latency(model_id, latency)
        metrics.model_calls_total.labels(model=model_id, outcome="success" if ok else "failed").inc()
        log.info(
            f"model call | model={model_id} tokens={tokens} cost=${cost:.6f} latency={latency}ms "
            f"retries={retries} success={ok} circuit={self.breaker.state.value}"
        )
        return latency
