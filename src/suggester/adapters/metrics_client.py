# Author: Bradley R. Kinnard — counting everything

"""Prometheus metrics. Import and use from anywhere."""

from prometheus_client import Counter, Histogram, Gauge, REGISTRY, generate_latest

# one observation per logical model call, retries included
model_call_latency = Histogram(
    "model_call_latency_seconds",
    "Wall time of a model call including retries",
    ["model"],
    buckets=[0.5, 1.0, 2.0, 5.0, 10.0, 30.0, 60.0, 120.0]
)

model_calls_total = Counter(
    "model_calls_total",
    "Model calls by outcome",
    ["model", "outcome"]  # success, failed, circuit_open
)

model_throttles_total = Counter(
    "model_throttles_total",
    "Throttling responses from the generation endpoint",
    ["model"]
)

model_retries_total = Counter(
    "model_retries_total",
    "Retry attempts after a retryable error",
    ["model"]
)

llm_tokens_total = Counter(
    "llm_tokens_total",
    "Tokens consumed",
    ["model", "direction"]  # input, output
)

circuit_open = Gauge(
    "circuit_open",
    "1 while the generation circuit is not CLOSED"
)

# scheduler side
suggestions_total = Counter(
    "suggestions_total",
    "Suggestions produced",
    ["source"]  # model, template, fallback
)

invocation_latency = Histogram(
    "invocation_latency_seconds",
    "Time for a whole suggestion invocation",
    buckets=[1.0, 5.0, 15.0, 60.0, 180.0, 450.0, 900.0]
)

store_errors_total = Counter(
    "store_errors_total",
    "Failed writes to the results store",
    ["operation"]
)


def get_metrics() -> bytes:
    """dump all metrics in prometheus format"""
    return generate_latest(REGISTRY)
