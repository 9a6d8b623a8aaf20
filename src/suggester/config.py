# Author: Bradley R. Kinnard — env vars or bust

"""
Settings via pydantic-settings. Reads from env, falls back to .env file.
Every knob the gateway and scheduler care about lives here so a deploy can retune without a rebuild.
"""

from pydantic_settings import BaseSettings

TEMPLATE_MODE = "TEMPLATE_MODE"  # sentinel model id, never sent to bedrock


class Settings(BaseSettings):
    log_level: str = "INFO"

    # models
    model_id: str = "amazon.nova-pro-v1:0"  # primary tier
    light_model_id: str = "amazon.nova-lite-v1:0"
    bedrock_region: str = "us-east-1"
    bedrock_endpoint: str | None = None  # for localstack or a vpc endpoint
    bedrock_read_timeout: int = 120

    # generation
    max_tokens: int = 8000
    temperature: float = 0.3
    top_p: float = 0.9  # accepted, not transmitted
    input_token_cost: float = 0.80  # $ per million
    output_token_cost: float = 3.20

    # retry / breaker / rate limiting
    max_retries: int = 5
    retry_base_delay_ms: int = 1000
    retry_max_delay_ms: int = 60_000
    retry_jitter: float = 0.25
    circuit_breaker_enabled: bool = True
    circuit_failure_threshold: int = 3
    circuit_reset_timeout_ms: int = 120_000
    rate_limit_window_size: int = 10
    min_call_interval_ms: int = 5000

    # scheduling
    batch_size: int = 1
    batch_delay_ms: int = 2000
    max_concurrent_calls: int = 2
    parallel_batches: bool = False
    token_budget: int = 40_000
    token_buffer: int = 5000
    timeout_buffer_ms: int = 30_000
    issue_delay_ms: int = 1000
    max_issue_delay_ms: int = 3000
    throttle_slowdown_threshold: int = 2
    max_issues_per_analysis: int = 25
    invocation_timeout_ms: int = 900_000  # lambda max, used when there is no lambda context

    # routing, percent of the hash space
    route_light_pct: int = 90
    route_template_pct: int = 9
    route_critical_primary_pct: int = 1

    # storage
    analysis_results_table: str = "smartcode-analysis-results"
    issue_details_table: str = "smartcode-issue-details"
    suggestion_ttl_seconds: int = 7 * 24 * 3600
    redis_url: str = "redis://localhost:6379/0"
    aws_region: str = "us-east-1"
    dynamodb_endpoint: str | None = None  # http://localhost:8000 for local

    # AWS creds for local dev
    aws_access_key_id: str | None = None
    aws_secret_access_key: str | None = None

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"  # ignore unknown env vars


settings = Settings()
