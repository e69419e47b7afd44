"""Retry and error recovery tunables."""

from __future__ import annotations

from dataclasses import dataclass

from .env import env_bool, env_float, env_int
from .errors import ConfigurationError

DEFAULT_MAX_RETRIES = 3
DEFAULT_BASE_DELAY_MS = 30_000
DEFAULT_MAX_DELAY_MS = 300_000
DEFAULT_BACKOFF_MULTIPLIER = 2.0
DEFAULT_SWEEP_LIMIT = 10
DEFAULT_RECOMMENDATION_LIMIT = 100


@dataclass(frozen=True, slots=True)
class RetryConfig:
    """Backoff parameters for failed import jobs.

    ``unknown_errors_retryable`` controls how messages that match no known pattern
    are treated. Either way ``max_retries`` caps the number of automatic attempts.
    """

    max_retries: int = DEFAULT_MAX_RETRIES
    base_delay_ms: int = DEFAULT_BASE_DELAY_MS
    max_delay_ms: int = DEFAULT_MAX_DELAY_MS
    backoff_multiplier: float = DEFAULT_BACKOFF_MULTIPLIER
    unknown_errors_retryable: bool = True
    sweep_limit: int = DEFAULT_SWEEP_LIMIT
    recommendation_limit: int = DEFAULT_RECOMMENDATION_LIMIT

    def __post_init__(self) -> None:
        if self.max_retries < 0:
            raise ConfigurationError("max_retries must be non-negative")
        if self.base_delay_ms < 0 or self.max_delay_ms < 0:
            raise ConfigurationError("retry delays must be non-negative")
        if self.max_delay_ms < self.base_delay_ms:
            raise ConfigurationError("max_delay_ms must not be smaller than base_delay_ms")
        if self.backoff_multiplier < 1:
            raise ConfigurationError("backoff_multiplier must be >= 1")


def get_retry_config() -> RetryConfig:
    return RetryConfig(
        max_retries=env_int("IMPORTFLOW_MAX_RETRIES", DEFAULT_MAX_RETRIES, minimum=0),
        base_delay_ms=env_int("IMPORTFLOW_RETRY_BASE_DELAY_MS", DEFAULT_BASE_DELAY_MS, minimum=0),
        max_delay_ms=env_int("IMPORTFLOW_RETRY_MAX_DELAY_MS", DEFAULT_MAX_DELAY_MS, minimum=0),
        backoff_multiplier=env_float(
            "IMPORTFLOW_RETRY_BACKOFF_MULTIPLIER", DEFAULT_BACKOFF_MULTIPLIER, minimum=1.0
        ),
        unknown_errors_retryable=env_bool("IMPORTFLOW_UNKNOWN_ERRORS_RETRYABLE", default=True),
        sweep_limit=env_int("IMPORTFLOW_RETRY_SWEEP_LIMIT", DEFAULT_SWEEP_LIMIT, minimum=1),
    )
