"""Geocoding provider configuration."""

from __future__ import annotations

from dataclasses import dataclass

from .env import env_float, env_str, require_env_vars
from .http_resilience import CacheConfig, RateLimit, ResilienceConfig, RetryPolicy

DEFAULT_NOMINATIM_BASE_URL = "https://nominatim.openstreetmap.org"


def is_search_result(payload: object) -> bool:
    """Only place lists are cached. Error objects from the provider are not."""
    return isinstance(payload, list)


@dataclass(frozen=True, slots=True)
class GeocodingConfig:
    resilience: ResilienceConfig
    min_confidence: float = 0.0


def get_geocoding_config() -> GeocodingConfig:
    """Build the Nominatim client configuration.

    Nominatim's usage policy requires an identifying user agent and at most one
    request per second, so the contact address is mandatory.
    """

    values = require_env_vars(("GEOCODING_APP_NAME", "GEOCODING_CONTACT"))
    user_agent = f"{values['GEOCODING_APP_NAME']} ({values['GEOCODING_CONTACT']})"
    base_url = env_str("GEOCODING_BASE_URL", DEFAULT_NOMINATIM_BASE_URL)

    resilience = ResilienceConfig(
        name="nominatim",
        base_url=base_url,
        timeout_seconds=env_float("GEOCODING_TIMEOUT_SECONDS", 10.0, minimum=0.1),
        ratelimit=RateLimit(max_calls=1, per_seconds=1.0),
        retry=RetryPolicy(total=3),
        cache=CacheConfig(enabled=True, backend="sqlite", should_cache=is_search_result),
        default_headers={"User-Agent": user_agent},
    )
    return GeocodingConfig(
        resilience=resilience,
        min_confidence=env_float("GEOCODING_MIN_CONFIDENCE", 0.0, minimum=0.0),
    )
