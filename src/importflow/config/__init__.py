"""Application configuration helpers."""

from __future__ import annotations

from .env import env_bool, env_float, env_int, env_str, require_env_var, require_env_vars
from .errors import ConfigurationError, MissingConfigurationError
from .geocoding import GeocodingConfig, get_geocoding_config
from .http_resilience import CacheConfig, RateLimit, ResilienceConfig, RetryPolicy
from .pipeline import BatchSizes, PipelineConfig, SchemaBuilderConfig, get_pipeline_config
from .recovery import RetryConfig, get_retry_config
from .storage import DatabaseConfig, StorageConfig, get_database_config, get_storage_config

__all__ = [
    "BatchSizes",
    "CacheConfig",
    "ConfigurationError",
    "DatabaseConfig",
    "GeocodingConfig",
    "MissingConfigurationError",
    "PipelineConfig",
    "RateLimit",
    "ResilienceConfig",
    "RetryConfig",
    "RetryPolicy",
    "SchemaBuilderConfig",
    "StorageConfig",
    "env_bool",
    "env_float",
    "env_int",
    "env_str",
    "get_database_config",
    "get_geocoding_config",
    "get_pipeline_config",
    "get_retry_config",
    "get_storage_config",
    "require_env_var",
    "require_env_vars",
]
