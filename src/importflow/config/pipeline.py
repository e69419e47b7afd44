"""Batch sizes and schema inference limits for the import pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal

from .env import env_float, env_int, env_str
from .errors import ConfigurationError

DEFAULT_SCHEMA_DETECTION_BATCH_SIZE = 10_000
DEFAULT_DUPLICATE_ANALYSIS_BATCH_SIZE = 5_000
DEFAULT_GEOCODING_BATCH_SIZE = 100
DEFAULT_EVENT_CREATION_BATCH_SIZE = 1_000
DEFAULT_DUPLICATE_LOOKUP_CHUNK_SIZE = 1_000
DEFAULT_SWEEP_INTERVAL_SECONDS = 300.0

type EnumMode = Literal["count", "percentage"]


@dataclass(frozen=True, slots=True)
class SchemaBuilderConfig:
    max_samples: int = 100
    max_unique_values: int = 100
    enum_threshold: float = 50
    enum_mode: EnumMode = "count"
    max_depth: int = 3
    minority_threshold: float = 0.1
    required_ratio: float = 0.9
    format_ratio: float = 0.8

    def __post_init__(self) -> None:
        if self.enum_mode not in ("count", "percentage"):
            raise ConfigurationError(f"Unsupported enum mode: {self.enum_mode}")
        if self.max_depth < 1:
            raise ConfigurationError("max_depth must be at least 1")
        if not 0 < self.minority_threshold < 1:
            raise ConfigurationError("minority_threshold must be between 0 and 1")


@dataclass(frozen=True, slots=True)
class BatchSizes:
    schema_detection: int = DEFAULT_SCHEMA_DETECTION_BATCH_SIZE
    duplicate_analysis: int = DEFAULT_DUPLICATE_ANALYSIS_BATCH_SIZE
    geocoding: int = DEFAULT_GEOCODING_BATCH_SIZE
    event_creation: int = DEFAULT_EVENT_CREATION_BATCH_SIZE


@dataclass(frozen=True, slots=True)
class PipelineConfig:
    batch_sizes: BatchSizes = field(default_factory=BatchSizes)
    schema_builder: SchemaBuilderConfig = field(default_factory=SchemaBuilderConfig)
    duplicate_lookup_chunk_size: int = DEFAULT_DUPLICATE_LOOKUP_CHUNK_SIZE
    sweep_interval_seconds: float = DEFAULT_SWEEP_INTERVAL_SECONDS


def get_pipeline_config() -> PipelineConfig:
    enum_mode = env_str("IMPORTFLOW_ENUM_MODE", "count")
    if enum_mode not in ("count", "percentage"):
        raise ConfigurationError(
            f"IMPORTFLOW_ENUM_MODE must be count or percentage, got {enum_mode}",
            setting="IMPORTFLOW_ENUM_MODE",
        )
    return PipelineConfig(
        batch_sizes=BatchSizes(
            schema_detection=env_int(
                "IMPORTFLOW_SCHEMA_BATCH_SIZE", DEFAULT_SCHEMA_DETECTION_BATCH_SIZE, minimum=1
            ),
            duplicate_analysis=env_int(
                "IMPORTFLOW_DUPLICATE_BATCH_SIZE", DEFAULT_DUPLICATE_ANALYSIS_BATCH_SIZE, minimum=1
            ),
            geocoding=env_int("IMPORTFLOW_GEOCODING_BATCH_SIZE", DEFAULT_GEOCODING_BATCH_SIZE, minimum=1),
            event_creation=env_int(
                "IMPORTFLOW_EVENT_BATCH_SIZE", DEFAULT_EVENT_CREATION_BATCH_SIZE, minimum=1
            ),
        ),
        schema_builder=SchemaBuilderConfig(
            max_samples=env_int("IMPORTFLOW_SCHEMA_MAX_SAMPLES", 100, minimum=0),
            max_unique_values=env_int("IMPORTFLOW_SCHEMA_MAX_UNIQUE_VALUES", 100, minimum=1),
            enum_threshold=env_float("IMPORTFLOW_ENUM_THRESHOLD", 50, minimum=0),
            enum_mode="percentage" if enum_mode == "percentage" else "count",
            max_depth=env_int("IMPORTFLOW_SCHEMA_MAX_DEPTH", 3, minimum=1),
        ),
        duplicate_lookup_chunk_size=env_int(
            "IMPORTFLOW_DUPLICATE_LOOKUP_CHUNK_SIZE", DEFAULT_DUPLICATE_LOOKUP_CHUNK_SIZE, minimum=1
        ),
        sweep_interval_seconds=env_float(
            "IMPORTFLOW_SWEEP_INTERVAL_SECONDS", DEFAULT_SWEEP_INTERVAL_SECONDS, minimum=1.0
        ),
    )
