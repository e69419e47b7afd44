"""Stage handlers of the import pipeline."""

from __future__ import annotations

from typing import TYPE_CHECKING

from .analyze_duplicates import AnalyzeDuplicatesHandler
from .create_events import CreateEventsHandler
from .detect_schema import DetectSchemaHandler, field_mappings_from
from .geocode_batch import GeocodeBatchHandler
from .validate_schema import ValidateSchemaHandler

if TYPE_CHECKING:
    from importflow.config import PipelineConfig
    from importflow.domain.pipeline.runner import StageHandler
    from importflow.domain.ports import Geocoder, SourceReader


def default_handlers(
    *,
    reader: SourceReader,
    config: PipelineConfig,
    geocoder: Geocoder | None = None,
    min_geocoding_confidence: float = 0.0,
) -> tuple[StageHandler, ...]:
    """One handler per runnable stage, in pipeline order."""

    return (
        DetectSchemaHandler(reader, config),
        ValidateSchemaHandler(config),
        AnalyzeDuplicatesHandler(reader, config),
        GeocodeBatchHandler(reader, config, geocoder, min_confidence=min_geocoding_confidence),
        CreateEventsHandler(reader, config),
    )


__all__ = [
    "AnalyzeDuplicatesHandler",
    "CreateEventsHandler",
    "DetectSchemaHandler",
    "GeocodeBatchHandler",
    "ValidateSchemaHandler",
    "default_handlers",
    "field_mappings_from",
]
