"""Schema inference, comparison and versioning."""

from __future__ import annotations

from .builder import (
    BatchObservation,
    JsonSchema,
    ProgressiveSchemaBuilder,
    SchemaBuilderState,
    SchemaStateError,
    TypeConflict,
    TypeConflictSample,
)
from .comparison import change_summary, compare, describe_change, flatten_schema
from .patterns import DetectedGeoFields, detect_geo_fields, detect_id_fields, detect_timestamp_field
from .statistics import FieldStatistics, ValueType
from .versioning import SchemaVersioningService, VersioningDecision

__all__ = [
    "BatchObservation",
    "DetectedGeoFields",
    "FieldStatistics",
    "JsonSchema",
    "ProgressiveSchemaBuilder",
    "SchemaBuilderState",
    "SchemaStateError",
    "SchemaVersioningService",
    "TypeConflict",
    "TypeConflictSample",
    "ValueType",
    "VersioningDecision",
    "change_summary",
    "compare",
    "describe_change",
    "detect_geo_fields",
    "detect_id_fields",
    "detect_timestamp_field",
    "flatten_schema",
]
