"""Domain model for the import pipeline."""

from __future__ import annotations

from importflow.domain.model.dataset import (
    Dataset,
    DeduplicationConfig,
    IdStrategy,
    SchemaConfig,
)
from importflow.domain.model.duplicates import (
    DuplicateAnalysis,
    DuplicateSummary,
    ExternalDuplicate,
    InternalDuplicate,
)
from importflow.domain.model.enums import (
    ChangeType,
    CoordinateSource,
    DeduplicationStrategy,
    ErrorType,
    GeocodeSource,
    IdStrategyType,
    ImportStage,
    RecoveryAction,
    Severity,
    TypeChangePolicy,
)
from importflow.domain.model.event import Event
from importflow.domain.model.import_job import (
    FieldMappings,
    GeocodingResult,
    ImportJob,
    ImportResults,
    Progress,
    RowError,
)
from importflow.domain.model.recovery import (
    ErrorClassification,
    ErrorLog,
    ManualReset,
    RecoveryAttempt,
)
from importflow.domain.model.schema_change import (
    EnumChange,
    FormatChange,
    NewField,
    RemovedField,
    Scalar,
    SchemaChange,
    SchemaComparison,
    TypeChange,
)
from importflow.domain.model.schema_version import SchemaVersion

__all__ = [
    "ChangeType",
    "CoordinateSource",
    "Dataset",
    "DeduplicationConfig",
    "DeduplicationStrategy",
    "DuplicateAnalysis",
    "DuplicateSummary",
    "EnumChange",
    "ErrorClassification",
    "ErrorLog",
    "ErrorType",
    "Event",
    "ExternalDuplicate",
    "FieldMappings",
    "FormatChange",
    "GeocodeSource",
    "GeocodingResult",
    "IdStrategy",
    "IdStrategyType",
    "ImportJob",
    "ImportResults",
    "ImportStage",
    "InternalDuplicate",
    "ManualReset",
    "NewField",
    "Progress",
    "RecoveryAction",
    "RecoveryAttempt",
    "RemovedField",
    "RowError",
    "Scalar",
    "SchemaChange",
    "SchemaComparison",
    "SchemaConfig",
    "SchemaVersion",
    "Severity",
    "TypeChange",
    "TypeChangePolicy",
]
