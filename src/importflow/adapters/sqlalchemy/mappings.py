"""SQLAlchemy mapping metadata for the import pipeline model.

Entities are mapped imperatively onto plain dataclasses. Frozen value objects
(configs, progress, comparisons, error logs) are stored as JSON documents and
validated back into their dataclasses on load.
"""

from __future__ import annotations

import logging
import uuid
from datetime import UTC, datetime
from enum import StrEnum
from functools import cache, cached_property
from typing import TYPE_CHECKING, Any

from pydantic import TypeAdapter
from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Dialect,
    Enum,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Table,
    TypeDecorator,
    UniqueConstraint,
    Uuid,
    orm,
)
from sqlalchemy.orm import configure_mappers

from importflow.domain.model import (
    CoordinateSource,
    Dataset,
    DeduplicationConfig,
    DuplicateAnalysis,
    ErrorLog,
    Event,
    FieldMappings,
    GeocodingResult,
    IdStrategy,
    ImportJob,
    ImportResults,
    ImportStage,
    Progress,
    RowError,
    SchemaChange,
    SchemaComparison,
    SchemaConfig,
    SchemaVersion,
)

if TYPE_CHECKING:
    from sqlalchemy.engine import Engine

log = logging.getLogger(__name__)

UUIDColumnType = Uuid[uuid.UUID]
JSONDocument = JSON(none_as_null=True)


class UTCDateTime(TypeDecorator[datetime]):
    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value: datetime | None, dialect: Dialect) -> datetime | None:
        _ = dialect
        if value is None:
            return None
        if value.tzinfo is None:
            value = value.replace(tzinfo=UTC)
        return value.astimezone(UTC)

    def process_result_value(self, value: datetime | None, dialect: Dialect) -> datetime | None:
        _ = dialect
        if value is None:
            return None
        return value if value.tzinfo else value.replace(tzinfo=UTC)


class PydanticJSON(TypeDecorator[Any]):
    """Store a frozen value object (or tuple of them) as a JSON document.

    ``python_type`` is any annotation pydantic can validate; it doubles as the
    statement cache key, so it must be hashable.
    """

    impl = JSON(none_as_null=True)
    cache_ok = True
    python_type: Any = None  # shadows TypeEngine's read-only property

    def __init__(self, python_type: Any) -> None:
        super().__init__()
        self.python_type = python_type

    @cached_property
    def _adapter(self) -> TypeAdapter[Any]:
        return TypeAdapter(self.python_type)

    def process_bind_param(self, value: Any, dialect: Dialect) -> Any:
        _ = dialect
        if value is None:
            return None
        return self._adapter.dump_python(value, mode="json")

    def process_result_value(self, value: Any, dialect: Dialect) -> Any:
        _ = dialect
        if value is None:
            return None
        return self._adapter.validate_python(value)


def _enum_column_type(enum_cls: type[StrEnum]) -> Enum:
    return Enum(
        enum_cls,
        native_enum=False,
        values_callable=lambda members: [member.value for member in members],
        length=32,
    )


mapper_registry = orm.registry()
mapper_registry.metadata.naming_convention = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}

dataset_table = Table(
    "dataset",
    mapper_registry.metadata,
    Column("id", UUIDColumnType, primary_key=True, default=uuid.uuid4),
    Column("name", String, nullable=False),
    Column("schema_config", PydanticJSON(SchemaConfig), nullable=False),
    Column("deduplication_config", PydanticJSON(DeduplicationConfig), nullable=False),
    Column("id_strategy", PydanticJSON(IdStrategy), nullable=False),
    Column("geocoding_enabled", Boolean, nullable=False, default=True),
    Column("created_at", UTCDateTime(), nullable=False),
)

import_job_table = Table(
    "import_job",
    mapper_registry.metadata,
    Column("id", UUIDColumnType, primary_key=True, default=uuid.uuid4),
    Column(
        "dataset_id",
        UUIDColumnType,
        ForeignKey("dataset.id", ondelete="CASCADE"),
        nullable=False,
    ),
    Column("source", String, nullable=False),
    Column("stage", _enum_column_type(ImportStage), nullable=False),
    Column("last_successful_stage", _enum_column_type(ImportStage), nullable=True),
    Column("retry_attempts", Integer, nullable=False, default=0),
    Column("last_retry_at", UTCDateTime(), nullable=True),
    Column("next_retry_at", UTCDateTime(), nullable=True),
    Column("error_log", PydanticJSON(ErrorLog), nullable=False),
    Column("schema_builder_state", JSONDocument, nullable=True),
    Column("detected_schema", JSONDocument, nullable=True),
    Column("schema_validation", PydanticJSON(SchemaComparison), nullable=True),
    Column("duplicates", PydanticJSON(DuplicateAnalysis), nullable=True),
    Column("progress", PydanticJSON(Progress), nullable=False),
    Column("field_mappings", PydanticJSON(FieldMappings), nullable=False),
    Column("geocoding_results", PydanticJSON(tuple[GeocodingResult, ...]), nullable=False),
    Column("row_errors", PydanticJSON(tuple[RowError, ...]), nullable=False),
    Column("results", PydanticJSON(ImportResults), nullable=True),
    Column(
        "schema_version_id",
        UUIDColumnType,
        ForeignKey("schema_version.id", ondelete="SET NULL"),
        nullable=True,
    ),
    Column("version", Integer, nullable=False),
    Column("created_at", UTCDateTime(), nullable=False),
    Column("updated_at", UTCDateTime(), nullable=True),
    Index("ix_import_job_stage_next_retry_at", "stage", "next_retry_at"),
)

schema_version_table = Table(
    "schema_version",
    mapper_registry.metadata,
    Column("id", UUIDColumnType, primary_key=True, default=uuid.uuid4),
    Column(
        "dataset_id",
        UUIDColumnType,
        ForeignKey("dataset.id", ondelete="CASCADE"),
        nullable=False,
    ),
    Column("version_number", Integer, nullable=False),
    Column("schema", JSONDocument, nullable=False),
    Column("field_metadata", JSONDocument, nullable=False),
    Column("approval_required", Boolean, nullable=False, default=False),
    Column("auto_approved", Boolean, nullable=False, default=False),
    Column("approved_by", String, nullable=True),
    Column("conflicts", PydanticJSON(tuple[SchemaChange, ...]), nullable=False),
    Column("import_sources", PydanticJSON(tuple[uuid.UUID, ...]), nullable=False),
    Column("created_at", UTCDateTime(), nullable=False),
    UniqueConstraint("dataset_id", "version_number", name="uq_schema_version_dataset_number"),
)

event_table = Table(
    "event",
    mapper_registry.metadata,
    Column("id", UUIDColumnType, primary_key=True, default=uuid.uuid4),
    Column(
        "dataset_id",
        UUIDColumnType,
        ForeignKey("dataset.id", ondelete="CASCADE"),
        nullable=False,
    ),
    Column(
        "import_job_id",
        UUIDColumnType,
        ForeignKey("import_job.id", ondelete="CASCADE"),
        nullable=False,
    ),
    Column("row_number", Integer, nullable=False),
    Column("unique_id", String, nullable=False),
    Column("content_hash", String(64), nullable=False),
    Column("data", JSONDocument, nullable=False),
    Column("latitude", Float, nullable=True),
    Column("longitude", Float, nullable=True),
    Column("coordinate_source", _enum_column_type(CoordinateSource), nullable=False),
    Column("geocoding_confidence", Float, nullable=True),
    Column("normalized_address", String, nullable=True),
    Column("event_timestamp", UTCDateTime(), nullable=True),
    Column("schema_version_number", Integer, nullable=True),
    Column("superseded", Boolean, nullable=False, default=False),
    Column("created_at", UTCDateTime(), nullable=False),
    Column("updated_at", UTCDateTime(), nullable=True),
    Index("ix_event_dataset_unique_id", "dataset_id", "unique_id"),
    Index("ix_event_import_job_id", "import_job_id"),
)


@cache
def start_mappers() -> orm.registry:
    """Configure SQLAlchemy mappers for the domain model."""

    log.info("Starting SQLAlchemy mappers")

    mapper_registry.map_imperatively(Dataset, dataset_table)
    mapper_registry.map_imperatively(
        ImportJob,
        import_job_table,
        version_id_col=import_job_table.c.version,
    )
    mapper_registry.map_imperatively(SchemaVersion, schema_version_table)
    mapper_registry.map_imperatively(Event, event_table)

    configure_mappers()
    return mapper_registry


def create_all_tables(engine: Engine) -> None:
    """Create database tables for the mapped metadata."""

    log.info("Creating all tables")
    mapper_registry.metadata.create_all(engine)
