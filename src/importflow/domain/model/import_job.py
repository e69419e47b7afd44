"""Import job aggregate: one dataset's worth of source rows moving through the pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from typing import Any
from uuid import UUID, uuid4

from importflow.domain.model.duplicates import DuplicateAnalysis  # noqa: TC001
from importflow.domain.model.enums import GeocodeSource, ImportStage
from importflow.domain.model.recovery import ErrorLog
from importflow.domain.model.schema_change import SchemaComparison  # noqa: TC001


def _utcnow() -> datetime:
    return datetime.now(UTC)


@dataclass(frozen=True, slots=True, kw_only=True)
class Progress:
    stage: ImportStage | None = None
    processed: int = 0
    total: int = 0
    batches_processed: int = 0

    def for_stage(self, stage: ImportStage, *, total: int | None = None) -> Progress:
        if self.stage is stage:
            return self if total is None else replace(self, total=total)
        return Progress(stage=stage, total=total if total is not None else self.total)

    def with_batch(self, batch_number: int, processed: int) -> Progress:
        return replace(self, batches_processed=batch_number + 1, processed=processed)

    @property
    def percent(self) -> float:
        if self.total <= 0:
            return 0.0
        return min(100.0, self.processed / self.total * 100)


@dataclass(frozen=True, slots=True, kw_only=True)
class FieldMappings:
    """Source columns the pipeline interprets beyond storing them verbatim."""

    latitude_path: str | None = None
    longitude_path: str | None = None
    coordinates_path: str | None = None
    address_path: str | None = None
    timestamp_path: str | None = None
    geo_confidence: float = 0.0

    @property
    def has_coordinates(self) -> bool:
        if self.coordinates_path is not None:
            return True
        return self.latitude_path is not None and self.longitude_path is not None

    @property
    def is_geocodable(self) -> bool:
        return self.address_path is not None or self.has_coordinates


@dataclass(frozen=True, slots=True, kw_only=True)
class GeocodingResult:
    row_number: int
    latitude: float
    longitude: float
    confidence: float
    source: GeocodeSource
    formatted_address: str | None = None


@dataclass(frozen=True, slots=True, kw_only=True)
class RowError:
    row: int
    error: str


@dataclass(frozen=True, slots=True, kw_only=True)
class ImportResults:
    total_events: int = 0
    duplicates_skipped: int = 0
    geocoded: int = 0
    errors: int = 0


@dataclass(eq=False, kw_only=True)
class ImportJob:
    """Mutable pipeline state for one import.

    Only stage handlers and the recovery service change a job. Value-object fields
    are frozen and replaced wholesale so persistence picks up every change.
    ``version`` is the optimistic concurrency counter owned by the repository.
    """

    id: UUID = field(default_factory=uuid4)
    dataset_id: UUID
    source: str
    stage: ImportStage = ImportStage.DETECT_SCHEMA
    last_successful_stage: ImportStage | None = None
    retry_attempts: int = 0
    last_retry_at: datetime | None = None
    next_retry_at: datetime | None = None
    error_log: ErrorLog = field(default_factory=ErrorLog)
    schema_builder_state: dict[str, Any] | None = None
    detected_schema: dict[str, Any] | None = None
    schema_validation: SchemaComparison | None = None
    duplicates: DuplicateAnalysis | None = None
    progress: Progress = field(default_factory=Progress)
    field_mappings: FieldMappings = field(default_factory=FieldMappings)
    geocoding_results: tuple[GeocodingResult, ...] = ()
    row_errors: tuple[RowError, ...] = ()
    results: ImportResults | None = None
    schema_version_id: UUID | None = None
    version: int = 0
    created_at: datetime = field(default_factory=_utcnow)
    updated_at: datetime | None = None

    @property
    def is_terminal(self) -> bool:
        return self.stage is ImportStage.COMPLETED

    @property
    def is_failed(self) -> bool:
        return self.stage is ImportStage.FAILED

    def geocoding_by_row(self) -> dict[int, GeocodingResult]:
        return {result.row_number: result for result in self.geocoding_results}

    def merge_geocoding_results(self, results: list[GeocodingResult]) -> None:
        merged = self.geocoding_by_row()
        for result in results:
            merged[result.row_number] = result
        self.geocoding_results = tuple(merged[row] for row in sorted(merged))

    def merge_row_errors(self, errors: list[RowError]) -> None:
        """Replace errors for the given rows so redelivered batches do not duplicate them."""

        rows = {error.row for error in errors}
        kept = [error for error in self.row_errors if error.row not in rows]
        self.row_errors = tuple(sorted((*kept, *errors), key=lambda error: error.row))
