"""Duplicate analysis results persisted on an import job."""

from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID  # noqa: TC003

from importflow.domain.model.enums import DeduplicationStrategy


@dataclass(frozen=True, slots=True, kw_only=True)
class InternalDuplicate:
    row_number: int
    unique_id: str
    first_occurrence: int


@dataclass(frozen=True, slots=True, kw_only=True)
class ExternalDuplicate:
    row_number: int
    unique_id: str
    existing_event_id: UUID


@dataclass(frozen=True, slots=True, kw_only=True)
class DuplicateSummary:
    total_rows: int = 0
    unique_rows: int = 0
    internal_duplicates: int = 0
    external_duplicates: int = 0

    @property
    def duplicates(self) -> int:
        return self.internal_duplicates + self.external_duplicates


@dataclass(frozen=True, slots=True, kw_only=True)
class DuplicateAnalysis:
    strategy: DeduplicationStrategy
    internal: tuple[InternalDuplicate, ...] = ()
    external: tuple[ExternalDuplicate, ...] = ()
    summary: DuplicateSummary = DuplicateSummary()

    def internal_rows(self) -> frozenset[int]:
        return frozenset(dup.row_number for dup in self.internal)

    def external_by_row(self) -> dict[int, ExternalDuplicate]:
        return {dup.row_number: dup for dup in self.external}

    def skipped_rows(self) -> frozenset[int]:
        """Rows that never become new events under the configured strategy."""

        rows = set(self.internal_rows())
        if self.strategy is DeduplicationStrategy.SKIP:
            rows.update(dup.row_number for dup in self.external)
        return frozenset(rows)
