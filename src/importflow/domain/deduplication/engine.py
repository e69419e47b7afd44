"""Internal and external duplicate detection plus per-row resolution."""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from itertools import batched
from logging import getLogger
from typing import TYPE_CHECKING, Any

from importflow.domain.deduplication.identity import IdGenerationError, generate_unique_id
from importflow.domain.model import (
    DeduplicationStrategy,
    DuplicateAnalysis,
    DuplicateSummary,
    ExternalDuplicate,
    InternalDuplicate,
)

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping
    from uuid import UUID

    from importflow.domain.model import Dataset
    from importflow.domain.ports import EventRepository

log = getLogger(__name__)

DEFAULT_LOOKUP_CHUNK_SIZE = 1000


class ResolutionAction(StrEnum):
    CREATE = "create"
    SKIP = "skip"
    UPDATE = "update"
    VERSION = "version"


@dataclass(frozen=True, slots=True)
class Resolution:
    action: ResolutionAction
    existing_event_id: UUID | None = None


_CREATE = Resolution(ResolutionAction.CREATE)
_SKIP = Resolution(ResolutionAction.SKIP)


def disabled_analysis(total_rows: int) -> DuplicateAnalysis:
    return DuplicateAnalysis(
        strategy=DeduplicationStrategy.DISABLED,
        summary=DuplicateSummary(total_rows=total_rows, unique_rows=total_rows),
    )


def resolve_row(analysis: DuplicateAnalysis | None, row_number: int) -> Resolution:
    """Decide what happens to ``row_number`` when events are created.

    Internal duplicates always collapse onto their first occurrence. External
    duplicates follow the strategy: ``skip`` drops the row, ``update``
    overwrites the existing event, ``version`` supersedes it with a new one.
    """

    if analysis is None or analysis.strategy is DeduplicationStrategy.DISABLED:
        return _CREATE
    if row_number in analysis.internal_rows():
        return _SKIP
    external = analysis.external_by_row().get(row_number)
    if external is None:
        return _CREATE
    match analysis.strategy:
        case DeduplicationStrategy.UPDATE:
            return Resolution(ResolutionAction.UPDATE, external.existing_event_id)
        case DeduplicationStrategy.VERSION:
            return Resolution(ResolutionAction.VERSION, external.existing_event_id)
        case _:
            return _SKIP


class DeduplicationEngine:
    """Classify every source row as unique, internal duplicate or external duplicate."""

    def __init__(self, events: EventRepository, *, lookup_chunk_size: int = DEFAULT_LOOKUP_CHUNK_SIZE) -> None:
        if lookup_chunk_size < 1:
            raise ValueError("lookup_chunk_size must be positive")
        self._events = events
        self._lookup_chunk_size = lookup_chunk_size

    def analyze(self, dataset: Dataset, rows: Iterable[tuple[int, Mapping[str, Any]]]) -> DuplicateAnalysis:
        """Scan ``(row_number, record)`` pairs in file order.

        Rows whose identity cannot be derived are left out of the analysis; the
        event stage reports them as row errors.
        """

        config = dataset.deduplication_config
        first_rows: dict[str, int] = {}
        internal: list[InternalDuplicate] = []
        total_rows = 0
        unidentified = 0

        for row_number, record in rows:
            total_rows += 1
            if not config.enabled:
                continue
            try:
                unique_id = generate_unique_id(dataset.id, record, dataset.id_strategy)
            except IdGenerationError as exc:
                unidentified += 1
                log.debug("Row %s has no identity: %s", row_number, exc)
                continue
            first = first_rows.get(unique_id)
            if first is None:
                first_rows[unique_id] = row_number
            else:
                internal.append(
                    InternalDuplicate(row_number=row_number, unique_id=unique_id, first_occurrence=first)
                )

        if not config.enabled:
            return disabled_analysis(total_rows)

        external = self._find_external(dataset.id, first_rows)
        summary = DuplicateSummary(
            total_rows=total_rows,
            unique_rows=len(first_rows),
            internal_duplicates=len(internal),
            external_duplicates=len(external),
        )
        log.info(
            "Duplicate analysis for dataset %s: rows=%s, internal=%s, external=%s, unidentified=%s",
            dataset.id,
            total_rows,
            len(internal),
            len(external),
            unidentified,
        )
        return DuplicateAnalysis(
            strategy=config.strategy,
            internal=tuple(internal),
            external=tuple(external),
            summary=summary,
        )

    def _find_external(self, dataset_id: UUID, first_rows: Mapping[str, int]) -> list[ExternalDuplicate]:
        found: list[ExternalDuplicate] = []
        for chunk in batched(first_rows, self._lookup_chunk_size):
            existing = self._events.find_by_unique_ids(dataset_id, chunk)
            for unique_id in chunk:
                event = existing.get(unique_id)
                if event is None:
                    continue
                found.append(
                    ExternalDuplicate(
                        row_number=first_rows[unique_id],
                        unique_id=unique_id,
                        existing_event_id=event.id,
                    )
                )
        return found
