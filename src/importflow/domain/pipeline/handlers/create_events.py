"""create-events: write events per batch, applying the duplicate resolution."""

from __future__ import annotations

from logging import getLogger
from typing import TYPE_CHECKING

from importflow.domain.deduplication import IdGenerationError, ResolutionAction, generate_unique_id, resolve_row
from importflow.domain.model import CoordinateSource, ImportResults, ImportStage, RowError
from importflow.domain.pipeline.events import build_event, overwrite_event
from importflow.domain.pipeline.handlers._batches import enter_batch
from importflow.domain.pipeline.runner import StageOutcome
from importflow.domain.ports import read_batch

if TYPE_CHECKING:
    from collections.abc import Mapping
    from typing import Any

    from importflow.config import PipelineConfig
    from importflow.domain.deduplication import Resolution
    from importflow.domain.model import GeocodingResult, ImportJob
    from importflow.domain.pipeline.runner import StageContext
    from importflow.domain.ports import SourceReader

log = getLogger(__name__)


class CreateEventsHandler:
    stage = ImportStage.CREATE_EVENTS

    def __init__(self, reader: SourceReader, config: PipelineConfig) -> None:
        self._reader = reader
        self._config = config

    def run(self, context: StageContext) -> StageOutcome:
        job = context.job
        batch_number = context.batch_number

        resume_at = enter_batch(job, self.stage, batch_number, self._reader)
        if resume_at is not None:
            return StageOutcome(self.stage, resume_at)

        batch = read_batch(
            self._reader,
            job,
            batch_number=batch_number,
            batch_size=self._config.batch_sizes.event_creation,
        )
        version_number = self._schema_version_number(context)
        geocoded = job.geocoding_by_row()
        errors: list[RowError] = []
        written = 0

        for row_number, row in batch.numbered():
            resolution = resolve_row(job.duplicates, row_number)
            if resolution.action is ResolutionAction.SKIP:
                continue
            try:
                self._write_row(context, row_number, row, resolution, version_number, geocoded)
            except IdGenerationError as exc:
                errors.append(RowError(row=row_number, error=str(exc)))
                continue
            written += 1

        job.merge_row_errors(errors)
        job.progress = job.progress.with_batch(batch_number, processed=batch.offset + len(batch.rows))
        log.info(
            "Created events for batch %s of job %s: written=%s, row_errors=%s",
            batch_number,
            job.id,
            written,
            len(errors),
        )
        if batch.has_more:
            return StageOutcome(self.stage, batch_number + 1)

        job.results = self._final_results(context)
        log.info("Completed job %s: %s", job.id, job.results)
        return StageOutcome(ImportStage.COMPLETED)

    def _write_row(
        self,
        context: StageContext,
        row_number: int,
        row: dict[str, Any],
        resolution: Resolution,
        version_number: int | None,
        geocoded: Mapping[int, GeocodingResult],
    ) -> None:
        job = context.job
        dataset = context.dataset
        events = context.uow.repositories.events
        event = build_event(
            dataset_id=dataset.id,
            import_job_id=job.id,
            row_number=row_number,
            unique_id=generate_unique_id(dataset.id, row, dataset.id_strategy),
            row=row,
            mappings=job.field_mappings,
            geocoded=geocoded.get(row_number),
            schema_version_number=version_number,
            now=context.now,
        )

        existing = None
        if resolution.existing_event_id is not None:
            existing = events.get(resolution.existing_event_id)
        if resolution.action is ResolutionAction.UPDATE and existing is not None:
            overwrite_event(existing, event, now=context.now)
            return
        if resolution.action is ResolutionAction.VERSION and existing is not None:
            existing.superseded = True
            existing.updated_at = context.now
        events.add(event)

    def _schema_version_number(self, context: StageContext) -> int | None:
        version_id = context.job.schema_version_id
        if version_id is None:
            return None
        version = context.uow.repositories.schema_versions.get(version_id)
        return None if version is None else version.version_number

    def _final_results(self, context: StageContext) -> ImportResults:
        """Totals recounted from the event store so redelivered batches cannot inflate them."""

        job: ImportJob = context.job
        events = context.uow.repositories.events
        skipped = job.duplicates.skipped_rows() if job.duplicates is not None else frozenset()
        return ImportResults(
            total_events=events.count_for_job(job.id),
            duplicates_skipped=len(skipped),
            geocoded=events.count_for_job(job.id, coordinate_source=CoordinateSource.GEOCODED),
            errors=len(job.row_errors),
        )
