"""analyze-duplicates: classify every source row before anything is written."""

from __future__ import annotations

from logging import getLogger
from typing import TYPE_CHECKING

from importflow.domain.deduplication import DeduplicationEngine
from importflow.domain.model import ImportStage, Progress
from importflow.domain.pipeline.handlers.validate_schema import current_schema, decide
from importflow.domain.pipeline.runner import StageOutcome
from importflow.domain.ports import iter_rows
from importflow.domain.schema import SchemaVersioningService

if TYPE_CHECKING:
    from importflow.config import PipelineConfig
    from importflow.domain.model import SchemaComparison
    from importflow.domain.pipeline.runner import StageContext
    from importflow.domain.ports import SourceReader

log = getLogger(__name__)


class AnalyzeDuplicatesHandler:
    """Scan the whole source in chunks; the batch number is ignored."""

    stage = ImportStage.ANALYZE_DUPLICATES

    def __init__(self, reader: SourceReader, config: PipelineConfig) -> None:
        self._reader = reader
        self._config = config

    def run(self, context: StageContext) -> StageOutcome:
        job = context.job
        engine = DeduplicationEngine(
            context.uow.repositories.events,
            lookup_chunk_size=self._config.duplicate_lookup_chunk_size,
        )
        rows = iter_rows(self._reader, job, chunk_size=self._config.batch_sizes.duplicate_analysis)
        analysis = engine.analyze(context.dataset, rows)
        job.duplicates = analysis

        total = analysis.summary.total_rows
        job.progress = Progress(stage=self.stage, processed=total, total=total, batches_processed=1)

        if self._requires_approval(context):
            log.info("Job %s awaits schema approval", job.id)
            return StageOutcome(ImportStage.AWAIT_APPROVAL)
        return StageOutcome(ImportStage.GEOCODE_BATCH)

    def _requires_approval(self, context: StageContext) -> bool:
        job = context.job
        if job.schema_version_id is not None:
            return False
        validation: SchemaComparison | None = job.schema_validation
        if validation is None:
            schema, _ = current_schema(job, self._config)
            service = SchemaVersioningService(context.uow.repositories.schema_versions)
            validation = decide(service, context.dataset, schema).comparison
            job.schema_validation = validation
        return validation.requires_approval
