"""detect-schema: feed source batches to the progressive schema builder."""

from __future__ import annotations

from logging import getLogger
from typing import TYPE_CHECKING

from importflow.domain.model import FieldMappings, ImportStage
from importflow.domain.pipeline.handlers._batches import enter_batch
from importflow.domain.pipeline.runner import StageOutcome
from importflow.domain.ports import read_batch
from importflow.domain.schema import ProgressiveSchemaBuilder, detect_timestamp_field

if TYPE_CHECKING:
    from importflow.config import PipelineConfig
    from importflow.domain.pipeline.runner import StageContext
    from importflow.domain.ports import SourceReader
    from importflow.domain.schema import SchemaBuilderState

log = getLogger(__name__)


def field_mappings_from(state: SchemaBuilderState) -> FieldMappings:
    geo = state.detected_geo_fields
    return FieldMappings(
        latitude_path=geo.latitude,
        longitude_path=geo.longitude,
        coordinates_path=geo.combined,
        address_path=geo.address,
        timestamp_path=detect_timestamp_field(state.field_stats),
        geo_confidence=geo.confidence,
    )


class DetectSchemaHandler:
    stage = ImportStage.DETECT_SCHEMA

    def __init__(self, reader: SourceReader, config: PipelineConfig) -> None:
        self._reader = reader
        self._config = config

    def run(self, context: StageContext) -> StageOutcome:
        job = context.job
        batch_number = context.batch_number

        starting = job.progress.stage is not self.stage
        resume_at = enter_batch(job, self.stage, batch_number, self._reader)
        if resume_at is not None:
            log.info("Batch %s of job %s already counted; continuing at %s", batch_number, job.id, resume_at)
            return StageOutcome(self.stage, resume_at)
        if starting:
            job.schema_builder_state = None

        builder = ProgressiveSchemaBuilder.from_serialized(
            job.schema_builder_state,
            config=self._config.schema_builder,
            clock=lambda: context.now,
        )
        batch = read_batch(
            self._reader,
            job,
            batch_number=batch_number,
            batch_size=self._config.batch_sizes.schema_detection,
        )
        observation = builder.process_batch(batch.rows)
        job.schema_builder_state = builder.serialize()
        job.progress = job.progress.with_batch(batch_number, processed=builder.state.record_count)
        log.debug(
            "Schema batch %s of job %s: records=%s, new_fields=%s",
            batch_number,
            job.id,
            observation.record_count,
            observation.new_fields,
        )

        if batch.has_more:
            return StageOutcome(self.stage, batch_number + 1)

        job.detected_schema = builder.get_schema()
        job.field_mappings = field_mappings_from(builder.state)
        log.info(
            "Detected schema for job %s: fields=%s, records=%s, id_fields=%s",
            job.id,
            len(builder.state.field_stats),
            builder.state.record_count,
            builder.state.detected_id_fields,
        )
        return StageOutcome(ImportStage.VALIDATE_SCHEMA)
