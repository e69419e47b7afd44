"""validate-schema: compare against the active version and apply the approval policy."""

from __future__ import annotations

from dataclasses import replace
from logging import getLogger
from typing import TYPE_CHECKING

from importflow.domain.model import ChangeType, ImportStage
from importflow.domain.pipeline.runner import StageOutcome
from importflow.domain.schema import ProgressiveSchemaBuilder, SchemaStateError, SchemaVersioningService

if TYPE_CHECKING:
    from typing import Any

    from importflow.config import PipelineConfig
    from importflow.domain.model import Dataset, ImportJob
    from importflow.domain.pipeline.runner import StageContext
    from importflow.domain.schema import VersioningDecision

log = getLogger(__name__)


def current_schema(job: ImportJob, config: PipelineConfig) -> tuple[dict[str, Any], dict[str, Any]]:
    """The job's schema and field metadata, rebuilt from builder state when needed."""

    if job.schema_builder_state is None:
        if job.detected_schema is None:
            raise SchemaStateError("No schema has been detected for this import job")
        return job.detected_schema, {}
    builder = ProgressiveSchemaBuilder.from_serialized(job.schema_builder_state, config=config.schema_builder)
    schema = job.detected_schema if job.detected_schema is not None else builder.get_schema()
    return schema, builder.field_metadata()


def decide(service: SchemaVersioningService, dataset: Dataset, schema: dict[str, Any]) -> VersioningDecision:
    """Versioning decision that also honours ``auto_grow``: without it new fields need approval."""

    decision = service.decide(dataset, schema)
    comparison = decision.comparison
    if dataset.schema_config.auto_grow or not comparison.of_type(ChangeType.NEW_FIELD):
        return decision
    if decision.latest is None:
        return decision
    gated = replace(comparison, can_auto_approve=False, requires_approval=True)
    return replace(decision, comparison=gated, create_version=False)


class ValidateSchemaHandler:
    stage = ImportStage.VALIDATE_SCHEMA

    def __init__(self, config: PipelineConfig) -> None:
        self._config = config

    def run(self, context: StageContext) -> StageOutcome:
        job = context.job
        dataset = context.dataset
        schema, field_metadata = current_schema(job, self._config)
        job.detected_schema = schema

        service = SchemaVersioningService(
            context.uow.repositories.schema_versions,
            clock=lambda: context.now,
        )
        decision = decide(service, dataset, schema)
        job.schema_validation = decision.comparison

        if decision.create_version:
            version = service.create_version(
                dataset,
                schema=schema,
                field_metadata=field_metadata,
                comparison=decision.comparison,
                import_job_id=job.id,
                auto_approved=True,
            )
            job.schema_version_id = version.id
        elif not decision.requires_approval and decision.latest is not None:
            job.schema_version_id = decision.latest.id

        log.info(
            "Validated schema of job %s: changes=%s, breaking=%s, requires_approval=%s",
            job.id,
            len(decision.comparison.changes),
            decision.comparison.is_breaking,
            decision.requires_approval,
        )
        return StageOutcome(ImportStage.ANALYZE_DUPLICATES)
