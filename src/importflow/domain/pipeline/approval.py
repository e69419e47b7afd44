"""Manual approval of a schema that the versioning policy did not auto-approve."""

from __future__ import annotations

from dataclasses import replace
from datetime import UTC, datetime
from logging import getLogger
from typing import TYPE_CHECKING

from importflow.domain.model import ImportStage
from importflow.domain.pipeline.handlers.validate_schema import current_schema
from importflow.domain.pipeline.runner import DatasetNotFoundError, JobNotFoundError
from importflow.domain.pipeline.stages import InvalidStageTransition, transition
from importflow.domain.schema import SchemaVersioningService

if TYPE_CHECKING:
    from collections.abc import Callable
    from uuid import UUID

    from importflow.config import PipelineConfig
    from importflow.domain.model import SchemaVersion
    from importflow.domain.ports import JobQueue, PipelineUnitOfWork

log = getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


def approve_schema(
    job_id: UUID,
    *,
    approved_by: str,
    unit_of_work_factory: Callable[[], PipelineUnitOfWork],
    queue: JobQueue,
    config: PipelineConfig,
    clock: Callable[[], datetime] = _utcnow,
) -> SchemaVersion:
    """Accept the pending schema of a job waiting at ``await-approval``.

    Appends a schema version recording ``approved_by`` and queues the first
    geocoding batch.
    """

    with unit_of_work_factory() as uow:
        job = uow.repositories.import_jobs.get(job_id)
        if job is None:
            raise JobNotFoundError(f"Import job not found: {job_id}")
        if job.stage is not ImportStage.AWAIT_APPROVAL:
            raise InvalidStageTransition(job.stage, ImportStage.GEOCODE_BATCH)
        dataset = uow.repositories.datasets.get(job.dataset_id)
        if dataset is None:
            raise DatasetNotFoundError(f"Dataset not found: {job.dataset_id}")

        now = clock()
        schema, field_metadata = current_schema(job, config)
        service = SchemaVersioningService(uow.repositories.schema_versions, clock=clock)
        comparison = job.schema_validation or service.decide(dataset, schema).comparison
        version = service.create_version(
            dataset,
            schema=schema,
            field_metadata=field_metadata,
            comparison=comparison,
            import_job_id=job.id,
            auto_approved=False,
            approved_by=approved_by,
        )
        job.schema_version_id = version.id
        job.schema_validation = replace(comparison, requires_approval=False)
        transition(job, ImportStage.GEOCODE_BATCH)
        job.last_successful_stage = ImportStage.AWAIT_APPROVAL
        job.updated_at = now
        uow.commit()

    log.info("Schema version %s approved by %s for job %s", version.version_number, approved_by, job_id)
    queue.enqueue(ImportStage.GEOCODE_BATCH, job_id, 0)
    return version
