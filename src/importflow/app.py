"""Application orchestration entry points."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from logging import getLogger
from typing import TYPE_CHECKING

from importflow.adapters.file_source import FileSourceReader
from importflow.adapters.local_queue import DrainResult, LocalJobQueue
from importflow.adapters.nominatim import NominatimGeocoder
from importflow.adapters.sqlalchemy.unit_of_work import (
    SqlAlchemyPipelineUnitOfWork,
    is_started,
    startup,
)
from importflow.config import (
    MissingConfigurationError,
    get_geocoding_config,
    get_pipeline_config,
    get_retry_config,
    get_storage_config,
)
from importflow.domain.model import (
    Dataset,
    DeduplicationConfig,
    IdStrategy,
    ImportJob,
    ImportStage,
    SchemaConfig,
)
from importflow.domain.pipeline import DatasetNotFoundError, JobNotFoundError, PipelineRunner
from importflow.domain.pipeline import approve_schema as approve_pending_schema
from importflow.domain.pipeline.handlers import default_handlers
from importflow.domain.ports.unit_of_work import PipelineUnitOfWork
from importflow.domain.recovery import ErrorRecoveryService

if TYPE_CHECKING:
    from uuid import UUID

    from importflow.config import PipelineConfig, RetryConfig
    from importflow.domain.model import SchemaVersion
    from importflow.domain.ports import Geocoder, SourceReader
    from importflow.domain.recovery import (
        RecoveryRecommendation,
        RecoveryResult,
        SweepResult,
    )

UnitOfWorkFactory = Callable[[], PipelineUnitOfWork]

log = getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


@dataclass(slots=True)
class Pipeline:
    """Wired runner, recovery service and queue sharing one unit-of-work factory."""

    runner: PipelineRunner
    recovery: ErrorRecoveryService
    queue: LocalJobQueue
    unit_of_work_factory: UnitOfWorkFactory
    config: PipelineConfig

    def drain(self) -> DrainResult:
        result = self.queue.drain(self.runner)
        if result.failed:
            log.warning("%s queued run(s) failed", len(result.failed))
        return result


def _default_geocoder() -> tuple[Geocoder | None, float]:
    try:
        config = get_geocoding_config()
    except MissingConfigurationError as exc:
        log.warning("Geocoding disabled: %s", exc)
        return None, 0.0
    return NominatimGeocoder(config=config), config.min_confidence


def build_pipeline(
    *,
    unit_of_work_factory: UnitOfWorkFactory | None = None,
    queue: LocalJobQueue | None = None,
    reader: SourceReader | None = None,
    geocoder: Geocoder | None = None,
    min_geocoding_confidence: float | None = None,
    pipeline_config: PipelineConfig | None = None,
    retry_config: RetryConfig | None = None,
    clock: Callable[[], datetime] = _utcnow,
) -> Pipeline:
    """Assemble the pipeline from configured adapters, overriding any given piece.

    Without an explicit unit-of-work factory the SQLAlchemy adapter is started
    on first use.
    """

    if unit_of_work_factory is None:
        if not is_started():
            startup()
        unit_of_work_factory = SqlAlchemyPipelineUnitOfWork
    effective_queue = queue or LocalJobQueue()
    effective_config = pipeline_config or get_pipeline_config()
    effective_reader = reader or FileSourceReader(get_storage_config().ensure_upload_dir())
    min_confidence = min_geocoding_confidence or 0.0
    if geocoder is None:
        geocoder, configured_confidence = _default_geocoder()
        if min_geocoding_confidence is None:
            min_confidence = configured_confidence

    recovery = ErrorRecoveryService(
        unit_of_work_factory,
        effective_queue,
        config=retry_config or get_retry_config(),
        clock=clock,
    )
    runner = PipelineRunner(
        default_handlers(
            reader=effective_reader,
            config=effective_config,
            geocoder=geocoder,
            min_geocoding_confidence=min_confidence,
        ),
        unit_of_work_factory=unit_of_work_factory,
        queue=effective_queue,
        on_failure=recovery.recover_failed_job,
        clock=clock,
    )
    return Pipeline(
        runner=runner,
        recovery=recovery,
        queue=effective_queue,
        unit_of_work_factory=unit_of_work_factory,
        config=effective_config,
    )


def create_dataset(
    name: str,
    *,
    schema_config: SchemaConfig | None = None,
    deduplication_config: DeduplicationConfig | None = None,
    id_strategy: IdStrategy | None = None,
    geocoding_enabled: bool = True,
    pipeline: Pipeline | None = None,
) -> Dataset:
    effective = pipeline or build_pipeline()
    dataset = Dataset(
        name=name,
        schema_config=schema_config or SchemaConfig(),
        deduplication_config=deduplication_config or DeduplicationConfig(),
        id_strategy=id_strategy or IdStrategy(),
        geocoding_enabled=geocoding_enabled,
    )
    with effective.unit_of_work_factory() as uow:
        uow.repositories.datasets.add(dataset)
        uow.commit()
    log.info("Created dataset %s (%s)", dataset.name, dataset.id)
    return dataset


def create_import_job(
    dataset_id: UUID,
    source: str,
    *,
    pipeline: Pipeline | None = None,
    run: bool = True,
) -> ImportJob:
    """Register an accepted source file and queue schema detection.

    With ``run`` the in-process queue is drained, so the job advances until it
    completes, fails or waits for approval.
    """

    effective = pipeline or build_pipeline()
    with effective.unit_of_work_factory() as uow:
        if uow.repositories.datasets.get(dataset_id) is None:
            raise DatasetNotFoundError(f"Dataset not found: {dataset_id}")
        job = ImportJob(dataset_id=dataset_id, source=source)
        uow.repositories.import_jobs.add(job)
        uow.commit()
    log.info("Created import job %s for %s", job.id, source)

    effective.queue.enqueue(ImportStage.DETECT_SCHEMA, job.id, 0)
    if run:
        effective.drain()
    return get_import_job(job.id, pipeline=effective)


def get_import_job(job_id: UUID, *, pipeline: Pipeline | None = None) -> ImportJob:
    effective = pipeline or build_pipeline()
    with effective.unit_of_work_factory() as uow:
        job = uow.repositories.import_jobs.get(job_id)
        if job is None:
            raise JobNotFoundError(f"Import job not found: {job_id}")
    return job


def run_stage(
    stage: ImportStage,
    job_id: UUID,
    batch_number: int = 0,
    *,
    pipeline: Pipeline | None = None,
    follow: bool = True,
) -> DrainResult:
    """Deliver one queue message by hand; ``follow`` keeps running what it queues."""

    effective = pipeline or build_pipeline()
    effective.queue.enqueue(stage, job_id, batch_number)
    if follow:
        return effective.drain()
    return effective.queue.drain(effective.runner, max_runs=1)


def process_pending_retries(
    *,
    limit: int | None = None,
    pipeline: Pipeline | None = None,
    follow: bool = True,
) -> SweepResult:
    """Run one retry sweep; queued resumptions are drained when ``follow`` is set."""

    effective = pipeline or build_pipeline()
    result = effective.recovery.process_pending_retries(limit)
    log.info(
        "Retry sweep finished: requeued=%s, skipped=%s",
        len(result.requeued),
        len(result.skipped),
    )
    if follow and result.requeued:
        effective.drain()
    return result


def recover_failed_job(job_id: UUID, *, pipeline: Pipeline | None = None) -> RecoveryResult:
    effective = pipeline or build_pipeline()
    return effective.recovery.recover_failed_job(job_id)


def reset_job_to_stage(
    job_id: UUID,
    target: ImportStage,
    *,
    clear_retries: bool = True,
    requeue: bool = False,
    pipeline: Pipeline | None = None,
) -> RecoveryResult:
    effective = pipeline or build_pipeline()
    result = effective.recovery.reset_job_to_stage(
        job_id,
        target,
        clear_retries=clear_retries,
        requeue=requeue,
    )
    if requeue and result.success:
        effective.drain()
    return result


def get_recovery_recommendations(
    *,
    limit: int | None = None,
    pipeline: Pipeline | None = None,
) -> list[RecoveryRecommendation]:
    effective = pipeline or build_pipeline()
    return effective.recovery.get_recovery_recommendations(limit)


def approve_schema(
    job_id: UUID,
    *,
    approved_by: str,
    pipeline: Pipeline | None = None,
    follow: bool = True,
) -> SchemaVersion:
    """Approve the pending schema of a job at ``await-approval`` and resume it."""

    effective = pipeline or build_pipeline()
    version = approve_pending_schema(
        job_id,
        approved_by=approved_by,
        unit_of_work_factory=effective.unit_of_work_factory,
        queue=effective.queue,
        config=effective.config,
    )
    if follow:
        effective.drain()
    return version
