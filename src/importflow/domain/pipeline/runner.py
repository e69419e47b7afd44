"""Run one stage invocation of an import job and schedule what follows."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime
from logging import getLogger
from typing import TYPE_CHECKING, Protocol

from importflow.domain.model import ImportStage
from importflow.domain.pipeline.stages import RUNNABLE_STAGES, transition
from importflow.domain.ports import ConcurrentUpdateError

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable
    from uuid import UUID

    from importflow.domain.model import Dataset, ImportJob
    from importflow.domain.ports import JobQueue, PipelineUnitOfWork

log = getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


class JobNotFoundError(LookupError):
    pass


class DatasetNotFoundError(LookupError):
    pass


@dataclass(slots=True)
class StageContext:
    """Everything a handler may touch during one invocation."""

    uow: PipelineUnitOfWork
    job: ImportJob
    dataset: Dataset
    batch_number: int
    now: datetime


@dataclass(frozen=True, slots=True)
class StageOutcome:
    """Where the job goes next: the same stage with another batch, or a new stage."""

    next_stage: ImportStage
    batch_number: int = 0


class StageHandler(Protocol):
    """Contract implemented by each stage handler."""

    stage: ImportStage

    def run(self, context: StageContext) -> StageOutcome: ...


type FailureHook = Callable[[UUID], object]


class PipelineRunner:
    """Dispatch ``(stage, job, batch)`` messages to their handlers.

    Each invocation runs in its own unit of work. On success the resulting
    transition is validated, committed and the follow-up run is queued. On
    failure the job is marked ``failed`` in a fresh unit of work and the error
    is re-raised to the queue.
    """

    def __init__(
        self,
        handlers: Iterable[StageHandler],
        *,
        unit_of_work_factory: Callable[[], PipelineUnitOfWork],
        queue: JobQueue,
        on_failure: FailureHook | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._handlers = {handler.stage: handler for handler in handlers}
        self._uow_factory = unit_of_work_factory
        self._queue = queue
        self._on_failure = on_failure
        self._clock = clock

    def handler_for(self, stage: ImportStage) -> StageHandler:
        try:
            return self._handlers[stage]
        except KeyError:
            raise ValueError(f"No handler registered for stage {stage}") from None

    def run(self, stage: ImportStage, job_id: UUID, batch_number: int = 0) -> StageOutcome | None:
        """Run one invocation; returns ``None`` for a stale redelivery."""

        handler = self.handler_for(stage)
        log.info("Starting %s for job %s (batch %s)", stage, job_id, batch_number)
        try:
            outcome = self._run_handler(handler, job_id, batch_number)
        except ConcurrentUpdateError:
            log.warning("Job %s was updated concurrently during %s; dropping this run", job_id, stage)
            raise
        except Exception as exc:
            log.exception("Stage %s failed for job %s (batch %s)", stage, job_id, batch_number)
            self._record_failure(job_id, stage, exc)
            raise

        if outcome is None:
            return None
        log.info(
            "Finished %s for job %s (batch %s) -> %s",
            stage,
            job_id,
            batch_number,
            outcome.next_stage,
        )
        if outcome.next_stage in RUNNABLE_STAGES:
            self._queue.enqueue(outcome.next_stage, job_id, outcome.batch_number)
        return outcome

    def _run_handler(self, handler: StageHandler, job_id: UUID, batch_number: int) -> StageOutcome | None:
        with self._uow_factory() as uow:
            job = uow.repositories.import_jobs.get(job_id)
            if job is None:
                raise JobNotFoundError(f"Import job not found: {job_id}")
            if job.stage is not handler.stage:
                log.info(
                    "Ignoring %s for job %s: job is at %s",
                    handler.stage,
                    job_id,
                    job.stage,
                )
                return None
            dataset = uow.repositories.datasets.get(job.dataset_id)
            if dataset is None:
                raise DatasetNotFoundError(f"Dataset not found: {job.dataset_id}")

            now = self._clock()
            context = StageContext(uow=uow, job=job, dataset=dataset, batch_number=batch_number, now=now)
            outcome = handler.run(context)

            if outcome.next_stage is not handler.stage:
                transition(job, outcome.next_stage)
                job.last_successful_stage = handler.stage
            job.updated_at = now
            uow.commit()
        return outcome

    def _record_failure(self, job_id: UUID, stage: ImportStage, exc: BaseException) -> None:
        message = str(exc) or type(exc).__name__
        with self._uow_factory() as uow:
            job = uow.repositories.import_jobs.get(job_id)
            if job is None or job.stage in (ImportStage.COMPLETED, ImportStage.FAILED):
                return
            now = self._clock()
            job.error_log = job.error_log.with_failure(message, stage=stage, at=now)
            transition(job, ImportStage.FAILED)
            job.updated_at = now
            uow.commit()
        if self._on_failure is not None:
            self._on_failure(job_id)
