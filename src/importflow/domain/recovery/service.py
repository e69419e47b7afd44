"""Error recovery for failed import jobs: scheduling, sweeping, resets and advice."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from logging import getLogger
from typing import TYPE_CHECKING

from importflow.config import RetryConfig
from importflow.domain.model import (
    ErrorClassification,
    ErrorType,
    ImportStage,
    ManualReset,
    RecoveryAction,
    RecoveryAttempt,
)
from importflow.domain.pipeline.stages import RUNNABLE_STAGES
from importflow.domain.ports import ConcurrentUpdateError
from importflow.domain.recovery.backoff import compute_retry_delay, determine_resume_stage
from importflow.domain.recovery.classification import classify_error

if TYPE_CHECKING:
    from collections.abc import Callable
    from uuid import UUID

    from importflow.domain.model import ImportJob
    from importflow.domain.ports import JobQueue, PipelineUnitOfWork

log = getLogger(__name__)

AUTOMATIC_RETRY = "Automatic retry available"
MANUAL_REVIEW = "Manual review required"
MAX_RETRIES_REACHED = "Manual intervention required - max retries exceeded"
NO_ACTION = "No action recommended"


def _utcnow() -> datetime:
    return datetime.now(UTC)


@dataclass(frozen=True, slots=True, kw_only=True)
class RecoveryResult:
    success: bool
    action: RecoveryAction
    error: str | None = None
    next_retry_at: datetime | None = None
    resume_stage: ImportStage | None = None

    @property
    def retry_scheduled(self) -> bool:
        return self.action is RecoveryAction.RETRY_SCHEDULED


@dataclass(frozen=True, slots=True, kw_only=True)
class RecoveryRecommendation:
    job_id: UUID
    stage: ImportStage
    failed_stage: ImportStage | None
    last_error: str | None
    classification: ErrorClassification
    recommended_action: str
    retry_count: int


@dataclass(slots=True)
class SweepResult:
    """Jobs the retry sweep re-queued, and those it left alone."""

    requeued: list[tuple[UUID, ImportStage]] = field(default_factory=list)
    skipped: list[UUID] = field(default_factory=list)


class ErrorRecoveryService:
    def __init__(
        self,
        unit_of_work_factory: Callable[[], PipelineUnitOfWork],
        queue: JobQueue,
        *,
        config: RetryConfig | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._uow_factory = unit_of_work_factory
        self._queue = queue
        self.config = config or RetryConfig()
        self._clock = clock

    def classify(self, job: ImportJob) -> ErrorClassification:
        return classify_error(
            job.error_log.last_error,
            unknown_retryable=self.config.unknown_errors_retryable,
        )

    def recover_failed_job(self, job_id: UUID) -> RecoveryResult:
        """Schedule the next automatic retry of a failed job.

        The job stays ``failed``; the periodic sweep moves it to the stored resume
        stage once ``next_retry_at`` has passed. Nothing is queued here.
        """

        with self._uow_factory() as uow:
            job = uow.repositories.import_jobs.get(job_id)
            if job is None:
                return RecoveryResult(
                    success=False,
                    action=RecoveryAction.JOB_NOT_FOUND,
                    error="Import job not found",
                )
            if job.stage is not ImportStage.FAILED:
                return RecoveryResult(
                    success=False,
                    action=RecoveryAction.NOT_FAILED,
                    error="Job is not in failed state",
                )

            classification = self.classify(job)
            if not classification.retryable:
                return RecoveryResult(
                    success=False,
                    action=RecoveryAction.NOT_RETRYABLE,
                    error=f"Error is not retryable: {classification.reason}",
                )
            if job.retry_attempts >= self.config.max_retries:
                return RecoveryResult(
                    success=False,
                    action=RecoveryAction.MAX_RETRIES_EXCEEDED,
                    error=f"Maximum retry attempts ({self.config.max_retries}) exceeded",
                )

            now = self._clock()
            next_retry_at = now + compute_retry_delay(job.retry_attempts, self.config)
            resume_stage = determine_resume_stage(job, classification)
            job.retry_attempts += 1
            job.last_retry_at = now
            job.next_retry_at = next_retry_at
            job.error_log = job.error_log.with_recovery_attempt(
                RecoveryAttempt(
                    attempt=job.retry_attempts,
                    previous_error=job.error_log.last_error,
                    recovery_stage=resume_stage,
                    classification=classification,
                    attempted_at=now,
                    next_retry_at=next_retry_at,
                )
            )
            job.updated_at = now
            uow.commit()

        log.info(
            "Scheduled recovery of job %s: attempt=%s, resume_stage=%s, next_retry_at=%s",
            job_id,
            job.retry_attempts,
            resume_stage,
            next_retry_at.isoformat(),
        )
        return RecoveryResult(
            success=True,
            action=RecoveryAction.RETRY_SCHEDULED,
            next_retry_at=next_retry_at,
            resume_stage=resume_stage,
        )

    def process_pending_retries(self, limit: int | None = None) -> SweepResult:
        """Move due failed jobs to their resume stage and queue their first batch."""

        now = self._clock()
        with self._uow_factory() as uow:
            due = uow.repositories.import_jobs.list_due_retries(
                now=now,
                max_retries=self.config.max_retries,
                limit=limit or self.config.sweep_limit,
            )
            job_ids = [job.id for job in due]

        result = SweepResult()
        for job_id in job_ids:
            try:
                stage = self._requeue(job_id, now)
            except ConcurrentUpdateError:
                log.warning("Job %s changed during the retry sweep; leaving it for the next run", job_id)
                result.skipped.append(job_id)
                continue
            if stage is None:
                result.skipped.append(job_id)
                continue
            result.requeued.append((job_id, stage))
            if stage in RUNNABLE_STAGES:
                self._queue.enqueue(stage, job_id, 0)
            log.info("Queued recovery run of job %s at %s", job_id, stage)
        return result

    def _requeue(self, job_id: UUID, now: datetime) -> ImportStage | None:
        with self._uow_factory() as uow:
            job = uow.repositories.import_jobs.get(job_id)
            if job is None or job.stage is not ImportStage.FAILED:
                return None
            classification = self.classify(job)
            if not classification.retryable:
                log.info("Skipping retry of job %s: %s", job_id, classification.reason)
                return None

            stage = job.error_log.resume_stage or determine_resume_stage(job, classification)
            job.stage = stage
            job.next_retry_at = None
            job.error_log = job.error_log.without_resume_stage()
            job.updated_at = now
            uow.commit()
        return stage

    def reset_job_to_stage(
        self,
        job_id: UUID,
        target_stage: ImportStage,
        *,
        clear_retries: bool = True,
        requeue: bool = False,
    ) -> RecoveryResult:
        """Force ``job_id`` to ``target_stage`` regardless of its state.

        The reset is appended to the job's error log. With ``requeue`` the
        target's first batch is queued as well.
        """

        with self._uow_factory() as uow:
            job = uow.repositories.import_jobs.get(job_id)
            if job is None:
                return RecoveryResult(
                    success=False,
                    action=RecoveryAction.JOB_NOT_FOUND,
                    error="Import job not found",
                )
            now = self._clock()
            previous_stage = job.stage
            job.stage = target_stage
            job.last_retry_at = now
            job.next_retry_at = None
            if clear_retries:
                job.retry_attempts = 0
            job.error_log = job.error_log.with_manual_reset(
                ManualReset(
                    reset_at=now,
                    previous_stage=previous_stage,
                    target_stage=target_stage,
                    cleared_retries=clear_retries,
                )
            )
            job.updated_at = now
            uow.commit()

        log.info(
            "Manually reset job %s: %s -> %s (cleared_retries=%s)",
            job_id,
            previous_stage,
            target_stage,
            clear_retries,
        )
        if requeue and target_stage in RUNNABLE_STAGES:
            self._queue.enqueue(target_stage, job_id, 0)
        return RecoveryResult(success=True, action=RecoveryAction.MANUAL_RESET, resume_stage=target_stage)

    def get_recovery_recommendations(self, limit: int | None = None) -> list[RecoveryRecommendation]:
        with self._uow_factory() as uow:
            failed = uow.repositories.import_jobs.list_failed(limit=limit or self.config.recommendation_limit)
            return [self._recommend(job) for job in failed]

    def _recommend(self, job: ImportJob) -> RecoveryRecommendation:
        classification = self.classify(job)
        retries = job.retry_attempts
        exhausted = retries >= self.config.max_retries

        if classification.retryable and not exhausted:
            action = AUTOMATIC_RETRY
        elif classification.type is ErrorType.USER_ACTION_REQUIRED:
            action = classification.suggested_action or MANUAL_REVIEW
        elif exhausted:
            action = MAX_RETRIES_REACHED
        else:
            action = NO_ACTION

        return RecoveryRecommendation(
            job_id=job.id,
            stage=job.stage,
            failed_stage=job.error_log.failed_stage,
            last_error=job.error_log.last_error,
            classification=classification,
            recommended_action=action,
            retry_count=retries,
        )
