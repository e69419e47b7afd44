from __future__ import annotations

from datetime import timedelta

import pytest

from importflow.config import RetryConfig
from importflow.domain.model import ImportStage, RecoveryAction, SchemaComparison
from importflow.domain.ports import ConcurrentUpdateError
from importflow.domain.recovery import ErrorRecoveryService
from importflow.domain.recovery.classification import QUOTA_ACTION, SCHEMA_REVIEW_ACTION
from importflow.domain.recovery.service import (
    AUTOMATIC_RETRY,
    MAX_RETRIES_REACHED,
    NO_ACTION,
)
from tests.helpers.pipeline import (
    FakeStore,
    FixedClock,
    RecordingQueue,
    make_dataset,
    make_failed_job,
    make_job,
)


@pytest.fixture
def store() -> FakeStore:
    return FakeStore()


@pytest.fixture
def queue() -> RecordingQueue:
    return RecordingQueue()


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock()


@pytest.fixture
def service(store: FakeStore, queue: RecordingQueue, clock: FixedClock) -> ErrorRecoveryService:
    return ErrorRecoveryService(store.unit_of_work, queue, config=RetryConfig(), clock=clock)


def test_recoverable_failure_schedules_retry(
    store: FakeStore,
    queue: RecordingQueue,
    clock: FixedClock,
    service: ErrorRecoveryService,
) -> None:
    job = make_failed_job(make_dataset(), "Connection reset by peer")
    store.import_jobs.add(job)

    result = service.recover_failed_job(job.id)

    assert result.success
    assert result.retry_scheduled
    assert result.resume_stage is ImportStage.GEOCODE_BATCH
    assert result.next_retry_at == clock.now + timedelta(seconds=30)
    assert job.stage is ImportStage.FAILED
    assert job.retry_attempts == 1
    assert job.next_retry_at == result.next_retry_at
    (attempt,) = job.error_log.recovery_attempts
    assert attempt.attempt == 1
    assert attempt.previous_error == "Connection reset by peer"
    assert job.error_log.resume_stage is ImportStage.GEOCODE_BATCH
    assert queue.messages == []


def test_second_attempt_waits_longer(
    store: FakeStore,
    clock: FixedClock,
    service: ErrorRecoveryService,
) -> None:
    job = make_failed_job(make_dataset(), "timeout", retry_attempts=1)
    store.import_jobs.add(job)

    result = service.recover_failed_job(job.id)

    assert result.next_retry_at == clock.now + timedelta(seconds=60)


@pytest.mark.parametrize("error", ["Daily quota exceeded", "Permission denied", "ENOENT"])
def test_non_retryable_failures_are_not_scheduled(
    store: FakeStore,
    service: ErrorRecoveryService,
    error: str,
) -> None:
    job = make_failed_job(make_dataset(), error)
    store.import_jobs.add(job)

    result = service.recover_failed_job(job.id)

    assert not result.success
    assert result.action is RecoveryAction.NOT_RETRYABLE
    assert job.retry_attempts == 0
    assert job.next_retry_at is None


def test_unknown_errors_stop_after_max_retries(
    store: FakeStore,
    queue: RecordingQueue,
    clock: FixedClock,
) -> None:
    config = RetryConfig(max_delay_ms=45_000)
    service = ErrorRecoveryService(store.unit_of_work, queue, config=config, clock=clock)
    job = make_failed_job(make_dataset(), "something odd happened")
    store.import_jobs.add(job)

    outcomes = []
    scheduled = []
    for _ in range(4):
        outcomes.append(service.recover_failed_job(job.id).action)
        scheduled.append(job.next_retry_at)

    assert outcomes == [
        RecoveryAction.RETRY_SCHEDULED,
        RecoveryAction.RETRY_SCHEDULED,
        RecoveryAction.RETRY_SCHEDULED,
        RecoveryAction.MAX_RETRIES_EXCEEDED,
    ]
    assert job.retry_attempts == 3
    assert scheduled[:3] == [
        clock.now + timedelta(seconds=30),
        clock.now + timedelta(seconds=45),
        clock.now + timedelta(seconds=45),
    ]
    assert scheduled == sorted(scheduled)
    assert all(at - clock.now <= timedelta(milliseconds=config.max_delay_ms) for at in scheduled)
    assert scheduled[3] == scheduled[2]


def test_recover_requires_failed_job(store: FakeStore, service: ErrorRecoveryService) -> None:
    job = make_job(make_dataset())
    store.import_jobs.add(job)

    assert service.recover_failed_job(job.id).action is RecoveryAction.NOT_FAILED


def test_recover_unknown_job(service: ErrorRecoveryService) -> None:
    from uuid import uuid4

    result = service.recover_failed_job(uuid4())

    assert result.action is RecoveryAction.JOB_NOT_FOUND
    assert not result.success


def test_sweep_requeues_due_jobs(
    store: FakeStore,
    queue: RecordingQueue,
    clock: FixedClock,
    service: ErrorRecoveryService,
) -> None:
    dataset = make_dataset()
    due = make_failed_job(dataset, "connection refused")
    later = make_failed_job(dataset, "connection refused", retry_attempts=2)
    store.import_jobs.add(due)
    store.import_jobs.add(later)
    service.recover_failed_job(due.id)
    service.recover_failed_job(later.id)

    clock.advance(seconds=31)
    result = service.process_pending_retries()

    assert result.requeued == [(due.id, ImportStage.GEOCODE_BATCH)]
    assert due.stage is ImportStage.GEOCODE_BATCH
    assert due.next_retry_at is None
    assert due.error_log.resume_stage is None
    assert later.stage is ImportStage.FAILED
    assert queue.messages == [(ImportStage.GEOCODE_BATCH, due.id, 0)]


def test_sweep_skips_jobs_at_the_retry_cap(
    store: FakeStore,
    queue: RecordingQueue,
    clock: FixedClock,
    service: ErrorRecoveryService,
) -> None:
    job = make_failed_job(make_dataset(), "connection refused", retry_attempts=3)
    job.next_retry_at = clock.now - timedelta(minutes=1)
    store.import_jobs.add(job)

    result = service.process_pending_retries()

    assert result.requeued == []
    assert job.stage is ImportStage.FAILED
    assert queue.messages == []


def test_sweep_does_not_queue_approval_stage(
    store: FakeStore,
    queue: RecordingQueue,
    clock: FixedClock,
    service: ErrorRecoveryService,
) -> None:
    job = make_failed_job(make_dataset(), "timeout")
    job.schema_validation = SchemaComparison(requires_approval=True)
    store.import_jobs.add(job)
    service.recover_failed_job(job.id)

    clock.advance(minutes=5)
    result = service.process_pending_retries()

    assert result.requeued == [(job.id, ImportStage.AWAIT_APPROVAL)]
    assert job.stage is ImportStage.AWAIT_APPROVAL
    assert queue.messages == []


def test_sweep_skips_jobs_changed_concurrently(
    store: FakeStore,
    queue: RecordingQueue,
    clock: FixedClock,
    service: ErrorRecoveryService,
) -> None:
    job = make_failed_job(make_dataset(), "timeout")
    store.import_jobs.add(job)
    service.recover_failed_job(job.id)
    store.commit_error = ConcurrentUpdateError("version mismatch")

    clock.advance(minutes=5)
    result = service.process_pending_retries()

    assert result.skipped == [job.id]
    assert result.requeued == []
    assert queue.messages == []


def test_sweep_respects_limit(
    store: FakeStore,
    clock: FixedClock,
    service: ErrorRecoveryService,
) -> None:
    dataset = make_dataset()
    jobs = [make_failed_job(dataset, "timeout") for _ in range(3)]
    for job in jobs:
        store.import_jobs.add(job)
        service.recover_failed_job(job.id)

    clock.advance(minutes=5)
    result = service.process_pending_retries(limit=2)

    assert len(result.requeued) == 2


def test_reset_job_to_stage(
    store: FakeStore,
    queue: RecordingQueue,
    clock: FixedClock,
    service: ErrorRecoveryService,
) -> None:
    job = make_failed_job(make_dataset(), "Permission denied", retry_attempts=2)
    store.import_jobs.add(job)

    result = service.reset_job_to_stage(job.id, ImportStage.DETECT_SCHEMA, requeue=True)

    assert result.success
    assert result.action is RecoveryAction.MANUAL_RESET
    assert job.stage is ImportStage.DETECT_SCHEMA
    assert job.retry_attempts == 0
    assert job.last_retry_at == clock.now
    (reset,) = job.error_log.manual_resets
    assert reset.previous_stage is ImportStage.FAILED
    assert reset.target_stage is ImportStage.DETECT_SCHEMA
    assert reset.cleared_retries
    assert queue.messages == [(ImportStage.DETECT_SCHEMA, job.id, 0)]


def test_reset_can_keep_retry_counter(store: FakeStore, service: ErrorRecoveryService) -> None:
    job = make_failed_job(make_dataset(), "timeout", retry_attempts=2)
    store.import_jobs.add(job)

    service.reset_job_to_stage(job.id, ImportStage.CREATE_EVENTS, clear_retries=False)

    assert job.retry_attempts == 2
    assert not job.error_log.manual_resets[0].cleared_retries


def test_reset_unknown_job(service: ErrorRecoveryService) -> None:
    from uuid import uuid4

    result = service.reset_job_to_stage(uuid4(), ImportStage.DETECT_SCHEMA)

    assert result.action is RecoveryAction.JOB_NOT_FOUND


def test_recommendations(store: FakeStore, service: ErrorRecoveryService) -> None:
    dataset = make_dataset()
    jobs = {
        "retry": make_failed_job(dataset, "connection refused"),
        "quota": make_failed_job(dataset, "quota exceeded"),
        "permission": make_failed_job(dataset, "permission denied"),
        "exhausted": make_failed_job(dataset, "connection refused", retry_attempts=3),
        "schema": make_failed_job(dataset, "schema mismatch", retry_attempts=3),
    }
    for job in jobs.values():
        store.import_jobs.add(job)
    store.import_jobs.add(make_job(dataset))

    recommendations = {item.job_id: item for item in service.get_recovery_recommendations()}

    assert len(recommendations) == len(jobs)
    assert recommendations[jobs["retry"].id].recommended_action == AUTOMATIC_RETRY
    assert recommendations[jobs["quota"].id].recommended_action == QUOTA_ACTION
    assert recommendations[jobs["permission"].id].recommended_action == NO_ACTION
    assert recommendations[jobs["exhausted"].id].recommended_action == MAX_RETRIES_REACHED
    assert recommendations[jobs["schema"].id].recommended_action == SCHEMA_REVIEW_ACTION
    assert recommendations[jobs["exhausted"].id].retry_count == 3
    assert recommendations[jobs["retry"].id].failed_stage is ImportStage.GEOCODE_BATCH
