"""Failure history carried on an import job."""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime  # noqa: TC003

from importflow.domain.model.enums import ErrorType, ImportStage


@dataclass(frozen=True, slots=True, kw_only=True)
class ErrorClassification:
    type: ErrorType
    reason: str
    retryable: bool
    suggested_action: str | None = None


@dataclass(frozen=True, slots=True, kw_only=True)
class RecoveryAttempt:
    attempt: int
    previous_error: str | None
    recovery_stage: ImportStage
    classification: ErrorClassification
    attempted_at: datetime
    next_retry_at: datetime


@dataclass(frozen=True, slots=True, kw_only=True)
class ManualReset:
    reset_at: datetime
    previous_stage: ImportStage
    target_stage: ImportStage
    cleared_retries: bool = True


@dataclass(frozen=True, slots=True, kw_only=True)
class ErrorLog:
    """Last failure plus the append-only recovery and reset history."""

    last_error: str | None = None
    last_error_at: datetime | None = None
    failed_stage: ImportStage | None = None
    resume_stage: ImportStage | None = None
    recovery_attempts: tuple[RecoveryAttempt, ...] = ()
    manual_resets: tuple[ManualReset, ...] = ()

    def with_failure(self, message: str, *, stage: ImportStage, at: datetime) -> ErrorLog:
        return replace(self, last_error=message, last_error_at=at, failed_stage=stage)

    def with_recovery_attempt(self, attempt: RecoveryAttempt) -> ErrorLog:
        return replace(
            self,
            resume_stage=attempt.recovery_stage,
            recovery_attempts=(*self.recovery_attempts, attempt),
        )

    def with_manual_reset(self, reset: ManualReset) -> ErrorLog:
        return replace(self, resume_stage=None, manual_resets=(*self.manual_resets, reset))

    def without_resume_stage(self) -> ErrorLog:
        return replace(self, resume_stage=None)
