"""Pure retry scheduling functions."""

from __future__ import annotations

from datetime import timedelta
from typing import TYPE_CHECKING

from importflow.domain.model import ImportStage
from importflow.domain.pipeline.stages import RESUME_ORDER, stage_after
from importflow.domain.recovery.classification import is_schema_error

if TYPE_CHECKING:
    from importflow.config import RetryConfig
    from importflow.domain.model import ErrorClassification, ImportJob


def compute_retry_delay(retry_attempts: int, config: RetryConfig) -> timedelta:
    """``min(base * multiplier ** attempts, max)``, never decreasing in ``retry_attempts``."""

    delay_ms = min(
        config.base_delay_ms * config.backoff_multiplier ** max(retry_attempts, 0),
        config.max_delay_ms,
    )
    return timedelta(milliseconds=delay_ms)


def determine_resume_stage(job: ImportJob, classification: ErrorClassification) -> ImportStage:
    """Stage a failed job restarts from.

    Schema errors restart at validation. Otherwise the job resumes after its
    last successful stage, skipping approval when nothing awaits it.
    """

    if is_schema_error(classification):
        return ImportStage.VALIDATE_SCHEMA

    if job.last_successful_stage is not None:
        following = stage_after(job.last_successful_stage)
        if following is ImportStage.AWAIT_APPROVAL and not _awaits_approval(job):
            following = ImportStage.GEOCODE_BATCH
        if following is not None:
            return following
    return RESUME_ORDER[0]


def _awaits_approval(job: ImportJob) -> bool:
    validation = job.schema_validation
    return validation is not None and validation.requires_approval and job.schema_version_id is None
