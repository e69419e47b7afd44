from __future__ import annotations

from datetime import timedelta

import pytest

from importflow.config import ConfigurationError, RetryConfig
from importflow.domain.model import ImportStage, SchemaComparison
from importflow.domain.recovery import classify_error, compute_retry_delay, determine_resume_stage
from tests.helpers.pipeline import make_dataset, make_job


def test_delay_doubles_until_capped() -> None:
    config = RetryConfig(base_delay_ms=30_000, max_delay_ms=300_000, backoff_multiplier=2.0)

    delays = [compute_retry_delay(attempts, config) for attempts in range(6)]

    assert delays[:4] == [
        timedelta(seconds=30),
        timedelta(seconds=60),
        timedelta(seconds=120),
        timedelta(seconds=240),
    ]
    assert delays[4] == delays[5] == timedelta(seconds=300)
    assert delays == sorted(delays)


def test_retry_config_validation() -> None:
    with pytest.raises(ConfigurationError):
        RetryConfig(max_retries=-1)
    with pytest.raises(ConfigurationError):
        RetryConfig(base_delay_ms=10, max_delay_ms=5)
    with pytest.raises(ConfigurationError):
        RetryConfig(backoff_multiplier=0.5)


@pytest.mark.parametrize(
    ("last_successful", "expected"),
    [
        (None, ImportStage.DETECT_SCHEMA),
        (ImportStage.DETECT_SCHEMA, ImportStage.VALIDATE_SCHEMA),
        (ImportStage.VALIDATE_SCHEMA, ImportStage.ANALYZE_DUPLICATES),
        (ImportStage.ANALYZE_DUPLICATES, ImportStage.GEOCODE_BATCH),
        (ImportStage.AWAIT_APPROVAL, ImportStage.GEOCODE_BATCH),
        (ImportStage.GEOCODE_BATCH, ImportStage.CREATE_EVENTS),
        (ImportStage.CREATE_EVENTS, ImportStage.DETECT_SCHEMA),
    ],
)
def test_resume_stage_follows_last_success(
    last_successful: ImportStage | None,
    expected: ImportStage,
) -> None:
    job = make_job(make_dataset(), last_successful_stage=last_successful)

    assert determine_resume_stage(job, classify_error("connection reset")) is expected


def test_resume_at_approval_when_schema_still_pending() -> None:
    job = make_job(
        make_dataset(),
        last_successful_stage=ImportStage.ANALYZE_DUPLICATES,
        schema_validation=SchemaComparison(requires_approval=True),
    )

    assert determine_resume_stage(job, classify_error("timeout")) is ImportStage.AWAIT_APPROVAL


def test_schema_errors_resume_at_validation() -> None:
    job = make_job(make_dataset(), last_successful_stage=ImportStage.GEOCODE_BATCH)

    assert determine_resume_stage(job, classify_error("schema mismatch")) is ImportStage.VALIDATE_SCHEMA
