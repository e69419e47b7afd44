from __future__ import annotations

from typing import Any
from uuid import uuid4

import pytest

from importflow import app
from importflow.config import BatchSizes, PipelineConfig, RetryConfig
from importflow.domain.model import (
    IdStrategy,
    IdStrategyType,
    ImportStage,
    RecoveryAction,
    SchemaConfig,
)
from importflow.domain.pipeline import DatasetNotFoundError, JobNotFoundError
from importflow.domain.ports import GeocodeResult
from tests.helpers.pipeline import FakeGeocoder, FakeStore, FixedClock, ListSourceReader

BY_REF = IdStrategy(type=IdStrategyType.EXTERNAL, external_id_path="ref")

ROWS: list[dict[str, Any]] = [
    {"ref": "a", "name": "Alpha", "address": "1 Main St"},
    {"ref": "b", "name": "Bravo", "address": "2 High St"},
]


class Harness:
    def __init__(self, *, geocoder: FakeGeocoder | None = None) -> None:
        self.store = FakeStore()
        self.clock = FixedClock()
        self.geocoder = geocoder or FakeGeocoder()
        self.pipeline = app.build_pipeline(
            unit_of_work_factory=self.store.unit_of_work,
            reader=ListSourceReader({"rows.csv": ROWS}),
            geocoder=self.geocoder,
            pipeline_config=PipelineConfig(batch_sizes=BatchSizes(geocoding=1, event_creation=1)),
            retry_config=RetryConfig(),
            clock=self.clock,
        )


def test_import_runs_to_completion_with_auto_approval() -> None:
    harness = Harness()
    dataset = app.create_dataset(
        "Places",
        schema_config=SchemaConfig(auto_approve_non_breaking=True),
        id_strategy=BY_REF,
        pipeline=harness.pipeline,
    )

    job = app.create_import_job(dataset.id, "rows.csv", pipeline=harness.pipeline)

    assert job.stage is ImportStage.COMPLETED
    assert job.results is not None
    assert job.results.total_events == 2
    assert harness.geocoder.calls == ["1 Main St", "2 High St"]
    assert app.get_import_job(job.id, pipeline=harness.pipeline) is job


def test_first_import_resumes_after_approval() -> None:
    harness = Harness()
    dataset = app.create_dataset("Places", id_strategy=BY_REF, geocoding_enabled=False, pipeline=harness.pipeline)
    job = app.create_import_job(dataset.id, "rows.csv", pipeline=harness.pipeline)
    assert job.stage is ImportStage.AWAIT_APPROVAL

    version = app.approve_schema(job.id, approved_by="reviewer", pipeline=harness.pipeline)

    assert version.version_number == 1
    assert version.approved_by == "reviewer"
    assert job.stage is ImportStage.COMPLETED
    assert len(harness.store.events.current()) == 2


def test_create_import_job_without_run_only_queues_detection() -> None:
    harness = Harness()
    dataset = app.create_dataset("Places", pipeline=harness.pipeline)

    job = app.create_import_job(dataset.id, "rows.csv", pipeline=harness.pipeline, run=False)

    assert job.stage is ImportStage.DETECT_SCHEMA
    assert [run.stage for run in harness.pipeline.queue.pending()] == [ImportStage.DETECT_SCHEMA]


def test_unknown_dataset_and_job_raise() -> None:
    harness = Harness()

    with pytest.raises(DatasetNotFoundError):
        app.create_import_job(uuid4(), "rows.csv", pipeline=harness.pipeline)
    with pytest.raises(JobNotFoundError):
        app.get_import_job(uuid4(), pipeline=harness.pipeline)


def test_failed_geocoding_is_retried_by_the_sweep() -> None:
    geocoder = FakeGeocoder(error="Geocoding connection error")
    harness = Harness(geocoder=geocoder)
    dataset = app.create_dataset(
        "Places",
        schema_config=SchemaConfig(auto_approve_non_breaking=True),
        id_strategy=BY_REF,
        pipeline=harness.pipeline,
    )
    job = app.create_import_job(dataset.id, "rows.csv", pipeline=harness.pipeline)

    assert job.stage is ImportStage.FAILED
    assert job.retry_attempts == 1
    assert job.error_log.resume_stage is ImportStage.GEOCODE_BATCH

    geocoder.error = None
    geocoder.results = {
        "1 Main St": GeocodeResult(latitude=1.0, longitude=2.0, confidence=0.9),
        "2 High St": GeocodeResult(latitude=3.0, longitude=4.0, confidence=0.9),
    }
    assert app.process_pending_retries(pipeline=harness.pipeline).requeued == []

    harness.clock.advance(seconds=31)
    result = app.process_pending_retries(pipeline=harness.pipeline)

    assert result.requeued == [(job.id, ImportStage.GEOCODE_BATCH)]
    assert job.stage is ImportStage.COMPLETED
    assert job.results is not None
    assert job.results.geocoded == 2


def test_reset_and_recommendations() -> None:
    harness = Harness(geocoder=FakeGeocoder(error="Geocoding request failed with status 403 unauthorized"))
    dataset = app.create_dataset(
        "Places",
        schema_config=SchemaConfig(auto_approve_non_breaking=True),
        id_strategy=BY_REF,
        pipeline=harness.pipeline,
    )
    job = app.create_import_job(dataset.id, "rows.csv", pipeline=harness.pipeline)
    assert job.stage is ImportStage.FAILED

    (recommendation,) = app.get_recovery_recommendations(pipeline=harness.pipeline)
    assert recommendation.job_id == job.id
    assert recommendation.failed_stage is ImportStage.GEOCODE_BATCH
    assert not recommendation.classification.retryable

    harness.geocoder.error = None
    reset = app.reset_job_to_stage(job.id, ImportStage.GEOCODE_BATCH, requeue=True, pipeline=harness.pipeline)

    assert reset.success
    assert reset.action is RecoveryAction.MANUAL_RESET
    assert job.stage is ImportStage.COMPLETED
    assert app.get_recovery_recommendations(pipeline=harness.pipeline) == []


def test_recover_unknown_job() -> None:
    harness = Harness()

    result = app.recover_failed_job(uuid4(), pipeline=harness.pipeline)

    assert not result.success
    assert result.action is RecoveryAction.JOB_NOT_FOUND


def test_default_geocoder_is_disabled_without_contact(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("GEOCODING_APP_NAME", raising=False)
    monkeypatch.delenv("GEOCODING_CONTACT", raising=False)

    assert app._default_geocoder() == (None, 0.0)  # noqa: SLF001
