from __future__ import annotations

from typing import TYPE_CHECKING

import httpx
import pytest

from importflow import app
from importflow.adapters.file_source import FileSourceReader
from importflow.adapters.http_resilience import ResilientClient
from importflow.adapters.nominatim import NominatimGeocoder
from importflow.config import BatchSizes, PipelineConfig, RetryConfig
from importflow.config.geocoding import GeocodingConfig
from importflow.config.http_resilience import CacheConfig, ResilienceConfig, RetryPolicy
from importflow.domain.model import (
    CoordinateSource,
    DeduplicationConfig,
    DeduplicationStrategy,
    IdStrategy,
    IdStrategyType,
    ImportResults,
    ImportStage,
    SchemaConfig,
)
from tests.helpers.pipeline import FixedClock

if TYPE_CHECKING:
    from collections.abc import Callable
    from pathlib import Path

    from aiolimiter import AsyncLimiter

    from importflow.adapters.sqlalchemy.unit_of_work import SqlAlchemyPipelineUnitOfWork

CSV = "ref,name,address,when\na,Alpha,1 Main St,2024-01-01\nb,Bravo,2 High St,2024-01-02\nc,Charlie,Nowhere,2024-01-03\n"

PLACES = {
    "1 Main St": {"lat": "52.52", "lon": "13.40", "display_name": "1 Main Street, Berlin", "importance": 0.8},
    "2 High St": {"lat": "48.85", "lon": "2.35", "display_name": "2 High Street, Paris", "importance": 0.7},
}


def _geocoder() -> NominatimGeocoder:
    def handler(request: httpx.Request) -> httpx.Response:
        place = PLACES.get(request.url.params["q"])
        return httpx.Response(200, json=[place] if place else [])

    resilience = ResilienceConfig(
        name="nominatim",
        base_url="https://geo.example.test",
        retry=RetryPolicy(total=0),
        cache=CacheConfig(enabled=False),
    )

    def factory(config: ResilienceConfig, limiter: AsyncLimiter | None) -> ResilientClient:
        return ResilientClient(config, transport=httpx.MockTransport(handler), limiter=limiter)

    return NominatimGeocoder(config=GeocodingConfig(resilience=resilience), client_factory=factory)


@pytest.fixture
def pipeline(
    sqlite_unit_of_work: Callable[[], SqlAlchemyPipelineUnitOfWork],
    tmp_path: Path,
) -> app.Pipeline:
    (tmp_path / "places.csv").write_text(CSV, encoding="utf-8")
    return app.build_pipeline(
        unit_of_work_factory=sqlite_unit_of_work,
        reader=FileSourceReader(tmp_path),
        geocoder=_geocoder(),
        pipeline_config=PipelineConfig(
            batch_sizes=BatchSizes(schema_detection=2, duplicate_analysis=2, geocoding=2, event_creation=2),
        ),
        retry_config=RetryConfig(),
        clock=FixedClock(),
    )


@pytest.mark.integration
def test_csv_import_persists_geocoded_events(
    pipeline: app.Pipeline,
    sqlite_unit_of_work: Callable[[], SqlAlchemyPipelineUnitOfWork],
) -> None:
    dataset = app.create_dataset(
        "Places",
        schema_config=SchemaConfig(auto_approve_non_breaking=True),
        id_strategy=IdStrategy(type=IdStrategyType.EXTERNAL, external_id_path="ref"),
        pipeline=pipeline,
    )

    job = app.create_import_job(dataset.id, "places.csv", pipeline=pipeline)

    assert job.stage is ImportStage.COMPLETED
    assert job.results == ImportResults(total_events=3, duplicates_skipped=0, geocoded=2, errors=0)
    assert job.field_mappings.address_path == "address"
    assert job.field_mappings.timestamp_path == "when"

    with sqlite_unit_of_work() as uow:
        version = uow.repositories.schema_versions.latest_for_dataset(dataset.id)
        found = uow.repositories.events.find_by_unique_ids(dataset.id, ["a", "b", "c"])
    assert version is not None
    assert version.version_number == 1
    assert version.auto_approved
    assert found["a"].coordinate_source is CoordinateSource.GEOCODED
    assert found["a"].normalized_address == "1 Main Street, Berlin"
    assert found["c"].coordinate_source is CoordinateSource.NONE


@pytest.mark.integration
def test_reimport_with_versioning_supersedes_events(
    pipeline: app.Pipeline,
    sqlite_unit_of_work: Callable[[], SqlAlchemyPipelineUnitOfWork],
) -> None:
    dataset = app.create_dataset(
        "Places",
        schema_config=SchemaConfig(auto_approve_non_breaking=True),
        deduplication_config=DeduplicationConfig(strategy=DeduplicationStrategy.VERSION),
        id_strategy=IdStrategy(type=IdStrategyType.EXTERNAL, external_id_path="ref"),
        geocoding_enabled=False,
        pipeline=pipeline,
    )
    first = app.create_import_job(dataset.id, "places.csv", pipeline=pipeline)
    second = app.create_import_job(dataset.id, "places.csv", pipeline=pipeline)

    assert second.stage is ImportStage.COMPLETED
    assert second.schema_version_id == first.schema_version_id
    assert second.duplicates is not None
    assert len(second.duplicates.external) == 3

    with sqlite_unit_of_work() as uow:
        current = uow.repositories.events.find_by_unique_ids(dataset.id, ["a", "b", "c"])
        assert uow.repositories.events.count_for_job(first.id) == 0
        assert uow.repositories.events.count_for_job(second.id) == 3
        versions = uow.repositories.schema_versions.list_for_dataset(dataset.id)
    assert {event.import_job_id for event in current.values()} == {second.id}
    assert len(versions) == 1


@pytest.mark.integration
def test_missing_file_fails_without_retry(pipeline: app.Pipeline) -> None:
    dataset = app.create_dataset("Places", pipeline=pipeline)

    job = app.create_import_job(dataset.id, "absent.csv", pipeline=pipeline)

    assert job.stage is ImportStage.FAILED
    assert job.error_log.last_error == "File not found: absent.csv"
    assert job.next_retry_at is None
    (recommendation,) = app.get_recovery_recommendations(pipeline=pipeline)
    assert recommendation.job_id == job.id
    assert not recommendation.classification.retryable
