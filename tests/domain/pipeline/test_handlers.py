from __future__ import annotations

from typing import TYPE_CHECKING, Any

import pytest

from importflow.adapters.local_queue import DrainResult, LocalJobQueue
from importflow.config import BatchSizes, PipelineConfig
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
from importflow.domain.pipeline import PipelineRunner, approve_schema
from importflow.domain.pipeline.handlers import default_handlers
from importflow.domain.ports import GeocodeResult
from tests.helpers.pipeline import (
    FakeGeocoder,
    FakeStore,
    FixedClock,
    ListSourceReader,
    make_dataset,
    make_job,
)

if TYPE_CHECKING:
    from importflow.domain.model import Dataset, ImportJob

AUTO_APPROVE = SchemaConfig(auto_approve_non_breaking=True)
BY_REF = IdStrategy(type=IdStrategyType.EXTERNAL, external_id_path="ref")

PLACES: list[dict[str, Any]] = [
    {"ref": "a", "name": "Alpha", "lat": 52.52, "lng": 13.40, "when": "2024-01-01"},
    {"ref": "b", "name": "Bravo", "lat": 48.85, "lng": 2.35, "when": "2024-01-02"},
    {"ref": "c", "name": "Charlie", "lat": 40.71, "lng": -74.0, "when": "2024-01-03"},
]


class Pipeline:
    """Runner wired to in-memory fakes with tiny batches."""

    def __init__(self, sources: dict[str, list[dict[str, Any]]], *, geocoder: FakeGeocoder | None = None) -> None:
        self.store = FakeStore()
        self.reader = ListSourceReader(sources)
        self.clock = FixedClock()
        self.queue = LocalJobQueue()
        self.config = PipelineConfig(
            batch_sizes=BatchSizes(schema_detection=2, duplicate_analysis=2, geocoding=2, event_creation=2),
            duplicate_lookup_chunk_size=2,
        )
        self.runner = PipelineRunner(
            default_handlers(reader=self.reader, config=self.config, geocoder=geocoder),
            unit_of_work_factory=self.store.unit_of_work,
            queue=self.queue,
            clock=self.clock,
        )

    def add_dataset(self, dataset: Dataset) -> Dataset:
        self.store.datasets.add(dataset)
        return dataset

    def start(self, dataset: Dataset, source: str) -> ImportJob:
        job = make_job(dataset, source=source)
        self.store.import_jobs.add(job)
        self.queue.enqueue(ImportStage.DETECT_SCHEMA, job.id)
        return job

    def drain(self) -> DrainResult:
        return self.queue.drain(self.runner)

    def approve(self, job: ImportJob, approved_by: str = "reviewer") -> None:
        approve_schema(
            job.id,
            approved_by=approved_by,
            unit_of_work_factory=self.store.unit_of_work,
            queue=self.queue,
            config=self.config,
            clock=self.clock,
        )


def _with_duplicate(rows: list[dict[str, Any]]) -> list[dict[str, Any]]:
    return [*rows, dict(rows[0])]


def test_auto_approved_import_runs_to_completion() -> None:
    pipeline = Pipeline({"places.csv": _with_duplicate(PLACES)})
    dataset = pipeline.add_dataset(make_dataset(schema_config=AUTO_APPROVE))
    job = pipeline.start(dataset, "places.csv")

    drained = pipeline.drain()

    assert drained.failed == []
    assert job.stage is ImportStage.COMPLETED
    assert job.last_successful_stage is ImportStage.CREATE_EVENTS
    assert job.field_mappings.latitude_path == "lat"
    assert job.field_mappings.longitude_path == "lng"
    assert job.field_mappings.timestamp_path == "when"
    assert job.results == ImportResults(total_events=3, duplicates_skipped=1, geocoded=0, errors=0)

    (version,) = pipeline.store.schema_versions.items
    assert version.version_number == 1
    assert version.auto_approved
    assert job.schema_version_id == version.id

    events = pipeline.store.events.current()
    assert sorted(event.row_number for event in events) == [0, 1, 2]
    assert {event.coordinate_source for event in events} == {CoordinateSource.IMPORT}
    assert all(event.schema_version_number == 1 for event in events)
    assert all(event.event_timestamp is not None for event in events)


def test_detection_reads_source_in_batches() -> None:
    pipeline = Pipeline({"places.csv": _with_duplicate(PLACES)})
    dataset = pipeline.add_dataset(make_dataset(schema_config=AUTO_APPROVE))
    job = pipeline.start(dataset, "places.csv")

    pipeline.drain()

    detect_reads = [(offset, limit) for _, offset, limit in pipeline.reader.reads if limit == 3]
    assert detect_reads[:2] == [(0, 3), (2, 3)]
    assert job.progress.stage is ImportStage.CREATE_EVENTS
    assert job.progress.percent == 100.0


def test_first_import_waits_for_approval_by_default() -> None:
    pipeline = Pipeline({"places.csv": PLACES})
    dataset = pipeline.add_dataset(make_dataset())
    job = pipeline.start(dataset, "places.csv")

    pipeline.drain()

    assert job.stage is ImportStage.AWAIT_APPROVAL
    assert job.last_successful_stage is ImportStage.ANALYZE_DUPLICATES
    assert job.schema_validation is not None
    assert job.schema_validation.requires_approval
    assert job.duplicates is not None
    assert pipeline.store.schema_versions.items == []
    assert pipeline.store.events.items == []
    assert len(pipeline.queue) == 0

    pipeline.approve(job)
    pipeline.drain()

    assert job.stage is ImportStage.COMPLETED
    (version,) = pipeline.store.schema_versions.items
    assert version.approved_by == "reviewer"
    assert not version.auto_approved
    assert len(pipeline.store.events.current()) == 3


def test_locked_schema_holds_new_fields_for_approval() -> None:
    extended = [{**row, "extra": index} for index, row in enumerate(PLACES)]
    pipeline = Pipeline({"first.csv": PLACES, "second.csv": extended})
    dataset = pipeline.add_dataset(make_dataset(schema_config=AUTO_APPROVE, id_strategy=BY_REF))
    pipeline.start(dataset, "first.csv")
    pipeline.drain()

    dataset.schema_config = SchemaConfig(auto_approve_non_breaking=True, locked=True)
    second = pipeline.start(dataset, "second.csv")
    pipeline.drain()

    assert second.stage is ImportStage.AWAIT_APPROVAL
    assert second.schema_validation is not None
    assert [change.path for change in second.schema_validation.changes] == ["extra"]
    assert len(pipeline.store.schema_versions.items) == 1


def test_column_present_in_every_row_is_auto_approved() -> None:
    extended = [{**row, "extra": index} for index, row in enumerate(PLACES)]
    pipeline = Pipeline({"first.csv": PLACES, "second.csv": extended})
    dataset = pipeline.add_dataset(make_dataset(schema_config=AUTO_APPROVE, id_strategy=BY_REF))
    first = pipeline.start(dataset, "first.csv")
    pipeline.drain()

    second = pipeline.start(dataset, "second.csv")
    pipeline.drain()

    assert second.stage is ImportStage.COMPLETED
    assert second.schema_validation is not None
    assert not second.schema_validation.requires_approval
    assert second.schema_version_id != first.schema_version_id
    versions = pipeline.store.schema_versions.items
    assert [version.version_number for version in versions] == [1, 2]
    assert all(version.auto_approved for version in versions)


def test_unchanged_schema_reuses_active_version() -> None:
    pipeline = Pipeline({"first.csv": PLACES, "again.csv": PLACES})
    dataset = pipeline.add_dataset(make_dataset(schema_config=AUTO_APPROVE, id_strategy=BY_REF))
    first = pipeline.start(dataset, "first.csv")
    pipeline.drain()

    second = pipeline.start(dataset, "again.csv")
    pipeline.drain()

    assert second.stage is ImportStage.COMPLETED
    assert second.schema_version_id == first.schema_version_id
    assert len(pipeline.store.schema_versions.items) == 1


def _reimport(strategy: DeduplicationStrategy, second: list[dict[str, Any]]) -> tuple[Pipeline, ImportJob]:
    pipeline = Pipeline({"first.csv": PLACES, "second.csv": second})
    dataset = pipeline.add_dataset(
        make_dataset(
            schema_config=AUTO_APPROVE,
            id_strategy=BY_REF,
            deduplication_config=DeduplicationConfig(strategy=strategy),
        )
    )
    pipeline.start(dataset, "first.csv")
    pipeline.drain()
    job = pipeline.start(dataset, "second.csv")
    pipeline.drain()
    return pipeline, job


def test_skip_strategy_ignores_known_rows() -> None:
    pipeline, job = _reimport(DeduplicationStrategy.SKIP, PLACES)

    assert job.stage is ImportStage.COMPLETED
    assert job.results == ImportResults(total_events=0, duplicates_skipped=3, geocoded=0, errors=0)
    assert len(pipeline.store.events.items) == 3


def test_update_strategy_overwrites_in_place() -> None:
    renamed = [{**row, "name": f"{row['name']} v2"} for row in PLACES]
    pipeline, job = _reimport(DeduplicationStrategy.UPDATE, renamed)

    events = pipeline.store.events.items
    assert len(events) == 3
    assert {event.data["name"] for event in events} == {"Alpha v2", "Bravo v2", "Charlie v2"}
    assert {event.import_job_id for event in events} == {job.id}
    assert job.results is not None
    assert job.results.total_events == 3


def test_version_strategy_supersedes_previous_events() -> None:
    pipeline, job = _reimport(DeduplicationStrategy.VERSION, PLACES)

    events = pipeline.store.events.items
    assert len(events) == 6
    assert len(pipeline.store.events.current()) == 3
    assert sum(event.superseded for event in events) == 3
    assert all(event.import_job_id == job.id for event in pipeline.store.events.current())


def test_rows_without_external_id_become_row_errors() -> None:
    rows = [*PLACES, {"name": "No ref", "lat": 1.0, "lng": 2.0, "when": "2024-01-04"}]
    pipeline = Pipeline({"rows.csv": rows})
    dataset = pipeline.add_dataset(make_dataset(schema_config=AUTO_APPROVE, id_strategy=BY_REF))
    job = pipeline.start(dataset, "rows.csv")

    pipeline.drain()

    assert job.stage is ImportStage.COMPLETED
    (error,) = job.row_errors
    assert error.row == 3
    assert "ref" in error.error
    assert job.results is not None
    assert job.results.errors == 1
    assert job.results.total_events == 3


def test_addresses_are_geocoded_once_per_batch() -> None:
    rows = [
        {"ref": "a", "address": "1 Main St"},
        {"ref": "b", "address": "1 Main St"},
        {"ref": "c", "address": "Nowhere"},
    ]
    geocoder = FakeGeocoder(
        {"1 Main St": GeocodeResult(latitude=10.0, longitude=20.0, confidence=0.9, formatted_address="1 Main Street")}
    )
    pipeline = Pipeline({"rows.csv": rows}, geocoder=geocoder)
    dataset = pipeline.add_dataset(make_dataset(schema_config=AUTO_APPROVE, id_strategy=BY_REF))
    job = pipeline.start(dataset, "rows.csv")

    pipeline.drain()

    assert job.stage is ImportStage.COMPLETED
    assert job.field_mappings.address_path == "address"
    assert geocoder.calls == ["1 Main St", "Nowhere"]
    assert geocoder.batches == [["1 Main St"], ["Nowhere"]]
    assert [result.row_number for result in job.geocoding_results] == [0, 1]
    assert job.results is not None
    assert job.results.geocoded == 2

    by_row = {event.row_number: event for event in pipeline.store.events.current()}
    assert by_row[0].coordinate_source is CoordinateSource.GEOCODED
    assert by_row[0].normalized_address == "1 Main Street"
    assert by_row[2].coordinate_source is CoordinateSource.NONE


def test_geocoding_disabled_skips_geocoder() -> None:
    geocoder = FakeGeocoder()
    pipeline = Pipeline({"rows.csv": [{"ref": "a", "address": "1 Main St"}]}, geocoder=geocoder)
    dataset = pipeline.add_dataset(
        make_dataset(schema_config=AUTO_APPROVE, id_strategy=BY_REF, geocoding_enabled=False)
    )
    job = pipeline.start(dataset, "rows.csv")

    pipeline.drain()

    assert job.stage is ImportStage.COMPLETED
    assert geocoder.calls == []


def test_geocoder_error_fails_job() -> None:
    geocoder = FakeGeocoder(error="Geocoder request failed with HTTP 503")
    pipeline = Pipeline({"rows.csv": [{"ref": "a", "address": "1 Main St"}]}, geocoder=geocoder)
    dataset = pipeline.add_dataset(make_dataset(schema_config=AUTO_APPROVE, id_strategy=BY_REF))
    job = pipeline.start(dataset, "rows.csv")

    drained = pipeline.drain()

    assert len(drained.failed) == 1
    assert job.stage is ImportStage.FAILED
    assert job.error_log.failed_stage is ImportStage.GEOCODE_BATCH
    assert job.last_successful_stage is ImportStage.ANALYZE_DUPLICATES


@pytest.mark.parametrize("source", ["missing.csv"])
def test_unreadable_source_fails_detection(source: str) -> None:
    pipeline = Pipeline({})
    dataset = pipeline.add_dataset(make_dataset())
    job = pipeline.start(dataset, source)

    drained = pipeline.drain()

    assert [run.stage for run in drained.failed] == [ImportStage.DETECT_SCHEMA]
    assert job.stage is ImportStage.FAILED
    assert job.error_log.last_error == f"File not found: {source}"
