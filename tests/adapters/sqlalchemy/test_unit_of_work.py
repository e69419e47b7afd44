from __future__ import annotations

from typing import TYPE_CHECKING

import pytest
from sqlalchemy import create_engine

from importflow.adapters.sqlalchemy.unit_of_work import (
    SqlAlchemyPipelineUnitOfWork,
    StartupError,
    configured_engine,
    is_started,
    shutdown,
    startup,
)
from importflow.domain.model import (
    DeduplicationConfig,
    DeduplicationStrategy,
    ErrorLog,
    FieldMappings,
    ImportStage,
    Progress,
    SchemaConfig,
)
from importflow.domain.ports import ConcurrentUpdateError
from tests.helpers.pipeline import START, make_dataset, make_failed_job, make_job

if TYPE_CHECKING:
    from collections.abc import Iterator
    from pathlib import Path

    from sqlalchemy.engine import Engine


@pytest.fixture(autouse=True)
def reset_unit_of_work_state() -> Iterator[None]:
    shutdown()
    yield
    shutdown()


def test_unit_of_work_requires_startup() -> None:
    assert not is_started()
    with pytest.raises(StartupError):
        SqlAlchemyPipelineUnitOfWork()


def test_startup_requires_force_for_reconfiguration() -> None:
    engine_a = create_engine("sqlite+pysqlite:///:memory:", future=True)
    engine_b = create_engine("sqlite+pysqlite:///:memory:", future=True)

    startup(engine=engine_a, force=True)

    with pytest.raises(StartupError):
        startup(engine=engine_b)

    startup(engine=engine_b, force=True)
    assert configured_engine() is engine_b


def test_repositories_require_open_unit_of_work(sqlite_engine: Engine) -> None:
    startup(engine=sqlite_engine, force=True)
    uow = SqlAlchemyPipelineUnitOfWork()

    with pytest.raises(StartupError):
        _ = uow.repositories


def test_unit_of_work_round_trips_job_documents(sqlite_engine: Engine) -> None:
    startup(engine=sqlite_engine, force=True)
    dataset = make_dataset(
        schema_config=SchemaConfig(locked=True),
        deduplication_config=DeduplicationConfig(strategy=DeduplicationStrategy.VERSION),
    )
    job = make_failed_job(dataset, "Connection refused", failed_stage=ImportStage.CREATE_EVENTS)
    job.progress = Progress(stage=ImportStage.CREATE_EVENTS, processed=10, total=40, batches_processed=1)
    job.field_mappings = FieldMappings(latitude_path="lat", longitude_path="lng", geo_confidence=0.9)
    job.schema_builder_state = {"record_count": 10}
    job.next_retry_at = START

    with SqlAlchemyPipelineUnitOfWork() as uow:
        uow.repositories.datasets.add(dataset)
        uow.repositories.import_jobs.add(job)
        uow.commit()

    with SqlAlchemyPipelineUnitOfWork() as uow:
        loaded_dataset = uow.repositories.datasets.get(dataset.id)
        loaded = uow.repositories.import_jobs.get(job.id)

        assert loaded_dataset is not None
        assert loaded_dataset.schema_config == SchemaConfig(locked=True)
        assert loaded_dataset.deduplication_config.strategy is DeduplicationStrategy.VERSION
        assert loaded is not None
        assert loaded.stage is ImportStage.FAILED
        assert loaded.error_log.last_error == "Connection refused"
        assert loaded.error_log.failed_stage is ImportStage.CREATE_EVENTS
        assert loaded.error_log.last_error_at == START
        assert loaded.progress.percent == 25.0
        assert loaded.field_mappings.has_coordinates
        assert loaded.schema_builder_state == {"record_count": 10}
        assert loaded.next_retry_at == START
        assert loaded.version == 1


def test_exception_inside_unit_of_work_rolls_back(sqlite_engine: Engine) -> None:
    startup(engine=sqlite_engine, force=True)
    dataset = make_dataset()

    def _fail() -> None:
        with SqlAlchemyPipelineUnitOfWork() as uow:
            uow.repositories.datasets.add(dataset)
            raise RuntimeError("boom")

    with pytest.raises(RuntimeError):
        _fail()

    with SqlAlchemyPipelineUnitOfWork() as uow:
        assert uow.repositories.datasets.get(dataset.id) is None


def test_lost_version_race_raises_concurrent_update(tmp_path: Path) -> None:
    startup(database_uri=f"sqlite+pysqlite:///{tmp_path / 'race.db'}", force=True)
    dataset = make_dataset()
    job = make_job(dataset)

    with SqlAlchemyPipelineUnitOfWork() as uow:
        uow.repositories.datasets.add(dataset)
        uow.repositories.import_jobs.add(job)
        uow.commit()

    with SqlAlchemyPipelineUnitOfWork() as first, SqlAlchemyPipelineUnitOfWork() as second:
        first_job = first.repositories.import_jobs.get(job.id)
        second_job = second.repositories.import_jobs.get(job.id)
        assert first_job is not None
        assert second_job is not None

        first_job.stage = ImportStage.VALIDATE_SCHEMA
        first.commit()

        second_job.error_log = ErrorLog().with_failure("late writer", stage=ImportStage.DETECT_SCHEMA, at=START)
        second_job.stage = ImportStage.FAILED
        with pytest.raises(ConcurrentUpdateError):
            second.commit()

    with SqlAlchemyPipelineUnitOfWork() as uow:
        stored = uow.repositories.import_jobs.get(job.id)
        assert stored is not None
        assert stored.stage is ImportStage.VALIDATE_SCHEMA
        assert stored.error_log.last_error is None
        assert stored.version == 2
