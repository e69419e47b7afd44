"""Repository implementations backed by SQLAlchemy sessions."""

from __future__ import annotations

from typing import TYPE_CHECKING, cast

from sqlalchemy import func, select

from importflow.adapters.sqlalchemy.mappings import (
    event_table,
    import_job_table,
    schema_version_table,
)
from importflow.domain.model import Dataset, Event, ImportJob, ImportStage, SchemaVersion

if TYPE_CHECKING:
    import uuid
    from collections.abc import Collection
    from datetime import datetime

    from sqlalchemy.orm import Session

    from importflow.domain.model import CoordinateSource

# Keeps ``IN`` lists below the SQLite bound-parameter limit.
_IN_CLAUSE_CHUNK = 500


class SqlAlchemyDatasetRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def add(self, entity: Dataset) -> None:
        self.session.add(entity)

    def get(self, dataset_id: uuid.UUID) -> Dataset | None:
        return self.session.get(Dataset, dataset_id)


class SqlAlchemyImportJobRepository:
    """Import jobs; the mapper's version counter guards concurrent writers."""

    def __init__(self, session: Session) -> None:
        self.session = session

    def add(self, entity: ImportJob) -> None:
        self.session.add(entity)

    def get(self, job_id: uuid.UUID) -> ImportJob | None:
        return self.session.get(ImportJob, job_id)

    def list_failed(self, *, limit: int) -> list[ImportJob]:
        stmt = (
            select(ImportJob)
            .where(import_job_table.c.stage == ImportStage.FAILED)
            .order_by(import_job_table.c.created_at)
            .limit(limit)
        )
        return list(self.session.execute(stmt).scalars())

    def list_due_retries(self, *, now: datetime, max_retries: int, limit: int) -> list[ImportJob]:
        stmt = (
            select(ImportJob)
            .where(import_job_table.c.stage == ImportStage.FAILED)
            .where(import_job_table.c.next_retry_at.is_not(None))
            .where(import_job_table.c.next_retry_at <= now)
            .where(import_job_table.c.retry_attempts < max_retries)
            .order_by(import_job_table.c.next_retry_at)
            .limit(limit)
        )
        return list(self.session.execute(stmt).scalars())


class SqlAlchemySchemaVersionRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def add(self, entity: SchemaVersion) -> None:
        self.session.add(entity)

    def get(self, version_id: uuid.UUID) -> SchemaVersion | None:
        return self.session.get(SchemaVersion, version_id)

    def latest_for_dataset(self, dataset_id: uuid.UUID) -> SchemaVersion | None:
        stmt = (
            select(SchemaVersion)
            .where(schema_version_table.c.dataset_id == dataset_id)
            .order_by(schema_version_table.c.version_number.desc())
            .limit(1)
        )
        return self.session.execute(stmt).scalar_one_or_none()

    def list_for_dataset(self, dataset_id: uuid.UUID) -> list[SchemaVersion]:
        stmt = (
            select(SchemaVersion)
            .where(schema_version_table.c.dataset_id == dataset_id)
            .order_by(schema_version_table.c.version_number)
        )
        return list(self.session.execute(stmt).scalars())


class SqlAlchemyEventRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def add(self, entity: Event) -> None:
        self.session.add(entity)

    def get(self, event_id: uuid.UUID) -> Event | None:
        return self.session.get(Event, event_id)

    def find_by_unique_ids(
        self,
        dataset_id: uuid.UUID,
        unique_ids: Collection[str],
    ) -> dict[str, Event]:
        wanted = sorted(set(unique_ids))
        found: dict[str, Event] = {}
        for start in range(0, len(wanted), _IN_CLAUSE_CHUNK):
            chunk = wanted[start : start + _IN_CLAUSE_CHUNK]
            stmt = (
                select(Event)
                .where(event_table.c.dataset_id == dataset_id)
                .where(event_table.c.unique_id.in_(chunk))
                .where(event_table.c.superseded.is_(False))
                .order_by(event_table.c.created_at)
            )
            for event in self.session.execute(stmt).scalars():
                found[event.unique_id] = event
        return found

    def count_for_job(
        self,
        job_id: uuid.UUID,
        *,
        coordinate_source: CoordinateSource | None = None,
    ) -> int:
        stmt = (
            select(func.count())
            .select_from(event_table)
            .where(event_table.c.import_job_id == job_id)
            .where(event_table.c.superseded.is_(False))
        )
        if coordinate_source is not None:
            stmt = stmt.where(event_table.c.coordinate_source == coordinate_source)
        return int(self.session.execute(stmt).scalar_one())


if TYPE_CHECKING:
    from importflow.domain.ports.persistence import (
        DatasetRepository,
        EventRepository,
        ImportJobRepository,
        SchemaVersionRepository,
    )

    _session_stub = cast("Session", object())
    _dataset_repo: DatasetRepository = SqlAlchemyDatasetRepository(_session_stub)
    _import_job_repo: ImportJobRepository = SqlAlchemyImportJobRepository(_session_stub)
    _schema_version_repo: SchemaVersionRepository = SqlAlchemySchemaVersionRepository(
        _session_stub
    )
    _event_repo: EventRepository = SqlAlchemyEventRepository(_session_stub)
