"""Ports for persisting pipeline aggregates."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

from importflow.domain.model import Dataset, Event, ImportJob, SchemaVersion

if TYPE_CHECKING:
    from collections.abc import Collection
    from datetime import datetime
    from uuid import UUID

    from importflow.domain.model import CoordinateSource


@runtime_checkable
class Repository[TEntity](Protocol):
    """Minimal repository contract for a persistent aggregate store."""

    def add(self, entity: TEntity) -> None: ...


@runtime_checkable
class DatasetRepository(Repository[Dataset], Protocol):
    def get(self, dataset_id: UUID) -> Dataset | None: ...


@runtime_checkable
class ImportJobRepository(Repository[ImportJob], Protocol):
    """Persistence contract for import jobs.

    Implementations enforce optimistic concurrency on ``ImportJob.version``.
    """

    def get(self, job_id: UUID) -> ImportJob | None: ...

    def list_failed(self, *, limit: int) -> list[ImportJob]: ...

    def list_due_retries(self, *, now: datetime, max_retries: int, limit: int) -> list[ImportJob]:
        """Failed jobs whose ``next_retry_at`` has passed, oldest first."""
        ...


@runtime_checkable
class SchemaVersionRepository(Repository[SchemaVersion], Protocol):
    """Append-only store of accepted schemas; there is no update operation."""

    def get(self, version_id: UUID) -> SchemaVersion | None: ...

    def latest_for_dataset(self, dataset_id: UUID) -> SchemaVersion | None: ...

    def list_for_dataset(self, dataset_id: UUID) -> list[SchemaVersion]: ...


@runtime_checkable
class EventRepository(Repository[Event], Protocol):
    def get(self, event_id: UUID) -> Event | None: ...

    def find_by_unique_ids(self, dataset_id: UUID, unique_ids: Collection[str]) -> dict[str, Event]:
        """Current (not superseded) events of ``dataset_id`` keyed by unique id."""
        ...

    def count_for_job(
        self,
        job_id: UUID,
        *,
        coordinate_source: CoordinateSource | None = None,
    ) -> int: ...
