"""Unit-of-work abstractions for coordinating repositories."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from types import TracebackType

    from importflow.domain.ports.persistence import (
        DatasetRepository,
        EventRepository,
        ImportJobRepository,
        SchemaVersionRepository,
    )


class ConcurrentUpdateError(RuntimeError):
    """Raised on commit when another writer changed the same import job first."""


@runtime_checkable
class RepositoryCollection(Protocol):
    """Marker protocol for groups of repositories managed together."""


@runtime_checkable
class UnitOfWork[TRepositories: RepositoryCollection](Protocol):
    """Generic unit-of-work boundary around a repository collection."""

    @property
    def repositories(self) -> TRepositories: ...

    def __enter__(self) -> UnitOfWork[TRepositories]: ...

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_value: BaseException | None,
        traceback: TracebackType | None,
    ) -> bool: ...

    def commit(self) -> None: ...

    def rollback(self) -> None: ...


@dataclass(slots=True)
class PipelineRepositories(RepositoryCollection):
    """Repositories a stage handler works with inside one transaction."""

    datasets: DatasetRepository
    import_jobs: ImportJobRepository
    schema_versions: SchemaVersionRepository
    events: EventRepository


type PipelineUnitOfWork = UnitOfWork[PipelineRepositories]
