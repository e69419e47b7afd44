"""Domain port definitions for adapters."""

from __future__ import annotations

from .geocoding import GeocodeResult, Geocoder, GeocodingError
from .persistence import (
    DatasetRepository,
    EventRepository,
    ImportJobRepository,
    Repository,
    SchemaVersionRepository,
)
from .queue import JobQueue
from .sources import SourceBatch, SourceReader, SourceReadError, iter_rows, read_batch
from .unit_of_work import (
    ConcurrentUpdateError,
    PipelineRepositories,
    PipelineUnitOfWork,
    RepositoryCollection,
    UnitOfWork,
)

__all__ = [
    "ConcurrentUpdateError",
    "DatasetRepository",
    "EventRepository",
    "GeocodeResult",
    "Geocoder",
    "GeocodingError",
    "ImportJobRepository",
    "JobQueue",
    "PipelineRepositories",
    "PipelineUnitOfWork",
    "Repository",
    "RepositoryCollection",
    "SchemaVersionRepository",
    "SourceBatch",
    "SourceReadError",
    "SourceReader",
    "UnitOfWork",
    "iter_rows",
    "read_batch",
]
