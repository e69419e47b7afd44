"""SQLAlchemy adapter package for importflow."""

from __future__ import annotations

from .mappings import create_all_tables, mapper_registry, start_mappers
from .repositories import (
    SqlAlchemyDatasetRepository,
    SqlAlchemyEventRepository,
    SqlAlchemyImportJobRepository,
    SqlAlchemySchemaVersionRepository,
)
from .unit_of_work import (
    SqlAlchemyPipelineUnitOfWork,
    StartupError,
    is_started,
    shutdown,
    startup,
)

__all__ = [
    "SqlAlchemyDatasetRepository",
    "SqlAlchemyEventRepository",
    "SqlAlchemyImportJobRepository",
    "SqlAlchemyPipelineUnitOfWork",
    "SqlAlchemySchemaVersionRepository",
    "StartupError",
    "create_all_tables",
    "is_started",
    "mapper_registry",
    "shutdown",
    "start_mappers",
    "startup",
]
