"""Immutable accepted schema states of a dataset."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any
from uuid import UUID, uuid4

from importflow.domain.model.schema_change import SchemaChange  # noqa: TC001


def _utcnow() -> datetime:
    return datetime.now(UTC)


@dataclass(eq=False, kw_only=True)
class SchemaVersion:
    """One accepted schema for a dataset.

    Versions are append-only: evolution creates a new row with the next
    ``version_number``. Repositories expose no update path.
    """

    id: UUID = field(default_factory=uuid4)
    dataset_id: UUID
    version_number: int
    schema: dict[str, Any]
    field_metadata: dict[str, Any] = field(default_factory=dict)
    approval_required: bool = False
    auto_approved: bool = False
    approved_by: str | None = None
    conflicts: tuple[SchemaChange, ...] = ()
    import_sources: tuple[UUID, ...] = ()
    created_at: datetime = field(default_factory=_utcnow)
