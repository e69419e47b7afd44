"""Events: the destination records created from imported rows."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any
from uuid import UUID, uuid4

from importflow.domain.model.enums import CoordinateSource


def _utcnow() -> datetime:
    return datetime.now(UTC)


@dataclass(eq=False, kw_only=True)
class Event:
    id: UUID = field(default_factory=uuid4)
    dataset_id: UUID
    import_job_id: UUID
    row_number: int
    unique_id: str
    content_hash: str
    data: dict[str, Any]
    latitude: float | None = None
    longitude: float | None = None
    coordinate_source: CoordinateSource = CoordinateSource.NONE
    geocoding_confidence: float | None = None
    normalized_address: str | None = None
    event_timestamp: datetime | None = None
    schema_version_number: int | None = None
    superseded: bool = False
    created_at: datetime = field(default_factory=_utcnow)
    updated_at: datetime | None = None

    @property
    def has_location(self) -> bool:
        return self.latitude is not None and self.longitude is not None
