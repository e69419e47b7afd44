"""Turn source rows into events: coordinates, timestamps and resolution."""

from __future__ import annotations

import math
from datetime import UTC, date, datetime
from typing import TYPE_CHECKING, Any

from importflow.domain.deduplication import content_hash
from importflow.domain.deduplication.identity import extract_path
from importflow.domain.model import CoordinateSource, Event, GeocodeSource
from importflow.domain.schema.patterns import (
    LATITUDE_BOUNDS,
    LONGITUDE_BOUNDS,
    parse_combined_coordinates,
)

if TYPE_CHECKING:
    from collections.abc import Mapping
    from uuid import UUID

    from importflow.domain.model import FieldMappings, GeocodingResult

_EPOCH_MILLIS_THRESHOLD = 1e11
_FALLBACK_FORMATS = ("%m/%d/%Y", "%d.%m.%Y", "%Y/%m/%d", "%m/%d/%Y %H:%M:%S")


def _to_float(value: object) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str) and value.strip():
        try:
            number = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    return number if math.isfinite(number) else None


def valid_coordinates(latitude: float, longitude: float) -> bool:
    return (
        LATITUDE_BOUNDS[0] <= latitude <= LATITUDE_BOUNDS[1]
        and LONGITUDE_BOUNDS[0] <= longitude <= LONGITUDE_BOUNDS[1]
    )


def extract_coordinates(row: Mapping[str, Any], mappings: FieldMappings) -> tuple[float, float] | None:
    """Coordinates carried by the row itself, or ``None`` when absent or out of range."""

    if mappings.latitude_path and mappings.longitude_path:
        latitude = _to_float(extract_path(row, mappings.latitude_path))
        longitude = _to_float(extract_path(row, mappings.longitude_path))
        if latitude is not None and longitude is not None and valid_coordinates(latitude, longitude):
            return latitude, longitude
    if mappings.coordinates_path:
        return parse_combined_coordinates(extract_path(row, mappings.coordinates_path))
    return None


def extract_address(row: Mapping[str, Any], mappings: FieldMappings) -> str | None:
    if mappings.address_path is None:
        return None
    value = extract_path(row, mappings.address_path)
    if value is None:
        return None
    text = " ".join(str(value).split())
    return text or None


def _as_utc(value: datetime) -> datetime:
    return value.replace(tzinfo=UTC) if value.tzinfo is None else value.astimezone(UTC)


def parse_timestamp(value: object) -> datetime | None:
    """Best-effort conversion of a timestamp cell; unparseable values yield ``None``."""

    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        return _as_utc(value)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=UTC)
    if isinstance(value, (int, float)):
        if not math.isfinite(value):
            return None
        seconds = value / 1000 if abs(value) >= _EPOCH_MILLIS_THRESHOLD else value
        try:
            return datetime.fromtimestamp(seconds, tz=UTC)
        except (OverflowError, OSError, ValueError):
            return None
    if not isinstance(value, str) or not value.strip():
        return None

    text = value.strip()
    try:
        return _as_utc(datetime.fromisoformat(text))
    except ValueError:
        pass
    for pattern in _FALLBACK_FORMATS:
        try:
            return _as_utc(datetime.strptime(text, pattern))  # noqa: DTZ007
        except ValueError:
            continue
    return None


def resolve_location(
    row: Mapping[str, Any],
    mappings: FieldMappings,
    geocoded: GeocodingResult | None,
) -> tuple[float | None, float | None, CoordinateSource, float | None, str | None]:
    """``(latitude, longitude, source, confidence, normalized_address)`` for one row."""

    if geocoded is not None:
        source = (
            CoordinateSource.GEOCODED
            if geocoded.source is GeocodeSource.GEOCODED
            else CoordinateSource.IMPORT
        )
        return (
            geocoded.latitude,
            geocoded.longitude,
            source,
            geocoded.confidence,
            geocoded.formatted_address,
        )
    coordinates = extract_coordinates(row, mappings)
    if coordinates is not None:
        return coordinates[0], coordinates[1], CoordinateSource.IMPORT, 1.0, None
    return None, None, CoordinateSource.NONE, None, None


def build_event(
    *,
    dataset_id: UUID,
    import_job_id: UUID,
    row_number: int,
    unique_id: str,
    row: Mapping[str, Any],
    mappings: FieldMappings,
    geocoded: GeocodingResult | None,
    schema_version_number: int | None,
    now: datetime,
) -> Event:
    latitude, longitude, source, confidence, address = resolve_location(row, mappings, geocoded)
    timestamp = parse_timestamp(extract_path(row, mappings.timestamp_path or ""))
    return Event(
        dataset_id=dataset_id,
        import_job_id=import_job_id,
        row_number=row_number,
        unique_id=unique_id,
        content_hash=content_hash(row),
        data=dict(row),
        latitude=latitude,
        longitude=longitude,
        coordinate_source=source,
        geocoding_confidence=confidence,
        normalized_address=address,
        event_timestamp=timestamp,
        schema_version_number=schema_version_number,
        created_at=now,
    )


def overwrite_event(existing: Event, replacement: Event, *, now: datetime) -> None:
    """Apply ``replacement``'s content to ``existing`` in place, keeping its identity."""

    existing.import_job_id = replacement.import_job_id
    existing.row_number = replacement.row_number
    existing.content_hash = replacement.content_hash
    existing.data = replacement.data
    existing.latitude = replacement.latitude
    existing.longitude = replacement.longitude
    existing.coordinate_source = replacement.coordinate_source
    existing.geocoding_confidence = replacement.geocoding_confidence
    existing.normalized_address = replacement.normalized_address
    existing.event_timestamp = replacement.event_timestamp
    existing.schema_version_number = replacement.schema_version_number
    existing.updated_at = now
