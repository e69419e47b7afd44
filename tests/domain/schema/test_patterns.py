from __future__ import annotations

from typing import TYPE_CHECKING, Any

import pytest

from importflow.domain.schema import (
    ProgressiveSchemaBuilder,
    detect_geo_fields,
    detect_id_fields,
    detect_timestamp_field,
)
from importflow.domain.schema.patterns import parse_combined_coordinates

if TYPE_CHECKING:
    from importflow.domain.schema import FieldStatistics


def _stats(records: list[dict[str, Any]]) -> dict[str, FieldStatistics]:
    builder = ProgressiveSchemaBuilder()
    builder.process_batch(records)
    return builder.state.field_stats


def test_separate_coordinate_columns() -> None:
    detected = detect_geo_fields(
        _stats(
            [
                {"latitude": 52.52, "longitude": 13.40},
                {"latitude": 48.85, "longitude": 2.35},
            ]
        )
    )

    assert detected.latitude == "latitude"
    assert detected.longitude == "longitude"
    assert detected.combined is None
    assert detected.confidence == pytest.approx(1.0)


def test_out_of_range_latitude_is_rejected() -> None:
    detected = detect_geo_fields(_stats([{"lat": 120.0}, {"lat": 135.5}]))

    assert detected.latitude is None
    assert detected.confidence == 0


def test_combined_coordinate_column() -> None:
    detected = detect_geo_fields(
        _stats([{"coordinates": "52.5, 13.4"}, {"coordinates": "(48.8; 2.35)"}])
    )

    assert detected.latitude is None
    assert detected.combined == "coordinates"
    assert detected.confidence == pytest.approx(1.0)


def test_address_field_ignores_nested_paths() -> None:
    detected = detect_geo_fields(
        _stats([{"venue": {"address": "Main St 1"}, "city": "Berlin"}])
    )

    assert detected.address == "city"


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        ("52.5, 13.4", (52.5, 13.4)),
        ("(52.5;13.4)", (52.5, 13.4)),
        ("-33.9 151.2", (-33.9, 151.2)),
        ("95, 10", None),
        ("10, 200", None),
        ("somewhere", None),
        (42, None),
    ],
)
def test_parse_combined_coordinates(value: object, expected: tuple[float, float] | None) -> None:
    assert parse_combined_coordinates(value) == expected


def test_timestamp_field_prefers_stronger_name() -> None:
    stats = _stats([{"created_at": "2024-01-01", "date": "2024-01-02", "time": "10:00"}])

    assert detect_timestamp_field(stats) == "date"


def test_timestamp_field_falls_back_to_date_values() -> None:
    stats = _stats([{"observed": "2024-01-01"}, {"observed": "2024-02-01"}])

    assert detect_timestamp_field(stats) == "observed"


def test_id_fields_by_name_and_uniqueness() -> None:
    stats = _stats(
        [
            {"userId": 1, "code": "A1", "group": "x", "nested": {"id": 1}},
            {"userId": 1, "code": "B2", "group": "x", "nested": {"id": 1}},
            {"userId": 2, "code": "C3", "group": "y", "nested": {"id": 2}},
        ]
    )

    detected = detect_id_fields(stats, 3)

    assert "userId" in detected
    assert "code" in detected
    assert "group" not in detected
    assert "nested.id" not in detected
