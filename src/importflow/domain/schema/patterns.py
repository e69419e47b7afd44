"""Field-role detection from column names and observed values.

Covers coordinates (separate latitude/longitude columns or one combined
column), address-like fields for geocoding, event timestamps, and identifier
columns.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import TYPE_CHECKING

from importflow.domain.schema.statistics import GeoHints, ValueType

if TYPE_CHECKING:
    from collections.abc import Mapping

    from importflow.domain.schema.statistics import FieldStatistics

LATITUDE_BOUNDS = (-90.0, 90.0)
LONGITUDE_BOUNDS = (-180.0, 180.0)
RANGE_VALID_RATIO = 0.7
COMBINED_VALID_RATIO = 0.7
REQUIRED_ID_COVERAGE = 0.9


def _compile(*patterns: str) -> tuple[re.Pattern[str], ...]:
    return tuple(re.compile(pattern, re.IGNORECASE) for pattern in patterns)


# Ordered by specificity: earlier matches score higher.
LATITUDE_PATTERNS = _compile(
    r"^lat(itude)?$",
    r"^lat[_\s.-]?deg(rees)?$",
    r"^y[_\s.-]?coord(inate)?$",
    r"^location[_\s.-]?lat(itude)?$",
    r"^geo[_\s.-]?lat(itude)?$",
    r"^decimal[_\s.-]?lat(itude)?$",
    r"^latitude[_\s.-]?decimal$",
    r"^wgs84[_\s.-]?lat(itude)?$",
    r"^breite$",
    r"^breitengrad$",
)

LONGITUDE_PATTERNS = _compile(
    r"^lon(g|gitude)?$",
    r"^lng$",
    r"^lon[_\s.-]?deg(rees)?$",
    r"^long[_\s.-]?deg(rees)?$",
    r"^x[_\s.-]?coord(inate)?$",
    r"^location[_\s.-]?lon(g|gitude)?$",
    r"^geo[_\s.-]?lon(g|gitude)?$",
    r"^decimal[_\s.-]?lon(g|gitude)?$",
    r"^longitude[_\s.-]?decimal$",
    r"^wgs84[_\s.-]?lon(g|gitude)?$",
    r"^länge$",
    r"^laenge$",
    r"^längengrad$",
)

COMBINED_COORDINATE_PATTERNS = _compile(
    r"^coord(inate)?s?$",
    r"^lat[_\s.-]?lon(g)?$",
    r"^location$",
    r"^geo[_\s.-]?location$",
    r"^position$",
    r"^point$",
    r"^geometry$",
    r"^geo$",
    r"^geolocation$",
    r"^geo[_\s.-]?point$",
    r"^latlng$",
    r"^lat[_\s.-]?lng$",
    r"^koordinaten$",
)

ADDRESS_PATTERNS = _compile(r"^(address|addr|location|place|street|city|state|zip|postal|country)")

TIMESTAMP_PATTERNS = _compile(
    r"^date$",
    r"^timestamp$",
    r"^datetime$",
    r"^date.*time$",
    r"^created.*at$",
    r"^event.*date$",
    r"^event.*time$",
    r"^time$",
    r"^when$",
)

ID_NAME_PATTERN = re.compile(r"(^|[_\-\s])(id|uuid|guid)$", re.IGNORECASE)
CAMEL_ID_PATTERN = re.compile(r"[a-z0-9]Id$")
COMBINED_VALUE_RE = re.compile(r"^\s*\(?\s*(-?\d+(?:\.\d+)?)\s*[,;\s]\s*(-?\d+(?:\.\d+)?)\s*\)?\s*$")


@dataclass(frozen=True, slots=True, kw_only=True)
class DetectedGeoFields:
    latitude: str | None = None
    longitude: str | None = None
    combined: str | None = None
    address: str | None = None
    confidence: float = 0.0


def field_name(path: str) -> str:
    """Return the last path segment without array markers."""

    return path.rpartition(".")[2].removesuffix("[]")


def is_top_level(path: str) -> bool:
    return "." not in path and "[]" not in path


def pattern_strength(name: str, patterns: tuple[re.Pattern[str], ...]) -> float:
    for index, pattern in enumerate(patterns):
        if pattern.search(name):
            return 1 - index / len(patterns)
    return 0.0


def name_confidence(name: str, patterns: tuple[re.Pattern[str], ...]) -> float:
    strength = pattern_strength(name, patterns)
    if strength == 0:
        return 0.0
    return 0.5 + strength * 0.5


def _as_float(value: object) -> float | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value.strip())
        except ValueError:
            return None
    return None


def range_plausibility(stats: FieldStatistics, bounds: tuple[float, float]) -> float:
    """Fraction of observed values that fall inside ``bounds``.

    Numeric columns are judged by their min/max first; otherwise the tracked
    samples are weighted by how often each was seen.
    """

    lower, upper = bounds
    numeric = stats.numeric_stats
    if numeric is not None and numeric.count > 0 and lower <= numeric.minimum and numeric.maximum <= upper:
        return 1.0

    in_range = 0
    parsed = 0
    for entry in stats.unique_values.values():
        number = _as_float(entry.value)
        if number is None:
            continue
        parsed += entry.count
        if lower <= number <= upper:
            in_range += entry.count
    if parsed == 0:
        return 0.0
    return in_range / parsed


def _coordinate_score(
    stats: FieldStatistics,
    patterns: tuple[re.Pattern[str], ...],
    bounds: tuple[float, float],
) -> tuple[float, float]:
    """Return ``(name confidence, range plausibility)`` for one candidate column."""

    confidence = name_confidence(field_name(stats.path), patterns)
    if confidence == 0:
        return 0.0, 0.0
    return confidence, range_plausibility(stats, bounds)


def _best_coordinate_field(
    field_stats: Mapping[str, FieldStatistics],
    patterns: tuple[re.Pattern[str], ...],
    bounds: tuple[float, float],
) -> tuple[str | None, float]:
    best_path: str | None = None
    best_score = 0.0
    for path in sorted(field_stats):
        confidence, plausibility = _coordinate_score(field_stats[path], patterns, bounds)
        if confidence == 0 or plausibility < RANGE_VALID_RATIO:
            continue
        score = confidence * plausibility
        if score > best_score:
            best_path, best_score = path, score
    return best_path, best_score


def parse_combined_coordinates(value: object) -> tuple[float, float] | None:
    """Parse ``"lat, lng"`` style values; returns ``None`` when out of range."""

    if not isinstance(value, str):
        return None
    match = COMBINED_VALUE_RE.match(value)
    if match is None:
        return None
    latitude, longitude = float(match.group(1)), float(match.group(2))
    if not (LATITUDE_BOUNDS[0] <= latitude <= LATITUDE_BOUNDS[1]):
        return None
    if not (LONGITUDE_BOUNDS[0] <= longitude <= LONGITUDE_BOUNDS[1]):
        return None
    return latitude, longitude


def _find_combined_field(field_stats: Mapping[str, FieldStatistics]) -> tuple[str | None, float]:
    for path in sorted(field_stats):
        if not any(pattern.search(field_name(path)) for pattern in COMBINED_COORDINATE_PATTERNS):
            continue
        samples = [entry.value for entry in field_stats[path].unique_values.values()][:10]
        samples = [sample for sample in samples if sample not in (None, "")]
        if not samples:
            continue
        valid = sum(1 for sample in samples if parse_combined_coordinates(sample) is not None)
        ratio = valid / len(samples)
        if ratio >= COMBINED_VALID_RATIO:
            return path, ratio
    return None, 0.0


def _find_address_field(
    field_stats: Mapping[str, FieldStatistics],
    exclude: set[str],
) -> str | None:
    for path in sorted(field_stats):
        if path in exclude or not is_top_level(path):
            continue
        stats = field_stats[path]
        if stats.type_distribution.get(ValueType.STRING, 0) == 0:
            continue
        if any(pattern.search(field_name(path)) for pattern in ADDRESS_PATTERNS):
            return path
    return None


def detect_geo_fields(field_stats: Mapping[str, FieldStatistics]) -> DetectedGeoFields:
    """Pick latitude/longitude columns plus optional combined and address fields.

    A column qualifies when its name matches a coordinate pattern and at least
    70% of its values lie in range. Its score is name confidence times range
    plausibility; a pair scores the mean, a lone column half of its score.
    """

    latitude, latitude_score = _best_coordinate_field(field_stats, LATITUDE_PATTERNS, LATITUDE_BOUNDS)
    longitude, longitude_score = _best_coordinate_field(
        field_stats, LONGITUDE_PATTERNS, LONGITUDE_BOUNDS
    )

    if latitude and longitude:
        confidence = (latitude_score + longitude_score) / 2
    elif latitude or longitude:
        confidence = max(latitude_score, longitude_score) / 2
    else:
        confidence = 0.0

    combined, combined_ratio = (None, 0.0)
    if not (latitude and longitude):
        combined, combined_ratio = _find_combined_field(field_stats)
        if combined is not None:
            confidence = max(confidence, combined_ratio)

    exclude = {path for path in (latitude, longitude, combined) if path is not None}
    address = _find_address_field(field_stats, exclude)

    return DetectedGeoFields(
        latitude=latitude,
        longitude=longitude,
        combined=combined,
        address=address,
        confidence=round(confidence, 4),
    )


def geo_hints_for(stats: FieldStatistics) -> GeoHints | None:
    """Per-field geo hints, or ``None`` when the name matches no coordinate pattern."""

    lat_confidence, lat_plausibility = _coordinate_score(stats, LATITUDE_PATTERNS, LATITUDE_BOUNDS)
    lng_confidence, lng_plausibility = _coordinate_score(
        stats, LONGITUDE_PATTERNS, LONGITUDE_BOUNDS
    )
    if lat_confidence == 0 and lng_confidence == 0:
        return None
    is_latitude = lat_confidence >= lng_confidence
    confidence, plausibility = (
        (lat_confidence, lat_plausibility) if is_latitude else (lng_confidence, lng_plausibility)
    )
    return GeoHints(
        is_latitude=is_latitude,
        is_longitude=not is_latitude,
        field_pattern_match=True,
        value_range_valid=plausibility >= RANGE_VALID_RATIO,
        confidence=round(confidence * plausibility, 4),
    )


def detect_timestamp_field(field_stats: Mapping[str, FieldStatistics]) -> str | None:
    best: tuple[float, str] | None = None
    for path in sorted(field_stats):
        if not is_top_level(path):
            continue
        strength = pattern_strength(field_name(path), TIMESTAMP_PATTERNS)
        if strength == 0:
            continue
        if best is None or strength > best[0]:
            best = (strength, path)
    if best is not None:
        return best[1]

    for path in sorted(field_stats):
        stats = field_stats[path]
        non_null = stats.non_null_occurrences
        if is_top_level(path) and non_null and stats.type_distribution.get(ValueType.DATE, 0) == non_null:
            return path
    return None


def detect_id_fields(field_stats: Mapping[str, FieldStatistics], record_count: int) -> list[str]:
    """Top-level columns that look like identifiers by name or by value uniqueness."""

    detected: list[str] = []
    for path in sorted(field_stats):
        if not is_top_level(path):
            continue
        stats = field_stats[path]
        if ID_NAME_PATTERN.search(path) or CAMEL_ID_PATTERN.search(path):
            detected.append(path)
            continue
        if (
            record_count > 1
            and stats.occurrences >= record_count * REQUIRED_ID_COVERAGE
            and stats.all_values_unique
            and ValueType.OBJECT not in stats.type_distribution
            and ValueType.ARRAY not in stats.type_distribution
        ):
            detected.append(path)
    return detected
