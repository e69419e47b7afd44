"""Per-field running statistics over an unbounded record stream.

Every aggregate here is updated one value at a time and never revisits earlier
values: counts and histograms add, numeric bounds combine with min/max, and the
mean is kept as ``total``/``count``. Feeding the same values in the same order
therefore yields the same statistics however the stream was cut into batches.
"""

from __future__ import annotations

import json
import math
import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import StrEnum
from typing import Any

from importflow.domain.model.schema_change import Scalar

ISO_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}(T\d{2}:\d{2}:\d{2})?$")
SLASH_DATE_RE = re.compile(r"^\d{1,2}/\d{1,2}/\d{2,4}$")
URL_RE = re.compile(r"^https?://\S+")
DATE_TIME_RE = re.compile(r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}")
DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
NUMERIC_RE = re.compile(r"^-?\d+(\.\d+)?$")


class ValueType(StrEnum):
    NULL = "null"
    ARRAY = "array"
    INTEGER = "integer"
    NUMBER = "number"
    DATE = "date"
    BOOLEAN_STRING = "boolean-string"
    STRING = "string"
    BOOLEAN = "boolean"
    OBJECT = "object"


class FormatHint(StrEnum):
    EMAIL = "email"
    URL = "url"
    DATE_TIME = "date_time"
    DATE = "date"
    NUMERIC = "numeric"


def _is_date_string(value: str) -> bool:
    if ISO_DATE_RE.match(value):
        try:
            date.fromisoformat(value[:10])
        except ValueError:
            return False
        return True
    return SLASH_DATE_RE.match(value) is not None


def value_type(value: object) -> ValueType:
    """Classify a single value the way the type histogram counts it."""

    if value is None:
        return ValueType.NULL
    if isinstance(value, bool):
        return ValueType.BOOLEAN
    if isinstance(value, int):
        return ValueType.INTEGER
    if isinstance(value, float):
        if math.isfinite(value) and value.is_integer():
            return ValueType.INTEGER
        return ValueType.NUMBER
    if isinstance(value, str):
        if _is_date_string(value):
            return ValueType.DATE
        if value in ("true", "false"):
            return ValueType.BOOLEAN_STRING
        return ValueType.STRING
    if isinstance(value, (datetime, date)):
        return ValueType.DATE
    if isinstance(value, (list, tuple)):
        return ValueType.ARRAY
    if isinstance(value, Mapping):
        return ValueType.OBJECT
    return ValueType.STRING


def _looks_like_email(value: str) -> bool:
    at = value.find("@")
    if at <= 0 or at >= len(value) - 1 or " " in value:
        return False
    parts = value.split("@")
    return len(parts) == 2 and "." in parts[1]


def detect_formats(value: str) -> tuple[FormatHint, ...]:
    hints: list[FormatHint] = []
    if _looks_like_email(value):
        hints.append(FormatHint.EMAIL)
    if URL_RE.match(value):
        hints.append(FormatHint.URL)
    if DATE_TIME_RE.match(value):
        hints.append(FormatHint.DATE_TIME)
    if DATE_RE.match(value):
        hints.append(FormatHint.DATE)
    if NUMERIC_RE.match(value):
        hints.append(FormatHint.NUMERIC)
    return tuple(hints)


def _is_finite_number(value: object) -> bool:
    if isinstance(value, bool):
        return False
    if isinstance(value, int):
        return True
    return isinstance(value, float) and math.isfinite(value)


def unique_key(value: Scalar) -> str:
    """Key a scalar by kind and value so that ``True`` and ``1`` stay distinct."""

    return f"{type(value).__name__}:{json.dumps(value, sort_keys=True)}"


@dataclass(slots=True, kw_only=True)
class NumericStats:
    minimum: float
    maximum: float
    total: float
    count: int
    is_integer: bool

    @classmethod
    def first(cls, value: float) -> NumericStats:
        return cls(
            minimum=value,
            maximum=value,
            total=value,
            count=1,
            is_integer=float(value).is_integer(),
        )

    @property
    def avg(self) -> float:
        return self.total / self.count if self.count else 0.0

    def observe(self, value: float) -> None:
        self.minimum = min(self.minimum, value)
        self.maximum = max(self.maximum, value)
        self.total += value
        self.count += 1
        self.is_integer = self.is_integer and float(value).is_integer()

    def merged(self, other: NumericStats) -> NumericStats:
        return NumericStats(
            minimum=min(self.minimum, other.minimum),
            maximum=max(self.maximum, other.maximum),
            total=self.total + other.total,
            count=self.count + other.count,
            is_integer=self.is_integer and other.is_integer,
        )


@dataclass(slots=True, kw_only=True)
class UniqueValue:
    value: Scalar
    count: int = 1


@dataclass(frozen=True, slots=True, kw_only=True)
class EnumValue:
    value: Scalar
    count: int
    percent: float


@dataclass(frozen=True, slots=True, kw_only=True)
class GeoHints:
    is_latitude: bool = False
    is_longitude: bool = False
    field_pattern_match: bool = False
    value_range_valid: bool = False
    confidence: float = 0.0


@dataclass(slots=True, kw_only=True)
class FieldStatistics:
    path: str
    depth: int = 0
    occurrences: int = 0
    occurrence_percent: float = 0.0
    null_count: int = 0
    unique_values: dict[str, UniqueValue] = field(default_factory=dict)
    unique_overflow: bool = False
    type_distribution: dict[str, int] = field(default_factory=dict)
    formats: dict[str, int] = field(default_factory=dict)
    numeric_stats: NumericStats | None = None
    is_enum_candidate: bool = False
    enum_values: list[EnumValue] = field(default_factory=list)
    geo_hints: GeoHints | None = None
    first_seen: datetime | None = None
    last_seen: datetime | None = None

    @classmethod
    def for_path(cls, path: str) -> FieldStatistics:
        return cls(path=path, depth=path.count("."))

    @property
    def non_null_occurrences(self) -> int:
        return self.occurrences - self.null_count

    @property
    def unique_count(self) -> int:
        return len(self.unique_values)

    @property
    def unique_samples(self) -> list[Scalar]:
        return [entry.value for entry in self.unique_values.values()]

    @property
    def all_values_unique(self) -> bool:
        """True when no tracked value repeats and none went untracked."""

        if self.non_null_occurrences == 0:
            return False
        if all(entry.count == 1 for entry in self.unique_values.values()):
            return self.unique_overflow or self.unique_count == self.non_null_occurrences
        return False

    def observe(self, value: Any, *, max_unique_values: int, seen_at: datetime) -> ValueType:
        kind = value_type(value)
        self.occurrences += 1
        if value is None:
            self.null_count += 1
        self.type_distribution[kind] = self.type_distribution.get(kind, 0) + 1

        if _is_finite_number(value):
            number = float(value)
            if self.numeric_stats is None:
                self.numeric_stats = NumericStats.first(number)
            else:
                self.numeric_stats.observe(number)

        if isinstance(value, (str, int, float, bool)) and not (
            isinstance(value, float) and not math.isfinite(value)
        ):
            self._track_unique(value, max_unique_values)

        if isinstance(value, str):
            for hint in detect_formats(value):
                self.formats[hint] = self.formats.get(hint, 0) + 1

        if self.first_seen is None:
            self.first_seen = seen_at
        self.last_seen = seen_at
        return kind

    def _track_unique(self, value: Scalar, max_unique_values: int) -> None:
        key = unique_key(value)
        entry = self.unique_values.get(key)
        if entry is not None:
            entry.count += 1
            return
        if len(self.unique_values) >= max_unique_values:
            self.unique_overflow = True
            return
        self.unique_values[key] = UniqueValue(value=value)

    def refresh_enum(self, *, threshold: float, mode: str) -> None:
        """Recompute enum candidacy from the current reservoir.

        A field qualifies when its reservoir never overflowed, values repeat on
        average at least twice, and the distinct count stays within ``threshold``
        (an absolute count, or a percentage of non-null values).
        """

        non_null = self.non_null_occurrences
        unique = self.unique_count
        candidate = (
            not self.unique_overflow
            and unique > 0
            and unique * 2 <= non_null
            and ValueType.OBJECT not in self.type_distribution
            and ValueType.ARRAY not in self.type_distribution
        )
        if candidate:
            if mode == "percentage":
                candidate = unique / non_null * 100 <= threshold
            else:
                candidate = unique <= threshold

        self.is_enum_candidate = candidate
        if not candidate:
            self.enum_values = []
            return
        ordered = sorted(
            self.unique_values.items(),
            key=lambda item: (-item[1].count, item[0]),
        )
        self.enum_values = [
            EnumValue(value=entry.value, count=entry.count, percent=entry.count / non_null * 100)
            for _, entry in ordered
        ]

    def merged(self, other: FieldStatistics, *, max_unique_values: int) -> FieldStatistics:
        """Combine statistics gathered independently for the same path."""

        unique: dict[str, UniqueValue] = {
            key: UniqueValue(value=entry.value, count=entry.count)
            for key, entry in self.unique_values.items()
        }
        overflow = self.unique_overflow or other.unique_overflow
        for key, entry in other.unique_values.items():
            existing = unique.get(key)
            if existing is not None:
                existing.count += entry.count
            elif len(unique) < max_unique_values:
                unique[key] = UniqueValue(value=entry.value, count=entry.count)
            else:
                overflow = True

        numeric = self.numeric_stats
        if numeric is None or other.numeric_stats is None:
            numeric = numeric or other.numeric_stats
        else:
            numeric = numeric.merged(other.numeric_stats)

        return FieldStatistics(
            path=self.path,
            depth=self.depth,
            occurrences=self.occurrences + other.occurrences,
            null_count=self.null_count + other.null_count,
            unique_values=unique,
            unique_overflow=overflow,
            type_distribution=_add_counts(self.type_distribution, other.type_distribution),
            formats=_add_counts(self.formats, other.formats),
            numeric_stats=numeric,
            first_seen=_earliest(self.first_seen, other.first_seen),
            last_seen=_latest(self.last_seen, other.last_seen),
        )


def _add_counts(left: Mapping[str, int], right: Mapping[str, int]) -> dict[str, int]:
    combined = dict(left)
    for key, count in right.items():
        combined[key] = combined.get(key, 0) + count
    return combined


def _earliest(left: datetime | None, right: datetime | None) -> datetime | None:
    if left is None or right is None:
        return left or right
    return min(left, right)


def _latest(left: datetime | None, right: datetime | None) -> datetime | None:
    if left is None or right is None:
        return left or right
    return max(left, right)
