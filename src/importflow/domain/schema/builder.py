"""Progressive schema inference over batched record streams."""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime
from functools import cache
from logging import getLogger
from typing import Any

from pydantic import TypeAdapter, ValidationError

from importflow.config.pipeline import SchemaBuilderConfig
from importflow.domain.schema.patterns import (
    DetectedGeoFields,
    detect_geo_fields,
    detect_id_fields,
    geo_hints_for,
)
from importflow.domain.schema.statistics import FieldStatistics, ValueType, value_type

log = getLogger(__name__)

type JsonSchema = dict[str, Any]

MAX_CONFLICT_SAMPLES = 5

# Histogram kinds collapse onto the JSON schema types they are stored as.
_SCHEMA_TYPE_BY_VALUE_TYPE: dict[str, str] = {
    ValueType.STRING: "string",
    ValueType.DATE: "string",
    ValueType.BOOLEAN_STRING: "string",
    ValueType.INTEGER: "integer",
    ValueType.NUMBER: "number",
    ValueType.BOOLEAN: "boolean",
    ValueType.OBJECT: "object",
    ValueType.ARRAY: "array",
}

_FORMAT_BY_HINT = (
    ("date_time", "date-time"),
    ("date", "date"),
    ("email", "email"),
    ("url", "uri"),
)


class SchemaStateError(ValueError):
    """Raised when a persisted schema builder state cannot be restored."""


def _utcnow() -> datetime:
    return datetime.now(UTC)


@dataclass(slots=True, kw_only=True)
class TypeConflictSample:
    type: str
    value: Any


@dataclass(slots=True, kw_only=True)
class TypeConflict:
    path: str
    types: dict[str, int] = field(default_factory=dict)
    samples: list[TypeConflictSample] = field(default_factory=list)


@dataclass(slots=True, kw_only=True)
class SchemaBuilderState:
    """Serializable accumulator snapshot; the crash-recovery checkpoint of a job."""

    version: int = 0
    field_stats: dict[str, FieldStatistics] = field(default_factory=dict)
    record_count: int = 0
    batch_count: int = 0
    last_updated: datetime | None = None
    data_samples: list[dict[str, Any]] = field(default_factory=list)
    max_samples: int = 100
    detected_id_fields: list[str] = field(default_factory=list)
    detected_geo_fields: DetectedGeoFields = field(default_factory=DetectedGeoFields)
    type_conflicts: list[TypeConflict] = field(default_factory=list)


@dataclass(frozen=True, slots=True, kw_only=True)
class BatchObservation:
    record_count: int
    new_fields: tuple[str, ...] = ()
    type_changes: tuple[str, ...] = ()

    @property
    def schema_changed(self) -> bool:
        return bool(self.new_fields or self.type_changes)


@cache
def _state_adapter() -> TypeAdapter[SchemaBuilderState]:
    return TypeAdapter(SchemaBuilderState)


def dump_state(state: SchemaBuilderState) -> dict[str, Any]:
    return _state_adapter().dump_python(state, mode="json")


def load_state(payload: Mapping[str, Any]) -> SchemaBuilderState:
    try:
        return _state_adapter().validate_python(dict(payload))
    except ValidationError as exc:
        raise SchemaStateError(f"Invalid schema builder state: {exc}") from exc


def _split_path(path: str) -> tuple[str, str]:
    parent, _, name = path.rpartition(".")
    return parent, name


class ProgressiveSchemaBuilder:
    """Accumulate field statistics batch by batch and derive a schema on demand.

    The builder owns a :class:`SchemaBuilderState`. Persist it with
    :meth:`serialize` after every batch and restore it with
    :meth:`from_serialized` to continue in another process.
    """

    def __init__(
        self,
        state: SchemaBuilderState | None = None,
        *,
        config: SchemaBuilderConfig | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.config = config or SchemaBuilderConfig()
        self.state = state or SchemaBuilderState(max_samples=self.config.max_samples)
        self._clock = clock

    @classmethod
    def from_serialized(
        cls,
        payload: Mapping[str, Any] | None,
        *,
        config: SchemaBuilderConfig | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> ProgressiveSchemaBuilder:
        state = load_state(payload) if payload else None
        return cls(state, config=config, clock=clock)

    def serialize(self) -> dict[str, Any]:
        return dump_state(self.state)

    @property
    def field_statistics(self) -> Mapping[str, FieldStatistics]:
        return self.state.field_stats

    def field_metadata(self) -> dict[str, Any]:
        """Serialized statistics keyed by path, as stored on schema versions."""

        return dump_state(self.state)["field_stats"]

    # Accumulation ---------------------------------------------------------------

    def process_batch(self, records: Sequence[Mapping[str, Any]]) -> BatchObservation:
        seen_at = self._clock()
        new_fields: list[str] = []
        type_changes: list[str] = []

        self._update_samples(records)
        for record in records:
            self._process_record(record, "", 0, seen_at, new_fields, type_changes)

        self.state.record_count += len(records)
        self.state.batch_count += 1
        self.state.last_updated = seen_at
        self._refresh_derived()

        observation = BatchObservation(
            record_count=len(records),
            new_fields=tuple(new_fields),
            type_changes=tuple(dict.fromkeys(type_changes)),
        )
        if observation.schema_changed:
            self.state.version += 1
        log.debug(
            "Processed schema batch: records=%s, new_fields=%s, type_changes=%s",
            len(records),
            len(observation.new_fields),
            len(observation.type_changes),
        )
        return observation

    def merge(self, other: SchemaBuilderState) -> None:
        """Fold an independently built state into this one."""

        cap = self.config.max_unique_values
        added = False
        for path, stats in other.field_stats.items():
            existing = self.state.field_stats.get(path)
            if existing is None:
                self.state.field_stats[path] = FieldStatistics.for_path(path).merged(
                    stats, max_unique_values=cap
                )
                added = True
            else:
                self.state.field_stats[path] = existing.merged(stats, max_unique_values=cap)

        conflicts = {conflict.path: conflict for conflict in self.state.type_conflicts}
        for conflict in other.type_conflicts:
            target = conflicts.get(conflict.path)
            if target is None:
                target = TypeConflict(path=conflict.path)
                conflicts[conflict.path] = target
                self.state.type_conflicts.append(target)
            for kind, count in conflict.types.items():
                target.types[kind] = target.types.get(kind, 0) + count
            room = MAX_CONFLICT_SAMPLES - len(target.samples)
            target.samples.extend(conflict.samples[: max(room, 0)])

        self.state.record_count += other.record_count
        self.state.batch_count += other.batch_count
        self.state.data_samples = self._trim_samples([*self.state.data_samples, *other.data_samples])
        self.state.last_updated = max(
            (stamp for stamp in (self.state.last_updated, other.last_updated) if stamp is not None),
            default=None,
        )
        self.state.version = max(self.state.version, other.version) + (1 if added else 0)
        self._refresh_derived()

    def _process_record(
        self,
        record: Mapping[str, Any],
        prefix: str,
        depth: int,
        seen_at: datetime,
        new_fields: list[str],
        type_changes: list[str],
    ) -> None:
        if depth >= self.config.max_depth:
            return

        for key, value in record.items():
            path = f"{prefix}.{key}" if prefix else str(key)
            stats = self.state.field_stats.get(path)
            if stats is None:
                stats = FieldStatistics.for_path(path)
                self.state.field_stats[path] = stats
                new_fields.append(path)
            elif self._check_type_conflict(stats, value):
                type_changes.append(path)

            stats.observe(value, max_unique_values=self.config.max_unique_values, seen_at=seen_at)

            if isinstance(value, Mapping):
                self._process_record(value, path, depth + 1, seen_at, new_fields, type_changes)
            elif isinstance(value, (list, tuple)) and value and isinstance(value[0], Mapping):
                self._process_record(value[0], f"{path}[]", depth + 1, seen_at, new_fields, type_changes)

    def _check_type_conflict(self, stats: FieldStatistics, value: object) -> bool:
        """Record a conflict when a non-null value arrives with a type not seen before."""

        kind = value_type(value)
        if kind is ValueType.NULL or stats.type_distribution.get(kind, 0) > 0:
            return False
        existing = {
            seen: count
            for seen, count in stats.type_distribution.items()
            if seen != ValueType.NULL and count > 0
        }
        if not existing:
            return False

        conflict = next((item for item in self.state.type_conflicts if item.path == stats.path), None)
        if conflict is None:
            conflict = TypeConflict(path=stats.path, types=dict(existing))
            self.state.type_conflicts.append(conflict)
        conflict.types[kind] = conflict.types.get(kind, 0) + 1
        if len(conflict.samples) < MAX_CONFLICT_SAMPLES:
            conflict.samples.append(TypeConflictSample(type=kind, value=value))
        return True

    def _trim_samples(self, samples: list[dict[str, Any]]) -> list[dict[str, Any]]:
        limit = self.state.max_samples
        if limit <= 0:
            return []
        return samples[-limit:]

    def _update_samples(self, records: Sequence[Mapping[str, Any]]) -> None:
        self.state.data_samples = self._trim_samples(
            [*self.state.data_samples, *(dict(record) for record in records)]
        )

    def _refresh_derived(self) -> None:
        record_count = self.state.record_count
        for stats in self.state.field_stats.values():
            stats.occurrence_percent = (
                stats.occurrences / record_count * 100 if record_count else 0.0
            )
            stats.refresh_enum(threshold=self.config.enum_threshold, mode=self.config.enum_mode)
            stats.geo_hints = geo_hints_for(stats)
        self.state.detected_id_fields = detect_id_fields(self.state.field_stats, record_count)
        self.state.detected_geo_fields = detect_geo_fields(self.state.field_stats)

    # Schema derivation -----------------------------------------------------------

    def get_schema(self) -> JsonSchema:
        """Derive the normalized schema tree from the current statistics.

        Pure with respect to the accumulator: calling it repeatedly without new
        batches returns equal results.
        """

        children = self._children_index()
        properties, required = self._object_schema("", children, self.state.record_count)
        return {
            "type": "object",
            "properties": properties,
            "required": required,
            "additionalProperties": False,
        }

    def _children_index(self) -> dict[str, list[str]]:
        children: dict[str, list[str]] = defaultdict(list)
        for path in sorted(self.state.field_stats):
            parent, _ = _split_path(path)
            children[parent].append(path)
        return children

    def _object_schema(
        self,
        prefix: str,
        children: Mapping[str, list[str]],
        base_count: int,
    ) -> tuple[dict[str, Any], list[str]]:
        properties: dict[str, Any] = {}
        required: list[str] = []
        for path in children.get(prefix, ()):
            _, name = _split_path(path)
            stats = self.state.field_stats[path]
            properties[name] = self._property_schema(path, stats, children)
            if base_count and stats.occurrences >= base_count * self.config.required_ratio:
                required.append(name)
        return properties, required

    def _property_schema(
        self,
        path: str,
        stats: FieldStatistics,
        children: Mapping[str, list[str]],
    ) -> dict[str, Any]:
        schema_type, members = self._resolve_type(stats)
        schema: dict[str, Any] = {"type": schema_type, "nullable": stats.null_count > 0}
        if members:
            schema["types"] = members

        schema_format = self._resolve_format(stats)
        if schema_format is not None:
            schema["format"] = schema_format
        if stats.is_enum_candidate and stats.enum_values:
            schema["enum"] = [entry.value for entry in stats.enum_values]
        if stats.numeric_stats is not None and schema_type in ("integer", "number"):
            schema["minimum"] = stats.numeric_stats.minimum
            schema["maximum"] = stats.numeric_stats.maximum

        if path in children:
            object_count = stats.type_distribution.get(ValueType.OBJECT, 0)
            properties, required = self._object_schema(path, children, object_count)
            schema["properties"] = properties
            schema["required"] = required

        items_prefix = f"{path}[]"
        if items_prefix in children:
            array_count = stats.type_distribution.get(ValueType.ARRAY, 0)
            properties, required = self._object_schema(items_prefix, children, array_count)
            schema["items"] = {"type": "object", "properties": properties, "required": required}
        return schema

    def _resolve_type(self, stats: FieldStatistics) -> tuple[str, list[str]]:
        """Return the schema type plus, for ``mixed``, the significant member types."""

        counts: dict[str, int] = {}
        for kind, count in stats.type_distribution.items():
            schema_type = _SCHEMA_TYPE_BY_VALUE_TYPE.get(kind)
            if schema_type is None or count <= 0:
                continue
            counts[schema_type] = counts.get(schema_type, 0) + count
        if not counts:
            return "null", []

        total = sum(counts.values())
        significant = sorted(
            kind for kind, count in counts.items() if count / total > self.config.minority_threshold
        )
        if significant == ["integer", "number"]:
            return "number", []
        if len(significant) > 1:
            return "mixed", significant
        dominant = max(counts.items(), key=lambda item: (item[1], item[0]))[0]
        return dominant, []

    def _resolve_format(self, stats: FieldStatistics) -> str | None:
        string_total = sum(
            stats.type_distribution.get(kind, 0)
            for kind in (ValueType.STRING, ValueType.DATE, ValueType.BOOLEAN_STRING)
        )
        if string_total == 0:
            return None
        for hint, schema_format in _FORMAT_BY_HINT:
            if stats.formats.get(hint, 0) / string_total >= self.config.format_ratio:
                return schema_format
        return None
