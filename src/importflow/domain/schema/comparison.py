"""Diff two derived schemas into typed schema changes."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from importflow.domain.model import (
    EnumChange,
    FormatChange,
    NewField,
    RemovedField,
    SchemaChange,
    SchemaComparison,
    Severity,
    TypeChange,
    TypeChangePolicy,
)

if TYPE_CHECKING:
    from collections.abc import Mapping

_WIDENING_PAIRS = frozenset({("integer", "number"), ("number", "integer")})


@dataclass(frozen=True, slots=True, kw_only=True)
class FlatField:
    path: str
    parent: str
    definition: Mapping[str, Any]
    required: bool

    @property
    def type(self) -> str:
        return str(self.definition.get("type", "unknown"))

    @property
    def format(self) -> str | None:
        value = self.definition.get("format")
        return None if value is None else str(value)

    @property
    def enum(self) -> tuple[Any, ...] | None:
        values = self.definition.get("enum")
        return None if values is None else tuple(values)


def flatten_schema(schema: Mapping[str, Any] | None) -> dict[str, FlatField]:
    """Index every property of ``schema`` by its dotted path (arrays as ``name[]``)."""

    flat: dict[str, FlatField] = {}
    if schema:
        _flatten_object(schema, "", flat)
    return flat


def _flatten_object(node: Mapping[str, Any], prefix: str, flat: dict[str, FlatField]) -> None:
    properties: Mapping[str, Any] = node.get("properties") or {}
    required = set(node.get("required") or ())
    for name, definition in properties.items():
        path = f"{prefix}.{name}" if prefix else name
        flat[path] = FlatField(
            path=path,
            parent=prefix,
            definition=definition,
            required=name in required,
        )
        if definition.get("properties"):
            _flatten_object(definition, path, flat)
        items = definition.get("items")
        if isinstance(items, dict) and items.get("properties"):
            _flatten_object(items, f"{path}[]", flat)


def _downgrade_type_change(old_type: str, new_type: str, policy: TypeChangePolicy) -> bool:
    if policy is not TypeChangePolicy.LENIENT:
        return False
    if "mixed" in (old_type, new_type) or "null" in (old_type, new_type):
        return True
    return (old_type, new_type) in _WIDENING_PAIRS


def compare(
    previous: Mapping[str, Any] | None,
    new: Mapping[str, Any],
    *,
    locked: bool = False,
    auto_approve_non_breaking: bool = False,
    type_change_policy: TypeChangePolicy = TypeChangePolicy.STRICT,
) -> SchemaComparison:
    """Compare the active schema of a dataset with a newly inferred one.

    Added and removed subtrees are reported once at their root. A comparison
    without changes never requires approval.
    """

    old_fields = flatten_schema(previous)
    new_fields = flatten_schema(new)
    changes: list[SchemaChange] = []

    for path, old in old_fields.items():
        if path not in new_fields and not _removed_roots(old_fields, new_fields, path):
            changes.append(RemovedField(path=path, previous_type=old.type))

    for path, field in new_fields.items():
        if path in old_fields:
            continue
        if field.parent and field.parent not in old_fields:
            continue
        changes.append(
            NewField(
                path=path,
                data_type=field.type,
                required=field.required,
                severity=Severity.INFO,
                auto_approvable=not locked,
            )
        )

    for path, old in old_fields.items():
        field = new_fields.get(path)
        if field is None:
            continue
        changes.extend(_compare_field(old, field, type_change_policy, locked=locked))

    is_breaking = any(change.severity is Severity.ERROR for change in changes)
    can_auto_approve = not changes or (
        not is_breaking and auto_approve_non_breaking and not locked
    )
    return SchemaComparison(
        changes=tuple(changes),
        can_auto_approve=can_auto_approve,
        requires_approval=not can_auto_approve,
    )


def _removed_roots(
    old_fields: Mapping[str, FlatField],
    new_fields: Mapping[str, FlatField],
    path: str,
) -> set[str]:
    """Ancestors of ``path`` that are themselves gone from the new schema."""

    ancestors: set[str] = set()
    parent = old_fields[path].parent
    while parent:
        if parent not in new_fields:
            ancestors.add(parent)
        parent = old_fields[parent].parent if parent in old_fields else ""
    return ancestors


def _compare_field(
    old: FlatField,
    new: FlatField,
    policy: TypeChangePolicy,
    *,
    locked: bool,
) -> list[SchemaChange]:
    changes: list[SchemaChange] = []

    if old.type != new.type:
        downgraded = _downgrade_type_change(old.type, new.type, policy)
        changes.append(
            TypeChange(
                path=old.path,
                old_type=old.type,
                new_type=new.type,
                severity=Severity.WARNING if downgraded else Severity.ERROR,
                auto_approvable=downgraded and not locked,
            )
        )
    elif old.enum is not None and new.enum is not None:
        added = tuple(value for value in new.enum if value not in old.enum)
        removed = tuple(value for value in old.enum if value not in new.enum)
        if added or removed:
            changes.append(
                EnumChange(
                    path=old.path,
                    added_values=added,
                    removed_values=removed,
                    severity=Severity.WARNING if removed else Severity.INFO,
                    auto_approvable=not removed and not locked,
                )
            )

    if old.format != new.format:
        changes.append(
            FormatChange(
                path=old.path,
                old_format=old.format,
                new_format=new.format,
                required=new.required,
                severity=Severity.ERROR if new.required else Severity.INFO,
                auto_approvable=not new.required and not locked,
            )
        )

    if new.required and not old.required:
        changes.append(
            FormatChange(
                path=old.path,
                old_format=old.format,
                new_format=new.format,
                required=True,
                severity=Severity.ERROR,
                auto_approvable=False,
            )
        )
    elif old.required and not new.required:
        changes.append(
            FormatChange(
                path=old.path,
                old_format=old.format,
                new_format=new.format,
                required=False,
                severity=Severity.INFO,
                auto_approvable=not locked,
            )
        )
    return changes


def describe_change(change: SchemaChange) -> str:
    match change:
        case NewField(path=path, required=required):
            suffix = " (required)" if required else ""
            return f"Field '{path}' was added{suffix}"
        case RemovedField(path=path):
            return f"Field '{path}' was removed"
        case TypeChange(path=path, old_type=old_type, new_type=new_type):
            return f"Field '{path}' type changed from {old_type} to {new_type}"
        case EnumChange(path=path, added_values=added, removed_values=removed):
            return f"Enum values changed for '{path}' (added {len(added)}, removed {len(removed)})"
        case FormatChange(path=path, old_format=old_format, new_format=new_format, required=required):
            if old_format != new_format:
                return f"Field '{path}' format changed from {old_format} to {new_format}"
            return f"Field '{path}' became {'required' if required else 'optional'}"


def change_summary(comparison: SchemaComparison) -> str:
    """Human-readable report for operators reviewing a pending schema."""

    if not comparison.changes:
        return "No schema changes detected"

    lines = [
        "Schema Changes Summary:",
        f"- Total changes: {len(comparison.changes)}",
        f"- Breaking changes: {'Yes' if comparison.is_breaking else 'No'}",
        f"- Requires approval: {'Yes' if comparison.requires_approval else 'No'}",
        f"- Can auto-approve: {'Yes' if comparison.can_auto_approve else 'No'}",
    ]
    breaking = comparison.breaking_changes()
    if breaking:
        lines.extend(["", "Breaking Changes:"])
        lines.extend(f"  - {describe_change(change)}" for change in breaking)
    non_breaking = [change for change in comparison.changes if change not in breaking]
    if non_breaking:
        lines.extend(["", "Non-Breaking Changes:"])
        lines.extend(f"  - {describe_change(change)}" for change in non_breaking)
    return "\n".join(lines)
