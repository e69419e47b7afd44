"""Schema drift units produced by the comparator.

The variant set is closed: each change kind is its own frozen dataclass carrying a
``type`` literal, so persisted comparisons can be validated back into the right
class and consumers can match exhaustively.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Literal

from importflow.domain.model.enums import Severity

if TYPE_CHECKING:
    from importflow.domain.model.enums import ChangeType

type Scalar = str | int | float | bool | None


@dataclass(frozen=True, slots=True, kw_only=True)
class NewField:
    path: str
    data_type: str | None = None
    required: bool = False
    severity: Severity = Severity.INFO
    auto_approvable: bool = True
    type: Literal["new_field"] = "new_field"


@dataclass(frozen=True, slots=True, kw_only=True)
class RemovedField:
    path: str
    previous_type: str | None = None
    severity: Severity = Severity.ERROR
    auto_approvable: bool = False
    type: Literal["removed_field"] = "removed_field"


@dataclass(frozen=True, slots=True, kw_only=True)
class TypeChange:
    path: str
    old_type: str
    new_type: str
    severity: Severity = Severity.ERROR
    auto_approvable: bool = False
    type: Literal["type_change"] = "type_change"


@dataclass(frozen=True, slots=True, kw_only=True)
class EnumChange:
    path: str
    added_values: tuple[Scalar, ...] = ()
    removed_values: tuple[Scalar, ...] = ()
    severity: Severity = Severity.INFO
    auto_approvable: bool = True
    type: Literal["enum_change"] = "enum_change"


@dataclass(frozen=True, slots=True, kw_only=True)
class FormatChange:
    path: str
    old_format: str | None = None
    new_format: str | None = None
    required: bool = False
    severity: Severity = Severity.INFO
    auto_approvable: bool = True
    type: Literal["format_change"] = "format_change"


type SchemaChange = NewField | RemovedField | TypeChange | EnumChange | FormatChange


@dataclass(frozen=True, slots=True, kw_only=True)
class SchemaComparison:
    changes: tuple[SchemaChange, ...] = ()
    can_auto_approve: bool = False
    requires_approval: bool = True

    @property
    def is_breaking(self) -> bool:
        return any(change.severity is Severity.ERROR for change in self.changes)

    @property
    def has_changes(self) -> bool:
        return bool(self.changes)

    def of_type(self, change_type: ChangeType) -> tuple[SchemaChange, ...]:
        return tuple(change for change in self.changes if change.type == change_type)

    def breaking_changes(self) -> tuple[SchemaChange, ...]:
        return tuple(change for change in self.changes if change.severity is Severity.ERROR)
