"""Dataset: the long-lived destination of repeated imports."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from uuid import UUID, uuid4

from importflow.domain.model.enums import (
    DeduplicationStrategy,
    IdStrategyType,
    TypeChangePolicy,
)


def _utcnow() -> datetime:
    return datetime.now(UTC)


@dataclass(frozen=True, slots=True, kw_only=True)
class SchemaConfig:
    auto_grow: bool = True
    auto_approve_non_breaking: bool = False
    locked: bool = False
    type_change_policy: TypeChangePolicy = TypeChangePolicy.STRICT


@dataclass(frozen=True, slots=True, kw_only=True)
class DeduplicationConfig:
    enabled: bool = True
    strategy: DeduplicationStrategy = DeduplicationStrategy.SKIP

    def __post_init__(self) -> None:
        if self.strategy is DeduplicationStrategy.DISABLED:
            raise ValueError("Use enabled=False instead of the 'disabled' strategy")


@dataclass(frozen=True, slots=True, kw_only=True)
class IdStrategy:
    """How a record's identity is derived.

    ``external_id_path`` is required for ``external``; ``computed`` hashes
    ``computed_fields`` (or the whole record when none are configured).
    """

    type: IdStrategyType = IdStrategyType.AUTO
    external_id_path: str | None = None
    computed_fields: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if self.type is IdStrategyType.EXTERNAL and not self.external_id_path:
            raise ValueError("external id strategy requires external_id_path")


@dataclass(eq=False, kw_only=True)
class Dataset:
    id: UUID = field(default_factory=uuid4)
    name: str
    schema_config: SchemaConfig = field(default_factory=SchemaConfig)
    deduplication_config: DeduplicationConfig = field(default_factory=DeduplicationConfig)
    id_strategy: IdStrategy = field(default_factory=IdStrategy)
    geocoding_enabled: bool = True
    created_at: datetime = field(default_factory=_utcnow)
