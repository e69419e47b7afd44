"""Schema approval decisions and immutable schema versions."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime
from logging import getLogger
from typing import TYPE_CHECKING, Any

from importflow.domain.model import SchemaVersion
from importflow.domain.schema.comparison import compare

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping
    from uuid import UUID

    from importflow.domain.model import Dataset, SchemaComparison
    from importflow.domain.ports import SchemaVersionRepository

log = getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


@dataclass(frozen=True, slots=True, kw_only=True)
class VersioningDecision:
    comparison: SchemaComparison
    latest: SchemaVersion | None
    create_version: bool

    @property
    def requires_approval(self) -> bool:
        return self.comparison.requires_approval


class SchemaVersioningService:
    """Decide between auto and manual approval and append schema versions."""

    def __init__(
        self,
        versions: SchemaVersionRepository,
        *,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._versions = versions
        self._clock = clock

    def next_version_number(self, dataset_id: UUID) -> int:
        latest = self._versions.latest_for_dataset(dataset_id)
        return 1 if latest is None else latest.version_number + 1

    def decide(self, dataset: Dataset, schema: Mapping[str, Any]) -> VersioningDecision:
        """Compare ``schema`` with the dataset's active version under its schema policy.

        A version is due when the comparison is auto-approvable and either
        something changed or the dataset has no version yet.
        """

        latest = self._versions.latest_for_dataset(dataset.id)
        config = dataset.schema_config
        comparison = compare(
            latest.schema if latest is not None else None,
            schema,
            locked=config.locked,
            auto_approve_non_breaking=config.auto_approve_non_breaking,
            type_change_policy=config.type_change_policy,
        )
        create_version = comparison.can_auto_approve and (comparison.has_changes or latest is None)
        return VersioningDecision(comparison=comparison, latest=latest, create_version=create_version)

    def create_version(
        self,
        dataset: Dataset,
        *,
        schema: Mapping[str, Any],
        field_metadata: Mapping[str, Any],
        comparison: SchemaComparison,
        import_job_id: UUID,
        auto_approved: bool,
        approved_by: str | None = None,
    ) -> SchemaVersion:
        version = SchemaVersion(
            dataset_id=dataset.id,
            version_number=self.next_version_number(dataset.id),
            schema=dict(schema),
            field_metadata=dict(field_metadata),
            approval_required=comparison.requires_approval,
            auto_approved=auto_approved,
            approved_by=approved_by,
            conflicts=comparison.breaking_changes(),
            import_sources=(import_job_id,),
            created_at=self._clock(),
        )
        self._versions.add(version)
        log.info(
            "Created schema version %s for dataset %s (auto_approved=%s)",
            version.version_number,
            dataset.id,
            auto_approved,
        )
        return version
