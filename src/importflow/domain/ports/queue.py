"""Port for scheduling stage runs on a background queue."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from uuid import UUID

    from importflow.domain.model import ImportStage


@runtime_checkable
class JobQueue(Protocol):
    """At-least-once delivery of ``(stage, import_job_id, batch_number)`` messages."""

    def enqueue(self, stage: ImportStage, job_id: UUID, batch_number: int = 0) -> None: ...
