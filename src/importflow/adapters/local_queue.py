"""In-process job queue for CLI runs and tests."""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from logging import getLogger
from typing import TYPE_CHECKING, NamedTuple

if TYPE_CHECKING:
    from uuid import UUID

    from importflow.domain.model import ImportStage
    from importflow.domain.pipeline import PipelineRunner

log = getLogger(__name__)


class QueuedRun(NamedTuple):
    stage: ImportStage
    job_id: UUID
    batch_number: int


@dataclass(slots=True)
class DrainResult:
    completed: int = 0
    failed: list[QueuedRun] = field(default_factory=list)


class LocalJobQueue:
    """FIFO queue that runs messages synchronously when drained."""

    def __init__(self) -> None:
        self._pending: deque[QueuedRun] = deque()

    def __len__(self) -> int:
        return len(self._pending)

    def enqueue(self, stage: ImportStage, job_id: UUID, batch_number: int = 0) -> None:
        log.debug("Queued %s for job %s (batch %s)", stage, job_id, batch_number)
        self._pending.append(QueuedRun(stage, job_id, batch_number))

    def pending(self) -> list[QueuedRun]:
        return list(self._pending)

    def drain(self, runner: PipelineRunner, *, max_runs: int | None = None) -> DrainResult:
        """Run queued messages, including those they enqueue, until the queue is empty.

        The runner records failures on the job before re-raising, so a failed
        message is reported and draining continues with the next one.
        """

        result = DrainResult()
        while self._pending and (max_runs is None or result.completed + len(result.failed) < max_runs):
            message = self._pending.popleft()
            try:
                runner.run(message.stage, message.job_id, message.batch_number)
            except Exception:  # noqa: BLE001
                log.warning(
                    "Queued %s for job %s (batch %s) failed",
                    message.stage,
                    message.job_id,
                    message.batch_number,
                )
                result.failed.append(message)
            else:
                result.completed += 1
        return result


if TYPE_CHECKING:
    from importflow.domain.ports import JobQueue

    _queue_check: JobQueue = LocalJobQueue()
