from __future__ import annotations

from typing import TYPE_CHECKING

from importflow.domain.model import Progress

if TYPE_CHECKING:
    from importflow.domain.model import ImportJob, ImportStage
    from importflow.domain.ports import SourceReader


def enter_batch(job: ImportJob, stage: ImportStage, batch_number: int, reader: SourceReader) -> int | None:
    """Prepare progress for ``batch_number`` of a batched stage.

    Returns the batch to continue with when ``batch_number`` was already
    counted, so a redelivered message skips ahead instead of double counting.
    """

    progress = job.progress
    if progress.stage is not stage:
        job.progress = Progress(stage=stage, total=reader.count_rows(job))
        return None
    if progress.batches_processed > batch_number:
        return progress.batches_processed
    return None
