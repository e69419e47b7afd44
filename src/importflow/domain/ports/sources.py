"""Port for reading the rows of an import source."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import Iterator

    from importflow.domain.model import ImportJob


class SourceReadError(RuntimeError):
    """Raised when the source of an import job cannot be read."""


@runtime_checkable
class SourceReader(Protocol):
    def read_rows(self, job: ImportJob, *, offset: int, limit: int) -> list[dict[str, Any]]:
        """Return up to ``limit`` rows starting at the 0-based ``offset``."""
        ...

    def count_rows(self, job: ImportJob) -> int: ...


@dataclass(slots=True)
class SourceBatch:
    """Rows of one batch; ``offset`` is the row number of the first row."""

    offset: int
    rows: list[dict[str, Any]] = field(default_factory=list)
    has_more: bool = False

    def numbered(self) -> list[tuple[int, dict[str, Any]]]:
        return [(self.offset + index, row) for index, row in enumerate(self.rows)]


def read_batch(reader: SourceReader, job: ImportJob, *, batch_number: int, batch_size: int) -> SourceBatch:
    """Read batch ``batch_number`` and peek one row ahead to learn whether more follow."""

    offset = batch_number * batch_size
    rows = reader.read_rows(job, offset=offset, limit=batch_size + 1)
    has_more = len(rows) > batch_size
    return SourceBatch(offset=offset, rows=rows[:batch_size], has_more=has_more)


def iter_rows(reader: SourceReader, job: ImportJob, *, chunk_size: int) -> Iterator[tuple[int, dict[str, Any]]]:
    """Yield every ``(row_number, row)`` of the source, reading ``chunk_size`` rows at a time."""

    offset = 0
    while True:
        rows = reader.read_rows(job, offset=offset, limit=chunk_size)
        for index, row in enumerate(rows):
            yield offset + index, row
        if len(rows) < chunk_size:
            return
        offset += chunk_size
