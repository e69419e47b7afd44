"""Read import rows from delimited or JSON files in the upload directory.

A job's ``source`` names a file relative to the upload directory (absolute
paths are used as given). CSV/TSV cells are coerced: empty cells become
``None``, integers and decimals become numbers and ``true``/``false`` become
booleans. JSON-lines and JSON-array files keep their native types; entries
that are not objects are skipped.
"""

from __future__ import annotations

import csv
import json
import re
from itertools import islice
from logging import getLogger
from pathlib import Path
from typing import TYPE_CHECKING, Any

from importflow.domain.ports.sources import SourceReadError

if TYPE_CHECKING:
    from collections.abc import Iterator

    from importflow.domain.model import ImportJob

log = getLogger(__name__)

_INTEGER_RE = re.compile(r"^-?\d+$")
_DECIMAL_RE = re.compile(r"^-?(\d+\.\d*|\.\d+|\d+(\.\d*)?[eE][-+]?\d+)$")
_DELIMITERS = {".csv": ",", ".tsv": "\t"}
_JSON_LINES = {".jsonl", ".ndjson"}


def coerce_cell(value: str | None) -> Any:
    if value is None:
        return None
    text = value.strip()
    if text == "":
        return None
    if _INTEGER_RE.match(text):
        return int(text)
    if _DECIMAL_RE.match(text):
        return float(text)
    lowered = text.lower()
    if lowered in {"true", "false"}:
        return lowered == "true"
    return value


class FileSourceReader:
    """``SourceReader`` over files stored by the upload step."""

    def __init__(self, upload_dir: Path, *, encoding: str = "utf-8") -> None:
        self.upload_dir = upload_dir
        self.encoding = encoding

    def resolve(self, job: ImportJob) -> Path:
        candidate = Path(job.source)
        if candidate.is_absolute():
            path = candidate
        else:
            base = self.upload_dir.resolve()
            path = (base / candidate).resolve()
            if not path.is_relative_to(base):
                raise SourceReadError(f"Source path escapes the upload directory: {job.source}")
        if not path.is_file():
            raise SourceReadError(f"File not found: {job.source}")
        return path

    def read_rows(self, job: ImportJob, *, offset: int, limit: int) -> list[dict[str, Any]]:
        path = self.resolve(job)
        return list(islice(self._iter_records(path), offset, offset + limit))

    def count_rows(self, job: ImportJob) -> int:
        path = self.resolve(job)
        return sum(1 for _ in self._iter_records(path))

    def _iter_records(self, path: Path) -> Iterator[dict[str, Any]]:
        suffix = path.suffix.lower()
        try:
            if suffix in _JSON_LINES:
                yield from self._iter_json_lines(path)
            elif suffix == ".json":
                yield from self._iter_json_array(path)
            else:
                yield from self._iter_delimited(path, _DELIMITERS.get(suffix, ","))
        except (OSError, UnicodeDecodeError, csv.Error) as exc:
            raise SourceReadError(f"Could not read {path.name}: {exc}") from exc

    def _iter_delimited(self, path: Path, delimiter: str) -> Iterator[dict[str, Any]]:
        with path.open(newline="", encoding=self.encoding) as handle:
            reader = csv.DictReader(handle, delimiter=delimiter)
            for raw in reader:
                if not any(value not in (None, "") for value in raw.values()):
                    continue
                yield {
                    str(key): coerce_cell(value)
                    for key, value in raw.items()
                    if key is not None and not isinstance(value, list)
                }

    def _iter_json_lines(self, path: Path) -> Iterator[dict[str, Any]]:
        with path.open(encoding=self.encoding) as handle:
            for line_number, line in enumerate(handle, start=1):
                if not line.strip():
                    continue
                try:
                    record = json.loads(line)
                except json.JSONDecodeError as exc:
                    raise SourceReadError(
                        f"Invalid JSON on line {line_number} of {path.name}: {exc.msg}"
                    ) from exc
                if isinstance(record, dict):
                    yield record
                else:
                    log.debug("Skipping non-object line %d in %s", line_number, path.name)

    def _iter_json_array(self, path: Path) -> Iterator[dict[str, Any]]:
        with path.open(encoding=self.encoding) as handle:
            try:
                document = json.load(handle)
            except json.JSONDecodeError as exc:
                raise SourceReadError(f"Invalid JSON in {path.name}: {exc.msg}") from exc
        records = document if isinstance(document, list) else [document]
        yield from (record for record in records if isinstance(record, dict))


if TYPE_CHECKING:
    from importflow.domain.ports.sources import SourceReader

    _reader_check: SourceReader = FileSourceReader(Path())
