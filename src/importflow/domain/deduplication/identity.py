"""Record identity derived from a dataset's id strategy.

Identifiers are namespaced by dataset id so that equal records in different
datasets never collide:

* ``external``: ``{dataset}:ext:{value}`` from a configured field
* ``computed``: ``{dataset}:comp:{sha256[:16]}`` over configured fields
* ``auto``: ``{dataset}:auto:{sha256[:16]}`` over the canonical record
* ``hybrid``: external when the field is present, else auto
"""

from __future__ import annotations

import hashlib
import json
import re
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

from importflow.domain.model import IdStrategyType

if TYPE_CHECKING:
    from uuid import UUID

    from importflow.domain.model import IdStrategy

ID_PATTERN = re.compile(r"^[\w\-.:]+$")
MAX_ID_LENGTH = 255
HASH_PREFIX_LENGTH = 16


class IdGenerationError(ValueError):
    """Raised when a record cannot be given an identity under the dataset's strategy."""


def extract_path(record: Mapping[str, Any], path: str) -> Any:
    """Resolve a dotted ``path`` in ``record``; missing segments yield ``None``."""

    if not path:
        return None
    value: Any = record
    for part in path.split("."):
        if not isinstance(value, Mapping):
            return None
        value = value.get(part)
    return value


def sanitize_id(value: object) -> str:
    text = str(value).strip()
    if not 0 < len(text) <= MAX_ID_LENGTH:
        raise IdGenerationError(f"Invalid ID length: {len(text)} (must be 1-{MAX_ID_LENGTH} characters)")
    if not ID_PATTERN.match(text):
        raise IdGenerationError(f"Invalid ID format: {text!r} (only alphanumeric, -, _, :, . allowed)")
    return text


def _canonicalize(value: Any) -> Any:
    if isinstance(value, str):
        return " ".join(value.split())
    if isinstance(value, Mapping):
        return {str(key): _canonicalize(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_canonicalize(item) for item in value]
    return value


def canonical_json(record: Mapping[str, Any]) -> str:
    return json.dumps(
        _canonicalize(record),
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
        default=str,
    )


def content_hash(record: Mapping[str, Any]) -> str:
    """SHA-256 of the canonical record: sorted keys, whitespace-collapsed strings."""

    return hashlib.sha256(canonical_json(record).encode("utf-8")).hexdigest()


def _short_hash(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()[:HASH_PREFIX_LENGTH]


def external_id(dataset_id: UUID, record: Mapping[str, Any], path: str | None) -> str:
    value = extract_path(record, path or "")
    if value is None or value == "":
        raise IdGenerationError(f"Missing external ID at path: {path or 'unknown'}")
    return f"{dataset_id}:ext:{sanitize_id(value)}"


def computed_id(dataset_id: UUID, record: Mapping[str, Any], fields: tuple[str, ...]) -> str:
    if not fields:
        return f"{dataset_id}:comp:{_short_hash(f'{dataset_id}:{canonical_json(record)}')}"

    missing = [path for path in fields if extract_path(record, path) is None]
    if missing:
        raise IdGenerationError(f"Missing required fields for computed ID: {', '.join(missing)}")
    hash_input = "|".join(
        f"{path}:{json.dumps(_canonicalize(extract_path(record, path)), sort_keys=True, default=str)}"
        for path in sorted(fields)
    )
    return f"{dataset_id}:comp:{_short_hash(f'{dataset_id}:{hash_input}')}"


def auto_id(dataset_id: UUID, record: Mapping[str, Any]) -> str:
    return f"{dataset_id}:auto:{content_hash(record)[:HASH_PREFIX_LENGTH]}"


def generate_unique_id(dataset_id: UUID, record: Mapping[str, Any], strategy: IdStrategy) -> str:
    match strategy.type:
        case IdStrategyType.EXTERNAL:
            return external_id(dataset_id, record, strategy.external_id_path)
        case IdStrategyType.COMPUTED:
            return computed_id(dataset_id, record, strategy.computed_fields)
        case IdStrategyType.AUTO:
            return auto_id(dataset_id, record)
        case IdStrategyType.HYBRID:
            value = extract_path(record, strategy.external_id_path or "")
            if value is None or value == "":
                return auto_id(dataset_id, record)
            return external_id(dataset_id, record, strategy.external_id_path)
