"""Record identity and duplicate handling."""

from __future__ import annotations

from .engine import (
    DeduplicationEngine,
    Resolution,
    ResolutionAction,
    disabled_analysis,
    resolve_row,
)
from .identity import IdGenerationError, content_hash, generate_unique_id

__all__ = [
    "DeduplicationEngine",
    "IdGenerationError",
    "Resolution",
    "ResolutionAction",
    "content_hash",
    "disabled_analysis",
    "generate_unique_id",
    "resolve_row",
]
