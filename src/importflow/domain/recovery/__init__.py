"""Failure classification, retry scheduling and operator recovery tools."""

from __future__ import annotations

from .backoff import compute_retry_delay, determine_resume_stage
from .classification import ERROR_RULES, ErrorRule, classify_error, is_schema_error
from .service import (
    ErrorRecoveryService,
    RecoveryRecommendation,
    RecoveryResult,
    SweepResult,
)

__all__ = [
    "ERROR_RULES",
    "ErrorRecoveryService",
    "ErrorRule",
    "RecoveryRecommendation",
    "RecoveryResult",
    "SweepResult",
    "classify_error",
    "compute_retry_delay",
    "determine_resume_stage",
    "is_schema_error",
]
