"""Map raw failure messages onto the recovery taxonomy."""

from __future__ import annotations

from dataclasses import dataclass

from importflow.domain.model import ErrorClassification, ErrorType

SCHEMA_REVIEW_ACTION = "Review schema configuration or data format"
QUOTA_ACTION = "Wait for daily quota reset or upgrade plan"


@dataclass(frozen=True, slots=True)
class ErrorRule:
    needles: tuple[str, ...]
    classification: ErrorClassification

    def matches(self, message: str) -> bool:
        return any(needle in message for needle in self.needles)


# First match wins.
ERROR_RULES: tuple[ErrorRule, ...] = (
    ErrorRule(
        ("enoent", "file not found", "no such file"),
        ErrorClassification(
            type=ErrorType.PERMANENT,
            reason="File not found - file may have been deleted",
            retryable=False,
        ),
    ),
    ErrorRule(
        ("connection", "timeout", "timed out", "econnrefused", "refused"),
        ErrorClassification(
            type=ErrorType.RECOVERABLE,
            reason="Network or database connection issue",
            retryable=True,
        ),
    ),
    ErrorRule(
        ("memory", "resource"),
        ErrorClassification(
            type=ErrorType.RECOVERABLE,
            reason="Resource exhaustion - may resolve with delay",
            retryable=True,
        ),
    ),
    ErrorRule(
        ("schema", "validation"),
        ErrorClassification(
            type=ErrorType.USER_ACTION_REQUIRED,
            reason="Schema or validation error - may need manual review",
            retryable=True,
            suggested_action=SCHEMA_REVIEW_ACTION,
        ),
    ),
    ErrorRule(
        ("rate limit", "429"),
        ErrorClassification(
            type=ErrorType.RECOVERABLE,
            reason="Rate limiting - will resolve with delay",
            retryable=True,
        ),
    ),
    ErrorRule(
        ("quota", "limit exceeded"),
        ErrorClassification(
            type=ErrorType.USER_ACTION_REQUIRED,
            reason="Quota limit exceeded - will retry after quota resets",
            retryable=False,
            suggested_action=QUOTA_ACTION,
        ),
    ),
    ErrorRule(
        ("permission", "unauthorized"),
        ErrorClassification(
            type=ErrorType.PERMANENT,
            reason="Permission denied - needs configuration fix",
            retryable=False,
        ),
    ),
)


def classify_error(message: str | None, *, unknown_retryable: bool = True) -> ErrorClassification:
    """Classify ``message`` by case-insensitive substring rules.

    Messages matching no rule are recoverable unless ``unknown_retryable`` is
    off, in which case they are permanent.
    """

    lowered = (message or "").lower()
    for rule in ERROR_RULES:
        if rule.matches(lowered):
            return rule.classification
    if unknown_retryable:
        return ErrorClassification(
            type=ErrorType.RECOVERABLE,
            reason="Unknown error - attempting recovery",
            retryable=True,
        )
    return ErrorClassification(
        type=ErrorType.PERMANENT,
        reason="Unknown error - automatic retries disabled",
        retryable=False,
    )


def is_schema_error(classification: ErrorClassification) -> bool:
    return classification.type is ErrorType.USER_ACTION_REQUIRED and "schema" in classification.reason.lower()
