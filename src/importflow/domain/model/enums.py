"""Domain enums (pure, dependency-light)."""

from __future__ import annotations

from enum import StrEnum


class ImportStage(StrEnum):
    DETECT_SCHEMA = "detect-schema"
    VALIDATE_SCHEMA = "validate-schema"
    ANALYZE_DUPLICATES = "analyze-duplicates"
    AWAIT_APPROVAL = "await-approval"
    GEOCODE_BATCH = "geocode-batch"
    CREATE_EVENTS = "create-events"
    COMPLETED = "completed"
    FAILED = "failed"


class ErrorType(StrEnum):
    PERMANENT = "permanent"
    RECOVERABLE = "recoverable"
    USER_ACTION_REQUIRED = "user-action-required"


class Severity(StrEnum):
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class ChangeType(StrEnum):
    NEW_FIELD = "new_field"
    REMOVED_FIELD = "removed_field"
    TYPE_CHANGE = "type_change"
    ENUM_CHANGE = "enum_change"
    FORMAT_CHANGE = "format_change"


class TypeChangePolicy(StrEnum):
    """How the comparator grades a primitive type change.

    ``strict`` always treats it as breaking. ``lenient`` downgrades changes that
    involve a ``mixed`` side or an integer/number widening to a warning.
    """

    STRICT = "strict"
    LENIENT = "lenient"


class DeduplicationStrategy(StrEnum):
    SKIP = "skip"
    UPDATE = "update"
    VERSION = "version"
    DISABLED = "disabled"


class IdStrategyType(StrEnum):
    EXTERNAL = "external"
    COMPUTED = "computed"
    AUTO = "auto"
    HYBRID = "hybrid"


class RecoveryAction(StrEnum):
    NOT_FAILED = "not_failed"
    NOT_RETRYABLE = "not_retryable"
    MAX_RETRIES_EXCEEDED = "max_retries_exceeded"
    RETRY_SCHEDULED = "retry_scheduled"
    JOB_NOT_FOUND = "job_not_found"
    MANUAL_RESET = "manual_reset"


class CoordinateSource(StrEnum):
    IMPORT = "import"
    GEOCODED = "geocoded"
    NONE = "none"


class GeocodeSource(StrEnum):
    GEOCODED = "geocoded"
    PROVIDED = "provided"
