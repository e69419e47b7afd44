"""Stage state machine and the runner that drives it."""

from __future__ import annotations

from .approval import approve_schema
from .runner import (
    DatasetNotFoundError,
    JobNotFoundError,
    PipelineRunner,
    StageContext,
    StageHandler,
    StageOutcome,
)
from .stages import (
    LEGAL_TRANSITIONS,
    RESUME_ORDER,
    RUNNABLE_STAGES,
    InvalidStageTransition,
    can_transition,
    stage_after,
    transition,
)

__all__ = [
    "LEGAL_TRANSITIONS",
    "RESUME_ORDER",
    "RUNNABLE_STAGES",
    "DatasetNotFoundError",
    "InvalidStageTransition",
    "JobNotFoundError",
    "PipelineRunner",
    "StageContext",
    "StageHandler",
    "StageOutcome",
    "approve_schema",
    "can_transition",
    "stage_after",
    "transition",
]
