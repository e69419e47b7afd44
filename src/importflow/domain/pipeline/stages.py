"""Stage ordering and legal transitions of an import job."""

from __future__ import annotations

from typing import Final

from importflow.domain.model import ImportJob, ImportStage

RESUME_ORDER: Final[tuple[ImportStage, ...]] = (
    ImportStage.DETECT_SCHEMA,
    ImportStage.VALIDATE_SCHEMA,
    ImportStage.ANALYZE_DUPLICATES,
    ImportStage.AWAIT_APPROVAL,
    ImportStage.GEOCODE_BATCH,
    ImportStage.CREATE_EVENTS,
)

RUNNABLE_STAGES: Final[frozenset[ImportStage]] = frozenset(RESUME_ORDER) - {ImportStage.AWAIT_APPROVAL}

LEGAL_TRANSITIONS: Final[dict[ImportStage, frozenset[ImportStage]]] = {
    ImportStage.DETECT_SCHEMA: frozenset({ImportStage.DETECT_SCHEMA, ImportStage.VALIDATE_SCHEMA}),
    ImportStage.VALIDATE_SCHEMA: frozenset({ImportStage.ANALYZE_DUPLICATES}),
    ImportStage.ANALYZE_DUPLICATES: frozenset({ImportStage.AWAIT_APPROVAL, ImportStage.GEOCODE_BATCH}),
    ImportStage.AWAIT_APPROVAL: frozenset({ImportStage.GEOCODE_BATCH}),
    ImportStage.GEOCODE_BATCH: frozenset({ImportStage.GEOCODE_BATCH, ImportStage.CREATE_EVENTS}),
    ImportStage.CREATE_EVENTS: frozenset({ImportStage.CREATE_EVENTS, ImportStage.COMPLETED}),
    ImportStage.COMPLETED: frozenset(),
    ImportStage.FAILED: frozenset(),
}


class InvalidStageTransition(ValueError):  # noqa: N818
    def __init__(self, current: ImportStage, target: ImportStage) -> None:
        super().__init__(f"Illegal stage transition: {current} -> {target}")
        self.current = current
        self.target = target


def can_transition(current: ImportStage, target: ImportStage) -> bool:
    if target is ImportStage.FAILED:
        return current not in (ImportStage.COMPLETED, ImportStage.FAILED)
    return target in LEGAL_TRANSITIONS[current]


def transition(job: ImportJob, target: ImportStage) -> None:
    """Move ``job`` to ``target`` or raise :class:`InvalidStageTransition`.

    Recovery and manual resets assign ``job.stage`` directly instead.
    """

    if not can_transition(job.stage, target):
        raise InvalidStageTransition(job.stage, target)
    job.stage = target


def stage_after(stage: ImportStage) -> ImportStage | None:
    """Next stage in resume order, or ``None`` for the last one and non-pipeline stages."""

    if stage not in RESUME_ORDER:
        return None
    index = RESUME_ORDER.index(stage)
    if index + 1 >= len(RESUME_ORDER):
        return None
    return RESUME_ORDER[index + 1]
