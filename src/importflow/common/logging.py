"""Shared logging helpers for importflow."""

from __future__ import annotations

import logging

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(*, level: int = logging.INFO, force: bool = False) -> None:
    """Initialise the root logger once with the CLI defaults.

    Stage handlers and services only ever call ``getLogger(__name__)``; this is the
    single place where handlers and formatting are attached. Pass ``force=True`` to
    reconfigure from tests or from a long-running sweep process.
    """

    logging.basicConfig(
        level=level,
        format=LOG_FORMAT,
        datefmt="%H:%M:%S",
        force=force,
    )


def parse_log_level(value: str | None, *, default: int = logging.INFO) -> int:
    """Translate ``INFO``/``debug``/``10`` style values into a logging level."""

    if value is None or not value.strip():
        return default
    candidate = value.strip()
    if candidate.isdigit():
        return int(candidate)
    level = logging.getLevelNamesMapping().get(candidate.upper())
    if level is None:
        raise ValueError(f"Unknown log level: {value}")
    return level
