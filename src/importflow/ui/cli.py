from __future__ import annotations

import argparse
import logging
import sys
import time
from signal import SIGINT, signal
from typing import TYPE_CHECKING
from uuid import UUID

from dotenv import load_dotenv

from importflow.app import (
    approve_schema,
    create_dataset,
    create_import_job,
    get_recovery_recommendations,
    process_pending_retries,
    recover_failed_job,
    reset_job_to_stage,
    run_stage,
)
from importflow.common.logging import configure_logging, parse_log_level
from importflow.config import ConfigurationError, get_pipeline_config
from importflow.domain.model import (
    DeduplicationConfig,
    DeduplicationStrategy,
    IdStrategy,
    IdStrategyType,
    ImportStage,
    SchemaConfig,
)
from importflow.domain.schema import change_summary

if TYPE_CHECKING:
    from collections.abc import Sequence
    from types import FrameType

    from importflow.domain.model import ImportJob

log = logging.getLogger(__name__)

_STAGES = [stage.value for stage in ImportStage]


def _parse_args(argv: Sequence[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run and recover dataset imports")
    parser.add_argument(
        "--log-level",
        type=str,
        default=None,
        help="Logging level name or number (default: INFO)",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    import_cmd = subparsers.add_parser("import", help="Import a source file into a dataset")
    import_cmd.add_argument("source", type=str, help="File name relative to the upload directory")
    target = import_cmd.add_mutually_exclusive_group(required=True)
    target.add_argument("--dataset-id", type=str, help="Existing dataset to import into")
    target.add_argument("--dataset-name", type=str, help="Create a new dataset with this name")
    import_cmd.add_argument(
        "--id-strategy",
        choices=[kind.value for kind in IdStrategyType],
        default=IdStrategyType.AUTO.value,
        help="How record identity is derived for a new dataset (default: %(default)s)",
    )
    import_cmd.add_argument(
        "--external-id-path",
        type=str,
        help="Dotted path of the external id (external/hybrid strategies)",
    )
    import_cmd.add_argument(
        "--computed-field",
        action="append",
        default=[],
        help="Field hashed by the computed strategy (repeatable)",
    )
    import_cmd.add_argument(
        "--duplicates",
        choices=[strategy.value for strategy in DeduplicationStrategy],
        default=DeduplicationStrategy.SKIP.value,
        help="What to do with rows that match existing events (default: %(default)s)",
    )
    import_cmd.add_argument(
        "--locked-schema",
        action="store_true",
        help="Require approval for every schema change of a new dataset",
    )
    import_cmd.add_argument(
        "--auto-approve",
        action="store_true",
        help="Auto-approve non-breaking schema changes of a new dataset",
    )
    import_cmd.add_argument(
        "--no-geocoding",
        action="store_true",
        help="Disable geocoding for a new dataset",
    )

    run_cmd = subparsers.add_parser("run-stage", help="Deliver one stage message by hand")
    run_cmd.add_argument("stage", choices=_STAGES)
    run_cmd.add_argument("job_id", type=str)
    run_cmd.add_argument("--batch", type=int, default=0, help="Batch number (default: 0)")
    run_cmd.add_argument(
        "--no-follow",
        action="store_true",
        help="Stop after this message instead of running what it queues",
    )

    sweep = subparsers.add_parser("sweep", help="Resume failed jobs whose retry is due")
    sweep.add_argument("--limit", type=int, help="Maximum number of jobs per sweep")
    sweep.add_argument(
        "--loop",
        action="store_true",
        help="Keep sweeping at the configured interval until interrupted",
    )
    sweep.add_argument(
        "--interval",
        type=float,
        help="Seconds between sweeps with --loop (defaults to config)",
    )

    recover = subparsers.add_parser("recover", help="Schedule a retry for a failed job")
    recover.add_argument("job_id", type=str)

    reset = subparsers.add_parser("reset", help="Force a job to a stage")
    reset.add_argument("job_id", type=str)
    reset.add_argument("stage", choices=_STAGES)
    reset.add_argument(
        "--keep-retries",
        action="store_true",
        help="Keep the retry counter instead of clearing it",
    )
    reset.add_argument(
        "--requeue",
        action="store_true",
        help="Run the target stage right away",
    )

    recommendations = subparsers.add_parser(
        "recommendations",
        help="List failed jobs with a recommended recovery action",
    )
    recommendations.add_argument("--limit", type=int, help="Maximum number of jobs to list")

    approve = subparsers.add_parser("approve", help="Approve the pending schema of a job")
    approve.add_argument("job_id", type=str)
    approve.add_argument("--by", dest="approved_by", type=str, required=True, help="Approver name")

    return parser.parse_args(list(argv))


def _parse_uuid(value: str) -> UUID:
    try:
        return UUID(value)
    except ValueError as exc:
        raise ValueError(f"Invalid UUID: {value}") from exc


def _validate_args(args: argparse.Namespace) -> None:
    for name in ("job_id", "dataset_id"):
        value = getattr(args, name, None)
        if value is not None:
            _parse_uuid(value)
    if args.command == "import" and args.id_strategy == "external" and not args.external_id_path:
        raise ValueError("--external-id-path is required for the external strategy")
    for name in ("limit", "batch"):
        value = getattr(args, name, None)
        if value is not None and value < 0:
            raise ValueError(f"--{name} must be non-negative")
    interval = getattr(args, "interval", None)
    if interval is not None and interval <= 0:
        raise ValueError("--interval must be positive")


def _new_dataset_options(
    args: argparse.Namespace,
) -> tuple[SchemaConfig, DeduplicationConfig, IdStrategy]:
    schema_config = SchemaConfig(
        locked=args.locked_schema,
        auto_approve_non_breaking=args.auto_approve,
    )
    if args.duplicates == "disabled":
        deduplication = DeduplicationConfig(enabled=False)
    else:
        deduplication = DeduplicationConfig(strategy=DeduplicationStrategy(args.duplicates))
    id_strategy = IdStrategy(
        type=IdStrategyType(args.id_strategy),
        external_id_path=args.external_id_path,
        computed_fields=tuple(args.computed_field),
    )
    return schema_config, deduplication, id_strategy


def _log_job(job: ImportJob) -> None:
    log.info("Job %s is at %s", job.id, job.stage)
    if job.stage is ImportStage.AWAIT_APPROVAL and job.schema_validation is not None:
        log.info("%s", change_summary(job.schema_validation))
    if job.results is not None:
        log.info(
            "Results: events=%s, duplicates_skipped=%s, geocoded=%s, errors=%s",
            job.results.total_events,
            job.results.duplicates_skipped,
            job.results.geocoded,
            job.results.errors,
        )
    if job.stage is ImportStage.FAILED:
        log.error("Last error: %s", job.error_log.last_error)


def _run_import(args: argparse.Namespace) -> None:
    if args.dataset_id is not None:
        dataset_id = _parse_uuid(args.dataset_id)
    else:
        schema_config, deduplication, id_strategy = _new_dataset_options(args)
        dataset = create_dataset(
            args.dataset_name,
            schema_config=schema_config,
            deduplication_config=deduplication,
            id_strategy=id_strategy,
            geocoding_enabled=not args.no_geocoding,
        )
        dataset_id = dataset.id
    job = create_import_job(dataset_id, args.source)
    _log_job(job)


def _run_sweep(args: argparse.Namespace) -> None:
    interval = args.interval or get_pipeline_config().sweep_interval_seconds
    while True:
        result = process_pending_retries(limit=args.limit)
        for job_id, stage in result.requeued:
            log.info("Resumed job %s at %s", job_id, stage)
        if not args.loop:
            return
        time.sleep(interval)


def main(argv: Sequence[str] | None = None) -> None:
    """Main application entry point."""
    parsed_args: argparse.Namespace
    args_list = list(argv) if argv is not None else list(sys.argv[1:])
    try:
        parsed_args = _parse_args(args_list)
        configure_logging(level=parse_log_level(parsed_args.log_level))
        _validate_args(parsed_args)
    except (ValueError, ConfigurationError):
        configure_logging()
        log.exception("CLI validation error")
        sys.exit(2)

    try:
        if parsed_args.command == "import":
            _run_import(parsed_args)
        elif parsed_args.command == "run-stage":
            result = run_stage(
                ImportStage(parsed_args.stage),
                _parse_uuid(parsed_args.job_id),
                parsed_args.batch,
                follow=not parsed_args.no_follow,
            )
            log.info("Ran %s message(s), %s failed", result.completed, len(result.failed))
        elif parsed_args.command == "sweep":
            _run_sweep(parsed_args)
        elif parsed_args.command == "recover":
            recovery = recover_failed_job(_parse_uuid(parsed_args.job_id))
            if recovery.success:
                log.info(
                    "Retry scheduled at %s (resume at %s)",
                    recovery.next_retry_at,
                    recovery.resume_stage,
                )
            else:
                log.warning("No retry scheduled (%s): %s", recovery.action, recovery.error)
        elif parsed_args.command == "reset":
            recovery = reset_job_to_stage(
                _parse_uuid(parsed_args.job_id),
                ImportStage(parsed_args.stage),
                clear_retries=not parsed_args.keep_retries,
                requeue=parsed_args.requeue,
            )
            if not recovery.success:
                raise LookupError(recovery.error)  # noqa: TRY301
            log.info("Job reset to %s", recovery.resume_stage)
        elif parsed_args.command == "recommendations":
            for item in get_recovery_recommendations(limit=parsed_args.limit):
                log.info(
                    "%s failed at %s after %s retries: %s -> %s",
                    item.job_id,
                    item.failed_stage,
                    item.retry_count,
                    item.last_error,
                    item.recommended_action,
                )
        elif parsed_args.command == "approve":
            version = approve_schema(
                _parse_uuid(parsed_args.job_id),
                approved_by=parsed_args.approved_by,
            )
            log.info("Approved schema version %s", version.version_number)
        else:
            raise ValueError(f"Unsupported command: {parsed_args.command}")  # noqa: TRY301

    except ConfigurationError:
        log.exception("Configuration error")
        sys.exit(2)
    except Exception:
        log.exception("Fatal error during import")
        sys.exit(1)


def sigint_handler(_signal_received: int, _frame: FrameType | None) -> None:
    """Handle SIGINT (Ctrl+C) gracefully."""
    log.info("Closed by user (Ctrl+C)")
    sys.exit(0)


def run() -> None:
    """Console script entry point."""
    load_dotenv()
    signal(SIGINT, sigint_handler)
    main()


if __name__ == "__main__":
    run()
