from __future__ import annotations

import argparse
import sys
from contextlib import contextmanager
from pathlib import Path
from typing import Callable, Iterator

from dotenv import load_dotenv

from hrsync.api.client import HiBobClient, HiBobError
from hrsync.config.loader import (
    DEFAULT_CONFIG_PATH,
    ConfigurationError,
    SyncConfig,
    load_config,
    resolve_credentials,
)
from hrsync.logging.error_log import ErrorLogBuffer
from hrsync.logging.init import log_summary, set_debug, setup_logging
from hrsync.models.history import HISTORY_TABLES
from hrsync.services.history import HistoryUploader
from hrsync.services.orchestrator import (
    BATCH_TRIGGER,
    BatchOrchestrator,
    ChunkOutcome,
    ChunkResult,
    ProcessingError,
    build_field_context,
    load_index,
)
from hrsync.services.reference import ReferenceRefresher
from hrsync.services.staging import StagingTable
from hrsync.services.summary import render_summary_line
from hrsync.services.value_mapper import ValueMapper
from hrsync.store import FatalInfrastructureError, Scheduler, open_state_backend
from hrsync.workbook.store import ExcelWorkbookStore, WorkbookError

"""CLI entrypoint.

    hrsync refresh {fields,lists,employees,all}
    hrsync validate --field PATH
    hrsync batch start --field PATH [--retry-failed] [--follow]
    hrsync batch {tick,cancel,status}
    hrsync history upload --table {salaries,work,variable,equities}
    hrsync cleanup [--all]

Exit codes: 0 success, 1 fatal (configuration, credentials, state backend),
2 finished with failed rows or validation issues.
"""

EXIT_SUCCESS_ALL = 0
EXIT_FATAL = 1
EXIT_PARTIAL_FAILURE = 2

SUMMARY_PREFIX = "SUMMARY "


def _load_env_file(path: Path, override: bool = True) -> None:
    """Load .env using python-dotenv; its values win over the inherited environment."""
    if path.exists():
        load_dotenv(dotenv_path=path, override=override)


def _parse_args(argv: list[str]) -> argparse.Namespace:
    p = argparse.ArgumentParser(prog="hrsync", description="Workbook <-> HiBob employee data sync")
    p.add_argument("--config", default=str(DEFAULT_CONFIG_PATH), help="Path to the YAML config")
    p.add_argument("--debug", action="store_true", help="Enable debug logging")
    sub = p.add_subparsers(dest="command", required=True)

    refresh = sub.add_parser("refresh", help="Pull reference data from HiBob into the workbook")
    refresh.add_argument("what", choices=["fields", "lists", "employees", "all"])
    refresh.set_defaults(handler=_cmd_refresh)

    validate = sub.add_parser("validate", help="Check staged rows without calling HiBob")
    validate.add_argument("--field", required=True, help="Target field path, e.g. root.work.department")
    validate.set_defaults(handler=_cmd_validate)

    batch = sub.add_parser("batch", help="Chunked bulk update of one field")
    batch_sub = batch.add_subparsers(dest="action", required=True)
    start = batch_sub.add_parser("start", help="Start a batch and run its first chunk")
    start.add_argument("--field", help="Target field path (optional with --retry-failed)")
    start.add_argument("--retry-failed", action="store_true", help="Only re-run rows marked FAILED")
    start.add_argument("--follow", action="store_true", help="Keep running chunks in the foreground")
    start.set_defaults(handler=_cmd_batch_start)
    tick = batch_sub.add_parser("tick", help="Run the next chunk if due (for cron)")
    tick.set_defaults(handler=_cmd_batch_tick)
    cancel = batch_sub.add_parser("cancel", help="Cancel the running batch")
    cancel.set_defaults(handler=_cmd_batch_cancel)
    status = batch_sub.add_parser("status", help="Show batch progress")
    status.set_defaults(handler=_cmd_batch_status)

    history = sub.add_parser("history", help="Insert history-table entries")
    history_sub = history.add_subparsers(dest="action", required=True)
    upload = history_sub.add_parser("upload", help="Upload one history sheet")
    upload.add_argument("--table", required=True, choices=sorted(HISTORY_TABLES))
    upload.set_defaults(handler=_cmd_history_upload)

    cleanup = sub.add_parser("cleanup", help="Blank the result columns of the staging sheet")
    cleanup.add_argument("--all", action="store_true", help="Blank the staged inputs too")
    cleanup.set_defaults(handler=_cmd_cleanup)

    args = p.parse_args(argv)
    if args.command == "batch" and args.action == "start" and not (args.field or args.retry_failed):
        p.error("batch start requires --field")
    return args


# ----------------------------------------------------------------------
# wiring
# ----------------------------------------------------------------------
def _workbook(cfg: SyncConfig) -> ExcelWorkbookStore:
    return ExcelWorkbookStore(Path(cfg.workbook))


@contextmanager
def _client(cfg: SyncConfig) -> Iterator[HiBobClient]:
    with HiBobClient(cfg.api, resolve_credentials()) as client:
        yield client


@contextmanager
def _orchestrator(cfg: SyncConfig, *, with_client: bool = True) -> Iterator[BatchOrchestrator]:
    properties, lock = open_state_backend(cfg.state, stale_lock_seconds=cfg.batch.stale_lock_seconds)
    client: HiBobClient | None = None
    try:
        if with_client:
            client = HiBobClient(cfg.api, resolve_credentials())
        yield BatchOrchestrator(
            workbook=_workbook(cfg),
            sheets=cfg.sheets,
            client=client,
            properties=properties,
            lock=lock,
            scheduler=Scheduler(properties),
            api=cfg.api,
            batch=cfg.batch,
            error_log=ErrorLogBuffer(Path(cfg.logs_directory)),
        )
    finally:
        if client is not None:
            client.close()
        close = getattr(properties, "close", None)
        if close is not None:
            close()


def _report(result: ChunkResult) -> int:
    """Log one chunk result and map it to an exit code."""
    logger = setup_logging()
    if result.outcome is ChunkOutcome.IDLE:
        logger.info("no batch running")
    elif result.outcome is ChunkOutcome.PROGRESS:
        logger.info(
            "progress field=%s next=%d/%d completed=%d skipped=%d failed=%d",
            result.field_path, result.next_row_index, result.total_rows,
            result.totals.completed, result.totals.skipped, result.totals.failed,
        )
    elif result.outcome in (ChunkOutcome.DONE, ChunkOutcome.CANCELLED):
        line = render_summary_line(result.field_path, result.total_rows, result.totals, result.elapsed_seconds)
        log_summary(line[len(SUMMARY_PREFIX):])
    if result.outcome is ChunkOutcome.DONE and result.totals.failed > 0:
        return EXIT_PARTIAL_FAILURE
    return EXIT_SUCCESS_ALL


# ----------------------------------------------------------------------
# commands
# ----------------------------------------------------------------------
def _cmd_refresh(cfg: SyncConfig, args: argparse.Namespace) -> int:
    with _client(cfg) as client:
        refresher = ReferenceRefresher(client, _workbook(cfg), cfg.sheets, cfg.api)
        actions: dict[str, Callable[[], object]] = {
            "fields": refresher.refresh_fields,
            "lists": refresher.refresh_lists,
            "employees": refresher.refresh_employees,
            "all": refresher.refresh_all,
        }
        actions[args.what]()
    return EXIT_SUCCESS_ALL


def _cmd_validate(cfg: SyncConfig, args: argparse.Namespace) -> int:
    logger = setup_logging()
    store = _workbook(cfg)
    index = load_index(store, cfg.sheets)
    context = build_field_context(index, args.field, strict=False)
    staging = StagingTable(store, cfg.sheets.uploads)
    mapper = ValueMapper(index, create_missing=cfg.api.create_missing_list_values)
    issues = staging.validate(context, index.require_external_to_internal_map(), mapper)
    for issue in issues:
        where = f"row {issue.row} ({issue.external_id})" if issue.row > 0 else "sheet"
        logger.warning("%s: %s", where, issue.message)
    log_summary(f"validate field={context.field.path} rows={staging.total_rows()} issues={len(issues)}")
    return EXIT_PARTIAL_FAILURE if issues else EXIT_SUCCESS_ALL


def _cmd_batch_start(cfg: SyncConfig, args: argparse.Namespace) -> int:
    with _orchestrator(cfg) as orchestrator:
        if args.retry_failed:
            result = orchestrator.retry_failed(args.field)
        else:
            result = orchestrator.start(args.field)
        code = _report(result)
        if not args.follow:
            return code

        last: list[int] = [code]

        def _tick() -> None:
            last[0] = _report(orchestrator.run_chunk())

        orchestrator.scheduler.run_forever(BATCH_TRIGGER, _tick)
        return last[0]


def _cmd_batch_tick(cfg: SyncConfig, args: argparse.Namespace) -> int:
    logger = setup_logging()
    with _orchestrator(cfg) as orchestrator:
        codes: list[int] = []
        ran = orchestrator.scheduler.run_pending({
            BATCH_TRIGGER: lambda: codes.append(_report(orchestrator.run_chunk())),
        })
        if not ran:
            logger.debug("nothing due")
        return max(codes, default=EXIT_SUCCESS_ALL)


def _cmd_batch_cancel(cfg: SyncConfig, args: argparse.Namespace) -> int:
    logger = setup_logging()
    with _orchestrator(cfg, with_client=False) as orchestrator:
        if not orchestrator.cancel():
            logger.info("no batch running")
    return EXIT_SUCCESS_ALL


def _cmd_batch_status(cfg: SyncConfig, args: argparse.Namespace) -> int:
    logger = setup_logging()
    with _orchestrator(cfg, with_client=False) as orchestrator:
        state = orchestrator.status()
        if state is None:
            logger.info("no batch running")
            return EXIT_SUCCESS_ALL
        total = orchestrator.staging.total_rows()
        logger.info(
            "running field=%s next=%d/%d completed=%d skipped=%d failed=%d started=%s last_progress=%s%s",
            state.target_field_path, state.next_row_index, total,
            state.totals.completed, state.totals.skipped, state.totals.failed,
            state.started_at, state.last_progress_at,
            " (failed rows only)" if state.retry_failed_only else "",
        )
    return EXIT_SUCCESS_ALL


def _cmd_history_upload(cfg: SyncConfig, args: argparse.Namespace) -> int:
    store = _workbook(cfg)
    index = load_index(store, cfg.sheets)
    with _client(cfg) as client:
        uploader = HistoryUploader(
            client, store, cfg.sheets, cfg.api, index, error_log=ErrorLogBuffer(Path(cfg.logs_directory))
        )
        result = uploader.upload(args.table)
    line = render_summary_line(f"history.{result.table}", result.total_rows, result.totals, result.elapsed_seconds)
    log_summary(line[len(SUMMARY_PREFIX):])
    return EXIT_PARTIAL_FAILURE if result.totals.failed else EXIT_SUCCESS_ALL


def _cmd_cleanup(cfg: SyncConfig, args: argparse.Namespace) -> int:
    logger = setup_logging()
    with _orchestrator(cfg, with_client=False) as orchestrator:
        if orchestrator.status() is not None:
            raise ProcessingError("a batch is running; cancel it before cleaning up")
        staging = orchestrator.staging
        touched = staging.clear_all() if args.all else staging.clear_results()
    logger.info("cleared %d staged rows%s", touched, " (inputs included)" if args.all else "")
    return EXIT_SUCCESS_ALL


def main(argv: list[str] | None = None) -> int:
    logger = setup_logging()

    # [] from tests must not fall back to sys.argv
    if argv is None:
        argv = sys.argv[1:]
    args = _parse_args(argv)
    _load_env_file(Path(".env"), override=True)

    if args.debug:
        set_debug()

    try:
        cfg = load_config(Path(args.config))
    except ConfigurationError as e:
        logger.error(f"config: {e}")
        return EXIT_FATAL

    try:
        return args.handler(cfg, args)
    except ConfigurationError as e:
        logger.error(f"config: {e}")
    except FatalInfrastructureError as e:
        logger.error(f"state: {e}")
    except ProcessingError as e:
        logger.error(f"batch: {e}")
    except HiBobError as e:
        logger.error(f"api: {e} (check credentials and api.base_url)")
    except WorkbookError as e:
        logger.error(f"workbook: {e} (is the file open in another program?)")
    return EXIT_FATAL


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
