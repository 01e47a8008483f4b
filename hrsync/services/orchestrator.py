from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Callable

from hrsync.api.client import HiBobClient
from hrsync.config.loader import ApiConfig, BatchConfig, ConfigurationError, SheetNames
from hrsync.logging.error_log import ErrorLogBuffer, ErrorRecord
from hrsync.models.batch_state import BatchState, BatchStateError, BatchTotals
from hrsync.models.staged_row import RowStatus, StagedRow
from hrsync.store.lock import ExclusiveLock
from hrsync.store.properties import FatalInfrastructureError, PropertyStore
from hrsync.store.scheduler import Scheduler
from hrsync.workbook.reader import read_sheet
from hrsync.workbook.store import TabularStore, WorkbookError

from .list_resolvers import default_chain
from .lookup import LookupIndex
from .pacer import Pacer
from .progress import ChunkProgress
from .row_processor import FieldContext, RowProcessor
from .staging import StagingTable
from .value_mapper import ValueMapper

"""Batch Orchestrator: resumable, chunked bulk update of one field.

State machine:

    IDLE --start()--> RUNNING --run_chunk() past last row--> DONE (state cleared)
                      RUNNING --cancel()--> CANCELLED (state cleared)

The persisted BatchState is the only thing carried between invocations. Each
run_chunk() re-reads the staging table and the reference sheets, processes at
most `chunk_size` rows under the exclusive lock, and persists progress once at
the end of the chunk. A crash mid-chunk therefore re-runs that chunk from its
first row on the next invocation; rows already written are simply written
again.
"""

__all__ = [
    "ProcessingError",
    "ChunkOutcome",
    "ChunkResult",
    "BatchOrchestrator",
    "BATCH_STATE_KEY",
    "BATCH_TRIGGER",
    "load_index",
    "build_field_context",
    "elapsed_since",
]

logger = logging.getLogger(__name__)

BATCH_STATE_KEY = "hrsync.batch.state"
BATCH_TRIGGER = "batch"


class ProcessingError(Exception):
    """Invalid orchestration request (e.g. start while a batch is running)."""


class ChunkOutcome(Enum):
    LOCKED = "locked"        # another invocation holds the lock; nothing touched
    IDLE = "idle"            # no batch running
    PROGRESS = "progress"    # rows processed, more remain
    DONE = "done"            # every row processed; state cleared
    CANCELLED = "cancelled"  # run cancelled or replaced while the chunk was running


@dataclass(frozen=True)
class ChunkResult:
    outcome: ChunkOutcome
    field_path: str = ""
    rows_processed: int = 0
    next_row_index: int = 0
    total_rows: int = 0
    totals: BatchTotals = field(default_factory=BatchTotals)
    elapsed_seconds: float = 0.0
    error_log: Path | None = None


def load_index(store: TabularStore, sheets: SheetNames) -> LookupIndex:
    """Snapshot of the reference sheets (missing sheets read as empty)."""
    return LookupIndex(
        employees=read_sheet(store, sheets.employees, missing_ok=True),
        lists=read_sheet(store, sheets.lists, missing_ok=True),
        fields=read_sheet(store, sheets.fields, missing_ok=True),
    )


def build_field_context(index: LookupIndex, field_path: str, *, strict: bool = True) -> FieldContext:
    """Resolve the target field once.

    With strict=True (batch runs) calculated fields and list fields without a
    resolvable list raise ConfigurationError; validation passes strict=False and
    reports them as issues instead.
    """
    descriptor = index.require_field(field_path)
    if descriptor.calculated and strict:
        raise ConfigurationError(f"field '{descriptor.path}' is calculated and cannot be written")
    if not descriptor.type.is_list:
        return FieldContext(descriptor)
    index.require_lists()
    list_name = default_chain(index.list_names()).resolve(descriptor) or ""
    if not list_name and strict:
        raise ConfigurationError(
            f"no list found for list field '{descriptor.path}' (run `hrsync refresh lists`)"
        )
    return FieldContext(descriptor, list_name, index.build_list_id_to_label(list_name) if list_name else {})


def elapsed_since(iso_timestamp: str) -> float:
    try:
        started = datetime.fromisoformat(iso_timestamp.replace("Z", "+00:00"))
    except ValueError:
        return 0.0
    return max((datetime.now(timezone.utc) - started).total_seconds(), 0.0)


class BatchOrchestrator:
    def __init__(
        self,
        *,
        workbook: TabularStore,
        sheets: SheetNames,
        client: HiBobClient | None,
        properties: PropertyStore,
        lock: ExclusiveLock,
        scheduler: Scheduler,
        api: ApiConfig,
        batch: BatchConfig,
        error_log: ErrorLogBuffer | None = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._workbook = workbook
        self._sheets = sheets
        self._client = client
        self._properties = properties
        self._lock = lock
        self.scheduler = scheduler
        self._api = api
        self._batch = batch
        self._error_log = error_log or ErrorLogBuffer()
        self._sleep = sleep
        self._clock = clock
        self.staging = StagingTable(workbook, sheets.uploads)

    # ------------------------------------------------------------------
    # persisted state
    # ------------------------------------------------------------------
    def status(self) -> BatchState | None:
        raw = self._properties.get(BATCH_STATE_KEY)
        if raw is None:
            return None
        try:
            return BatchState.from_json(raw)
        except BatchStateError as e:
            raise FatalInfrastructureError(f"{e} (run `hrsync batch cancel` to reset)") from e

    def _save(self, state: BatchState) -> None:
        self._properties.set(BATCH_STATE_KEY, state.to_json())

    def _clear(self) -> None:
        self._properties.delete(BATCH_STATE_KEY)
        self.scheduler.deregister(BATCH_TRIGGER)

    # ------------------------------------------------------------------
    # public operations
    # ------------------------------------------------------------------
    def start(self, field_path: str, *, retry_failed_only: bool = False) -> ChunkResult:
        """IDLE -> RUNNING. Registers the recurring trigger and runs the first chunk."""
        current = self.status()
        if current is not None:
            raise ProcessingError(
                f"a batch is already running for '{current.target_field_path}' "
                f"(next row {current.next_row_index}); cancel it first"
            )
        # fail fast on configuration problems, before any state is written
        context = build_field_context(load_index(self._workbook, self._sheets), field_path)
        self.staging.ensure_layout()

        state = BatchState.begin(context.field.path, retry_failed_only=retry_failed_only)
        self._save(state)
        logger.info(
            "batch started field=%s chunk_size=%d period=%ss%s",
            state.target_field_path,
            self._batch.chunk_size,
            self._batch.period_seconds,
            " (failed rows only)" if retry_failed_only else "",
        )
        return self.scheduler.register(BATCH_TRIGGER, self._batch.period_seconds, self.run_chunk)

    def retry_failed(self, field_path: str | None = None) -> ChunkResult:
        """Start a pass over FAILED rows only; the field defaults to the one they record."""
        if not field_path:
            failed = [r for r in self.staging.read_rows() if r.status is RowStatus.FAILED]
            paths = [r.resolved_path for r in failed if r.resolved_path]
            if not failed:
                raise ProcessingError("no FAILED rows to retry")
            if not paths:
                raise ProcessingError("FAILED rows carry no Field Path; pass --field")
            field_path = paths[0]
        return self.start(field_path, retry_failed_only=True)

    def cancel(self) -> bool:
        """RUNNING -> CANCELLED. Returns False when no batch was running."""
        had_state = self._properties.get(BATCH_STATE_KEY) is not None
        self._clear()
        if had_state:
            logger.info("batch cancelled")
        return had_state

    def run_chunk(self) -> ChunkResult:
        """Process the next chunk, or do nothing when another invocation holds the lock."""
        if not self._lock.try_acquire(self._batch.lock_timeout_seconds):
            logger.info("another chunk is running; skipping this invocation")
            return ChunkResult(ChunkOutcome.LOCKED)
        try:
            return self._run_locked()
        finally:
            self._lock.release()

    # ------------------------------------------------------------------
    # chunk processing (lock held)
    # ------------------------------------------------------------------
    def _run_locked(self) -> ChunkResult:
        state = self.status()
        if state is None:
            if self.scheduler.is_registered(BATCH_TRIGGER):
                self.scheduler.deregister(BATCH_TRIGGER)
            return ChunkResult(ChunkOutcome.IDLE)

        try:
            rows = self.staging.read_rows()
        except WorkbookError as e:
            raise FatalInfrastructureError(f"cannot read staging sheet: {e}") from e
        total = len(rows)
        if state.next_row_index > total:
            return self._finish(state, total)
        if self._client is None:
            raise ConfigurationError("HiBob credentials are required to process rows")

        index = load_index(self._workbook, self._sheets)
        context = build_field_context(index, state.target_field_path)
        mapper = ValueMapper(
            index,
            client=self._client,
            store=self._workbook,
            lists_sheet=self._sheets.lists,
            create_missing=self._api.create_missing_list_values,
        )
        processor = RowProcessor(
            self._client, mapper, index.require_external_to_internal_map(), self._api, sleep=self._sleep
        )
        pacer = Pacer(self._api.requests_per_minute, sleep=self._sleep)

        first = state.next_row_index
        last = min(first + self._batch.chunk_size - 1, total)
        deadline = self._clock() + self._batch.max_chunk_seconds
        totals = state.totals
        next_index = first
        processed = 0

        try:
            with ChunkProgress(last - first + 1) as progress:
                for row in rows[first - 1:last]:
                    if self._clock() >= deadline:
                        logger.warning(
                            "chunk time limit reached after %d rows; resuming at row %d next time",
                            processed, row.index,
                        )
                        break
                    next_index = row.index + 1
                    if state.retry_failed_only and row.status not in (RowStatus.FAILED, RowStatus.PROCESSING):
                        continue
                    progress.start_row(row.index, row.external_id)
                    result = self._process(processor, row, state.target_field_path, context)
                    totals = totals.record(result.status)
                    processed += 1
                    progress.finish_row(status=result.status.value)
                    pacer.delay()
        except WorkbookError as e:
            raise FatalInfrastructureError(f"cannot write staging sheet: {e}") from e

        error_log = self._error_log.flush()

        # cancel(), possibly followed by start(), may have run while this chunk held the lock
        current = self.status()
        if current is None or current.run_id != state.run_id:
            logger.info("batch was cancelled during this chunk; progress not recorded")
            return ChunkResult(
                ChunkOutcome.CANCELLED,
                field_path=state.target_field_path,
                rows_processed=processed,
                total_rows=total,
                totals=totals,
                error_log=error_log,
            )

        new_state = state.advance(next_index, totals)
        self._save(new_state)
        logger.info(
            "chunk done rows=%d-%d processed=%d next=%d/%d completed=%d skipped=%d failed=%d",
            first, next_index - 1, processed, next_index, total,
            totals.completed, totals.skipped, totals.failed,
        )
        if error_log is not None:
            logger.warning("failed rows written to %s", error_log)
        return ChunkResult(
            ChunkOutcome.PROGRESS,
            field_path=state.target_field_path,
            rows_processed=processed,
            next_row_index=next_index,
            total_rows=total,
            totals=totals,
            elapsed_seconds=elapsed_since(state.started_at),
            error_log=error_log,
        )

    def _process(
        self, processor: RowProcessor, row: StagedRow, field_path: str, context: FieldContext
    ) -> StagedRow:
        self.staging.mark_processing(row)
        try:
            result = processor.process_row(row, field_path, context)
        except (ConfigurationError, FatalInfrastructureError):
            raise
        except Exception as e:  # row must not stay PROCESSING
            logger.exception("unexpected error on row %d", row.index)
            result = row.failed(f"unexpected error: {e}", "UnexpectedError")
        self.staging.write_result(result)

        if result.status is RowStatus.FAILED:
            logger.warning("row %d (%s) failed: %s", row.index, row.external_id, result.error_text)
            self._error_log.append(ErrorRecord.create(
                sheet=self._sheets.uploads,
                row=row.index,
                external_id=row.external_id,
                error_type=result.error_type or "UnknownError",
                message=result.error_text,
                http_code=result.http_code,
            ))
        else:
            logger.debug("row %d (%s) %s", row.index, row.external_id, result.status.value)
        return result

    def _finish(self, state: BatchState, total: int) -> ChunkResult:
        self._clear()
        logger.info("batch finished field=%s rows=%d", state.target_field_path, total)
        return ChunkResult(
            ChunkOutcome.DONE,
            field_path=state.target_field_path,
            next_row_index=state.next_row_index,
            total_rows=total,
            totals=state.totals,
            elapsed_seconds=elapsed_since(state.started_at),
        )
