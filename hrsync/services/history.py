from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable

from hrsync.api.client import HiBobClient, HiBobError, TransientNetworkError
from hrsync.config.loader import ApiConfig, ConfigurationError, SheetNames
from hrsync.logging.error_log import ErrorLogBuffer, ErrorRecord
from hrsync.models.batch_state import BatchTotals
from hrsync.models.history import EMPLOYEE_ID_COLUMN, HISTORY_TABLES, RESULT_COLUMNS, WorkEntry
from hrsync.models.staged_row import RowStatus, truncate
from hrsync.models.values import InvalidValueError, normalize_cell
from hrsync.store.properties import FatalInfrastructureError
from hrsync.workbook.layout import HEADER_ROW
from hrsync.workbook.reader import MissingColumnsError, SheetHeaderError, read_sheet
from hrsync.workbook.store import SheetNotFoundError, TabularStore, WorkbookError

from .lookup import LookupIndex
from .pacer import Pacer, call_with_backoff
from .value_mapper import ValueMapper, ValueNotFoundError

"""History uploads: one POST per sheet row into a HiBob history table.

Rows already COMPLETED are left alone, so an interrupted upload can simply be
re-run. A row whose effective date already exists upstream for that employee
is marked SKIP without posting.
"""

__all__ = [
    "HistoryUploadResult",
    "HistoryUploader",
]

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class HistoryUploadResult:
    table: str
    sheet: str
    total_rows: int
    totals: BatchTotals = field(default_factory=BatchTotals)
    elapsed_seconds: float = 0.0
    error_log: Path | None = None


@dataclass(frozen=True)
class _Outcome:
    status: RowStatus
    http_code: int | None = None
    message: str = ""
    error_type: str = ""


class HistoryUploader:
    def __init__(
        self,
        client: HiBobClient,
        store: TabularStore,
        sheets: SheetNames,
        api: ApiConfig,
        index: LookupIndex,
        *,
        error_log: ErrorLogBuffer | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._client = client
        self._store = store
        self._sheets = sheets
        self._api = api
        self._index = index
        self._error_log = error_log or ErrorLogBuffer()
        self._sleep = sleep
        self._existing: dict[tuple[str, str], set[str]] = {}

    def _sheet_for(self, table: str) -> str:
        if table not in HISTORY_TABLES:
            raise ConfigurationError(f"unknown history table '{table}' (choose from {sorted(HISTORY_TABLES)})")
        return self._sheets.history[table]

    def _result_positions(self, sheet: str, columns: list[str]) -> dict[str, int]:
        positions = {name: i + 1 for i, name in enumerate(columns) if name}
        missing = [c for c in RESULT_COLUMNS if c not in positions]
        if missing:
            start = len(columns) + 1
            self._store.write_range(sheet, HEADER_ROW, start, [missing])
            for offset, name in enumerate(missing):
                positions[name] = start + offset
        return positions

    def _existing_dates(self, internal_id: str, table: str) -> set[str]:
        key = (internal_id, table)
        if key not in self._existing:
            entries = self._client.list_history(internal_id, table)
            self._existing[key] = {
                normalize_cell(e.get("effectiveDate"))[:10] for e in entries if isinstance(e, dict)
            }
        return self._existing[key]

    def upload(self, table: str) -> HistoryUploadResult:
        started = time.monotonic()
        sheet = self._sheet_for(table)
        entry_cls = HISTORY_TABLES[table]
        try:
            data = read_sheet(
                self._store,
                sheet,
                expected_columns={EMPLOYEE_ID_COLUMN, "Effective Date"},
                keep_blank_rows=True,
            )
        except SheetNotFoundError as e:
            raise ConfigurationError(f"history sheet '{sheet}' not found") from e
        except (SheetHeaderError, MissingColumnsError) as e:
            raise ConfigurationError(str(e)) from e

        id_map = self._index.require_external_to_internal_map()
        mapper = ValueMapper(
            self._index,
            client=self._client,
            store=self._store,
            lists_sheet=self._sheets.lists,
            create_missing=self._api.create_missing_list_values,
        )
        known_lists = set(self._index.list_names())
        pacer = Pacer(self._api.requests_per_minute, sleep=self._sleep)
        positions = self._result_positions(sheet, data.columns)

        totals = BatchTotals()
        for i, values in enumerate(data.rows, start=1):
            external_id = normalize_cell(values.get(EMPLOYEE_ID_COLUMN))
            if not external_id and not any(normalize_cell(v) for v in values.values()):
                continue
            if RowStatus.parse(values.get("Status")) is RowStatus.COMPLETED:
                continue

            outcome, posted = self._upload_row(
                table, entry_cls, values, external_id, id_map, mapper, known_lists
            )
            totals = totals.record(outcome.status)
            try:
                self._store.write_range(sheet, HEADER_ROW + i, positions["Status"], [[outcome.status.value]])
                self._store.write_range(
                    sheet, HEADER_ROW + i, positions["HTTP Code"],
                    [[outcome.http_code if outcome.http_code is not None else ""]],
                )
                self._store.write_range(sheet, HEADER_ROW + i, positions["Error"], [[outcome.message]])
            except WorkbookError as e:
                raise FatalInfrastructureError(f"cannot write results to '{sheet}': {e}") from e

            if outcome.status is RowStatus.FAILED:
                logger.warning("%s row %d (%s) failed: %s", sheet, i, external_id, outcome.message)
                self._error_log.append(ErrorRecord.create(
                    sheet=sheet,
                    row=i,
                    external_id=external_id,
                    error_type=outcome.error_type,
                    message=outcome.message,
                    http_code=outcome.http_code,
                ))
            if posted:
                pacer.delay()

        return HistoryUploadResult(
            table=table,
            sheet=sheet,
            total_rows=totals.processed,
            totals=totals,
            elapsed_seconds=time.monotonic() - started,
            error_log=self._error_log.flush(),
        )

    def _upload_row(
        self,
        table: str,
        entry_cls: Any,
        values: dict[str, Any],
        external_id: str,
        id_map: dict[str, str],
        mapper: ValueMapper,
        known_lists: set[str],
    ) -> tuple[_Outcome, bool]:
        """Returns the row outcome and whether a POST was sent."""
        if not external_id:
            return _Outcome(RowStatus.FAILED, message="Employee ID is blank", error_type="LookupNotFoundError"), False
        internal_id = id_map.get(external_id)
        if not internal_id:
            return _Outcome(
                RowStatus.FAILED,
                message=f"employee '{external_id}' not found in roster",
                error_type="LookupNotFoundError",
            ), False

        values = dict(values)
        try:
            for column, list_name in entry_cls.LIST_COLUMNS.items():
                label = normalize_cell(values.get(column))
                if label and list_name in known_lists:
                    values[column] = mapper.resolve(label, list_name)
            if entry_cls is WorkEntry:
                manager = normalize_cell(values.get("Reports To"))
                if manager:
                    if manager not in id_map:
                        return _Outcome(
                            RowStatus.FAILED,
                            message=f"manager '{manager}' not found in roster",
                            error_type="LookupNotFoundError",
                        ), False
                    values["Reports To"] = id_map[manager]
            entry = entry_cls.from_values(values)
        except ValueNotFoundError as e:
            return _Outcome(RowStatus.FAILED, message=truncate(str(e)), error_type="ValueNotFoundError"), False
        except InvalidValueError as e:
            return _Outcome(RowStatus.FAILED, message=truncate(str(e)), error_type="InvalidValueError"), False

        try:
            existing = self._existing_dates(internal_id, table)
        except HiBobError as e:
            return _Outcome(RowStatus.FAILED, message=truncate(str(e)), error_type=type(e).__name__), False
        if entry.effective_date in existing:
            return _Outcome(RowStatus.SKIP, message="duplicate effective date"), False

        try:
            response = call_with_backoff(
                lambda: self._client.add_history(internal_id, table, entry.build_payload()),
                max_retries=self._api.max_retries,
                backoff_seconds=self._api.backoff_seconds,
                sleep=self._sleep,
            )
        except TransientNetworkError as e:
            return _Outcome(RowStatus.FAILED, message=truncate(str(e)), error_type="TransientNetworkError"), True

        status = response.status_code
        if 200 <= status < 300:
            existing.add(entry.effective_date)
            return _Outcome(RowStatus.COMPLETED, http_code=status), True
        error_type = "TransientNetworkError" if status == 429 or status >= 500 else "UnexpectedResponseError"
        return _Outcome(
            RowStatus.FAILED,
            http_code=status,
            message=truncate(f"HTTP {status}: {response.text or response.reason_phrase}"),
            error_type=error_type,
        ), True
