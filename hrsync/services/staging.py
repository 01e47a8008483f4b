from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from hrsync.config.loader import ConfigurationError
from hrsync.models.reference import FieldType
from hrsync.models.staged_row import RowStatus, StagedRow
from hrsync.models.values import InvalidValueError, normalize_cell, to_bool, to_iso_date, to_number
from hrsync.workbook.layout import HEADER_ROW, UPLOAD_INPUT_COLUMNS, UPLOAD_RESULT_COLUMNS
from hrsync.workbook.reader import MissingColumnsError, SheetHeaderError, read_sheet
from hrsync.workbook.store import SheetNotFoundError, TabularStore

from .row_processor import FieldContext
from .value_mapper import ValueMapper, ValueNotFoundError

"""Staging table (Bulk Upload sheet): read staged rows, write per-row results.

Staged row N lives on sheet row HEADER_ROW + N. Blank rows are kept so that
indices stay stable across invocations; the last non-blank row bounds the table.
"""

__all__ = [
    "ValidationIssue",
    "StagingTable",
]

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ValidationIssue:
    row: int  # staged row index, -1 for sheet-level issues
    external_id: str
    message: str


class StagingTable:
    def __init__(self, store: TabularStore, sheet: str) -> None:
        self.store = store
        self.sheet = sheet
        self._positions: dict[str, int] | None = None

    # ------------------------------------------------------------------
    # layout
    # ------------------------------------------------------------------
    def _header(self) -> list[str]:
        try:
            rows = self.store.read_range(self.sheet, HEADER_ROW, 1, 1, 64)
        except SheetNotFoundError as e:
            raise ConfigurationError(f"staging sheet '{self.sheet}' not found") from e
        header = rows[0] if rows else []
        return [normalize_cell(h) for h in header]

    def ensure_layout(self) -> dict[str, int]:
        """Column positions (1-based) by header; missing result columns are appended."""
        if self._positions is not None:
            return self._positions
        header = self._header()
        positions = {name: i + 1 for i, name in enumerate(header) if name}
        missing_inputs = [c for c in UPLOAD_INPUT_COLUMNS if c not in positions]
        if missing_inputs:
            raise ConfigurationError(
                f"staging sheet '{self.sheet}' missing columns: {missing_inputs}"
            )
        last = max(positions.values())
        to_add = [c for c in UPLOAD_RESULT_COLUMNS if c not in positions]
        if to_add:
            self.store.write_range(self.sheet, HEADER_ROW, last + 1, [to_add])
            for offset, name in enumerate(to_add):
                positions[name] = last + 1 + offset
        self._positions = positions
        return positions

    # ------------------------------------------------------------------
    # reading
    # ------------------------------------------------------------------
    def read_rows(self) -> list[StagedRow]:
        try:
            data = read_sheet(
                self.store, self.sheet, expected_columns=set(UPLOAD_INPUT_COLUMNS), keep_blank_rows=True
            )
        except SheetNotFoundError as e:
            raise ConfigurationError(f"staging sheet '{self.sheet}' not found") from e
        except (SheetHeaderError, MissingColumnsError) as e:
            raise ConfigurationError(str(e)) from e

        rows: list[StagedRow] = []
        for i, values in enumerate(data.rows, start=1):
            http_code = normalize_cell(values.get("HTTP Code"))
            rows.append(StagedRow(
                index=i,
                external_id=normalize_cell(values.get("Employee ID")),
                raw_value=values.get("New Value"),
                resolved_internal_id=normalize_cell(values.get("Bob ID")),
                resolved_path=normalize_cell(values.get("Field Path")),
                status=RowStatus.parse(values.get("Status")),
                http_code=int(http_code) if http_code.isdigit() else None,
                error_text=normalize_cell(values.get("Error")),
                verified_value=normalize_cell(values.get("Verified Value")),
                processed_at=normalize_cell(values.get("Processed At")),
            ))
        # trailing blank rows do not count toward the table size
        while rows and not rows[-1].external_id and not normalize_cell(rows[-1].raw_value):
            rows.pop()
        return rows

    def total_rows(self) -> int:
        return len(self.read_rows())

    # ------------------------------------------------------------------
    # writing
    # ------------------------------------------------------------------
    @staticmethod
    def _result_values(row: StagedRow) -> dict[str, Any]:
        return {
            "Bob ID": row.resolved_internal_id,
            "Field Path": row.resolved_path,
            "Status": row.status.value,
            "HTTP Code": row.http_code if row.http_code is not None else "",
            "Error": row.error_text,
            "Verified Value": row.verified_value,
            "Processed At": row.processed_at,
        }

    def _write_cells(self, index: int, values: dict[str, Any]) -> None:
        positions = self.ensure_layout()
        sheet_row = HEADER_ROW + index
        cols = sorted((positions[name], value) for name, value in values.items())
        contiguous = all(cols[i + 1][0] == cols[i][0] + 1 for i in range(len(cols) - 1))
        if contiguous:
            self.store.write_range(self.sheet, sheet_row, cols[0][0], [[v for _, v in cols]])
            return
        for col, value in cols:
            self.store.write_range(self.sheet, sheet_row, col, [[value]])

    def mark_processing(self, row: StagedRow) -> None:
        self._write_cells(row.index, {"Status": RowStatus.PROCESSING.value})

    def write_result(self, row: StagedRow) -> None:
        self._write_cells(row.index, self._result_values(row))

    # ------------------------------------------------------------------
    # cleanup
    # ------------------------------------------------------------------
    def clear_results(self) -> int:
        """Blank the result columns of every staged row. Returns rows touched."""
        rows = self.read_rows()
        blank = {name: None for name in UPLOAD_RESULT_COLUMNS}
        for row in rows:
            self._write_cells(row.index, blank)
        return len(rows)

    def clear_all(self) -> int:
        """Blank every staged row, inputs included. The header row is kept."""
        rows = self.read_rows()
        positions = self.ensure_layout()
        width = max(positions.values())
        if rows:
            self.store.write_range(
                self.sheet, HEADER_ROW + 1, 1, [[None] * width for _ in rows]
            )
        return len(rows)

    # ------------------------------------------------------------------
    # validation
    # ------------------------------------------------------------------
    def validate(
        self,
        context: FieldContext,
        id_map: dict[str, str],
        mapper: ValueMapper,
    ) -> list[ValidationIssue]:
        """Check staged rows without calling HiBob. Mapper creation is never triggered."""
        issues: list[ValidationIssue] = []
        if context.field.calculated:
            issues.append(ValidationIssue(-1, "", f"field '{context.field.path}' is calculated and read-only"))
        if context.is_list and not context.list_name:
            issues.append(ValidationIssue(-1, "", f"no list found for field '{context.field.path}'"))

        seen: dict[str, int] = {}
        create_missing, mapper.create_missing = mapper.create_missing, False
        try:
            for row in self.read_rows():
                ext = row.external_id
                raw = normalize_cell(row.raw_value)
                if not ext and not raw:
                    continue
                if not ext:
                    issues.append(ValidationIssue(row.index, ext, "Employee ID is blank"))
                    continue
                if ext in seen:
                    issues.append(ValidationIssue(row.index, ext, f"duplicate of row {seen[ext]}"))
                seen.setdefault(ext, row.index)
                if ext not in id_map:
                    issues.append(ValidationIssue(row.index, ext, "employee not in roster (live search will be tried)"))
                if not raw:
                    issues.append(ValidationIssue(row.index, ext, "New Value is blank"))
                    continue
                message = self._check_value(row.raw_value, context, mapper, create_missing)
                if message:
                    issues.append(ValidationIssue(row.index, ext, message))
        finally:
            mapper.create_missing = create_missing
        return issues

    @staticmethod
    def _check_value(raw: Any, context: FieldContext, mapper: ValueMapper, create_missing: bool) -> str:
        field_type = context.field.type
        try:
            if context.is_list and context.list_name:
                text = normalize_cell(raw)
                labels = text.split(",") if field_type is FieldType.MULTI_LIST else [text]
                for label in labels:
                    if label.strip():
                        mapper.resolve(label.strip(), context.list_name)
            elif field_type in (FieldType.NUMBER, FieldType.CURRENCY):
                to_number(raw)
            elif field_type is FieldType.DATE:
                to_iso_date(raw)
            elif field_type is FieldType.BOOLEAN:
                to_bool(raw)
        except ValueNotFoundError as e:
            if create_missing:
                return ""
            return str(e)
        except InvalidValueError as e:
            return str(e)
        return ""
