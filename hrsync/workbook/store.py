from __future__ import annotations

import os
import tempfile
import zipfile
from pathlib import Path
from typing import Any, Protocol, Sequence

from openpyxl import Workbook, load_workbook
from openpyxl.utils.exceptions import InvalidFileException

"""Tabular storage over an .xlsx workbook.

The sync core only needs rectangular reads and writes by sheet name and 1-based
row/column coordinates, plus append-row and whole-sheet replacement. No
transactional guarantees: every write is saved immediately (autosave) so that
per-row results are visible even if the run crashes afterwards.
"""

__all__ = [
    "TabularStore",
    "ExcelWorkbookStore",
    "WorkbookError",
    "SheetNotFoundError",
]


class WorkbookError(Exception):
    """The workbook could not be opened or saved."""


class SheetNotFoundError(WorkbookError):
    pass


class TabularStore(Protocol):
    def has_sheet(self, sheet: str) -> bool: ...

    def read_rows(self, sheet: str) -> list[list[Any]]: ...

    def read_range(self, sheet: str, row: int, col: int, nrows: int, ncols: int) -> list[list[Any]]: ...

    def write_range(self, sheet: str, row: int, col: int, values: Sequence[Sequence[Any]]) -> None: ...

    def append_row(self, sheet: str, values: Sequence[Any]) -> None: ...

    def replace_sheet(self, sheet: str, rows: Sequence[Sequence[Any]]) -> None: ...


class ExcelWorkbookStore:
    """TabularStore backed by openpyxl.

    The workbook is loaded on first access. A missing file is created empty on
    the first write so that `refresh` can bootstrap a new workbook.
    """

    def __init__(self, path: Path, *, autosave: bool = True) -> None:
        self.path = Path(path)
        self.autosave = autosave
        self._wb: Workbook | None = None

    @property
    def workbook(self) -> Workbook:
        if self._wb is None:
            if self.path.exists():
                try:
                    self._wb = load_workbook(self.path)
                except (OSError, InvalidFileException, KeyError, zipfile.BadZipFile) as e:
                    raise WorkbookError(f"cannot open workbook {self.path}: {e}") from e
            else:
                wb = Workbook()
                wb.remove(wb.active)
                self._wb = wb
        return self._wb

    def _sheet(self, sheet: str):
        if sheet not in self.workbook.sheetnames:
            raise SheetNotFoundError(f"sheet '{sheet}' not found in {self.path.name}")
        return self.workbook[sheet]

    def has_sheet(self, sheet: str) -> bool:
        return sheet in self.workbook.sheetnames

    def read_rows(self, sheet: str) -> list[list[Any]]:
        ws = self._sheet(sheet)
        rows = [list(r) for r in ws.iter_rows(values_only=True)]
        # openpyxl reports formatted-but-empty trailing rows; drop them
        while rows and all(v is None or (isinstance(v, str) and not v.strip()) for v in rows[-1]):
            rows.pop()
        return rows

    def read_range(self, sheet: str, row: int, col: int, nrows: int, ncols: int) -> list[list[Any]]:
        """Rectangle of values, padded with None beyond the used area.

        iter_rows() materializes every cell it visits, so the read is clamped to
        the used area to keep reads from growing the sheet.
        """
        ws = self._sheet(sheet)
        last_row = min(row + nrows - 1, ws.max_row)
        last_col = min(col + ncols - 1, ws.max_column)
        values: list[list[Any]] = []
        if last_row >= row and last_col >= col:
            for r in ws.iter_rows(
                min_row=row, max_row=last_row, min_col=col, max_col=last_col, values_only=True
            ):
                values.append(list(r) + [None] * (ncols - len(r)))
        while len(values) < nrows:
            values.append([None] * ncols)
        return values

    def write_range(self, sheet: str, row: int, col: int, values: Sequence[Sequence[Any]]) -> None:
        ws = self._sheet(sheet)
        for r_offset, row_values in enumerate(values):
            for c_offset, value in enumerate(row_values):
                ws.cell(row=row + r_offset, column=col + c_offset, value=value)
        self._autosave()

    def append_row(self, sheet: str, values: Sequence[Any]) -> None:
        ws = self._sheet(sheet)
        last = len(self.read_rows(sheet))
        for c_offset, value in enumerate(values):
            ws.cell(row=last + 1, column=1 + c_offset, value=value)
        self._autosave()

    def replace_sheet(self, sheet: str, rows: Sequence[Sequence[Any]]) -> None:
        wb = self.workbook
        if sheet in wb.sheetnames:
            index = wb.sheetnames.index(sheet)
            wb.remove(wb[sheet])
            ws = wb.create_sheet(sheet, index)
        else:
            ws = wb.create_sheet(sheet)
        for row_values in rows:
            ws.append(list(row_values))
        self._autosave()

    def save(self) -> None:
        """Write the workbook atomically (temp file + replace)."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=self.path.parent, suffix=".xlsx.tmp")
        os.close(fd)
        try:
            self.workbook.save(tmp_name)
            os.replace(tmp_name, self.path)
        except OSError as e:
            Path(tmp_name).unlink(missing_ok=True)
            raise WorkbookError(f"cannot save workbook {self.path}: {e}") from e

    def _autosave(self) -> None:
        if self.autosave:
            self.save()
