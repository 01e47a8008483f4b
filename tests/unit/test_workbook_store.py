from __future__ import annotations

from pathlib import Path

import pytest
from openpyxl import load_workbook

from conftest import write_workbook
from hrsync.workbook.reader import MissingColumnsError, SheetHeaderError, read_sheet
from hrsync.workbook.store import ExcelWorkbookStore, SheetNotFoundError, WorkbookError


@pytest.fixture()
def store(tmp_path: Path) -> ExcelWorkbookStore:
    path = write_workbook(tmp_path / "wb.xlsx", {
        "Data": [["Employee ID", "New Value"], ["E1", " Finance "], [None, None], ["E3", 42]],
        "Empty": [],
    })
    return ExcelWorkbookStore(path)


def test_read_rows_drops_trailing_blank_rows(tmp_path: Path):
    path = write_workbook(tmp_path / "wb.xlsx", {"S": [["A"], ["x"], [None], ["  "]]})
    assert ExcelWorkbookStore(path).read_rows("S") == [["A"], ["x"]]


def test_missing_sheet(store: ExcelWorkbookStore):
    assert not store.has_sheet("Nope")
    with pytest.raises(SheetNotFoundError):
        store.read_rows("Nope")


def test_read_range_pads_beyond_used_area(store: ExcelWorkbookStore):
    values = store.read_range("Data", 4, 1, 3, 3)
    assert values == [["E3", 42, None], [None, None, None], [None, None, None]]
    # reading past the end does not grow the sheet
    assert store.workbook["Data"].max_row == 4


def test_write_range_is_saved_immediately(store: ExcelWorkbookStore):
    store.write_range("Data", 2, 3, [["COMPLETED", 200]])
    reopened = load_workbook(store.path)
    assert reopened["Data"]["C2"].value == "COMPLETED"
    assert reopened["Data"]["D2"].value == 200


def test_append_row_after_last_non_blank(store: ExcelWorkbookStore):
    store.append_row("Data", ["E4", "Sales"])
    assert store.read_rows("Data")[-1] == ["E4", "Sales"]


def test_replace_sheet_keeps_position(store: ExcelWorkbookStore):
    store.replace_sheet("Data", [["Only"], ["row"]])
    assert store.workbook.sheetnames == ["Data", "Empty"]
    assert store.read_rows("Data") == [["Only"], ["row"]]


def test_replace_sheet_bootstraps_new_workbook(tmp_path: Path):
    store = ExcelWorkbookStore(tmp_path / "new" / "wb.xlsx")
    store.replace_sheet("Bob Lists", [["List Name", "Value ID", "Value Label"]])
    assert store.path.exists()
    assert load_workbook(store.path).sheetnames == ["Bob Lists"]


def test_corrupt_file_raises_workbook_error(tmp_path: Path):
    path = tmp_path / "bad.xlsx"
    path.write_bytes(b"not a zip")
    with pytest.raises(WorkbookError):
        ExcelWorkbookStore(path).read_rows("Data")


def test_read_sheet_normalizes_cells(store: ExcelWorkbookStore):
    data = read_sheet(store, "Data")
    assert data.columns == ["Employee ID", "New Value"]
    assert data.rows == [
        {"Employee ID": "E1", "New Value": "Finance"},
        {"Employee ID": "E3", "New Value": 42},
    ]


def test_read_sheet_keeps_blank_rows_when_asked(store: ExcelWorkbookStore):
    data = read_sheet(store, "Data", keep_blank_rows=True)
    assert len(data.rows) == 3
    assert data.rows[1] == {"Employee ID": None, "New Value": None}


def test_read_sheet_errors(store: ExcelWorkbookStore):
    with pytest.raises(MissingColumnsError, match="Bob ID"):
        read_sheet(store, "Data", expected_columns={"Bob ID"})
    with pytest.raises(SheetHeaderError):
        read_sheet(store, "Empty")
    assert read_sheet(store, "Nope", missing_ok=True).rows == []
