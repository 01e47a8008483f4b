from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import pandas as pd

from .store import SheetNotFoundError, TabularStore

"""Sheet -> header/rows normalization.

Row 1 of every reference and staging sheet is the header row, data starts at
row 2. Cells are read through the TabularStore and normalized with pandas
(NaN -> None, surrounding whitespace stripped from strings).
"""

__all__ = [
    "SheetHeaderError",
    "MissingColumnsError",
    "SheetData",
    "read_sheet",
    "normalize_sheet",
]


class SheetHeaderError(Exception):
    """Raised when the header row is missing."""


class MissingColumnsError(Exception):
    """Raised when expected columns are missing in the sheet header."""


@dataclass
class SheetData:
    sheet_name: str
    columns: list[str]
    rows: list[dict[str, Any]]  # column name -> normalized value

    def has_columns(self, *names: str) -> bool:
        return all(name in self.columns for name in names)

    @staticmethod
    def empty(sheet_name: str) -> SheetData:
        return SheetData(sheet_name=sheet_name, columns=[], rows=[])


def read_sheet(
    store: TabularStore,
    sheet_name: str,
    *,
    expected_columns: set[str] | None = None,
    keep_blank_rows: bool = False,
    missing_ok: bool = False,
) -> SheetData:
    """Read one sheet of the workbook into SheetData.

    Parameters
    ----------
    expected_columns: raise MissingColumnsError if any of these headers is absent
    keep_blank_rows: keep fully blank rows so that row positions stay stable
        (the staging sheet relies on this)
    missing_ok: return an empty SheetData instead of raising when the sheet is absent
    """
    try:
        raw = store.read_rows(sheet_name)
    except SheetNotFoundError:
        if missing_ok:
            return SheetData.empty(sheet_name)
        raise
    if not raw and missing_ok:
        return SheetData.empty(sheet_name)
    df = pd.DataFrame(raw, dtype=object)
    return normalize_sheet(
        df, sheet_name, expected_columns=expected_columns, keep_blank_rows=keep_blank_rows
    )


def normalize_sheet(
    df: pd.DataFrame,
    sheet_name: str,
    expected_columns: set[str] | None = None,
    keep_blank_rows: bool = False,
) -> SheetData:
    """Normalize a raw DataFrame using the first row as header.

    Steps:
    1. Validate at least 1 row exists (the header)
    2. Extract header from the first row; blank header cells get positional names
    3. Remaining rows become data rows
    4. Validate expected columns subset
    """
    if df.shape[0] < 1:
        raise SheetHeaderError(f"sheet '{sheet_name}' has no header row")
    header_series = df.iloc[0]
    columns = [
        str(c).strip() if not pd.isna(c) and str(c).strip() else f"column_{i + 1}"
        for i, c in enumerate(header_series.tolist())
    ]

    if expected_columns is not None:
        missing = expected_columns - set(columns)
        if missing:
            raise MissingColumnsError(f"sheet '{sheet_name}' missing columns: {sorted(missing)}")

    rows: list[dict[str, Any]] = []
    for _, raw in df.iloc[1:].iterrows():
        if raw.isna().all() and not keep_blank_rows:
            continue
        row_dict: dict[str, Any] = {}
        for col, val in zip(columns, raw.tolist()):
            if pd.isna(val):
                row_dict[col] = None
            elif isinstance(val, str):
                row_dict[col] = val.strip()
            else:
                row_dict[col] = val
        rows.append(row_dict)

    return SheetData(sheet_name=sheet_name, columns=columns, rows=rows)
