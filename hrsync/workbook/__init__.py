from .reader import MissingColumnsError, SheetData, SheetHeaderError, read_sheet
from .store import ExcelWorkbookStore, SheetNotFoundError, TabularStore, WorkbookError

__all__ = [
    "ExcelWorkbookStore",
    "TabularStore",
    "WorkbookError",
    "SheetNotFoundError",
    "SheetData",
    "SheetHeaderError",
    "MissingColumnsError",
    "read_sheet",
]
