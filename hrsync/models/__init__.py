"""Domain models for the workbook <-> HiBob sync tool."""

from .batch_state import BatchState, BatchStateError, BatchTotals
from .error_record import ErrorRecord
from .history import HISTORY_TABLES, EquityEntry, HistoryEntry, SalaryEntry, VariablePayEntry, WorkEntry
from .reference import EmployeeRecord, EmployeeStatus, FieldDescriptor, FieldType, ListEntry
from .staged_row import RowStatus, StagedRow

__all__ = [
    # Reference data
    "FieldType",
    "FieldDescriptor",
    "ListEntry",
    "EmployeeStatus",
    "EmployeeRecord",
    # Staging / batch
    "RowStatus",
    "StagedRow",
    "BatchTotals",
    "BatchState",
    "BatchStateError",
    "ErrorRecord",
    # History tables
    "HistoryEntry",
    "SalaryEntry",
    "WorkEntry",
    "VariablePayEntry",
    "EquityEntry",
    "HISTORY_TABLES",
]
