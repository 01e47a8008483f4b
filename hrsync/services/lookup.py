from __future__ import annotations

import logging
from typing import Any

from hrsync.config.loader import ConfigurationError
from hrsync.models.reference import EmployeeRecord, EmployeeStatus, FieldDescriptor, FieldType, ListEntry
from hrsync.models.values import normalize_cell
from hrsync.workbook.reader import SheetData

"""Lookup Index: in-memory maps built from the reference sheets.

Every map is a pure function of the current sheet contents and is rebuilt on
each call (O(n) scan, no caching). When the expected headers are absent the
build_* methods return an empty map; the require_* variants raise
ConfigurationError for callers that cannot proceed without the map.
"""

__all__ = [
    "LookupNotFoundError",
    "LookupIndex",
]

logger = logging.getLogger(__name__)


class LookupNotFoundError(LookupError):
    """An external identifier or label could not be resolved (row-scoped)."""


class LookupIndex:
    """Maps over the roster, list-of-values and field metadata snapshots."""

    def __init__(self, employees: SheetData, lists: SheetData, fields: SheetData | None = None) -> None:
        self.employees = employees
        self.lists = lists
        self.fields = fields or SheetData.empty("fields")

    # ------------------------------------------------------------------
    # roster
    # ------------------------------------------------------------------
    def build_external_to_internal_map(self) -> dict[str, str]:
        if not self.employees.has_columns("Employee ID", "Bob ID"):
            return {}
        mapping: dict[str, str] = {}
        for row in self.employees.rows:
            external = normalize_cell(row.get("Employee ID"))
            internal = normalize_cell(row.get("Bob ID"))
            if external and internal:
                mapping[external] = internal  # duplicates: last row wins
        return mapping

    def require_external_to_internal_map(self) -> dict[str, str]:
        if not self.employees.has_columns("Employee ID", "Bob ID"):
            raise ConfigurationError(
                f"sheet '{self.employees.sheet_name}' needs 'Employee ID' and 'Bob ID' columns "
                "(run `hrsync refresh employees`)"
            )
        return self.build_external_to_internal_map()

    def employee_records(self) -> list[EmployeeRecord]:
        if not self.employees.has_columns("Employee ID", "Bob ID"):
            return []
        records = []
        for row in self.employees.rows:
            internal = normalize_cell(row.get("Bob ID"))
            if not internal:
                continue
            status = normalize_cell(row.get("Status"))
            records.append(EmployeeRecord(
                internal_id=internal,
                external_id=normalize_cell(row.get("Employee ID")),
                display_name=normalize_cell(row.get("Display Name")),
                site=normalize_cell(row.get("Site")),
                location=normalize_cell(row.get("Location")),
                status=EmployeeStatus.INACTIVE if status.lower() == "inactive" else EmployeeStatus.ACTIVE,
                employment_type=normalize_cell(row.get("Employment Type")),
                hire_date=normalize_cell(row.get("Hire Date")),
            ))
        return records

    # ------------------------------------------------------------------
    # lists
    # ------------------------------------------------------------------
    def list_entries(self, list_name: str | None = None) -> list[ListEntry]:
        if not self.lists.has_columns("List Name", "Value ID", "Value Label"):
            return []
        entries = []
        for row in self.lists.rows:
            name = normalize_cell(row.get("List Name"))
            if list_name is not None and name != list_name:
                continue
            value_id = normalize_cell(row.get("Value ID"))
            if not value_id:
                continue
            entries.append(ListEntry(name, value_id, normalize_cell(row.get("Value Label"))))
        return entries

    def list_names(self) -> list[str]:
        seen: dict[str, None] = {}
        for entry in self.list_entries():
            seen.setdefault(entry.list_name, None)
        return list(seen)

    def build_list_label_to_id(self, list_name: str) -> dict[str, str]:
        """Label -> value id. Keys exist in original case and lowercased.

        Labels are not unique within a list; the first entry (table order) owns a
        key, so lookups stay deterministic. Exact labels are inserted before any
        lowercased key so a lowercase label of its own is never shadowed.
        """
        entries = [e for e in self.list_entries(list_name) if e.value_label]
        mapping: dict[str, str] = {}
        for entry in entries:
            mapping.setdefault(entry.value_label, entry.value_id)
        for entry in entries:
            mapping.setdefault(entry.value_label.lower(), entry.value_id)
        return mapping

    def build_list_id_to_label(self, list_name: str) -> dict[str, str]:
        mapping: dict[str, str] = {}
        for entry in self.list_entries(list_name):
            mapping[entry.value_id] = entry.value_label
        return mapping

    def require_lists(self) -> None:
        if not self.lists.has_columns("List Name", "Value ID", "Value Label"):
            raise ConfigurationError(
                f"sheet '{self.lists.sheet_name}' needs 'List Name', 'Value ID' and 'Value Label' columns "
                "(run `hrsync refresh lists`)"
            )

    def add_list_entry(self, entry: ListEntry) -> None:
        """Append an entry created upstream during this run to the in-memory snapshot."""
        self.lists.rows.append({
            "List Name": entry.list_name,
            "Value ID": entry.value_id,
            "Value Label": entry.value_label,
        })

    # ------------------------------------------------------------------
    # fields
    # ------------------------------------------------------------------
    def field_descriptors(self) -> list[FieldDescriptor]:
        if not self.fields.has_columns("Field ID", "Path", "Type"):
            return []
        descriptors = []
        for row in self.fields.rows:
            path = normalize_cell(row.get("Path"))
            if not path:
                continue
            descriptors.append(FieldDescriptor(
                id=normalize_cell(row.get("Field ID")),
                name=normalize_cell(row.get("Name")),
                path=path,
                category=normalize_cell(row.get("Category")),
                type=FieldType.parse(row.get("Type")),
                calculated=_truthy(row.get("Calculated")),
                list_name=normalize_cell(row.get("List Name")),
            ))
        return descriptors

    def require_field(self, path: str) -> FieldDescriptor:
        """Field descriptor by path (``root.`` prefix optional)."""
        if not self.fields.has_columns("Field ID", "Path", "Type"):
            raise ConfigurationError(
                f"sheet '{self.fields.sheet_name}' needs 'Field ID', 'Path' and 'Type' columns "
                "(run `hrsync refresh fields`)"
            )
        wanted = _canonical_path(path)
        for descriptor in self.field_descriptors():
            if _canonical_path(descriptor.path) == wanted:
                return descriptor
        raise ConfigurationError(f"field '{path}' not found in sheet '{self.fields.sheet_name}'")


def _canonical_path(path: str) -> str:
    path = path.strip()
    return path if path.startswith("root.") else f"root.{path}"


def _truthy(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return normalize_cell(value).lower() in {"true", "yes", "1", "y"}
