from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

"""Reference-data models: field metadata, pick-list entries, employee roster.

These are read-only snapshots pulled from HiBob into the workbook. Within a sync
cycle they are never mutated; a refresh replaces the whole sheet.
"""

__all__ = [
    "FieldType",
    "FieldDescriptor",
    "ListEntry",
    "EmployeeStatus",
    "EmployeeRecord",
]


class FieldType(Enum):
    """HiBob field types relevant to value coercion.

    Anything the platform reports that is not listed here is treated as TEXT.
    """
    TEXT = "text"
    LIST = "list"
    MULTI_LIST = "multi_list"
    NUMBER = "number"
    DATE = "date"
    BOOLEAN = "boolean"
    OBJECT = "object"
    EMPLOYEE_REFERENCE = "employee_reference"
    CURRENCY = "currency"

    @classmethod
    def parse(cls, raw: object) -> FieldType:
        text = str(raw or "").strip().lower().replace("-", "_")
        aliases = {
            "multi-list": "multi_list",
            "multilist": "multi_list",
            "hierarchy_list": "list",
            "employee": "employee_reference",
            "employee-reference": "employee_reference",
            "bool": "boolean",
            "checkbox": "boolean",
            "decimal": "number",
            "integer": "number",
        }
        text = aliases.get(text, text)
        for member in cls:
            if member.value == text:
                return member
        return cls.TEXT

    @property
    def is_list(self) -> bool:
        return self in (FieldType.LIST, FieldType.MULTI_LIST)


@dataclass(frozen=True)
class FieldDescriptor:
    id: str
    name: str
    path: str  # dotted, e.g. root.work.department
    category: str
    type: FieldType
    calculated: bool = False
    list_name: str = ""


@dataclass(frozen=True)
class ListEntry:
    """One value of a named pick-list. (list_name, value_id) is unique; labels are not."""
    list_name: str
    value_id: str
    value_label: str


class EmployeeStatus(Enum):
    ACTIVE = "Active"
    INACTIVE = "Inactive"


@dataclass(frozen=True)
class EmployeeRecord:
    internal_id: str  # HiBob id, required for every mutating call
    external_id: str  # caller-side correlation key (e.g. employee number)
    display_name: str
    site: str = ""
    location: str = ""
    status: EmployeeStatus = EmployeeStatus.ACTIVE
    employment_type: str = ""
    hire_date: str = ""
