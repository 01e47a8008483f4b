from __future__ import annotations

import logging
from typing import Any, Iterable

import pandas as pd

from hrsync.api.client import HiBobClient
from hrsync.config.loader import ApiConfig, SheetNames
from hrsync.models.reference import FieldType
from hrsync.models.values import normalize_cell
from hrsync.workbook.layout import EMPLOYEE_COLUMNS, FIELD_COLUMNS, LIST_COLUMNS
from hrsync.workbook.store import TabularStore

"""Reference refresh: pull metadata and the roster from HiBob into the workbook.

Each refresh replaces its sheet wholesale (header row + data rows). The sheets
are snapshots; nothing in the sync keeps them up to date between refreshes.
"""

__all__ = [
    "ReferenceRefresher",
    "EMPLOYEE_SOURCE_FIELDS",
]

logger = logging.getLogger(__name__)

# roster column -> HiBob field path (the external id column comes from config)
EMPLOYEE_SOURCE_FIELDS: dict[str, str] = {
    "Bob ID": "root.id",
    "Display Name": "root.displayName",
    "Site": "root.work.site",
    "Location": "root.address.city",
    "Status": "internal.status",
    "Employment Type": "payroll.employment.type",
    "Hire Date": "root.work.startDate",
}


def _strip_root(path: str) -> str:
    return path[len("root."):] if path.startswith("root.") else path


def _flatten_list_values(list_name: str, values: Iterable[dict[str, Any]]) -> list[list[str]]:
    """Hierarchical lists carry `children`; every level becomes its own row."""
    rows: list[list[str]] = []
    for value in values:
        value_id = normalize_cell(value.get("id"))
        label = normalize_cell(value.get("value") or value.get("name"))
        if value_id and not value.get("archived", False):
            rows.append([list_name, value_id, label])
        rows.extend(_flatten_list_values(list_name, value.get("children") or []))
    return rows


class ReferenceRefresher:
    def __init__(self, client: HiBobClient, store: TabularStore, sheets: SheetNames, api: ApiConfig) -> None:
        self._client = client
        self._store = store
        self._sheets = sheets
        self._api = api

    def refresh_fields(self) -> int:
        rows: list[list[Any]] = [list(FIELD_COLUMNS)]
        for meta in self._client.get_fields():
            field_id = normalize_cell(meta.get("id"))
            if not field_id:
                continue
            type_data = meta.get("typeData") or {}
            field_type = FieldType.parse(meta.get("type"))
            rows.append([
                field_id,
                normalize_cell(meta.get("name")),
                normalize_cell(meta.get("jsonPath")) or f"root.{field_id}",
                normalize_cell(meta.get("category")),
                field_type.value,
                bool(meta.get("calculated", False)),
                normalize_cell(type_data.get("listId")) if field_type.is_list else "",
            ])
        self._store.replace_sheet(self._sheets.fields, rows)
        logger.info("refreshed %s: %d fields", self._sheets.fields, len(rows) - 1)
        return len(rows) - 1

    def refresh_lists(self) -> int:
        rows: list[list[Any]] = [list(LIST_COLUMNS)]
        for list_name, data in sorted(self._client.get_lists().items()):
            values = data.get("values", []) if isinstance(data, dict) else []
            rows.extend(_flatten_list_values(list_name, values))
        self._store.replace_sheet(self._sheets.lists, rows)
        logger.info("refreshed %s: %d list values", self._sheets.lists, len(rows) - 1)
        return len(rows) - 1

    def refresh_employees(self) -> int:
        sources = dict(EMPLOYEE_SOURCE_FIELDS)
        sources["Employee ID"] = self._api.external_id_field
        employees = self._client.search_people(fields=sorted(set(sources.values())), show_inactive=True)

        rows: list[list[Any]] = [list(EMPLOYEE_COLUMNS)]
        if employees:
            df = pd.json_normalize(employees, sep=".")
            df.columns = [_strip_root(str(c)) for c in df.columns]
            df = df.loc[:, ~df.columns.duplicated()]
            for column in EMPLOYEE_COLUMNS:
                source = _strip_root(sources[column])
                if source not in df.columns:
                    logger.debug("field %s absent from search response", sources[column])
                    df[source] = None
            for record in df.to_dict(orient="records"):
                rows.append([normalize_cell(record.get(_strip_root(sources[c]))) for c in EMPLOYEE_COLUMNS])
        self._store.replace_sheet(self._sheets.employees, rows)
        logger.info("refreshed %s: %d employees", self._sheets.employees, len(rows) - 1)
        return len(rows) - 1

    def refresh_all(self) -> dict[str, int]:
        return {
            "fields": self.refresh_fields(),
            "lists": self.refresh_lists(),
            "employees": self.refresh_employees(),
        }
