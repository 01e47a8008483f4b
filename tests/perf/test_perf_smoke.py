from __future__ import annotations

import time

from hrsync.models.reference import FieldDescriptor, FieldType
from hrsync.services.lookup import LookupIndex
from hrsync.services.row_processor import FieldContext
from hrsync.services.staging import StagingTable
from hrsync.services.value_mapper import ValueMapper
from hrsync.workbook.reader import SheetData

"""Offline validation over a large staging sheet must stay roughly linear."""

ROWS = 5_000
LIST_SIZE = 2_000


class _ListStore:
    """TabularStore stand-in that only serves the staging sheet."""

    def __init__(self, rows):
        self._rows = rows

    def read_rows(self, sheet):
        return self._rows


def test_validate_large_sheet_quickly():
    lists = SheetData(
        "Bob Lists",
        ["List Name", "Value ID", "Value Label"],
        [{"List Name": "site", "Value ID": f"s_{i}", "Value Label": f"Site {i}"} for i in range(LIST_SIZE)],
    )
    index = LookupIndex(SheetData.empty("Bob Employees"), lists)
    id_map = {f"E{i}": str(1000 + i) for i in range(ROWS)}
    staging_rows = [["Employee ID", "New Value"]] + [[f"E{i}", f"site {i % LIST_SIZE}"] for i in range(ROWS)]
    staging = StagingTable(_ListStore(staging_rows), "Bulk Upload")
    context = FieldContext(
        FieldDescriptor("work.site", "Site", "root.work.site", "work", FieldType.LIST, list_name="site"),
        "site",
    )

    start = time.perf_counter()
    issues = staging.validate(context, id_map, ValueMapper(index))
    elapsed = time.perf_counter() - start

    assert issues == []
    assert elapsed < 10, f"validation too slow: {elapsed:.2f}s for {ROWS} rows"
