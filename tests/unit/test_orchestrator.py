from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from hrsync.config.loader import ConfigurationError
from hrsync.models.reference import FieldType
from hrsync.services.orchestrator import build_field_context, elapsed_since, load_index


def test_list_field_context(make_workbook, sheet_names):
    index = load_index(make_workbook(), sheet_names)
    context = build_field_context(index, "work.department")
    assert context.field.path == "root.work.department"
    assert context.list_name == "department"
    assert context.id_to_label == {"d_eng": "Engineering", "d_fin": "Finance", "d_sal": "Sales"}


def test_plain_field_context(make_workbook, sheet_names):
    context = build_field_context(load_index(make_workbook(), sheet_names), "root.userData.custom.category_1.field_2")
    assert context.field.type is FieldType.NUMBER
    assert context.list_name == ""
    assert not context.is_list


def test_calculated_field_only_rejected_when_strict(make_workbook, sheet_names):
    index = load_index(make_workbook(), sheet_names)
    with pytest.raises(ConfigurationError, match="calculated"):
        build_field_context(index, "root.work.tenureDuration")
    assert build_field_context(index, "root.work.tenureDuration", strict=False).field.calculated


def test_list_field_without_list(make_workbook, sheet_names):
    index = load_index(make_workbook(), sheet_names)
    index.lists.rows[:] = [r for r in index.lists.rows if r["List Name"] != "department"]
    with pytest.raises(ConfigurationError, match="no list found"):
        build_field_context(index, "root.work.department")
    assert build_field_context(index, "root.work.department", strict=False).list_name == ""


def test_missing_reference_sheets(tmp_path, sheet_names):
    from hrsync.workbook.store import ExcelWorkbookStore

    index = load_index(ExcelWorkbookStore(tmp_path / "empty.xlsx"), sheet_names)
    with pytest.raises(ConfigurationError, match="refresh fields"):
        build_field_context(index, "root.work.title")


def test_elapsed_since():
    started = (datetime.now(timezone.utc) - timedelta(seconds=90)).isoformat().replace("+00:00", "Z")
    assert 89 <= elapsed_since(started) < 120
    assert elapsed_since("garbage") == 0.0
