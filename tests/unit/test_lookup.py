from __future__ import annotations

import pytest

from hrsync.config.loader import ConfigurationError
from hrsync.models.reference import EmployeeStatus, FieldType
from hrsync.services.lookup import LookupIndex
from hrsync.workbook.reader import SheetData


def _employees(rows):
    return SheetData("Bob Employees", ["Bob ID", "Employee ID", "Status"], rows)


def _lists(rows):
    return SheetData("Bob Lists", ["List Name", "Value ID", "Value Label"], rows)


def _list_row(name, value_id, label):
    return {"List Name": name, "Value ID": value_id, "Value Label": label}


def test_external_to_internal_map():
    index = LookupIndex(
        _employees([
            {"Bob ID": "111", "Employee ID": "E1", "Status": "Active"},
            {"Bob ID": "222", "Employee ID": 1002.0, "Status": "Inactive"},
            {"Bob ID": None, "Employee ID": "E3", "Status": "Active"},
        ]),
        SheetData.empty("Bob Lists"),
    )
    assert index.build_external_to_internal_map() == {"E1": "111", "1002": "222"}


def test_duplicate_external_id_last_row_wins():
    index = LookupIndex(
        _employees([
            {"Bob ID": "111", "Employee ID": "E1"},
            {"Bob ID": "999", "Employee ID": "E1"},
        ]),
        SheetData.empty("Bob Lists"),
    )
    assert index.build_external_to_internal_map() == {"E1": "999"}


def test_missing_headers_give_empty_map_and_require_raises():
    index = LookupIndex(SheetData("Bob Employees", ["Name"], [{"Name": "x"}]), SheetData.empty("Bob Lists"))
    assert index.build_external_to_internal_map() == {}
    with pytest.raises(ConfigurationError, match="refresh employees"):
        index.require_external_to_internal_map()


def test_employee_records():
    index = LookupIndex(
        _employees([{"Bob ID": "111", "Employee ID": "E1", "Status": "inactive"}]),
        SheetData.empty("Bob Lists"),
    )
    [record] = index.employee_records()
    assert record.internal_id == "111"
    assert record.status is EmployeeStatus.INACTIVE


def test_label_to_id_has_exact_and_lowercase_keys():
    index = LookupIndex(
        SheetData.empty("Bob Employees"),
        _lists([
            _list_row("department", "d_eng", "Engineering"),
            _list_row("department", "d_fin", "Finance"),
            _list_row("site", "s_ber", "Berlin"),
        ]),
    )
    mapping = index.build_list_label_to_id("department")
    assert mapping["Engineering"] == "d_eng"
    assert mapping["engineering"] == "d_eng"
    assert "Berlin" not in mapping


def test_duplicate_labels_first_entry_wins():
    index = LookupIndex(
        SheetData.empty("Bob Employees"),
        _lists([
            _list_row("department", "d_1", "Ops"),
            _list_row("department", "d_2", "Ops"),
        ]),
    )
    assert index.build_list_label_to_id("department")["Ops"] == "d_1"
    assert index.build_list_id_to_label("department") == {"d_1": "Ops", "d_2": "Ops"}


def test_exact_label_is_not_shadowed_by_lowercased_key():
    index = LookupIndex(
        SheetData.empty("Bob Employees"),
        _lists([
            _list_row("title", "t_1", "CEO"),
            _list_row("title", "t_2", "ceo"),
        ]),
    )
    mapping = index.build_list_label_to_id("title")
    assert mapping["CEO"] == "t_1"
    assert mapping["ceo"] == "t_2"


def test_list_names_in_table_order():
    index = LookupIndex(
        SheetData.empty("Bob Employees"),
        _lists([
            _list_row("site", "s", "Berlin"),
            _list_row("department", "d", "Eng"),
            _list_row("site", "s2", "London"),
        ]),
    )
    assert index.list_names() == ["site", "department"]


def test_require_lists_raises_without_headers():
    index = LookupIndex(SheetData.empty("Bob Employees"), SheetData.empty("Bob Lists"))
    with pytest.raises(ConfigurationError, match="refresh lists"):
        index.require_lists()


def test_require_field_accepts_path_with_or_without_root():
    fields = SheetData(
        "Bob Fields",
        ["Field ID", "Name", "Path", "Category", "Type", "Calculated", "List Name"],
        [{
            "Field ID": "work.department", "Name": "Department", "Path": "root.work.department",
            "Category": "work", "Type": "list", "Calculated": False, "List Name": "department",
        }],
    )
    index = LookupIndex(SheetData.empty("Bob Employees"), SheetData.empty("Bob Lists"), fields)
    assert index.require_field("work.department").type is FieldType.LIST
    assert index.require_field("root.work.department").list_name == "department"
    with pytest.raises(ConfigurationError, match="not found"):
        index.require_field("root.work.site")


def test_none_and_na_labels_are_real_list_values():
    index = LookupIndex(
        SheetData.empty("Bob Employees"),
        _lists([
            _list_row("disability", "dis_none", "None"),
            _list_row("disability", "dis_na", "N/A"),
            _list_row("disability", "dis_null", "null"),
        ]),
    )
    mapping = index.build_list_label_to_id("disability")
    assert mapping["None"] == "dis_none"
    assert mapping["n/a"] == "dis_na"
    assert "null" not in mapping
