#!/usr/bin/env python3
"""Sample workbook generator for local trials and load testing.

Writes an .xlsx with the sheets the sync expects, filled with synthetic data:
- Bob Fields: a handful of field descriptors (text, list, number, date)
- Bob Lists: department and site lists
- Bob Employees: roster of N employees
- Bulk Upload: one staged row per employee for a department change

The generated workbook never contacts HiBob; Bob IDs are made up. Use it with
`hrsync validate --field root.work.department` to exercise the offline checks.
"""
from __future__ import annotations

import argparse
import sys
from pathlib import Path

import numpy as np
import pandas as pd

from hrsync.workbook.layout import EMPLOYEE_COLUMNS, FIELD_COLUMNS, LIST_COLUMNS, UPLOAD_INPUT_COLUMNS

DEPARTMENTS = ["Engineering", "Finance", "Marketing", "Operations", "People", "Sales"]
SITES = ["Berlin", "London", "New York", "Tel Aviv"]


def generate_fields() -> pd.DataFrame:
    rows = [
        ["displayName", "Display name", "root.displayName", "root", "text", True, ""],
        ["work.department", "Department", "root.work.department", "work", "list", False, "department"],
        ["work.site", "Site", "root.work.site", "work", "list", False, "site"],
        ["work.startDate", "Start date", "root.work.startDate", "work", "date", False, ""],
        ["category_1.field_2", "Shoe size", "root.userData.custom.category_1.field_2", "custom", "number", False, ""],
    ]
    return pd.DataFrame(rows, columns=list(FIELD_COLUMNS))


def generate_lists() -> pd.DataFrame:
    rows = []
    for list_name, labels in (("department", DEPARTMENTS), ("site", SITES)):
        for i, label in enumerate(labels, start=1):
            rows.append([list_name, f"{list_name[:3]}_{i:03d}", label])
    return pd.DataFrame(rows, columns=list(LIST_COLUMNS))


def generate_employees(rows: int, seed: int = 42) -> pd.DataFrame:
    """Synthetic roster; Employee IDs are E1..EN, Bob IDs are numeric strings."""
    rng = np.random.default_rng(seed)
    hire_dates = pd.date_range("2015-01-01", "2024-12-31", periods=365)
    data = {
        "Bob ID": [str(3_000_000_000_000_000_000 + i) for i in range(1, rows + 1)],
        "Employee ID": [f"E{i}" for i in range(1, rows + 1)],
        "Display Name": [f"Employee {i}" for i in range(1, rows + 1)],
        "Site": rng.choice(SITES, rows).tolist(),
        "Location": rng.choice(SITES, rows).tolist(),
        "Status": rng.choice(["Active", "Inactive"], rows, p=[0.9, 0.1]).tolist(),
        "Employment Type": rng.choice(["Full-time", "Part-time", "Contractor"], rows).tolist(),
        "Hire Date": pd.to_datetime(rng.choice(hire_dates.values, rows)).strftime("%Y-%m-%d").tolist(),
    }
    return pd.DataFrame(data, columns=list(EMPLOYEE_COLUMNS))


def generate_uploads(employees: pd.DataFrame, seed: int = 42) -> pd.DataFrame:
    rng = np.random.default_rng(seed + 1)
    return pd.DataFrame(
        {
            "Employee ID": employees["Employee ID"].tolist(),
            "New Value": rng.choice(DEPARTMENTS, len(employees)).tolist(),
        },
        columns=list(UPLOAD_INPUT_COLUMNS),
    )


def create_workbook(output_path: Path, rows: int, seed: int = 42) -> None:
    output_path.parent.mkdir(parents=True, exist_ok=True)
    employees = generate_employees(rows, seed)
    sheets = {
        "Bob Fields": generate_fields(),
        "Bob Lists": generate_lists(),
        "Bob Employees": employees,
        "Bulk Upload": generate_uploads(employees, seed),
    }
    with pd.ExcelWriter(output_path, engine="openpyxl") as writer:
        for sheet_name, df in sheets.items():
            df.to_excel(writer, sheet_name=sheet_name, index=False)

    print(f"Created workbook: {output_path}")
    for sheet_name, df in sheets.items():
        print(f"  {sheet_name}: {len(df)} rows")


def main() -> int:
    parser = argparse.ArgumentParser(
        description="Generate a synthetic sync workbook",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s data/sample.xlsx
  %(prog)s data/load.xlsx --rows 2000 --seed 7
        """,
    )
    parser.add_argument("output", type=Path, help="Output .xlsx path")
    parser.add_argument("--rows", type=int, default=50, help="Number of employees (default: 50)")
    parser.add_argument("--seed", type=int, default=42, help="Random seed (default: 42)")
    args = parser.parse_args()

    if args.rows <= 0:
        print("Error: --rows must be positive", file=sys.stderr)
        return 1

    try:
        create_workbook(args.output, args.rows, args.seed)
    except OSError as e:
        print(f"Error writing workbook: {e}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
