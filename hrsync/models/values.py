from __future__ import annotations

from datetime import date, datetime
from typing import Any

import pandas as pd

"""Cell value normalization and coercion shared by the staging and history sheets."""

__all__ = [
    "NULL_SENTINELS",
    "InvalidValueError",
    "normalize_cell",
    "to_iso_date",
    "to_number",
    "to_bool",
]

# Compared after strip().upper()
NULL_SENTINELS = frozenset({"", "NULL"})


class InvalidValueError(ValueError):
    """A staged cell value cannot be converted to the field's type."""


def normalize_cell(value: Any) -> str:
    """Blank, NaN and null-literal cells become ''; everything else a stripped str."""
    if value is None:
        return ""
    if isinstance(value, float) and pd.isna(value):
        return ""
    if isinstance(value, (datetime, date)):
        return to_iso_date(value)
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    text = str(value).strip()
    if text.upper() in NULL_SENTINELS:
        return ""
    return text


def to_iso_date(value: Any) -> str:
    """Return YYYY-MM-DD for datetimes, Excel dates and common textual forms."""
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    text = str(value).strip()
    if not text:
        raise InvalidValueError("empty date")
    for fmt in ("%Y-%m-%d", "%d/%m/%Y", "%Y/%m/%d", "%d.%m.%Y"):
        try:
            return datetime.strptime(text, fmt).date().isoformat()
        except ValueError:
            continue
    try:
        return pd.Timestamp(text).date().isoformat()
    except (ValueError, TypeError) as e:
        raise InvalidValueError(f"invalid date '{text}'") from e


def to_number(value: Any) -> int | float:
    if isinstance(value, bool):
        raise InvalidValueError(f"invalid number '{value}'")
    if isinstance(value, (int, float)):
        number = value
    else:
        text = str(value).strip().replace(",", "")
        try:
            number = float(text)
        except ValueError as e:
            raise InvalidValueError(f"invalid number '{value}'") from e
    if isinstance(number, float) and number.is_integer():
        return int(number)
    return number


def to_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in {"true", "yes", "y", "1"}:
        return True
    if text in {"false", "no", "n", "0"}:
        return False
    raise InvalidValueError(f"invalid boolean '{value}'")
