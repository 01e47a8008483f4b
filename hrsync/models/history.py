from __future__ import annotations

from dataclasses import dataclass
from typing import Any, ClassVar, Union

from .values import InvalidValueError, normalize_cell, to_iso_date, to_number

"""History-table entries (salary, work, variable pay, equity).

Each table type is its own dataclass with an explicit column layout and a pure
build_payload(). Column headers are the sheet headers the user fills in; the
uploader looks them up by name, never by position.
"""

__all__ = [
    "HistoryEntry",
    "SalaryEntry",
    "WorkEntry",
    "VariablePayEntry",
    "EquityEntry",
    "HISTORY_TABLES",
    "EMPLOYEE_ID_COLUMN",
    "RESULT_COLUMNS",
]

EMPLOYEE_ID_COLUMN = "Employee ID"
RESULT_COLUMNS = ("Status", "HTTP Code", "Error")


def _required(values: dict[str, Any], column: str) -> str:
    text = normalize_cell(values.get(column))
    if not text:
        raise InvalidValueError(f"'{column}' is required")
    return text


def _optional(values: dict[str, Any], column: str) -> str:
    return normalize_cell(values.get(column))


@dataclass(frozen=True)
class SalaryEntry:
    TABLE: ClassVar[str] = "salaries"
    COLUMNS: ClassVar[tuple[str, ...]] = (
        "Effective Date", "Base Salary", "Currency", "Pay Period", "Reason",
    )
    LIST_COLUMNS: ClassVar[dict[str, str]] = {"Pay Period": "payPeriod"}

    effective_date: str
    base_salary: int | float
    currency: str
    pay_period: str
    reason: str = ""

    @classmethod
    def from_values(cls, values: dict[str, Any]) -> SalaryEntry:
        return cls(
            effective_date=to_iso_date(_required(values, "Effective Date")),
            base_salary=to_number(_required(values, "Base Salary")),
            currency=_required(values, "Currency").upper(),
            pay_period=_required(values, "Pay Period"),
            reason=_optional(values, "Reason"),
        )

    def build_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "effectiveDate": self.effective_date,
            "base": {"value": self.base_salary, "currency": self.currency},
            "payPeriod": self.pay_period,
        }
        if self.reason:
            payload["reason"] = self.reason
        return payload


@dataclass(frozen=True)
class WorkEntry:
    TABLE: ClassVar[str] = "work"
    COLUMNS: ClassVar[tuple[str, ...]] = (
        "Effective Date", "Title", "Department", "Site", "Reports To",
    )
    LIST_COLUMNS: ClassVar[dict[str, str]] = {
        "Title": "title",
        "Department": "department",
        "Site": "site",
    }

    effective_date: str
    title: str = ""
    department: str = ""
    site: str = ""
    reports_to: str = ""  # external id of the manager, resolved by the uploader

    @classmethod
    def from_values(cls, values: dict[str, Any]) -> WorkEntry:
        entry = cls(
            effective_date=to_iso_date(_required(values, "Effective Date")),
            title=_optional(values, "Title"),
            department=_optional(values, "Department"),
            site=_optional(values, "Site"),
            reports_to=_optional(values, "Reports To"),
        )
        if not (entry.title or entry.department or entry.site or entry.reports_to):
            raise InvalidValueError("work entry needs at least one of Title, Department, Site, Reports To")
        return entry

    def build_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"effectiveDate": self.effective_date}
        if self.title:
            payload["title"] = self.title
        if self.department:
            payload["department"] = self.department
        if self.site:
            payload["site"] = self.site
        if self.reports_to:
            payload["reportsTo"] = {"id": self.reports_to}
        return payload


@dataclass(frozen=True)
class VariablePayEntry:
    TABLE: ClassVar[str] = "variable"
    COLUMNS: ClassVar[tuple[str, ...]] = (
        "Effective Date", "Variable Type", "Amount", "Currency", "Payment Period",
    )
    LIST_COLUMNS: ClassVar[dict[str, str]] = {"Payment Period": "paymentPeriod"}

    effective_date: str
    variable_type: str
    amount: int | float
    currency: str
    payment_period: str

    @classmethod
    def from_values(cls, values: dict[str, Any]) -> VariablePayEntry:
        return cls(
            effective_date=to_iso_date(_required(values, "Effective Date")),
            variable_type=_required(values, "Variable Type"),
            amount=to_number(_required(values, "Amount")),
            currency=_required(values, "Currency").upper(),
            payment_period=_required(values, "Payment Period"),
        )

    def build_payload(self) -> dict[str, Any]:
        return {
            "effectiveDate": self.effective_date,
            "variableType": self.variable_type,
            "amount": {"value": self.amount, "currency": self.currency},
            "paymentPeriod": self.payment_period,
        }


@dataclass(frozen=True)
class EquityEntry:
    TABLE: ClassVar[str] = "equities"
    COLUMNS: ClassVar[tuple[str, ...]] = (
        "Effective Date", "Quantity", "Equity Type", "Grant Date", "Vesting Commencement Date",
    )
    LIST_COLUMNS: ClassVar[dict[str, str]] = {"Equity Type": "equityType"}

    effective_date: str
    quantity: int | float
    equity_type: str
    grant_date: str = ""
    vesting_commencement_date: str = ""

    @classmethod
    def from_values(cls, values: dict[str, Any]) -> EquityEntry:
        grant = _optional(values, "Grant Date")
        vesting = _optional(values, "Vesting Commencement Date")
        return cls(
            effective_date=to_iso_date(_required(values, "Effective Date")),
            quantity=to_number(_required(values, "Quantity")),
            equity_type=_required(values, "Equity Type"),
            grant_date=to_iso_date(grant) if grant else "",
            vesting_commencement_date=to_iso_date(vesting) if vesting else "",
        )

    def build_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "effectiveDate": self.effective_date,
            "quantity": self.quantity,
            "equityType": self.equity_type,
        }
        if self.grant_date:
            payload["grantDate"] = self.grant_date
        if self.vesting_commencement_date:
            payload["vestingCommencementDate"] = self.vesting_commencement_date
        return payload


HistoryEntry = Union[SalaryEntry, WorkEntry, VariablePayEntry, EquityEntry]

HISTORY_TABLES: dict[str, type[SalaryEntry] | type[WorkEntry] | type[VariablePayEntry] | type[EquityEntry]] = {
    cls.TABLE: cls for cls in (SalaryEntry, WorkEntry, VariablePayEntry, EquityEntry)
}
