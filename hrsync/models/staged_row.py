from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum

"""StagedRow model: one pending field update held in the Bulk Upload sheet.

Lifecycle: PENDING (user entered data) -> PROCESSING (claimed by a chunk)
-> COMPLETED | SKIP | FAILED. Rows are mutated in place in the sheet and are
only cleared by an explicit cleanup action.
"""

__all__ = [
    "RowStatus",
    "StagedRow",
    "MAX_ERROR_LENGTH",
    "truncate",
]

MAX_ERROR_LENGTH = 200


class RowStatus(Enum):
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    SKIP = "SKIP"
    FAILED = "FAILED"

    @classmethod
    def parse(cls, raw: object) -> RowStatus:
        text = str(raw or "").strip().upper()
        for member in cls:
            if member.value == text:
                return member
        return cls.PENDING

    @property
    def is_terminal(self) -> bool:
        return self in (RowStatus.COMPLETED, RowStatus.SKIP, RowStatus.FAILED)


def truncate(text: str, limit: int = MAX_ERROR_LENGTH) -> str:
    text = " ".join(str(text).split())
    if len(text) <= limit:
        return text
    return text[: limit - 3] + "..."


@dataclass(frozen=True)
class StagedRow:
    index: int  # 1-based ordinal within the staging table
    external_id: str
    raw_value: object
    resolved_internal_id: str = ""
    resolved_path: str = ""
    status: RowStatus = RowStatus.PENDING
    http_code: int | None = None
    error_text: str = ""
    verified_value: str = ""
    error_type: str = ""  # taxonomy class name, error log only
    processed_at: str = ""

    def with_result(
        self,
        status: RowStatus,
        *,
        http_code: int | None = None,
        error_text: str = "",
        error_type: str = "",
        verified_value: str = "",
    ) -> StagedRow:
        return replace(
            self,
            status=status,
            http_code=http_code,
            error_text=truncate(error_text) if error_text else "",
            error_type=error_type,
            verified_value=verified_value,
        )

    def failed(self, message: str, error_type: str, http_code: int | None = None) -> StagedRow:
        return self.with_result(
            RowStatus.FAILED, http_code=http_code, error_text=message, error_type=error_type
        )
