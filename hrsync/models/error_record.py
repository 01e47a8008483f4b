from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from datetime import datetime, timezone

"""ErrorRecord model for the failed-row error log.

One record per row that ended FAILED (or per sheet-level problem, with row=-1).
The key set is fixed; to_json_line() never adds keys.
"""

__all__ = [
    "ErrorRecord",
]


@dataclass(frozen=True)
class ErrorRecord:
    """Structured error record for JSON Lines logging.

    Attributes:
        timestamp: ISO8601 UTC timestamp with 'Z' suffix
        sheet: Workbook sheet the row belongs to
        row: Staged row index (1-based). -1 for sheet-level errors
        external_id: Employee external identifier of the row ("" when unknown)
        error_type: Error class name (e.g. LookupNotFoundError, UnexpectedResponseError)
        http_code: HTTP status of the failing call, None when no call was made
        message: Human-readable reason, already truncated for storage
    """
    timestamp: str
    sheet: str
    row: int
    external_id: str
    error_type: str
    http_code: int | None
    message: str

    @staticmethod
    def create(
        sheet: str,
        row: int,
        external_id: str,
        error_type: str,
        message: str,
        http_code: int | None = None,
    ) -> ErrorRecord:
        ts = datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")
        return ErrorRecord(
            timestamp=ts,
            sheet=sheet,
            row=row,
            external_id=external_id,
            error_type=error_type,
            http_code=http_code,
            message=message,
        )

    def to_json_line(self) -> str:
        return json.dumps(asdict(self), ensure_ascii=False)
