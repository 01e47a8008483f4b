from __future__ import annotations

import json
import uuid
from dataclasses import asdict, dataclass, field, replace
from datetime import datetime, timezone
from typing import Any

from .staged_row import RowStatus

"""BatchState model: the only durable, cross-invocation state of a batch run.

Created by BatchOrchestrator.start(), rewritten after every chunk, deleted when
the run completes or is cancelled. Serialized as JSON into the property store.
"""

__all__ = [
    "BatchTotals",
    "BatchState",
    "BatchStateError",
]


class BatchStateError(ValueError):
    """Persisted batch state could not be decoded."""


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


@dataclass(frozen=True)
class BatchTotals:
    completed: int = 0
    skipped: int = 0
    failed: int = 0

    @property
    def processed(self) -> int:
        return self.completed + self.skipped + self.failed

    def record(self, status: RowStatus) -> BatchTotals:
        if status is RowStatus.COMPLETED:
            return replace(self, completed=self.completed + 1)
        if status is RowStatus.SKIP:
            return replace(self, skipped=self.skipped + 1)
        if status is RowStatus.FAILED:
            return replace(self, failed=self.failed + 1)
        raise ValueError(f"not a terminal row status: {status.value}")


@dataclass(frozen=True)
class BatchState:
    """Progress of one batch run.

    Invariant: next_row_index never decreases and is at most total rows + 1.
    """
    next_row_index: int
    target_field_path: str
    started_at: str
    last_progress_at: str
    totals: BatchTotals = field(default_factory=BatchTotals)
    retry_failed_only: bool = False
    run_id: str = ""

    @staticmethod
    def begin(target_field_path: str, *, retry_failed_only: bool = False) -> BatchState:
        now = utc_now_iso()
        return BatchState(
            next_row_index=1,
            target_field_path=target_field_path,
            started_at=now,
            last_progress_at=now,
            totals=BatchTotals(),
            retry_failed_only=retry_failed_only,
            run_id=uuid.uuid4().hex,
        )

    def advance(self, next_row_index: int, totals: BatchTotals) -> BatchState:
        if next_row_index < self.next_row_index:
            raise ValueError(
                f"next_row_index must not decrease ({self.next_row_index} -> {next_row_index})"
            )
        return replace(
            self,
            next_row_index=next_row_index,
            totals=totals,
            last_progress_at=utc_now_iso(),
        )

    def to_json(self) -> str:
        return json.dumps(asdict(self), sort_keys=True)

    @staticmethod
    def from_json(raw: str) -> BatchState:
        try:
            data: dict[str, Any] = json.loads(raw)
            totals = BatchTotals(**data.pop("totals", {}))
            return BatchState(totals=totals, **data)
        except (json.JSONDecodeError, TypeError, AttributeError) as e:
            raise BatchStateError(f"corrupt batch state: {e}") from e
