from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Callable

from hrsync.api.client import HiBobClient, HiBobError, TransientNetworkError
from hrsync.config.loader import ApiConfig
from hrsync.models.reference import FieldDescriptor, FieldType
from hrsync.models.staged_row import RowStatus, StagedRow, truncate
from hrsync.models.values import InvalidValueError, normalize_cell, to_bool, to_iso_date, to_number

from .pacer import call_with_backoff
from .path_resolver import build_request_body, extract_value
from .value_mapper import ValueMapper, ValueNotFoundError

"""Row Processor: one staged row -> one HiBob field update + read-back.

Row-scoped failures (unknown employee, unknown list value, bad value, HTTP or
network errors) never escape process_row(); they are captured in the returned
StagedRow. The write and the verification read are two separate calls, so a
concurrent change upstream can make the verified value differ from the value
just written; verification is a diagnostic, not a guarantee.
"""

__all__ = [
    "FieldContext",
    "RowProcessor",
]

logger = logging.getLogger(__name__)

NOT_MODIFIED = 304
NOT_FOUND = 404
RATE_LIMITED = 429


@dataclass(frozen=True)
class FieldContext:
    """Everything about the target field a row needs, resolved once per chunk."""
    field: FieldDescriptor
    list_name: str = ""
    id_to_label: dict[str, str] = field(default_factory=dict)

    @property
    def is_list(self) -> bool:
        return self.field.type.is_list


def _now_iso() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S")


class RowProcessor:
    def __init__(
        self,
        client: HiBobClient,
        mapper: ValueMapper,
        id_map: dict[str, str],
        api: ApiConfig,
        *,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._client = client
        self._mapper = mapper
        self._id_map = id_map
        self._api = api
        self._sleep = sleep

    # ------------------------------------------------------------------
    # employee resolution
    # ------------------------------------------------------------------
    def _live_lookup(self, external_id: str) -> tuple[str, str]:
        """Search HiBob by external id. Returns (internal_id, failure_reason)."""
        try:
            employees = self._client.find_by_field(self._api.external_id_field, external_id)
        except HiBobError as e:
            return "", f"live search failed: {e}"
        for employee in employees:
            internal = normalize_cell(employee.get("id") or employee.get("root.id"))
            if internal:
                logger.info("resolved %s via live search -> %s", external_id, internal)
                self._id_map[external_id] = internal
                return internal, ""
        return "", ""

    # ------------------------------------------------------------------
    # value coercion
    # ------------------------------------------------------------------
    def _coerce(self, raw: Any, context: FieldContext) -> Any:
        field_type = context.field.type
        if context.is_list:
            text = normalize_cell(raw)
            if field_type is FieldType.MULTI_LIST:
                labels = [part.strip() for part in text.split(",") if part.strip()]
                return [self._mapper.resolve(label, context.list_name) for label in labels]
            return self._mapper.resolve(text, context.list_name)
        if field_type in (FieldType.NUMBER, FieldType.CURRENCY):
            return to_number(raw)
        if field_type is FieldType.DATE:
            return to_iso_date(raw)
        if field_type is FieldType.BOOLEAN:
            return to_bool(raw)
        return normalize_cell(raw)

    # ------------------------------------------------------------------
    # verification
    # ------------------------------------------------------------------
    def _verify(self, internal_id: str, field_path: str, context: FieldContext) -> str:
        try:
            person = self._client.get_person(internal_id, fields=[field_path])
        except HiBobError as e:
            logger.debug("read-back failed for %s: %s", internal_id, e)
            return ""
        value = extract_value(person, field_path, self._api.custom_field_prefix)
        if value is None:
            return ""
        if isinstance(value, list):
            return ", ".join(context.id_to_label.get(str(v), str(v)) for v in value)
        if isinstance(value, dict):
            value = value.get("name") or value.get("id") or ""
        text = str(value)
        return context.id_to_label.get(text, text) if context.is_list else text

    # ------------------------------------------------------------------
    def process_row(self, row: StagedRow, field_path: str, context: FieldContext) -> StagedRow:
        row = replace(row, resolved_path=field_path, processed_at=_now_iso())
        external_id = normalize_cell(row.external_id)
        raw_text = normalize_cell(row.raw_value)

        if not external_id and not raw_text:
            return row.with_result(RowStatus.SKIP, error_text="empty row")
        if not external_id:
            return row.failed("Employee ID is blank", "LookupNotFoundError")
        if not raw_text:
            return row.failed("New Value is blank", "InvalidValueError")

        internal_id = self._id_map.get(external_id, "")
        reason = ""
        if not internal_id:
            internal_id, reason = self._live_lookup(external_id)
        if not internal_id:
            message = f"employee '{external_id}' not found in roster or HiBob"
            if reason:
                message += f" ({reason})"
            return row.failed(message, "LookupNotFoundError")
        row = replace(row, resolved_internal_id=internal_id)

        try:
            value = self._coerce(row.raw_value, context)
        except ValueNotFoundError as e:
            return row.failed(str(e), "ValueNotFoundError")
        except InvalidValueError as e:
            return row.failed(str(e), "InvalidValueError")

        body = build_request_body(field_path, value, self._api.custom_field_prefix)
        try:
            response = call_with_backoff(
                lambda: self._client.update_person(internal_id, body),
                max_retries=self._api.max_retries,
                backoff_seconds=self._api.backoff_seconds,
                sleep=self._sleep,
            )
        except TransientNetworkError as e:
            return row.failed(str(e), "TransientNetworkError")

        status = response.status_code
        if 200 <= status < 300:
            verified = self._verify(internal_id, field_path, context)
            return row.with_result(RowStatus.COMPLETED, http_code=status, verified_value=verified)
        if status == NOT_MODIFIED:
            verified = self._verify(internal_id, field_path, context)
            return row.with_result(
                RowStatus.SKIP, http_code=status, error_text="already correct", verified_value=verified
            )
        if status == NOT_FOUND:
            return row.failed("remote record not found", "LookupNotFoundError", http_code=status)
        if status == RATE_LIMITED:
            return row.failed(
                f"rate limited (429) after {self._api.max_retries} retries",
                "TransientNetworkError",
                http_code=status,
            )
        error_type = "TransientNetworkError" if status >= 500 else "UnexpectedResponseError"
        return row.failed(
            f"HTTP {status}: {truncate(response.text or response.reason_phrase)}", error_type, http_code=status
        )
