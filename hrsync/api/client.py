"""Client for the HiBob REST API (people, history tables, metadata)."""
from __future__ import annotations

import base64
import logging
from typing import Any

import httpx

from hrsync.config.loader import ApiConfig, Credentials
from hrsync.models.staged_row import truncate

__all__ = [
    "HiBobError",
    "TransientNetworkError",
    "UnexpectedResponseError",
    "HiBobClient",
    "HISTORY_TABLE_PATHS",
]

logger = logging.getLogger(__name__)

HISTORY_TABLE_PATHS = ("salaries", "work", "variable", "equities")


class HiBobError(RuntimeError):
    """Base class for errors talking to HiBob."""


class TransientNetworkError(HiBobError):
    """Network exception, 5xx or 429. Retry is safe but not automatic (except 429 backoff)."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class UnexpectedResponseError(HiBobError):
    """Any other non-success status; carries an excerpt of the body for diagnostics."""

    def __init__(self, status_code: int, body: str) -> None:
        super().__init__(f"HTTP {status_code}: {truncate(body)}")
        self.status_code = status_code
        self.body = body


class HiBobClient:
    """Thin synchronous wrapper around httpx.

    Read helpers (search, get, metadata) raise HiBobError subclasses on failure.
    Mutating helpers return the raw httpx.Response: the caller classifies
    2xx / 304 / 404 / 429 itself. Only network exceptions are converted to
    TransientNetworkError there.
    """

    def __init__(
        self,
        api: ApiConfig,
        credentials: Credentials,
        *,
        http_client: httpx.Client | None = None,
    ) -> None:
        self._api = api
        token = base64.b64encode(
            f"{credentials.service_user_id}:{credentials.token}".encode("utf-8")
        ).decode("ascii")
        self._headers = {
            "Authorization": f"Basic {token}",
            "Accept": "application/json",
            "Content-Type": "application/json",
        }
        self._client = http_client or httpx.Client(timeout=api.timeout_seconds)
        self._owns_client = http_client is None

    # ------------------------------------------------------------------
    # transport
    # ------------------------------------------------------------------
    def _url(self, path: str) -> str:
        return f"{self._api.base_url}{path}"

    def request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        try:
            response = self._client.request(method, self._url(path), headers=self._headers, **kwargs)
        except httpx.HTTPError as e:
            raise TransientNetworkError(f"{method} {path} failed: {e}") from e
        logger.debug("%s %s -> %s", method, path, response.status_code)
        return response

    @staticmethod
    def raise_for_status(response: httpx.Response) -> None:
        status = response.status_code
        if 200 <= status < 300:
            return
        if status == 429 or status >= 500:
            raise TransientNetworkError(f"HTTP {status}: {truncate(response.text)}", status_code=status)
        raise UnexpectedResponseError(status, response.text)

    def _get_json(self, method: str, path: str, **kwargs: Any) -> Any:
        response = self.request(method, path, **kwargs)
        self.raise_for_status(response)
        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError as e:
            raise UnexpectedResponseError(response.status_code, response.text) from e

    # ------------------------------------------------------------------
    # people
    # ------------------------------------------------------------------
    def search_people(
        self,
        *,
        fields: list[str] | None = None,
        filters: list[dict[str, Any]] | None = None,
        show_inactive: bool = False,
    ) -> list[dict[str, Any]]:
        body: dict[str, Any] = {"showInactive": show_inactive}
        if fields:
            body["fields"] = fields
        if filters:
            body["filters"] = filters
        data = self._get_json("POST", "/v1/people/search", json=body)
        return list(data.get("employees", []))

    def find_by_field(self, field_path: str, value: str) -> list[dict[str, Any]]:
        """Live lookup of employees whose `field_path` equals `value` (inactive included)."""
        return self.search_people(
            fields=["root.id", field_path],
            filters=[{"fieldPath": field_path, "operator": "equals", "values": [value]}],
            show_inactive=True,
        )

    def get_person(self, internal_id: str, fields: list[str] | None = None) -> dict[str, Any]:
        params = {"fields": ",".join(fields)} if fields else None
        return self._get_json("GET", f"/v1/people/{internal_id}", params=params)

    def update_person(self, internal_id: str, body: dict[str, Any]) -> httpx.Response:
        return self.request("PUT", f"/v1/people/{internal_id}", json=body)

    # ------------------------------------------------------------------
    # history tables
    # ------------------------------------------------------------------
    def list_history(self, internal_id: str, table: str) -> list[dict[str, Any]]:
        if table not in HISTORY_TABLE_PATHS:
            raise ValueError(f"unknown history table: {table}")
        data = self._get_json("GET", f"/v1/people/{internal_id}/{table}")
        if isinstance(data, list):
            return data
        return list(data.get("values", data.get("entries", [])))

    def add_history(self, internal_id: str, table: str, payload: dict[str, Any]) -> httpx.Response:
        if table not in HISTORY_TABLE_PATHS:
            raise ValueError(f"unknown history table: {table}")
        return self.request("POST", f"/v1/people/{internal_id}/{table}", json=payload)

    # ------------------------------------------------------------------
    # metadata
    # ------------------------------------------------------------------
    def get_fields(self) -> list[dict[str, Any]]:
        data = self._get_json("GET", "/v1/metadata/fields")
        return data if isinstance(data, list) else list(data.get("fields", []))

    def get_lists(self) -> dict[str, Any]:
        """Named lists keyed by list name: {name: {"values": [{"id", "value"|"name", ...}]}}."""
        data = self._get_json("GET", "/v1/metadata/lists")
        return data if isinstance(data, dict) else {}

    def create_list_item(self, list_name: str, label: str) -> dict[str, Any]:
        data = self._get_json("POST", f"/v1/metadata/lists/{list_name}", json={"name": label})
        if not data.get("id"):
            raise UnexpectedResponseError(200, f"list item creation returned no id: {data}")
        return data

    # ------------------------------------------------------------------
    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> HiBobClient:
        return self

    def __exit__(self, *exc: Any) -> None:
        self.close()
