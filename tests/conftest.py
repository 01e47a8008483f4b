# Shared pytest fixtures
from __future__ import annotations

import json
import tempfile
from pathlib import Path
from typing import Any, Callable, Sequence

import httpx
import pytest
from openpyxl import Workbook

from hrsync.api.client import HiBobClient
from hrsync.config.loader import ApiConfig, BatchConfig, Credentials, SheetNames
from hrsync.workbook.layout import EMPLOYEE_COLUMNS, FIELD_COLUMNS, LIST_COLUMNS, UPLOAD_INPUT_COLUMNS
from hrsync.workbook.store import ExcelWorkbookStore

BASE_URL = "https://api.hibob.test"


@pytest.fixture()
def temp_workdir(monkeypatch) -> Path:
    with tempfile.TemporaryDirectory() as d:
        p = Path(d)
        (p / "config").mkdir()
        (p / "data").mkdir()
        (p / "logs").mkdir()
        monkeypatch.chdir(p)
        yield p


@pytest.fixture()
def sample_config_yaml() -> str:
    return f"""workbook: ./data/hibob.xlsx
api:
  base_url: {BASE_URL}
  requests_per_minute: 10
  backoff_seconds: 0
batch:
  chunk_size: 20
  period_seconds: 60
  lock_timeout_seconds: 0
state:
  backend: file
  path: state/properties.json
  lock_path: state/batch.lock
logs_directory: logs
"""


@pytest.fixture()
def write_config(temp_workdir: Path, sample_config_yaml: str) -> Path:
    cfg = temp_workdir / "config" / "sync.yml"
    cfg.write_text(sample_config_yaml, encoding="utf-8")
    return cfg


@pytest.fixture()
def credentials_env(monkeypatch) -> None:
    monkeypatch.setenv("HIBOB_SERVICE_USER_ID", "SERVICE-1")
    monkeypatch.setenv("HIBOB_SERVICE_USER_TOKEN", "secret-token")


# ----------------------------------------------------------------------
# workbook helpers
# ----------------------------------------------------------------------
FIELDS_ROWS = [
    ["work.department", "Department", "root.work.department", "work", "list", False, "department"],
    ["work.title", "Title", "root.work.title", "work", "text", False, ""],
    ["work.startDate", "Start date", "root.work.startDate", "work", "date", False, ""],
    ["category_1.field_2", "Shoe size", "root.userData.custom.category_1.field_2", "custom", "number", False, ""],
    ["work.tenureDuration", "Tenure", "root.work.tenureDuration", "work", "text", True, ""],
]

LISTS_ROWS = [
    ["department", "d_eng", "Engineering"],
    ["department", "d_fin", "Finance"],
    ["department", "d_sal", "Sales"],
    ["site", "s_ber", "Berlin"],
]

EMPLOYEES_ROWS = [
    ["111", "E1", "Ada Lovelace", "Berlin", "Berlin", "Active", "Full-time", "2020-01-06"],
    ["222", "E2", "Grace Hopper", "Berlin", "Berlin", "Active", "Full-time", "2019-03-01"],
    ["333", "E3", "Alan Turing", "Berlin", "Berlin", "Inactive", "Part-time", "2018-07-15"],
]


def write_workbook(path: Path, sheets: dict[str, Sequence[Sequence[Any]]]) -> Path:
    wb = Workbook()
    wb.remove(wb.active)
    for name, rows in sheets.items():
        ws = wb.create_sheet(name)
        for row in rows:
            ws.append(list(row))
    path.parent.mkdir(parents=True, exist_ok=True)
    wb.save(path)
    return path


def reference_sheets(uploads: Sequence[Sequence[Any]] | None = None) -> dict[str, list[list[Any]]]:
    sheets: dict[str, list[list[Any]]] = {
        "Bob Fields": [list(FIELD_COLUMNS), *FIELDS_ROWS],
        "Bob Lists": [list(LIST_COLUMNS), *LISTS_ROWS],
        "Bob Employees": [list(EMPLOYEE_COLUMNS), *EMPLOYEES_ROWS],
    }
    if uploads is not None:
        sheets["Bulk Upload"] = [list(UPLOAD_INPUT_COLUMNS), *[list(r) for r in uploads]]
    return sheets


@pytest.fixture()
def make_workbook(tmp_path: Path) -> Callable[..., ExcelWorkbookStore]:
    """Build a workbook with the reference sheets plus the given staged rows."""
    def _make(uploads: Sequence[Sequence[Any]] | None = None, **extra: Sequence[Sequence[Any]]) -> ExcelWorkbookStore:
        sheets = reference_sheets(uploads)
        sheets.update({name.replace("_", " "): rows for name, rows in extra.items()})
        path = write_workbook(tmp_path / "data" / "hibob.xlsx", sheets)
        return ExcelWorkbookStore(path)
    return _make


# ----------------------------------------------------------------------
# HiBob client helpers
# ----------------------------------------------------------------------
@pytest.fixture()
def api_config() -> ApiConfig:
    return ApiConfig(base_url=BASE_URL, requests_per_minute=10, max_retries=2, backoff_seconds=0)


@pytest.fixture()
def batch_config() -> BatchConfig:
    return BatchConfig(chunk_size=20, period_seconds=60, lock_timeout_seconds=0)


@pytest.fixture()
def sheet_names() -> SheetNames:
    return SheetNames()


class RecordingHandler:
    """httpx.MockTransport handler that records requests and answers from routes.

    routes: {(method, path): response | callable(request) -> response}
    Unrouted requests answer 404.
    """

    def __init__(self, routes: dict[tuple[str, str], Any] | None = None) -> None:
        self.routes = dict(routes or {})
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        route = self.routes.get((request.method, request.url.path))
        if route is None:
            return httpx.Response(404, json={"error": "not found"})
        if callable(route):
            return route(request)
        if isinstance(route, list):
            return route.pop(0) if len(route) > 1 else route[0]
        return route

    def calls(self, method: str, path_prefix: str = "") -> list[httpx.Request]:
        return [r for r in self.requests if r.method == method and r.url.path.startswith(path_prefix)]

    @staticmethod
    def body(request: httpx.Request) -> Any:
        return json.loads(request.content.decode("utf-8"))


@pytest.fixture()
def make_client(api_config: ApiConfig) -> Callable[[RecordingHandler], HiBobClient]:
    def _make(handler: RecordingHandler) -> HiBobClient:
        http = httpx.Client(transport=httpx.MockTransport(handler))
        return HiBobClient(api_config, Credentials("SERVICE-1", "secret-token"), http_client=http)
    return _make


class MemoryPropertyStore:
    """Dict-backed property store for tests."""

    def __init__(self) -> None:
        self.data: dict[str, str] = {}
        self.writes = 0

    def get(self, key: str) -> str | None:
        return self.data.get(key)

    def set(self, key: str, value: str) -> None:
        self.writes += 1
        self.data[key] = value

    def delete(self, key: str) -> None:
        self.writes += 1
        self.data.pop(key, None)


@pytest.fixture()
def memory_store() -> MemoryPropertyStore:
    return MemoryPropertyStore()
