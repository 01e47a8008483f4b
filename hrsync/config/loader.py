from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import jsonschema
import yaml
from jsonschema.exceptions import ValidationError

"""Config loader for the workbook <-> HiBob sync tool.

Responsibilities:
- Load YAML config (default: config/sync.yml)
- Validate against the bundled JSON schema (config_schema.json)
- Apply defaults for optional sections (api pacing, batch sizing, sheet names)
- Resolve HiBob credentials from the environment, once per invocation
"""

SCHEMA_PATH = Path(__file__).with_name("config_schema.json")

DEFAULT_CONFIG_PATH = Path("config/sync.yml")

ENV_SERVICE_USER_ID = "HIBOB_SERVICE_USER_ID"
ENV_SERVICE_USER_TOKEN = "HIBOB_SERVICE_USER_TOKEN"


class ConfigurationError(Exception):
    """Required configuration, credentials, headers or reference data are missing.

    Fails fast: the whole operation is aborted and never retried.
    """


@dataclass(frozen=True)
class ApiConfig:
    base_url: str
    timeout_seconds: float = 30.0
    requests_per_minute: int = 10  # platform-documented ceiling for mutating calls
    max_retries: int = 3  # 429 retries within a single row
    backoff_seconds: float = 2.0
    external_id_field: str = "root.work.employeeIdInCompany"
    custom_field_prefix: tuple[str, str] = ("userData", "custom")
    create_missing_list_values: bool = False


@dataclass(frozen=True)
class BatchConfig:
    chunk_size: int = 20
    period_seconds: int = 60
    lock_timeout_seconds: float = 5.0
    stale_lock_seconds: float = 900.0
    max_chunk_seconds: float = 300.0  # wall-clock ceiling for one invocation


@dataclass(frozen=True)
class StateConfig:
    backend: str  # "file" | "postgres"
    path: str = "state/properties.json"
    lock_path: str = "state/batch.lock"
    dsn: str | None = None


@dataclass(frozen=True)
class SheetNames:
    fields: str = "Bob Fields"
    lists: str = "Bob Lists"
    employees: str = "Bob Employees"
    uploads: str = "Bulk Upload"
    history: dict[str, str] = field(
        default_factory=lambda: {
            "salaries": "Salary History",
            "work": "Work History",
            "variable": "Variable Pay History",
            "equities": "Equity History",
        }
    )


@dataclass(frozen=True)
class SyncConfig:
    workbook: str
    api: ApiConfig
    batch: BatchConfig
    state: StateConfig
    sheets: SheetNames
    logs_directory: str = "logs"


@dataclass(frozen=True)
class Credentials:
    """HiBob service-user credentials. Never persisted by this tool."""
    service_user_id: str
    token: str

    def __repr__(self) -> str:  # keep the token out of logs and tracebacks
        return f"Credentials(service_user_id={self.service_user_id!r}, token='***')"


def _validate_config_schema(data: dict[str, Any]) -> None:
    """Validate config data against the bundled JSON schema.

    Raises:
        ConfigurationError: schema file missing or unreadable, or the data violates it
            (missing required keys, wrong types, unknown keys).
    """
    if not SCHEMA_PATH.exists():
        raise ConfigurationError(f"config schema not found: {SCHEMA_PATH}")

    try:
        schema = json.loads(SCHEMA_PATH.read_text(encoding="utf-8"))
        jsonschema.validate(data, schema)
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"invalid schema file: {e}") from e
    except ValidationError as e:
        raise ConfigurationError(f"config validation failed: {e.message}") from e


def _build_api(raw: dict[str, Any]) -> ApiConfig:
    kwargs = dict(raw)
    if "custom_field_prefix" in kwargs:
        kwargs["custom_field_prefix"] = tuple(kwargs["custom_field_prefix"])
    kwargs["base_url"] = kwargs["base_url"].rstrip("/")
    return ApiConfig(**kwargs)


def _build_sheets(raw: dict[str, Any]) -> SheetNames:
    defaults = SheetNames()
    history = dict(defaults.history)
    history.update(raw.get("history", {}))
    return SheetNames(
        fields=raw.get("fields", defaults.fields),
        lists=raw.get("lists", defaults.lists),
        employees=raw.get("employees", defaults.employees),
        uploads=raw.get("uploads", defaults.uploads),
        history=history,
    )


def load_config(path: Path = DEFAULT_CONFIG_PATH) -> SyncConfig:
    if not path.exists():
        raise ConfigurationError(f"config file not found: {path}")
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as e:
        raise ConfigurationError(f"invalid yaml: {e}") from e

    _validate_config_schema(data)

    state = StateConfig(**data["state"])
    if state.backend == "postgres" and not (state.dsn or os.getenv("DATABASE_URL")):
        raise ConfigurationError("state.backend=postgres requires state.dsn or DATABASE_URL")

    return SyncConfig(
        workbook=data["workbook"],
        api=_build_api(data["api"]),
        batch=BatchConfig(**data.get("batch", {})),
        state=state,
        sheets=_build_sheets(data.get("sheets", {})),
        logs_directory=data.get("logs_directory", "logs"),
    )


def resolve_credentials() -> Credentials:
    """Read the service-user credentials from the environment (.env already loaded)."""
    user_id = os.getenv(ENV_SERVICE_USER_ID, "").strip()
    token = os.getenv(ENV_SERVICE_USER_TOKEN, "").strip()
    missing = [
        name
        for name, value in ((ENV_SERVICE_USER_ID, user_id), (ENV_SERVICE_USER_TOKEN, token))
        if not value
    ]
    if missing:
        raise ConfigurationError(
            f"missing credentials: {', '.join(missing)} (set them in the environment or .env)"
        )
    return Credentials(service_user_id=user_id, token=token)
