"""Durable state: property store, exclusive lock, periodic scheduler."""

from __future__ import annotations

import os
from pathlib import Path

from hrsync.config.loader import StateConfig

from .lock import ExclusiveLock, FileLock, PostgresAdvisoryLock
from .properties import FatalInfrastructureError, JsonFilePropertyStore, PostgresPropertyStore, PropertyStore
from .scheduler import Scheduler

__all__ = [
    "ExclusiveLock",
    "FileLock",
    "PostgresAdvisoryLock",
    "FatalInfrastructureError",
    "PropertyStore",
    "JsonFilePropertyStore",
    "PostgresPropertyStore",
    "Scheduler",
    "open_state_backend",
]


def open_state_backend(state: StateConfig, *, stale_lock_seconds: float = 900.0) -> tuple[PropertyStore, ExclusiveLock]:
    """Build the property store and the chunk lock for the configured backend."""
    if state.backend == "postgres":
        dsn = state.dsn or os.getenv("DATABASE_URL") or ""
        store = PostgresPropertyStore.connect(dsn)
        return store, PostgresAdvisoryLock(store.connection)
    return (
        JsonFilePropertyStore(Path(state.path)),
        FileLock(Path(state.lock_path), stale_after=stale_lock_seconds),
    )
