from __future__ import annotations

import logging
import os
import time
import zlib
from pathlib import Path
from typing import Any, Callable, Protocol

import psycopg2

from .properties import FatalInfrastructureError

"""Exclusive advisory lock guarding one chunk execution.

Policy: bounded wait, then give up. A caller that cannot acquire the lock
within `timeout` seconds gets False back and must treat the invocation as a
duplicate trigger (no-op), never block forever.
"""

__all__ = [
    "ExclusiveLock",
    "FileLock",
    "PostgresAdvisoryLock",
]

logger = logging.getLogger(__name__)

POLL_INTERVAL_SECONDS = 0.1


class ExclusiveLock(Protocol):
    def try_acquire(self, timeout: float) -> bool: ...

    def release(self) -> None: ...


class FileLock:
    """Lock file created with O_EXCL.

    The file holds the owner pid and acquisition time. A lock file older than
    `stale_after` seconds is considered abandoned by a crashed run and removed.
    """

    def __init__(
        self,
        path: Path,
        *,
        stale_after: float = 900.0,
        clock: Callable[[], float] = time.time,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.path = Path(path)
        self.stale_after = stale_after
        self._clock = clock
        self._sleep = sleep
        self._held = False

    @property
    def held(self) -> bool:
        return self._held

    def _try_create(self) -> bool:
        try:
            fd = os.open(self.path, os.O_CREAT | os.O_EXCL | os.O_WRONLY)
        except FileExistsError:
            return False
        except OSError as e:
            raise FatalInfrastructureError(f"cannot create lock file {self.path}: {e}") from e
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(f"{os.getpid()} {self._clock():.3f}\n")
        return True

    def _break_if_stale(self) -> None:
        try:
            age = self._clock() - self.path.stat().st_mtime
        except FileNotFoundError:
            return
        if age > self.stale_after:
            logger.warning("removing stale lock %s (age %.0fs)", self.path, age)
            self.path.unlink(missing_ok=True)

    def try_acquire(self, timeout: float) -> bool:
        if self._held:
            return True
        self.path.parent.mkdir(parents=True, exist_ok=True)
        deadline = self._clock() + timeout
        while True:
            if self._try_create():
                self._held = True
                return True
            self._break_if_stale()
            if self._clock() >= deadline:
                return False
            self._sleep(POLL_INTERVAL_SECONDS)

    def release(self) -> None:
        if not self._held:
            return
        self._held = False
        self.path.unlink(missing_ok=True)


class PostgresAdvisoryLock:
    """Session-level pg_try_advisory_lock, polled until the timeout."""

    def __init__(
        self,
        conn: Any,
        name: str = "hrsync.batch",
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._conn = conn
        self.key = zlib.crc32(name.encode("utf-8"))
        self._clock = clock
        self._sleep = sleep
        self._held = False

    def _query(self, sql: str) -> bool:
        try:
            cur = self._conn.cursor()
            cur.execute(sql, (self.key,))
            row = cur.fetchone()
        except psycopg2.Error as e:
            raise FatalInfrastructureError(f"advisory lock query failed: {e}") from e
        return bool(row and row[0])

    def try_acquire(self, timeout: float) -> bool:
        if self._held:
            return True
        deadline = self._clock() + timeout
        while True:
            if self._query("SELECT pg_try_advisory_lock(%s)"):
                self._held = True
                return True
            if self._clock() >= deadline:
                return False
            self._sleep(POLL_INTERVAL_SECONDS)

    def release(self) -> None:
        if not self._held:
            return
        self._held = False
        self._query("SELECT pg_advisory_unlock(%s)")
