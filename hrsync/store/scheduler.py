from __future__ import annotations

import json
import logging
import time
from dataclasses import asdict, dataclass
from typing import Any, Callable, Mapping

from .properties import FatalInfrastructureError, PropertyStore

"""Periodic scheduler with persisted triggers.

A trigger is a named registration {period_seconds, last_run_at} stored in the
property store, so any process can see or remove it:

- `hrsync batch tick`, run by cron every minute, calls run_pending() and invokes
  each registered callback whose period has elapsed
- `hrsync batch start --follow` calls run_forever() and sleeps between
  invocations in the foreground until the trigger is deregistered

There are no threads; callbacks run to completion in the calling process.
"""

__all__ = [
    "Trigger",
    "Scheduler",
]

logger = logging.getLogger(__name__)

TRIGGER_KEY_PREFIX = "hrsync.trigger."


@dataclass(frozen=True)
class Trigger:
    name: str
    period_seconds: float
    registered_at: float
    last_run_at: float | None = None

    def is_due(self, now: float) -> bool:
        if self.last_run_at is None:
            return True
        return now - self.last_run_at >= self.period_seconds


class Scheduler:
    def __init__(
        self,
        store: PropertyStore,
        *,
        clock: Callable[[], float] = time.time,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._store = store
        self._clock = clock
        self._sleep = sleep

    @staticmethod
    def _key(name: str) -> str:
        return TRIGGER_KEY_PREFIX + name

    def get(self, name: str) -> Trigger | None:
        raw = self._store.get(self._key(name))
        if raw is None:
            return None
        try:
            data: Any = json.loads(raw)
            return Trigger(**data)
        except (json.JSONDecodeError, TypeError) as e:
            raise FatalInfrastructureError(f"corrupt trigger '{name}': {e}") from e

    def _save(self, trigger: Trigger) -> None:
        self._store.set(self._key(trigger.name), json.dumps(asdict(trigger)))

    def register(
        self,
        name: str,
        period_seconds: float,
        callback: Callable[[], Any] | None = None,
        *,
        run_now: bool = True,
    ) -> Any:
        """Register a recurring trigger; optionally run the callback immediately.

        The immediate run counts as the first execution of the period and its
        return value is passed back to the caller.
        """
        trigger = Trigger(name=name, period_seconds=period_seconds, registered_at=self._clock())
        self._save(trigger)
        logger.debug("trigger registered name=%s period=%ss", name, period_seconds)
        if run_now and callback is not None:
            return self._run(trigger, callback)
        return None

    def deregister(self, name: str) -> None:
        self._store.delete(self._key(name))
        logger.debug("trigger deregistered name=%s", name)

    def is_registered(self, name: str) -> bool:
        return self.get(name) is not None

    def _run(self, trigger: Trigger, callback: Callable[[], Any]) -> Any:
        self._save(Trigger(
            name=trigger.name,
            period_seconds=trigger.period_seconds,
            registered_at=trigger.registered_at,
            last_run_at=self._clock(),
        ))
        return callback()

    def run_pending(self, callbacks: Mapping[str, Callable[[], Any]]) -> list[str]:
        """Invoke every registered, due trigger that has a callback. Returns the names run."""
        ran: list[str] = []
        now = self._clock()
        for name, callback in callbacks.items():
            trigger = self.get(name)
            if trigger is None or not trigger.is_due(now):
                continue
            self._run(trigger, callback)
            ran.append(name)
        return ran

    def run_forever(self, name: str, callback: Callable[[], Any]) -> None:
        """Foreground loop: invoke `callback` every period until `name` is deregistered."""
        while True:
            trigger = self.get(name)
            if trigger is None:
                return
            now = self._clock()
            if trigger.is_due(now):
                self._run(trigger, callback)
                continue
            wait = trigger.period_seconds - (now - (trigger.last_run_at or now))
            self._sleep(max(wait, 0.0))
