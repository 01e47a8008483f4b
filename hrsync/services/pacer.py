from __future__ import annotations

import logging
import math
import time
from typing import Callable

import httpx

"""Outbound pacing for mutating HiBob calls.

Pacer: fixed delay between rows, derived from the requests-per-minute ceiling.
No burst allowance and no adaptive behaviour.

call_with_backoff: retry-on-429 layered on top of a single call, exponential
delay, bounded number of retries. Lives beside the pacer but is a row-level
concern: the pacer itself never looks at responses.
"""

__all__ = [
    "Pacer",
    "interval_ms",
    "call_with_backoff",
]

logger = logging.getLogger(__name__)

RATE_LIMITED = 429


def interval_ms(requests_per_minute: int) -> int:
    if requests_per_minute < 1:
        raise ValueError("requests_per_minute must be >= 1")
    return math.ceil(60000 / requests_per_minute)


class Pacer:
    def __init__(self, requests_per_minute: int, *, sleep: Callable[[float], None] = time.sleep) -> None:
        self.requests_per_minute = requests_per_minute
        self.interval_ms = interval_ms(requests_per_minute)
        self._sleep = sleep

    def delay(self) -> None:
        """Block for one interval. Called once per processed row."""
        self._sleep(self.interval_ms / 1000)


def _retry_after_seconds(response: httpx.Response) -> float | None:
    raw = response.headers.get("Retry-After")
    if raw is None:
        return None
    try:
        return max(float(raw), 0.0)
    except ValueError:
        return None


def call_with_backoff(
    call: Callable[[], httpx.Response],
    *,
    max_retries: int,
    backoff_seconds: float,
    sleep: Callable[[float], None] = time.sleep,
) -> httpx.Response:
    """Invoke `call`, retrying while it answers 429.

    The n-th retry waits ``backoff_seconds * 2**n`` (n from 0) or the server's
    Retry-After, whichever is longer. After `max_retries` retries the last 429
    response is returned to the caller for classification.
    """
    response = call()
    attempt = 0
    while response.status_code == RATE_LIMITED and attempt < max_retries:
        wait = backoff_seconds * (2 ** attempt)
        retry_after = _retry_after_seconds(response)
        if retry_after is not None:
            wait = max(wait, retry_after)
        logger.warning("rate limited (429), retry %d/%d in %.1fs", attempt + 1, max_retries, wait)
        sleep(wait)
        attempt += 1
        response = call()
    return response
