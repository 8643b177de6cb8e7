"""Central API rate-limit settings and the request pacer shared by catalog calls."""

from __future__ import annotations

import asyncio
import time

# MusicBrainz: one request per second per client.
CATALOG_MIN_INTERVAL_SECONDS = 1.0
CATALOG_WAIT_LOG_THRESHOLD_SECONDS = 0.75

# Retry backoff for transient catalog failures.
CATALOG_MAX_RETRIES = 3
CATALOG_INITIAL_BACKOFF_SECONDS = 2.0
CATALOG_MAX_BACKOFF_SECONDS = 30.0


class RequestPacer:
    """
    Owns the "last request started" timestamp for one remote service.

    The wait-then-stamp sequence runs under a single lock, so concurrent
    callers are serialized and each one observes the stamp of the previous.
    """

    def __init__(self, min_interval_seconds: float = CATALOG_MIN_INTERVAL_SECONDS) -> None:
        self.min_interval_seconds = max(0.0, float(min_interval_seconds))
        self._last_request_started: float | None = None
        self._lock = asyncio.Lock()

    async def wait(self) -> float:
        """
        Block until the minimum interval since the previous call has elapsed.

        Returns the wait time applied (seconds).
        """
        async with self._lock:
            now = time.monotonic()
            wait = 0.0
            if self._last_request_started is not None:
                wait = max(0.0, self.min_interval_seconds - (now - self._last_request_started))
            if wait > 0:
                await asyncio.sleep(wait)
                now = time.monotonic()
            self._last_request_started = now
            return wait

    def reset(self) -> None:
        self._last_request_started = None


def backoff_delays(
    max_retries: int = CATALOG_MAX_RETRIES,
    initial: float = CATALOG_INITIAL_BACKOFF_SECONDS,
    cap: float = CATALOG_MAX_BACKOFF_SECONDS,
) -> list[float]:
    """Delays slept before each retry: initial, doubling, capped."""
    delays: list[float] = []
    delay = initial
    for _ in range(max(0, max_retries)):
        delays.append(min(delay, cap))
        delay *= 2
    return delays
