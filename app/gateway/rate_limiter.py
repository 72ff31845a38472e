"""Sliding-window rate limiter — per-client admission control for chat.

Tracks admitted request timestamps per client identity (usually the remote
address). A request is admitted when fewer than ``max_requests`` timestamps
fall inside the trailing window; rejected requests are not recorded.

Check-and-record runs under one asyncio.Lock per identity, so concurrent
requests from the same client cannot both observe a free slot.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections import deque
from collections.abc import Callable, MutableMapping
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)

# Opportunistic sweep of idle identities every N checks
SWEEP_EVERY = 1000


@dataclass
class _ClientWindow:
    """Sliding window for a single client identity."""

    timestamps: deque[float] = field(default_factory=deque)
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)

    def _prune(self, now: float, window: float) -> None:
        """Drop timestamps that are a full window old or older."""
        cutoff = now - window
        while self.timestamps and self.timestamps[0] <= cutoff:
            self.timestamps.popleft()

    def retry_after(self, now: float, window: float) -> float:
        """Seconds until the oldest entry leaves the window."""
        if not self.timestamps:
            return 0.0
        return max((self.timestamps[0] + window) - now, 0.0)


class SlidingWindowRateLimiter:
    """Per-identity sliding-window limiter.

    Usage:
        limiter = SlidingWindowRateLimiter(max_requests=15, window_seconds=60)

        if not await limiter.check_and_record(client_ip):
            # reject with 429
            ...

    ``clock`` and ``store`` are injectable so tests can drive time and keep
    state isolated.
    """

    def __init__(
        self,
        max_requests: int = 15,
        window_seconds: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
        store: MutableMapping[str, _ClientWindow] | None = None,
    ):
        if max_requests < 1:
            raise ValueError("max_requests must be at least 1")
        if window_seconds <= 0:
            raise ValueError("window_seconds must be positive")
        self.max_requests = max_requests
        self.window_seconds = float(window_seconds)
        self._clock = clock
        self._windows: MutableMapping[str, _ClientWindow] = store if store is not None else {}
        self._checks = 0

    def _get_window(self, identity: str) -> _ClientWindow:
        """Get or create the window for an identity."""
        window = self._windows.get(identity)
        if window is None:
            window = _ClientWindow()
            self._windows[identity] = window
        return window

    async def check_and_record(self, identity: str) -> bool:
        """Admit and record a request, or reject it without recording.

        Returns:
            True if admitted, False if the identity is over its limit.
        """
        window = self._get_window(identity)
        async with window.lock:
            now = self._clock()
            window._prune(now, self.window_seconds)

            if len(window.timestamps) >= self.max_requests:
                logger.info(
                    "Rate limit hit for %s (%d/%d in %.0fs)",
                    identity,
                    len(window.timestamps),
                    self.max_requests,
                    self.window_seconds,
                )
                return False

            window.timestamps.append(now)

        self._checks += 1
        if self._checks % SWEEP_EVERY == 0:
            self.sweep()
        return True

    def sweep(self) -> int:
        """Forget identities with no timestamps left in the window.

        Returns the number of identities removed. Windows whose lock is held
        are skipped.
        """
        now = self._clock()
        idle: list[str] = []
        for identity, window in self._windows.items():
            if window.lock.locked():
                continue
            window._prune(now, self.window_seconds)
            if not window.timestamps:
                idle.append(identity)

        for identity in idle:
            del self._windows[identity]

        if idle:
            logger.debug("Rate limiter swept %d idle clients", len(idle))
        return len(idle)

    def get_stats(self, identity: str) -> dict:
        """Current usage for an identity."""
        window = self._windows.get(identity)
        now = self._clock()
        if window is None:
            return {
                "identity": identity,
                "current": 0,
                "limit": self.max_requests,
                "window_seconds": self.window_seconds,
                "retry_after": 0.0,
            }

        window._prune(now, self.window_seconds)
        current = len(window.timestamps)
        retry_after = window.retry_after(now, self.window_seconds) if current >= self.max_requests else 0.0
        return {
            "identity": identity,
            "current": current,
            "limit": self.max_requests,
            "window_seconds": self.window_seconds,
            "retry_after": round(retry_after, 3),
        }

    def tracked_identities(self) -> int:
        return len(self._windows)
