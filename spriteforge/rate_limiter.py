"""
Per-provider sliding-window rate limiter.

Each provider gets its own window of recent admission timestamps. On acquire
we trim entries older than the window and count the remainder; at capacity we
sleep until the oldest entry exits the window, then check again. Admissions
for one provider are serialized by that provider's lock, so concurrent runs
sharing one limiter never overshoot the quota.

One RateLimiter instance is created by the application and injected into
every CharacterGenerationService; there is no module-level state.
"""

import time
import asyncio
import logging
from collections import deque
from typing import Awaitable, Callable, Optional

from pydantic import BaseModel

from . import config
from .errors import TimeoutExceeded, ValidationError

logger = logging.getLogger(__name__)

# Requests per window (60s) for each quota bucket
DEFAULT_LIMITS: dict[str, int] = {
    "openai": 60,
    "stability": 150,
    "google": 60,
    "runway": 20,
    "tripo": 30,
}


class RateStatus(BaseModel):
    provider: str
    used: int
    limit: Optional[int] = None  # None = unlimited
    reset_in: float = 0.0


class RateWindow:
    """Admission timestamps for a single provider."""

    def __init__(self, limit: int):
        self.limit = limit
        self.timestamps: deque[float] = deque()
        self.lock = asyncio.Lock()

    def purge(self, now: float, window_seconds: float):
        while self.timestamps and now - self.timestamps[0] >= window_seconds:
            self.timestamps.popleft()

    def live(self, now: float, window_seconds: float) -> list[float]:
        return [ts for ts in self.timestamps if now - ts < window_seconds]


class RateLimiter:
    def __init__(
        self,
        limits: Optional[dict[str, int]] = None,
        window_seconds: float = config.RATE_LIMIT_WINDOW_SECONDS,
        max_wait_seconds: Optional[float] = config.RATE_LIMIT_MAX_WAIT,
        clock: Callable[[], float] = time.monotonic,
        sleep: Optional[Callable[[float], Awaitable[None]]] = None,
    ):
        if window_seconds <= 0:
            raise ValidationError(f"window_seconds must be > 0, got {window_seconds!r}")
        if max_wait_seconds is not None and max_wait_seconds < 0:
            raise ValidationError(f"max_wait_seconds must be >= 0, got {max_wait_seconds!r}")

        limits = DEFAULT_LIMITS if limits is None else limits
        for provider, limit in limits.items():
            if not isinstance(limit, int) or limit < 1:
                raise ValidationError(f"Rate limit for {provider} must be a positive integer, got {limit!r}")

        self.window_seconds = window_seconds
        self.max_wait_seconds = max_wait_seconds
        self._clock = clock
        self._sleep = sleep or asyncio.sleep
        self._windows: dict[str, RateWindow] = {
            provider: RateWindow(limit) for provider, limit in limits.items()
        }

    @property
    def providers(self) -> list[str]:
        return list(self._windows.keys())

    async def acquire(self, provider: str):
        """
        Suspend until `provider` has capacity, then record the admission.
        Providers without a configured limit are admitted immediately.

        Raises:
            TimeoutExceeded if the total wait, including time queued behind
            other callers for this provider, would exceed max_wait_seconds.
        """
        window = self._windows.get(provider)
        if window is None:
            return

        started = self._clock()
        async with window.lock:
            while True:
                now = self._clock()
                window.purge(now, self.window_seconds)

                if len(window.timestamps) < window.limit:
                    window.timestamps.append(now)
                    return

                wait = window.timestamps[0] + self.window_seconds - now
                total = (now - started) + wait
                if self.max_wait_seconds is not None and total > self.max_wait_seconds:
                    raise TimeoutExceeded(
                        provider,
                        f"rate limit wait of {total:.1f}s exceeds {self.max_wait_seconds:.1f}s",
                    )

                logger.info(f"[RateLimit] {provider}: {len(window.timestamps)}/{window.limit} — waiting {wait:.1f}s...")
                await self._sleep(wait)

    def release(self, provider: str):
        """No-op: time-window limiting frees capacity on its own."""

    def get_status(self, provider: str) -> RateStatus:
        """Read-only snapshot of a provider's window."""
        window = self._windows.get(provider)
        if window is None:
            return RateStatus(provider=provider, used=0, limit=None, reset_in=0.0)

        now = self._clock()
        live = window.live(now, self.window_seconds)
        oldest = live[0] if live else now
        reset_in = max(0.0, self.window_seconds - (now - oldest))
        return RateStatus(provider=provider, used=len(live), limit=window.limit, reset_in=reset_in)

    def get_all_status(self) -> list[RateStatus]:
        return [self.get_status(provider) for provider in self._windows]
