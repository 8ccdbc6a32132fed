"""
Runtime state helpers for the API process.

This module provides the per-provider rolling-window rate limiters used by
the AI generation proxy. State is process-local and owned by the app built in
``main.create_app``.
"""

from __future__ import annotations

import asyncio
import time
from collections import deque
from typing import Any, Callable, Deque, Dict

from config import Settings


class RollingWindowLimiter:
    """
    Admit at most ``max_requests`` within any ``window_seconds`` span.

    Timestamps of admitted requests are kept in a deque; entries older than
    the window are evicted on every check.
    """

    def __init__(
        self,
        max_requests: int,
        window_seconds: float,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.max_requests = max(0, int(max_requests))
        self.window_seconds = float(window_seconds)
        self._clock = clock
        self._admitted: Deque[float] = deque()
        self._guard = asyncio.Lock()

    def _evict(self, now: float) -> None:
        cutoff = now - self.window_seconds
        while self._admitted and self._admitted[0] <= cutoff:
            self._admitted.popleft()

    async def allow(self) -> bool:
        async with self._guard:
            now = self._clock()
            self._evict(now)
            if len(self._admitted) >= self.max_requests:
                return False
            self._admitted.append(now)
            return True

    async def status(self) -> Dict[str, Any]:
        async with self._guard:
            self._evict(self._clock())
            used = len(self._admitted)
        return {
            "max_requests": self.max_requests,
            "window_seconds": self.window_seconds,
            "in_window": used,
            "remaining": max(0, self.max_requests - used),
        }


class RuntimeState:
    def __init__(self, settings: Settings) -> None:
        self.limiters: Dict[str, RollingWindowLimiter] = {
            "openai": RollingWindowLimiter(
                settings.openai_rate_limit, settings.ai_rate_window_sec
            ),
            "gemini": RollingWindowLimiter(
                settings.gemini_rate_limit, settings.ai_rate_window_sec
            ),
        }

    async def status(self) -> Dict[str, Any]:
        return {
            "rate_limits": {
                name: await limiter.status() for name, limiter in self.limiters.items()
            }
        }
