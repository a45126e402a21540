from __future__ import annotations
# Engram - Associative Memory Engine
# Copyright (C) 2026 Engram Authors
# SPDX-License-Identifier: Apache-2.0
#
# This file is part of Engram, licensed under Apache-2.0.
# See LICENSE for the full license text.

"""Sliding-window admission gate for oracle calls.

Every component that talks to an LLM owns one limiter.  ``acquire()``
never lets more than ``max_calls`` calls start inside any rolling
``window_s`` window.  Admission is checked lazily when a caller wants
to proceed; there is no background timer.
"""

import asyncio
import logging
import time
from collections import deque
from collections.abc import Awaitable, Callable

from engram.config.models import RateLimitConfig

logger = logging.getLogger("engram.rate_limiter")


class SlidingWindowRateLimiter:
    """Track call start times within a sliding window and delay callers at capacity."""

    def __init__(
        self,
        max_calls: int,
        window_s: float,
        *,
        name: str = "oracle",
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        if max_calls < 1:
            raise ValueError("max_calls must be >= 1")
        if window_s <= 0:
            raise ValueError("window_s must be > 0")
        self._max_calls = max_calls
        self._window_s = window_s
        self._name = name
        self._clock = clock
        self._sleep = sleep
        self._calls: deque[float] = deque()
        self._lock = asyncio.Lock()

    @classmethod
    def from_config(cls, config: RateLimitConfig, *, name: str = "oracle") -> SlidingWindowRateLimiter:
        return cls(config.max_calls, config.window_s, name=name)

    @property
    def max_calls(self) -> int:
        return self._max_calls

    @property
    def window_s(self) -> float:
        return self._window_s

    def _evict_expired(self, now: float) -> None:
        while self._calls and now - self._calls[0] >= self._window_s:
            self._calls.popleft()

    def in_window(self) -> int:
        """Return the number of calls started within the active window."""
        self._evict_expired(self._clock())
        return len(self._calls)

    async def acquire(self) -> None:
        """Wait until a call may start, then record it.

        Waiters are admitted one at a time in arrival order.
        """
        async with self._lock:
            while True:
                now = self._clock()
                self._evict_expired(now)
                if len(self._calls) < self._max_calls:
                    self._calls.append(now)
                    return

                wait_s = self._window_s - (now - self._calls[0])
                logger.debug(
                    "Rate limit reached for %s (%d calls in %.1fs window); waiting %.3fs",
                    self._name, len(self._calls), self._window_s, wait_s,
                )
                await self._sleep(max(wait_s, 0.0))

    def reset(self) -> None:
        self._calls.clear()
