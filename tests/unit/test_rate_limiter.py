"""Unit tests for engram.rate_limiter: sliding-window admission."""
# Engram - Associative Memory Engine
# Copyright (C) 2026 Engram Authors
# SPDX-License-Identifier: Apache-2.0

from __future__ import annotations

import asyncio

import pytest

from engram.config.models import RateLimitConfig
from engram.rate_limiter import SlidingWindowRateLimiter


def _limiter(clock, max_calls: int, window_s: float) -> SlidingWindowRateLimiter:
    return SlidingWindowRateLimiter(max_calls, window_s, clock=clock, sleep=clock.sleep)


# ── Construction ──────────────────────────────────────────


class TestConstruction:
    def test_rejects_zero_calls(self) -> None:
        with pytest.raises(ValueError):
            SlidingWindowRateLimiter(0, 1.0)

    def test_rejects_non_positive_window(self) -> None:
        with pytest.raises(ValueError):
            SlidingWindowRateLimiter(1, 0)

    def test_from_config(self) -> None:
        limiter = SlidingWindowRateLimiter.from_config(RateLimitConfig(max_calls=7, window_s=3.5))
        assert limiter.max_calls == 7
        assert limiter.window_s == 3.5


# ── Admission ─────────────────────────────────────────────


class TestAcquire:
    @pytest.mark.asyncio
    async def test_admits_up_to_capacity_without_waiting(self, clock) -> None:
        limiter = _limiter(clock, 3, 10.0)
        for _ in range(3):
            await limiter.acquire()
        assert clock.sleeps == []
        assert limiter.in_window() == 3

    @pytest.mark.asyncio
    async def test_waits_until_oldest_call_expires(self, clock) -> None:
        limiter = _limiter(clock, 2, 10.0)
        await limiter.acquire()
        clock.advance(3.0)
        await limiter.acquire()

        await limiter.acquire()

        assert clock.sleeps == [pytest.approx(7.0)]
        assert clock.now == pytest.approx(1010.0)
        assert limiter.in_window() == 2

    @pytest.mark.asyncio
    async def test_calls_outside_window_are_forgotten(self, clock) -> None:
        limiter = _limiter(clock, 1, 5.0)
        await limiter.acquire()
        clock.advance(5.0)
        await limiter.acquire()
        assert clock.sleeps == []

    @pytest.mark.asyncio
    async def test_never_exceeds_capacity_in_any_window(self, clock) -> None:
        limiter = _limiter(clock, 3, 5.0)
        starts: list[float] = []
        for _ in range(12):
            await limiter.acquire()
            starts.append(clock.now)
            clock.advance(0.5)

        for i in range(len(starts) - 3):
            assert starts[i + 3] - starts[i] >= 5.0

    @pytest.mark.asyncio
    async def test_concurrent_waiters_are_serialized(self, clock) -> None:
        limiter = _limiter(clock, 2, 10.0)
        await asyncio.gather(*(limiter.acquire() for _ in range(5)))
        # 5 calls at capacity 2 need two extra windows
        assert clock.now == pytest.approx(1020.0)
        assert limiter.in_window() == 1

    @pytest.mark.asyncio
    async def test_rechecks_after_sleep(self, clock) -> None:
        """A short sleep that does not free a slot leads to another wait."""
        naps: list[float] = []

        async def short_sleep(seconds: float) -> None:
            naps.append(seconds)
            clock.advance(min(seconds, 1.0))

        limiter = SlidingWindowRateLimiter(1, 3.0, clock=clock, sleep=short_sleep)
        await limiter.acquire()
        await limiter.acquire()

        assert naps == [pytest.approx(3.0), pytest.approx(2.0), pytest.approx(1.0)]

    @pytest.mark.asyncio
    async def test_reset_clears_window(self, clock) -> None:
        limiter = _limiter(clock, 1, 60.0)
        await limiter.acquire()
        limiter.reset()
        await limiter.acquire()
        assert clock.sleeps == []
