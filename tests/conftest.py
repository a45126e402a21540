# Engram - Associative Memory Engine
# Copyright (C) 2026 Engram Authors
# SPDX-License-Identifier: Apache-2.0
"""Global test fixtures for Engram.

Provides filesystem isolation, config cache management, a fake clock for
rate limiting, and live/mock switching for tests that hit a real provider.
"""

from __future__ import annotations

import os
from pathlib import Path

import pytest

from engram.config.models import OracleConfig, RetrievalConfig
from engram.rate_limiter import SlidingWindowRateLimiter


# ── CLI options ───────────────────────────────────────────


def pytest_addoption(parser: pytest.Parser) -> None:
    parser.addoption(
        "--run-live",
        action="store_true",
        default=False,
        help="Run @pytest.mark.live tests (skipped by default)",
    )


@pytest.fixture(autouse=True)
def _skip_live_without_key(request: pytest.FixtureRequest) -> None:
    """Skip ``@pytest.mark.live`` tests unless ``--run-live`` and a key are present."""
    if request.node.get_closest_marker("live"):
        if not request.config.getoption("--run-live", default=False):
            pytest.skip("Skipping live test: use --run-live to enable")
        if not os.environ.get("ENGRAM_API_KEY"):
            pytest.skip("Skipping live test: ENGRAM_API_KEY not set")


# ── Fixtures ──────────────────────────────────────────────


@pytest.fixture
def data_dir(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Isolated runtime data directory with config and prompt caches reset."""
    from engram.config import invalidate_cache
    from engram.paths import _prompt_cache

    d = tmp_path / ".engram"
    d.mkdir()
    monkeypatch.setenv("ENGRAM_DATA_DIR", str(d))
    monkeypatch.delenv("ENGRAM_CONFIG", raising=False)
    monkeypatch.delenv("ENGRAM_API_KEY", raising=False)

    invalidate_cache()
    _prompt_cache.clear()
    yield d
    invalidate_cache()
    _prompt_cache.clear()


class FakeClock:
    """Manually advanced monotonic clock; ``sleep`` advances it."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def limiter(clock: FakeClock) -> SlidingWindowRateLimiter:
    """Generous limiter on the fake clock, so tests never really sleep."""
    return SlidingWindowRateLimiter(60, 60.0, clock=clock, sleep=clock.sleep)


@pytest.fixture
def oracle_config() -> OracleConfig:
    return OracleConfig(api_key="test-key")


@pytest.fixture
def retrieval_config() -> RetrievalConfig:
    """Four-dimensional embeddings keep hand-written test vectors readable."""
    return RetrievalConfig(embedding_dimension=4)
