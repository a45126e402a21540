from __future__ import annotations
# Engram - Associative Memory Engine
# Copyright (C) 2026 Engram Authors
# SPDX-License-Identifier: Apache-2.0
#
# This file is part of Engram, licensed under Apache-2.0.
# See LICENSE for the full license text.

"""Keyword/tag/context enrichment for newly captured memories.

Memories can be enriched inline (``enrich_single``) or queued
(``enrich_memory``) and processed by a background drain task in
concurrent batches.  Failed oracle calls are retried with exponential
backoff; a memory that still fails stays unenriched.
"""

import asyncio
import logging
from collections import deque
from collections.abc import Awaitable, Callable
from dataclasses import asdict, dataclass

from engram.config.models import EnrichmentConfig, OracleConfig
from engram.memory.oracles import EnrichmentOracle
from engram.rate_limiter import SlidingWindowRateLimiter
from engram.schemas import Memory

logger = logging.getLogger("engram.memory.enrichment")

EnrichedCallback = Callable[[Memory], Awaitable[None]]


@dataclass
class EnrichmentStats:
    """Running totals for enrichment."""

    enriched: int = 0
    failed: int = 0
    retries: int = 0
    total_tokens: int = 0
    total_cost: float = 0.0

    def to_dict(self) -> dict:
        return asdict(self)


class EnrichmentService:
    """Queue-backed enrichment with retry."""

    def __init__(
        self,
        oracle: EnrichmentOracle | None,
        rate_limiter: SlidingWindowRateLimiter,
        *,
        oracle_config: OracleConfig | None = None,
        config: EnrichmentConfig | None = None,
        on_enriched: EnrichedCallback | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.oracle = oracle
        self.rate_limiter = rate_limiter
        self.oracle_config = oracle_config or OracleConfig()
        self.config = config or EnrichmentConfig()
        self.on_enriched = on_enriched
        self._sleep = sleep
        self._queue: deque[Memory] = deque()
        self._task: asyncio.Task[None] | None = None
        self._enriched = 0
        self._failed = 0
        self._retries = 0

    def is_enabled(self) -> bool:
        cfg = self.oracle_config
        return cfg.enabled and cfg.has_credentials() and self.oracle is not None

    def is_processing(self) -> bool:
        return self._task is not None and not self._task.done()

    # ── Queue ───────────────────────────────────────────────────

    async def enrich_memory(self, memory: Memory) -> None:
        """Queue *memory* for background enrichment (no-op when disabled)."""
        if not self.is_enabled():
            logger.debug("Enrichment disabled; skipping %s", memory.id)
            return

        self._queue.append(memory)
        logger.debug("Queued %s for enrichment (queue=%d)", memory.id, len(self._queue))
        if not self.is_processing():
            self._task = asyncio.create_task(self.process_queue())

    async def process_queue(self) -> None:
        """Drain the queue in concurrent batches of ``batch_size``."""
        batch_size = self.oracle_config.batch_size
        while self._queue:
            batch = [self._queue.popleft() for _ in range(min(batch_size, len(self._queue)))]
            logger.info("Enriching batch of %d memories", len(batch))
            results = await asyncio.gather(*(self._enrich_and_notify(m) for m in batch))
            logger.debug("Batch done: %d/%d enriched", sum(results), len(batch))

    async def _enrich_and_notify(self, memory: Memory) -> bool:
        ok = await self.enrich_single(memory)
        if ok and self.on_enriched is not None:
            try:
                await self.on_enriched(memory)
            except Exception:
                logger.exception("on_enriched callback failed for %s", memory.id)
        return ok

    async def drain(self) -> None:
        """Wait until the background queue is empty."""
        while self.is_processing():
            await self._task

    def queue_status(self) -> dict[str, int | bool]:
        return {"queued": len(self._queue), "processing": self.is_processing()}

    # ── Single memory ───────────────────────────────────────────

    async def enrich_single(self, memory: Memory) -> bool:
        """Enrich *memory* in place, retrying with exponential backoff.

        Returns True on success.  After ``max_attempts`` failures the
        memory is left as it was.
        """
        max_attempts = self.config.max_attempts
        for attempt in range(1, max_attempts + 1):
            await self.rate_limiter.acquire()
            try:
                result = await self.oracle.enrich(memory)
            except Exception as e:
                if attempt >= max_attempts:
                    logger.error(
                        "Enrichment failed for %s after %d attempts: %s",
                        memory.id, attempt, e,
                    )
                    self._failed += 1
                    return False
                delay = self.config.backoff_base_s ** attempt
                logger.warning(
                    "Enrichment attempt %d/%d failed for %s: %s; retrying in %.1fs",
                    attempt, max_attempts, memory.id, e, delay,
                )
                self._retries += 1
                await self._sleep(delay)
                continue

            memory.keywords = list(result.keywords)
            memory.tags = list(result.tags)
            memory.context = result.context
            self._enriched += 1
            logger.debug("Enriched %s: %d keywords, %d tags", memory.id, len(memory.keywords), len(memory.tags))
            return True
        return False

    # ── Stats ───────────────────────────────────────────────────

    def get_stats(self) -> EnrichmentStats:
        stats = EnrichmentStats(
            enriched=self._enriched, failed=self._failed, retries=self._retries,
        )
        usage = getattr(getattr(self.oracle, "client", None), "usage", None)
        if usage is not None:
            stats.total_tokens = usage.total_tokens
            stats.total_cost = usage.total_cost
        return stats

    def reset_stats(self) -> None:
        self._enriched = 0
        self._failed = 0
        self._retries = 0
        usage = getattr(getattr(self.oracle, "client", None), "usage", None)
        if usage is not None:
            usage.reset()
