from __future__ import annotations
# Engram - Associative Memory Engine
# Copyright (C) 2026 Engram Authors
# SPDX-License-Identifier: Apache-2.0
#
# This file is part of Engram, licensed under Apache-2.0.
# See LICENSE for the full license text.

"""Capture pipeline: the end-to-end path a new memory takes.

Pipeline:
  enrich → embed → index → detect links → evolve strongly linked memories
         → reverse edges → persist

Each stage degrades on failure (logged, recorded in the report) so a
capture never aborts halfway because one oracle misbehaved.
"""

import logging
from dataclasses import dataclass, field

from engram.config.models import EngramConfig
from engram.logging_config import bind_memory_context, clear_memory_context
from engram.memory.enrichment import EnrichmentService
from engram.memory.evolution import EvolutionEngine
from engram.memory.links import LinkGraphMaintainer
from engram.memory.rag.index import NearestNeighborIndex
from engram.memory.rag.retriever import MemoryRetriever
from engram.memory.store import MemoryStore
from engram.schemas import Candidate, Link, Memory

logger = logging.getLogger("engram.memory.pipeline")


@dataclass
class CaptureReport:
    """What happened while capturing one memory."""

    memory_id: str
    links: list[Link] = field(default_factory=list)
    evolved: list[str] = field(default_factory=list)
    failures: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures


class MemoryPipeline:
    """Wires retrieval, link maintenance, evolution and enrichment around a store."""

    def __init__(
        self,
        store: MemoryStore,
        retriever: MemoryRetriever,
        links: LinkGraphMaintainer,
        evolution: EvolutionEngine,
        enrichment: EnrichmentService | None = None,
        index: NearestNeighborIndex | None = None,
    ) -> None:
        self.store = store
        self.retriever = retriever
        self.links = links
        self.evolution = evolution
        self.enrichment = enrichment
        if index is not None:
            retriever.set_index(index)

    @classmethod
    def from_config(
        cls,
        config: EngramConfig,
        store: MemoryStore,
        *,
        index: NearestNeighborIndex | None = None,
    ) -> MemoryPipeline:
        """Build the default LiteLLM + sentence-transformers stack.

        Each oracle-calling component gets its own rate limiter.
        """
        from engram.memory.oracles import (
            LiteLLMEnrichmentOracle,
            LiteLLMEvolutionOracle,
            LiteLLMLinkOracle,
        )
        from engram.memory.rag.embedding import SentenceTransformerEmbedder
        from engram.rate_limiter import SlidingWindowRateLimiter

        oracle_cfg = config.oracle
        retriever = MemoryRetriever(
            SentenceTransformerEmbedder.from_config(config.retrieval),
            config.retrieval,
        )
        links = LinkGraphMaintainer(
            retriever,
            LiteLLMLinkOracle(oracle_cfg),
            SlidingWindowRateLimiter.from_config(config.rate_limit, name="link_confirmation"),
            oracle_config=oracle_cfg,
            config=config.links,
        )
        evolution = EvolutionEngine(
            LiteLLMEvolutionOracle(oracle_cfg),
            SlidingWindowRateLimiter.from_config(config.rate_limit, name="evolution_decision"),
            oracle_config=oracle_cfg,
            config=config.evolution,
        )
        enrichment = EnrichmentService(
            LiteLLMEnrichmentOracle(oracle_cfg),
            SlidingWindowRateLimiter.from_config(config.rate_limit, name="enrichment"),
            oracle_config=oracle_cfg,
            config=config.enrichment,
        )
        return cls(store, retriever, links, evolution, enrichment, index)

    async def initialize(self) -> None:
        await self.retriever.initialize()

    # ── Capture ─────────────────────────────────────────────────

    async def capture(self, memory: Memory) -> CaptureReport:
        """Run *memory* through the full pipeline and persist everything it touched."""
        report = CaptureReport(memory_id=memory.id)
        bind_memory_context(memory.id)
        try:
            await self._capture(memory, report)
        finally:
            clear_memory_context()

        if report.failures:
            logger.warning(
                "Captured %s with degraded stages: %s", memory.id, ", ".join(report.failures),
            )
        else:
            logger.info(
                "Captured %s: %d links, %d evolved", memory.id, len(report.links), len(report.evolved),
            )
        return report

    async def _capture(self, memory: Memory, report: CaptureReport) -> None:
        if self.enrichment is not None and self.enrichment.is_enabled():
            if not await self.enrichment.enrich_single(memory):
                report.failures.append("enrichment")

        await self._refresh_embedding(memory, report)

        corpus = [m for m in await self.store.all() if m.id != memory.id]
        by_id = {m.id: m for m in corpus}

        memory.links = await self.links.detect_links(memory, corpus)
        report.links = list(memory.links)

        touched: dict[str, Memory] = {}
        for link in self.evolution.select_evolution_targets(memory.links):
            target = by_id.get(link.memory_id)
            if target is None:
                continue
            decision = await self.evolution.check_evolution(target, memory)
            if not self.evolution.apply_evolution(target, decision, memory.id):
                continue
            await self._refresh_embedding(target, report)
            touched[target.id] = target
            report.evolved.append(target.id)

        for target in self.links.create_bidirectional_links(memory, memory.links, corpus):
            touched[target.id] = target

        try:
            if touched:
                await self.store.bulk_put(list(touched.values()))
            await self.store.put(memory)
        except Exception:
            logger.exception("Failed to persist capture of %s", memory.id)
            report.failures.append("store")

    async def _refresh_embedding(self, memory: Memory, report: CaptureReport) -> None:
        try:
            await self.retriever.regenerate_embedding(memory)
        except Exception as e:
            logger.warning("Could not embed %s: %s", memory.id, e)
            report.failures.append(f"embedding:{memory.id}")

    # ── Queries ─────────────────────────────────────────────────

    async def find_relevant(self, query: str, *, with_links: bool = True) -> list[Candidate]:
        """Memories relevant to *query*, optionally expanded through links."""
        corpus = [m for m in await self.store.all() if m.embedding is not None]
        if with_links:
            return await self.retriever.find_similar_with_links(query, corpus)
        return await self.retriever.find_similar(query, corpus)

    async def revert(self, memory_id: str, version_index: int) -> bool:
        """Revert a stored memory's metadata to history entry *version_index*."""
        memory = await self.store.get(memory_id)
        if memory is None:
            logger.warning("Cannot revert unknown memory %s", memory_id)
            return False
        if not self.evolution.revert_evolution(memory, version_index):
            return False

        try:
            await self.retriever.regenerate_embedding(memory)
        except Exception as e:
            logger.warning("Could not re-embed %s after revert: %s", memory_id, e)
        await self.store.put(memory)
        return True

    async def prune_links(self, memory_id: str) -> int:
        """Drop low-quality links from a stored memory; returns how many went."""
        memory = await self.store.get(memory_id)
        if memory is None:
            return 0
        removed = self.links.remove_low_quality_links(memory)
        if removed:
            await self.store.put(memory)
        return removed
