from __future__ import annotations
# Engram - Associative Memory Engine
# Copyright (C) 2026 Engram Authors
# SPDX-License-Identifier: Apache-2.0
#
# This file is part of Engram, licensed under Apache-2.0.
# See LICENSE for the full license text.

"""Link graph maintenance between memories.

Links are confirmed by an LLM oracle on top of embedding similarity and
kept bidirectional: when a source memory links to a target, the target
gets a reverse edge.  Every node keeps at most ``max_links`` edges, each
above the confidence threshold.

Flow:
  source → similarity candidates → oracle confirmation (batched, rate-limited)
         → confidence filter → top-N forward links → reverse edges on targets
"""

import logging
from dataclasses import asdict, dataclass

from engram.config.models import LinkConfig, OracleConfig
from engram.memory.oracles import LinkConfirmationOracle, LinkVerdict
from engram.memory.rag.retriever import MemoryRetriever, build_enhanced_text
from engram.rate_limiter import SlidingWindowRateLimiter
from engram.schemas import Candidate, Link, Memory

logger = logging.getLogger("engram.memory.links")


@dataclass
class LinkStats:
    """Running totals for link detection."""

    links_created: int = 0
    memories_processed: int = 0
    avg_links_per_memory: float = 0.0
    total_tokens: int = 0
    total_cost: float = 0.0

    def to_dict(self) -> dict:
        return asdict(self)


class LinkGraphMaintainer:
    """Detects related memories and keeps the link graph bounded on both ends."""

    def __init__(
        self,
        retriever: MemoryRetriever,
        oracle: LinkConfirmationOracle | None,
        rate_limiter: SlidingWindowRateLimiter,
        *,
        oracle_config: OracleConfig | None = None,
        config: LinkConfig | None = None,
    ) -> None:
        self.retriever = retriever
        self.oracle = oracle
        self.rate_limiter = rate_limiter
        self.oracle_config = oracle_config or OracleConfig()
        self.config = config or LinkConfig()
        self._links_created = 0
        self._memories_processed = 0

    def is_enabled(self) -> bool:
        cfg = self.oracle_config
        return (
            cfg.enabled
            and cfg.enable_link_detection
            and cfg.has_credentials()
            and self.oracle is not None
        )

    # ── Detection ───────────────────────────────────────────────

    async def detect_links(self, source: Memory, all_memories: list[Memory]) -> list[Link]:
        """Return up to ``max_links`` confirmed links from *source*.

        Never raises: similarity or oracle failures yield fewer (or no)
        links.  The oracle is not called when there are no candidates.
        """
        if not self.is_enabled():
            return []

        corpus = [m for m in all_memories if m.id != source.id]
        try:
            candidates = await self.retriever.find_similar(
                build_enhanced_text(source),
                corpus,
                threshold=self.config.candidate_threshold,
                max_results=self.config.candidate_count,
            )
        except Exception as e:
            logger.warning("Candidate search failed for %s: %s", source.id, e)
            return []

        if not candidates:
            logger.debug("No link candidates for %s", source.id)
            return []

        logger.debug("Confirming %d link candidates for %s", len(candidates), source.id)
        best: dict[str, LinkVerdict] = {}
        batch_size = self.config.confirmation_batch_size
        for start in range(0, len(candidates), batch_size):
            batch = candidates[start:start + batch_size]
            for verdict in await self._confirm_batch(source, batch):
                current = best.get(verdict.memory_id)
                if current is None or verdict.confidence > current.confidence:
                    best[verdict.memory_id] = verdict

        links = [
            Link(memory_id=v.memory_id, score=v.confidence, reason=v.reason)
            for v in best.values()
            if v.confidence > self.config.confidence_threshold
        ]
        links.sort(key=lambda link: link.score, reverse=True)
        links = links[: self.config.max_links]

        self._links_created += len(links)
        self._memories_processed += 1
        logger.info("Detected %d links for memory %s", len(links), source.id)
        return links

    async def _confirm_batch(
        self, source: Memory, batch: list[Candidate],
    ) -> list[LinkVerdict]:
        """One oracle round trip; verdicts for ids outside *batch* are dropped."""
        await self.rate_limiter.acquire()
        try:
            verdicts = await self.oracle.confirm(source, batch)
        except Exception as e:
            logger.warning("Link confirmation failed for %s: %s", source.id, e)
            return []

        batch_ids = {c.memory.id for c in batch}
        kept = [v for v in verdicts if v.memory_id in batch_ids]
        if len(kept) != len(verdicts):
            logger.debug(
                "Dropped %d verdicts for unknown candidates", len(verdicts) - len(kept),
            )
        return kept

    # ── Graph maintenance ───────────────────────────────────────

    def create_bidirectional_links(
        self,
        source: Memory,
        links: list[Link],
        all_memories: list[Memory],
    ) -> list[Memory]:
        """Write reverse edges ``target → source`` for every link of *source*.

        An existing reverse edge is left untouched.  A target at capacity
        swaps out its weakest edge only for a strictly stronger one, and a
        target loaded over capacity is cut back to its strongest edges.
        *source* itself is never modified.

        Returns:
            The target memories whose ``links`` changed.
        """
        by_id = {m.id: m for m in all_memories}
        threshold = self.config.confidence_threshold
        max_links = self.config.max_links
        updated: dict[str, Memory] = {}

        for link in links:
            if link.memory_id == source.id:
                continue
            target = by_id.get(link.memory_id)
            if target is None:
                logger.debug("Link target %s not found; skipping reverse edge", link.memory_id)
                continue
            if link.score <= threshold:
                continue
            if target.links is None:
                target.links = []
            if source.id in target.linked_ids():
                continue

            reverse = Link(memory_id=source.id, score=link.score, reason=link.reason)
            if len(target.links) < max_links or link.score > min(
                existing.score for existing in target.links
            ):
                target.links.append(reverse)
                updated[target.id] = target
            if len(target.links) > max_links:
                self._trim_links(target, max_links)
                updated[target.id] = target

        return list(updated.values())

    @staticmethod
    def _trim_links(memory: Memory, max_links: int) -> None:
        """Keep the *max_links* strongest links; ties favour the older edge."""
        memory.links.sort(key=lambda existing: existing.score, reverse=True)
        dropped = memory.links[max_links:]
        del memory.links[max_links:]
        logger.debug(
            "Evicted %d link(s) from %s: %s",
            len(dropped), memory.id, ", ".join(f"{edge.memory_id} ({edge.score:.2f})" for edge in dropped),
        )

    def remove_low_quality_links(self, memory: Memory) -> int:
        """Drop links scoring below the confidence threshold; returns how many went."""
        links = memory.links or []
        kept = [link for link in links if link.score >= self.config.confidence_threshold]
        memory.links = kept
        removed = len(links) - len(kept)
        if removed:
            logger.info("Removed %d low-quality links from %s", removed, memory.id)
        return removed

    # ── Stats ───────────────────────────────────────────────────

    def get_stats(self) -> LinkStats:
        processed = self._memories_processed
        stats = LinkStats(
            links_created=self._links_created,
            memories_processed=processed,
            avg_links_per_memory=self._links_created / processed if processed else 0.0,
        )
        usage = getattr(getattr(self.oracle, "client", None), "usage", None)
        if usage is not None:
            stats.total_tokens = usage.total_tokens
            stats.total_cost = usage.total_cost
        return stats

    def reset_stats(self) -> None:
        self._links_created = 0
        self._memories_processed = 0
        usage = getattr(getattr(self.oracle, "client", None), "usage", None)
        if usage is not None:
            usage.reset()
