from __future__ import annotations
# Engram - Associative Memory Engine
# Copyright (C) 2026 Engram Authors
# SPDX-License-Identifier: Apache-2.0

"""Embedding-based retrieval over memories.

Implements:
- Enhanced-text embedding (raw text + enrichment metadata) with a per-memory cache
- Dual-mode candidate generation (brute force / accelerated index)
- Hybrid scoring: 0.7 × semantic + 0.3 × literal keyword overlap
- Link-aware expansion with multiplicative decay

Pipeline:
  Query → Embed → Candidates (brute force | index) → Hybrid score → Filter → Sort → [Link expansion]
"""

import logging
import re
from collections.abc import Callable
from dataclasses import dataclass

from engram.config.models import RetrievalConfig
from engram.exceptions import DimensionMismatch, EmbeddingUnavailable
from engram.memory.rag.candidates import select_candidate_source
from engram.memory.rag.embedding import EmbeddingOracle
from engram.memory.rag.index import NearestNeighborIndex
from engram.memory.vector_math import l2_normalize
from engram.schemas import Candidate, Memory

logger = logging.getLogger("engram.rag.retriever")

_NON_WORD_RE = re.compile(r"[^\w]")

ProgressCallback = Callable[[int, int], None]


# ── Data structures ─────────────────────────────────────────────────


@dataclass
class EmbeddingBatchReport:
    """Outcome counts of the last ``embed_memories`` call."""

    total: int = 0
    embedded: int = 0
    cached: int = 0
    failed: int = 0


# ── Helpers ─────────────────────────────────────────────────────────


def build_enhanced_text(memory: Memory) -> str:
    """Text that gets embedded for *memory*.

    Enrichment metadata captures concepts not literally present in the
    text, so it is appended to the raw text::

        "How do I implement OAuth? Keywords: OAuth security. Tags: web. Context: ..."
    """
    parts = [memory.text]
    if memory.keywords:
        parts.append(f"Keywords: {' '.join(memory.keywords)}")
    if memory.tags:
        parts.append(f"Tags: {' '.join(memory.tags)}")
    if memory.context:
        parts.append(f"Context: {memory.context}")
    return ". ".join(parts)


def extract_query_keywords(query: str) -> list[str]:
    """Lower-cased query tokens longer than 3 characters, punctuation stripped.

    Length is judged on the raw token, so ``"jwt,"`` still counts; tokens
    left empty after stripping are dropped.
    """
    keywords: list[str] = []
    for token in query.lower().split():
        if len(token) <= 3:
            continue
        word = _NON_WORD_RE.sub("", token)
        if word:
            keywords.append(word)
    return keywords


def keyword_score(keywords: list[str], text: str) -> float:
    """Fraction of *keywords* found as substrings of *text* (0 with no keywords)."""
    if not keywords:
        return 0.0
    lowered = text.lower()
    matches = sum(1 for kw in keywords if kw in lowered)
    return matches / len(keywords)


# ── MemoryRetriever ────────────────────────────────────────────────


class MemoryRetriever:
    """Embeds memories and answers "which memories are relevant to this text".

    The embedding cache is keyed by memory id and only cleared explicitly
    (``regenerate_embedding`` for one entry, ``clear_cache`` for all).
    """

    def __init__(
        self,
        embedder: EmbeddingOracle,
        config: RetrievalConfig | None = None,
        *,
        index: NearestNeighborIndex | None = None,
    ) -> None:
        self.embedder = embedder
        self.config = config or RetrievalConfig()
        self.index = index
        self._cache: dict[str, list[float]] = {}
        self.last_batch_report = EmbeddingBatchReport()

    # ── Setup ───────────────────────────────────────────────────────

    async def initialize(self) -> None:
        """Initialize the embedding oracle (idempotent)."""
        await self.embedder.initialize()

    def set_index(self, index: NearestNeighborIndex | None) -> None:
        """Attach (or detach with ``None``) an accelerated index."""
        self.index = index
        if index is not None:
            logger.info("Vector index attached for accelerated search")

    # ── Embedding ───────────────────────────────────────────────────

    async def embed(self, text: str) -> list[float]:
        """Embed *text* as a unit-length vector.

        Raises:
            EmbeddingUnavailable: the oracle has not been initialized.
            DimensionMismatch: the oracle returned a vector of the wrong size.
        """
        if not self.embedder.is_ready():
            raise EmbeddingUnavailable("Embedding oracle is not initialized")
        vector = l2_normalize(await self.embedder.embed(text))
        expected = self.config.embedding_dimension
        if len(vector) != expected:
            raise DimensionMismatch(expected, len(vector))
        return vector

    async def embed_memories(
        self,
        memories: list[Memory],
        on_progress: ProgressCallback | None = None,
    ) -> list[Memory]:
        """Return copies of *memories* with embeddings attached.

        Cached embeddings are reused.  A memory that fails to embed is
        returned without an embedding so the caller can retry it later.
        """
        total = len(memories)
        report = EmbeddingBatchReport(total=total)
        results: list[Memory] = []
        logger.info("Generating embeddings for %d memories", total)

        for i, memory in enumerate(memories):
            out = memory.copy()
            cached = self._cache.get(memory.id)
            if cached is not None:
                out.embedding = list(cached)
                report.cached += 1
            else:
                try:
                    embedding = await self.embed(build_enhanced_text(memory))
                    self._cache[memory.id] = embedding
                    out.embedding = list(embedding)
                    report.embedded += 1
                except Exception as e:
                    logger.warning("Failed to embed memory %s: %s", memory.id, e)
                    out.embedding = None
                    report.failed += 1

            results.append(out)
            if on_progress:
                on_progress(i + 1, total)
            if (i + 1) % 10 == 0 or i == total - 1:
                logger.debug("Embedding progress: %d/%d", i + 1, total)

        self.last_batch_report = report
        if report.failed:
            logger.warning("Could not embed %d of %d memories", report.failed, total)
        return results

    async def regenerate_embedding(self, memory: Memory) -> Memory:
        """Recompute *memory*'s embedding after its metadata changed.

        Updates ``memory.embedding`` in place, refreshes the cache and the
        attached index (if any), and returns the memory.
        """
        self._cache.pop(memory.id, None)
        embedding = await self.embed(build_enhanced_text(memory))
        self._cache[memory.id] = embedding
        memory.embedding = list(embedding)

        if self.index is not None:
            try:
                self.index.upsert(memory.id, memory.embedding)
            except Exception as e:
                logger.warning("Failed to update vector index for %s: %s", memory.id, e)
        return memory

    def get_cached(self, memory_id: str) -> list[float] | None:
        return self._cache.get(memory_id)

    def clear_cache(self) -> None:
        self._cache.clear()
        logger.info("Embedding cache cleared")

    def cache_stats(self) -> dict[str, int]:
        return {"cached_memories": len(self._cache)}

    # ── Search ──────────────────────────────────────────────────────

    async def find_similar(
        self,
        query: str,
        memories: list[Memory],
        *,
        threshold: float | None = None,
        max_results: int | None = None,
    ) -> list[Candidate]:
        """Rank *memories* by hybrid relevance to *query*.

        Args:
            query: Free text
            memories: Corpus to search (only embedded memories can match)
            threshold: Minimum hybrid score (default 0.5)
            max_results: Maximum number of results (default 5)

        Returns:
            Candidates sorted by score, highest first
        """
        cfg = self.config
        threshold = cfg.similarity_threshold if threshold is None else threshold
        max_results = cfg.max_results if max_results is None else max_results

        query_vector = await self.embed(query)
        query_keywords = extract_query_keywords(query)

        embedded_count = sum(1 for m in memories if m.embedding is not None)
        source = select_candidate_source(
            self.index,
            embedded_count,
            min_corpus=cfg.index_min_corpus,
            multiplier=cfg.index_candidate_multiplier,
            search_breadth=cfg.index_search_breadth,
        )
        logger.debug(
            "Similarity search over %d embedded memories via %s",
            embedded_count, source.name,
        )
        semantic = source.generate(query_vector, memories, max_results)

        results: list[Candidate] = []
        for memory, semantic_score in semantic:
            kw_score = keyword_score(query_keywords, memory.text)
            score = cfg.semantic_weight * semantic_score + cfg.keyword_weight * kw_score
            if score >= threshold:
                results.append(Candidate(memory=memory, score=score))

        results.sort(key=lambda c: c.score, reverse=True)
        logger.debug(
            "Found %d memories above threshold %.2f", len(results), threshold,
        )
        return results[:max_results]

    async def find_similar_with_links(
        self,
        query: str,
        memories: list[Memory],
    ) -> list[Candidate]:
        """Direct matches plus memories reached through their links.

        A linked memory scores ``hit_score × link_score × decay``; the
        combined list is capped so link fan-out cannot blow up a query.
        """
        cfg = self.config
        cap = cfg.max_expanded_results
        direct = await self.find_similar(
            query, memories,
            threshold=cfg.similarity_threshold,
            max_results=cfg.max_results,
        )

        by_id = {m.id: m for m in memories}
        results = list(direct)
        included = {c.memory.id for c in direct}

        for hit in direct:
            for link in hit.memory.links or []:
                if len(results) >= cap:
                    break
                if link.memory_id in included:
                    continue
                linked = by_id.get(link.memory_id)
                if linked is None:
                    continue
                results.append(
                    Candidate(memory=linked, score=hit.score * link.score * cfg.link_decay)
                )
                included.add(link.memory_id)

        results.sort(key=lambda c: c.score, reverse=True)
        expanded = len(results) - len(direct)
        if expanded:
            logger.debug("Link expansion added %d memories", expanded)
        return results[:cap]
