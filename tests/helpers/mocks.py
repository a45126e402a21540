# Engram - Associative Memory Engine
# Copyright (C) 2026 Engram Authors
# SPDX-License-Identifier: Apache-2.0
"""Mock factories and deterministic fakes for oracle calls.

Provides helpers to mock ``litellm.acompletion`` plus in-process fakes
for the embedding, link-confirmation, evolution and enrichment oracles.
"""

from __future__ import annotations

import zlib
from typing import Any
from unittest.mock import MagicMock

import numpy as np

from engram.memory.oracles import (
    EnrichmentOracle,
    EnrichmentResult,
    EvolutionDecision,
    EvolutionDecisionOracle,
    LinkConfirmationOracle,
    LinkVerdict,
)
from engram.memory.rag.embedding import EmbeddingOracle
from engram.memory.rag.index import IndexHit, NearestNeighborIndex
from engram.memory.vector_math import cosine_similarity
from engram.schemas import Candidate, Memory


# ── litellm mocks ─────────────────────────────────────────


def make_litellm_response(
    content: str = "{}",
    prompt_tokens: int = 100,
    completion_tokens: int = 50,
) -> MagicMock:
    """Create a mock ``litellm.acompletion`` response object."""
    mock_message = MagicMock()
    mock_message.content = content

    mock_choice = MagicMock()
    mock_choice.message = mock_message

    mock_response = MagicMock()
    mock_response.choices = [mock_choice]
    mock_response.usage = MagicMock(
        prompt_tokens=prompt_tokens,
        completion_tokens=completion_tokens,
    )
    return mock_response


# ── Embedding ─────────────────────────────────────────────


class FakeEmbedder(EmbeddingOracle):
    """Deterministic embedder.

    Texts listed in *vectors* map to the given vector; anything else gets
    a pseudo-random vector seeded by the text's CRC32.
    """

    def __init__(
        self,
        vectors: dict[str, list[float]] | None = None,
        *,
        dimension: int = 4,
        ready: bool = True,
    ) -> None:
        self.vectors = dict(vectors or {})
        self.dimension = dimension
        self._ready = ready
        self.calls: list[str] = []
        self.initialize_calls = 0

    async def initialize(self) -> None:
        self.initialize_calls += 1
        self._ready = True

    def is_ready(self) -> bool:
        return self._ready

    async def embed(self, text: str) -> list[float]:
        self.calls.append(text)
        if text in self.vectors:
            return list(self.vectors[text])
        rng = np.random.default_rng(zlib.crc32(text.encode("utf-8")))
        return rng.standard_normal(self.dimension).tolist()


class FakeIndex(NearestNeighborIndex):
    """Exact in-memory index that records its queries."""

    def __init__(self, ready: bool = True) -> None:
        self.vectors: dict[str, list[float]] = {}
        self._ready = ready
        self.searches: list[tuple[int, int]] = []

    def is_ready(self) -> bool:
        return self._ready

    def search(self, vector: list[float], k: int, search_breadth: int) -> list[IndexHit]:
        self.searches.append((k, search_breadth))
        hits = [
            IndexHit(id=memory_id, distance=1.0 - cosine_similarity(vector, v))
            for memory_id, v in self.vectors.items()
        ]
        hits.sort(key=lambda h: h.distance)
        return hits[:k]

    def upsert(self, memory_id: str, vector: list[float]) -> None:
        self.vectors[memory_id] = list(vector)

    def remove(self, memory_id: str) -> None:
        self.vectors.pop(memory_id, None)

    def count(self) -> int:
        return len(self.vectors)


# ── Reasoning oracles ─────────────────────────────────────


class FakeLinkOracle(LinkConfirmationOracle):
    """Confirms candidates using a fixed ``{memory_id: confidence}`` table."""

    def __init__(
        self,
        confidences: dict[str, float] | None = None,
        *,
        error: Exception | None = None,
    ) -> None:
        self.confidences = dict(confidences or {})
        self.error = error
        self.calls: list[tuple[str, list[str]]] = []

    async def confirm(self, source: Memory, candidates: list[Candidate]) -> list[LinkVerdict]:
        self.calls.append((source.id, [c.memory.id for c in candidates]))
        if self.error is not None:
            raise self.error
        return [
            LinkVerdict(memory_id=c.memory.id, confidence=self.confidences[c.memory.id], reason="related")
            for c in candidates
            if c.memory.id in self.confidences
        ]


class FakeEvolutionOracle(EvolutionDecisionOracle):
    """Returns a queued decision per call (the last one repeats)."""

    def __init__(self, *decisions: EvolutionDecision | Exception) -> None:
        self.decisions = list(decisions) or [EvolutionDecision.negative("no change")]
        self.calls: list[tuple[str, str]] = []

    async def decide(self, target: Memory, new_memory: Memory) -> EvolutionDecision:
        self.calls.append((target.id, new_memory.id))
        item = self.decisions.pop(0) if len(self.decisions) > 1 else self.decisions[0]
        if isinstance(item, Exception):
            raise item
        return item


class FakeEnrichmentOracle(EnrichmentOracle):
    """Fails the first *failures* calls, then derives metadata from the text."""

    def __init__(self, failures: int = 0) -> None:
        self.failures = failures
        self.calls: list[str] = []

    async def enrich(self, memory: Memory) -> EnrichmentResult:
        self.calls.append(memory.id)
        if len(self.calls) <= self.failures:
            raise RuntimeError("provider unavailable")
        words = [w.strip(".,?!").lower() for w in memory.text.split() if len(w) > 3]
        return EnrichmentResult(
            keywords=words[:5],
            tags=["chat"],
            context=f"About {words[0] if words else 'nothing'}",
        )


# ── Builders ──────────────────────────────────────────────


def make_memory(memory_id: str, text: str = "", **kwargs: Any) -> Memory:
    """Create a memory with sensible defaults for tests."""
    return Memory(id=memory_id, text=text or f"memory {memory_id}", **kwargs)
