from __future__ import annotations
# Engram - Associative Memory Engine
# Copyright (C) 2026 Engram Authors
# SPDX-License-Identifier: Apache-2.0

"""Candidate generation for similarity search.

Two interchangeable strategies produce ``(memory, semantic_score)`` pairs:
exact brute-force cosine over the corpus, or approximate neighbors from an
accelerated index.  Scoring downstream is identical for both.
"""

import logging
from abc import ABC, abstractmethod

import numpy as np

from engram.memory.rag.index import NearestNeighborIndex
from engram.memory.vector_math import cosine_similarities
from engram.schemas import Memory

logger = logging.getLogger("engram.rag.candidates")

SemanticCandidate = tuple[Memory, float]


class CandidateSource(ABC):
    """Produces semantically scored candidates for a query vector."""

    name: str = "abstract"

    @abstractmethod
    def generate(
        self,
        query_vector: list[float],
        memories: list[Memory],
        max_results: int,
    ) -> list[SemanticCandidate]:
        """Return candidates with their cosine similarity to *query_vector*."""


class BruteForceCandidateSource(CandidateSource):
    """Exact cosine similarity against every embedded memory."""

    name = "brute_force"

    def generate(
        self,
        query_vector: list[float],
        memories: list[Memory],
        max_results: int,
    ) -> list[SemanticCandidate]:
        dim = len(query_vector)
        embedded: list[Memory] = []
        for memory in memories:
            if memory.embedding is None:
                continue
            if len(memory.embedding) != dim:
                logger.warning(
                    "Skipping memory %s: embedding dimension %d != %d",
                    memory.id, len(memory.embedding), dim,
                )
                continue
            embedded.append(memory)

        if not embedded:
            return []

        matrix = np.asarray([m.embedding for m in embedded], dtype=np.float64)
        scores = cosine_similarities(query_vector, matrix)
        return [(memory, float(score)) for memory, score in zip(embedded, scores)]


class IndexCandidateSource(CandidateSource):
    """Approximate neighbors from a :class:`NearestNeighborIndex`.

    Over-fetches ``multiplier × max_results`` neighbors so hybrid
    re-ranking has room to reorder them.
    """

    name = "index"

    def __init__(
        self,
        index: NearestNeighborIndex,
        *,
        multiplier: int = 3,
        search_breadth: int = 50,
    ) -> None:
        self.index = index
        self.multiplier = multiplier
        self.search_breadth = search_breadth

    def generate(
        self,
        query_vector: list[float],
        memories: list[Memory],
        max_results: int,
    ) -> list[SemanticCandidate]:
        k = max_results * self.multiplier
        hits = self.index.search(query_vector, k, self.search_breadth)

        by_id = {m.id: m for m in memories}
        candidates: list[SemanticCandidate] = []
        for hit in hits:
            memory = by_id.get(hit.id)
            if memory is None:
                # Index may hold memories the caller did not pass in.
                continue
            candidates.append((memory, 1.0 - hit.distance))
        return candidates


def select_candidate_source(
    index: NearestNeighborIndex | None,
    embedded_count: int,
    *,
    min_corpus: int = 1000,
    multiplier: int = 3,
    search_breadth: int = 50,
) -> CandidateSource:
    """Pick the index path for large corpora when an index is attached and ready."""
    if index is not None and index.is_ready() and embedded_count >= min_corpus:
        return IndexCandidateSource(
            index, multiplier=multiplier, search_breadth=search_breadth,
        )
    return BruteForceCandidateSource()
