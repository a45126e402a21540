from __future__ import annotations
# Engram - Associative Memory Engine
# Copyright (C) 2026 Engram Authors
# SPDX-License-Identifier: Apache-2.0

"""Embedding retrieval subsystem.

Provides:
- Embedding oracle (sentence-transformers)
- Dual-mode similarity search (brute force / ChromaDB HNSW index)
- Hybrid semantic + keyword scoring
- Link-aware result expansion
"""

from engram.memory.rag.candidates import (
    BruteForceCandidateSource,
    CandidateSource,
    IndexCandidateSource,
    select_candidate_source,
)
from engram.memory.rag.embedding import EmbeddingOracle, SentenceTransformerEmbedder
from engram.memory.rag.index import ChromaNeighborIndex, IndexHit, NearestNeighborIndex
from engram.memory.rag.retriever import (
    EmbeddingBatchReport,
    MemoryRetriever,
    build_enhanced_text,
    extract_query_keywords,
)

__all__ = [
    "BruteForceCandidateSource",
    "CandidateSource",
    "ChromaNeighborIndex",
    "EmbeddingBatchReport",
    "EmbeddingOracle",
    "IndexCandidateSource",
    "IndexHit",
    "MemoryRetriever",
    "NearestNeighborIndex",
    "SentenceTransformerEmbedder",
    "build_enhanced_text",
    "extract_query_keywords",
    "select_candidate_source",
]
