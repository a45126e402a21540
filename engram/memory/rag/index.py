from __future__ import annotations
# Engram - Associative Memory Engine
# Copyright (C) 2026 Engram Authors
# SPDX-License-Identifier: Apache-2.0

"""Approximate nearest-neighbor index over memory embeddings.

Provides:
- NearestNeighborIndex: the contract retrieval needs from an accelerated index
- ChromaNeighborIndex: ChromaDB (HNSW, cosine space) implementation

Distances are cosine distances, so ``1 - distance`` is the cosine similarity.
"""

import logging
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

from engram.schemas import Memory

logger = logging.getLogger("engram.rag.index")

DEFAULT_COLLECTION = "engram_memories"


@dataclass
class IndexHit:
    """A nearest-neighbor result."""

    id: str
    distance: float


class NearestNeighborIndex(ABC):
    """Abstract base class for accelerated vector search backends."""

    @abstractmethod
    def is_ready(self) -> bool:
        """Return True when the index can answer queries."""

    @abstractmethod
    def search(self, vector: list[float], k: int, search_breadth: int) -> list[IndexHit]:
        """Return up to *k* nearest neighbors of *vector*, nearest first.

        Args:
            vector: Query embedding
            k: Number of neighbors to return
            search_breadth: HNSW candidate list size (``ef``); larger is
                more accurate and slower
        """

    @abstractmethod
    def upsert(self, memory_id: str, vector: list[float]) -> None:
        """Insert or replace the vector stored for *memory_id*."""

    @abstractmethod
    def remove(self, memory_id: str) -> None:
        """Drop *memory_id* from the index (no-op if absent)."""

    @abstractmethod
    def count(self) -> int:
        """Number of vectors in the index."""


# ── ChromaDB implementation ─────────────────────────────────────────


class ChromaNeighborIndex(NearestNeighborIndex):
    """ChromaDB-backed HNSW index.

    Persists under ``{data_dir}/vectordb`` unless *persist_dir* is given.
    Pass ``ephemeral=True`` for an in-process, non-persistent index.
    """

    def __init__(
        self,
        persist_dir: Path | None = None,
        *,
        collection: str = DEFAULT_COLLECTION,
        search_breadth: int = 50,
        ephemeral: bool = False,
    ) -> None:
        import chromadb

        if ephemeral:
            self.client = chromadb.EphemeralClient()
            self.persist_dir = None
        else:
            if persist_dir is None:
                from engram.paths import get_vectordb_dir

                persist_dir = get_vectordb_dir()
            persist_dir.mkdir(parents=True, exist_ok=True)
            logger.debug("Initializing ChromaDB at %s", persist_dir)
            self.client = chromadb.PersistentClient(path=str(persist_dir))
            self.persist_dir = persist_dir

        self.collection_name = collection
        self.search_breadth = search_breadth
        # ef is fixed per collection in ChromaDB, so it is set at creation.
        self._collection = self.client.get_or_create_collection(
            name=collection,
            metadata={"hnsw:space": "cosine", "hnsw:search_ef": search_breadth},
        )
        self._ready = self._collection.count() > 0

    def is_ready(self) -> bool:
        return self._ready

    def count(self) -> int:
        return self._collection.count()

    def build(
        self,
        memories: list[Memory],
        on_progress: Callable[[int, int], None] | None = None,
        *,
        batch_size: int = 500,
    ) -> int:
        """Index every memory that has an embedding; returns the number indexed."""
        embedded = [m for m in memories if m.embedding is not None]
        total = len(embedded)
        logger.info("Building vector index for %d memories", total)

        for start in range(0, total, batch_size):
            batch = embedded[start:start + batch_size]
            self._collection.upsert(
                ids=[m.id for m in batch],
                embeddings=[m.embedding for m in batch],
            )
            if on_progress:
                on_progress(min(start + batch_size, total), total)

        self._ready = True
        logger.info("Vector index built: %d vectors", self.count())
        return total

    def upsert(self, memory_id: str, vector: list[float]) -> None:
        self._collection.upsert(ids=[memory_id], embeddings=[vector])
        self._ready = True

    def remove(self, memory_id: str) -> None:
        try:
            self._collection.delete(ids=[memory_id])
        except Exception as e:
            logger.warning("Failed to remove %s from vector index: %s", memory_id, e)

    def search(self, vector: list[float], k: int, search_breadth: int) -> list[IndexHit]:
        if search_breadth != self.search_breadth:
            logger.debug(
                "search_breadth=%d requested; collection uses ef=%d",
                search_breadth, self.search_breadth,
            )
        n = min(k, self.count())
        if n <= 0:
            return []

        results = self._collection.query(
            query_embeddings=[vector],
            n_results=n,
            include=["distances"],
        )

        hits: list[IndexHit] = []
        if results["ids"] and results["ids"][0]:
            for i, doc_id in enumerate(results["ids"][0]):
                hits.append(IndexHit(id=doc_id, distance=float(results["distances"][0][i])))
        return hits
