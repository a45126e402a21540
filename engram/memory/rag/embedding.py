from __future__ import annotations
# Engram - Associative Memory Engine
# Copyright (C) 2026 Engram Authors
# SPDX-License-Identifier: Apache-2.0

"""Embedding oracle interface and the sentence-transformers implementation.

Model loading is expensive (a ~130MB download on first use), so
``initialize()`` is idempotent and concurrent callers share a single
in-flight load.
"""

import asyncio
import logging
from abc import ABC, abstractmethod

from engram.config.models import RetrievalConfig
from engram.exceptions import DimensionMismatch, EmbeddingUnavailable
from engram.memory.vector_math import l2_normalize

logger = logging.getLogger("engram.rag.embedding")


class EmbeddingOracle(ABC):
    """Turns text into a fixed-length, L2-normalized vector."""

    dimension: int

    @abstractmethod
    async def initialize(self) -> None:
        """Prepare the model. Safe to call repeatedly and concurrently."""

    @abstractmethod
    def is_ready(self) -> bool:
        """Return True once the model can serve ``embed`` calls."""

    @abstractmethod
    async def embed(self, text: str) -> list[float]:
        """Embed *text*.

        Raises:
            EmbeddingUnavailable: if ``initialize()`` has not completed.
        """


class SentenceTransformerEmbedder(EmbeddingOracle):
    """Local embedding model via sentence-transformers (BGE-small by default)."""

    def __init__(
        self,
        model_name: str = "BAAI/bge-small-en-v1.5",
        *,
        dimension: int = 384,
        use_gpu: bool = False,
    ) -> None:
        self.model_name = model_name
        self.dimension = dimension
        self.use_gpu = use_gpu
        self._model = None
        self._init_task: asyncio.Task[None] | None = None

    @classmethod
    def from_config(cls, config: RetrievalConfig) -> SentenceTransformerEmbedder:
        return cls(
            config.embedding_model,
            dimension=config.embedding_dimension,
            use_gpu=config.use_gpu,
        )

    def is_ready(self) -> bool:
        return self._model is not None

    async def initialize(self) -> None:
        if self._model is not None:
            return
        if self._init_task is None:
            self._init_task = asyncio.create_task(self._load_model())
        task = self._init_task
        try:
            await asyncio.shield(task)
        finally:
            # A failed load is not cached; the next caller retries.
            if task.done() and self._init_task is task:
                self._init_task = None

    async def _load_model(self) -> None:
        logger.info("Loading embedding model: %s", self.model_name)
        model = await asyncio.to_thread(self._build_model)
        model_dim = model.get_sentence_embedding_dimension()
        if model_dim is not None and model_dim != self.dimension:
            raise DimensionMismatch(self.dimension, model_dim)
        self._model = model
        logger.info("Embedding model ready: %s (dimension=%d)", self.model_name, self.dimension)

    def _build_model(self):
        from sentence_transformers import SentenceTransformer

        from engram.paths import get_models_dir

        cache_dir = get_models_dir()
        cache_dir.mkdir(parents=True, exist_ok=True)
        device = "cuda" if self.use_gpu else "cpu"
        return SentenceTransformer(self.model_name, cache_folder=str(cache_dir), device=device)

    async def embed(self, text: str) -> list[float]:
        if self._model is None:
            raise EmbeddingUnavailable(
                f"Embedding model {self.model_name} is not initialized; call initialize() first"
            )
        model = self._model
        vector = await asyncio.to_thread(
            model.encode, text, normalize_embeddings=True, show_progress_bar=False,
        )
        embedding = l2_normalize(vector)
        if len(embedding) != self.dimension:
            raise DimensionMismatch(self.dimension, len(embedding))
        return embedding
