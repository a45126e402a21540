from __future__ import annotations
# Engram - Associative Memory Engine
# Copyright (C) 2026 Engram Authors
# SPDX-License-Identifier: Apache-2.0

"""Memory persistence contract and an in-process implementation."""

import logging
from abc import ABC, abstractmethod

from engram.schemas import Memory

logger = logging.getLogger("engram.memory.store")


class MemoryStore(ABC):
    """Keyed storage of memories by id."""

    @abstractmethod
    async def get(self, memory_id: str) -> Memory | None:
        """Return the memory or None."""

    @abstractmethod
    async def put(self, memory: Memory) -> None:
        """Insert or replace *memory*."""

    @abstractmethod
    async def bulk_put(self, memories: list[Memory]) -> None:
        """Insert or replace all *memories*."""

    @abstractmethod
    async def all(self) -> list[Memory]:
        """Return every stored memory."""


class InMemoryMemoryStore(MemoryStore):
    """Dict-backed store.  Records are copied in and out, so callers never alias them."""

    def __init__(self, memories: list[Memory] | None = None) -> None:
        self._memories: dict[str, Memory] = {}
        for memory in memories or []:
            self._memories[memory.id] = memory.copy()

    def __len__(self) -> int:
        return len(self._memories)

    async def get(self, memory_id: str) -> Memory | None:
        memory = self._memories.get(memory_id)
        return memory.copy() if memory is not None else None

    async def put(self, memory: Memory) -> None:
        self._memories[memory.id] = memory.copy()

    async def bulk_put(self, memories: list[Memory]) -> None:
        for memory in memories:
            self._memories[memory.id] = memory.copy()
        logger.debug("Stored %d memories", len(memories))

    async def all(self) -> list[Memory]:
        return [m.copy() for m in self._memories.values()]
