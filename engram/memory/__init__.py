# Engram - Associative Memory Engine
# Copyright (C) 2026 Engram Authors
# SPDX-License-Identifier: Apache-2.0

from __future__ import annotations

from engram.memory.enrichment import EnrichmentService, EnrichmentStats
from engram.memory.evolution import EvolutionEngine, EvolutionStats, resolve_version_index
from engram.memory.links import LinkGraphMaintainer, LinkStats
from engram.memory.pipeline import CaptureReport, MemoryPipeline
from engram.memory.rag.retriever import MemoryRetriever
from engram.memory.store import InMemoryMemoryStore, MemoryStore

__all__ = [
    "CaptureReport",
    "EnrichmentService",
    "EnrichmentStats",
    "EvolutionEngine",
    "EvolutionStats",
    "InMemoryMemoryStore",
    "LinkGraphMaintainer",
    "LinkStats",
    "MemoryPipeline",
    "MemoryRetriever",
    "MemoryStore",
    "resolve_version_index",
]
