from __future__ import annotations
# Engram - Associative Memory Engine
# Copyright (C) 2026 Engram Authors
# SPDX-License-Identifier: Apache-2.0
#
# This file is part of Engram, licensed under Apache-2.0.
# See LICENSE for the full license text.

"""Memory records and the value types that travel with them.

``Memory`` is a mutable record: enrichment, link maintenance and
evolution all write into the same instance.  Callers must serialize
work on a given memory id; nothing here takes a lock.
"""

import copy
from dataclasses import dataclass, field
from typing import Any

from engram.time_utils import now_ms

# ── Bounds ────────────────────────────────────────────────

EMBEDDING_DIMENSION = 384
MAX_LINKS = 10
LINK_CONFIDENCE_THRESHOLD = 0.7
MAX_EVOLUTION_HISTORY = 10
MAX_TRIGGERED_BY = 10


# ── Links ─────────────────────────────────────────────────


@dataclass
class Link:
    """A confirmed, scored relationship to another memory."""

    memory_id: str
    score: float
    reason: str = ""
    created_at: int = field(default_factory=now_ms)

    def to_dict(self) -> dict[str, Any]:
        return {
            "memory_id": self.memory_id,
            "score": self.score,
            "reason": self.reason,
            "created_at": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Link:
        return cls(
            memory_id=str(data.get("memory_id") or data.get("memoryId") or ""),
            score=float(data.get("score", 0.0)),
            reason=str(data.get("reason") or ""),
            created_at=int(data.get("created_at") or data.get("createdAt") or now_ms()),
        )


# ── Evolution ─────────────────────────────────────────────


@dataclass
class EvolutionSnapshot:
    """A past value of a memory's mutable metadata."""

    keywords: list[str]
    tags: list[str]
    context: str
    timestamp: int = field(default_factory=now_ms)

    @classmethod
    def of(cls, memory: Memory) -> EvolutionSnapshot:
        """Capture *memory*'s current keywords/tags/context."""
        return cls(
            keywords=list(memory.keywords),
            tags=list(memory.tags),
            context=memory.context,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "keywords": list(self.keywords),
            "tags": list(self.tags),
            "context": self.context,
            "timestamp": self.timestamp,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> EvolutionSnapshot:
        return cls(
            keywords=list(data.get("keywords") or []),
            tags=list(data.get("tags") or []),
            context=str(data.get("context") or ""),
            timestamp=int(data.get("timestamp") or 0),
        )


@dataclass
class EvolutionState:
    """Evolution bookkeeping: counters, trigger ids and a bounded history log."""

    update_count: int = 0
    last_updated: int = field(default_factory=now_ms)
    triggered_by: list[str] = field(default_factory=list)
    history: list[EvolutionSnapshot] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "update_count": self.update_count,
            "last_updated": self.last_updated,
            "triggered_by": list(self.triggered_by),
            "history": [h.to_dict() for h in self.history],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> EvolutionState:
        return cls(
            update_count=int(data.get("update_count", data.get("updateCount", 0)) or 0),
            last_updated=int(data.get("last_updated", data.get("lastUpdated", 0)) or 0),
            triggered_by=[
                str(t) for t in (data.get("triggered_by") or data.get("triggeredBy") or [])
            ],
            history=[EvolutionSnapshot.from_dict(h) for h in data.get("history") or []],
        )


# ── Memory ────────────────────────────────────────────────


@dataclass
class Memory:
    """A captured conversational turn plus its derived semantic metadata.

    ``id``, ``text``, ``role``, ``platform``, ``conversation_id`` and
    ``timestamp`` are provenance and never change after creation.
    """

    id: str
    text: str
    role: str = "user"
    platform: str = ""
    conversation_id: str = ""
    timestamp: int = field(default_factory=now_ms)
    keywords: list[str] = field(default_factory=list)
    tags: list[str] = field(default_factory=list)
    context: str = ""
    embedding: list[float] | None = None
    links: list[Link] = field(default_factory=list)
    evolution: EvolutionState | None = None

    def linked_ids(self) -> set[str]:
        return {link.memory_id for link in self.links or []}

    def copy(self) -> Memory:
        """Deep copy, so callers can hand out records without aliasing."""
        return copy.deepcopy(self)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "text": self.text,
            "role": self.role,
            "platform": self.platform,
            "conversation_id": self.conversation_id,
            "timestamp": self.timestamp,
            "keywords": list(self.keywords),
            "tags": list(self.tags),
            "context": self.context,
            "embedding": list(self.embedding) if self.embedding is not None else None,
            "links": [link.to_dict() for link in self.links or []],
            "evolution": self.evolution.to_dict() if self.evolution else None,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Memory:
        """Build a memory from a stored record.

        Missing metadata fields are treated as empty.  Records written by
        the browser extension (camelCase keys, ``content.text``) are accepted.
        """
        content = data.get("content")
        text = data.get("text")
        role = data.get("role")
        if isinstance(content, dict):
            text = text or content.get("text", "")
            role = role or content.get("role")
        embedding = data.get("embedding")
        evolution = data.get("evolution")
        return cls(
            id=str(data["id"]),
            text=str(text or ""),
            role=str(role or "user"),
            platform=str(data.get("platform") or ""),
            conversation_id=str(
                data.get("conversation_id") or data.get("conversationId") or ""
            ),
            timestamp=int(data.get("timestamp") or now_ms()),
            keywords=list(data.get("keywords") or []),
            tags=list(data.get("tags") or []),
            context=str(data.get("context") or ""),
            embedding=[float(x) for x in embedding] if embedding is not None else None,
            links=[Link.from_dict(link) for link in data.get("links") or []],
            evolution=EvolutionState.from_dict(evolution) if evolution else None,
        )


# ── Retrieval ─────────────────────────────────────────────


@dataclass
class Candidate:
    """Ephemeral scoring record from retrieval and link detection."""

    memory: Memory
    score: float
