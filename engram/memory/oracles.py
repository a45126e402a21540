from __future__ import annotations
# Engram - Associative Memory Engine
# Copyright (C) 2026 Engram Authors
# SPDX-License-Identifier: Apache-2.0
#
# This file is part of Engram, licensed under Apache-2.0.
# See LICENSE for the full license text.

"""External reasoning oracles: link confirmation, evolution decision, enrichment.

Each oracle is an abstract interface plus a LiteLLM-backed implementation.
LLM answers are untrusted text: they are parsed and validated here, at
the boundary, and anything malformed becomes an :class:`OracleResponseError`
instead of a half-filled object.
"""

import json
import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError

from engram.config.models import OracleConfig
from engram.exceptions import OracleRequestError, OracleResponseError
from engram.paths import load_prompt
from engram.schemas import Candidate, Memory
from engram.time_utils import ms_to_iso

logger = logging.getLogger("engram.oracles")

_JSON_OBJECT_RE = re.compile(r"\{.*\}", re.DOTALL)


# ── Boundary types ──────────────────────────────────────────────


class LinkVerdict(BaseModel):
    """One candidate judged by the link-confirmation oracle."""

    model_config = ConfigDict(populate_by_name=True)

    memory_id: str = Field(
        validation_alias=AliasChoices("memory_id", "memoryId", "targetId", "id"),
    )
    confidence: float = Field(ge=0.0, le=1.0)
    reason: str = ""


class EvolutionDecision(BaseModel):
    """Verdict of the evolution-decision oracle.

    ``keywords``/``tags``/``context`` are ``None`` when the oracle left
    them out; the existing value is kept for omitted fields.
    """

    model_config = ConfigDict(populate_by_name=True)

    should_evolve: bool = Field(
        validation_alias=AliasChoices("should_evolve", "shouldEvolve"),
    )
    keywords: list[str] | None = None
    tags: list[str] | None = None
    context: str | None = None
    reason: str = ""

    @classmethod
    def negative(cls, reason: str) -> EvolutionDecision:
        return cls(should_evolve=False, reason=reason)


class EnrichmentResult(BaseModel):
    """Semantic metadata extracted for a single memory."""

    keywords: list[str]
    tags: list[str]
    context: str


# ── Parsing ─────────────────────────────────────────────────────


def parse_json_object(text: str, *, oracle: str = "") -> dict[str, Any]:
    """Extract the first JSON object from model output.

    Models often wrap JSON in prose or code fences, so a direct parse is
    tried first and then the outermost ``{...}`` span.
    """
    stripped = (text or "").strip()
    if not stripped:
        raise OracleResponseError("Empty response", oracle=oracle)

    try:
        data = json.loads(stripped)
    except json.JSONDecodeError:
        match = _JSON_OBJECT_RE.search(stripped)
        if not match:
            raise OracleResponseError("No JSON object found in response", oracle=oracle)
        try:
            data = json.loads(match.group())
        except json.JSONDecodeError as e:
            raise OracleResponseError(f"Invalid JSON in response: {e}", oracle=oracle) from e

    if not isinstance(data, dict):
        raise OracleResponseError(
            f"Expected a JSON object, got {type(data).__name__}", oracle=oracle,
        )
    return data


def parse_link_verdicts(data: dict[str, Any]) -> list[LinkVerdict]:
    """Validate a ``{"links": [...]}`` payload.

    Individual malformed entries are dropped; a missing or non-list
    ``links`` field rejects the whole response.
    """
    raw_links = data.get("links")
    if not isinstance(raw_links, list):
        raise OracleResponseError("Response is missing a 'links' list", oracle="link_confirmation")

    verdicts: list[LinkVerdict] = []
    for raw in raw_links:
        try:
            verdicts.append(LinkVerdict.model_validate(raw))
        except ValidationError as e:
            logger.debug("Dropping malformed link verdict %r: %s", raw, e)
    return verdicts


def parse_evolution_decision(data: dict[str, Any]) -> EvolutionDecision:
    try:
        return EvolutionDecision.model_validate(data)
    except ValidationError as e:
        raise OracleResponseError(
            f"Malformed evolution decision: {e}", oracle="evolution_decision",
        ) from e


def parse_enrichment(data: dict[str, Any]) -> EnrichmentResult:
    try:
        return EnrichmentResult.model_validate(data)
    except ValidationError as e:
        raise OracleResponseError(
            f"Malformed enrichment response: {e}", oracle="enrichment",
        ) from e


# ── Usage tracking ──────────────────────────────────────────────


@dataclass
class OracleUsage:
    """Token and cost totals for one client."""

    calls: int = 0
    total_tokens: int = 0
    total_cost: float = 0.0

    def reset(self) -> None:
        self.calls = 0
        self.total_tokens = 0
        self.total_cost = 0.0


# ── LiteLLM client ──────────────────────────────────────────────


def normalize_local_endpoint(endpoint: str) -> str:
    """Turn a user-supplied OpenAI-compatible endpoint into an ``api_base``.

    ``http://localhost:11434``, ``http://localhost:11434/`` and
    ``http://localhost:11434/v1/chat/completions`` all become
    ``http://localhost:11434/v1``.
    """
    base = endpoint.strip()
    if base.endswith("/chat/completions"):
        base = base[: -len("/chat/completions")]
    base = base.rstrip("/")
    if not base.endswith("/v1"):
        base = f"{base}/v1"
    return base


class LiteLLMClient:
    """Thin JSON-completion wrapper around ``litellm.acompletion``."""

    def __init__(self, config: OracleConfig, *, name: str = "oracle") -> None:
        self.config = config
        self.name = name
        self.usage = OracleUsage()

    def _completion_kwargs(self) -> dict[str, Any]:
        cfg = self.config
        model = cfg.resolved_model()
        kwargs: dict[str, Any] = {
            "temperature": cfg.temperature,
            "max_tokens": cfg.max_tokens,
            "timeout": cfg.timeout_s,
        }
        if cfg.provider == "local":
            kwargs["model"] = f"openai/{model}"
            kwargs["api_base"] = normalize_local_endpoint(cfg.local_endpoint or "")
            kwargs["api_key"] = cfg.api_key or "local"
        else:
            kwargs["model"] = model if "/" in model else f"{cfg.provider}/{model}"
            kwargs["api_key"] = cfg.api_key
            if cfg.provider == "openai":
                kwargs["response_format"] = {"type": "json_object"}
        return kwargs

    async def complete_json(self, prompt: str, *, system: str = "") -> dict[str, Any]:
        """Send *prompt* and return the parsed JSON object from the reply.

        Raises:
            OracleRequestError: the provider call failed.
            OracleResponseError: the reply carried no usable JSON object.
        """
        import litellm

        messages: list[dict[str, str]] = []
        if system:
            messages.append({"role": "system", "content": system})
        messages.append({"role": "user", "content": prompt})

        try:
            response = await litellm.acompletion(
                messages=messages,
                **self._completion_kwargs(),
            )
        except Exception as e:
            raise OracleRequestError(f"{self.name} request failed: {e}", oracle=self.name) from e

        self._track_usage(response)

        try:
            text = response.choices[0].message.content or ""
        except (AttributeError, IndexError, TypeError) as e:
            raise OracleResponseError(
                f"Unexpected completion shape: {e}", oracle=self.name,
            ) from e
        return parse_json_object(text, oracle=self.name)

    def _track_usage(self, response: Any) -> None:
        self.usage.calls += 1
        usage = getattr(response, "usage", None)
        if usage is not None:
            try:
                self.usage.total_tokens += int(usage.prompt_tokens) + int(usage.completion_tokens)
            except (AttributeError, TypeError, ValueError):
                logger.debug("No token usage on %s response", self.name)

        if self.config.provider == "local":
            return
        try:
            import litellm

            self.usage.total_cost += float(litellm.completion_cost(completion_response=response))
        except Exception as e:
            # Unknown model pricing is common for new models.
            logger.debug("Cost estimate unavailable for %s: %s", self.name, e)


# ── Oracle interfaces ───────────────────────────────────────────


class LinkConfirmationOracle(ABC):
    """Judges which similarity candidates are genuinely related to a source memory."""

    @abstractmethod
    async def confirm(
        self, source: Memory, candidates: list[Candidate],
    ) -> list[LinkVerdict]:
        """Return one verdict per candidate worth considering (may be fewer)."""


class EvolutionDecisionOracle(ABC):
    """Decides whether a target memory's metadata should absorb a new memory."""

    @abstractmethod
    async def decide(self, target: Memory, new_memory: Memory) -> EvolutionDecision:
        """Return the evolution verdict for *target*."""


class EnrichmentOracle(ABC):
    """Derives keywords, tags and context for a memory."""

    @abstractmethod
    async def enrich(self, memory: Memory) -> EnrichmentResult:
        """Return metadata for *memory*."""


# ── LiteLLM implementations ─────────────────────────────────────


def _join(values: list[str] | None, sep: str = ", ", empty: str = "none") -> str:
    return sep.join(values) if values else empty


def _format_source(memory: Memory) -> str:
    lines = [f"Content: {memory.text}"]
    if memory.keywords:
        lines.append(f"Keywords: {', '.join(memory.keywords)}")
    if memory.tags:
        lines.append(f"Tags: {', '.join(memory.tags)}")
    if memory.context:
        lines.append(f"Context: {memory.context}")
    return "\n".join(lines)


def _format_candidates(candidates: list[Candidate]) -> str:
    blocks: list[str] = []
    for i, cand in enumerate(candidates, start=1):
        mem = cand.memory
        lines = [f"{i}. ID: {mem.id}", f"   Content: {mem.text}"]
        if mem.keywords:
            lines.append(f"   Keywords: {', '.join(mem.keywords)}")
        if mem.context:
            lines.append(f"   Context: {mem.context}")
        lines.append(f"   Similarity Score: {cand.score:.2f}")
        blocks.append("\n".join(lines))
    return "\n\n".join(blocks)


class LiteLLMLinkOracle(LinkConfirmationOracle):
    SYSTEM_PROMPT = "You analyze semantic connections between memories. Respond only with JSON."

    def __init__(self, config: OracleConfig, client: LiteLLMClient | None = None) -> None:
        self.client = client or LiteLLMClient(config, name="link_confirmation")

    async def confirm(
        self, source: Memory, candidates: list[Candidate],
    ) -> list[LinkVerdict]:
        prompt = load_prompt(
            "memory/link_detection",
            source=_format_source(source),
            candidates=_format_candidates(candidates),
        )
        data = await self.client.complete_json(prompt, system=self.SYSTEM_PROMPT)
        return parse_link_verdicts(data)


class LiteLLMEvolutionOracle(EvolutionDecisionOracle):
    SYSTEM_PROMPT = (
        "You are an expert at analyzing relationships between pieces of "
        "information and determining when historical data should be updated. "
        "Respond only with valid JSON."
    )

    def __init__(self, config: OracleConfig, client: LiteLLMClient | None = None) -> None:
        self.client = client or LiteLLMClient(config, name="evolution_decision")

    async def decide(self, target: Memory, new_memory: Memory) -> EvolutionDecision:
        prompt = load_prompt(
            "memory/evolution_check",
            target_text=target.text,
            target_keywords=_join(target.keywords, empty=""),
            target_tags=_join(target.tags, empty=""),
            target_context=target.context,
            target_created=ms_to_iso(target.timestamp),
            new_text=new_memory.text,
            new_keywords=_join(new_memory.keywords),
            new_tags=_join(new_memory.tags),
            new_context=new_memory.context or "none",
            new_created=ms_to_iso(new_memory.timestamp),
        )
        data = await self.client.complete_json(prompt, system=self.SYSTEM_PROMPT)
        return parse_evolution_decision(data)


class LiteLLMEnrichmentOracle(EnrichmentOracle):
    SYSTEM_PROMPT = "You extract metadata from text. Respond only with JSON."

    def __init__(self, config: OracleConfig, client: LiteLLMClient | None = None) -> None:
        self.client = client or LiteLLMClient(config, name="enrichment")

    async def enrich(self, memory: Memory) -> EnrichmentResult:
        prompt = load_prompt(
            "memory/enrichment",
            platform=memory.platform or "unknown",
            role=memory.role or "user",
            timestamp=ms_to_iso(memory.timestamp),
            content=memory.text,
        )
        data = await self.client.complete_json(prompt, system=self.SYSTEM_PROMPT)
        return parse_enrichment(data)
