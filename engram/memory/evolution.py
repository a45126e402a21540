from __future__ import annotations
# Engram - Associative Memory Engine
# Copyright (C) 2026 Engram Authors
# SPDX-License-Identifier: Apache-2.0
#
# This file is part of Engram, licensed under Apache-2.0.
# See LICENSE for the full license text.

"""Reversible metadata evolution.

When a new memory carries information that refines an older, strongly
linked one, the older memory's keywords/tags/context are updated.  Every
change (evolve or revert) first snapshots the current metadata into a
bounded history, so any change can be undone, including a revert.
"""

import logging
from dataclasses import asdict, dataclass

from engram.config.models import EvolutionConfig, OracleConfig
from engram.exceptions import InvalidVersionIndex
from engram.memory.oracles import EvolutionDecision, EvolutionDecisionOracle
from engram.rate_limiter import SlidingWindowRateLimiter
from engram.schemas import EvolutionSnapshot, EvolutionState, Link, Memory
from engram.time_utils import now_ms

logger = logging.getLogger("engram.memory.evolution")


@dataclass
class EvolutionStats:
    """Running totals for evolution checks."""

    evolutions_applied: int = 0
    checks_performed: int = 0
    avg_evolutions_per_check: float = 0.0
    total_tokens: int = 0
    total_cost: float = 0.0

    def to_dict(self) -> dict:
        return asdict(self)


def resolve_version_index(memory: Memory, version_index: int) -> int:
    """Map *version_index* (negative counts from the end) to a history position.

    Raises:
        InvalidVersionIndex: no history, or the index is out of range.
    """
    history = memory.evolution.history if memory.evolution else []
    n = len(history)
    resolved = version_index + n if version_index < 0 else version_index
    if not 0 <= resolved < n:
        raise InvalidVersionIndex(memory.id, version_index, n)
    return resolved


class EvolutionEngine:
    """Applies oracle-approved metadata updates with undo support."""

    def __init__(
        self,
        oracle: EvolutionDecisionOracle | None,
        rate_limiter: SlidingWindowRateLimiter,
        *,
        oracle_config: OracleConfig | None = None,
        config: EvolutionConfig | None = None,
    ) -> None:
        self.oracle = oracle
        self.rate_limiter = rate_limiter
        self.oracle_config = oracle_config or OracleConfig()
        self.config = config or EvolutionConfig()
        self._evolutions_applied = 0
        self._checks_performed = 0

    def is_enabled(self) -> bool:
        cfg = self.oracle_config
        return (
            cfg.enabled
            and cfg.enable_evolution
            and cfg.has_credentials()
            and self.oracle is not None
        )

    def select_evolution_targets(self, links: list[Link]) -> list[Link]:
        """Strongest links worth an evolution check, best first."""
        strong = [link for link in links if link.score > self.config.min_link_score]
        strong.sort(key=lambda link: link.score, reverse=True)
        return strong[: self.config.max_checks_per_memory]

    # ── Decision ────────────────────────────────────────────────

    async def check_evolution(self, target: Memory, new_memory: Memory) -> EvolutionDecision:
        """Ask the oracle whether *target* should absorb *new_memory*.

        Always returns a decision; failures become a negative decision
        whose ``reason`` starts with ``"Error"``.
        """
        if not self.is_enabled():
            return EvolutionDecision.negative("Evolution disabled")

        await self.rate_limiter.acquire()
        self._checks_performed += 1
        try:
            decision = await self.oracle.decide(target, new_memory)
        except Exception as e:
            logger.warning("Evolution check failed for %s: %s", target.id, e)
            return EvolutionDecision.negative(f"Error checking evolution: {e}")

        logger.debug(
            "Evolution decision for %s: should_evolve=%s (%s)",
            target.id, decision.should_evolve, decision.reason,
        )
        return decision

    # ── Mutation ────────────────────────────────────────────────

    def _push_history(self, memory: Memory) -> None:
        state = memory.evolution
        state.history.append(EvolutionSnapshot.of(memory))
        overflow = len(state.history) - self.config.history_limit
        if overflow > 0:
            del state.history[:overflow]

    def apply_evolution(
        self,
        memory: Memory,
        decision: EvolutionDecision,
        triggered_by_id: str,
    ) -> bool:
        """Overwrite *memory*'s metadata with *decision*; returns True if applied.

        The caller must regenerate the memory's embedding afterwards.
        """
        if not decision.should_evolve:
            return False

        if memory.evolution is None:
            memory.evolution = EvolutionState()
        self._push_history(memory)

        if decision.keywords is not None:
            memory.keywords = list(decision.keywords)
        if decision.tags is not None:
            memory.tags = list(decision.tags)
        if decision.context is not None:
            memory.context = decision.context

        state = memory.evolution
        state.update_count += 1
        state.last_updated = now_ms()
        state.triggered_by.append(triggered_by_id)
        overflow = len(state.triggered_by) - self.config.triggered_by_limit
        if overflow > 0:
            del state.triggered_by[:overflow]

        self._evolutions_applied += 1
        logger.info(
            "Evolved memory %s (update %d, triggered by %s): %s",
            memory.id, state.update_count, triggered_by_id, decision.reason,
        )
        return True

    def revert_evolution(self, memory: Memory, version_index: int) -> bool:
        """Restore metadata from history entry *version_index* (``-1`` = latest).

        The pre-revert state is pushed to history first, so a revert can
        itself be reverted.  Returns False for a missing or out-of-range
        entry.
        """
        try:
            position = resolve_version_index(memory, version_index)
        except InvalidVersionIndex as e:
            logger.warning("Cannot revert: %s", e)
            return False

        state = memory.evolution
        entry = state.history[position]
        self._push_history(memory)

        memory.keywords = list(entry.keywords)
        memory.tags = list(entry.tags)
        memory.context = entry.context
        state.last_updated = now_ms()

        logger.info("Reverted memory %s to history entry %d", memory.id, version_index)
        return True

    # ── Stats ───────────────────────────────────────────────────

    def get_stats(self) -> EvolutionStats:
        checks = self._checks_performed
        stats = EvolutionStats(
            evolutions_applied=self._evolutions_applied,
            checks_performed=checks,
            avg_evolutions_per_check=self._evolutions_applied / checks if checks else 0.0,
        )
        usage = getattr(getattr(self.oracle, "client", None), "usage", None)
        if usage is not None:
            stats.total_tokens = usage.total_tokens
            stats.total_cost = usage.total_cost
        return stats

    def reset_stats(self) -> None:
        self._evolutions_applied = 0
        self._checks_performed = 0
        usage = getattr(getattr(self.oracle, "client", None), "usage", None)
        if usage is not None:
            usage.reset()
