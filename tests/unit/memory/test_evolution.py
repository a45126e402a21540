"""Unit tests for engram.memory.evolution: reversible metadata evolution."""
# Engram - Associative Memory Engine
# Copyright (C) 2026 Engram Authors
# SPDX-License-Identifier: Apache-2.0

from __future__ import annotations

import random

import pytest

from engram.config.models import EvolutionConfig, OracleConfig
from engram.exceptions import InvalidVersionIndex, OracleResponseError
from engram.memory.evolution import EvolutionEngine, resolve_version_index
from engram.memory.oracles import EvolutionDecision
from engram.schemas import EvolutionSnapshot, EvolutionState, Link, Memory
from tests.helpers.mocks import FakeEvolutionOracle, make_memory


def _engine(limiter, oracle=None, oracle_config=None, **evolution_kwargs) -> EvolutionEngine:
    return EvolutionEngine(
        oracle if oracle is not None else FakeEvolutionOracle(),
        limiter,
        oracle_config=oracle_config or OracleConfig(api_key="test-key"),
        config=EvolutionConfig(**evolution_kwargs),
    )


def _memory() -> Memory:
    return make_memory(
        "m", "Use the implicit flow for SPAs",
        keywords=["oauth", "implicit"], tags=["auth"], context="Legacy OAuth advice",
    )


def _evolve(n: int = 0) -> EvolutionDecision:
    return EvolutionDecision(
        should_evolve=True,
        keywords=[f"k{n}"],
        tags=[f"t{n}"],
        context=f"context {n}",
        reason="newer info",
    )


def _metadata(m: Memory) -> tuple[list[str], list[str], str]:
    return (list(m.keywords), list(m.tags), m.context)


# ── Decision ──────────────────────────────────────────────


class TestCheckEvolution:
    @pytest.mark.asyncio
    async def test_returns_oracle_verdict(self, limiter) -> None:
        oracle = FakeEvolutionOracle(_evolve(1))
        engine = _engine(limiter, oracle)

        decision = await engine.check_evolution(_memory(), make_memory("new"))

        assert decision.should_evolve
        assert decision.keywords == ["k1"]
        assert oracle.calls == [("m", "new")]
        assert limiter.in_window() == 1

    @pytest.mark.asyncio
    async def test_disabled_is_negative_without_call(self, limiter) -> None:
        oracle = FakeEvolutionOracle(_evolve())
        engine = _engine(limiter, oracle, oracle_config=OracleConfig(api_key="k", enable_evolution=False))

        decision = await engine.check_evolution(_memory(), make_memory("new"))

        assert not decision.should_evolve
        assert oracle.calls == []
        assert limiter.in_window() == 0

    @pytest.mark.asyncio
    async def test_uncredentialed_is_negative(self, limiter) -> None:
        engine = _engine(limiter, FakeEvolutionOracle(_evolve()), oracle_config=OracleConfig())
        assert not (await engine.check_evolution(_memory(), make_memory("new"))).should_evolve

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "error",
        [ConnectionError("network down"), OracleResponseError("missing shouldEvolve")],
        ids=["network", "malformed"],
    )
    async def test_failure_is_negative_with_reason(self, limiter, error: Exception) -> None:
        engine = _engine(limiter, FakeEvolutionOracle(error))

        decision = await engine.check_evolution(_memory(), make_memory("new"))

        assert not decision.should_evolve
        assert decision.reason.startswith("Error")


class TestSelectEvolutionTargets:
    def test_only_strong_links_top_five(self, limiter) -> None:
        engine = _engine(limiter)
        links = [Link(f"m{i}", 0.75 + i * 0.03) for i in range(8)]

        targets = engine.select_evolution_targets(links)

        assert [t.memory_id for t in targets] == ["m7", "m6", "m5", "m4", "m3"]
        assert all(t.score > 0.8 for t in targets)

    def test_threshold_exclusive(self, limiter) -> None:
        engine = _engine(limiter)
        assert engine.select_evolution_targets([Link("a", 0.8)]) == []


# ── Apply ─────────────────────────────────────────────────


class TestApplyEvolution:
    def test_negative_decision_is_noop(self, limiter) -> None:
        m = _memory()
        applied = _engine(limiter).apply_evolution(m, EvolutionDecision.negative("no"), "new")
        assert applied is False
        assert m.evolution is None

    def test_applies_and_records(self, limiter) -> None:
        m = _memory()
        before = _metadata(m)

        assert _engine(limiter).apply_evolution(m, _evolve(1), "new-1")

        assert _metadata(m) == (["k1"], ["t1"], "context 1")
        state = m.evolution
        assert state.update_count == 1
        assert state.triggered_by == ["new-1"]
        assert len(state.history) == 1
        h = state.history[0]
        assert (h.keywords, h.tags, h.context) == before
        assert state.last_updated > 0

    def test_omitted_fields_kept(self, limiter) -> None:
        m = _memory()
        decision = EvolutionDecision(should_evolve=True, tags=["security"], reason="r")

        _engine(limiter).apply_evolution(m, decision, "new")

        assert m.keywords == ["oauth", "implicit"]
        assert m.tags == ["security"]
        assert m.context == "Legacy OAuth advice"

    def test_history_and_triggers_bounded(self, limiter) -> None:
        m = _memory()
        engine = _engine(limiter)
        for i in range(15):
            engine.apply_evolution(m, _evolve(i), f"new-{i}")

        state = m.evolution
        assert len(state.history) == 10
        assert len(state.triggered_by) == 10
        assert state.triggered_by[0] == "new-5"
        assert state.triggered_by[-1] == "new-14"
        # oldest dropped: entry 0 now holds the state before evolution #5
        assert state.history[0].keywords == ["k4"]
        assert state.update_count == 15


# ── Revert ────────────────────────────────────────────────


class TestRevertEvolution:
    def test_round_trip_restores_metadata(self, limiter) -> None:
        m = _memory()
        engine = _engine(limiter)
        before = _metadata(m)

        engine.apply_evolution(m, _evolve(1), "new")
        assert engine.revert_evolution(m, -1)

        assert _metadata(m) == before
        assert len(m.evolution.history) == 2

    def test_revert_is_itself_revertible(self, limiter) -> None:
        m = _memory()
        engine = _engine(limiter)
        engine.apply_evolution(m, _evolve(1), "new")
        evolved = _metadata(m)

        engine.revert_evolution(m, -1)
        engine.revert_evolution(m, -1)

        assert _metadata(m) == evolved

    def test_index_zero_with_single_entry(self, limiter) -> None:
        m = _memory()
        m.evolution = EvolutionState(history=[EvolutionSnapshot(["old"], ["t"], "old context")])
        current = _metadata(m)

        assert _engine(limiter).revert_evolution(m, 0)

        assert _metadata(m) == (["old"], ["t"], "old context")
        assert len(m.evolution.history) == 2
        assert (m.evolution.history[1].keywords, m.evolution.history[1].tags,
                m.evolution.history[1].context) == current

    def test_negative_index_counts_from_end(self, limiter) -> None:
        m = _memory()
        engine = _engine(limiter)
        for i in range(3):
            engine.apply_evolution(m, _evolve(i), f"new-{i}")

        engine.revert_evolution(m, -2)

        # history: [original, k0, k1]; -2 is the state before evolution #1
        assert m.keywords == ["k0"]

    def test_revert_at_full_history_uses_entry_before_push(self, limiter) -> None:
        m = _memory()
        engine = _engine(limiter)
        for i in range(12):
            engine.apply_evolution(m, _evolve(i), f"new-{i}")
        oldest = m.evolution.history[0].keywords

        assert engine.revert_evolution(m, 0)

        assert m.keywords == oldest
        assert len(m.evolution.history) == 10

    @pytest.mark.parametrize("index", [1, 5, -2, -10])
    def test_out_of_range_fails(self, limiter, index: int) -> None:
        m = _memory()
        m.evolution = EvolutionState(history=[EvolutionSnapshot(["old"], [], "")])
        before = _metadata(m)

        assert _engine(limiter).revert_evolution(m, index) is False
        assert _metadata(m) == before
        assert len(m.evolution.history) == 1

    def test_no_history_fails(self, limiter) -> None:
        assert _engine(limiter).revert_evolution(_memory(), 0) is False
        assert _engine(limiter).revert_evolution(_memory(), -1) is False

    def test_resolve_version_index(self) -> None:
        m = _memory()
        m.evolution = EvolutionState(history=[EvolutionSnapshot([], [], str(i)) for i in range(3)])
        assert resolve_version_index(m, -1) == 2
        assert resolve_version_index(m, 0) == 0
        with pytest.raises(InvalidVersionIndex):
            resolve_version_index(m, 3)
        with pytest.raises(InvalidVersionIndex):
            resolve_version_index(m, -4)


class TestBounds:
    def test_bounds_hold_under_random_sequences(self, limiter) -> None:
        rng = random.Random(11)
        engine = _engine(limiter)
        m = _memory()
        for i in range(200):
            if rng.random() < 0.6:
                engine.apply_evolution(m, _evolve(i), f"new-{i}")
            else:
                engine.revert_evolution(m, rng.randint(-12, 12))
            if m.evolution is not None:
                assert len(m.evolution.history) <= 10
                assert len(m.evolution.triggered_by) <= 10


class TestStats:
    @pytest.mark.asyncio
    async def test_counts(self, limiter) -> None:
        engine = _engine(limiter, FakeEvolutionOracle(_evolve(1)))
        m = _memory()
        decision = await engine.check_evolution(m, make_memory("new"))
        engine.apply_evolution(m, decision, "new")
        await engine.check_evolution(m, make_memory("new2"))

        stats = engine.get_stats()
        assert stats.checks_performed == 2
        assert stats.evolutions_applied == 1
        assert stats.avg_evolutions_per_check == pytest.approx(0.5)

        engine.reset_stats()
        assert engine.get_stats().checks_performed == 0
