from __future__ import annotations
# Engram - Associative Memory Engine
# Copyright (C) 2026 Engram Authors
# SPDX-License-Identifier: Apache-2.0
#
# This file is part of Engram, licensed under Apache-2.0.
# See LICENSE for the full license text.

"""Unified exception hierarchy for Engram.

All domain-specific exceptions derive from :class:`EngramError`,
enabling callers to catch the entire family with a single clause::

    try:
        ...
    except EngramError as e:
        logger.error("Domain error: %s", e)
"""


class EngramError(Exception):
    """Base exception for all Engram errors."""


# ── Embedding ────────────────────────────────────────────────


class EmbeddingError(EngramError):
    """Embedding generation and vector comparison errors."""


class EmbeddingUnavailable(EmbeddingError):
    """The embedding oracle has not been initialized."""


class DimensionMismatch(EmbeddingError):
    """Two vectors (or a vector and the model) disagree on dimensionality."""

    def __init__(self, expected: int, actual: int) -> None:
        super().__init__(
            f"Embedding dimension mismatch: expected {expected}, got {actual}"
        )
        self.expected = expected
        self.actual = actual


# ── Oracles ──────────────────────────────────────────────────


class OracleError(EngramError):
    """Failure talking to an external oracle (network, HTTP, parse)."""

    def __init__(self, message: str, *, oracle: str = "") -> None:
        super().__init__(message)
        self.oracle = oracle


class OracleRequestError(OracleError):
    """The oracle call itself failed (provider error, timeout, auth)."""


class OracleResponseError(OracleError):
    """The oracle answered with a malformed or incomplete payload."""


# ── Evolution ────────────────────────────────────────────────


class EvolutionError(EngramError):
    """Metadata evolution errors."""


class InvalidVersionIndex(EvolutionError):
    """Revert target is outside the memory's evolution history."""

    def __init__(self, memory_id: str, version_index: int, history_len: int) -> None:
        super().__init__(
            f"Invalid version index {version_index} for memory {memory_id} "
            f"(history has {history_len} entries)"
        )
        self.memory_id = memory_id
        self.version_index = version_index
        self.history_len = history_len


# ── Configuration ────────────────────────────────────────────


class ConfigError(EngramError):
    """Configuration errors."""


class ConfigValidationError(ConfigError):
    """Configuration validation failure."""
