# Engram - Associative Memory Engine
# Copyright (C) 2026 Engram Authors
# SPDX-License-Identifier: Apache-2.0

from __future__ import annotations

from engram.config.models import (
    EngramConfig,
    EnrichmentConfig,
    EvolutionConfig,
    LinkConfig,
    OracleConfig,
    RateLimitConfig,
    RetrievalConfig,
    get_config_path,
    invalidate_cache,
    load_config,
    save_config,
)

__all__ = [
    "EngramConfig",
    "EnrichmentConfig",
    "EvolutionConfig",
    "LinkConfig",
    "OracleConfig",
    "RateLimitConfig",
    "RetrievalConfig",
    "get_config_path",
    "invalidate_cache",
    "load_config",
    "save_config",
]
