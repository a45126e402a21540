# Engram - Associative Memory Engine
# Copyright (C) 2026 Engram Authors
# SPDX-License-Identifier: Apache-2.0
#
# This file is part of Engram, licensed under Apache-2.0.
# See LICENSE for the full license text.

"""Central configuration module for Engram.

Defines Pydantic models for config.json and provides
load / save helpers with a module-level singleton cache.
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, Field, ValidationError, model_validator

from engram.exceptions import ConfigValidationError
from engram.schemas import (
    EMBEDDING_DIMENSION,
    LINK_CONFIDENCE_THRESHOLD,
    MAX_EVOLUTION_HISTORY,
    MAX_LINKS,
    MAX_TRIGGERED_BY,
)

logger = logging.getLogger("engram.config")

# ---------------------------------------------------------------------------
# Pydantic models
# ---------------------------------------------------------------------------


class OracleConfig(BaseModel):
    """LLM provider settings shared by enrichment, link detection and evolution."""

    enabled: bool = True
    enable_link_detection: bool = True
    enable_evolution: bool = True
    provider: Literal["openai", "anthropic", "local"] = "openai"
    model: str = ""
    api_key: str = ""
    local_endpoint: str | None = None
    batch_size: int = Field(default=5, ge=1)
    temperature: float = 0.3
    max_tokens: int = 1024
    timeout_s: float = 60.0

    def has_credentials(self) -> bool:
        """Local models need an endpoint; hosted providers need an API key."""
        if self.provider == "local":
            return bool(self.local_endpoint)
        return bool(self.api_key)

    def resolved_model(self) -> str:
        if self.model:
            return self.model
        return {
            "openai": "gpt-4o-mini",
            "anthropic": "claude-3-haiku-20240307",
            "local": "llama3.2",
        }[self.provider]


class RateLimitConfig(BaseModel):
    """Sliding-window admission for oracle calls (per component)."""

    max_calls: int = Field(default=60, ge=1)
    window_s: float = Field(default=60.0, gt=0)


class RetrievalConfig(BaseModel):
    """Embedding and similarity search settings."""

    embedding_model: str = "BAAI/bge-small-en-v1.5"
    embedding_dimension: int = EMBEDDING_DIMENSION
    use_gpu: bool = False
    similarity_threshold: float = 0.5
    max_results: int = 5
    semantic_weight: float = 0.7
    keyword_weight: float = 0.3
    index_min_corpus: int = 1000
    index_candidate_multiplier: int = 3
    index_search_breadth: int = 50
    link_decay: float = 0.8
    max_expanded_results: int = 10

    @model_validator(mode="after")
    def _check_weights(self) -> RetrievalConfig:
        if abs(self.semantic_weight + self.keyword_weight - 1.0) > 1e-6:
            raise ValueError("semantic_weight + keyword_weight must equal 1.0")
        return self


class LinkConfig(BaseModel):
    """Link graph bounds and candidate selection."""

    max_links: int = MAX_LINKS
    confidence_threshold: float = LINK_CONFIDENCE_THRESHOLD
    candidate_count: int = 5
    candidate_threshold: float = 0.5
    confirmation_batch_size: int = Field(default=5, ge=1)


class EvolutionConfig(BaseModel):
    """Evolution history bounds and target selection."""

    history_limit: int = MAX_EVOLUTION_HISTORY
    triggered_by_limit: int = MAX_TRIGGERED_BY
    min_link_score: float = 0.8
    max_checks_per_memory: int = 5


class EnrichmentConfig(BaseModel):
    """Retry policy for metadata enrichment."""

    max_attempts: int = Field(default=3, ge=1)
    backoff_base_s: float = 2.0


class EngramConfig(BaseModel):
    version: int = 1
    log_level: str = "INFO"
    oracle: OracleConfig = OracleConfig()
    rate_limit: RateLimitConfig = RateLimitConfig()
    retrieval: RetrievalConfig = RetrievalConfig()
    links: LinkConfig = LinkConfig()
    evolution: EvolutionConfig = EvolutionConfig()
    enrichment: EnrichmentConfig = EnrichmentConfig()


# ---------------------------------------------------------------------------
# Singleton cache
# ---------------------------------------------------------------------------

_config: EngramConfig | None = None
_config_path: Path | None = None
_config_mtime: float = 0.0


def invalidate_cache() -> None:
    """Reset the module-level singleton cache."""
    global _config, _config_path, _config_mtime
    _config = None
    _config_path = None
    _config_mtime = 0.0


# ---------------------------------------------------------------------------
# Path helpers
# ---------------------------------------------------------------------------


def get_config_path(data_dir: Path | None = None) -> Path:
    """Return the config.json location.

    ``ENGRAM_CONFIG`` wins when set; otherwise ``{data_dir}/config.json``.
    """
    env_path = os.environ.get("ENGRAM_CONFIG")
    if env_path and data_dir is None:
        return Path(env_path).expanduser()
    if data_dir is None:
        from engram.paths import get_data_dir

        data_dir = get_data_dir()
    return data_dir / "config.json"


# ---------------------------------------------------------------------------
# Load / Save
# ---------------------------------------------------------------------------


def _apply_env_overrides(config: EngramConfig) -> EngramConfig:
    api_key = os.environ.get("ENGRAM_API_KEY")
    if api_key and not config.oracle.api_key:
        config.oracle.api_key = api_key
    return config


def load_config(path: Path | None = None) -> EngramConfig:
    """Load configuration from disk, returning cached instance when possible.

    When the file does not exist the default configuration is returned.
    The cache is invalidated when the file's mtime changes.
    """
    global _config, _config_path, _config_mtime

    if path is None:
        path = get_config_path()

    if _config is not None and _config_path == path:
        try:
            disk_mtime = path.stat().st_mtime
        except OSError:
            disk_mtime = 0.0
        if disk_mtime == _config_mtime:
            return _config
        logger.debug("Config file changed on disk (mtime %.3f → %.3f); reloading", _config_mtime, disk_mtime)

    if path.is_file():
        logger.debug("Loading config from %s", path)
        try:
            data: dict[str, Any] = json.loads(path.read_text(encoding="utf-8"))
            config = EngramConfig.model_validate(data)
        except json.JSONDecodeError as exc:
            logger.error("Failed to parse %s: %s", path, exc)
            raise ConfigValidationError(f"Invalid JSON in {path}: {exc}") from exc
        except ValidationError as exc:
            logger.error("Invalid config in %s: %s", path, exc)
            raise ConfigValidationError(str(exc)) from exc
    else:
        logger.info("Config file not found at %s; using defaults", path)
        config = EngramConfig()

    config = _apply_env_overrides(config)

    _config = config
    _config_path = path
    try:
        _config_mtime = path.stat().st_mtime
    except OSError:
        _config_mtime = 0.0
    return config


def save_config(config: EngramConfig, path: Path | None = None) -> None:
    """Persist *config* to disk as pretty-printed JSON (mode 0o600)."""
    global _config, _config_path, _config_mtime

    if path is None:
        path = get_config_path()

    path.parent.mkdir(parents=True, exist_ok=True)

    payload = config.model_dump(mode="json")
    text = json.dumps(payload, indent=2, ensure_ascii=False) + "\n"
    path.write_text(text, encoding="utf-8")

    # The file may contain API keys.
    os.chmod(path, 0o600)

    logger.debug("Config saved to %s", path)

    _config = config
    _config_path = path
    try:
        _config_mtime = path.stat().st_mtime
    except OSError:
        _config_mtime = 0.0
