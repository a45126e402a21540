# Engram - Associative Memory Engine
# Copyright (C) 2026 Engram Authors
# SPDX-License-Identifier: Apache-2.0
#
# This file is part of Engram, licensed under Apache-2.0.
# See LICENSE for the full license text.

"""Centralized path resolution for Engram.

Runtime data directory can be overridden via ENGRAM_DATA_DIR environment variable.
"""

from __future__ import annotations

import os
from pathlib import Path

# Package root: where the code lives
PACKAGE_DIR = Path(__file__).resolve().parent

# Templates shipped with the package
TEMPLATES_DIR = PACKAGE_DIR / "templates"

# Default runtime data directory
_DEFAULT_DATA_DIR = Path.home() / ".engram"


def get_data_dir() -> Path:
    """Return the runtime data directory, respecting ENGRAM_DATA_DIR env var."""
    env_val = os.environ.get("ENGRAM_DATA_DIR")
    if env_val:
        return Path(env_val).expanduser().resolve()
    return _DEFAULT_DATA_DIR


def get_vectordb_dir() -> Path:
    return get_data_dir() / "vectordb"


def get_models_dir() -> Path:
    return get_data_dir() / "models"


# --- Prompt templates ---

PROMPTS_DIR = TEMPLATES_DIR / "prompts"

# Cache loaded templates to avoid repeated disk reads
_prompt_cache: dict[str, str] = {}


class _SafeFormatDict(dict):
    """Dict that returns ``{key}`` for missing keys during format_map.

    ``{{`` always resolves to ``{`` even when no kwargs are passed, while
    unknown ``{placeholder}`` patterns are left intact in the output.
    """

    def __missing__(self, key: str) -> str:
        return "{" + key + "}"


def load_prompt(name: str, **kwargs: object) -> str:
    """Load a prompt template from templates/prompts/{name}.md and format it.

    Templates use Python str.format_map() placeholders like {content}.
    Literal braces in templates should be doubled: {{ and }}.

    Args:
        name: Template file name without extension. May include subdirectory
              (e.g. ``"memory/link_detection"``).
        **kwargs: Values to substitute into the template placeholders.
    """
    if name not in _prompt_cache:
        path = PROMPTS_DIR / f"{name}.md"
        _prompt_cache[name] = path.read_text(encoding="utf-8")
    template = _prompt_cache[name]
    return template.format_map(_SafeFormatDict(kwargs))
