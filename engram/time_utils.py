from __future__ import annotations
# Engram - Associative Memory Engine
# Copyright (C) 2026 Engram Authors
# SPDX-License-Identifier: Apache-2.0
#
# This file is part of Engram, licensed under Apache-2.0.
# See LICENSE for the full license text.

"""Timestamp helpers.

Memory records carry epoch-millisecond timestamps so they stay
compatible with the browser-side stores that persist them.
"""

import time
from datetime import UTC, datetime


def now_ms() -> int:
    """Return the current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


def ms_to_iso(ts: int | float | None) -> str:
    """Render an epoch-millisecond timestamp as ISO8601 (``"unknown"`` if unset)."""
    if not ts:
        return "unknown"
    return datetime.fromtimestamp(ts / 1000, tz=UTC).isoformat()
