# Engram - Associative Memory Engine
# Copyright (C) 2026 Engram Authors
# SPDX-License-Identifier: Apache-2.0

"""Engram: associative memory for captured AI conversations."""

__version__ = "0.4.0"
