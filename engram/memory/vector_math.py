from __future__ import annotations
# Engram - Associative Memory Engine
# Copyright (C) 2026 Engram Authors
# SPDX-License-Identifier: Apache-2.0

"""Cosine similarity and normalization primitives."""

from collections.abc import Sequence

import numpy as np

from engram.exceptions import DimensionMismatch


def _as_array(vector: Sequence[float] | np.ndarray) -> np.ndarray:
    return np.asarray(vector, dtype=np.float64).ravel()


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine similarity of two equal-length vectors.

    Raises:
        DimensionMismatch: if the vectors differ in length.

    A zero vector has no direction; its similarity to anything is 0.0.
    """
    va = _as_array(a)
    vb = _as_array(b)
    if va.shape[0] != vb.shape[0]:
        raise DimensionMismatch(va.shape[0], vb.shape[0])

    denom = float(np.linalg.norm(va) * np.linalg.norm(vb))
    if denom == 0.0:
        return 0.0
    return float(np.dot(va, vb) / denom)


def l2_normalize(vector: Sequence[float]) -> list[float]:
    """Scale *vector* to unit length (zero vectors are returned unchanged)."""
    v = _as_array(vector)
    norm = float(np.linalg.norm(v))
    if norm == 0.0:
        return v.tolist()
    return (v / norm).tolist()


def cosine_similarities(query: Sequence[float], matrix: np.ndarray) -> np.ndarray:
    """Cosine similarity of *query* against every row of *matrix*."""
    q = _as_array(query)
    if matrix.ndim != 2 or matrix.shape[0] == 0:
        return np.zeros(0)
    if matrix.shape[1] != q.shape[0]:
        raise DimensionMismatch(q.shape[0], matrix.shape[1])

    norms = np.linalg.norm(matrix, axis=1) * np.linalg.norm(q)
    dots = matrix @ q
    with np.errstate(divide="ignore", invalid="ignore"):
        sims = np.where(norms > 0, dots / norms, 0.0)
    return sims
