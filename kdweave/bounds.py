"""Bounding-box helpers for tree construction."""

from __future__ import annotations

import math

import numpy as np


def window_bounds(points: np.ndarray, start: int, size: int) -> tuple[np.ndarray, np.ndarray]:
    """Return elementwise ``(mins, maxs)`` over rows ``[start, start + size)``."""

    window = points[start : start + size]
    return window.min(axis=0), window.max(axis=0)


def max_range_dimension(mins: np.ndarray, maxs: np.ndarray) -> int:
    """Return the dimension with the largest extent (lowest index on ties)."""

    return int(np.argmax(maxs - mins))


def initial_capacity(num_points: int, leaf_size: int) -> int:
    """Estimate how many node slots a build over ``num_points`` will need.

    Sized as twice the node count of a perfect tree whose leaves hold about
    half of ``leaf_size`` points. Clustered data can still exceed it, so
    callers must be ready to grow.
    """

    ratio = (2.0 * num_points) / leaf_size
    if ratio <= 1.0:
        return 2
    return 2 * (1 << math.ceil(math.log2(ratio)))


__all__ = ["initial_capacity", "max_range_dimension", "window_bounds"]
