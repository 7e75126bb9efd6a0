"""Bounding-box distance kernels used to prune dual-tree traversals.

Boxes are given as ``(box_min, box_max)`` pairs with the dimension on the
last axis, so every kernel also broadcasts over leading batch axes.
"""

from __future__ import annotations

import jax
import jax.numpy as jnp
from jaxtyping import Array


@jax.jit
def min_sq_dist_point_box(point: Array, box_min: Array, box_max: Array) -> Array:
    clipped = jnp.clip(point, box_min, box_max)
    delta = point - clipped
    return jnp.sum(delta * delta, axis=-1)


@jax.jit
def min_sq_dist_boxes(
    a_min: Array,
    a_max: Array,
    b_min: Array,
    b_max: Array,
) -> Array:
    # At most one of the two differences is positive for valid boxes.
    gap = jnp.maximum(jnp.maximum(b_min - a_max, a_min - b_max), 0.0)
    return jnp.sum(gap * gap, axis=-1)


@jax.jit
def max_sq_dist_boxes(
    a_min: Array,
    a_max: Array,
    b_min: Array,
    b_max: Array,
) -> Array:
    width = jnp.maximum(a_max, b_max) - jnp.minimum(a_min, b_min)
    return jnp.sum(width * width, axis=-1)


@jax.jit
def pairwise_min_sq_dist(
    a_min: Array,
    a_max: Array,
    b_min: Array,
    b_max: Array,
) -> Array:
    """Return an ``(m, n)`` matrix of lower distance bounds."""

    return min_sq_dist_boxes(
        a_min[:, None, :], a_max[:, None, :], b_min[None, :, :], b_max[None, :, :]
    )


@jax.jit
def pairwise_max_sq_dist(
    a_min: Array,
    a_max: Array,
    b_min: Array,
    b_max: Array,
) -> Array:
    """Return an ``(m, n)`` matrix of upper distance bounds."""

    return max_sq_dist_boxes(
        a_min[:, None, :], a_max[:, None, :], b_min[None, :, :], b_max[None, :, :]
    )


__all__ = [
    "max_sq_dist_boxes",
    "min_sq_dist_boxes",
    "min_sq_dist_point_box",
    "pairwise_max_sq_dist",
    "pairwise_min_sq_dist",
]
