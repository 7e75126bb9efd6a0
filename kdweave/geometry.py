"""Public bounding-box geometry API for kdweave."""

from __future__ import annotations

import jax.numpy as jnp
from beartype import beartype
from jaxtyping import Array, ArrayLike, jaxtyped

from . import _geometry_impl
from .dtypes import GEOMETRY_DTYPE


def _as_boxes(*arrays: ArrayLike) -> tuple[Array, ...]:
    converted = tuple(jnp.asarray(a, dtype=GEOMETRY_DTYPE) for a in arrays)
    dims = {a.shape[-1] if a.ndim else None for a in converted}
    if len(dims) != 1 or None in dims:
        raise ValueError(
            "points and box bounds must share the same last-dimension size; "
            f"received shapes {[a.shape for a in converted]}"
        )
    return converted


@jaxtyped(typechecker=beartype)
def min_sq_dist_point_box(
    point: ArrayLike,
    box_min: ArrayLike,
    box_max: ArrayLike,
) -> Array:
    """Squared distance from ``point`` to the nearest point of a box.

    Zero exactly when the point lies inside the box in every dimension.
    """

    return _geometry_impl.min_sq_dist_point_box(*_as_boxes(point, box_min, box_max))


@jaxtyped(typechecker=beartype)
def min_sq_dist_boxes(
    a_min: ArrayLike,
    a_max: ArrayLike,
    b_min: ArrayLike,
    b_max: ArrayLike,
) -> Array:
    """Squared distance between the closest points of two boxes.

    Zero when the boxes overlap or touch.
    """

    return _geometry_impl.min_sq_dist_boxes(*_as_boxes(a_min, a_max, b_min, b_max))


@jaxtyped(typechecker=beartype)
def max_sq_dist_boxes(
    a_min: ArrayLike,
    a_max: ArrayLike,
    b_min: ArrayLike,
    b_max: ArrayLike,
) -> Array:
    """Squared diagonal of the smallest box enclosing both boxes.

    Bounds the distance between any point of one box and any point of the
    other.
    """

    return _geometry_impl.max_sq_dist_boxes(*_as_boxes(a_min, a_max, b_min, b_max))


@jaxtyped(typechecker=beartype)
def pairwise_min_sq_dist(
    a_min: ArrayLike,
    a_max: ArrayLike,
    b_min: ArrayLike,
    b_max: ArrayLike,
) -> Array:
    """``min_sq_dist_boxes`` for every pair of an ``(m, k)`` and ``(n, k)`` stack."""

    return _geometry_impl.pairwise_min_sq_dist(*_as_boxes(a_min, a_max, b_min, b_max))


@jaxtyped(typechecker=beartype)
def pairwise_max_sq_dist(
    a_min: ArrayLike,
    a_max: ArrayLike,
    b_min: ArrayLike,
    b_max: ArrayLike,
) -> Array:
    """``max_sq_dist_boxes`` for every pair of an ``(m, k)`` and ``(n, k)`` stack."""

    return _geometry_impl.pairwise_max_sq_dist(*_as_boxes(a_min, a_max, b_min, b_max))


__all__ = [
    "max_sq_dist_boxes",
    "min_sq_dist_boxes",
    "min_sq_dist_point_box",
    "pairwise_max_sq_dist",
    "pairwise_min_sq_dist",
]
