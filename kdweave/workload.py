"""Communication-free derivation of each worker's share of the dataset.

Every worker replays the same median splits over the full input, so all of
them agree on the top ``log2(world_size)`` levels of the tree (the skeleton)
without exchanging any point data. Which skeleton nodes a worker records and
which half it follows at each level depend only on the bits of its rank.
"""

from __future__ import annotations

from typing import Literal, NamedTuple, Optional

import numpy as np
from beartype import beartype
from jaxtyping import Float, Int, jaxtyped

from .bounds import max_range_dimension, window_bounds
from .dtypes import COORD_DTYPE
from .local_tree import Node, make_internal
from .partition import _median_split

PairRole = Literal["left", "right"]


class InsufficientDataError(ValueError):
    """Raised when the dataset is too small for the requested worker count."""


def is_power_of_two(value: int) -> bool:
    return value > 0 and (value & (value - 1)) == 0


def num_skeleton_levels(world_size: int) -> int:
    """Return ``log2(world_size)``: the depth at which private subtrees start."""

    if world_size < 1:
        raise ValueError(f"world_size must be >= 1, received {world_size}")
    return world_size.bit_length() - 1


def owns_skeleton_node(rank: int, world_size: int, level: int) -> bool:
    """Whether ``rank`` records the skeleton node it visits at ``level``.

    Level ``i`` nodes belong to ranks ``0, s, 2s, ...`` with ``s = W >> i``.
    """

    stride = world_size >> level
    return stride > 0 and rank % stride == 0


def takes_right_half(rank: int, world_size: int, level: int) -> bool:
    """Whether ``rank`` follows the right half of the split made at ``level``.

    Levels read the rank's bits from the most significant used bit down.
    """

    shift = num_skeleton_levels(world_size) - level - 1
    return (rank >> shift) & 1 == 1


def num_owned_skeleton_nodes(rank: int, world_size: int) -> int:
    return sum(
        owns_skeleton_node(rank, world_size, level)
        for level in range(num_skeleton_levels(world_size))
    )


def pair_role(rank: int, stride: int) -> Optional[PairRole]:
    """Role of ``rank`` in a collation round pairing ``j`` with ``j + stride/2``."""

    offset = rank % stride
    if offset == 0:
        return "left"
    if offset == stride // 2:
        return "right"
    return None


class WorkingSet(NamedTuple):
    """A worker's private slice plus the skeleton nodes it recorded."""

    ids: np.ndarray
    points: np.ndarray
    skeleton_nodes: list[Node]
    skeleton_box_min: np.ndarray
    skeleton_box_max: np.ndarray


@jaxtyped(typechecker=beartype)
def identify_local_working_set(
    ids: Int[np.ndarray, " n"],
    points: Float[np.ndarray, "n k"],
    *,
    rank: int,
    world_size: int,
) -> WorkingSet:
    """Narrow the full dataset down to the slice ``rank`` builds privately.

    ``points`` and ``ids`` are reordered in place while narrowing; the
    returned slice is a fresh, exactly-sized copy so the caller can drop the
    full arrays before the local build.

    Raises:
        InsufficientDataError: a skeleton split left a side empty or holding a
            single point.
    """

    if not 0 <= rank < world_size:
        raise ValueError(f"rank must be in [0, {world_size}), received {rank}")
    if not np.all(np.isfinite(points)):
        raise ValueError("points must be finite")

    levels = num_skeleton_levels(world_size)
    dim = points.shape[1]
    skeleton_nodes: list[Node] = []
    box_min = np.empty((levels, dim), dtype=COORD_DTYPE)
    box_max = np.empty((levels, dim), dtype=COORD_DTYPE)

    start = 0
    size = int(points.shape[0])
    for level in range(levels):
        mins, maxs = window_bounds(points, start, size)
        split_dim = max_range_dimension(mins, maxs)
        split = _median_split(points, ids, start, size, split_dim)

        if owns_skeleton_node(rank, world_size, level):
            slot = len(skeleton_nodes)
            skeleton_nodes.append(
                make_internal(slot + 1, split_dim, split.split_value, size, level)
            )
            box_min[slot] = mins
            box_max[slot] = maxs

        right_size = size - split.left_size
        if (not split.split_occurred) or split.left_size == 1 or right_size == 1:
            raise InsufficientDataError(
                f"rank {rank}: cannot split {size} points at skeleton level "
                f"{level} (left={split.left_size}, right={right_size}); "
                f"too few points for world_size={world_size}"
            )

        if takes_right_half(rank, world_size, level):
            start += split.left_size
            size = right_size
        else:
            size = split.left_size

    owned = len(skeleton_nodes)
    return WorkingSet(
        ids=ids[start : start + size].copy(),
        points=points[start : start + size].copy(),
        skeleton_nodes=skeleton_nodes,
        skeleton_box_min=box_min[:owned].copy(),
        skeleton_box_max=box_max[:owned].copy(),
    )


__all__ = [
    "InsufficientDataError",
    "PairRole",
    "WorkingSet",
    "identify_local_working_set",
    "is_power_of_two",
    "num_owned_skeleton_nodes",
    "num_skeleton_levels",
    "owns_skeleton_node",
    "pair_role",
    "takes_right_half",
]
