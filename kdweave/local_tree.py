"""Preorder k-d tree construction over one worker's private slice."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import NamedTuple, Optional

import numpy as np
from beartype import beartype
from jaxtyping import Float, Int, jaxtyped

from .bounds import initial_capacity, max_range_dimension, window_bounds
from .dtypes import COORD_DTYPE, INDEX_DTYPE
from .partition import _median_split, _midpoint_split

NO_CHILD = -1
LEAF_SPLIT_DIM = -1


@dataclass
class Node:
    """One k-d tree node.

    ``node_id`` is 1-based and follows preorder. ``box_index`` locates the
    node's bounds in the owning tree's box table and always equals
    ``node_id - 1``.
    """

    split_dim: int
    split_value: float
    node_id: int
    box_index: int
    num_points: int
    level: int
    left_child: int = NO_CHILD
    right_child: int = NO_CHILD

    @property
    def is_leaf(self) -> bool:
        return self.split_dim == LEAF_SPLIT_DIM

    def shift(self, offset: int) -> None:
        """Move this node ``offset`` places along the global numbering."""

        self.node_id += offset
        self.box_index += offset
        if self.is_leaf:
            return
        if self.left_child != NO_CHILD:
            self.left_child += offset
        if self.right_child != NO_CHILD:
            self.right_child += offset


def make_leaf(node_id: int, num_points: int, level: int) -> Node:
    return Node(
        split_dim=LEAF_SPLIT_DIM,
        split_value=math.nan,
        node_id=node_id,
        box_index=node_id - 1,
        num_points=num_points,
        level=level,
    )


def make_internal(
    node_id: int,
    split_dim: int,
    split_value: float,
    num_points: int,
    level: int,
) -> Node:
    return Node(
        split_dim=split_dim,
        split_value=split_value,
        node_id=node_id,
        box_index=node_id - 1,
        num_points=num_points,
        level=level,
        left_child=node_id + 1,
    )


class LocalTree(NamedTuple):
    """Nodes, box table and node-to-point map produced by one local build."""

    nodes: list[Node]
    box_min: np.ndarray
    box_max: np.ndarray
    node_to_point: np.ndarray


class _Frame(NamedTuple):
    start: int
    size: int
    level: int
    # Set only on right-child frames; its right_child is filled on pop.
    parent: Optional[Node]


class LocalTreeBuilder:
    """Build one preorder subtree over ``points``/``ids`` in place.

    Nodes, box slots and node-to-point entries are emitted in preorder. The
    box table is written through a single cursor that advances once per
    node. Windows wait on an explicit frame stack rather than the call stack,
    so tree depth is not bounded by the recursion limit.
    """

    def __init__(
        self,
        points: np.ndarray,
        ids: np.ndarray,
        *,
        leaf_size: int,
        median_split_levels: int,
        first_node_id: int = 1,
        start_level: int = 0,
    ):
        self.points = points
        self.ids = ids
        self.leaf_size = int(leaf_size)
        self.median_split_levels = int(median_split_levels)
        self.first_node_id = int(first_node_id)
        self.start_level = int(start_level)

        num_points, dim = points.shape
        capacity = initial_capacity(num_points, self.leaf_size)
        self._box_min = np.empty((capacity, dim), dtype=COORD_DTYPE)
        self._box_max = np.empty((capacity, dim), dtype=COORD_DTYPE)
        self._box_cursor = 0
        self._nodes: list[Node] = []
        self._node_to_point = np.zeros((num_points,), dtype=INDEX_DTYPE)

    @property
    def capacity(self) -> int:
        return int(self._box_min.shape[0])

    def _next_node_id(self) -> int:
        return self.first_node_id + len(self._nodes)

    def _grow(self) -> None:
        extra = max(self.capacity, 1)
        pad = np.empty((extra, self._box_min.shape[1]), dtype=COORD_DTYPE)
        self._box_min = np.concatenate((self._box_min, pad), axis=0)
        self._box_max = np.concatenate((self._box_max, pad), axis=0)

    def _claim_box(self, start: int, size: int) -> tuple[np.ndarray, np.ndarray]:
        if self._box_cursor == self.capacity:
            self._grow()
        slot = self._box_cursor
        mins, maxs = window_bounds(self.points, start, size)
        self._box_min[slot] = mins
        self._box_max[slot] = maxs
        self._box_cursor += 1
        return mins, maxs

    def _emit_leaf(self, start: int, size: int, level: int) -> None:
        node = make_leaf(self._next_node_id(), size, level)
        self._nodes.append(node)
        self._node_to_point[start : start + size] = node.node_id

    def build(self) -> LocalTree:
        """Run the build once and return its products."""

        if self._nodes:
            raise RuntimeError("LocalTreeBuilder.build may only run once")

        stack = [_Frame(0, int(self.points.shape[0]), self.start_level, None)]
        while stack:
            start, size, level, parent = stack.pop()
            if parent is not None:
                # The whole left subtree has been emitted by now.
                parent.right_child = self._next_node_id()

            mins, maxs = self._claim_box(start, size)
            if size <= self.leaf_size:
                self._emit_leaf(start, size, level)
                continue

            dim = max_range_dimension(mins, maxs)
            if level > self.median_split_levels:
                split = _midpoint_split(
                    self.points, self.ids, start, size, dim, mins[dim], maxs[dim]
                )
            else:
                split = _median_split(self.points, self.ids, start, size, dim)

            right_size = size - split.left_size
            if (not split.split_occurred) or split.left_size == 1 or right_size == 1:
                self._emit_leaf(start, size, level)
                continue

            node = make_internal(
                self._next_node_id(), dim, split.split_value, size, level
            )
            self._nodes.append(node)
            stack.append(_Frame(start + split.left_size, right_size, level + 1, node))
            stack.append(_Frame(start, split.left_size, level + 1, None))

        count = self._box_cursor
        return LocalTree(
            nodes=self._nodes,
            box_min=self._box_min[:count],
            box_max=self._box_max[:count],
            node_to_point=self._node_to_point,
        )


@jaxtyped(typechecker=beartype)
def build_local_tree(
    points: Float[np.ndarray, "n k"],
    ids: Int[np.ndarray, " n"],
    *,
    leaf_size: int,
    median_split_levels: int = 0,
    first_node_id: int = 1,
    start_level: int = 0,
) -> LocalTree:
    """Build a preorder subtree, reordering ``points`` and ``ids`` in place.

    Windows of at most ``leaf_size`` points become leaves. Levels up to and
    including ``median_split_levels`` split at the median of the widest
    dimension, deeper levels at its midpoint. A split that leaves either side
    empty or holding a single point turns the window into a leaf instead.
    """

    if leaf_size < 1:
        raise ValueError(f"leaf_size must be >= 1, received {leaf_size}")
    if points.shape[0] < 1:
        raise ValueError("points must contain at least one row")
    if not np.all(np.isfinite(points)):
        raise ValueError("points must be finite")
    builder = LocalTreeBuilder(
        points,
        ids,
        leaf_size=leaf_size,
        median_split_levels=median_split_levels,
        first_node_id=first_node_id,
        start_level=start_level,
    )
    return builder.build()


__all__ = [
    "LEAF_SPLIT_DIM",
    "LocalTree",
    "LocalTreeBuilder",
    "NO_CHILD",
    "Node",
    "build_local_tree",
    "make_internal",
    "make_leaf",
]
