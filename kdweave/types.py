"""Shared export contracts for kdweave consumers."""

from __future__ import annotations

from typing import NamedTuple, Sequence

import numpy as np

from .dtypes import COORD_DTYPE, INDEX_DTYPE
from .local_tree import Node


class NodeTable(NamedTuple):
    """Struct-of-arrays view of a node list, one row per node."""

    node_id: np.ndarray
    box_index: np.ndarray
    split_dim: np.ndarray
    split_value: np.ndarray
    left_child: np.ndarray
    right_child: np.ndarray
    num_points: np.ndarray
    level: np.ndarray


class TreeInfo(NamedTuple):
    """Tree-wide facts a persistence layer records once, on rank 0."""

    dimensionality: int
    fan_out: int
    global_num_nodes: int
    global_num_points: int
    leaf_size: int
    median_split_levels: int


class TreeSnapshot(NamedTuple):
    """Everything one rank holds after a distributed build."""

    rank: int
    world_size: int
    dimension: int
    leaf_size: int
    median_split_levels: int
    nodes: NodeTable
    box_min: np.ndarray
    box_max: np.ndarray
    node_to_point: np.ndarray
    ids: np.ndarray
    points: np.ndarray
    skeleton_nodes: NodeTable
    skeleton_box_min: np.ndarray
    skeleton_box_max: np.ndarray
    skeleton_subtree_sizes: np.ndarray
    top_num_nodes: int
    global_num_points: int


def nodes_to_table(nodes: Sequence[Node]) -> NodeTable:
    """Pack ``nodes`` into parallel arrays."""

    def column(name: str, dtype) -> np.ndarray:
        return np.asarray([getattr(node, name) for node in nodes], dtype=dtype)

    return NodeTable(
        node_id=column("node_id", INDEX_DTYPE),
        box_index=column("box_index", INDEX_DTYPE),
        split_dim=column("split_dim", INDEX_DTYPE),
        split_value=column("split_value", COORD_DTYPE),
        left_child=column("left_child", INDEX_DTYPE),
        right_child=column("right_child", INDEX_DTYPE),
        num_points=column("num_points", INDEX_DTYPE),
        level=column("level", INDEX_DTYPE),
    )


def nodes_from_table(table: NodeTable) -> list[Node]:
    """Rebuild ``Node`` objects from a table made by ``nodes_to_table``."""

    return [
        Node(
            split_dim=int(table.split_dim[i]),
            split_value=float(table.split_value[i]),
            node_id=int(table.node_id[i]),
            box_index=int(table.box_index[i]),
            num_points=int(table.num_points[i]),
            level=int(table.level[i]),
            left_child=int(table.left_child[i]),
            right_child=int(table.right_child[i]),
        )
        for i in range(table.node_id.shape[0])
    ]


__all__ = [
    "NodeTable",
    "TreeInfo",
    "TreeSnapshot",
    "nodes_from_table",
    "nodes_to_table",
]
