"""Distributed k-d tree container and build entry point."""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import NamedTuple, Optional, Union

import numpy as np

from .collation import collate_subtrees
from .comm import make_inprocess_group
from .dtypes import INDEX_DTYPE, as_coords, as_index
from .geometry import max_sq_dist_boxes, min_sq_dist_boxes, min_sq_dist_point_box
from .local_tree import Node, build_local_tree
from .protocols import Communicator, TreeSink
from .types import TreeInfo, TreeSnapshot, nodes_from_table, nodes_to_table
from .workload import identify_local_working_set, is_power_of_two, num_skeleton_levels

logger = logging.getLogger(__name__)

FAN_OUT = 2
DEFAULT_LEAF_SIZE = 45

NodeRef = Union[Node, int]


@dataclass(frozen=True)
class TreeBuildConfig:
    """Configuration for distributed k-d tree construction.

    ``median_split_levels=None`` splits at the median down to the first
    private level (``log2(world_size)``) and at the midpoint below it.
    ``validate_world_size=False`` lets non-power-of-two worlds through; the
    resulting numbering is then undefined.
    """

    leaf_size: int = DEFAULT_LEAF_SIZE
    median_split_levels: Optional[int] = None
    validate_world_size: bool = True


_GLOBAL_BUILD_CONFIG: Optional[TreeBuildConfig] = None


def _validate_build_config(config: TreeBuildConfig) -> None:
    if config.leaf_size < 1:
        raise ValueError(f"leaf_size must be >= 1, received {config.leaf_size}")
    if config.median_split_levels is not None and config.median_split_levels < 0:
        raise ValueError(
            "median_split_levels must be >= 0 when provided, "
            f"received {config.median_split_levels}"
        )


def set_default_build_config(config: Optional[TreeBuildConfig]) -> None:
    """Set the module-level fallback configuration for tree builds."""

    if config is not None:
        _validate_build_config(config)
    global _GLOBAL_BUILD_CONFIG
    _GLOBAL_BUILD_CONFIG = config


def get_default_build_config() -> TreeBuildConfig:
    return _GLOBAL_BUILD_CONFIG or TreeBuildConfig()


def _resolve_build_config(
    config: Optional[TreeBuildConfig],
    leaf_size: Optional[int],
) -> TreeBuildConfig:
    resolved = config or get_default_build_config()
    if leaf_size is not None:
        resolved = replace(resolved, leaf_size=int(leaf_size))
    _validate_build_config(resolved)
    return resolved


class BuildEvent(NamedTuple):
    """Metadata describing one finished phase of a distributed build."""

    rank: int
    world_size: int
    phase: str
    num_points: int
    num_nodes: int
    offset: int = 0


def log_build_event(
    event: BuildEvent,
    *,
    level: int = logging.DEBUG,
    logger: Optional[logging.Logger] = None,
) -> None:
    """Log a build event using the provided (or module) logger."""

    target_logger = logger or logging.getLogger(__name__)
    target_logger.log(
        level,
        "Distributed build %s (rank %d/%d): points=%d, nodes=%d, offset=%d",
        event.phase,
        event.rank,
        event.world_size,
        event.num_points,
        event.num_nodes,
        event.offset,
    )


def _validate_inputs(ids, points) -> tuple[np.ndarray, np.ndarray]:
    ids_arr = as_index(ids)
    points_arr = as_coords(points)
    if points_arr.ndim != 2:
        raise ValueError(
            f"points must have shape (n, k), received shape {points_arr.shape}"
        )
    if ids_arr.ndim != 1:
        raise ValueError(f"ids must have shape (n,), received shape {ids_arr.shape}")
    if ids_arr.shape[0] != points_arr.shape[0]:
        raise ValueError(
            f"ids and points disagree on n: {ids_arr.shape[0]} != {points_arr.shape[0]}"
        )
    if points_arr.shape[0] < 1:
        raise ValueError("points must contain at least one row")
    if points_arr.shape[1] < 1:
        raise ValueError("points must have at least one dimension")
    if not np.all(np.isfinite(points_arr)):
        raise ValueError("points must be finite; received NaN or infinite coordinates")
    # The build reorders rows in place; never touch the caller's buffers.
    return ids_arr.copy(), points_arr.copy()


@dataclass(frozen=True)
class DistributedKDTree:
    """One rank's share of a globally numbered binary k-d tree.

    ``nodes`` is this rank's private subtree in preorder; its box rows line
    up with it. ``skeleton_nodes`` are the shared upper-level nodes this
    rank owns, topmost first. On rank 0 ``skeleton_nodes[0]`` is the global
    root.
    """

    rank: int
    world_size: int
    leaf_size: int
    median_split_levels: int
    nodes: tuple[Node, ...]
    box_min: np.ndarray
    box_max: np.ndarray
    node_to_point: np.ndarray
    ids: np.ndarray
    points: np.ndarray
    skeleton_nodes: tuple[Node, ...]
    skeleton_box_min: np.ndarray
    skeleton_box_max: np.ndarray
    skeleton_subtree_sizes: tuple[int, ...]
    top_num_nodes: int
    global_num_points: int

    @classmethod
    def build(
        cls,
        ids,
        points,
        *,
        comm: Optional[Communicator] = None,
        config: Optional[TreeBuildConfig] = None,
        leaf_size: Optional[int] = None,
    ) -> "DistributedKDTree":
        return build_distributed_kdtree(
            ids, points, comm=comm, config=config, leaf_size=leaf_size
        )

    @classmethod
    def from_snapshot(cls, snapshot: TreeSnapshot) -> "DistributedKDTree":
        """Rebuild a tree from the output of :meth:`snapshot`."""

        return cls(
            rank=int(snapshot.rank),
            world_size=int(snapshot.world_size),
            leaf_size=int(snapshot.leaf_size),
            median_split_levels=int(snapshot.median_split_levels),
            nodes=tuple(nodes_from_table(snapshot.nodes)),
            box_min=as_coords(snapshot.box_min).reshape(-1, snapshot.dimension),
            box_max=as_coords(snapshot.box_max).reshape(-1, snapshot.dimension),
            node_to_point=as_index(snapshot.node_to_point),
            ids=as_index(snapshot.ids),
            points=as_coords(snapshot.points).reshape(-1, snapshot.dimension),
            skeleton_nodes=tuple(nodes_from_table(snapshot.skeleton_nodes)),
            skeleton_box_min=as_coords(snapshot.skeleton_box_min).reshape(
                -1, snapshot.dimension
            ),
            skeleton_box_max=as_coords(snapshot.skeleton_box_max).reshape(
                -1, snapshot.dimension
            ),
            skeleton_subtree_sizes=tuple(
                int(s) for s in snapshot.skeleton_subtree_sizes
            ),
            top_num_nodes=int(snapshot.top_num_nodes),
            global_num_points=int(snapshot.global_num_points),
        )

    @property
    def dimension(self) -> int:
        return int(self.points.shape[1])

    @property
    def fan_out(self) -> int:
        return FAN_OUT

    @property
    def num_nodes(self) -> int:
        """Nodes in this rank's private subtree."""
        return len(self.nodes)

    @property
    def num_points(self) -> int:
        return int(self.points.shape[0])

    @property
    def global_num_nodes(self) -> int:
        """Nodes below this rank's topmost node; the whole tree on rank 0."""
        return self.top_num_nodes

    @property
    def is_empty(self) -> bool:
        return not self.nodes

    @property
    def root(self) -> Node:
        """Topmost node held by this rank."""

        if self.skeleton_nodes:
            return self.skeleton_nodes[0]
        if not self.nodes:
            raise ValueError("tree is empty")
        return self.nodes[0]

    def node(self, index: int) -> Node:
        """Private node at position ``index`` of the preorder node list."""
        return self.nodes[index]

    def _local_slot(self, node_id: int) -> Optional[int]:
        if not self.nodes:
            return None
        slot = node_id - self.nodes[0].node_id
        if 0 <= slot < len(self.nodes) and self.nodes[slot].node_id == node_id:
            return slot
        return None

    def _skeleton_slot(self, node_id: int) -> Optional[int]:
        for slot, node in enumerate(self.skeleton_nodes):
            if node.node_id == node_id:
                return slot
        return None

    def find_node(self, node_id: int) -> Node:
        """Look up a skeleton or private node by its global id.

        Raises:
            KeyError: this rank does not hold ``node_id``.
        """

        slot = self._skeleton_slot(node_id)
        if slot is not None:
            return self.skeleton_nodes[slot]
        slot = self._local_slot(node_id)
        if slot is not None:
            return self.nodes[slot]
        raise KeyError(f"node {node_id} is not held by rank {self.rank}")

    def node_box(self, node: NodeRef) -> tuple[np.ndarray, np.ndarray]:
        """Return ``(box_min, box_max)`` of a node held by this rank."""

        node_id = node.node_id if isinstance(node, Node) else int(node)
        slot = self._skeleton_slot(node_id)
        if slot is not None:
            return self.skeleton_box_min[slot], self.skeleton_box_max[slot]
        slot = self._local_slot(node_id)
        if slot is None:
            raise KeyError(f"node {node_id} is not held by rank {self.rank}")
        box = self.nodes[slot].box_index - self.nodes[0].box_index
        return self.box_min[box], self.box_max[box]

    def min_sq_dist_point(self, point, node: NodeRef) -> float:
        box_min, box_max = self.node_box(node)
        return float(min_sq_dist_point_box(as_coords(point), box_min, box_max))

    def min_sq_dist(self, node_a: NodeRef, node_b: NodeRef) -> float:
        a_min, a_max = self.node_box(node_a)
        b_min, b_max = self.node_box(node_b)
        return float(min_sq_dist_boxes(a_min, a_max, b_min, b_max))

    def max_sq_dist(self, node_a: NodeRef, node_b: NodeRef) -> float:
        a_min, a_max = self.node_box(node_a)
        b_min, b_max = self.node_box(node_b)
        return float(max_sq_dist_boxes(a_min, a_max, b_min, b_max))

    def tree_info(self) -> TreeInfo:
        return TreeInfo(
            dimensionality=self.dimension,
            fan_out=FAN_OUT,
            global_num_nodes=self.global_num_nodes,
            global_num_points=self.global_num_points,
            leaf_size=self.leaf_size,
            median_split_levels=self.median_split_levels,
        )

    def snapshot(self) -> TreeSnapshot:
        """Copy this rank's share of the tree into plain arrays."""

        return TreeSnapshot(
            rank=self.rank,
            world_size=self.world_size,
            dimension=self.dimension,
            leaf_size=self.leaf_size,
            median_split_levels=self.median_split_levels,
            nodes=nodes_to_table(self.nodes),
            box_min=self.box_min.copy(),
            box_max=self.box_max.copy(),
            node_to_point=self.node_to_point.copy(),
            ids=self.ids.copy(),
            points=self.points.copy(),
            skeleton_nodes=nodes_to_table(self.skeleton_nodes),
            skeleton_box_min=self.skeleton_box_min.copy(),
            skeleton_box_max=self.skeleton_box_max.copy(),
            skeleton_subtree_sizes=np.asarray(
                self.skeleton_subtree_sizes, dtype=INDEX_DTYPE
            ),
            top_num_nodes=self.top_num_nodes,
            global_num_points=self.global_num_points,
        )

    def persist(self, sink: TreeSink, *, comm: Communicator) -> None:
        """Hand this rank's share to ``sink``; collective over ``comm``.

        Rank 0 prepares the sink, every rank waits at a barrier, then every
        rank writes its own snapshot.
        """

        if comm.rank != self.rank or comm.world_size != self.world_size:
            raise ValueError(
                f"communicator rank {comm.rank}/{comm.world_size} does not match "
                f"tree rank {self.rank}/{self.world_size}"
            )
        if comm.rank == 0:
            sink.prepare(self.tree_info())
        comm.barrier()
        sink.write(self.snapshot())


def build_distributed_kdtree(
    ids,
    points,
    *,
    comm: Optional[Communicator] = None,
    config: Optional[TreeBuildConfig] = None,
    leaf_size: Optional[int] = None,
) -> DistributedKDTree:
    """Build this rank's share of a distributed k-d tree.

    Every rank of ``comm`` must call this with the same ``ids``/``points``
    and configuration. ``comm=None`` builds the whole tree in-process on a
    single rank. The inputs are copied, never reordered in place.

    Raises:
        ValueError: malformed input, invalid configuration, or a
            non-power-of-two world size while validation is enabled.
        InsufficientDataError: too few points to give every rank a slice.
        CommunicationError: an exchange with another rank failed.
    """

    resolved = _resolve_build_config(config, leaf_size)
    ids_arr, points_arr = _validate_inputs(ids, points)
    if comm is None:
        comm = make_inprocess_group(1)[0]

    rank = int(comm.rank)
    world_size = int(comm.world_size)
    if not is_power_of_two(world_size):
        if resolved.validate_world_size:
            raise ValueError(
                f"world_size must be a power of two, received {world_size}"
            )
        logger.warning(
            "rank %d: building on non-power-of-two world_size=%d; "
            "node numbering is undefined",
            rank,
            world_size,
        )

    levels = num_skeleton_levels(world_size)
    median_split_levels = (
        levels
        if resolved.median_split_levels is None
        else int(resolved.median_split_levels)
    )
    global_num_points = int(points_arr.shape[0])

    working = identify_local_working_set(
        ids_arr, points_arr, rank=rank, world_size=world_size
    )
    del ids_arr, points_arr
    log_build_event(
        BuildEvent(
            rank=rank,
            world_size=world_size,
            phase="working set isolated",
            num_points=int(working.points.shape[0]),
            num_nodes=len(working.skeleton_nodes),
        ),
        logger=logger,
    )

    local = build_local_tree(
        working.points,
        working.ids,
        leaf_size=resolved.leaf_size,
        median_split_levels=median_split_levels,
        first_node_id=len(working.skeleton_nodes) + 1,
        start_level=levels,
    )
    log_build_event(
        BuildEvent(
            rank=rank,
            world_size=world_size,
            phase="local tree built",
            num_points=int(working.points.shape[0]),
            num_nodes=len(local.nodes),
        ),
        logger=logger,
    )

    collated = collate_subtrees(
        local.nodes, working.skeleton_nodes, local.node_to_point, comm
    )
    log_build_event(
        BuildEvent(
            rank=rank,
            world_size=world_size,
            phase="collation finished",
            num_points=int(working.points.shape[0]),
            num_nodes=collated.top_num_nodes,
            offset=collated.offset,
        ),
        level=logging.INFO if rank == 0 else logging.DEBUG,
        logger=logger,
    )

    return DistributedKDTree(
        rank=rank,
        world_size=world_size,
        leaf_size=resolved.leaf_size,
        median_split_levels=median_split_levels,
        nodes=tuple(local.nodes),
        box_min=local.box_min,
        box_max=local.box_max,
        node_to_point=local.node_to_point,
        ids=working.ids,
        points=working.points,
        skeleton_nodes=tuple(collated.skeleton_nodes),
        skeleton_box_min=working.skeleton_box_min,
        skeleton_box_max=working.skeleton_box_max,
        skeleton_subtree_sizes=tuple(collated.subtree_sizes),
        top_num_nodes=collated.top_num_nodes,
        global_num_points=global_num_points,
    )


__all__ = [
    "BuildEvent",
    "DEFAULT_LEAF_SIZE",
    "DistributedKDTree",
    "FAN_OUT",
    "TreeBuildConfig",
    "build_distributed_kdtree",
    "get_default_build_config",
    "log_build_event",
    "set_default_build_config",
]
