"""kdweave: distributed k-d tree construction with rank-driven collation."""

from jax import config as _jax_config

# Box distances are computed in double precision to match the coordinates.
_jax_config.update("jax_enable_x64", True)

from .bounds import initial_capacity, max_range_dimension, window_bounds
from .collation import CollationResult, collate_subtrees
from .comm import (
    CommunicationError,
    InProcessCommunicator,
    make_inprocess_group,
    run_spmd,
)
from .dtypes import COORD_DTYPE, INDEX_DTYPE, as_coords, as_index
from .geometry import (
    max_sq_dist_boxes,
    min_sq_dist_boxes,
    min_sq_dist_point_box,
    pairwise_max_sq_dist,
    pairwise_min_sq_dist,
)
from .local_tree import (
    NO_CHILD,
    LocalTree,
    LocalTreeBuilder,
    Node,
    build_local_tree,
)
from .partition import SplitResult, left_right_split, median_split, midpoint_split, select_kth
from .protocols import Communicator, TreeSink
from .tree import (
    BuildEvent,
    DistributedKDTree,
    TreeBuildConfig,
    build_distributed_kdtree,
    get_default_build_config,
    log_build_event,
    set_default_build_config,
)
from .types import NodeTable, TreeInfo, TreeSnapshot, nodes_from_table, nodes_to_table
from .workload import InsufficientDataError, WorkingSet, identify_local_working_set

__all__ = [
    "BuildEvent",
    "COORD_DTYPE",
    "CollationResult",
    "CommunicationError",
    "Communicator",
    "DistributedKDTree",
    "INDEX_DTYPE",
    "InProcessCommunicator",
    "InsufficientDataError",
    "LocalTree",
    "LocalTreeBuilder",
    "NO_CHILD",
    "Node",
    "NodeTable",
    "SplitResult",
    "TreeBuildConfig",
    "TreeInfo",
    "TreeSink",
    "TreeSnapshot",
    "WorkingSet",
    "as_coords",
    "as_index",
    "build_distributed_kdtree",
    "build_local_tree",
    "collate_subtrees",
    "get_default_build_config",
    "identify_local_working_set",
    "initial_capacity",
    "left_right_split",
    "log_build_event",
    "make_inprocess_group",
    "max_range_dimension",
    "max_sq_dist_boxes",
    "median_split",
    "midpoint_split",
    "min_sq_dist_boxes",
    "min_sq_dist_point_box",
    "nodes_from_table",
    "nodes_to_table",
    "pairwise_max_sq_dist",
    "pairwise_min_sq_dist",
    "run_spmd",
    "select_kth",
    "set_default_build_config",
    "window_bounds",
]
