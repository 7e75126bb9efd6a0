"""Stitch per-worker subtrees into one globally numbered preorder tree.

Before collation every worker numbers its skeleton nodes and its private
subtree from 1. The protocol runs ``log2(world_size)`` rounds twice:

* up-sweep: subtree node counts flow towards rank 0, so every skeleton
  node learns how many nodes lie below it;
* down-sweep: each left partner tells its right partner where the right
  subtree starts, and learns the id of its right child in return.

Only small integers cross worker boundaries. Point data never moves.
"""

from __future__ import annotations

import logging
from typing import NamedTuple

import numpy as np

from .local_tree import Node
from .protocols import Communicator
from .workload import num_skeleton_levels, pair_role

logger = logging.getLogger(__name__)

UPSWEEP_TAG = 11
DOWNSWEEP_TAG = 12


class CollationResult(NamedTuple):
    """What a worker knows once collation has finished."""

    skeleton_nodes: list[Node]
    # subtree_sizes[i] counts the nodes under skeleton_nodes[i].
    subtree_sizes: list[int]
    # Nodes under this worker's topmost node; the whole tree on rank 0.
    top_num_nodes: int
    # Amount added to every local identifier.
    offset: int


def _upsweep(comm: Communicator, chain_sizes: list[int], levels: int) -> None:
    rank = comm.rank
    stride = 2
    for _ in range(levels):
        role = pair_role(rank, stride)
        partner_gap = stride // 2
        if role == "left":
            theirs = comm.recv(rank + partner_gap, tag=UPSWEEP_TAG)
            # +1 counts the skeleton node joining the two halves.
            chain_sizes.insert(0, chain_sizes[0] + theirs + 1)
        elif role == "right":
            comm.send(chain_sizes[0], rank - partner_gap, tag=UPSWEEP_TAG)
        stride *= 2


def _downsweep(
    comm: Communicator,
    chain: list[Node],
    chain_sizes: list[int],
    levels: int,
) -> None:
    rank = comm.rank
    depth = 0
    stride = comm.world_size
    for _ in range(levels):
        role = pair_role(rank, stride)
        partner_gap = stride // 2
        if role == "left":
            depth += 1
            left_child = chain[depth]
            last_left_id = chain_sizes[depth] + left_child.node_id - 1
            comm.send(last_left_id, rank + partner_gap, tag=DOWNSWEEP_TAG)
            chain[depth - 1].right_child = comm.recv(
                rank + partner_gap, tag=DOWNSWEEP_TAG
            )
        elif role == "right":
            # Right partners hear from the left exactly once, before they
            # ever act as a left partner themselves.
            offset = comm.recv(rank - partner_gap, tag=DOWNSWEEP_TAG)
            for node in chain:
                node.shift(offset)
            comm.send(chain[0].node_id, rank - partner_gap, tag=DOWNSWEEP_TAG)
        stride //= 2


def collate_subtrees(
    local_nodes: list[Node],
    skeleton_nodes: list[Node],
    node_to_point: np.ndarray,
    comm: Communicator,
) -> CollationResult:
    """Renumber this worker's nodes in place to their global preorder ids.

    Must be called by every rank of ``comm`` together. ``skeleton_nodes`` are
    the nodes this rank recorded while isolating its working set, ordered by
    level; ``local_nodes[0]`` is the root of its private subtree.

    Raises:
        CommunicationError: an exchange with a partner failed.
    """

    if not local_nodes:
        raise ValueError("local_nodes must contain the private subtree root")
    levels = num_skeleton_levels(comm.world_size)

    # The private root is recorded twice while the sweeps run: as the last
    # link of the skeleton chain and as local_nodes[0].
    local_root = local_nodes[0]
    chain = list(skeleton_nodes) + [local_root]
    local_root_id = local_root.node_id
    chain_sizes = [len(local_nodes)]

    _upsweep(comm, chain_sizes, levels)
    if len(chain_sizes) != len(chain):
        raise RuntimeError(
            f"rank {comm.rank}: up-sweep produced {len(chain_sizes)} sizes for "
            f"{len(chain)} chain nodes"
        )
    _downsweep(comm, chain, chain_sizes, levels)

    add_value = local_root.node_id - local_root_id
    if add_value:
        for node in local_nodes[1:]:
            node.shift(add_value)
        node_to_point += add_value

    logger.debug(
        "rank %d collated: root id %d, offset %d, %d nodes below top",
        comm.rank,
        local_root.node_id,
        add_value,
        chain_sizes[0],
    )
    return CollationResult(
        skeleton_nodes=chain[:-1],
        subtree_sizes=chain_sizes[:-1],
        top_num_nodes=chain_sizes[0],
        offset=add_value,
    )


__all__ = ["CollationResult", "DOWNSWEEP_TAG", "UPSWEEP_TAG", "collate_subtrees"]
