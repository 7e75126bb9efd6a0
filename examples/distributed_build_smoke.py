"""Smoke run of a distributed k-d tree build.

Under MPI every rank builds its share of the tree:
    mpirun -n 4 python examples/distributed_build_smoke.py --points 100000

Without ``--mpi`` the same ranks run as threads in one process:
    python examples/distributed_build_smoke.py --ranks 4
"""

from __future__ import annotations

import argparse
import logging
import time

import numpy as np

from kdweave import DistributedKDTree, build_distributed_kdtree, run_spmd


def _make_points(n: int, dim: int, seed: int) -> tuple[np.ndarray, np.ndarray]:
    # Every rank must see identical input, so generate it from a shared seed.
    rng = np.random.default_rng(seed)
    points = rng.uniform(0.0, 1.0, size=(n, dim))
    ids = np.arange(n, dtype=np.int64)
    return ids, points


def _summarize(tree: DistributedKDTree, elapsed: float) -> str:
    leaves = sum(1 for node in tree.nodes if node.is_leaf)
    first = tree.nodes[0].node_id
    last = tree.nodes[-1].node_id
    return (
        f"[rank {tree.rank}/{tree.world_size}] points={tree.num_points} "
        f"nodes={tree.num_nodes} ids=[{first}, {last}] leaves={leaves} "
        f"skeleton={len(tree.skeleton_nodes)} build={elapsed:.3f}s"
    )


def _build(comm, ids, points, leaf_size: int) -> tuple[DistributedKDTree, float]:
    start = time.perf_counter()
    tree = build_distributed_kdtree(ids, points, comm=comm, leaf_size=leaf_size)
    return tree, time.perf_counter() - start


def main() -> None:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("--points", type=int, default=20_000)
    parser.add_argument("--dim", type=int, default=3)
    parser.add_argument("--leaf-size", type=int, default=45)
    parser.add_argument("--seed", type=int, default=0)
    parser.add_argument("--mpi", action="store_true", help="use MPI.COMM_WORLD")
    parser.add_argument(
        "--ranks", type=int, default=4, help="in-process ranks when not using MPI"
    )
    parser.add_argument("--verbose", action="store_true")
    args = parser.parse_args()

    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO)
    ids, points = _make_points(args.points, args.dim, args.seed)

    if args.mpi:
        from kdweave.mpi import MPICommunicator

        comm = MPICommunicator.world()
        tree, elapsed = _build(comm, ids, points, args.leaf_size)
        comm.barrier()
        print(_summarize(tree, elapsed), flush=True)
        if tree.rank == 0:
            print("tree info:", tree.tree_info()._asdict())
        return

    results = run_spmd(
        args.ranks, lambda comm: _build(comm, ids, points, args.leaf_size)
    )
    for tree, elapsed in results:
        print(_summarize(tree, elapsed))
    print("tree info:", results[0][0].tree_info()._asdict())


if __name__ == "__main__":
    main()
