"""Local preorder build: numbering, point conservation, and box containment."""

import math

import numpy as np
import pytest

from kdweave import LocalTreeBuilder, build_local_tree
from kdweave.local_tree import NO_CHILD
from tests.unit.spmd_fixtures import subtree_size


def _cloud(n: int, dim: int = 3, seed: int = 0):
    rng = np.random.default_rng(seed)
    points = rng.normal(size=(n, dim))
    ids = np.arange(n, dtype=np.int64)
    return points, ids


def _by_id(nodes):
    return {node.node_id: node for node in nodes}


def test_nodes_are_numbered_in_preorder():
    points, ids = _cloud(500)
    tree = build_local_tree(points, ids, leaf_size=8, median_split_levels=3)
    nodes_by_id = _by_id(tree.nodes)

    assert [node.node_id for node in tree.nodes] == list(range(1, len(tree.nodes) + 1))
    for node in tree.nodes:
        assert node.box_index == node.node_id - 1
        if node.is_leaf:
            assert node.left_child == NO_CHILD
            assert node.right_child == NO_CHILD
            continue
        assert node.left_child == node.node_id + 1
        assert node.right_child == (
            node.left_child + subtree_size(nodes_by_id, node.left_child)
        )
        left = nodes_by_id[node.left_child]
        right = nodes_by_id[node.right_child]
        assert left.num_points + right.num_points == node.num_points
        assert left.level == right.level == node.level + 1


def test_leaves_conserve_points_and_map_them():
    points, ids = _cloud(300, seed=1)
    original = {int(i): tuple(p) for i, p in zip(ids, points)}
    tree = build_local_tree(points, ids, leaf_size=10, median_split_levels=20)

    leaves = [node for node in tree.nodes if node.is_leaf]
    assert sum(leaf.num_points for leaf in leaves) == 300
    assert all(leaf.num_points <= 10 for leaf in leaves)

    # Rows still pair each id with its own coordinates.
    for i, p in zip(ids, points):
        assert original[int(i)] == tuple(p)

    # Each leaf owns one contiguous run of node_to_point.
    counts = {leaf.node_id: leaf.num_points for leaf in leaves}
    mapped, mapped_counts = np.unique(tree.node_to_point, return_counts=True)
    assert dict(zip(mapped.tolist(), mapped_counts.tolist())) == counts
    assert np.all(np.diff(tree.node_to_point) >= 0)


def test_child_boxes_lie_inside_parent_boxes():
    points, ids = _cloud(400, dim=2, seed=2)
    tree = build_local_tree(points, ids, leaf_size=5, median_split_levels=2)
    assert tree.box_min.shape == (len(tree.nodes), 2)

    for node in tree.nodes:
        if node.is_leaf:
            continue
        parent = node.box_index
        for child_id in (node.left_child, node.right_child):
            child = child_id - 1
            assert np.all(tree.box_min[child] >= tree.box_min[parent])
            assert np.all(tree.box_max[child] <= tree.box_max[parent])

    np.testing.assert_array_equal(tree.box_min[0], points.min(axis=0))
    np.testing.assert_array_equal(tree.box_max[0], points.max(axis=0))


def test_leaf_boxes_bound_their_points():
    points, ids = _cloud(120, seed=4)
    tree = build_local_tree(points, ids, leaf_size=7)
    for leaf in (node for node in tree.nodes if node.is_leaf):
        rows = points[tree.node_to_point == leaf.node_id]
        np.testing.assert_array_equal(tree.box_min[leaf.box_index], rows.min(axis=0))
        np.testing.assert_array_equal(tree.box_max[leaf.box_index], rows.max(axis=0))


def test_median_levels_split_evenly():
    points, ids = _cloud(101, seed=6)
    tree = build_local_tree(points, ids, leaf_size=4, median_split_levels=10)
    root = tree.nodes[0]
    left = tree.nodes[1]
    assert left.num_points == math.ceil(root.num_points / 2)


def test_identical_points_collapse_into_one_leaf():
    points = np.ones((20, 2))
    ids = np.arange(20, dtype=np.int64)
    tree = build_local_tree(points, ids, leaf_size=3)
    assert len(tree.nodes) == 1
    assert tree.nodes[0].is_leaf
    assert tree.nodes[0].num_points == 20


def test_small_input_is_single_leaf():
    points, ids = _cloud(5)
    tree = build_local_tree(points, ids, leaf_size=45)
    assert len(tree.nodes) == 1
    np.testing.assert_array_equal(tree.node_to_point, np.ones(5, dtype=np.int64))


def test_numbering_can_start_below_skeleton():
    points, ids = _cloud(64, seed=8)
    tree = build_local_tree(
        points, ids, leaf_size=4, median_split_levels=2, first_node_id=4, start_level=2
    )
    root = tree.nodes[0]
    assert root.node_id == 4
    assert root.box_index == 3
    assert root.level == 2
    assert tree.node_to_point.min() >= 5


def test_builder_runs_once_and_trims_box_table():
    # Clustered values force many small midpoint splits.
    values = np.concatenate([np.geomspace(1e-6, 1.0, 60), -np.geomspace(1e-6, 1.0, 60)])
    points = values[:, None].copy()
    ids = np.arange(points.shape[0], dtype=np.int64)
    builder = LocalTreeBuilder(points, ids, leaf_size=2, median_split_levels=0)
    start_capacity = builder.capacity

    tree = builder.build()
    assert builder.capacity >= max(len(tree.nodes), start_capacity)
    assert tree.box_min.shape[0] == len(tree.nodes)
    with pytest.raises(RuntimeError):
        builder.build()


def test_rejects_invalid_arguments():
    points, ids = _cloud(4)
    with pytest.raises(ValueError):
        build_local_tree(points, ids, leaf_size=0)
    with pytest.raises(ValueError):
        build_local_tree(points[:0], ids[:0], leaf_size=2)


def test_rejects_non_finite_points():
    points, ids = _cloud(6)
    points[2, 1] = np.nan
    with pytest.raises(ValueError, match="finite"):
        build_local_tree(points, ids, leaf_size=1)
