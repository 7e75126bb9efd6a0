"""Bounding-box distance primitives."""

import numpy as np
import pytest

from kdweave import (
    max_sq_dist_boxes,
    min_sq_dist_boxes,
    min_sq_dist_point_box,
    pairwise_max_sq_dist,
    pairwise_min_sq_dist,
)

UNIT_MIN = np.array([0.0, 0.0])
UNIT_MAX = np.array([1.0, 1.0])


def test_point_inside_box_is_at_zero_distance():
    assert float(min_sq_dist_point_box(np.array([0.5, 1.0]), UNIT_MIN, UNIT_MAX)) == 0.0


def test_point_outside_box_measures_excess_per_side():
    # 2 past the upper x bound, 3 below the lower y bound.
    value = min_sq_dist_point_box(np.array([3.0, -3.0]), UNIT_MIN, UNIT_MAX)
    assert float(value) == pytest.approx(4.0 + 9.0)


def test_overlapping_and_touching_boxes_are_at_zero_distance():
    assert float(min_sq_dist_boxes(UNIT_MIN, UNIT_MAX, UNIT_MIN + 0.5, UNIT_MAX + 0.5)) == 0.0
    assert float(min_sq_dist_boxes(UNIT_MIN, UNIT_MAX, UNIT_MIN + 1.0, UNIT_MAX + 1.0)) == 0.0


def test_box_distances_are_symmetric_and_non_negative():
    rng = np.random.default_rng(0)
    for _ in range(20):
        a = np.sort(rng.uniform(-5.0, 5.0, size=(2, 3)), axis=0)
        b = np.sort(rng.uniform(-5.0, 5.0, size=(2, 3)), axis=0)
        lo_ab = float(min_sq_dist_boxes(a[0], a[1], b[0], b[1]))
        lo_ba = float(min_sq_dist_boxes(b[0], b[1], a[0], a[1]))
        hi_ab = float(max_sq_dist_boxes(a[0], a[1], b[0], b[1]))
        hi_ba = float(max_sq_dist_boxes(b[0], b[1], a[0], a[1]))
        assert lo_ab == lo_ba >= 0.0
        assert hi_ab == hi_ba >= lo_ab


def test_separated_boxes_measure_gap_and_union_width():
    b_min = np.array([3.0, 0.0])
    b_max = np.array([4.0, 2.0])
    assert float(min_sq_dist_boxes(UNIT_MIN, UNIT_MAX, b_min, b_max)) == pytest.approx(4.0)
    # Union spans [0, 4] x [0, 2].
    assert float(max_sq_dist_boxes(UNIT_MIN, UNIT_MAX, b_min, b_max)) == pytest.approx(20.0)


def test_max_distance_of_box_with_itself_is_squared_diagonal():
    assert float(max_sq_dist_boxes(UNIT_MIN, UNIT_MAX, UNIT_MIN, UNIT_MAX)) == pytest.approx(2.0)


def test_pairwise_matrices_match_scalar_calls():
    rng = np.random.default_rng(1)
    a = np.sort(rng.normal(size=(2, 4, 3)), axis=0)
    b = np.sort(rng.normal(size=(2, 5, 3)), axis=0)
    lower = np.asarray(pairwise_min_sq_dist(a[0], a[1], b[0], b[1]))
    upper = np.asarray(pairwise_max_sq_dist(a[0], a[1], b[0], b[1]))
    assert lower.shape == upper.shape == (4, 5)
    for i in range(4):
        for j in range(5):
            assert lower[i, j] == pytest.approx(
                float(min_sq_dist_boxes(a[0, i], a[1, i], b[0, j], b[1, j]))
            )
            assert upper[i, j] == pytest.approx(
                float(max_sq_dist_boxes(a[0, i], a[1, i], b[0, j], b[1, j]))
            )


def test_mismatched_dimensions_are_rejected():
    with pytest.raises(ValueError):
        min_sq_dist_point_box(np.zeros(3), UNIT_MIN, UNIT_MAX)
