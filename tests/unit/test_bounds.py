"""Unit coverage for kdweave bounds helpers."""

import numpy as np

from kdweave import initial_capacity, max_range_dimension, window_bounds


def test_window_bounds_covers_only_requested_rows():
    points = np.array(
        [
            [9.0, 9.0],
            [-1.0, 2.0],
            [3.0, -2.0],
            [0.5, 1.0],
            [-9.0, -9.0],
        ]
    )
    mins, maxs = window_bounds(points, 1, 3)
    np.testing.assert_array_equal(mins, [-1.0, -2.0])
    np.testing.assert_array_equal(maxs, [3.0, 2.0])


def test_max_range_dimension_prefers_widest_then_lowest_index():
    assert max_range_dimension(np.array([0.0, 0.0, 0.0]), np.array([1.0, 3.0, 2.0])) == 1
    assert max_range_dimension(np.array([0.0, 0.0]), np.array([2.0, 2.0])) == 0


def test_max_range_dimension_of_single_point_is_zero():
    point = np.array([4.0, -1.0, 7.0])
    assert max_range_dimension(point, point) == 0


def test_initial_capacity_small_inputs_get_two_slots():
    assert initial_capacity(1, 45) == 2
    assert initial_capacity(22, 45) == 2


def test_initial_capacity_rounds_up_to_power_of_two():
    # 2 * 100 / 45 = 4.44 -> 2 ** 3 leaves, doubled.
    assert initial_capacity(100, 45) == 16
    assert initial_capacity(8, 1) == 32
