"""In-place partitioning kernels over parallel point/id buffers.

Every routine works on a window ``[start, start + size)`` of a ``(n, k)``
coordinate array and its ``(n,)`` id array. Rows are always permuted in both
arrays together, so ``ids[i]`` keeps naming the point in ``points[i]``.

The public functions are type-checked wrappers; tree builders call the
underscored kernels directly to keep per-node overhead low.
"""

from __future__ import annotations

from typing import NamedTuple

import numpy as np
from beartype import beartype
from jaxtyping import Float, Int, jaxtyped


class SplitResult(NamedTuple):
    """Outcome of splitting one window along one dimension."""

    split_value: float
    left_size: int
    split_occurred: bool


def _permute_rows(
    points: np.ndarray,
    ids: np.ndarray,
    start: int,
    stop: int,
    order: np.ndarray,
) -> None:
    points[start:stop] = points[start:stop][order]
    ids[start:stop] = ids[start:stop][order]


def _left_right_split(
    points: np.ndarray,
    ids: np.ndarray,
    start: int,
    size: int,
    dim: int,
    split_value: float,
) -> tuple[int, bool]:
    # Converging cursors swap the k-th ``> split_value`` row found from the
    # left with the k-th ``<= split_value`` row found from the right until they
    # cross. Those pairs are known up front, so all swaps happen in one pass.
    goes_left = points[start : start + size, dim] <= split_value
    left_size = int(np.count_nonzero(goes_left))
    misplaced_left = np.flatnonzero(~goes_left[:left_size])
    if misplaced_left.size:
        misplaced_right = left_size + np.flatnonzero(goes_left[left_size:])[::-1]
        order = np.arange(size)
        order[misplaced_left] = misplaced_right
        order[misplaced_right] = misplaced_left
        _permute_rows(points, ids, start, start + size, order)
    return left_size, 0 < left_size < size


def _select_kth(
    points: np.ndarray,
    ids: np.ndarray,
    start: int,
    size: int,
    dim: int,
    kth: int,
) -> None:
    lo = start
    hi = start + size
    target = start + kth
    while hi - lo > 1:
        column = points[lo:hi, dim]
        # Pivot on the middle element of the current window.
        pivot = column[(hi - lo - 1) // 2]
        below = column < pivot
        equal = column == pivot
        above = ~(below | equal)
        order = np.concatenate(
            (np.flatnonzero(below), np.flatnonzero(equal), np.flatnonzero(above))
        )
        _permute_rows(points, ids, lo, hi, order)

        equal_start = lo + int(np.count_nonzero(below))
        equal_stop = equal_start + int(np.count_nonzero(equal))
        if target < equal_start:
            hi = equal_start
        elif target < equal_stop:
            return
        else:
            lo = equal_stop


def _median_split(
    points: np.ndarray,
    ids: np.ndarray,
    start: int,
    size: int,
    dim: int,
) -> SplitResult:
    median_rank = (size - 1) // 2
    _select_kth(points, ids, start, size, dim, median_rank)
    split_value = float(points[start + median_rank, dim])
    left_size, split_occurred = _left_right_split(
        points, ids, start, size, dim, split_value
    )
    return SplitResult(split_value, left_size, split_occurred)


def _midpoint_split(
    points: np.ndarray,
    ids: np.ndarray,
    start: int,
    size: int,
    dim: int,
    lower: float,
    upper: float,
) -> SplitResult:
    split_value = 0.5 * (float(lower) + float(upper))
    left_size, split_occurred = _left_right_split(
        points, ids, start, size, dim, split_value
    )
    return SplitResult(split_value, left_size, split_occurred)


def _validate_window(points: np.ndarray, start: int, size: int, dim: int) -> None:
    if size < 1:
        raise ValueError(f"window size must be >= 1, received {size}")
    if start < 0 or start + size > points.shape[0]:
        raise ValueError(
            f"window [{start}, {start + size}) exceeds {points.shape[0]} rows"
        )
    if not 0 <= dim < points.shape[1]:
        raise ValueError(f"dim must be in [0, {points.shape[1]}), received {dim}")
    if not np.all(np.isfinite(points[start : start + size, dim])):
        raise ValueError(
            f"window [{start}, {start + size}) holds non-finite values on dim {dim}"
        )


@jaxtyped(typechecker=beartype)
def left_right_split(
    points: Float[np.ndarray, "n k"],
    ids: Int[np.ndarray, " n"],
    start: int,
    size: int,
    dim: int,
    split_value: float,
) -> tuple[int, bool]:
    """Partition a window around ``split_value`` on ``dim``.

    Rows with coordinate ``<= split_value`` end up before rows with coordinate
    ``> split_value``.

    Returns:
        ``(left_size, split_occurred)`` where ``split_occurred`` is ``True``
        only when both sides are non-empty.
    """

    _validate_window(points, start, size, dim)
    return _left_right_split(points, ids, start, size, dim, split_value)


@jaxtyped(typechecker=beartype)
def select_kth(
    points: Float[np.ndarray, "n k"],
    ids: Int[np.ndarray, " n"],
    start: int,
    size: int,
    dim: int,
    kth: int,
) -> None:
    """Quickselect: place the ``kth`` smallest coordinate at ``start + kth``.

    Afterwards no row before ``start + kth`` has a larger coordinate on
    ``dim`` and no row after it has a smaller one.
    """

    _validate_window(points, start, size, dim)
    if not 0 <= kth < size:
        raise ValueError(f"kth must be in [0, {size}), received {kth}")
    _select_kth(points, ids, start, size, dim, kth)


@jaxtyped(typechecker=beartype)
def median_split(
    points: Float[np.ndarray, "n k"],
    ids: Int[np.ndarray, " n"],
    start: int,
    size: int,
    dim: int,
) -> SplitResult:
    """Split a window at the median of ``dim``.

    The lower median (rank ``(size - 1) // 2``) becomes the split value, so a
    window of distinct values splits into ``ceil(size / 2)`` and
    ``floor(size / 2)`` rows whatever the input order.
    """

    _validate_window(points, start, size, dim)
    return _median_split(points, ids, start, size, dim)


@jaxtyped(typechecker=beartype)
def midpoint_split(
    points: Float[np.ndarray, "n k"],
    ids: Int[np.ndarray, " n"],
    start: int,
    size: int,
    dim: int,
    lower: float,
    upper: float,
) -> SplitResult:
    """Split a window at the midpoint of its ``[lower, upper]`` range on ``dim``."""

    _validate_window(points, start, size, dim)
    return _midpoint_split(points, ids, start, size, dim, lower, upper)


__all__ = [
    "SplitResult",
    "left_right_split",
    "median_split",
    "midpoint_split",
    "select_kth",
]
