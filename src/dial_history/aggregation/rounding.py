"""
Integer mean with a single rounding rule.

Both the per-dial aggregate (mean of member contributions) and the report
average (mean of dial values per slot) use ``rounded_mean`` so the two can
never disagree. The rule is round-half-away-from-zero, computed in exact
integer arithmetic rather than by the storage engine's ROUND().
"""

import numpy as np


def rounded_mean(total: int, count: int) -> int:
    """
    Mean of ``count`` integers summing to ``total``, rounded half away from zero.

    Args:
        total: Sum of the values
        count: Number of values

    Returns:
        Rounded mean; 0 when count is 0.

    Examples:
        >>> rounded_mean(7, 2)   # 3.5
        4
        >>> rounded_mean(-7, 2)  # -3.5
        -4
        >>> rounded_mean(4, 3)   # 1.33
        1
    """
    if count <= 0:
        return 0
    magnitude = (2 * abs(total) + count) // (2 * count)
    return magnitude if total >= 0 else -magnitude


def rounded_column_means(matrix: np.ndarray) -> list[int]:
    """
    Apply ``rounded_mean`` down each column of a 2-D integer matrix.

    Args:
        matrix: Array of shape (rows, columns)

    Returns:
        One rounded mean per column; all zeros when there are no rows.
    """
    rows, columns = matrix.shape
    if rows == 0:
        return [0] * columns
    totals = matrix.sum(axis=0, dtype=np.int64)
    return [rounded_mean(int(total), rows) for total in totals]
