"""
Elementwise arithmetic on grids of stored pixel values.
"""
import numpy as np
from numpy.typing import NDArray

from obsred.utils.fits import half_range


def add(a: NDArray[np.integer], b: NDArray[np.integer]) -> NDArray[np.int64]:
    """Elementwise sum of two grids."""
    return np.asarray(a, dtype=np.int64) + np.asarray(b, dtype=np.int64)


def subtract(a: NDArray[np.integer], b: NDArray[np.integer], factor: float, raw: bool) -> NDArray[np.int64]:
    """Subtracts b*factor from a.

    Pixels where a is not larger than b*factor become 0, unless a is negative. Results below minus half of the
    value range of the bit depth are assumed to have wrapped and get the full range added.

    Args:
        a: Grid to subtract from.
        b: Grid to subtract.
        factor: Factor for b.
        raw: Whether this is raw data with 16 bit, otherwise 8 bit.

    Returns:
        Difference.
    """
    a = np.asarray(a, dtype=np.float64)
    bf = np.asarray(b, dtype=np.float64) * factor
    res = np.where((a > bf) | (a < 0), a - bf, 0.0).astype(np.int64)
    hr = half_range(raw)
    return np.where(res < -hr, res + 2 * hr, res)


def multiply(a: NDArray[np.integer], scalar: float) -> NDArray[np.int64]:
    """Multiplies a grid with a scalar and rounds to the nearest integer."""
    return np.floor(np.asarray(a, dtype=np.float64) * scalar + 0.5).astype(np.int64)


def average(a: NDArray[np.integer]) -> float:
    """Mean value of a grid."""
    return float(np.mean(a))


__all__ = ["add", "subtract", "multiply", "average", "half_range"]
