"""
Sampling of frames at fractional pixel positions.

All positions are given in FITS convention, i.e. the centre of the first pixel is at (1, 1). Values are
interpolated from a small window around the requested position, reaching :data:`BORDER` pixels into each
direction.

The spline degree of both interpolating methods is ``interp_deg - 1`` with ``interp_deg`` being 3 for
:attr:`~obsred.utils.enums.InterpolationMethod.BILINEAR` and 2 for
:attr:`~obsred.utils.enums.InterpolationMethod.BICUBIC`, so a "bilinear" resampling uses splines of degree 2 and a
"bicubic" one splines of degree 1. Existing reductions depend on this mapping, so keep it.
"""
import logging
from typing import Any, Tuple

import numpy as np
from numpy.typing import NDArray
from scipy.interpolate import RectBivariateSpline

from obsred.utils.enums import InterpolationMethod
from obsred.utils.exceptions import OutOfImageError

log = logging.getLogger(__name__)


"""Number of pixels around a position used for interpolation."""
BORDER = 4

"""Value for pixels without data."""
NO_DATA = -9999.0

"""Offsets (column, row) of the Bayer sub-planes R, G, B, and second G."""
BAYER_OFFSETS = [(0, 0), (1, 0), (1, 1), (0, 1)]


class Resampler:
    """Interpolates plane data at fractional FITS pixel positions."""

    __module__ = "obsred.utils.pipeline"

    def __init__(self, method: InterpolationMethod = InterpolationMethod.BICUBIC):
        self.method = method
        interp_deg = 3 if method == InterpolationMethod.BILINEAR else 2
        self.degree = interp_deg - 1

    def __call__(self, plane: NDArray[Any], x: float, y: float) -> float:
        """Returns the value of the given plane at the given position.

        Args:
            plane: Plane data with shape (height, width).
            x: Column in FITS convention.
            y: Row in FITS convention.

        Returns:
            Interpolated value.

        Raises:
            OutOfImageError: If the position is outside the plane.
        """
        if not (np.isfinite(x) and np.isfinite(y)):
            raise OutOfImageError("Invalid pixel position.")

        # window around position
        x0, y0 = max(0, int(x - BORDER)), max(0, int(y - BORDER))
        window = plane[y0 : y0 + 2 * BORDER + 1, x0 : x0 + 2 * BORDER + 1]
        h, w = window.shape

        # position in window, 0-based
        lx, ly = x - x0 - 1, y - y0 - 1
        if lx < 0 or ly < 0 or lx > w - 1 or ly > h - 1:
            raise OutOfImageError("Position (%.2f, %.2f) is outside the image." % (x, y))

        # nearest neighbour
        if self.method == InterpolationMethod.NEAREST_NEIGHBOR:
            return float(window[int(ly + 0.5), int(lx + 0.5)])

        # spline needs more points than its degree
        if w <= self.degree or h <= self.degree:
            raise OutOfImageError("Not enough pixels around (%.2f, %.2f) for interpolation." % (x, y))
        spline = RectBivariateSpline(
            np.arange(h), np.arange(w), np.asarray(window, dtype=float), kx=self.degree, ky=self.degree, s=0
        )
        return float(spline.ev(ly, lx))

    def bayer(self, plane: NDArray[Any], x: float, y: float) -> Tuple[int, float]:
        """Samples a raw Bayer plane in the colour of the pixel at the given position.

        The sub-plane of that colour is sampled at half resolution.

        Args:
            plane: Raw sensor data with shape (height, width).
            x: Column in FITS convention.
            y: Row in FITS convention.

        Returns:
            Tuple of index of Bayer sub-plane (see :data:`BAYER_OFFSETS`) and interpolated value.

        Raises:
            OutOfImageError: If the position is outside the plane.
        """
        if not (np.isfinite(x) and np.isfinite(y)):
            raise OutOfImageError("Invalid pixel position.")

        # pixel the position falls in
        xi, yi = int(x - 1), int(y - 1)
        h, w = plane.shape
        if x < 1 or y < 1 or xi >= w or yi >= h:
            raise OutOfImageError("Position (%.2f, %.2f) is outside the image." % (x, y))

        # colour from parity of column and row
        index = bayer_index(xi, yi)
        ox, oy = BAYER_OFFSETS[index]

        # sample sub-plane at half resolution
        sub = plane[oy::2, ox::2]
        return index, self(sub, (x - 1 - ox) / 2.0 + 1, (y - 1 - oy) / 2.0 + 1)


def bayer_index(column: int, row: int) -> int:
    """Index of the Bayer sub-plane for a 0-based pixel: 0 for even column and row, 1 for odd column and even row,
    2 for odd column and row, 3 for even column and odd row."""
    odd_col, odd_row = column % 2 == 1, row % 2 == 1
    if odd_row:
        return 2 if odd_col else 3
    return 1 if odd_col else 0


def bayer_planes(plane: NDArray[Any]) -> list[NDArray[Any]]:
    """Splits raw Bayer data into its four half-resolution sub-planes, in the order of :data:`BAYER_OFFSETS`."""
    return [plane[oy::2, ox::2] for ox, oy in BAYER_OFFSETS]


__all__ = ["Resampler", "bayer_index", "bayer_planes", "BORDER", "NO_DATA", "BAYER_OFFSETS"]
