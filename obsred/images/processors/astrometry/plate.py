"""
Linear plate solution.

Catalog positions are projected onto standard coordinates (xi, eta) around a reference star, and six plate
constants relate them to pixel positions::

    xi  = x + A x + B y + C
    eta = y + D x + E y + F

The constants are found by linear least squares. The residual of the solution along each axis is the RMS of the
residuals of all stars with N - 3 degrees of freedom, in right ascension scaled by 1/cos(dec0).
"""
import logging
import math
from typing import Any, Tuple

import numpy as np
from astropy.wcs import WCS
from numpy.typing import NDArray

from obsred.utils.exceptions import SolveError

log = logging.getLogger(__name__)


"""Minimum number of stars for a plate solution."""
MIN_STARS = 4

"""Fraction of the total residual above which a single star is removed."""
OUTLIER_FRACTION = 0.3


def standard_coordinates(
    ra: NDArray[Any], dec: NDArray[Any], ra0: float, dec0: float
) -> Tuple[NDArray[np.float64], NDArray[np.float64]]:
    """Gnomonic projection of sky positions around a reference position, all in radians.

    Args:
        ra: Right ascensions.
        dec: Declinations.
        ra0: Right ascension of reference.
        dec0: Declination of reference.

    Returns:
        Tuple of standard coordinates xi and eta.
    """
    ra, dec = np.asarray(ra, dtype=float), np.asarray(dec, dtype=float)
    sd, cd = math.sin(dec0), math.cos(dec0)
    h = np.sin(dec) * sd + np.cos(dec) * cd * np.cos(ra - ra0)
    xi = np.cos(dec) * np.sin(ra - ra0) / h
    eta = (np.sin(dec) * cd - np.cos(dec) * sd * np.cos(ra - ra0)) / h
    return xi, eta


class PlateSolution:
    """Plate constants fitted from stars with known pixel and sky positions."""

    __module__ = "obsred.images.processors.astrometry"

    def __init__(
        self, ra0: float, dec0: float, x: NDArray[Any], y: NDArray[Any], ra: NDArray[Any], dec: NDArray[Any]
    ):
        """Fit plate constants.

        Args:
            ra0: Right ascension of reference position in radians.
            dec0: Declination of reference position in radians.
            x: Pixel columns of stars.
            y: Pixel rows of stars.
            ra: Right ascensions of stars in radians.
            dec: Declinations of stars in radians.

        Raises:
            SolveError: If less than four stars are given.
        """
        n = len(x)
        if n < MIN_STARS:
            raise SolveError("At least %d stars are required for a plate solution, got %d." % (MIN_STARS, n))
        self.ra0, self.dec0 = ra0, dec0
        x, y = np.asarray(x, dtype=float), np.asarray(y, dtype=float)

        # fit
        xi, eta = standard_coordinates(ra, dec, ra0, dec0)
        design = np.column_stack([x, y, np.ones(n)])
        (a, b, c), *_ = np.linalg.lstsq(design, xi - x, rcond=None)
        (d, e, f), *_ = np.linalg.lstsq(design, eta - y, rcond=None)
        self.constants = np.array([a, b, c, d, e, f])

        # residuals
        self.residuals_ra = x + a * x + b * y + c - xi
        self.residuals_dec = y + d * x + e * y + f - eta
        self.rms_ra = math.sqrt(np.sum((self.residuals_ra / math.cos(dec0)) ** 2) / (n - 3.0))
        self.rms_dec = math.sqrt(np.sum(self.residuals_dec**2) / (n - 3.0))

    @property
    def residual(self) -> Tuple[float, float]:
        """RMS residuals in right ascension and declination in radians."""
        return self.rms_ra, self.rms_dec

    def pixel_to_world(self, x: float, y: float) -> Tuple[float, float]:
        """Returns the sky position of a pixel.

        Args:
            x: Pixel column.
            y: Pixel row.

        Returns:
            Right ascension and declination in radians.
        """
        a, b, c, d, e, f = self.constants
        xi, eta = a * x + b * y + c + x, d * x + e * y + f + y
        sd, cd = math.sin(self.dec0), math.cos(self.dec0)
        denominator = cd - eta * sd
        ra = (math.atan2(xi, denominator) + self.ra0) % (2.0 * math.pi)
        dec = math.atan((sd + eta * cd) / math.hypot(xi, denominator))
        return ra, dec

    def to_wcs(self) -> WCS:
        """Returns the solution as a linear TAN WCS with the reference position as CRVAL."""
        a, b, c, d, e, f = self.constants
        matrix = np.array([[1.0 + a, b], [d, 1.0 + e]])

        # reference pixel, where standard coordinates vanish
        crpix = np.linalg.solve(matrix, [-c, -f])

        wcs = WCS(naxis=2)
        wcs.wcs.ctype = ["RA---TAN", "DEC--TAN"]
        wcs.wcs.crval = [math.degrees(self.ra0), math.degrees(self.dec0)]
        wcs.wcs.crpix = crpix
        wcs.wcs.cd = np.degrees(matrix)
        wcs.wcs.radesys = "ICRS"
        return wcs


def fit_with_rejection(
    ra0: float, dec0: float, x: NDArray[Any], y: NDArray[Any], ra: NDArray[Any], dec: NDArray[Any]
) -> Tuple[PlateSolution, NDArray[np.bool_]]:
    """Fit plate constants, iteratively removing the first star whose residual in right ascension or declination
    exceeds 30% of the total residual along that axis, while more than four stars remain.

    Args:
        ra0: Right ascension of reference position in radians.
        dec0: Declination of reference position in radians.
        x: Pixel columns of stars.
        y: Pixel rows of stars.
        ra: Right ascensions of stars in radians.
        dec: Declinations of stars in radians.

    Returns:
        Final solution and mask of stars used for it.
    """
    x, y, ra, dec = (np.asarray(v, dtype=float) for v in (x, y, ra, dec))
    used = np.ones(len(x), dtype=bool)
    while True:
        solution = PlateSolution(ra0, dec0, x[used], y[used], ra[used], dec[used])
        if used.sum() <= MIN_STARS:
            return solution, used

        # find first outlier
        res_ra, res_dec = np.abs(solution.residuals_ra), np.abs(solution.residuals_dec)
        outliers = np.where((res_ra > OUTLIER_FRACTION * res_ra.sum()) | (res_dec > OUTLIER_FRACTION * res_dec.sum()))[0]
        if len(outliers) == 0:
            return solution, used

        # remove it
        index = np.where(used)[0][outliers[0]]
        log.debug("Removing star %d from plate solution.", index)
        used[index] = False


__all__ = ["PlateSolution", "fit_with_rejection", "standard_coordinates", "MIN_STARS"]
