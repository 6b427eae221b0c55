"""
Photometric zero point from identified catalog stars.

The faintest of the reference stars defines the zero point. With at least two reference stars a line
``y = m x + n`` is fitted to the catalog magnitude differences ``y = mag - REF_MAG`` over the observed ones
``x = -2.5 log10(flux / REF_FLUX)``, with the slope fixed to ``m = 1/2.5``.
"""
import logging
from dataclasses import dataclass
from typing import Any, Optional, List

import numpy as np
from astropy.io import fits
from numpy.typing import NDArray

log = logging.getLogger(__name__)


"""Fixed slope of the photometric fit."""
SLOPE = 1.0 / 2.5


@dataclass
class PhotometricSolution:
    """Reference star and optional linear fit for deriving magnitudes from fluxes.

    Attributes:
        ref_mag: Catalog magnitude of reference star.
        ref_flux: Measured flux of reference star.
        ref_x: Column of reference star.
        ref_y: Row of reference star.
        slope: Slope of fit, if any.
        intercept: Intercept of fit, if any.
    """

    ref_mag: float
    ref_flux: float
    ref_x: float
    ref_y: float
    slope: Optional[float] = None
    intercept: Optional[float] = None

    def magnitude(self, flux: NDArray[Any]) -> NDArray[np.float64]:
        """Magnitudes for the given fluxes."""
        flux = np.asarray(flux, dtype=float)
        with np.errstate(divide="ignore", invalid="ignore"):
            dmag = -2.5 * np.log10(flux / self.ref_flux)
        if self.slope is None or self.intercept is None:
            return self.ref_mag + dmag
        return self.ref_mag + self.slope * dmag + self.intercept

    def write_header(self, header: fits.Header) -> None:
        """Write solution to header."""
        header["REF_MAG"] = (self.ref_mag, "Reference magnitude of faintest star")
        header["REF_MAGX"] = (self.ref_x, "X position in image of reference star")
        header["REF_MAGY"] = (self.ref_y, "Y position in image of reference star")
        if self.slope is not None and self.intercept is not None:
            header["REF_DM"] = (self.slope, "Slope m in photometric fit (dmag = m * obs dmag + n)")
            header["REF_DN"] = (self.intercept, "Value n in photometric fit (dmag = m * obs dmag + n)")
        header["REF_FLUX"] = (self.ref_flux, "Reference flux of faintest star")


def reference_stars(var: List[str]) -> NDArray[np.bool_]:
    """Mask of stars to use as reference: all non-variable stars or, if there are none, all with unknown
    variability."""
    var_array = np.array([str(v).strip() for v in var])
    non_variable = var_array == "N"
    return non_variable if np.any(non_variable) else var_array == "-"


def solve_photometry(
    mag: NDArray[Any], flux: NDArray[Any], var: List[str], x: NDArray[Any], y: NDArray[Any]
) -> Optional[PhotometricSolution]:
    """Derive the photometric zero point from identified stars.

    Args:
        mag: Catalog magnitudes.
        flux: Measured fluxes.
        var: Variability flags.
        x: Columns of stars.
        y: Rows of stars.

    Returns:
        Solution or None, if no reference star is available.
    """
    mag, flux, x, y = (np.asarray(v, dtype=float) for v in (mag, flux, x, y))
    mask = reference_stars(var) & (flux > 0)
    if not np.any(mask):
        return None

    # faintest reference star
    indices = np.where(mask)[0]
    ref = indices[np.argmax(mag[indices])]
    solution = PhotometricSolution(ref_mag=mag[ref], ref_flux=flux[ref], ref_x=x[ref], ref_y=y[ref])
    if len(indices) < 2:
        return solution

    # fit with fixed slope, removing bad points
    dy = mag[indices] - solution.ref_mag
    dx = -2.5 * np.log10(flux[indices] / solution.ref_flux)
    while True:
        intercept = float(np.mean(dy - SLOPE * dx))
        errors = np.abs(dy - (SLOPE * dx + intercept))
        worst = int(np.argmax(errors))
        if len(dx) > 3:
            others = np.delete(errors, worst)
            if errors[worst] > 3.0 * np.mean(others):
                log.debug("Removing point %d from photometric fit.", worst)
                dx, dy = np.delete(dx, worst), np.delete(dy, worst)
                continue
        break

    log.info("Photometric fit: slope=%.3f, intercept=%.3f.", SLOPE, intercept)
    solution.slope = SLOPE
    solution.intercept = intercept
    return solution


__all__ = ["PhotometricSolution", "solve_photometry", "reference_stars", "SLOPE"]
