import math

import numpy as np
import pytest
from astropy.wcs import WCS

from obsred.images.processors.astrometry import PlateSolution, fit_with_rejection
from obsred.images.processors.astrometry.plate import standard_coordinates
from obsred.utils.exceptions import SolveError


def _wcs() -> WCS:
    wcs = WCS(naxis=2)
    wcs.wcs.ctype = ["RA---TAN", "DEC--TAN"]
    wcs.wcs.crval = [150.0, 30.0]
    wcs.wcs.crpix = [50.0, 50.0]
    wcs.wcs.cdelt = [-1.0 / 3600, 1.0 / 3600]
    return wcs


def _stars():
    x = np.array([50.0, 10.0, 90.0, 10.0, 90.0])
    y = np.array([50.0, 10.0, 10.0, 90.0, 90.0])
    ra, dec = _wcs().all_pix2world(x, y, 1)
    return x, y, np.radians(ra), np.radians(dec)


def test_standard_coordinates_at_reference():
    xi, eta = standard_coordinates(np.array([1.0]), np.array([0.5]), 1.0, 0.5)
    assert xi[0] == pytest.approx(0.0)
    assert eta[0] == pytest.approx(0.0)


def test_too_few_stars():
    x, y, ra, dec = _stars()
    with pytest.raises(SolveError):
        PlateSolution(ra[0], dec[0], x[:3], y[:3], ra[:3], dec[:3])


def test_exact_solution():
    x, y, ra, dec = _stars()
    plate = PlateSolution(ra[0], dec[0], x, y, ra, dec)

    res_ra, res_dec = plate.residual
    assert math.degrees(res_ra) * 3600 < 0.01
    assert math.degrees(res_dec) * 3600 < 0.01

    # pixel to world
    r, d = plate.pixel_to_world(90.0, 90.0)
    assert math.degrees(r) == pytest.approx(math.degrees(ra[4]), abs=1e-5)
    assert math.degrees(d) == pytest.approx(math.degrees(dec[4]), abs=1e-5)

    # as WCS
    wcs = plate.to_wcs()
    r, d = wcs.all_pix2world(x, y, 1)
    np.testing.assert_allclose(r, np.degrees(ra), atol=1e-5)
    np.testing.assert_allclose(d, np.degrees(dec), atol=1e-5)


def test_outlier_rejection():
    x, y, ra, dec = _stars()

    # star in the centre is off by 20 arcsec in RA
    ra_bad = ra.copy()
    ra_bad[0] += math.radians(20.0 / 3600) / math.cos(dec[0])

    plate, used = fit_with_rejection(ra[1], dec[1], x, y, ra_bad, dec)
    assert list(used) == [False, True, True, True, True]
    assert math.degrees(plate.residual[0]) * 3600 < 0.01


def test_rejection_keeps_four_stars():
    x, y, ra, dec = _stars()
    ra_bad = ra.copy()
    ra_bad[1] += math.radians(20.0 / 3600)

    plate, used = fit_with_rejection(ra[0], dec[0], x[1:], y[1:], ra_bad[1:], dec[1:])
    assert used.sum() == 4
