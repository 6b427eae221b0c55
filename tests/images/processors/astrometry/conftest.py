from typing import Any, Optional

import numpy as np
import pytest
from astropy.io import fits
from astropy.table import Table
from numpy.typing import NDArray

from obsred.images.processors.detection import SourceDetection
from obsred.utils.catalog import TableStarCatalog
from obsred.utils.catalog.catalog import nominal_wcs

# pixel positions of stars, brightest first
STAR_X = [30.0, 165.0, 90.0, 150.0, 100.0]
STAR_Y = [40.0, 60.0, 170.0, 150.0, 80.0]
STAR_MAG = [8.0, 8.5, 9.0, 9.5, 10.0]

RA, DEC, FIELD, SIZE = 150.0, 30.0, 0.2, 200


class FixedSourceDetection(SourceDetection):
    """Returns the same sources for every image."""

    def __init__(self, sources: Table, **kwargs: Any):
        SourceDetection.__init__(self, **kwargs)
        self.sources = sources

    def detect(self, data: NDArray[Any], min_area: Optional[int] = None, sigma: Optional[float] = None) -> Table:
        return self.sources.copy()


@pytest.fixture()
def star_field():
    """Catalog, detection and header for a field whose stars are exactly at the given positions."""
    wcs = nominal_wcs(RA, DEC, FIELD / SIZE, SIZE, SIZE)
    ra, dec = wcs.all_pix2world(STAR_X, STAR_Y, 1)
    catalog = TableStarCatalog(table=Table({"ra": ra, "dec": dec, "mag": STAR_MAG}))

    flux = 1e5 * 10 ** (-0.4 * (np.array(STAR_MAG) - 8.0))
    sources = Table({"x": STAR_X, "y": STAR_Y, "flux": flux, "objtype": [1.0] * len(STAR_X)})
    detection = FixedSourceDetection(sources)

    header = fits.Header(
        {
            "RAW": True,
            "NAXIS1": SIZE,
            "NAXIS2": SIZE,
            "RA": RA,
            "DEC": DEC,
            "FIELD": FIELD,
            "MOUNT": "EQUATORIAL",
            "DATE-OBS": "2024-03-02T21:00:00",
        }
    )
    return catalog, detection, header, ra, dec
