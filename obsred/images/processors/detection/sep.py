from __future__ import annotations

import logging
from typing import Tuple, Any, Optional

import numpy as np
from astropy.table import Table
from numpy.typing import NDArray

from .sourcedetection import SourceDetection
from ._source_catalog import _SourceCatalog

log = logging.getLogger(__name__)


class SepSourceDetection(SourceDetection):
    """Detect sources using SEP."""

    __module__ = "obsred.images.processors.detection"

    def __init__(
        self,
        min_area: int = 6,
        sigma: float = 8.0,
        deblend_nthresh: int = 32,
        deblend_cont: float = 0.005,
        clean: bool = True,
        clean_param: float = 1.0,
        **kwargs: Any,
    ):
        """Initializes a wrapper for SEP. See its documentation for details.

        Args:
            min_area: Minimum number of pixels required for detection.
            sigma: Detection threshold in units of the global background RMS.
            deblend_nthresh: Number of thresholds used for object deblending.
            deblend_cont: Minimum contrast ratio used for object deblending.
            clean: Perform cleaning?
            clean_param: Cleaning parameter (see SExtractor manual).
        """
        SourceDetection.__init__(self, **kwargs)

        # store
        self.min_area = min_area
        self.sigma = sigma
        self.deblend_nthresh = deblend_nthresh
        self.deblend_cont = deblend_cont
        self.clean = clean
        self.clean_param = clean_param

    def detect(self, data: NDArray[Any], min_area: Optional[int] = None, sigma: Optional[float] = None) -> Table:
        """Find sources in given image data.

        Args:
            data: Physical pixel values of a single plane.
            min_area: Minimum number of pixels of a source.
            sigma: Detection threshold in units of background noise.

        Returns:
            Table with columns x, y, flux, peak, a, b, objtype, and npix.
        """
        import sep

        min_area = self.min_area if min_area is None else min_area
        sigma = self.sigma if sigma is None else sigma

        # remove background
        d, bkg = SepSourceDetection.remove_background(data)

        # extract sources
        sources = sep.extract(
            d,
            sigma,
            err=bkg.globalrms,
            minarea=min_area,
            deblend_nthresh=self.deblend_nthresh,
            deblend_cont=self.deblend_cont,
            clean=self.clean,
            clean_param=self.clean_param,
        )
        log.debug("Found %d sources with min_area=%d and sigma=%.1f.", len(sources), min_area, sigma)

        # to catalog
        catalog = _SourceCatalog.from_array(sources)
        catalog.filter_detection_flag()
        catalog.calculate_object_type()
        catalog.apply_fits_origin_convention()
        return catalog.to_table(["x", "y", "flux", "peak", "a", "b", "objtype", "npix"])

    @staticmethod
    def remove_background(data: NDArray[Any]) -> Tuple[NDArray[Any], Any]:
        """Remove background from image in data.

        Args:
            data: Data to remove background from.

        Returns:
            Image without background and the background itself.
        """
        import sep

        # get data and make it continuous
        d = np.ascontiguousarray(data, dtype=float)

        # estimate background, probably we need to byte swap
        try:
            bkg = sep.Background(d, bw=32, bh=32, fw=3, fh=3)
        except ValueError:
            d = d.byteswap().view(d.dtype.newbyteorder())
            bkg = sep.Background(d, bw=32, bh=32, fw=3, fh=3)

        # subtract it
        bkg.subfrom(d)

        # return data without background and background
        return d, bkg


__all__ = ["SepSourceDetection"]
