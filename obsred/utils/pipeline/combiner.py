import logging
from typing import List, Optional, Any

import numpy as np
from astropy.io import fits
from astropy.stats import sigma_clip
from numpy.typing import NDArray

from obsred.images.frame import Frame
from obsred.utils.enums import CombinationMethod
from obsred.utils.fits import half_range
from obsred.utils.pipeline.arithmetic import add, subtract, multiply

log = logging.getLogger(__name__)


"""Keys describing a single exposure, which are meaningless for a combined frame."""
EXPOSURE_KEYS = [
    "AZ",
    "EL",
    "AZ0",
    "EL0",
    "AZ-EFF",
    "EL-EFF",
    "DATE0",
    "DATE-EFF",
    "DATE-OBS",
    "TIME_JD",
    "DOM_AZ",
    "DOM_OPEN",
    "DOM_MOVI",
    "DOM_MODE",
    "TEMP",
    "PRES",
    "HUM",
    "TEMP_IN",
    "HUM_IN",
    "WIND_SP",
    "WIND_AZ",
    "RAIN",
]


def remove_exposure_keys(header: fits.Header) -> None:
    """Removes all keys from the header that only make sense for a single exposure."""
    for key in EXPOSURE_KEYS:
        if key in header:
            del header[key]


def kappa_sigma_mean(values: NDArray[Any], kappa: float, axis: int = 0) -> NDArray[np.float64]:
    """Mean along the given axis after iteratively clipping all values that deviate by more than kappa times
    the (MAD based) standard deviation from the median.

    Args:
        values: Values to average.
        kappa: Clipping threshold in standard deviations.
        axis: Axis to average along.

    Returns:
        Clipped mean.
    """
    clipped = sigma_clip(
        np.asarray(values, dtype=np.float64),
        sigma=kappa,
        maxiters=None,
        cenfunc="median",
        stdfunc="mad_std",
        axis=axis,
        masked=True,
    )
    return np.ma.filled(np.ma.mean(clipped, axis=axis), 0.0)


class FrameCombiner:
    """Combines a set of frames with identical signature into a master frame and subtracts a master dark."""

    __module__ = "obsred.utils.pipeline"

    def __init__(self, method: CombinationMethod, kappa: float = 3.0):
        """Creates a new combiner.

        Args:
            method: Method for combining frames.
            kappa: Clipping threshold for kappa-sigma combination.
        """
        self.method = method
        self.kappa = kappa

    def __call__(
        self, frames: List[Frame], dark: Optional[Frame] = None, flat_scaling: bool = False
    ) -> NDArray[np.int64]:
        """Combine frames.

        Args:
            frames: Frames to combine, all with the same size and bit depth.
            dark: Master dark to subtract, if any.
            flat_scaling: Scale frames to the total flux of the first one before taking a median or clipped mean.

        Returns:
            Combined stored data with shape (planes, height, width).
        """
        if len(frames) == 0:
            raise ValueError("No frames to combine.")
        raw = frames[0].bit_depth == 16
        n = len(frames)
        dark_data = None if dark is None else dark.data

        # single frame, only subtract dark
        if n == 1:
            data = np.asarray(frames[0].data, dtype=np.int64)
            return data if dark_data is None else subtract(data, dark_data, 1, raw)

        log.info("Combining %d frames using %s...", n, self.method.name)
        if self.method == CombinationMethod.MEAN_AVERAGE:
            total = np.asarray(frames[0].data, dtype=np.int64)
            for f in frames[1:]:
                total = add(total, f.data)
            if dark_data is not None:
                total = subtract(total, dark_data, n, raw)
            return multiply(total, 1.0 / n)

        elif self.method == CombinationMethod.MAXIMUM:
            data = np.max(np.stack([f.data for f in frames]), axis=0).astype(np.int64)

        elif self.method in [CombinationMethod.MEDIAN, CombinationMethod.KAPPA_SIGMA]:
            cube = self._cube(frames, raw, flat_scaling)
            if self.method == CombinationMethod.MEDIAN:
                # upper median, selected without sorting
                combined = np.partition(cube, n // 2, axis=0)[n // 2]
            else:
                combined = kappa_sigma_mean(cube, self.kappa, axis=0)
            data = np.trunc(combined).astype(np.int64)

        else:
            raise ValueError("Unknown combination method.")

        return data if dark_data is None else subtract(data, dark_data, 1, raw)

    @staticmethod
    def _cube(frames: List[Frame], raw: bool, flat_scaling: bool) -> NDArray[np.float64]:
        """Stack of stored values of all frames, optionally scaled to the flux of the first frame."""
        cube = np.stack([f.data for f in frames]).astype(np.float64)
        if not flat_scaling:
            return cube

        # scale in physical values, plane by plane
        hr = half_range(raw)
        physical = cube + hr
        sums = physical.sum(axis=(2, 3))
        scale = np.divide(sums[0], sums, out=np.ones_like(sums), where=sums != 0)
        return physical * scale[:, :, np.newaxis, np.newaxis] - hr


__all__ = ["FrameCombiner", "kappa_sigma_mean", "remove_exposure_keys", "EXPOSURE_KEYS"]
