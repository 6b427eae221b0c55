"""
Registration of frames onto a common grid on the sky, either summing (stack) or averaging the resampled values.

The output grid is processed column by column: for every output pixel the sky position is calculated from the
output WCS and mapped back into each input frame through its own WCS. The input is resampled there and all
samples that fall into an input frame are combined.
"""
import logging
import os
from typing import Any, Callable, List, Optional, Tuple

import numpy as np
from astropy.io import fits
from astropy.wcs import WCS
from astropy.wcs.utils import proj_plane_pixel_scales
from numpy.typing import NDArray

from obsred.images.frame import Frame, exposure_time
from obsred.utils.enums import AverageMethod, CombinationMethod, ImageID, NormalizationMethod, Mount
from obsred.utils.exceptions import MixedWcsError, OutOfImageError, ConfigurationError
from obsred.utils.fits import has_wcs, read_wcs, write_wcs, remove_wcs, indexed_key
from obsred.utils.pipeline.arithmetic import add, multiply
from obsred.utils.pipeline.combiner import kappa_sigma_mean
from obsred.utils.pipeline.config import PipelineConfig
from obsred.utils.pipeline.resampler import Resampler, NO_DATA
from obsred.utils.time import Time

log = logging.getLogger(__name__)


"""Keys of the telescope position and the weather, removed from registered frames."""
REGISTRATION_REMOVED_KEYS = [
    "AZ",
    "EL",
    "AZ0",
    "EL0",
    "AZ-EFF",
    "EL-EFF",
    "DATE0",
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

"""Keys from the astrometric solution of a single frame."""
SOLUTION_KEYS = ["PLATE_" + c for c in "ABCDEFGHIJ"] + ["REF_MAG", "REF_MAGX", "REF_MAGY", "REF_FLUX", "REF_DM", "REF_DN"]


"""Progress callback, called with current column and total number of columns."""
ProgressCallback = Callable[[int, int], None]


def is_dslr_raw(frame: Frame) -> bool:
    """Whether the frame contains raw Bayer data from a DSLR camera."""
    mode = str(frame.header.get("CAM_MODE", "")).upper()
    return frame.raw and ("DSLR" in mode or "DLSR" in mode)


def resampling_distance(px: float, py: float, width: int, height: int) -> float:
    """Distance of a resampled position to the closest pixel.

    Args:
        px: Column in input frame.
        py: Row in input frame.
        width: Width of output grid.
        height: Height of output grid.

    Returns:
        Distance in pixels.
    """
    if not (np.isfinite(px) and np.isfinite(py)):
        return np.inf
    dx, dy = px - int(px), py - int(py)
    if dx > 0.5 and px < width:
        dx = 1.0 - dx
    if dy > 0.5 and py < height:
        dy = 1.0 - dy
    return float(np.hypot(dx, dy))


def create_wcs(
    ra: float, dec: float, width: int, height: int, scale: float, east_left: bool, north_up: bool
) -> WCS:
    """Create a gnomonic WCS centred on the given position.

    Args:
        ra: Right ascension of centre in degrees.
        dec: Declination of centre in degrees.
        width: Width of grid.
        height: Height of grid.
        scale: Pixel scale in degrees.
        east_left: Whether east is left, i.e. right ascension decreases with column.
        north_up: Whether north is up, i.e. declination increases with row.

    Returns:
        New WCS.
    """
    wcs = WCS(naxis=2)
    wcs.wcs.crpix = [width / 2.0, height / 2.0]
    wcs.wcs.cdelt = [-scale if east_left else scale, scale if north_up else -scale]
    wcs.wcs.crval = [ra, dec]
    wcs.wcs.ctype = ["RA---TAN", "DEC--TAN"]
    wcs.wcs.radesys = "ICRS"
    return wcs


def ponderate(values: NDArray[Any], distances: NDArray[Any]) -> float:
    """Mean of values weighted by their inverse squared distance. Samples at distance zero have infinite weight,
    so if any, their plain mean is returned."""
    zero = distances <= 0
    if np.any(zero):
        return float(np.mean(values[zero]))
    weights = 1.0 / distances**2
    return float(np.sum(values * weights) / np.sum(weights))


class Registration:
    """Stacks and averages frames on a common grid."""

    __module__ = "obsred.utils.pipeline"

    def __init__(self, config: PipelineConfig, progress: Optional[ProgressCallback] = None):
        """Creates a new registration engine.

        Args:
            config: Pipeline settings to use.
            progress: Optional callback for progress, called after each column.
        """
        self.config = config
        self._progress = progress
        self._resampler = Resampler(config.interpolation)

    def stack(self, frames: List[Frame]) -> Frame:
        """Sums the given frames on a common grid.

        Args:
            frames: Frames to stack, the first one defines the output.

        Returns:
            Stacked frame.

        Raises:
            MixedWcsError: If only some of the frames are solved.
        """
        ref = frames[0]
        width, height = self.config.drizzle.scale(ref.width), self.config.drizzle.scale(ref.height)
        max_value = 255 if ref.bit_depth == 8 else 32767
        log.info("Stacking %d frames into %dx%d pixels...", len(frames), width, height)

        def combine(values: NDArray[Any], distances: NDArray[Any]) -> float:
            return float(np.sum(values))

        data, wcs, add_wcs = self._register(frames, width, height, combine, [1.0] * len(frames), max_value)

        # header
        hdr = self._header(frames, wcs, add_wcs)
        times = [exposure_time(f.header) for f in frames]
        hdr["TIME"] = (float(np.sum(times)), "Exposure time in s")
        hdr["IMGID"] = (ImageID.STACKED.value, "Image id")
        hdr["STACKED"] = (len(frames), "Number of source files stacked")
        for i, f in enumerate(frames):
            hdr[indexed_key("STACK", i)] = (_basename(f), "Source file stacked")
        return Frame.from_physical(data, hdr)

    def average(self, frames: List[Frame]) -> Frame:
        """Averages the given frames on a common grid, after scaling them to a common exposure time.

        Args:
            frames: Frames to average, the first one defines the output.

        Returns:
            Averaged frame.

        Raises:
            MixedWcsError: If only some of the frames are solved.
            ConfigurationNotSetError: If samples should be combined like darks, but no method is set.
        """
        ref = frames[0]
        max_value = 255 if ref.bit_depth == 8 else 32767
        log.info("Averaging %d frames...", len(frames))

        # normalization
        times = np.array([exposure_time(f.header) for f in frames])
        if self.config.normalization == NormalizationMethod.MINIMUM:
            t_norm = float(np.min(times))
        elif self.config.normalization == NormalizationMethod.MAXIMUM:
            t_norm = float(np.max(times))
        else:
            t_norm = float(np.mean(times))
        if self.config.normalization == NormalizationMethod.NONE:
            scales = [1.0] * len(frames)
        else:
            scales = [t_norm / t if t > 0 else 1.0 for t in times]

        # combination of samples
        method = self.config.average_method
        combine_method = (
            self.config.require_combine_method() if method == AverageMethod.USE_COMBINE_METHOD else None
        )

        def combine(values: NDArray[Any], distances: NDArray[Any]) -> float:
            if len(values) == 1:
                return float(values[0])
            if method == AverageMethod.CLOSEST_POINT:
                return float(values[np.argmin(distances)])
            if method == AverageMethod.PONDERATION:
                return ponderate(values, distances)
            if combine_method == CombinationMethod.MEAN_AVERAGE:
                return float(np.mean(values))
            if combine_method == CombinationMethod.MEDIAN:
                return float(np.median(values))
            if combine_method == CombinationMethod.MAXIMUM:
                return float(np.max(values))
            if combine_method == CombinationMethod.KAPPA_SIGMA:
                return float(kappa_sigma_mean(values, self.config.kappa))
            raise ValueError("Unknown combination method.")

        data, wcs, add_wcs = self._register(frames, ref.width, ref.height, combine, scales, max_value)

        # header
        hdr = self._header(frames, wcs, add_wcs)
        hdr["TIME"] = (t_norm, "Exposure time in s")
        hdr["AVERAGE"] = (method.name, "Average method")
        gains = [f.header.get("GAIN") for f in frames]
        if all(g is not None for g in gains):
            hdr["GAIN"] = (float(np.sum([float(g) for g in gains])), "Gain e-/ADU")
        hdr["IMGID"] = (ImageID.AVERAGED.value, "Image id")
        hdr["AVERAGED"] = (len(frames), "Number of source files averaged")
        for i, f in enumerate(frames):
            hdr[indexed_key("AVERAG", i)] = (_basename(f), "Source file averaged")
        return Frame.from_physical(data, hdr)

    def _wcs(self, frames: List[Frame], width: int, height: int) -> Tuple[WCS, List[WCS], bool]:
        """Returns output WCS, WCS for each input, and whether the output WCS should be written."""
        ref = frames[0]
        solved = [has_wcs(f.header) for f in frames]
        if any(solved) and not all(solved):
            raise MixedWcsError("Some of the frames are astrometrically solved, others are not.")
        orientation = self.config.orientation
        factor = width / ref.width

        if all(solved):
            # centre and scale from first frame
            ref_wcs = read_wcs(ref.header)
            ra, dec = ref_wcs.all_pix2world(ref.width / 2.0, ref.height / 2.0, 1)
            scale = float(proj_plane_pixel_scales(ref_wcs)[0])
            out = create_wcs(
                float(ra), float(dec), width, height, scale / factor, orientation.east_left, orientation.north_up
            )
            return out, [read_wcs(f.header) for f in frames], True

        # nothing solved, use pointing and field of view
        try:
            ra, dec = float(ref.header["RA"]), float(ref.header["DEC"])
            scale = float(ref.header["FIELD"]) / ref.width
        except (KeyError, ValueError):
            raise ConfigurationError("Frames are not solved and contain no pointing (RA, DEC, FIELD).")
        out = create_wcs(ra, dec, width, height, scale / factor, orientation.east_left, orientation.north_up)
        default = create_wcs(ra, dec, ref.width, ref.height, scale, orientation.east_left, orientation.north_up)
        return out, [default] * len(frames), False

    def _register(
        self,
        frames: List[Frame],
        width: int,
        height: int,
        combine: Callable[[NDArray[Any], NDArray[Any]], float],
        scales: List[float],
        max_value: int,
    ) -> Tuple[NDArray[np.int64], WCS, bool]:
        """Resamples all frames on the output grid and combines the samples.

        Args:
            frames: Frames to register.
            width: Width of output grid.
            height: Height of output grid.
            combine: Function combining the valid samples of a pixel and their resampling distances.
            scales: Intensity scale for each frame.
            max_value: Maximum physical value.

        Returns:
            Tuple of physical output data, output WCS, and whether to write the WCS.
        """
        out_wcs, wcs_list, add_wcs = self._wcs(frames, width, height)
        dslr = is_dslr_raw(frames[0])
        nplanes = 4 if dslr else frames[0].planes
        planes = [f.physical.astype(float) for f in frames]
        nframes = len(frames)
        data = np.zeros((nplanes, height, width), dtype=np.int64)

        rows = np.arange(1, height + 1, dtype=float)
        for x in range(width):
            log.debug("Registering column %d/%d...", x, width - 1)

            # sky positions of column
            ra, dec = out_wcs.all_pix2world(np.full(height, x + 1.0), rows, 1)

            # sample all inputs
            values = np.full((nplanes, nframes, height), NO_DATA)
            distances = np.full((nframes, height), np.inf)
            for i in range(nframes):
                px, py = wcs_list[i].all_world2pix(ra, dec, 1)
                for y in range(height):
                    distances[i, y] = resampling_distance(px[y], py[y], width, height)
                    try:
                        if dslr:
                            index, value = self._resampler.bayer(planes[i][0], px[y], py[y])
                            values[index, i, y] = value * scales[i]
                        else:
                            for p in range(nplanes):
                                values[p, i, y] = self._resampler(planes[i][p], px[y], py[y]) * scales[i]
                    except OutOfImageError:
                        # keep NO_DATA
                        pass

            # combine valid samples
            for p in range(nplanes):
                for y in range(height):
                    valid = values[p, :, y] != NO_DATA
                    if not np.any(valid):
                        continue
                    v = combine(values[p, valid, y], distances[valid, y])
                    data[p, y, x] = min(max(int(v + 0.5), 0), max_value)

            if self._progress is not None:
                self._progress(x, width)

        # merge green planes of DSLR data
        if dslr:
            data = self._merge_bayer(data, str(frames[0].header.get("BAYER", "RGBG")).upper())
        return data, out_wcs, add_wcs

    @staticmethod
    def _merge_bayer(data: NDArray[np.int64], bayer: str) -> NDArray[np.int64]:
        """Merges the four Bayer planes into R, G, and B, averaging both green planes."""
        i0, i1 = bayer.find("G"), bayer.rfind("G")
        if i0 < 0 or i0 == i1 or "R" not in bayer or "B" not in bayer:
            return data
        green = multiply(add(data[i0], data[i1]), 0.5)
        return np.stack([data[bayer.index("R")], green, data[bayer.index("B")]])

    def _header(self, frames: List[Frame], wcs: WCS, add_wcs: bool) -> fits.Header:
        """Header for registered frame from the first frame."""
        ref = frames[0]
        hdr = ref.header.copy()
        for key in REGISTRATION_REMOVED_KEYS + SOLUTION_KEYS:
            if key in hdr:
                del hdr[key]

        hdr["RAW"] = (False, "True for raw mode")
        hdr["BITDEPTH"] = (ref.bit_depth, "Bits per pixel value")
        hdr["MOUNT"] = (Mount.EQUATORIAL.value, "Telescope mount")
        hdr["ANGLE"] = (0.0, "Camera orientation in rad")
        jds = [float(f.header["TIME_JD"]) for f in frames if "TIME_JD" in f.header]
        if len(jds) == len(frames):
            tjd = float(np.mean(jds))
            hdr["TIME_JD"] = (tjd, "(Average) Date and time as JD, in UT1")
            hdr["DATE-EFF"] = (Time(tjd, format="jd", scale="ut1").isot, "(Average) Date and time of observation")
        combine = self.config.combine_method
        hdr["COMBINE"] = ("NONE" if combine is None else combine.name, "Combination method for darks/flats")
        hdr["ORIENT"] = (self.config.orientation.name, "Image orientation after stack")
        hdr["INTERP"] = (self.config.interpolation.name, "Interpolation method when resampling frames")
        hdr["DRIZZLE"] = (self.config.drizzle.name, "Drizzle method")

        if add_wcs:
            write_wcs(hdr, wcs)
        else:
            remove_wcs(hdr)
        hdr["DATE"] = (Time.now().isot, "File creation date and time")
        return hdr


def _basename(frame: Frame) -> str:
    return "" if frame.filename is None else os.path.basename(frame.filename)


__all__ = [
    "Registration",
    "create_wcs",
    "ponderate",
    "resampling_distance",
    "is_dslr_raw",
    "REGISTRATION_REMOVED_KEYS",
]
