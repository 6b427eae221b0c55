from __future__ import annotations

import logging
import math
from typing import Any, Optional, Tuple, List

import numpy as np
import pandas as pd
from astroplan import Observer
from astropy.coordinates import EarthLocation
from astropy.io import fits
from astropy.table import Table
from numpy.typing import NDArray

from obsred.images.processors.detection import SourceDetection
from obsred.utils.catalog import StarCatalog
from obsred.utils.enums import Mount
from obsred.utils.exceptions import SolveError
from obsred.utils.fits import is_raw, write_wcs
from obsred.utils.pipeline.config import PipelineConfig
from obsred.utils.time import Time
from .astrometry import Astrometry
from .photometry import solve_photometry
from .plate import PlateSolution, fit_with_rejection, MIN_STARS
from .triangles import Triangle, TriangleMatcher

log = logging.getLogger(__name__)


class TriangleAstrometry(Astrometry):
    """Astrometric solution by matching triangles of detected sources with triangles of catalog stars."""

    __module__ = "obsred.images.processors.astrometry"

    def __init__(
        self,
        catalog: StarCatalog | dict[str, Any],
        detection: SourceDetection | dict[str, Any] | None = None,
        min_area: int = 6,
        sigma: float = 8.0,
        min_object_type: float = 0.5,
        max_sources: int = 50,
        limiting_magnitude: float = 15.0,
        centering_error: float = 0.0,
        max_iterations: int = 10,
        **kwargs: Any,
    ):
        """Init new triangle astrometry.

        Args:
            catalog: Star catalog providing reference stars.
            detection: Source detection, defaults to SEP.
            min_area: Minimum number of pixels of a source.
            sigma: Detection threshold in units of background noise.
            min_object_type: Minimum roundness of a source to be used.
            max_sources: Maximum number of sources used, 0 for all.
            limiting_magnitude: Faintest magnitude of catalog stars.
            centering_error: Expected error of the telescope pointing in degrees.
            max_iterations: Maximum number of passes over all sources.
        """
        Astrometry.__init__(self, **kwargs)

        # collaborators
        self._catalog = self.get_object(catalog, StarCatalog)
        if detection is None:
            detection = {"class": "obsred.images.processors.detection.SepSourceDetection"}
        self._detection = self.get_object(detection, SourceDetection)

        # settings
        self.min_area = min_area
        self.sigma = sigma
        self.min_object_type = min_object_type
        self.max_sources = max_sources
        self.limiting_magnitude = limiting_magnitude
        self.centering_error = centering_error
        self.max_iterations = max_iterations

    def apply_config(self, config: PipelineConfig) -> None:
        """Take detection and catalog settings from pipeline config."""
        self.min_area = config.min_area
        self.sigma = config.sigma
        self.min_object_type = config.min_object_type
        self.max_sources = config.max_sources
        self.limiting_magnitude = config.limiting_magnitude
        self.centering_error = config.centering_error

    def solve(self, data: NDArray[Any], header: fits.Header) -> Tuple[fits.Header, Optional[Table]]:
        """Finds astrometric solution for the given data. Never raises, on failure the header is returned unchanged.

        Args:
            data: Physical pixel values of a single plane.
            header: Header of frame.

        Returns:
            Tuple of updated header and table of sources, if solved.
        """
        try:
            return self._solve(data, header)
        except Exception:
            log.warning("Could not solve frame.", exc_info=True)
            return header, None

    def _solve(self, data: NDArray[Any], header: fits.Header) -> Tuple[fits.Header, Optional[Table]]:
        # pointing and field
        ra, dec = float(header["RA"]), float(header["DEC"])
        field = float(header["FIELD"])
        width, height = int(header["NAXIS1"]), int(header["NAXIS2"])
        angle = float(header.get("ANGLE", 0.0))
        mount = Mount.EQUATORIAL if str(header.get("MOUNT", "EQUATORIAL")).strip() == "EQUATORIAL" else Mount.AZIMUTHAL
        time = self._time(header)

        # sources
        sources = self._sources(data, is_raw(header))
        if len(sources) < MIN_STARS:
            log.warning("Only %d sources found, need at least %d.", len(sources), MIN_STARS)
            return header, None
        nsources = min(len(sources), self.max_sources) if self.max_sources > 0 else len(sources)
        sources = sources.iloc[:nsources]

        # catalog covering possible pointing errors
        factor = 1.0 + (float(header.get("CAMPOSER", 0.0)) + self.centering_error) / field
        factor = max(factor, 1.0)
        nstars = int(len(sources) * factor * factor)
        nstars = max(int(nstars * 1.2), nstars + 10)
        catalog = self._catalog.query(
            ra,
            dec,
            field * factor,
            int(width * factor),
            int(height * factor),
            angle=angle,
            mount=mount,
            limiting_magnitude=self.limiting_magnitude,
            time=time,
            observer=self._observer(header),
            max_stars=nstars,
        )
        if len(catalog) < MIN_STARS:
            log.warning("Only %d catalog stars found, need at least %d.", len(catalog), MIN_STARS)
            return header, None

        # tolerances from seeing of 5" or 3 pixels
        arcsec_per_pixel = field * 3600.0 / width
        seeing = max(5.0, 3.0 * arcsec_per_pixel)
        tolerance = seeing / arcsec_per_pixel
        log.debug("Maximum error when identifying stars is %.2f px.", tolerance)

        # identify
        sx, sy = sources["x"].to_numpy(), sources["y"].to_numpy()
        cat_ra = np.radians(np.asarray(catalog["ra"], dtype=float))
        cat_dec = np.radians(np.asarray(catalog["dec"], dtype=float))
        ids = self._identify(sx, sy, catalog, cat_ra, cat_dec, tolerance, math.radians(seeing / 3600.0), width, height)
        solved = np.array([i for i, c in enumerate(ids) if c >= 0], dtype=int)
        log.info("Identified %d of %d sources.", len(solved), len(ids))
        if len(solved) < MIN_STARS:
            return header, None
        cat_idx = np.array([ids[i] for i in solved], dtype=int)

        # plate solution around star closest to centre
        central = int(np.argmin(np.hypot(width / 2.0 - sx[solved], height / 2.0 - sy[solved])))
        ra0, dec0 = cat_ra[cat_idx[central]], cat_dec[cat_idx[central]]
        plate, _ = fit_with_rejection(ra0, dec0, sx[solved], sy[solved], cat_ra[cat_idx], cat_dec[cat_idx])
        res_ra, res_dec = plate.residual
        log.info("Plate solution with residuals of %.2f\" in RA and %.2f\" in Dec.", math.degrees(res_ra) * 3600,
                 math.degrees(res_dec) * 3600)

        # header
        hdr = header.copy()
        write_wcs(hdr, plate.to_wcs())
        hdr["MINAREA"] = (self.min_area, "Minimum detection area")
        hdr["SIGMA"] = (self.sigma, "Sigma for detection")
        hdr["OBJTYPE"] = (self.min_object_type, "Minimum object type (0 extended, 1 star)")
        hdr["MAXSOU"] = (self.max_sources, "Max number of sources for photometry/astrometry")
        hdr["RADESYS"] = ("ICRS", "Coordinate frame")
        hdr["MJD-OBS"] = (self._mjd(header, time), "Modified Julian day of start of observation")
        hdr["TIMESYS"] = ("UTC", "Time scale for MJD-OBS")
        for key, value in zip("ABCDEF", plate.constants):
            hdr["PLATE_" + key] = (float(value), "Plate %s solution" % key)
        hdr["PLATE_G"] = (float(ra0), "Plate reference longitude")
        hdr["PLATE_H"] = (float(dec0), "Plate reference latitude")
        hdr["PLATE_I"] = (math.degrees(res_ra) * 3600.0, "Plate fit residual in RA (arcsec)")
        hdr["PLATE_J"] = (math.degrees(res_dec) * 3600.0, "Plate fit residual in Dec (arcsec)")

        # photometry
        flux = sources["flux"].to_numpy()
        photometry = solve_photometry(
            np.asarray(catalog["mag"], dtype=float)[cat_idx],
            flux[solved],
            [str(v) for v in np.asarray(catalog["var"])[cat_idx]],
            sx[solved],
            sy[solved],
        )
        if photometry is not None:
            photometry.write_header(hdr)

        # table of sources, identified first
        table = self._sources_table(sources, catalog, ids, photometry)
        return hdr, table

    def _sources(self, data: NDArray[Any], raw: bool) -> pd.DataFrame:
        """Detects sources and returns unique round ones, sorted by decreasing flux."""
        min_area, sigma = (self.min_area, self.sigma) if raw else (8, 10.0)
        sources = self._detection.detect(data, min_area=min_area, sigma=sigma).to_pandas()
        sources = sources[sources["objtype"] >= self.min_object_type]
        sources = sources.drop_duplicates(subset=["x", "y", "flux"])
        return sources.sort_values("flux", ascending=False, ignore_index=True)

    def _identify(
        self,
        sx: NDArray[Any],
        sy: NDArray[Any],
        catalog: Table,
        cat_ra: NDArray[Any],
        cat_dec: NDArray[Any],
        tolerance: float,
        max_residual: float,
        width: int,
        height: int,
    ) -> List[int]:
        """Identifies sources with catalog stars by sliding a triangle over the sources, brightest first.

        Returns:
            Catalog index for each source, -1 for unidentified.
        """
        n = len(sx)
        ids = [-1] * n
        matcher = TriangleMatcher(np.asarray(catalog["x"]), np.asarray(catalog["y"]), tolerance)
        tri, iteration, ntriangles = 0, 0, 0
        while True:
            if min(ids[tri : tri + 3]) < 0:
                state = matcher.snapshot()
                solutions = matcher.find(Triangle.from_points(sx, sy, tri, tri + 1, tri + 2), ids, tri)
                if len(solutions) == 1:
                    previous = list(ids)
                    ids[tri : tri + 3] = list(solutions[0])
                    ntriangles += 1

                    # check consistency with trial solution
                    if ntriangles > 1 and not self._consistent(sx, sy, ids, cat_ra, cat_dec, max_residual, width,
                                                               height):
                        if ntriangles <= 2:
                            log.debug("Discarding all triangles.")
                            ids = [-1] * n
                            ntriangles = 0
                            matcher.reset()
                        else:
                            log.debug("Discarding last triangle.")
                            ids = previous
                            ntriangles -= 1
                            matcher.restore(state)

            # next pass?
            if tri + 3 >= n:
                if iteration >= self.max_iterations or min(ids) >= 0:
                    break
                iteration += 1
                tri = -1
            tri += 1
        return ids

    @staticmethod
    def _consistent(
        sx: NDArray[Any],
        sy: NDArray[Any],
        ids: List[int],
        cat_ra: NDArray[Any],
        cat_dec: NDArray[Any],
        max_residual: float,
        width: int,
        height: int,
    ) -> bool:
        """Whether a trial plate solution from the current identifications has a residual below the seeing."""
        solved = [i for i, c in enumerate(ids) if c >= 0]
        if len(solved) < MIN_STARS:
            return True
        x, y = sx[solved], sy[solved]
        ra, dec = cat_ra[[ids[i] for i in solved]], cat_dec[[ids[i] for i in solved]]
        central = int(np.argmin(np.hypot(width / 2.0 - x, height / 2.0 - y)))
        try:
            plate = PlateSolution(ra[central], dec[central], x, y, ra, dec)
        except SolveError:
            return True
        res_ra, res_dec = plate.residual
        return not (res_ra > max_residual or res_dec > max_residual)

    def _sources_table(self, sources: pd.DataFrame, catalog: Table, ids: List[int], photometry: Any) -> Table:
        """Table of sources with catalog cross-reference, identified sources first."""
        order = [i for i, c in enumerate(ids) if c >= 0] + [i for i, c in enumerate(ids) if c < 0]
        rows = []
        for i in order:
            c = ids[i]
            flux = float(sources["flux"].iloc[i])
            rows.append(
                {
                    "X": float(sources["x"].iloc[i]),
                    "Y": float(sources["y"].iloc[i]),
                    "FLUX": flux,
                    "MAG": float(photometry.magnitude(flux)) if photometry is not None else np.nan,
                    "CAT_RA": float(catalog["ra"][c]) if c >= 0 else -1.0,
                    "CAT_DEC": float(catalog["dec"][c]) if c >= 0 else -1.0,
                    "CAT_MAG": float(catalog["mag"][c]) if c >= 0 else 100.0,
                    "VAR": str(catalog["var"][c]) if c >= 0 else "",
                    "SP_TYPE": str(catalog["sptype"][c]) if c >= 0 else "",
                    "NAME": str(catalog["name"][c]) if c >= 0 else "",
                }
            )
        table = Table.from_pandas(pd.DataFrame(rows))
        table.meta["NSOLVED"] = sum(1 for c in ids if c >= 0)
        return table

    def _observer(self, header: fits.Header) -> Optional[Observer]:
        """Observer from header or, if missing, from this object's location."""
        if "OBS_LON" in header and "OBS_LAT" in header:
            location = EarthLocation.from_geodetic(float(header["OBS_LON"]), float(header["OBS_LAT"]))
            return Observer(location=location, name=str(header.get("OBS_NAME", "")))
        return self.observer

    @staticmethod
    def _time(header: fits.Header) -> Time:
        for key in ["DATE-EFF", "DATE-OBS"]:
            if key in header:
                return Time(str(header[key]))
        return Time.now()

    @staticmethod
    def _mjd(header: fits.Header, time: Time) -> float:
        if "TIME_JD" in header:
            return float(header["TIME_JD"]) - 2400000.5
        return float(time.mjd)


__all__ = ["TriangleAstrometry"]
