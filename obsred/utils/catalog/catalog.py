from __future__ import annotations

import logging
import math
from abc import ABCMeta, abstractmethod
from typing import Any, Optional

import numpy as np
from astroplan import Observer
from astropy.coordinates import SkyCoord
from astropy.table import Table
from astropy.wcs import WCS

from obsred.object import Object
from obsred.utils.enums import Mount
from obsred.utils.time import Time

log = logging.getLogger(__name__)


"""Columns of a catalog returned by :meth:`StarCatalog.query`."""
CATALOG_COLUMNS = ["x", "y", "mag", "ra", "dec", "var", "sptype", "name"]


class StarCatalog(Object, metaclass=ABCMeta):
    """Base class for star catalogs that provide the reference stars for a field of view.

    Stars are projected onto a nominal gnomonic grid centred on the pointing, so that they can be compared to
    detected sources by shape. Variability flags are "N" for non-variable, "V" for variable and "-" for unknown.
    """

    __module__ = "obsred.utils.catalog"

    @abstractmethod
    def stars(self, ra: float, dec: float, radius: float, limiting_magnitude: float, max_stars: int) -> Table:
        """Returns the brightest stars within a circle.

        Args:
            ra: Right ascension of centre in degrees.
            dec: Declination of centre in degrees.
            radius: Radius in degrees.
            limiting_magnitude: Faintest magnitude to return.
            max_stars: Maximum number of stars.

        Returns:
            Table with columns ra, dec, mag, var, sptype, and name, sorted by magnitude.
        """
        ...

    def query(
        self,
        ra: float,
        dec: float,
        field: float,
        width: int,
        height: int,
        angle: float = 0.0,
        mount: Mount = Mount.EQUATORIAL,
        limiting_magnitude: float = 15.0,
        time: Optional[Time] = None,
        observer: Optional[Observer] = None,
        max_stars: int = 100,
    ) -> Table:
        """Returns the reference stars for a field of view projected onto pixel coordinates.

        Args:
            ra: Right ascension of field centre in degrees.
            dec: Declination of field centre in degrees.
            field: Field of view along the width in degrees.
            width: Width of field in pixels.
            height: Height of field in pixels.
            angle: Orientation of the camera in radians.
            mount: Telescope mount; for azimuthal mounts the field is rotated by the parallactic angle.
            limiting_magnitude: Faintest magnitude to return.
            time: Time of observation, required for azimuthal mounts.
            observer: Observer, required for azimuthal mounts.
            max_stars: Maximum number of stars.

        Returns:
            Table with columns x, y (FITS convention), mag, ra, dec, var, sptype, and name.
        """

        # rotation of field
        rotation = angle
        if mount == Mount.AZIMUTHAL:
            if time is None or observer is None:
                log.warning("Need time and observer for azimuthal mount, ignoring field rotation.")
            else:
                q = observer.parallactic_angle(time, SkyCoord(ra, dec, unit="deg"))
                rotation += float(q.rad)

        # get stars
        radius = field * math.hypot(1.0, height / width) / 2.0
        stars = self.stars(ra, dec, radius, limiting_magnitude, max_stars)
        log.info("Found %d catalog stars within %.2f deg of RA=%.4f, Dec=%.4f.", len(stars), radius, ra, dec)

        # project them
        wcs = nominal_wcs(ra, dec, field / width, width, height, rotation)
        x, y = wcs.all_world2pix(np.asarray(stars["ra"], dtype=float), np.asarray(stars["dec"], dtype=float), 1)
        inside = (x >= 0.5) & (x <= width + 0.5) & (y >= 0.5) & (y <= height + 0.5)

        # build table
        cat = Table()
        cat["x"] = x[inside]
        cat["y"] = y[inside]
        for col in ["mag", "ra", "dec", "var", "sptype", "name"]:
            cat[col] = stars[col][inside]
        return cat[:max_stars]


def nominal_wcs(ra: float, dec: float, scale: float, width: int, height: int, rotation: float = 0.0) -> WCS:
    """Gnomonic WCS for a field with east left and north up, rotated by the given angle.

    Args:
        ra: Right ascension of centre in degrees.
        dec: Declination of centre in degrees.
        scale: Pixel scale in degrees.
        width: Width in pixels.
        height: Height in pixels.
        rotation: Rotation in radians.

    Returns:
        New WCS.
    """
    wcs = WCS(naxis=2)
    wcs.wcs.crpix = [width / 2.0, height / 2.0]
    wcs.wcs.cdelt = [-scale, scale]
    wcs.wcs.crval = [ra, dec]
    wcs.wcs.ctype = ["RA---TAN", "DEC--TAN"]
    c, s = math.cos(rotation), math.sin(rotation)
    wcs.wcs.pc = [[c, -s], [s, c]]
    return wcs


def empty_stars() -> Table:
    """Empty table of stars as returned by :meth:`StarCatalog.stars`."""
    return Table(
        names=["ra", "dec", "mag", "var", "sptype", "name"], dtype=[float, float, float, str, str, str]
    )


__all__ = ["StarCatalog", "nominal_wcs", "empty_stars", "CATALOG_COLUMNS"]
