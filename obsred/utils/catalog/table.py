from __future__ import annotations

import logging
from typing import Any, Optional

import numpy as np
from astropy.coordinates import SkyCoord
from astropy.table import Table

from .catalog import StarCatalog, empty_stars

log = logging.getLogger(__name__)


class TableStarCatalog(StarCatalog):
    """Star catalog from a table, either given directly or read from a file."""

    __module__ = "obsred.utils.catalog"

    def __init__(self, table: Optional[Table] = None, filename: Optional[str] = None, **kwargs: Any):
        """Creates a new catalog.

        Args:
            table: Table with columns ra, dec (degrees) and mag; optionally var, sptype, and name.
            filename: File to read table from, any format that astropy can read.
        """
        StarCatalog.__init__(self, **kwargs)
        if table is None:
            if filename is None:
                raise ValueError("Either table or filename must be given.")
            log.info("Reading star catalog from %s...", filename)
            table = Table.read(filename)

        # fill optional columns
        self._table = Table(table, copy=True)
        if "var" not in self._table.colnames:
            self._table["var"] = ["-"] * len(self._table)
        for col in ["sptype", "name"]:
            if col not in self._table.colnames:
                self._table[col] = [""] * len(self._table)
        self._table.sort("mag")

    def stars(self, ra: float, dec: float, radius: float, limiting_magnitude: float, max_stars: int) -> Table:
        if len(self._table) == 0:
            return empty_stars()
        centre = SkyCoord(ra, dec, unit="deg")
        coords = SkyCoord(np.asarray(self._table["ra"]), np.asarray(self._table["dec"]), unit="deg")
        mask = (centre.separation(coords).degree <= radius) & (np.asarray(self._table["mag"]) <= limiting_magnitude)
        return self._table[mask]["ra", "dec", "mag", "var", "sptype", "name"][:max_stars]


__all__ = ["TableStarCatalog"]
