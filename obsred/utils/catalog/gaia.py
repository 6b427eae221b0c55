from __future__ import annotations

import logging
from typing import Any

import numpy as np
from astropy.table import Table

from .catalog import StarCatalog, empty_stars

log = logging.getLogger(__name__)


class GaiaStarCatalog(StarCatalog):
    """Star catalog querying the Gaia archive via TAP."""

    __module__ = "obsred.utils.catalog"

    def __init__(
        self, url: str = "https://gea.esac.esa.int/tap-server/tap", table: str = "gaiadr3.gaia_source", **kwargs: Any
    ):
        """Creates a new Gaia catalog.

        Args:
            url: URL of TAP service.
            table: Name of table to query.
        """
        StarCatalog.__init__(self, **kwargs)
        self._url = url
        self._table = table

    def stars(self, ra: float, dec: float, radius: float, limiting_magnitude: float, max_stars: int) -> Table:
        from astroquery.utils.tap import TapPlus

        # query TAP
        tap = TapPlus(url=self._url)
        job = tap.launch_job(self._get_gaia_query(ra, dec, radius, limiting_magnitude, max_stars))
        result = job.get_results()
        if len(result) == 0:
            return empty_stars()

        # convert
        stars = Table()
        stars["ra"] = np.asarray(result["ra"], dtype=float)
        stars["dec"] = np.asarray(result["dec"], dtype=float)
        stars["mag"] = np.asarray(result["phot_g_mean_mag"], dtype=float)
        stars["var"] = [self._variability(str(v)) for v in result["phot_variable_flag"]]
        stars["sptype"] = [""] * len(result)
        stars["name"] = ["Gaia %s" % s for s in result["source_id"]]
        return stars

    def _get_gaia_query(self, ra: float, dec: float, radius: float, max_mag: float, max_stars: int) -> str:
        # define query
        return f"""
                SELECT
                  TOP {max_stars}
                  source_id, ra, dec, phot_g_mean_mag, phot_variable_flag
                FROM
                  {self._table}
                WHERE
                  1 = CONTAINS(
                    POINT('ICRS', ra, dec),
                    CIRCLE('ICRS', {ra}, {dec}, {radius})
                  )
                  AND phot_g_mean_mag < {max_mag}
                ORDER BY
                  phot_g_mean_mag ASC
                """

    @staticmethod
    def _variability(flag: str) -> str:
        if flag == "VARIABLE":
            return "V"
        if flag == "CONSTANT":
            return "N"
        return "-"


__all__ = ["GaiaStarCatalog"]
