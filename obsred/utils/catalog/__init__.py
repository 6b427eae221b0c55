"""
Star catalogs used as reference for the astrometric solution.
"""
__title__ = "Star catalogs"

from .catalog import StarCatalog, CATALOG_COLUMNS
from .table import TableStarCatalog
from .gaia import GaiaStarCatalog

__all__ = ["StarCatalog", "TableStarCatalog", "GaiaStarCatalog", "CATALOG_COLUMNS"]
