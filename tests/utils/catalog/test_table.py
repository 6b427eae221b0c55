import numpy as np
import pytest
from astropy.table import Table

from obsred.utils.catalog import TableStarCatalog, CATALOG_COLUMNS


def _table() -> Table:
    return Table(
        {
            "ra": [150.0, 150.0, 150.0, 155.0],
            "dec": [30.0, 30.05, 30.02, 30.0],
            "mag": [9.0, 8.0, 20.0, 5.0],
            "name": ["centre", "north", "faint", "far"],
        }
    )


def test_missing_table():
    with pytest.raises(ValueError):
        TableStarCatalog()


def test_stars():
    catalog = TableStarCatalog(table=_table())
    stars = catalog.stars(150.0, 30.0, 0.5, 15.0, 10)

    # faint and far stars removed, sorted by magnitude
    assert list(stars["name"]) == ["north", "centre"]
    assert list(stars["var"]) == ["-", "-"]
    assert list(stars["sptype"]) == ["", ""]


def test_stars_max():
    catalog = TableStarCatalog(table=_table())
    stars = catalog.stars(150.0, 30.0, 0.5, 25.0, 1)
    assert list(stars["name"]) == ["north"]


def test_query():
    catalog = TableStarCatalog(table=_table())
    cat = catalog.query(150.0, 30.0, 0.2, 200, 200)
    assert list(cat.colnames) == CATALOG_COLUMNS
    assert len(cat) == 2

    # north up, so the northern star is above the centre
    north = cat[cat["name"] == "north"][0]
    centre = cat[cat["name"] == "centre"][0]
    assert centre["x"] == pytest.approx(100.0, abs=1e-6)
    assert centre["y"] == pytest.approx(100.0, abs=1e-6)
    assert north["x"] == pytest.approx(100.0, abs=1e-3)
    assert north["y"] == pytest.approx(150.0, abs=0.1)


def test_query_rotated():
    catalog = TableStarCatalog(table=_table())
    cat = catalog.query(150.0, 30.0, 0.2, 200, 200, angle=np.pi / 2)
    north = cat[cat["name"] == "north"][0]

    # rotated by 90 degrees, so north is now along the x axis
    assert abs(north["x"] - 100.0) == pytest.approx(50.0, abs=0.1)
    assert north["y"] == pytest.approx(100.0, abs=1e-3)


def test_query_empty():
    catalog = TableStarCatalog(table=_table())
    cat = catalog.query(10.0, -30.0, 0.2, 200, 200)
    assert len(cat) == 0
