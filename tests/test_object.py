from unittest.mock import AsyncMock

import pytest
import pytz
from astroplan import Observer
from astropy.table import Table

import obsred
from obsred.object import Object, get_object, get_class_from_string, create_object
from obsred.utils.catalog import StarCatalog, TableStarCatalog


def _stars() -> Table:
    return Table({"ra": [10.0, 10.1], "dec": [20.0, 20.1], "mag": [5.0, 6.0]})


def test_add_background_task():
    obj = Object()
    test_function = AsyncMock()

    task = obj.add_background_task(test_function, False, False)

    assert task._func == test_function
    assert task._restart is False

    assert obj._background_tasks[0] == (task, False)


async def test_open_starts_autostart_tasks(mocker):
    mocker.patch("obsred.background_task.BackgroundTask.start")

    obj = Object()
    obj.add_background_task(AsyncMock(), False, True)
    await obj.open()

    obsred.background_task.BackgroundTask.start.assert_called_once()
    assert obj.opened is True


async def test_open_skips_other_tasks(mocker):
    mocker.patch("obsred.background_task.BackgroundTask.start")

    obj = Object()
    obj.add_background_task(AsyncMock(), False, False)
    await obj.open()

    obsred.background_task.BackgroundTask.start.assert_not_called()


async def test_close_stops_tasks(mocker):
    mocker.patch("obsred.background_task.BackgroundTask.stop")

    obj = Object()
    obj.add_background_task(AsyncMock(), False, False)
    await obj.close()

    obsred.background_task.BackgroundTask.stop.assert_called_once()
    assert obj.opened is False


def test_timezone_and_location():
    obj = Object(timezone="Europe/Berlin", location={"longitude": 9.94, "latitude": 51.56, "elevation": 201.0})

    assert obj.timezone == pytz.timezone("Europe/Berlin")
    assert obj.location is not None
    assert isinstance(obj.observer, Observer)


def test_no_location():
    obj = Object()
    assert obj.location is None
    assert obj.observer is None


def test_get_class_from_string():
    klass = get_class_from_string("obsred.utils.catalog.TableStarCatalog")
    assert klass == TableStarCatalog


def test_create_object():
    catalog = create_object({"class": "obsred.utils.catalog.TableStarCatalog", "table": _stars()})
    assert isinstance(catalog, TableStarCatalog)


def test_get_object():
    catalog = TableStarCatalog(table=_stars())
    assert get_object(catalog, StarCatalog) is catalog

    with pytest.raises(TypeError):
        get_object(catalog, Observer)

    with pytest.raises(TypeError):
        get_object(None)


def test_get_object_passes_observer():
    parent = Object(location={"longitude": 9.94, "latitude": 51.56, "elevation": 201.0})
    child = parent.get_object({"class": "obsred.utils.catalog.TableStarCatalog", "table": _stars()}, StarCatalog)
    assert child.observer is parent.observer


async def test_child_objects_are_opened():
    parent = Object()
    child = parent.add_child_object({"class": "obsred.utils.catalog.TableStarCatalog", "table": _stars()})

    await parent.open()
    assert child.opened is True

    await parent.close()
    assert child.opened is False
