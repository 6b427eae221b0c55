import inspect
from typing import Any
import pytest


def pytest_collection_modifyitems(config: Any, items: Any) -> None:
    # add asyncio decorator to all async methods
    for item in items:
        if inspect.iscoroutinefunction(item.function):
            item.add_marker(pytest.mark.asyncio)


@pytest.fixture(scope="session", autouse=True)
def offline_IERS() -> None:
    # never download IERS tables during tests
    from astropy.utils import iers

    iers.conf.auto_download = False
