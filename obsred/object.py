"""
Every configurable class in *obsred* derives from :class:`~obsred.object.Object`, which knows the observatory
(timezone, location and an astroplan observer), owns background tasks and child objects, and can build further
objects from configuration dictionaries.

Objects are built from dictionaries with a ``class`` key, e.g. from a YAML file:

    - :func:`~obsred.object.create_object` instantiates the class with the remaining keys as arguments.
    - :func:`~obsred.object.get_object` accepts a dictionary, a class or an existing object and optionally checks
      the type of the result.
"""

from __future__ import annotations

import asyncio
import datetime
import importlib
import inspect
import logging
from abc import ABCMeta
from collections.abc import Coroutine
from typing import Callable, TypeVar, List, Tuple, Any, Optional

import pytz
from astroplan import Observer
from astropy.coordinates import EarthLocation

from obsred.background_task import BackgroundTask

log = logging.getLogger(__name__)


"""Class of an Object."""
ObjectClass = TypeVar("ObjectClass")


def get_object(
    config_or_object: dict[str, Any] | ObjectClass | type[ObjectClass],
    object_class: type[ObjectClass] | ABCMeta | None = None,
    **kwargs: Any,
) -> ObjectClass | Any:
    """Returns an object built from a config dict, from a class, or the given object itself.

    Args:
        config_or_object: Dict with a "class" key, a class to instantiate, or an existing object.
        object_class: If given, the result must be an instance of this class.
        **kwargs: Defaults for missing config values or arguments for a given class.

    Returns:
        The object.

    Raises:
        TypeError: If nothing is given or the result has the wrong type.
    """
    if config_or_object is None:
        raise TypeError("No config or object given.")

    if isinstance(config_or_object, dict):
        config = {**kwargs, **config_or_object}
        obj = create_object(config)
    elif inspect.isclass(config_or_object):
        obj = config_or_object(**kwargs)
    else:
        obj = config_or_object

    if object_class is not None and not isinstance(obj, object_class):
        raise TypeError("Provided object is not of requested type %s." % object_class.__name__)
    return obj


def get_class_from_string(class_name: str) -> Any:
    """Imports a class given by its full name, e.g. "obsred.utils.catalog.GaiaStarCatalog"."""
    module_name, _, name = class_name.rpartition(".")
    if not module_name:
        raise ValueError('Class name "%s" contains no module.' % class_name)
    return getattr(importlib.import_module(module_name), name)


def create_object(config: dict[str, Any], *args: Any, **kwargs: Any) -> Any:
    """Instantiates the class named by the "class" key of the config with all other keys as arguments.

    Args:
        config: Config with "class" key.
        *args: Further positional arguments.
        **kwargs: Further keyword arguments.

    Returns:
        New object.
    """
    params = {k: v for k, v in config.items() if k != "class"}
    klass = get_class_from_string(config["class"])
    return klass(*args, **params, **kwargs)


def _timezone(timezone: str | datetime.tzinfo) -> datetime.tzinfo:
    if isinstance(timezone, datetime.tzinfo):
        return timezone
    if isinstance(timezone, str):
        return pytz.timezone(timezone)
    raise ValueError("Unknown format for timezone.")


def _location(location: str | dict[str, Any] | EarthLocation | None) -> Optional[EarthLocation]:
    if location is None or isinstance(location, EarthLocation):
        return location
    if isinstance(location, str):
        return EarthLocation.of_site(location)
    if isinstance(location, dict):
        return EarthLocation.from_geodetic(location["longitude"], location["latitude"], location["elevation"])
    raise ValueError("Unknown format for location.")


class Object:
    """Base class for all objects in *obsred*."""

    def __init__(
        self,
        timezone: str | datetime.tzinfo = "utc",
        location: str | dict[str, Any] | EarthLocation | None = None,
        observer: Observer | None = None,
        **kwargs: Any,
    ):
        """
        .. note::

            Objects need to be opened with :meth:`~obsred.object.Object.open` before use and closed with
            :meth:`~obsred.object.Object.close` afterwards, which also opens and closes their child objects and
            starts and stops their background tasks.

        Args:
            timezone: Timezone at observatory.
            location: Location of observatory, either a site name or a dict with latitude, longitude, and
                elevation.
            observer: Observer to use, created from timezone and location if not given.
        """
        self.timezone = _timezone(timezone)
        self.location = _location(location)

        # observer from location
        self.observer = observer
        if self.observer is None and self.location is not None:
            log.info(
                "Observatory at longitude=%s, latitude=%s, and elevation=%s.",
                self.location.lon,
                self.location.lat,
                self.location.height,
            )
            self.observer = Observer(location=self.location, timezone=self.timezone)

        self._child_objects: List[Any] = []
        self._background_tasks: List[Tuple[BackgroundTask, bool]] = []
        self._opened = False

    def add_background_task(
        self, func: Callable[..., Coroutine[Any, Any, None]], restart: bool = True, autostart: bool = True
    ) -> BackgroundTask:
        """Register a coroutine function to run in the background while the object is open.

        Only call this before :meth:`open`, usually in the constructor.

        Args:
            func: Coroutine function to run.
            restart: Whether to restart it when it dies.
            autostart: Whether to start it in :meth:`open`.

        Returns:
            The background task.
        """
        task = BackgroundTask(func, restart)
        self._background_tasks.append((task, autostart))
        return task

    async def open(self) -> None:
        """Start background tasks and open child objects."""
        for task, autostart in self._background_tasks:
            if autostart:
                task.start()

        for obj in self._child_objects:
            await self._call(obj, "open")
        self._opened = True

    @property
    def opened(self) -> bool:
        """Whether object has been opened."""
        return self._opened

    async def close(self) -> None:
        """Close child objects and stop background tasks."""
        for obj in self._child_objects:
            await self._call(obj, "close")

        for task, _ in self._background_tasks:
            task.stop()
        self._opened = False

    @staticmethod
    async def _call(obj: Any, method: str) -> None:
        # children may have sync or async open/close methods
        func = getattr(obj, method, None)
        if func is None:
            return
        if asyncio.iscoroutinefunction(func):
            await func()
        else:
            func()

    def get_object(
        self,
        config_or_object: dict[str, Any] | ObjectClass | type[ObjectClass],
        object_class: type[ObjectClass] | ABCMeta | None = None,
        **kwargs: Any,
    ) -> ObjectClass | Any:
        """Like :func:`~obsred.object.get_object`, but objects built from a config dict inherit timezone,
        location and observer from this object, unless the config sets them.
        """
        params = dict(kwargs)
        if isinstance(config_or_object, dict):
            for p in ["timezone", "location", "observer"]:
                if config_or_object.get(p) is None:
                    params[p] = getattr(self, p)
        return get_object(config_or_object, object_class, **params)

    def add_child_object(
        self,
        config_or_object: dict[str, Any] | ObjectClass | type[ObjectClass],
        object_class: type[ObjectClass] | ABCMeta | None = None,
        **kwargs: Any,
    ) -> ObjectClass | Any:
        """Get an object via :meth:`get_object` and open and close it together with this object.

        Args:
            config_or_object: Config, class or object.
            object_class: Required class of object.

        Returns:
            The child object.
        """
        obj = self.get_object(config_or_object, object_class=object_class, **kwargs)
        self._child_objects.append(obj)
        return obj


__all__ = ["get_object", "get_class_from_string", "create_object", "Object"]
