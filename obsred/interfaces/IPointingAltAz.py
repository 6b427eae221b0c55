from abc import ABCMeta, abstractmethod
from typing import Tuple, Any

from .interface import Interface


class IPointingAltAz(Interface, metaclass=ABCMeta):
    """The device reports its pointing in Alt/Az, e.g. a telescope."""

    __module__ = "obsred.interfaces"

    @abstractmethod
    async def get_altaz(self, **kwargs: Any) -> Tuple[float, float]:
        """Returns current Alt and Az.

        Returns:
            Tuple of current Alt and Az in degrees.
        """
        ...


__all__ = ["IPointingAltAz"]
