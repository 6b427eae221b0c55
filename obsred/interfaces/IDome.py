from abc import ABCMeta, abstractmethod
from typing import Any, Optional

from obsred.utils.enums import MotionStatus
from .IPointingAltAz import IPointingAltAz


class IDome(IPointingAltAz, metaclass=ABCMeta):
    """The device is a dome, whose slit azimuth is returned by :meth:`get_altaz`."""

    __module__ = "obsred.interfaces"

    @abstractmethod
    async def get_motion_status(self, device: Optional[str] = None, **kwargs: Any) -> MotionStatus:
        """Returns current motion status.

        Args:
            device: Name of device to get status for, or None.

        Returns:
            Motion status of the dome.
        """
        ...


__all__ = ["IDome"]
