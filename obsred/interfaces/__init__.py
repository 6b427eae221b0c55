"""
Interfaces of the devices that the :class:`~obsred.modules.ObservationManager` talks to. Device drivers are not part
of *obsred*, they only need to implement these interfaces.
"""
__title__ = "Interfaces"

from .interface import Interface
from .IPointingAltAz import IPointingAltAz
from .IDome import IDome

__all__ = ["Interface", "IPointingAltAz", "IDome"]
