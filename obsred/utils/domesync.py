"""
Synchronization of dome and telescope azimuth as a state machine with a deadline.

The state machine does not wait itself; its owner polls it with the current azimuths until it reaches a terminal
state. A clock can be injected for testing.
"""
import logging
import time
from typing import Callable, Optional

from obsred.utils.enums import DomeSyncState

log = logging.getLogger(__name__)


"""States that are never left."""
TERMINAL_STATES = {DomeSyncState.SYNCED, DomeSyncState.TIMED_OUT, DomeSyncState.CANCELLED}


def azimuth_difference(a: float, b: float) -> float:
    """Difference between two azimuths in degrees, wrapped to [-180, 180)."""
    return (a - b + 180.0) % 360.0 - 180.0


class DomeSync:
    """Waits for the dome to reach the azimuth of the telescope."""

    __module__ = "obsred.utils"

    def __init__(self, tolerance: float, timeout: float = 600.0, clock: Callable[[], float] = time.monotonic):
        """Create a new synchronization.

        Args:
            tolerance: Maximum azimuth difference in degrees.
            timeout: Time in seconds after which the synchronization fails.
            clock: Function returning the current time in seconds.
        """
        self.tolerance = tolerance
        self.timeout = timeout
        self._clock = clock
        self._deadline: Optional[float] = None
        self._state = DomeSyncState.IDLE

    @property
    def state(self) -> DomeSyncState:
        return self._state

    @property
    def finished(self) -> bool:
        """Whether a terminal state has been reached."""
        return self._state in TERMINAL_STATES

    def start(self) -> None:
        """Start waiting."""
        self._deadline = self._clock() + self.timeout
        self._state = DomeSyncState.WAITING

    def poll(self, dome_az: float, telescope_az: float, moving: bool = False) -> DomeSyncState:
        """Update state with the current azimuths.

        Args:
            dome_az: Azimuth of dome in degrees.
            telescope_az: Azimuth of telescope in degrees.
            moving: Whether the dome is still moving.

        Returns:
            New state.
        """
        if self._state != DomeSyncState.WAITING or self._deadline is None:
            return self._state

        diff = azimuth_difference(dome_az, telescope_az)
        if abs(diff) <= self.tolerance and not moving:
            log.info("Dome synchronized with telescope at azimuth %.1f.", telescope_az)
            self._state = DomeSyncState.SYNCED
        elif self._clock() > self._deadline:
            self._state = DomeSyncState.TIMED_OUT
        else:
            log.debug("Dome at azimuth %.1f, telescope at %.1f.", dome_az, telescope_az)
        return self._state

    def cancel(self) -> None:
        """Cancel a running synchronization."""
        if not self.finished:
            self._state = DomeSyncState.CANCELLED


__all__ = ["DomeSync", "azimuth_difference", "TERMINAL_STATES"]
