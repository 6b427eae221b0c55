"""
Time handling, a thin layer on top of :class:`astropy.time.Time`.
"""
__title__ = "Time"

import datetime
from typing import cast

import astropy.time
import astropy.units as u
import pytz
from astroplan import Observer


class Time(astropy.time.Time):  # type: ignore
    """Hashable Time class that can be shifted for debugging."""

    _now_offset = astropy.time.TimeDelta(0 * u.second)

    def __hash__(self) -> int:
        if self.ndim != 0:
            raise TypeError("unhashable type: '{}'".format(self.__class__.__name__))
        return hash((self.jd1, self.jd2, self.scale))

    @classmethod
    def set_offset_to_now(cls, delta: astropy.time.TimeDelta) -> None:
        cls._now_offset = delta

    @classmethod
    def now(cls) -> "Time":
        """Creates a new object corresponding to the instant in time this method is called, shifted by the
        offset given to :meth:`set_offset_to_now`.

        Returns:
            A new `Time` object at the current time.
        """
        dtnow = datetime.datetime.now(datetime.timezone.utc).replace(tzinfo=None)
        return cast(Time, Time(val=dtnow, format="datetime", scale="utc") + Time._now_offset)

    @property
    def millis(self) -> int:
        """Milliseconds since 1970-01-01, as used for naming new files."""
        return int(round(self.unix * 1000.0))

    def night_obs(self, observer: Observer) -> datetime.date:
        """Returns the night for this time, i.e. the date of the start of the current night.

        Args:
            observer: Observer object to use.

        Returns:
            Night for this time.
        """

        # get local datetime
        utc_dt = pytz.utc.localize(self.datetime)
        loc_dt = utc_dt.astimezone(observer.timezone)

        # before 3pm it is still the previous night
        if loc_dt.hour < 15:
            loc_dt += datetime.timedelta(days=-1)
        return loc_dt.date()


__all__ = ["Time"]
