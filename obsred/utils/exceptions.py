from __future__ import annotations

from typing import Optional


class ObsRedError(Exception):
    """Base class for all exceptions"""

    def __init__(self, message: Optional[str] = None):
        self.message = message

    def __str__(self) -> str:
        msg = f"<{self.__class__.__name__}>"
        if self.message is not None:
            msg += f" {self.message}"
        return msg


#######################################


class ConfigurationError(ObsRedError):
    """Invalid setup, e.g. a missing working directory, too many cameras or an unknown enum value."""

    pass


class ConfigurationNotSetError(ConfigurationError):
    """A setting that the requested operation depends on has never been chosen."""

    pass


class MissingCalibrationError(ObsRedError):
    """No master dark or flat exists for the signature of a frame."""

    def __init__(self, message: Optional[str] = None, signature: Optional[str] = None):
        ObsRedError.__init__(self, message)
        self.signature = signature


class MixedWcsError(ObsRedError):
    """Some frames of a stack are astrometrically solved and others are not."""

    pass


class OutOfImageError(ObsRedError):
    """A requested pixel position lies outside of the image."""

    pass


class SolveError(ObsRedError):
    """The astrometric solution could not be found."""

    pass


class SynchronizationTimeoutError(ObsRedError):
    """A device did not reach the requested state in time."""

    pass


#######################################


class SevereError(ObsRedError):
    """Severe exception that must not be swallowed by a restarting background task."""

    def __init__(self, exception: ObsRedError):
        ObsRedError.__init__(self, "A severe error has occurred.")
        # never encapsulate a SevereError
        self.exception = exception.exception if isinstance(exception, SevereError) else exception


__all__ = [
    "ObsRedError",
    "ConfigurationError",
    "ConfigurationNotSetError",
    "MissingCalibrationError",
    "MixedWcsError",
    "OutOfImageError",
    "SolveError",
    "SynchronizationTimeoutError",
    "SevereError",
]
