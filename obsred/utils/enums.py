"""
Enumerations used throughout the reduction pipeline.
"""
__title__ = "Enumerations"

from enum import Enum
from typing import Optional


class ImageID(Enum):
    """Enumerator for the kind of frame, as written into the IMGID header keyword.

    Attributes:
        DARK: Dark exposure.
        FLAT: Flat-field exposure.
        ON_SOURCE: Raw science exposure of the target.
        TEST: Test exposure, never stored.
        REDUCED_ON: Calibrated and solved science exposure.
        STACKED: Registered sum of reduced science exposures.
        AVERAGED: Registered average of stacked exposures.
        REDUCED_DARK: Master dark.
        REDUCED_FLAT: Master flat.
    """

    DARK = "Dark"
    FLAT = "Flat"
    ON_SOURCE = "On"
    TEST = "Test"
    REDUCED_ON = "Reduced on"
    STACKED = "Stacked"
    AVERAGED = "Averaged"
    REDUCED_DARK = "Reduced dark"
    REDUCED_FLAT = "Reduced flat"


# frames that are combined into master frames
_CALIBRATION = {ImageID.DARK, ImageID.FLAT}

# next stage of the pipeline for each kind of frame
_NEXT_STAGE = {
    ImageID.DARK: ImageID.REDUCED_DARK,
    ImageID.FLAT: ImageID.REDUCED_FLAT,
    ImageID.ON_SOURCE: ImageID.REDUCED_ON,
    ImageID.REDUCED_ON: ImageID.STACKED,
    ImageID.STACKED: ImageID.AVERAGED,
}


def is_calibration(image_id: ImageID) -> bool:
    """Whether frames of the given kind are combined into master frames."""
    return image_id in _CALIBRATION


def next_stage(image_id: ImageID) -> Optional[ImageID]:
    """Returns the kind of frame that reducing a frame of the given kind produces.

    Args:
        image_id: Kind of input frame.

    Returns:
        Kind of output frame or None, if frames of this kind are not processed any further.
    """
    return _NEXT_STAGE.get(image_id)


def reduced_label(image_id: ImageID) -> str:
    """Returns the IMGID value of a reduced frame, e.g. "Reduced on" for an on-source frame."""
    return "Reduced " + image_id.value.lower()


class CombinationMethod(Enum):
    """Enumerator for methods combining a set of frames pixel by pixel.

    Attributes:
        MEDIAN: Median of all frames.
        MEAN_AVERAGE: Mean of all frames.
        MAXIMUM: Maximum of all frames.
        KAPPA_SIGMA: Mean of all frames after iterative kappa-sigma clipping.
    """

    MEDIAN = "median"
    MEAN_AVERAGE = "mean_average"
    MAXIMUM = "maximum"
    KAPPA_SIGMA = "kappa_sigma"


class InterpolationMethod(Enum):
    """Enumerator for the resampling of a frame at fractional pixel positions.

    Attributes:
        NEAREST_NEIGHBOR: Value of the closest pixel.
        BILINEAR: Spline interpolation, see :mod:`~obsred.utils.pipeline.resampler` for the degree.
        BICUBIC: Spline interpolation, see :mod:`~obsred.utils.pipeline.resampler` for the degree.
    """

    NEAREST_NEIGHBOR = "nearest_neighbor"
    BILINEAR = "bilinear"
    BICUBIC = "bicubic"


class AverageMethod(Enum):
    """Enumerator for the combination of registered samples when averaging.

    Attributes:
        PONDERATION: Mean weighted by the inverse squared resampling distance.
        CLOSEST_POINT: Sample with the smallest resampling distance.
        USE_COMBINE_METHOD: Same statistic as for combining darks and flats.
    """

    PONDERATION = "ponderation"
    CLOSEST_POINT = "closest_point"
    USE_COMBINE_METHOD = "use_combine_method"


class DrizzleFactor(Enum):
    """Enumerator for the scaling of the output grid of a registration.

    Attributes:
        NO_DRIZZLE: Same size as input.
        DRIZZLE_2: Twice the size of the input.
        DRIZZLE_3: Three times the size of the input.
        DRIZZLE_HALF: Half the size of the input.
    """

    NO_DRIZZLE = "no_drizzle"
    DRIZZLE_2 = "drizzle_2"
    DRIZZLE_3 = "drizzle_3"
    DRIZZLE_HALF = "drizzle_half"

    def scale(self, size: int) -> int:
        """Returns the scaled output size for an input of the given size."""
        if self == DrizzleFactor.DRIZZLE_2:
            return size * 2
        if self == DrizzleFactor.DRIZZLE_3:
            return size * 3
        if self == DrizzleFactor.DRIZZLE_HALF:
            return size // 2
        return size

    @property
    def factor(self) -> float:
        """Scale factor of the output grid."""
        return {
            DrizzleFactor.NO_DRIZZLE: 1.0,
            DrizzleFactor.DRIZZLE_2: 2.0,
            DrizzleFactor.DRIZZLE_3: 3.0,
            DrizzleFactor.DRIZZLE_HALF: 0.5,
        }[self]


class NormalizationMethod(Enum):
    """Enumerator for the exposure time that averaged frames are scaled to.

    Attributes:
        MINIMUM: Shortest exposure time of all inputs.
        MAXIMUM: Longest exposure time of all inputs.
        NONE: No scaling.
    """

    MINIMUM = "minimum"
    MAXIMUM = "maximum"
    NONE = "none"


class ImageOrientation(Enum):
    """Enumerator for the orientation of the output grid on the sky.

    Attributes:
        INVERTED_HORIZONTALLY_AND_VERTICALLY: East right, north down.
        INVERTED_HORIZONTALLY: East right, north up.
        NOT_INVERTED: East left, north up.
    """

    INVERTED_HORIZONTALLY_AND_VERTICALLY = "inverted_horizontally_and_vertically"
    INVERTED_HORIZONTALLY = "inverted_horizontally"
    NOT_INVERTED = "not_inverted"

    @property
    def east_left(self) -> bool:
        return self == ImageOrientation.NOT_INVERTED

    @property
    def north_up(self) -> bool:
        return self != ImageOrientation.INVERTED_HORIZONTALLY_AND_VERTICALLY


class ReductionStatus(Enum):
    """Enumerator for the reduction state of a stored frame.

    Attributes:
        REDUCED: Frame has been reduced.
        NOT_REDUCED: Frame has not been reduced (yet).
        REDUCED_WITHOUT_FLAT: Frame has been reduced, but no flat was available.
    """

    REDUCED = 0
    NOT_REDUCED = 1
    REDUCED_WITHOUT_FLAT = 2


class Mount(Enum):
    """Enumerator for telescope mounts as written into the MOUNT header keyword."""

    EQUATORIAL = "EQUATORIAL"
    AZIMUTHAL = "AZIMUTHAL"


class MotionStatus(Enum):
    """Enumerator for moving device status.

    Attributes:
        PARKED: The device is in its safe "off" state.
        IDLE: Operating but in no particular state.
        SLEWING: The device is moving to a new position.
        POSITIONED: Operating in a well-defined state, but not moving.
        TRACKING: The device is moving as commanded.
        ERROR: The device is in an error state.
        UNKNOWN: The state of the device is unknown.
    """

    PARKED = "parked"
    IDLE = "idle"
    SLEWING = "slewing"
    POSITIONED = "positioned"
    TRACKING = "tracking"
    ERROR = "error"
    UNKNOWN = "unknown"


class DomeSyncState(Enum):
    """Enumerator for the synchronization of dome and telescope azimuth.

    Attributes:
        IDLE: No synchronization requested.
        WAITING: Waiting for the dome to reach the telescope azimuth.
        SYNCED: Dome and telescope are aligned.
        TIMED_OUT: Dome did not reach the telescope azimuth in time.
        CANCELLED: Synchronization has been cancelled.
    """

    IDLE = "idle"
    WAITING = "waiting"
    SYNCED = "synced"
    TIMED_OUT = "timed_out"
    CANCELLED = "cancelled"


__all__ = [
    "ImageID",
    "is_calibration",
    "next_stage",
    "reduced_label",
    "CombinationMethod",
    "InterpolationMethod",
    "AverageMethod",
    "DrizzleFactor",
    "NormalizationMethod",
    "ImageOrientation",
    "ReductionStatus",
    "Mount",
    "MotionStatus",
    "DomeSyncState",
]
