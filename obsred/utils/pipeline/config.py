from __future__ import annotations

import dataclasses
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional, Type, TypeVar

from obsred.utils.enums import (
    CombinationMethod,
    InterpolationMethod,
    AverageMethod,
    DrizzleFactor,
    NormalizationMethod,
    ImageOrientation,
)
from obsred.utils.exceptions import ConfigurationError, ConfigurationNotSetError

E = TypeVar("E", bound=Enum)


def parse_enum(enum_class: Type[E], value: Any) -> E:
    """Converts a value to a member of the given enum, accepting members, names (case-insensitive) and values.

    Args:
        enum_class: Enum to convert to.
        value: Value to convert.

    Returns:
        Enum member.

    Raises:
        ConfigurationError: If value does not describe a member of the enum.
    """
    if isinstance(value, enum_class):
        return value
    if isinstance(value, str):
        name = value.strip().upper().replace("-", "_").replace(" ", "_")
        if name in enum_class.__members__:
            return enum_class[name]
    try:
        return enum_class(value)
    except ValueError:
        raise ConfigurationError('Unknown value "%s" for %s.' % (value, enum_class.__name__))


@dataclass(frozen=True)
class PipelineConfig:
    """Settings for all stages of the reduction pipeline.

    Attributes:
        combine_method: Method for combining darks and flats, must be chosen before the first combination.
        kappa: Clipping threshold for kappa-sigma combination.
        interpolation: Resampling method for registration.
        average_method: Combination of registered samples when averaging.
        drizzle: Scaling of the output grid when stacking.
        normalization: Exposure time that averaged frames are scaled to.
        orientation: Orientation of registered frames on the sky.
        min_area: Minimum number of pixels of a source for the astrometric solution.
        sigma: Detection threshold in units of the background noise.
        min_object_type: Minimum roundness (minor over major axis) of a source.
        max_sources: Maximum number of sources used for solving.
        limiting_magnitude: Faintest magnitude of catalog stars.
        centering_error: Expected error of the telescope pointing in degrees.
    """

    combine_method: Optional[CombinationMethod] = None
    kappa: float = 3.0
    interpolation: InterpolationMethod = InterpolationMethod.BICUBIC
    average_method: AverageMethod = AverageMethod.PONDERATION
    drizzle: DrizzleFactor = DrizzleFactor.NO_DRIZZLE
    normalization: NormalizationMethod = NormalizationMethod.MINIMUM
    orientation: ImageOrientation = ImageOrientation.NOT_INVERTED
    min_area: int = 6
    sigma: float = 8.0
    min_object_type: float = 0.5
    max_sources: int = 50
    limiting_magnitude: float = 15.0
    centering_error: float = 0.0

    @classmethod
    def from_dict(cls, config: Optional[dict[str, Any]] = None) -> PipelineConfig:
        """Create config from a dictionary, e.g. loaded from YAML.

        Args:
            config: Dictionary with values for some or all fields, enums given by their names.

        Returns:
            New config.

        Raises:
            ConfigurationError: If a key or a value is invalid.
        """
        if config is None:
            return cls()

        fields = {f.name: f for f in dataclasses.fields(cls)}
        kwargs: dict[str, Any] = {}
        for key, value in config.items():
            if key not in fields:
                raise ConfigurationError('Unknown pipeline setting "%s".' % key)
            kwargs[key] = value
        return cls(**kwargs)

    def __post_init__(self) -> None:
        # convert enums given as strings, frozen dataclasses need object.__setattr__
        conversions: dict[str, Type[Enum]] = {
            "combine_method": CombinationMethod,
            "interpolation": InterpolationMethod,
            "average_method": AverageMethod,
            "drizzle": DrizzleFactor,
            "normalization": NormalizationMethod,
            "orientation": ImageOrientation,
        }
        for name, enum_class in conversions.items():
            value = getattr(self, name)
            if value is not None:
                object.__setattr__(self, name, parse_enum(enum_class, value))
        if self.kappa <= 0:
            raise ConfigurationError("Kappa must be positive.")

    def replace(self, **kwargs: Any) -> PipelineConfig:
        """Returns a copy of this config with the given fields changed."""
        return dataclasses.replace(self, **kwargs)

    def require_combine_method(self) -> CombinationMethod:
        """Returns the combination method.

        Raises:
            ConfigurationNotSetError: If no combination method has been chosen.
        """
        if self.combine_method is None:
            raise ConfigurationNotSetError("No combination method set for darks and flats.")
        return self.combine_method

    def to_dict(self) -> dict[str, Any]:
        """Returns config as dictionary with enums given by their names."""
        return {
            f.name: (getattr(self, f.name).name if isinstance(getattr(self, f.name), Enum) else getattr(self, f.name))
            for f in dataclasses.fields(self)
        }


__all__ = ["PipelineConfig", "parse_enum"]
