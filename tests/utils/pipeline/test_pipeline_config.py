import dataclasses

import pytest

from obsred.utils.enums import CombinationMethod, InterpolationMethod, DrizzleFactor, ImageID
from obsred.utils.exceptions import ConfigurationError, ConfigurationNotSetError
from obsred.utils.pipeline.config import PipelineConfig, parse_enum


def test_defaults():
    config = PipelineConfig()
    assert config.combine_method is None
    assert config.kappa == 3.0
    assert config.interpolation == InterpolationMethod.BICUBIC
    assert config.drizzle == DrizzleFactor.NO_DRIZZLE


def test_from_dict():
    config = PipelineConfig.from_dict({"combine_method": "median", "drizzle": "DRIZZLE_2", "sigma": 5.0})
    assert config.combine_method == CombinationMethod.MEDIAN
    assert config.drizzle == DrizzleFactor.DRIZZLE_2
    assert config.sigma == 5.0
    assert PipelineConfig.from_dict(None) == PipelineConfig()


def test_from_dict_invalid():
    with pytest.raises(ConfigurationError):
        PipelineConfig.from_dict({"unknown": 1})
    with pytest.raises(ConfigurationError):
        PipelineConfig.from_dict({"combine_method": "average"})
    with pytest.raises(ConfigurationError):
        PipelineConfig.from_dict({"kappa": 0})


def test_to_dict():
    config = PipelineConfig(combine_method=CombinationMethod.KAPPA_SIGMA)
    d = config.to_dict()
    assert d["combine_method"] == "KAPPA_SIGMA"
    assert d["interpolation"] == "BICUBIC"
    assert PipelineConfig.from_dict(d) == config


def test_frozen():
    config = PipelineConfig()
    with pytest.raises(dataclasses.FrozenInstanceError):
        config.kappa = 2.0  # type: ignore
    assert config.replace(kappa=2.0).kappa == 2.0


def test_require_combine_method():
    with pytest.raises(ConfigurationNotSetError):
        PipelineConfig().require_combine_method()
    assert PipelineConfig(combine_method="maximum").require_combine_method() == CombinationMethod.MAXIMUM


def test_parse_enum():
    assert parse_enum(ImageID, ImageID.DARK) == ImageID.DARK
    assert parse_enum(ImageID, "Reduced on") == ImageID.REDUCED_ON
    assert parse_enum(ImageID, "reduced_on") == ImageID.REDUCED_ON
    assert parse_enum(ImageID, "On") == ImageID.ON_SOURCE
    with pytest.raises(ConfigurationError):
        parse_enum(ImageID, "Nothing")
