import logging
import os

import numpy as np
import pytest
from astropy.io import fits

from obsred.images import Frame
from obsred.utils.enums import ImageID, ReductionStatus, CombinationMethod
from obsred.utils.exceptions import ConfigurationError, ConfigurationNotSetError
from obsred.utils.pipeline.config import PipelineConfig
from obsred.utils.pipeline.pipeline import ReductionPipeline


def _raw(value: int, **kwargs) -> Frame:
    header = fits.Header({"ISO": 800, "TIME": 30.0, "RAW": True, **kwargs})
    return Frame.from_physical(np.full((8, 8), value), header)


def _reduced(value: int) -> Frame:
    header = fits.Header({"RA": 150.0, "DEC": 30.0, "FIELD": 0.01, "TIME": 10.0, "OBJECT": "M42"})
    return Frame.from_physical(np.full((10, 10), value), header)


@pytest.fixture()
def pipeline(tmp_path) -> ReductionPipeline:
    return ReductionPipeline(
        str(tmp_path), observation="20240101", config=PipelineConfig(combine_method=CombinationMethod.MEDIAN)
    )


def test_invalid(tmp_path):
    with pytest.raises(ConfigurationError):
        ReductionPipeline(str(tmp_path / "missing"))
    with pytest.raises(ConfigurationError):
        ReductionPipeline(str(tmp_path), cameras=3)
    with pytest.raises(ConfigurationError):
        ReductionPipeline(str(tmp_path), cameras=0)


def test_cameras(tmp_path):
    pipeline = ReductionPipeline(str(tmp_path), cameras=2)
    assert pipeline.cameras == 2
    assert len(pipeline.observation) == 8
    assert pipeline.directory(1).path.name == "camera2"
    with pytest.raises(ConfigurationError):
        pipeline.directory(2)


def test_test_frame(pipeline, tmp_path):
    assert pipeline.offer_frame(ImageID.TEST, _raw(100)) is None
    assert pipeline.last_frame is not None
    assert pipeline.last_frame.header["IMGID"] == "Test"
    assert not (tmp_path / "20240101").exists()


def test_missing_dark(pipeline, caplog):
    caplog.set_level(logging.WARNING)
    filename = pipeline.offer_frame(ImageID.ON_SOURCE, _raw(140))

    # stored, but not reduced
    assert os.path.exists(filename)
    assert pipeline.status(filename) == ReductionStatus.NOT_REDUCED
    assert pipeline.directory().list(ImageID.REDUCED_ON) == []
    assert "Skipping" in caplog.text


def test_missing_combine_method(tmp_path):
    pipeline = ReductionPipeline(str(tmp_path), observation="obs")
    with pytest.raises(ConfigurationNotSetError):
        pipeline.offer_frame(ImageID.DARK, _raw(100))


def test_reduce(pipeline):
    # master dark
    dark = pipeline.offer_frame(ImageID.DARK, _raw(100))
    master_dark = pipeline.directory().find_master(ImageID.DARK, "ISO800_TIME30.0_RAWtrue")
    assert master_dark is not None
    assert pipeline.status(dark) == ReductionStatus.REDUCED
    assert Frame.from_file(master_dark).header["IMGID"] == "Reduced dark"

    # master flat
    pipeline.offer_frame(ImageID.FLAT, _raw(1100))
    assert pipeline.directory().find_compatible_flat("ISO800_TIME30.0_RAWtrue") is not None

    # on-source frame
    on = pipeline.offer_frame(ImageID.ON_SOURCE, _raw(140))
    assert pipeline.status(on) == ReductionStatus.REDUCED
    reduced = pipeline.directory().list(ImageID.REDUCED_ON)
    assert [os.path.basename(f) for f in reduced] == [os.path.basename(on)]

    # dark is subtracted on stored values, flat is flat
    frame = Frame.from_file(reduced[0])
    np.testing.assert_array_equal(frame.data, 40)
    assert frame.header["IMGID"] == "Reduced on"

    # overview
    table = pipeline.table()
    assert len(table) == 6
    assert set(table["image_id"]) == {"Dark", "Flat", "On", "Reduced on"}


def test_reduce_without_flat(pipeline):
    pipeline.offer_frame(ImageID.DARK, _raw(100))
    on = pipeline.offer_frame(ImageID.ON_SOURCE, _raw(140))
    assert pipeline.status(on) == ReductionStatus.REDUCED_WITHOUT_FLAT


def test_no_auto_reduce(tmp_path):
    pipeline = ReductionPipeline(
        str(tmp_path),
        observation="obs",
        config=PipelineConfig(combine_method=CombinationMethod.MEDIAN),
        auto_reduce_on=False,
    )
    pipeline.offer_frame(ImageID.DARK, _raw(100))
    on = pipeline.offer_frame(ImageID.ON_SOURCE, _raw(140))
    assert pipeline.status(on) == ReductionStatus.NOT_REDUCED

    # reduce manually
    written = pipeline.reduce(ImageID.ON_SOURCE, [on])
    assert len(written) == 1
    assert pipeline.status(on) == ReductionStatus.REDUCED_WITHOUT_FLAT


def test_stack(pipeline, caplog):
    caplog.set_level(logging.INFO)
    first = pipeline.offer_frame(ImageID.REDUCED_ON, _reduced(10))
    second = pipeline.offer_frame(ImageID.REDUCED_ON, _reduced(20))

    stacked = pipeline.stack(second)
    assert stacked is not None
    frame = Frame.from_file(stacked)
    assert frame.header["STACKED"] == 2
    assert frame.header["STACK0"] == os.path.basename(second)
    assert frame.header["STACK1"] == os.path.basename(first)
    assert frame.physical[0, 5, 5] == 30

    # nothing new to stack
    assert pipeline.stack(first) is None
    assert "There are no new files to stack." in caplog.text
    assert pipeline.reduce(ImageID.REDUCED_ON, [first]) == []

    # new file
    third = pipeline.offer_frame(ImageID.REDUCED_ON, _reduced(30))
    stacked = pipeline.stack(third)
    assert Frame.from_file(stacked).header["STACKED"] == 1
    assert "Only 1 image to stack." in caplog.text


def test_stack_disabled(pipeline):
    first = pipeline.offer_frame(ImageID.REDUCED_ON, _reduced(10))
    second = pipeline.offer_frame(ImageID.REDUCED_ON, _reduced(20))
    pipeline.set_enabled(second, False)
    assert not pipeline.enabled(second)

    stacked = pipeline.stack(first)
    assert Frame.from_file(stacked).header["STACKED"] == 1


def test_average(pipeline):
    first = pipeline.offer_frame(ImageID.REDUCED_ON, _reduced(10))
    stacked = pipeline.stack(first)

    averaged = pipeline.reduce(ImageID.STACKED, [stacked])
    assert len(averaged) == 1
    frame = Frame.from_file(averaged[0])
    assert frame.header["IMGID"] == "Averaged"
    assert frame.header["AVERAG0"] == os.path.basename(stacked)
    assert pipeline.average(stacked) is None


def test_set_config(pipeline, mocker):
    astrometry = mocker.MagicMock()
    pipeline._astrometry = astrometry
    config = PipelineConfig(sigma=3.0)
    pipeline.set_config(config)
    assert pipeline.config == config
    astrometry.apply_config.assert_called_once_with(config)


def test_reduce_broken_file(tmp_path, caplog):
    pipeline = ReductionPipeline(
        str(tmp_path),
        observation="obs",
        config=PipelineConfig(combine_method=CombinationMethod.MEDIAN),
        auto_reduce_on=False,
    )
    pipeline.offer_frame(ImageID.DARK, _raw(100))
    first = pipeline.offer_frame(ImageID.ON_SOURCE, _raw(140))
    second = pipeline.offer_frame(ImageID.ON_SOURCE, _raw(150))
    broken = tmp_path / "broken.fits"
    broken.write_text("not a FITS file")

    # the broken file is skipped, the batch goes on
    caplog.set_level(logging.ERROR)
    written = pipeline.reduce(ImageID.ON_SOURCE, [first, str(broken), second])
    assert [os.path.basename(f) for f in written] == [os.path.basename(first), os.path.basename(second)]
    assert pipeline.status(second) == ReductionStatus.REDUCED_WITHOUT_FLAT
    assert "Could not reduce" in caplog.text
    assert len(pipeline.errors) == 1
    assert pipeline.errors[0].startswith("ERROR! broken.fits")


def test_combine_empty_directory(pipeline, tmp_path):
    # a dark from outside the observation, nothing stored yet
    filename = str(tmp_path / "dark.fits")
    _raw(100).writeto(filename)
    assert pipeline.reduce(ImageID.DARK, [filename]) == []
    assert pipeline.directory().find_master(ImageID.DARK, "ISO800_TIME30.0_RAWtrue") is None
