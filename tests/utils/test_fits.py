import numpy as np
from astropy.io import fits
from astropy.table import Table
from astropy.wcs import WCS

from obsred.utils import fits as fitsio


def test_bit_depth():
    assert fitsio.bit_depth(fits.Header({"RAW": True})) == 16
    assert fitsio.bit_depth(fits.Header({"RAW": False})) == 8
    assert fitsio.bit_depth(fits.Header({"RAW": "true"})) == 16
    assert fitsio.bit_depth(fits.Header({"RAW": False, "BITDEPTH": 16})) == 16
    assert fitsio.bit_depth(fits.Header()) == 8


def test_bzero():
    assert fitsio.bzero(fits.Header({"RAW": True})) == 32768
    assert fitsio.bzero(fits.Header({"RAW": False})) == 128


def test_write_and_read(tmp_path):
    filename = str(tmp_path / "frame.fits")
    stored = np.array([[[-128, 0], [10, 127]]], dtype=np.int32)
    hdr = fits.Header({"RAW": False, "OBJECT": "M42"})
    fitsio.write_frame(filename, stored, hdr)

    data, header, sources = fitsio.read_frame(filename)
    assert data.shape == (1, 2, 2)
    np.testing.assert_array_equal(data, stored)
    assert header["OBJECT"] == "M42"
    assert sources is None

    # physical values on disk
    with fits.open(filename) as hdul:
        np.testing.assert_array_equal(hdul[0].data, [[0, 128], [138, 255]])


def test_write_clips(tmp_path):
    filename = str(tmp_path / "frame.fits")
    fitsio.write_frame(filename, np.array([[[-1000, 1000]]]), fits.Header({"RAW": False}))
    np.testing.assert_array_equal(fitsio.read_plane(filename), [[-128, 127]])


def test_sources_table(tmp_path):
    filename = str(tmp_path / "frame.fits")
    table = Table({"X": [1.0, 2.0], "Y": [3.0, 4.0], "NAME": ["a", "b"]})
    table.meta["NSOLVED"] = 1
    fitsio.write_frame(filename, np.zeros((1, 4, 4)), fits.Header({"RAW": True}), sources=table)

    sources = fitsio.read_table(filename)
    assert sources is not None
    assert len(sources) == 2
    assert list(sources["X"]) == [1.0, 2.0]
    assert sources.meta["NSOLVED"] == 1


def test_wcs_round_trip():
    wcs = WCS(naxis=2)
    wcs.wcs.ctype = ["RA---TAN", "DEC--TAN"]
    wcs.wcs.crval = [83.8, -5.4]
    wcs.wcs.crpix = [50.5, 50.5]
    wcs.wcs.cdelt = [-1.0 / 3600, 1.0 / 3600]

    hdr = fits.Header({"OBJECT": "M42"})
    assert fitsio.has_wcs(hdr) is False
    assert fitsio.read_wcs(hdr) is None

    fitsio.write_wcs(hdr, wcs)
    assert fitsio.has_wcs(hdr) is True
    read = fitsio.read_wcs(hdr)
    np.testing.assert_allclose(read.wcs.crval, [83.8, -5.4])

    fitsio.remove_wcs(hdr)
    assert fitsio.has_wcs(hdr) is False
    assert hdr["OBJECT"] == "M42"


def test_indexed_key():
    assert fitsio.indexed_key("STACK", 999) == "STACK999"
    assert fitsio.indexed_key("STACK", 1000) == "HIERARCH STACK1000"
    assert fitsio.indexed_key("AVERAG", 99) == "AVERAG99"
    assert fitsio.indexed_key("AVERAG", 100) == "HIERARCH AVERAG100"
