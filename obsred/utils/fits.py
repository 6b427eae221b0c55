"""
Reading and writing of frames as FITS files.

Pixel values are kept in *stored* form in memory, i.e. shifted by half of the value range of the bit depth, so
that 8 bit frames span [-128, 127] and 16 bit frames span [-32768, 32767]. The bit depth is given by the BITDEPTH
keyword or, if missing, by the RAW keyword: raw sensor data has 16 bit, processed RGB data 8 bit. On disk, physical
values are written as unsigned 8 or 16 bit integers.
"""
__title__ = "FITS utilities"

import logging
from typing import Any, Optional, Tuple

import numpy as np
from astropy.io import fits
from astropy.table import Table
from astropy.wcs import WCS
from numpy.typing import NDArray

log = logging.getLogger(__name__)


# keys describing the data layout, which are set by astropy when writing
_STRUCTURE_KEYS = ["SIMPLE", "BITPIX", "NAXIS", "NAXIS1", "NAXIS2", "NAXIS3", "EXTEND", "BZERO", "BSCALE"]

# keys of a celestial WCS
_WCS_KEYS = [
    "WCSAXES",
    "CTYPE1",
    "CTYPE2",
    "CRVAL1",
    "CRVAL2",
    "CRPIX1",
    "CRPIX2",
    "CDELT1",
    "CDELT2",
    "CUNIT1",
    "CUNIT2",
    "CD1_1",
    "CD1_2",
    "CD2_1",
    "CD2_2",
    "PC1_1",
    "PC1_2",
    "PC2_1",
    "PC2_2",
    "LONPOLE",
    "LATPOLE",
]

# name of binary table with identified sources
SOURCES_EXTENSION = "SOURCES"


def is_raw(header: fits.Header) -> bool:
    """Whether the header describes raw sensor data, read from the RAW keyword, which might be a string."""
    value = header.get("RAW", False)
    if isinstance(value, str):
        return value.strip().lower() == "true"
    return bool(value)


def half_range(raw: bool) -> int:
    """Half of the value range for the bit depth of raw (16 bit) or processed (8 bit) data."""
    return 32768 if raw else 128


def bit_depth(header: fits.Header) -> int:
    """Bit depth of the pixel data, from BITDEPTH if given, otherwise 16 for raw and 8 for processed data."""
    if "BITDEPTH" in header:
        return int(header["BITDEPTH"])
    return 16 if is_raw(header) else 8


def bzero(header: fits.Header) -> int:
    """Offset between physical and stored pixel values."""
    return 2 ** (bit_depth(header) - 1)


def read_header(filename: str) -> fits.Header:
    """Read primary header from FITS file.

    Args:
        filename: Name of file.

    Returns:
        Primary header.
    """
    with fits.open(filename, memmap=False) as hdul:
        return hdul[0].header.copy()


def read_frame(filename: str) -> Tuple[NDArray[np.int32], fits.Header, Optional[Table]]:
    """Read all planes, header and source table from a FITS file.

    Args:
        filename: Name of file.

    Returns:
        Tuple of stored data with shape (planes, height, width), header, and sources table (or None).
    """
    with fits.open(filename, memmap=False) as hdul:
        header = hdul[0].header.copy()
        data = _to_stored(hdul[0].data, header)
        sources = _read_sources(hdul)
    return data, header, sources


def read_plane(filename: str, plane: int = 0) -> NDArray[np.int32]:
    """Read a single plane of stored data from FITS file.

    Args:
        filename: Name of file.
        plane: Index of plane to read.

    Returns:
        Stored data of plane with shape (height, width).
    """
    with fits.open(filename, memmap=False) as hdul:
        data = _to_stored(hdul[0].data, hdul[0].header)
    return data[plane]


def _to_stored(data: NDArray[Any], header: fits.Header) -> NDArray[np.int32]:
    """Converts physical data read from file into stored data with 3 dimensions."""
    if data is None:
        raise ValueError("FITS file does not contain any image data.")
    stored = np.asarray(data).astype(np.int32) - bzero(header)
    if stored.ndim == 2:
        stored = stored[np.newaxis, :, :]
    return stored


def _read_sources(hdul: fits.HDUList) -> Optional[Table]:
    if SOURCES_EXTENSION not in hdul:
        return None
    hdu = hdul[SOURCES_EXTENSION]
    table = Table(hdu.data)
    if "NSOLVED" in hdu.header:
        table.meta["NSOLVED"] = hdu.header["NSOLVED"]
    return table


def write_frame(filename: str, data: NDArray[Any], header: fits.Header, sources: Optional[Table] = None) -> None:
    """Write stored data to a FITS file, which will contain physical values as unsigned integers.

    Args:
        filename: Name of file to write.
        data: Stored data with shape (planes, height, width).
        header: Header to write.
        sources: Optional table of identified sources, written as binary table extension.
    """

    # physical values
    hr = bzero(header)
    physical = np.clip(np.asarray(data, dtype=np.int64) + hr, 0, 2 * hr - 1)
    physical = physical.astype(np.uint16 if bit_depth(header) > 8 else np.uint8)
    if physical.ndim == 3 and physical.shape[0] == 1:
        physical = physical[0]

    # header without structural keywords
    hdr = header.copy()
    for key in _STRUCTURE_KEYS:
        if key in hdr:
            del hdr[key]

    # build file
    hdul = fits.HDUList([fits.PrimaryHDU(data=physical, header=hdr)])
    if sources is not None:
        table_hdu = fits.table_to_hdu(sources)
        table_hdu.name = SOURCES_EXTENSION
        hdul.append(table_hdu)

    log.debug("Writing file %s...", filename)
    hdul.writeto(filename, overwrite=True)


def read_table(filename: str) -> Optional[Table]:
    """Read the table of identified sources from a FITS file.

    Args:
        filename: Name of file.

    Returns:
        Sources table or None, if file does not contain one.
    """
    with fits.open(filename, memmap=False) as hdul:
        return _read_sources(hdul)


def has_wcs(header: fits.Header) -> bool:
    """Whether the header contains an astrometric solution."""
    return "CRVAL1" in header


def read_wcs(header: fits.Header) -> Optional[WCS]:
    """Returns celestial WCS from header or None, if the frame has not been solved.

    Args:
        header: Header to read WCS from.

    Returns:
        WCS or None.
    """
    if not has_wcs(header):
        return None
    hdr = fits.Header()
    for key in _WCS_KEYS:
        if key in header:
            hdr[key] = header[key]
    hdr["NAXIS"] = 2
    return WCS(hdr, naxis=2)


def remove_wcs(header: fits.Header) -> None:
    """Remove all celestial WCS keywords from header."""
    for key in _WCS_KEYS:
        if key in header:
            del header[key]


def write_wcs(header: fits.Header, wcs: WCS) -> None:
    """Replace celestial WCS in header with the given one.

    Args:
        header: Header to update.
        wcs: New WCS.
    """
    remove_wcs(header)
    for card in wcs.to_header().cards:
        if card.keyword in _WCS_KEYS:
            header[card.keyword] = (card.value, card.comment)


def indexed_key(prefix: str, index: int) -> str:
    """Keyword for the index-th entry of a numbered list of cards, e.g. STACK0. Keywords longer than eight
    characters (from STACK1000 or AVERAG100 on) are written as HIERARCH cards."""
    key = "%s%d" % (prefix, index)
    return key if len(key) <= 8 else "HIERARCH " + key


__all__ = [
    "is_raw",
    "half_range",
    "bit_depth",
    "bzero",
    "read_header",
    "read_frame",
    "read_plane",
    "write_frame",
    "read_table",
    "has_wcs",
    "read_wcs",
    "remove_wcs",
    "write_wcs",
    "indexed_key",
    "SOURCES_EXTENSION",
]
