from __future__ import annotations

from typing import Optional, Any

import numpy as np
from astropy.io import fits
from astropy.table import Table
from numpy.typing import NDArray

from obsred.utils.enums import ImageID
from obsred.utils import fits as fitsio


class Frame:
    """A frame with one or more planes of integer pixel data and its header.

    Pixel data is kept in *stored* form, i.e. physical values minus :attr:`bzero`, which is half of the value
    range of the bit depth, see :func:`~obsred.utils.fits.bit_depth`.
    """

    __module__ = "obsred.images"

    def __init__(
        self,
        data: Optional[NDArray[Any]] = None,
        header: Optional[fits.Header] = None,
        sources: Optional[Table] = None,
        filename: Optional[str] = None,
    ):
        """Init a new frame.

        Args:
            data: Stored pixel data, either with shape (height, width) or (planes, height, width).
            header: Header for the new frame.
            sources: Table of identified sources.
            filename: Name of the file the frame has been read from.
        """

        self.header = fits.Header() if header is None else header.copy()
        self.sources = None if sources is None else sources.copy()
        self.filename = filename

        # always three dimensions
        self.data: Optional[NDArray[np.int32]] = None
        if data is not None:
            arr = np.asarray(data)
            if arr.ndim == 2:
                arr = arr[np.newaxis, :, :]
            self.data = arr.astype(np.int32)
            self.header["NAXIS1"] = self.data.shape[2]
            self.header["NAXIS2"] = self.data.shape[1]

    @classmethod
    def from_file(cls, filename: str) -> Frame:
        """Create frame from FITS file.

        Args:
            filename: Name of file to load frame from.

        Returns:
            New frame.
        """
        data, header, sources = fitsio.read_frame(filename)
        return cls(data=data, header=header, sources=sources, filename=filename)

    @classmethod
    def from_physical(cls, data: NDArray[Any], header: fits.Header, **kwargs: Any) -> Frame:
        """Create frame from physical pixel values, which are converted to stored form.

        Args:
            data: Physical pixel data.
            header: Header, its BITDEPTH or RAW keyword defines the bit depth.

        Returns:
            New frame.
        """
        bzero = fitsio.bzero(header)
        return cls(data=np.floor(np.asarray(data) + 0.5).astype(np.int64) - bzero, header=header, **kwargs)

    def writeto(self, filename: str) -> None:
        """Write frame to FITS file.

        Args:
            filename: Name of file to write.
        """
        if self.data is None:
            raise ValueError("Frame contains no data.")
        fitsio.write_frame(filename, self.data, self.header, self.sources)
        self.filename = filename

    def copy(self) -> Frame:
        """Returns a copy of this frame."""
        return Frame(
            data=None if self.data is None else self.data.copy(),
            header=self.header,
            sources=self.sources,
            filename=self.filename,
        )

    @property
    def raw(self) -> bool:
        """Whether this is raw sensor data."""
        return fitsio.is_raw(self.header)

    @property
    def bit_depth(self) -> int:
        return fitsio.bit_depth(self.header)

    @property
    def bzero(self) -> int:
        """Offset between physical and stored values."""
        return fitsio.bzero(self.header)

    @property
    def physical(self) -> NDArray[np.int64]:
        """Physical pixel values."""
        if self.data is None:
            raise ValueError("Frame contains no data.")
        return self.data.astype(np.int64) + self.bzero

    @property
    def planes(self) -> int:
        return 0 if self.data is None else self.data.shape[0]

    @property
    def width(self) -> int:
        return int(self.header["NAXIS1"])

    @property
    def height(self) -> int:
        return int(self.header["NAXIS2"])

    @property
    def image_id(self) -> Optional[ImageID]:
        """Kind of frame from IMGID keyword, None if missing or unknown."""
        try:
            return ImageID(str(self.header["IMGID"]).strip())
        except (KeyError, ValueError):
            return None

    @property
    def exposure_time(self) -> float:
        """Exposure time in seconds from TIME or, if not numeric, from BULBTIME."""
        return exposure_time(self.header)


def exposure_time(header: fits.Header) -> float:
    """Exposure time in seconds from TIME or, if not numeric, from BULBTIME.

    Args:
        header: Header to read time from.

    Returns:
        Exposure time, 0 if not available.
    """
    for key in ["TIME", "BULBTIME"]:
        try:
            return float(header[key])
        except (KeyError, ValueError, TypeError):
            continue
    return 0.0


__all__ = ["Frame", "exposure_time"]
