from abc import ABCMeta, abstractmethod
from typing import Any, Optional

from astropy.table import Table
from numpy.typing import NDArray

from obsred.images.frame import Frame
from obsred.images.processor import FrameProcessor


class SourceDetection(FrameProcessor, metaclass=ABCMeta):
    """Base class for source detection."""

    __module__ = "obsred.images.processors.detection"

    @abstractmethod
    def detect(self, data: NDArray[Any], min_area: Optional[int] = None, sigma: Optional[float] = None) -> Table:
        """Find sources in the given image data.

        Args:
            data: Physical pixel values of a single plane.
            min_area: Minimum number of pixels of a source, defaults to the value given in the constructor.
            sigma: Detection threshold in units of background noise, defaults to the value given in the constructor.

        Returns:
            Table with at least the columns x, y (FITS convention), flux, and objtype (roundness between 0 for
            extended and 1 for point sources).
        """
        ...

    async def __call__(self, frame: Frame) -> Frame:
        """Find sources in the first plane of the given frame and attach them to a copy of it.

        Args:
            frame: Frame to find sources in.

        Returns:
            Frame with attached sources.
        """
        out = frame.copy()
        out.sources = self.detect(frame.physical[0])
        return out


__all__ = ["SourceDetection"]
