import asyncio
from abc import ABCMeta, abstractmethod
from functools import partial
from typing import Any, Optional, Tuple

import numpy as np
from astropy.io import fits
from astropy.table import Table
from numpy.typing import NDArray

from obsred.images.frame import Frame
from obsred.images.processor import FrameProcessor
from obsred.utils.pipeline.config import PipelineConfig


class Astrometry(FrameProcessor, metaclass=ABCMeta):
    """Base class for astrometry processors"""

    __module__ = "obsred.images.processors.astrometry"

    @abstractmethod
    def solve(self, data: NDArray[Any], header: fits.Header) -> Tuple[fits.Header, Optional[Table]]:
        """Finds astrometric solution for the given data.

        Args:
            data: Physical pixel values of a single plane.
            header: Header of frame.

        Returns:
            Tuple of updated header and table of sources, if any.
        """
        ...

    def apply_config(self, config: PipelineConfig) -> None:
        """Take settings from the pipeline config, does nothing by default."""
        pass

    async def __call__(self, frame: Frame) -> Frame:
        """Finds astrometric solution to a given frame.

        Args:
            frame: Frame to analyse.

        Returns:
            Processed frame.
        """
        loop = asyncio.get_running_loop()
        header, sources = await loop.run_in_executor(None, partial(self.solve, solve_data(frame), frame.header))
        out = frame.copy()
        out.header = header
        if sources is not None:
            out.sources = sources
        return out


def solve_data(frame: Frame) -> NDArray[np.int64]:
    """Data used for solving a frame: its single plane or the sum of its colour planes."""
    physical = frame.physical
    if physical.shape[0] == 1:
        return physical[0]
    return physical[:3].sum(axis=0)


__all__ = ["Astrometry", "solve_data"]
