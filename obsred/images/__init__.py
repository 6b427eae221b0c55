"""
Frames and the processors working on them.
"""
__title__ = "Images"

from .frame import Frame, exposure_time
from .processor import FrameProcessor

__all__ = ["Frame", "exposure_time", "FrameProcessor"]
