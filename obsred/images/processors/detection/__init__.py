"""
Source Detection
----------------
"""

from .sourcedetection import SourceDetection
from .sep import SepSourceDetection

__all__ = ["SourceDetection", "SepSourceDetection"]
