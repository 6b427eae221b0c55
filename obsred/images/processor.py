from abc import ABCMeta, abstractmethod
from typing import Any

from obsred.images.frame import Frame
from obsred.object import Object


class FrameProcessor(Object, metaclass=ABCMeta):
    def __init__(self, **kwargs: Any):
        """Init new frame processor."""
        Object.__init__(self, **kwargs)

    @abstractmethod
    async def __call__(self, frame: Frame) -> Frame:
        """Processes a frame.

        Args:
            frame: Frame to process.

        Returns:
            Processed frame.
        """
        ...

    async def reset(self) -> None:
        """Resets state of frame processor"""
        pass


__all__ = ["FrameProcessor"]
