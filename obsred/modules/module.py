from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional

from obsred.object import Object
from obsred.version import version

log = logging.getLogger(__name__)


class Module(Object):
    """Base class for all long-running obsred modules."""

    __module__ = "obsred.modules"

    def __init__(self, name: Optional[str] = None, label: Optional[str] = None, **kwargs: Any):
        """
        Args:
            name: Name of module. If None, the name of the class is used.
            label: Label for module. If None, name is used.
        """
        Object.__init__(self, **kwargs)

        # name and label
        self._device_name = name if name is not None else self.__class__.__name__
        self._label = label if label is not None else self._device_name

        # close
        self._closing = asyncio.Event()

    async def open(self) -> None:
        """Open module."""
        log.info("Opening module %s running on obsred %s...", self.name, version())
        await Object.open(self)

    async def close(self) -> None:
        """Close module."""
        await Object.close(self)

    async def main(self) -> None:
        """Main loop for application."""
        await self._closing.wait()

    @property
    def name(self) -> str:
        """Returns name of module."""
        return "" if self._device_name is None else self._device_name

    @property
    def label(self) -> str:
        """Returns label of module."""
        return "" if self._label is None else self._label

    def quit(self) -> None:
        """Quit module."""
        self._closing.set()


__all__ = ["Module"]
