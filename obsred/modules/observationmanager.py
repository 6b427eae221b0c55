from __future__ import annotations

import asyncio
import fnmatch
import glob
import logging
import os
import time
from dataclasses import dataclass, field
from functools import partial
from typing import Any, Callable, Optional, List, Dict

from obsred.images.frame import Frame
from obsred.images.processors.astrometry import Astrometry
from obsred.interfaces import IDome, IPointingAltAz
from obsred.utils.domesync import DomeSync
from obsred.utils.enums import ImageID, MotionStatus, DomeSyncState
from obsred.utils.exceptions import ObsRedError
from obsred.utils.fits import read_header
from obsred.utils.pipeline.config import PipelineConfig, parse_enum
from obsred.utils.pipeline.pipeline import ReductionPipeline
from .module import Module

log = logging.getLogger(__name__)


@dataclass
class Command:
    """A queued command for the worker."""

    name: str
    func: Callable[..., Any]
    args: tuple[Any, ...] = ()
    future: asyncio.Future[Any] = field(default_factory=lambda: asyncio.get_running_loop().create_future())


class ObservationManager(Module):
    """Runs the reduction pipeline for the frames of an observation.

    All commands are put into a queue and executed one after the other by a single worker, so that two pipeline
    stages never run at the same time. Pipeline stages are run in the default executor to keep the event loop
    responsive.
    """

    __module__ = "obsred.modules"

    def __init__(
        self,
        working_dir: str,
        observation: Optional[str] = None,
        cameras: int = 1,
        pipeline: Optional[Dict[str, Any]] = None,
        astrometry: Optional[Astrometry | Dict[str, Any]] = None,
        reduce_enabled: bool = True,
        auto_reduce_on: bool = True,
        incoming: Optional[str] = None,
        pattern: str = "*.fits",
        poll_interval: float = 5.0,
        dome: Optional[IDome | Dict[str, Any]] = None,
        telescope: Optional[IPointingAltAz | Dict[str, Any]] = None,
        dome_tolerance: float = 5.0,
        dome_timeout: float = 600.0,
        **kwargs: Any,
    ):
        """Create a new observation manager.

        Args:
            working_dir: Directory to store observations in.
            observation: Name of observation, defaults to current night.
            cameras: Number of cameras, at most two.
            pipeline: Settings for the pipeline, see :class:`~obsred.utils.pipeline.PipelineConfig`.
            astrometry: Astrometry for solving reduced frames.
            reduce_enabled: Whether to reduce frames when they are offered.
            auto_reduce_on: Whether to reduce on-source frames right when they are offered.
            incoming: Directory to poll for new frames, whose IMGID defines their kind.
            pattern: Filename pattern for new frames in incoming directory.
            poll_interval: Interval in seconds for polling the incoming directory and the dome.
            dome: Dome to synchronize with telescope.
            telescope: Telescope to synchronize dome with.
            dome_tolerance: Maximum azimuth difference between dome and telescope in degrees.
            dome_timeout: Time in seconds to wait for dome synchronization.
        """
        Module.__init__(self, **kwargs)

        # collaborators
        self._astrometry: Optional[Astrometry] = (
            None if astrometry is None else self.add_child_object(astrometry, Astrometry)
        )
        self._dome: Optional[IDome] = None if dome is None else self.get_object(dome, IDome)
        self._telescope: Optional[IPointingAltAz] = (
            None if telescope is None else self.get_object(telescope, IPointingAltAz)
        )

        # pipeline
        self._pipeline = ReductionPipeline(
            working_dir,
            observation=observation,
            config=PipelineConfig.from_dict(pipeline),
            astrometry=self._astrometry,
            cameras=cameras,
            reduce_enabled=reduce_enabled,
            auto_reduce_on=auto_reduce_on,
            observer=self.observer,
            progress=self._progress,
        )

        # variables
        self._queue = asyncio.Queue[Command]()
        self._incoming = incoming
        self._pattern = pattern
        self._poll_interval = poll_interval
        self._dome_tolerance = dome_tolerance
        self._dome_timeout = dome_timeout
        self._dome_sync: Optional[DomeSync] = None
        self.command_log: List[str] = []

        # background tasks
        self.add_background_task(self._worker)
        if incoming is not None:
            self.add_background_task(self._watch_poll)

    @property
    def pipeline(self) -> ReductionPipeline:
        return self._pipeline

    @property
    def pipeline_config(self) -> PipelineConfig:
        """Current settings of the pipeline."""
        return self._pipeline.config

    def set_pipeline_config(self, config: PipelineConfig | Dict[str, Any]) -> None:
        """Set new pipeline settings.

        Args:
            config: New config or dict with changed values.

        Raises:
            ConfigurationError: If a value is invalid.
        """
        if isinstance(config, dict):
            config = PipelineConfig.from_dict({**self._pipeline.config.to_dict(), **config})
        log.info("Setting new pipeline config: %s", config.to_dict())
        self._pipeline.set_config(config)

    def submit(self, name: str, func: Callable[..., Any], *args: Any) -> asyncio.Future[Any]:
        """Put a command into the queue.

        Args:
            name: Name of command for the log.
            func: Function or coroutine function to run.
            *args: Arguments for function.

        Returns:
            Future for the result of the command, which is None if it failed.
        """
        command = Command(name=name, func=func, args=args)
        self._queue.put_nowait(command)
        return command.future

    async def offer_frame(
        self, image_id: ImageID | str, frame: Frame | str, camera: int = 0, **kwargs: Any
    ) -> Optional[str]:
        """Store a new frame and reduce it.

        Args:
            image_id: Kind of frame.
            frame: Frame or name of FITS file.
            camera: Index of camera.

        Returns:
            Name of stored file.
        """
        image_id = parse_enum(ImageID, image_id)
        return await self.submit(
            "offer_frame", partial(self._pipeline.offer_frame, image_id, frame, camera=camera)
        )

    async def reduce(self, image_id: ImageID | str, files: List[str], camera: int = 0, **kwargs: Any) -> List[str]:
        """Run next reduction stage on the given files.

        Args:
            image_id: Kind of the given files.
            files: Files to reduce.
            camera: Index of camera.

        Returns:
            Names of written files.
        """
        image_id = parse_enum(ImageID, image_id)
        result = await self.submit("reduce", partial(self._pipeline.reduce, image_id, files, camera=camera))
        return [] if result is None else result

    async def sync_dome(self, **kwargs: Any) -> DomeSyncState:
        """Wait for the dome to reach the azimuth of the telescope, queued like all other commands."""
        result = await self.submit("sync_dome", self._sync_dome)
        return DomeSyncState.IDLE if result is None else result

    def cancel_dome_sync(self) -> None:
        """Cancel a running dome synchronization."""
        if self._dome_sync is not None:
            self._dome_sync.cancel()

    async def _sync_dome(self) -> DomeSyncState:
        if self._dome is None or self._telescope is None:
            log.warning("No dome or telescope given, cannot synchronize them.")
            return DomeSyncState.IDLE

        self._dome_sync = DomeSync(self._dome_tolerance, timeout=self._dome_timeout, clock=time.monotonic)
        self._dome_sync.start()
        while not self._dome_sync.finished:
            # get positions
            _, dome_az = await self._dome.get_altaz()
            _, telescope_az = await self._telescope.get_altaz()
            moving = await self._dome.get_motion_status() == MotionStatus.SLEWING

            # wait?
            if self._dome_sync.poll(dome_az, telescope_az, moving) == DomeSyncState.WAITING:
                await asyncio.sleep(self._poll_interval)

        # time out?
        state = self._dome_sync.state
        if state == DomeSyncState.TIMED_OUT:
            log.error("Dome did not reach telescope azimuth within %d seconds, continuing.", self._dome_timeout)
        return state

    async def _worker(self) -> None:
        """Worker executing all commands one after the other."""
        loop = asyncio.get_running_loop()

        # run forever
        while True:
            command = await self._queue.get()
            log.info("Executing %s...", command.name)

            try:
                if asyncio.iscoroutinefunction(command.func):
                    result = await command.func(*command.args)
                else:
                    result = await loop.run_in_executor(None, partial(command.func, *command.args))
                self.command_log.append("%s: OK" % command.name)

                # frames that failed within the command
                self.command_log.extend(self._pipeline.errors)
                self._pipeline.errors.clear()
                if not command.future.done():
                    command.future.set_result(result)

            except Exception as e:
                message = e.message if isinstance(e, ObsRedError) and e.message is not None else str(e)
                log.exception("Error in %s: %s", command.name, message)
                self.command_log.append("ERROR! %s" % message)
                if not command.future.done():
                    command.future.set_result(None)

            finally:
                self._queue.task_done()

    async def _watch_poll(self) -> None:
        """Polls the incoming directory for new frames."""
        if self._incoming is None:
            return
        known: set[str] = set()

        # run forever
        while True:
            for filename in sorted(glob.glob(os.path.join(self._incoming, "*"))):
                if filename in known or not fnmatch.fnmatch(os.path.basename(filename), self._pattern):
                    continue
                known.add(filename)
                self.add_file(filename)
            await asyncio.sleep(self._poll_interval)

    def add_file(self, filename: str) -> None:
        """Offer a new file to the pipeline, its kind is taken from its IMGID.

        Args:
            filename: Name of FITS file.
        """
        try:
            image_id = parse_enum(ImageID, str(read_header(filename).get("IMGID", ImageID.ON_SOURCE.value)).strip())
        except (OSError, ObsRedError):
            log.warning("Could not read kind of frame from %s, skipping it.", filename)
            return
        log.info("Adding new %s file %s...", image_id.value.lower(), filename)
        self.submit("offer_frame", partial(self._pipeline.offer_frame, image_id, filename))

    @staticmethod
    def _progress(column: int, columns: int) -> None:
        if column % 100 == 0:
            log.debug("Registered %d of %d columns.", column, columns)


__all__ = ["ObservationManager", "Command"]
