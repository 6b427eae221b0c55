import asyncio
import os
from typing import Any, Optional, Tuple

import numpy as np
import pytest
import pytest_asyncio
from astropy.io import fits

from obsred.images import Frame
from obsred.interfaces import IDome, IPointingAltAz
from obsred.modules import ObservationManager
from obsred.utils.enums import DomeSyncState, ImageID, MotionStatus, CombinationMethod


class Telescope(IPointingAltAz):
    async def get_altaz(self, **kwargs: Any) -> Tuple[float, float]:
        return 45.0, 100.0


class Dome(IDome):
    def __init__(self, az: float):
        self.az = az

    async def get_altaz(self, **kwargs: Any) -> Tuple[float, float]:
        return 0.0, self.az

    async def get_motion_status(self, device: Optional[str] = None, **kwargs: Any) -> MotionStatus:
        return MotionStatus.POSITIONED


def _dark() -> Frame:
    return Frame.from_physical(np.full((4, 4), 100), fits.Header({"ISO": 800, "TIME": 30.0, "RAW": True}))


@pytest_asyncio.fixture()
async def manager(tmp_path):
    manager = ObservationManager(
        working_dir=str(tmp_path), observation="obs", pipeline={"combine_method": "median"}, poll_interval=0.01
    )
    await manager.open()
    yield manager
    await manager.close()


async def test_offer_frame(manager):
    filename = await manager.offer_frame("Dark", _dark())
    assert os.path.exists(filename)
    assert manager.command_log == ["offer_frame: OK"]
    assert manager.pipeline.directory().find_master(ImageID.DARK, "ISO800_TIME30.0_RAWtrue") is not None


async def test_error(tmp_path):
    manager = ObservationManager(working_dir=str(tmp_path), observation="obs")
    await manager.open()
    try:
        result = await manager.offer_frame(ImageID.DARK, _dark())
        assert result is None
        assert manager.command_log[-1].startswith("ERROR!")
        assert "No combination method" in manager.command_log[-1]

        # worker still running
        assert await manager.reduce(ImageID.ON_SOURCE, []) == []
        assert manager.command_log[-1] == "reduce: OK"
    finally:
        await manager.close()


async def test_add_file(manager, tmp_path):
    filename = str(tmp_path / "new.fits")
    frame = _dark()
    frame.header["IMGID"] = "Dark"
    frame.writeto(filename)

    manager.add_file(filename)
    await manager._queue.join()
    assert len(manager.pipeline.directory().list(ImageID.DARK)) == 1


async def test_set_pipeline_config(manager):
    manager.set_pipeline_config({"combine_method": "maximum"})
    assert manager.pipeline_config.combine_method == CombinationMethod.MAXIMUM
    assert manager.pipeline_config.kappa == 3.0

    manager.set_pipeline_config(manager.pipeline_config.replace(kappa=2.0))
    assert manager.pipeline.config.kappa == 2.0


async def test_sync_dome_without_devices(manager):
    assert await manager.sync_dome() == DomeSyncState.IDLE


async def test_sync_dome(tmp_path):
    manager = ObservationManager(
        working_dir=str(tmp_path), observation="obs", dome=Dome(102.0), telescope=Telescope(), dome_tolerance=5.0
    )
    await manager.open()
    try:
        assert await manager.sync_dome() == DomeSyncState.SYNCED
    finally:
        await manager.close()


async def test_sync_dome_timeout(tmp_path, caplog):
    manager = ObservationManager(
        working_dir=str(tmp_path),
        observation="obs",
        dome=Dome(0.0),
        telescope=Telescope(),
        poll_interval=0.01,
        dome_timeout=0.05,
    )
    await manager.open()
    try:
        assert await manager.sync_dome() == DomeSyncState.TIMED_OUT
        assert "Dome did not reach telescope azimuth" in caplog.text
    finally:
        await manager.close()


async def test_cancel_dome_sync(tmp_path):
    manager = ObservationManager(
        working_dir=str(tmp_path), observation="obs", dome=Dome(0.0), telescope=Telescope(), poll_interval=0.01
    )
    await manager.open()
    try:
        task = asyncio.create_task(manager.sync_dome())
        await asyncio.sleep(0.1)
        manager.cancel_dome_sync()
        assert await task == DomeSyncState.CANCELLED
    finally:
        await manager.close()


async def test_broken_frame_logged(manager, tmp_path):
    broken = tmp_path / "broken.fits"
    broken.write_text("not a FITS file")

    assert await manager.reduce(ImageID.ON_SOURCE, [str(broken)]) == []
    assert manager.command_log[0] == "reduce: OK"
    assert manager.command_log[1].startswith("ERROR! broken.fits")
    assert manager.pipeline.errors == []
