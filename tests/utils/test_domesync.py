from obsred.utils.domesync import DomeSync, azimuth_difference
from obsred.utils.enums import DomeSyncState


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


def test_azimuth_difference():
    assert azimuth_difference(10.0, 350.0) == 20.0
    assert azimuth_difference(350.0, 10.0) == -20.0
    assert azimuth_difference(90.0, 90.0) == 0.0


def test_idle_until_started():
    sync = DomeSync(5.0)
    assert sync.state == DomeSyncState.IDLE
    assert sync.poll(0.0, 0.0) == DomeSyncState.IDLE


def test_synced():
    clock = FakeClock()
    sync = DomeSync(5.0, timeout=600, clock=clock)
    sync.start()
    assert sync.poll(100.0, 180.0) == DomeSyncState.WAITING

    # still moving
    clock.now = 30.0
    assert sync.poll(178.0, 180.0, moving=True) == DomeSyncState.WAITING

    # wrapped around north
    assert sync.poll(358.0, 2.0) == DomeSyncState.SYNCED
    assert sync.finished is True


def test_timeout():
    clock = FakeClock()
    sync = DomeSync(5.0, timeout=600, clock=clock)
    sync.start()

    clock.now = 599.0
    assert sync.poll(0.0, 180.0) == DomeSyncState.WAITING
    clock.now = 601.0
    assert sync.poll(0.0, 180.0) == DomeSyncState.TIMED_OUT

    # terminal
    assert sync.poll(180.0, 180.0) == DomeSyncState.TIMED_OUT


def test_cancel():
    sync = DomeSync(5.0, clock=FakeClock())
    sync.start()
    sync.cancel()
    assert sync.state == DomeSyncState.CANCELLED
    assert sync.poll(180.0, 180.0) == DomeSyncState.CANCELLED
