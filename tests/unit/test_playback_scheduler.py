# pylint: disable=missing-module-docstring,missing-function-docstring
import numpy as np
import pytest

from audio.pcm import MalformedPayloadError
from audio.playback import PlaybackScheduler

from fakes import FakePlaybackDevice


def pcm(samples: int) -> bytes:
    return np.zeros(samples, dtype="<i2").tobytes()


def make(now: float = 0.0):
    device = FakePlaybackDevice(now=now)
    drains: list[int] = []
    scheduler = PlaybackScheduler(device=device, on_drained=drains.append)
    return scheduler, device, drains


def test_buffers_play_back_to_back():
    scheduler, device, _ = make()

    first = scheduler.schedule(scheduler.decode(pcm(2400)))
    second = scheduler.schedule(scheduler.decode(pcm(4800)))

    assert first.start_s == 0.0
    assert second.start_s == pytest.approx(first.end_s)
    assert scheduler.cursor_s == pytest.approx(0.3)
    assert [at for _, at in device.started] == pytest.approx([0.0, 0.1])


def test_start_never_before_device_clock():
    scheduler, device, _ = make(now=5.0)

    scheduled = scheduler.schedule(scheduler.decode(pcm(240)))

    assert scheduled.start_s == 5.0
    device.now = 10.0
    late = scheduler.schedule(scheduler.decode(pcm(240)))
    assert late.start_s == 10.0


def test_drain_reported_once_when_active_set_empties():
    scheduler, device, drains = make()
    scheduler.schedule(scheduler.decode(pcm(240)))
    scheduler.schedule(scheduler.decode(pcm(240)))

    device.handles[0].finish()
    assert drains == []
    assert scheduler.is_playing()

    device.handles[1].finish()
    assert drains == [2]
    assert len(scheduler) == 0


def test_clear_stops_everything_without_drain():
    scheduler, device, drains = make()
    scheduler.schedule(scheduler.decode(pcm(240)))
    scheduler.schedule(scheduler.decode(pcm(240)))

    scheduler.clear()
    scheduler.clear()

    assert all(h.stopped for h in device.handles)
    assert drains == []
    assert not scheduler.is_playing()


def test_late_end_after_clear_is_ignored():
    scheduler, device, drains = make()
    scheduler.schedule(scheduler.decode(pcm(240)))
    handle = device.handles[0]

    scheduler.clear()
    handle.on_ended()

    assert drains == []


def test_decode_rejects_odd_payload():
    with pytest.raises(MalformedPayloadError):
        PlaybackScheduler.decode(b"\x00\x00\x00")


def test_snapshot_for_logging():
    scheduler, _, _ = make()
    scheduler.schedule(scheduler.decode(pcm(240)))

    assert scheduler.snapshot() == {
        "active": 1,
        "cursor_s": pytest.approx(0.01),
        "scheduled_total": 1,
    }
