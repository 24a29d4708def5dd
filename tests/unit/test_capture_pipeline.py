# pylint: disable=missing-module-docstring,missing-function-docstring
import asyncio
import base64
import io
from dataclasses import replace

import numpy as np
from PIL import Image

from capture.pipeline import CapturePipeline
from capture.snapshot import encode_snapshot
from constants import AUDIO_INPUT_MIME, SNAPSHOT_HEIGHT, SNAPSHOT_MIME, SNAPSHOT_WIDTH
from orchestrator.enums.phase import Phase
from orchestrator.state_dataclass import SessionState

from fakes import FakeStream


class Harness:
    def __init__(self, state: SessionState, stream: FakeStream | None = None) -> None:
        self.state = state
        self.sent: list[tuple[str, str]] = []
        self.flips: list[bool] = []
        self.stream = stream or FakeStream()
        self.pipeline = CapturePipeline(
            stream=self.stream,
            get_state=lambda: self.state,
            transmit=lambda data, mime: self.sent.append((data, mime)),
            on_listening=self.flips.append,
        )


def active(**fields) -> SessionState:
    return replace(SessionState(session_id="sess_cap"), phase=Phase.ACTIVE, **fields)


# ---------------------------------------------------------------------
# Audio path
# ---------------------------------------------------------------------

def test_active_block_is_encoded_and_sent():
    h = Harness(active())

    h.pipeline.on_audio_block(np.array([0.5, -0.5], dtype=np.float32))

    data, mime = h.sent[0]
    assert mime == AUDIO_INPUT_MIME
    assert base64.b64decode(data) == b"\x00\x40\x00\xc0"
    assert h.pipeline.blocks_sent == 1


def test_blocks_outside_active_are_discarded():
    h = Harness(SessionState(session_id="sess_cap", phase=Phase.CONNECTING))

    h.pipeline.on_audio_block(np.full(64, 0.3, dtype=np.float32))

    assert h.sent == []
    assert h.flips == []
    assert h.pipeline.blocks_discarded == 1


def test_muted_block_still_drives_listening():
    h = Harness(active(mic_enabled=False))

    h.pipeline.on_audio_block(np.full(64, 0.3, dtype=np.float32))
    h.pipeline.on_audio_block(np.zeros(64, dtype=np.float32))

    assert h.sent == []
    assert h.flips == [True, False]


# ---------------------------------------------------------------------
# Video path
# ---------------------------------------------------------------------

def test_snapshot_sent_as_small_jpeg():
    h = Harness(active())

    sent = asyncio.run(h.pipeline.capture_snapshot())

    assert sent is True
    data, mime = h.sent[0]
    assert mime == SNAPSHOT_MIME
    image = Image.open(io.BytesIO(base64.b64decode(data)))
    assert image.format == "JPEG"
    assert image.size == (SNAPSHOT_WIDTH, SNAPSHOT_HEIGHT)


def test_snapshot_skipped_with_camera_off():
    h = Harness(active(camera_enabled=False))

    assert asyncio.run(h.pipeline.capture_snapshot()) is False
    assert h.stream.grabs == 0


def test_snapshot_without_frame_sends_nothing():
    stream = FakeStream()
    stream.image = None
    h = Harness(active(), stream)

    assert asyncio.run(h.pipeline.capture_snapshot()) is False
    assert h.sent == []


def test_overlapping_snapshot_tick_is_dropped():
    h = Harness(active())

    async def scenario():
        return await asyncio.gather(
            h.pipeline.capture_snapshot(),
            h.pipeline.capture_snapshot(),
        )

    results = asyncio.run(scenario())

    assert sorted(results) == [False, True]
    assert h.pipeline.snapshots_dropped == 1
    assert len(h.sent) == 1


def test_snapshot_finishing_after_close_is_dropped():
    h = Harness(active())

    async def scenario():
        task = asyncio.create_task(h.pipeline.capture_snapshot())
        await asyncio.sleep(0)
        h.state = replace(h.state, phase=Phase.CLOSED)
        return await task

    assert asyncio.run(scenario()) is False
    assert h.sent == []


def test_encode_snapshot_converts_mode_and_resizes():
    rgba = Image.new("RGBA", (1280, 720), (255, 0, 0, 128))

    jpeg = encode_snapshot(rgba, width=160, height=120, quality=40)

    decoded = Image.open(io.BytesIO(jpeg))
    assert decoded.size == (160, 120)
    assert decoded.mode == "RGB"
