"""
Capture pipeline: microphone blocks and camera snapshots -> transmission.

Audio path (driven by the device block callback, on the event loop):
- Every block updates the loudness meter; flips are reported.
- If the session is ACTIVE and the mic is enabled the block is encoded
  (PCM16 LE, base64) and handed to `transmit`. Otherwise it is discarded.
  There is no buffering; stale audio is worthless.

Video path (driven by the runtime's snapshot timer):
- If the session is ACTIVE and the camera is enabled, grab + encode off the
  event loop and hand the JPEG to `transmit`.
- At most one snapshot is in flight; a tick that finds one is dropped.
- A snapshot finishing after the session left ACTIVE is dropped.

The pipeline never mutates session state. It reads it through `get_state`.
"""

from __future__ import annotations

import asyncio
from typing import Callable

import numpy as np

from audio.level import ActivityMeter
from audio.pcm import bytes_to_text, float_to_pcm16, pcm16_to_bytes
from capture.snapshot import encode_snapshot
from constants import AUDIO_INPUT_MIME, LISTENING_RMS_THRESHOLD, SNAPSHOT_MIME
from devices.base import MediaStream
from observability.logger import log_event, now_ms
from observability.metrics import timed
from orchestrator.enums.phase import Phase
from orchestrator.state_dataclass import SessionState


# (base64 payload, mime type)
Transmit = Callable[[str, str], None]
OnListening = Callable[[bool], None]


class CapturePipeline:
    def __init__(
        self,
        *,
        stream: MediaStream,
        get_state: Callable[[], SessionState],
        transmit: Transmit,
        on_listening: OnListening,
        threshold: float = LISTENING_RMS_THRESHOLD,
    ) -> None:
        self._stream = stream
        self._get_state = get_state
        self._transmit = transmit
        self._on_listening = on_listening
        self._meter = ActivityMeter(threshold)

        self._snapshot_in_flight = False

        # Counters for logging / tests
        self.blocks_sent = 0
        self.blocks_discarded = 0
        self.snapshots_sent = 0
        self.snapshots_dropped = 0

    @property
    def snapshot_in_flight(self) -> bool:
        return self._snapshot_in_flight

    # -------------------------
    # Audio path
    # -------------------------

    def on_audio_block(self, block: np.ndarray) -> None:
        state = self._get_state()
        if state.phase is not Phase.ACTIVE:
            self.blocks_discarded += 1
            return

        if self._meter.observe(block):
            self._on_listening(self._meter.listening)

        if not state.mic_enabled:
            self.blocks_discarded += 1
            return

        payload = bytes_to_text(pcm16_to_bytes(float_to_pcm16(block)))
        self._transmit(payload, AUDIO_INPUT_MIME)
        self.blocks_sent += 1

    # -------------------------
    # Video path
    # -------------------------

    async def capture_snapshot(self) -> bool:
        """
        Grab, encode and transmit one camera frame.

        Returns True if a snapshot was transmitted.
        """
        if self._snapshot_in_flight:
            self.snapshots_dropped += 1
            return False

        state = self._get_state()
        if state.phase is not Phase.ACTIVE or not state.camera_enabled:
            return False

        self._snapshot_in_flight = True
        try:
            with timed("snapshot_encode", session_id=state.session_id):
                jpeg = await asyncio.to_thread(self._grab_and_encode)
        finally:
            self._snapshot_in_flight = False

        if jpeg is None:
            return False

        state = self._get_state()
        if state.phase is not Phase.ACTIVE or not state.camera_enabled:
            self.snapshots_dropped += 1
            return False

        self._transmit(bytes_to_text(jpeg), SNAPSHOT_MIME)
        self.snapshots_sent += 1
        return True

    def _grab_and_encode(self) -> bytes | None:
        frame = self._stream.grab_frame()
        if frame is None:
            log_event({
                "ts_ms": now_ms(),
                "event_type": "SNAPSHOT_NO_FRAME",
                "level": "debug",
            })
            return None
        return encode_snapshot(frame)

    def reset(self) -> None:
        self._meter.reset()
