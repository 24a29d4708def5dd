"""
Browser device surface: the candidate's browser is the camera, microphone
and speaker, bridged over the interview WebSocket.

Capture:
- open_media() sends DEVICE_REQUEST and waits for DEVICE_GRANTED or
  DEVICE_DENIED (or times out -> DevicePermissionError).
- Mic blocks (0x01 frames, PCM16 @ 16 kHz) are converted to float and handed
  to the audio callback as they arrive.
- Camera frames (0x02 frames) only replace the latest still; grab_frame()
  decodes whatever is newest.

Playback:
- The server owns the playback clock (seconds since the device opened).
  Each buffer is sent as a 0x11 frame carrying its start time on that
  clock; the browser anchors the clock to its own audio context on the
  first frame.
- Natural end of a buffer is signalled by a loop timer at start + duration.

All methods run on the event loop; the WebSocket writer is a non-blocking
callback provided by the gateway.
"""

from __future__ import annotations

import asyncio
import io
from typing import Any, Callable

from PIL import Image, UnidentifiedImageError

from audio.frames import AudioFrame
from audio.pcm import MalformedPayloadError, float_to_pcm16, pcm16_to_bytes, pcm16le_to_float32
from constants import (
    CAPTURE_BLOCK_SIZE,
    DEVICE_PERMISSION_TIMEOUT_S,
    INPUT_SAMPLE_RATE_HZ,
    SNAPSHOT_HEIGHT,
    SNAPSHOT_WIDTH,
)
from devices.base import (
    DevicePermissionError,
    OnAudioBlock,
    OnCaptureError,
    OnEnded,
)
from observability.logger import log_event, now_ms
from protocol.binary import encode_playback_frame


SendJson = Callable[[dict[str, Any]], None]
SendBytes = Callable[[bytes], None]


# ---------------------------------------------------------------------
# Capture
# ---------------------------------------------------------------------

class BrowserMediaStream:
    """Media stream fed by frames the browser pushes over the socket."""

    def __init__(self, *, send_json: SendJson) -> None:
        self._send_json = send_json
        self._on_block: OnAudioBlock | None = None
        self._on_error: OnCaptureError | None = None
        self._latest_image: bytes | None = None
        self._audio_stopped = False
        self._stopped = False

        self.blocks_delivered = 0
        self.blocks_rejected = 0

    @property
    def stopped(self) -> bool:
        return self._stopped

    def start_audio(self, on_block: OnAudioBlock, on_error: OnCaptureError) -> None:
        if self._stopped:
            return
        self._on_block = on_block
        self._on_error = on_error

    def deliver_audio(self, pcm_bytes: bytes) -> None:
        on_block = self._on_block
        if on_block is None or self._audio_stopped or self._stopped:
            return
        try:
            block = pcm16le_to_float32(pcm_bytes)
        except MalformedPayloadError:
            self.blocks_rejected += 1
            return
        self.blocks_delivered += 1
        on_block(block)

    def deliver_frame(self, image_bytes: bytes) -> None:
        if not self._stopped:
            self._latest_image = image_bytes

    def fail(self, reason: str) -> None:
        """Browser reported a capture failure (track ended, device unplugged)."""
        on_error = self._on_error
        if on_error is not None and not self._stopped:
            on_error(reason)

    def grab_frame(self) -> Image.Image | None:
        data = self._latest_image
        if data is None:
            return None
        try:
            image = Image.open(io.BytesIO(data))
            image.load()
        except (UnidentifiedImageError, OSError) as e:
            log_event({
                "ts_ms": now_ms(),
                "event_type": "BROWSER_FRAME_UNREADABLE",
                "level": "warning",
                "error": str(e),
            })
            return None
        return image

    def stop_audio(self) -> None:
        self._audio_stopped = True
        self._on_block = None

    def stop(self) -> None:
        if self._stopped:
            return
        self._stopped = True
        self._on_error = None
        self._latest_image = None
        self._send_json({"type": "DEVICE_RELEASE"})


# ---------------------------------------------------------------------
# Playback
# ---------------------------------------------------------------------

class _TimerHandle:
    def __init__(self, handle: asyncio.TimerHandle) -> None:
        self._handle = handle

    def stop(self) -> None:
        self._handle.cancel()


class BrowserPlaybackDevice:
    """Playback device whose output is the browser's audio context."""

    def __init__(self, *, send_bytes: SendBytes, send_json: SendJson, sample_rate_hz: int) -> None:
        self._send_bytes = send_bytes
        self._send_json = send_json
        self._sample_rate_hz = sample_rate_hz
        self._loop = asyncio.get_running_loop()
        self._origin = self._loop.time()
        self._closed = False

    def current_time(self) -> float:
        return self._loop.time() - self._origin

    def start(self, frame: AudioFrame, at: float, on_ended: OnEnded) -> _TimerHandle:
        if frame.sample_rate_hz != self._sample_rate_hz:
            raise ValueError(
                f"frame rate {frame.sample_rate_hz} != device rate {self._sample_rate_hz}"
            )
        if not self._closed:
            pcm = pcm16_to_bytes(float_to_pcm16(frame.samples))
            self._send_bytes(encode_playback_frame(start_s=at, pcm_bytes=pcm))
        handle = self._loop.call_at(self._origin + at + frame.duration_s, on_ended)
        return _TimerHandle(handle)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        # Browser drops anything still scheduled.
        self._send_json({"type": "PLAYBACK_STOP"})


# ---------------------------------------------------------------------
# Surface
# ---------------------------------------------------------------------

class BrowserDeviceSurface:
    """
    Device surface for one browser connection.

    The gateway feeds inbound control messages and frames into
    on_device_granted / on_device_denied / deliver_audio / deliver_frame.
    """

    def __init__(
        self,
        *,
        send_json: SendJson,
        send_bytes: SendBytes,
        permission_timeout_s: float = DEVICE_PERMISSION_TIMEOUT_S,
    ) -> None:
        self._send_json = send_json
        self._send_bytes = send_bytes
        self._permission_timeout_s = permission_timeout_s

        self._pending: asyncio.Future[str | None] | None = None
        self._stream: BrowserMediaStream | None = None

    @property
    def stream(self) -> BrowserMediaStream | None:
        return self._stream

    async def open_media(self) -> BrowserMediaStream:
        loop = asyncio.get_running_loop()
        pending: asyncio.Future[str | None] = loop.create_future()
        self._pending = pending

        self._send_json({
            "type": "DEVICE_REQUEST",
            "audio": {
                "sample_rate": INPUT_SAMPLE_RATE_HZ,
                "block_size": CAPTURE_BLOCK_SIZE,
            },
            "video": {"width": SNAPSHOT_WIDTH, "height": SNAPSHOT_HEIGHT},
        })

        try:
            denied_reason = await asyncio.wait_for(pending, timeout=self._permission_timeout_s)
        except asyncio.TimeoutError as e:
            raise DevicePermissionError("device_request_timeout") from e
        finally:
            if self._pending is pending:
                self._pending = None

        if denied_reason is not None:
            raise DevicePermissionError(denied_reason)

        stream = BrowserMediaStream(send_json=self._send_json)
        self._stream = stream
        return stream

    def open_playback(self, sample_rate_hz: int) -> BrowserPlaybackDevice:
        return BrowserPlaybackDevice(
            send_bytes=self._send_bytes,
            send_json=self._send_json,
            sample_rate_hz=sample_rate_hz,
        )

    # -------------------------
    # Inbound from the browser
    # -------------------------

    def on_device_granted(self) -> None:
        pending = self._pending
        if pending is not None and not pending.done():
            pending.set_result(None)

    def on_device_denied(self, reason: str | None) -> None:
        pending = self._pending
        if pending is not None and not pending.done():
            pending.set_result(reason or "permission_denied")

    def on_capture_failed(self, reason: str) -> None:
        if self._stream is not None:
            self._stream.fail(reason)

    def deliver_audio(self, pcm_bytes: bytes) -> None:
        if self._stream is not None:
            self._stream.deliver_audio(pcm_bytes)

    def deliver_frame(self, image_bytes: bytes) -> None:
        if self._stream is not None:
            self._stream.deliver_frame(image_bytes)

    def cancel_request(self, reason: str) -> None:
        """Withdraw a pending permission request; open_media() fails with reason."""
        pending = self._pending
        self._pending = None
        if pending is not None and not pending.done():
            pending.set_result(reason)

    def close(self) -> None:
        """Connection gone: fail any pending permission request."""
        self.cancel_request("connection_closed")
