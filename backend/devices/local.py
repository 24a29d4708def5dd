"""
Local device surface: this machine's microphone, speaker and camera.

- Microphone: sounddevice InputStream, float32 mono @ 16 kHz, fixed blocks.
- Speaker: sounddevice OutputStream whose callback mixes scheduled buffers
  onto the PortAudio stream clock.
- Camera: OpenCV VideoCapture; frames are read on demand (off the loop).

PortAudio callbacks run on a driver thread. Everything handed to the
session is hopped back onto the event loop with call_soon_threadsafe().
"""

from __future__ import annotations

import asyncio
import threading
from dataclasses import dataclass
from typing import Any

import cv2
import numpy as np
from PIL import Image

from audio.frames import AudioFrame
from constants import AUDIO_CHANNELS, CAPTURE_BLOCK_SIZE, INPUT_SAMPLE_RATE_HZ
from devices.base import (
    DeviceError,
    DevicePermissionError,
    OnAudioBlock,
    OnCaptureError,
    OnEnded,
)
from observability.logger import log_event, now_ms


def _require_sounddevice() -> Any:
    try:
        import sounddevice as sd  # pylint: disable=import-outside-toplevel

        return sd
    except OSError as e:  # pragma: no cover
        raise DeviceError(
            "PortAudio library not found. "
            "Debian/Ubuntu: sudo apt-get install libportaudio2"
        ) from e


# ---------------------------------------------------------------------
# Capture
# ---------------------------------------------------------------------

class LocalMediaStream:
    """Microphone + camera of this machine."""

    def __init__(
        self,
        *,
        loop: asyncio.AbstractEventLoop,
        capture: Any,
        block_size: int = CAPTURE_BLOCK_SIZE,
    ) -> None:
        self._loop = loop
        self._capture = capture
        self._block_size = block_size
        self._input: Any = None
        self._capture_lock = threading.Lock()
        self._on_block: OnAudioBlock | None = None
        self._on_error: OnCaptureError | None = None

    def start_audio(self, on_block: OnAudioBlock, on_error: OnCaptureError) -> None:
        if self._input is not None:
            return
        sd = _require_sounddevice()
        self._on_block = on_block
        self._on_error = on_error

        try:
            stream = sd.InputStream(
                samplerate=INPUT_SAMPLE_RATE_HZ,
                channels=AUDIO_CHANNELS,
                dtype="float32",
                blocksize=self._block_size,
                callback=self._audio_callback,
            )
            stream.start()
        except sd.PortAudioError as e:
            on_error(f"microphone_start_failed: {e}")
            return
        self._input = stream

    def _audio_callback(self, indata: np.ndarray, _frames: int, _time_info: Any, status: Any) -> None:
        block = indata[:, 0].copy()
        if status:
            self._loop.call_soon_threadsafe(_log_status, "input", str(status))
        self._loop.call_soon_threadsafe(self._deliver, block)

    def _deliver(self, block: np.ndarray) -> None:
        on_block = self._on_block
        if on_block is not None:
            on_block(block)

    def grab_frame(self) -> Image.Image | None:
        with self._capture_lock:
            if self._capture is None:
                return None
            ok, frame = self._capture.read()
        if not ok or frame is None:
            return None
        return Image.fromarray(cv2.cvtColor(frame, cv2.COLOR_BGR2RGB))

    def stop_audio(self) -> None:
        self._on_block = None
        stream, self._input = self._input, None
        if stream is not None:
            stream.stop()
            stream.close()

    def stop(self) -> None:
        self.stop_audio()
        self._on_error = None
        with self._capture_lock:
            capture, self._capture = self._capture, None
        if capture is not None:
            capture.release()


# ---------------------------------------------------------------------
# Playback
# ---------------------------------------------------------------------

@dataclass
class _Voice:
    start_s: float
    samples: np.ndarray
    on_ended: OnEnded
    played: int = 0
    stopped: bool = False

    @property
    def done(self) -> bool:
        return self.played >= len(self.samples)


class _VoiceHandle:
    def __init__(self, voice: _Voice, lock: threading.Lock) -> None:
        self._voice = voice
        self._lock = lock

    def stop(self) -> None:
        with self._lock:
            self._voice.stopped = True


class LocalPlaybackDevice:
    """
    Speaker output with sample-accurate scheduling on the stream clock.

    Each scheduled buffer becomes a voice; the output callback writes the
    part of every voice that falls inside the current hardware buffer.
    """

    def __init__(self, *, loop: asyncio.AbstractEventLoop, sample_rate_hz: int) -> None:
        sd = _require_sounddevice()
        self._loop = loop
        self._rate = sample_rate_hz
        self._lock = threading.Lock()
        self._voices: list[_Voice] = []
        try:
            self._stream = sd.OutputStream(
                samplerate=sample_rate_hz,
                channels=AUDIO_CHANNELS,
                dtype="float32",
                callback=self._output_callback,
            )
            self._stream.start()
        except sd.PortAudioError as e:
            raise DeviceError(f"speaker_unavailable: {e}") from e
        self._closed = False

    def current_time(self) -> float:
        return float(self._stream.time)

    def start(self, frame: AudioFrame, at: float, on_ended: OnEnded) -> _VoiceHandle:
        voice = _Voice(start_s=at, samples=frame.samples.astype(np.float32), on_ended=on_ended)
        with self._lock:
            self._voices.append(voice)
        return _VoiceHandle(voice, self._lock)

    def _output_callback(self, outdata: np.ndarray, frames: int, time_info: Any, status: Any) -> None:
        if status:
            self._loop.call_soon_threadsafe(_log_status, "output", str(status))

        out = outdata[:, 0]
        out.fill(0.0)
        t0 = float(time_info.outputBufferDacTime)

        finished: list[_Voice] = []
        with self._lock:
            for voice in self._voices:
                if voice.stopped:
                    continue
                offset = 0
                if voice.played == 0:
                    # Not started yet: place the first sample on the timeline.
                    offset = int(round((voice.start_s - t0) * self._rate))
                    if offset >= frames:
                        continue
                    offset = max(offset, 0)
                count = min(frames - offset, len(voice.samples) - voice.played)
                out[offset:offset + count] += voice.samples[voice.played:voice.played + count]
                voice.played += count
                if voice.done:
                    finished.append(voice)
            self._voices = [v for v in self._voices if not v.done and not v.stopped]

        for voice in finished:
            self._loop.call_soon_threadsafe(voice.on_ended)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        with self._lock:
            self._voices.clear()
        self._stream.stop()
        self._stream.close()


def _log_status(direction: str, status: str) -> None:
    log_event({
        "ts_ms": now_ms(),
        "event_type": "AUDIO_DEVICE_STATUS",
        "level": "warning",
        "direction": direction,
        "status": status,
    })


# ---------------------------------------------------------------------
# Surface
# ---------------------------------------------------------------------

class LocalDeviceSurface:
    def __init__(self, *, camera_index: int = 0) -> None:
        self._camera_index = camera_index

    async def open_media(self) -> LocalMediaStream:
        sd = _require_sounddevice()
        try:
            sd.query_devices(kind="input")
        except (sd.PortAudioError, ValueError) as e:
            raise DevicePermissionError(f"microphone_unavailable: {e}") from e

        capture = await asyncio.to_thread(cv2.VideoCapture, self._camera_index)
        if not capture.isOpened():
            capture.release()
            raise DevicePermissionError(f"camera_unavailable: index {self._camera_index}")

        return LocalMediaStream(loop=asyncio.get_running_loop(), capture=capture)

    def open_playback(self, sample_rate_hz: int) -> LocalPlaybackDevice:
        return LocalPlaybackDevice(loop=asyncio.get_running_loop(), sample_rate_hz=sample_rate_hz)
