"""
Device capture / playback surface contract.

This module defines the *interface only*. Concrete surfaces live in
devices/local.py (sounddevice + OpenCV) and devices/browser.py
(WebSocket-bridged browser devices).

Key invariants:
- All callbacks handed to a surface are invoked on the asyncio event loop
  thread. Surfaces that capture on a driver thread must hop back with
  loop.call_soon_threadsafe().
- The media stream is owned exclusively by the interview runtime for the
  duration of one session; nothing else stops or reads it.
- stop()/stop_audio()/close() are idempotent.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Callable, Protocol, runtime_checkable

import numpy as np

if TYPE_CHECKING:
    from PIL import Image

    from audio.frames import AudioFrame


OnAudioBlock = Callable[[np.ndarray], None]
OnCaptureError = Callable[[str], None]
OnEnded = Callable[[], None]


# ---------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------

class DeviceError(Exception):
    """Base class for capture / playback device failures."""


class DevicePermissionError(DeviceError):
    """
    Raised when camera or microphone access is denied or unavailable.

    Fatal to session start; never retried.
    """


# ---------------------------------------------------------------------
# Capture
# ---------------------------------------------------------------------

@runtime_checkable
class MediaStream(Protocol):
    """Live combined microphone + camera capture."""

    def start_audio(self, on_block: OnAudioBlock, on_error: OnCaptureError) -> None:
        """
        Begin delivering float32 mono blocks at the input sample rate.
        """

    def stop_audio(self) -> None:
        """Release audio processing resources (no more on_block calls)."""

    def grab_frame(self) -> Image.Image | None:
        """
        Return the current camera frame, or None if no frame is available.

        May block briefly; callers run it off the event loop.
        """

    def stop(self) -> None:
        """Stop every media track of the stream."""


# ---------------------------------------------------------------------
# Playback
# ---------------------------------------------------------------------

class PlaybackHandle(Protocol):
    def stop(self) -> None: ...


@runtime_checkable
class PlaybackDevice(Protocol):
    """
    Output device with its own monotonic clock (seconds).

    start() must honour `at` on the device clock and call on_ended exactly
    once when the buffer finishes naturally. A handle stopped through
    stop() does not call on_ended.
    """

    def current_time(self) -> float: ...

    def start(self, frame: AudioFrame, at: float, on_ended: OnEnded) -> PlaybackHandle: ...

    def close(self) -> None: ...


# ---------------------------------------------------------------------
# Surface
# ---------------------------------------------------------------------

@runtime_checkable
class DeviceSurface(Protocol):
    """Factory for the capture stream and the playback device."""

    async def open_media(self) -> MediaStream:
        """
        Request combined audio + video capture.

        Raises:
            DevicePermissionError if access is denied or unavailable.
        """
        ...

    def open_playback(self, sample_rate_hz: int) -> PlaybackDevice: ...
