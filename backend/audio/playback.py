"""
Gapless playback scheduling for remote audio.

Requirements:
- Buffers play in arrival order, back to back, with no gap and no overlap
- Start time = max(playback cursor, device clock now)
- Cursor only ever moves forward
- Active set tracks buffers that are scheduled or playing
- Emptying the active set is reported once per drain
- Deterministic, synchronous behavior (all calls on the event loop)
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable

from audio.frames import AudioFrame
from audio.pcm import bytes_to_pcm16, pcm16_to_float
from constants import AUDIO_CHANNELS, OUTPUT_SAMPLE_RATE_HZ
from devices.base import PlaybackDevice, PlaybackHandle


# Receives the total number of buffers scheduled so far.
OnDrained = Callable[[int], None]


@dataclass(frozen=True)
class ScheduledBuffer:
    """
    Placement of one buffer on the device timeline.
    """
    index: int
    start_s: float
    duration_s: float

    @property
    def end_s(self) -> float:
        return self.start_s + self.duration_s


class PlaybackScheduler:
    """
    Cursor-based scheduler over a PlaybackDevice.

    Ordering relies on arrival order matching generation order, which the
    single-producer remote channel guarantees; no sequence numbers needed.
    """

    def __init__(
        self,
        *,
        device: PlaybackDevice,
        on_drained: OnDrained,
    ) -> None:
        self._device = device
        self._on_drained = on_drained

        self._cursor_s: float = 0.0
        self._active: dict[int, PlaybackHandle] = {}
        self._scheduled_total: int = 0

    # -------------------------
    # Core operations
    # -------------------------

    @staticmethod
    def decode(pcm_bytes: bytes) -> AudioFrame:
        """
        Decode raw remote audio (PCM16 LE, mono, 24 kHz) into a playable buffer.

        Raises:
            MalformedPayloadError on malformed input.
        """
        return pcm16_to_float(
            bytes_to_pcm16(pcm_bytes),
            sample_rate_hz=OUTPUT_SAMPLE_RATE_HZ,
            channel_count=AUDIO_CHANNELS,
        )

    def schedule(self, frame: AudioFrame) -> ScheduledBuffer:
        """
        Enqueue a buffer right after everything already scheduled.
        """
        start_s = max(self._cursor_s, self._device.current_time())
        index = self._scheduled_total
        self._scheduled_total += 1

        handle = self._device.start(
            frame,
            start_s,
            lambda: self._handle_ended(index),
        )
        self._active[index] = handle
        self._cursor_s = start_s + frame.duration_s

        return ScheduledBuffer(
            index=index,
            start_s=start_s,
            duration_s=frame.duration_s,
        )

    def clear(self) -> None:
        """
        Stop every active buffer and forget it.

        Used during teardown. Does not report a drain. Idempotent.
        """
        handles = list(self._active.values())
        self._active.clear()
        for handle in handles:
            handle.stop()

    # -------------------------
    # Introspection helpers
    # -------------------------

    @property
    def cursor_s(self) -> float:
        """End of already-scheduled audio on the device clock."""
        return self._cursor_s

    @property
    def scheduled_total(self) -> int:
        return self._scheduled_total

    def is_playing(self) -> bool:
        return bool(self._active)

    def __len__(self) -> int:
        return len(self._active)

    def snapshot(self) -> dict[str, float | int]:
        """
        Lightweight snapshot for logging.
        """
        return {
            "active": len(self._active),
            "cursor_s": self._cursor_s,
            "scheduled_total": self._scheduled_total,
        }

    # -------------------------
    # Internal
    # -------------------------

    def _handle_ended(self, index: int) -> None:
        if self._active.pop(index, None) is None:
            return
        if not self._active:
            self._on_drained(self._scheduled_total)
