"""
Audio frame primitives.

Pure data containers only.
No behavior, no queues, no timing logic.
"""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np

from constants import samples_to_seconds


@dataclass(frozen=True, eq=False)
class AudioFrame:
    """
    Canonical in-memory audio buffer used by capture and playback.

    samples:
        float32 samples in [-1.0, 1.0].
        Shape (frames,) for mono, (frames, channels) otherwise.

    sample_rate_hz:
        Declared sample rate (16 kHz outgoing, 24 kHz incoming).

    Frames are ephemeral: produced per capture tick or per inbound
    message and consumed immediately.
    """
    samples: np.ndarray
    sample_rate_hz: int
    channels: int = 1

    @property
    def frame_count(self) -> int:
        """Number of sample frames (per channel)."""
        return int(self.samples.shape[0])

    @property
    def duration_s(self) -> float:
        """Playback duration in seconds."""
        return samples_to_seconds(self.frame_count, self.sample_rate_hz)
