"""
Energy-based activity (loudness) indicator.

Computes the RMS energy of each captured block and reports whether the
candidate is audibly speaking. Used for UI feedback only; it never gates
what is transmitted.
"""

from __future__ import annotations

import numpy as np

from constants import LISTENING_RMS_THRESHOLD


def rms(f32: np.ndarray) -> float:
    """Root-mean-square energy of a block of float samples (0.0 if empty)."""
    if f32.size == 0:
        return 0.0
    samples = f32.astype(np.float64)
    return float(np.sqrt(np.mean(np.square(samples))))


class ActivityMeter:
    """
    Threshold meter over per-block RMS energy.

    For each observed block the RMS energy is compared to a fixed
    threshold; "listening" is true while it is strictly above. The meter
    remembers the previous value so callers can react only to flips.
    """

    def __init__(self, threshold: float = LISTENING_RMS_THRESHOLD) -> None:
        self._threshold = threshold
        self._listening = False
        self.last_rms = 0.0

    @property
    def listening(self) -> bool:
        """Result of the most recent observation."""
        return self._listening

    def observe(self, f32: np.ndarray) -> bool:
        """
        Observe a single block and return True if the value flipped.

        Args:
            f32:
                A 1D NumPy array of float32 samples for one capture block.
        """
        self.last_rms = rms(f32)
        listening = self.last_rms > self._threshold
        changed = listening != self._listening
        self._listening = listening
        return changed

    def reset(self) -> None:
        """Return to the silent state."""
        self._listening = False
        self.last_rms = 0.0
