"""
PCM conversion utilities.

Conversions between normalized float samples, signed 16-bit PCM,
little-endian byte strings and the base64 text used on the remote channel.

Runtime-safe, adapter-agnostic utilities.
No resampling. No IO.
"""

from __future__ import annotations

import base64
import binascii
from typing import Sequence

import numpy as np

from audio.frames import AudioFrame
from constants import PCM16_MAX, PCM16_MIN, PCM16_SCALE


class MalformedPayloadError(ValueError):
    """
    Raised when an inbound payload cannot be decoded into audio.

    Callers on the receive path treat this as "skip the message",
    never as a session-fatal error.
    """


def float_to_pcm16(samples: Sequence[float] | np.ndarray) -> np.ndarray:
    """
    Convert float samples in [-1.0, 1.0] to int16 PCM.

    Each sample is multiplied by 32768 and truncated toward zero.
    Out-of-range input is clamped to the int16 range, so +1.0 maps to
    32767 rather than wrapping.
    """
    f32 = np.asarray(samples, dtype=np.float32)
    scaled = np.trunc(f32.astype(np.float64) * PCM16_SCALE)
    return np.clip(scaled, PCM16_MIN, PCM16_MAX).astype(np.int16)


def pcm16_to_float(
    samples: Sequence[int] | np.ndarray,
    sample_rate_hz: int,
    channel_count: int = 1,
) -> AudioFrame:
    """
    Convert interleaved int16 PCM into a playable float buffer.

    Each sample is divided by 32768.0.

    Raises:
        MalformedPayloadError if the sample count is not a whole number
        of frames for channel_count.
    """
    if channel_count <= 0:
        raise ValueError("channel_count must be > 0")

    i16 = np.asarray(samples, dtype=np.int16)
    if i16.size % channel_count != 0:
        raise MalformedPayloadError(
            f"{i16.size} samples is not a multiple of {channel_count} channels"
        )

    f32 = i16.astype(np.float32) / PCM16_SCALE
    if channel_count > 1:
        f32 = f32.reshape(-1, channel_count)

    return AudioFrame(
        samples=f32,
        sample_rate_hz=sample_rate_hz,
        channels=channel_count,
    )


def pcm16_to_bytes(samples: np.ndarray) -> bytes:
    """Pack int16 samples as little-endian bytes."""
    return np.asarray(samples, dtype="<i2").tobytes()


def bytes_to_pcm16(pcm_bytes: bytes) -> np.ndarray:
    """
    Unpack little-endian PCM16 bytes.

    Raises:
        MalformedPayloadError on a truncated trailing sample.
    """
    if len(pcm_bytes) % 2 != 0:
        raise MalformedPayloadError(
            f"PCM16 payload has odd length {len(pcm_bytes)}"
        )
    return np.frombuffer(pcm_bytes, dtype="<i2").astype(np.int16)


def bytes_to_text(data: bytes) -> str:
    """Encode binary payload as standard base64 text."""
    return base64.b64encode(data).decode("ascii")


def text_to_bytes(text: str) -> bytes:
    """
    Decode standard base64 text.

    Raises:
        MalformedPayloadError if text is not valid base64.
    """
    try:
        return base64.b64decode(text, validate=True)
    except (binascii.Error, ValueError) as e:
        raise MalformedPayloadError(f"invalid base64 payload: {e}") from e


def pcm16le_to_float32(pcm_bytes: bytes) -> np.ndarray:
    """
    Convert PCM16 little-endian mono bytes to float32 in [-1.0, 1.0).

    Used for browser mic blocks, which arrive already packed.
    """
    return bytes_to_pcm16(pcm_bytes).astype(np.float32) / PCM16_SCALE
