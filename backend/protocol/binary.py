# backend/protocol/binary.py
"""
Binary framing for the browser device bridge.

Every binary WebSocket message starts with a one-byte kind.

- Client -> Server (capture):
    0x01  mic block     : PCM16 LE mono @ 16 kHz (even, non-empty)
    0x02  camera frame  : one encoded still image (JPEG/PNG/WebP), non-empty

- Server -> Client (playback):
    0x11  playback      : f64 LE start time (seconds, client audio clock)
                          followed by PCM16 LE mono @ 24 kHz

Usage example:

    frame = decode_client_frame(payload)
    if frame.kind == FRAME_KIND_MIC_PCM:
        surface.deliver_audio(frame.body)

    payload = encode_playback_frame(start_s=buffer.start_s, pcm_bytes=pcm)
"""

from __future__ import annotations

import struct
from dataclasses import dataclass

from constants import (
    AUDIO_SAMPLE_WIDTH_BYTES,
    FRAME_KIND_BYTES,
    FRAME_KIND_CAMERA_JPEG,
    FRAME_KIND_MIC_PCM,
    FRAME_KIND_PLAYBACK_PCM,
    PLAYBACK_START_BYTES,
)


# -------------------------
# Exceptions
# -------------------------

class BinaryProtocolError(Exception):
    """Base class for binary protocol errors."""


class InvalidFrameLength(BinaryProtocolError):
    """
    Raised when a binary frame body has an impossible byte length.

    Indicates a violation of the framing contract (empty, truncated, or an
    odd PCM16 byte count). The frame is unsafe to process and must be dropped.
    """


class UnknownFrameKind(BinaryProtocolError):
    """
    Raised when the leading kind byte is not one the receiver understands.
    """


_CLIENT_KINDS = frozenset({FRAME_KIND_MIC_PCM, FRAME_KIND_CAMERA_JPEG})


# -------------------------
# Low-level helpers
# -------------------------

def _f64_le(value: float) -> bytes:
    return struct.pack("<d", value)


def _check_pcm16(pcm_bytes: bytes) -> None:
    if not pcm_bytes:
        raise InvalidFrameLength("PCM payload is empty")
    if len(pcm_bytes) % AUDIO_SAMPLE_WIDTH_BYTES != 0:
        raise InvalidFrameLength(
            f"PCM length {len(pcm_bytes)} is not a multiple of "
            f"{AUDIO_SAMPLE_WIDTH_BYTES}"
        )


# -------------------------
# Client -> Server (capture)
# -------------------------

@dataclass(frozen=True)
class ClientFrame:
    """
    One decoded capture frame from the browser.
    """
    kind: int
    body: bytes


def decode_client_frame(payload: bytes) -> ClientFrame:
    """
    Decode a client->server capture frame.
    """
    if len(payload) <= FRAME_KIND_BYTES:
        raise InvalidFrameLength(f"Frame length {len(payload)} has no body")

    kind = payload[0]
    if kind not in _CLIENT_KINDS:
        raise UnknownFrameKind(f"Unknown client frame kind: 0x{kind:02x}")

    body = payload[FRAME_KIND_BYTES:]
    if kind == FRAME_KIND_MIC_PCM:
        _check_pcm16(body)

    return ClientFrame(kind=kind, body=body)


# -------------------------
# Server -> Client (playback)
# -------------------------

def encode_playback_frame(*, start_s: float, pcm_bytes: bytes) -> bytes:
    """
    Encode a server->client playback buffer with its scheduled start time.
    """
    if start_s < 0.0:
        raise BinaryProtocolError(f"Invalid start time: {start_s}")
    _check_pcm16(pcm_bytes)

    payload = bytes([FRAME_KIND_PLAYBACK_PCM]) + _f64_le(start_s) + pcm_bytes

    expected = FRAME_KIND_BYTES + PLAYBACK_START_BYTES + len(pcm_bytes)
    if len(payload) != expected:
        raise InvalidFrameLength(f"Playback frame length {len(payload)} != {expected}")

    return payload
