"""
Unified event definitions for the interview session reducer.

Rules:
- Events describe facts that have occurred.
- Events carry data only (no behavior).
- All reducer decisions are based on these events.
- No clocks, no timers, no async, no side effects.

Event sources:
- Controller (user start / stop / toggles)
- Runtime (device acquisition outcome)
- Remote channel (open, server content, close, error)
- Capture pipeline (listening flips, capture errors)
- Playback scheduler (active set drained)
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


# =============================================================================
# Event Type Enumeration
# =============================================================================

class EventType(str, Enum):
    """
    Canonical event types understood by the reducer.

    Every (phase, event_type) pair must be explicitly handled
    or explicitly ignored by the reducer.
    """

    # ------------------------------------------------------------------
    # User control
    # ------------------------------------------------------------------
    START_REQUESTED = "START_REQUESTED"
    STOP_REQUESTED = "STOP_REQUESTED"
    MIC_TOGGLED = "MIC_TOGGLED"
    CAMERA_TOGGLED = "CAMERA_TOGGLED"

    # ------------------------------------------------------------------
    # Devices
    # ------------------------------------------------------------------
    DEVICES_ACQUIRED = "DEVICES_ACQUIRED"
    DEVICE_ACQUIRE_FAILED = "DEVICE_ACQUIRE_FAILED"
    CAPTURE_ERROR = "CAPTURE_ERROR"
    LISTENING_CHANGED = "LISTENING_CHANGED"

    # ------------------------------------------------------------------
    # Remote channel
    # ------------------------------------------------------------------
    CHANNEL_OPENED = "CHANNEL_OPENED"
    SERVER_CONTENT = "SERVER_CONTENT"
    CHANNEL_CLOSED = "CHANNEL_CLOSED"
    CHANNEL_ERROR = "CHANNEL_ERROR"

    # ------------------------------------------------------------------
    # Playback
    # ------------------------------------------------------------------
    PLAYBACK_DRAINED = "PLAYBACK_DRAINED"


# =============================================================================
# Base Event
# =============================================================================

@dataclass(frozen=True)
class Event:
    """
    Base event type.

    All events must specify:
    - event_type: discriminant
    - ts_ms: timestamp provided by the source (or fake in tests)
    """

    event_type: EventType
    ts_ms: int


# =============================================================================
# User Control Events
# =============================================================================

@dataclass(frozen=True)
class StartRequested(Event):
    """User asked to enter the interview."""


@dataclass(frozen=True)
class StopRequested(Event):
    """User ended the session."""
    reason: str = "user_stop"


@dataclass(frozen=True)
class MicToggled(Event):
    """Microphone transmission gate changed."""
    enabled: bool


@dataclass(frozen=True)
class CameraToggled(Event):
    """Camera transmission gate changed."""
    enabled: bool


# =============================================================================
# Device Events
# =============================================================================

@dataclass(frozen=True)
class DevicesAcquired(Event):
    """Camera + microphone stream granted."""


@dataclass(frozen=True)
class DeviceAcquireFailed(Event):
    """Camera or microphone denied or unavailable."""
    reason: str


@dataclass(frozen=True)
class CaptureError(Event):
    """Unrecoverable capture failure while the session is running."""
    reason: str


@dataclass(frozen=True)
class ListeningChanged(Event):
    """Loudness indicator flipped."""
    listening: bool


# =============================================================================
# Remote Channel Events
# =============================================================================

@dataclass(frozen=True)
class ChannelOpened(Event):
    """Remote channel confirmed the session setup."""


@dataclass(frozen=True)
class ServerContent(Event):
    """
    One inbound message from the remote conversational engine.

    A single message may carry several of these parts at once.
    audio_pcm is already base64-decoded and validated PCM16 LE bytes.
    """
    output_text: str | None = None
    input_text: str | None = None
    turn_complete: bool = False
    audio_pcm: bytes | None = None


@dataclass(frozen=True)
class ChannelClosed(Event):
    """Remote channel closed (by either side)."""
    reason: str | None = None


@dataclass(frozen=True)
class ChannelError(Event):
    """Remote channel failed (network failure, server error)."""
    reason: str


# =============================================================================
# Playback Events
# =============================================================================

@dataclass(frozen=True)
class PlaybackDrained(Event):
    """
    The playback active set became empty.

    buffers_scheduled is the scheduler's running total at drain time;
    a drain older than the latest scheduled audio is stale.
    """
    buffers_scheduled: int
