"""
Side-effect command definitions for the interview session.

Rules:
- Commands are declarative requests for side effects.
- Commands are emitted by the reducer and executed by the runtime.
- No behavior, no async, no I/O, no clocks.
- Reducer logic remains pure and deterministic.
Invariant:
    - All concrete Command subclasses MUST be frozen dataclasses.
    - Commands are immutable value objects emitted by the reducer.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any


# =============================================================================
# Command Type Enumeration
# =============================================================================

class CommandType(str, Enum):
    """
    Canonical command types emitted by the reducer.

    These are stable discriminants used for logging and runtime dispatch.
    """

    # Devices
    ACQUIRE_DEVICES = "ACQUIRE_DEVICES"
    START_AUDIO_CAPTURE = "START_AUDIO_CAPTURE"
    START_VIDEO_TIMER = "START_VIDEO_TIMER"

    # Remote channel
    OPEN_CHANNEL = "OPEN_CHANNEL"

    # Playback
    SCHEDULE_PLAYBACK = "SCHEDULE_PLAYBACK"

    # Session / lifecycle
    TEARDOWN = "TEARDOWN"

    # UI
    NOTIFY_UI = "NOTIFY_UI"

    # Observability
    LOG_EVENT = "LOG_EVENT"


# =============================================================================
# Base Command
# =============================================================================

class Command:
    """
    Base command type.

    command_type is an explicit discriminant and must never be inferred
    from Python type identity.
    """

    command_type: CommandType


# =============================================================================
# Device Commands
# =============================================================================

@dataclass(frozen=True)
class AcquireDevices(Command):
    """Request combined camera + microphone capture."""
    command_type: CommandType = CommandType.ACQUIRE_DEVICES


@dataclass(frozen=True)
class StartAudioCapture(Command):
    """Wire the capture audio callback to transmission."""
    command_type: CommandType = CommandType.START_AUDIO_CAPTURE


@dataclass(frozen=True)
class StartVideoTimer(Command):
    """Start the periodic snapshot timer."""
    command_type: CommandType = CommandType.START_VIDEO_TIMER


# =============================================================================
# Channel Commands
# =============================================================================

@dataclass(frozen=True)
class OpenChannel(Command):
    """Open the remote conversational channel."""
    command_type: CommandType = CommandType.OPEN_CHANNEL


# =============================================================================
# Playback Commands
# =============================================================================

@dataclass(frozen=True)
class SchedulePlayback(Command):
    """Decode one remote audio payload and schedule it after prior audio."""
    pcm_bytes: bytes
    command_type: CommandType = CommandType.SCHEDULE_PLAYBACK


# =============================================================================
# Session / Lifecycle Commands
# =============================================================================

@dataclass(frozen=True)
class Teardown(Command):
    """
    Release everything the session holds.

    Order: video timer, remote channel, audio processing, media tracks,
    playback active set. Must be idempotent.
    """
    reason: str | None = None
    command_type: CommandType = CommandType.TEARDOWN


# =============================================================================
# UI Commands
# =============================================================================

@dataclass(frozen=True)
class NotifyUi(Command):
    """
    Publish the current session snapshot to UI listeners.

    notice carries a single user-facing message for fatal errors.
    """
    notice: str | None = None
    command_type: CommandType = CommandType.NOTIFY_UI


# =============================================================================
# Observability Commands
# =============================================================================

@dataclass(frozen=True)
class LogEvent(Command):
    """Request to emit a structured observability event."""
    event: dict[str, Any]
    command_type: CommandType = CommandType.LOG_EVENT
