"""
Authoritative interview session state container.

Rules:
- This dataclass is a pure data model.
- It contains ALL state the reducer may ever need.
- No behavior, no helpers, no derived logic.
- Device handles, timers and the playback active set are NOT here;
  they live in the runtime and the playback scheduler.
"""
from __future__ import annotations

from dataclasses import dataclass

from orchestrator.enums.phase import Phase
from orchestrator.enums.speaker import Speaker


# =============================================================================
# Transcripts
# =============================================================================

@dataclass(frozen=True)
class TranscriptEvent:
    """
    Latest transcript fragment for one speaker.

    Only the current utterance per side is retained; a newer fragment
    overwrites the previous one.
    """
    speaker: Speaker
    text: str = ""
    is_final: bool = False


# =============================================================================
# Session State
# =============================================================================

@dataclass(frozen=True)
class SessionState:
    """Immutable snapshot of all controller-owned state for one session."""

    session_id: str

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    phase: Phase = Phase.IDLE

    # ------------------------------------------------------------------
    # User toggles (gate transmission only; hardware keeps running)
    # ------------------------------------------------------------------
    mic_enabled: bool = True
    camera_enabled: bool = True

    # ------------------------------------------------------------------
    # Turn / transcript state
    # ------------------------------------------------------------------
    user_transcript: TranscriptEvent = TranscriptEvent(speaker=Speaker.USER)
    remote_transcript: TranscriptEvent = TranscriptEvent(speaker=Speaker.REMOTE)

    # True while remote audio is scheduled or playing
    remote_speaking: bool = False

    # Loudness indicator from the capture pipeline
    listening: bool = False

    # Count of remote audio payloads handed to playback this session.
    # Used to recognise stale drain notifications.
    audio_chunks_received: int = 0

    # ------------------------------------------------------------------
    # Error handling
    # ------------------------------------------------------------------
    last_error: str | None = None
    close_reason: str | None = None
