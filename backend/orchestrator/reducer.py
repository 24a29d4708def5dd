"""
Pure interview session reducer.

(state, event) -> (new_state, commands)

Rules:
- Pure: no side effects, no IO, no clocks.
- Deterministic: output depends only on inputs.
- Total: every (phase, event) pair is handled or explicitly ignored (logged).
"""

from __future__ import annotations

from dataclasses import replace
from typing import Any

from orchestrator.commands import (
    AcquireDevices,
    Command,
    LogEvent,
    NotifyUi,
    OpenChannel,
    SchedulePlayback,
    StartAudioCapture,
    StartVideoTimer,
    Teardown,
)
from orchestrator.enums.phase import Phase
from orchestrator.events import (
    CameraToggled,
    CaptureError,
    ChannelClosed,
    ChannelError,
    ChannelOpened,
    DeviceAcquireFailed,
    DevicesAcquired,
    Event,
    ListeningChanged,
    MicToggled,
    PlaybackDrained,
    ServerContent,
    StartRequested,
    StopRequested,
)
from orchestrator.state_dataclass import SessionState, TranscriptEvent


# =============================================================================
# Small helpers
# =============================================================================

def _log(
    state: SessionState,
    event: Event,
    decision: str,
    details: dict[str, Any] | None = None,
) -> LogEvent:
    return LogEvent(
        event={
            "ts_ms": event.ts_ms,
            "phase": state.phase.value,
            "event_type": event.event_type.value,
            "decision": decision,
            "remote_speaking": state.remote_speaking,
            "audio_chunks_received": state.audio_chunks_received,
            "details": details or {},
        }
    )


def _logs_last(commands: tuple[Command, ...]) -> tuple[Command, ...]:
    non_logs: list[Command] = []
    logs: list[Command] = []
    state_change_logs: list[Command] = []

    for command in commands:
        if isinstance(command, LogEvent):
            if command.event.get("decision") == "state_changed":
                state_change_logs.append(command)
            else:
                logs.append(command)
        else:
            non_logs.append(command)

    return tuple(non_logs + logs + state_change_logs)


def _ignore(
    state: SessionState, event: Event, reason: str
) -> tuple[SessionState, tuple[Command, ...]]:
    return state, (_log(state, event, "ignore", {"reason": reason}),)


def _transition(
    state: SessionState,
    new_state: SessionState,
    event: Event,
    source: str,
) -> LogEvent:
    return _log(
        new_state,
        event,
        "state_changed",
        {
            "from_phase": state.phase.value,
            "to_phase": new_state.phase.value,
            "source": source,
        },
    )


def _close_reason(event: Event) -> str:
    if isinstance(event, StopRequested):
        return event.reason
    if isinstance(event, ChannelClosed):
        return f"channel_closed:{event.reason}" if event.reason else "channel_closed"
    if isinstance(event, ChannelError):
        return f"channel_error:{event.reason}"
    if isinstance(event, CaptureError):
        return f"capture_error:{event.reason}"
    return "closed"


def _enter_closed(
    state: SessionState, event: Event
) -> tuple[SessionState, tuple[Command, ...]]:
    """
    Single path into CLOSED.

    Any error carried by the event is recorded and surfaced once through
    NotifyUi; a plain user stop produces no notice.
    """
    reason = _close_reason(event)
    error: str | None = None
    if isinstance(event, (ChannelError, CaptureError)):
        error = reason

    new_state = replace(
        state,
        phase=Phase.CLOSED,
        remote_speaking=False,
        listening=False,
        close_reason=reason,
        last_error=error if error is not None else state.last_error,
    )
    return new_state, _logs_last((
        Teardown(reason=reason),
        NotifyUi(notice=error),
        _transition(state, new_state, event, "enter_closed"),
    ))


# =============================================================================
# Server content
# =============================================================================

def _apply_server_content(
    state: SessionState, event: ServerContent
) -> tuple[SessionState, tuple[Command, ...]]:
    """
    Apply every part of one inbound message, independently.

    Order: transcriptions, then turn completion, then audio. A message
    carrying both turnComplete and audio leaves the remote speaking.
    """
    cmds: list[Command] = []
    new_state = state
    applied: list[str] = []

    if event.output_text is not None:
        new_state = replace(
            new_state,
            remote_transcript=TranscriptEvent(
                speaker=new_state.remote_transcript.speaker,
                text=event.output_text,
                is_final=False,
            ),
            remote_speaking=True,
        )
        applied.append("output_transcription")

    if event.input_text is not None:
        new_state = replace(
            new_state,
            user_transcript=TranscriptEvent(
                speaker=new_state.user_transcript.speaker,
                text=event.input_text,
                is_final=False,
            ),
        )
        applied.append("input_transcription")

    if event.turn_complete:
        # Remote transcript is kept; it becomes the completed utterance.
        new_state = replace(
            new_state,
            user_transcript=TranscriptEvent(speaker=new_state.user_transcript.speaker),
            remote_transcript=replace(new_state.remote_transcript, is_final=True),
            remote_speaking=False,
        )
        applied.append("turn_complete")

    if event.audio_pcm:
        new_state = replace(
            new_state,
            remote_speaking=True,
            audio_chunks_received=new_state.audio_chunks_received + 1,
        )
        cmds.append(SchedulePlayback(pcm_bytes=event.audio_pcm))
        applied.append("audio")

    if not applied:
        return _ignore(state, event, "empty_server_content")

    cmds.append(NotifyUi())
    cmds.append(_log(new_state, event, "server_content", {"parts": applied}))
    return new_state, _logs_last(tuple(cmds))


# =============================================================================
# Reducer
# =============================================================================

def reduce(
    state: SessionState, event: Event
) -> tuple[SessionState, tuple[Command, ...]]:
    """
    Pure reducer for the interview session lifecycle.

    Given the current session state and a single event, returns:
    - the next state
    - a tuple of commands describing required side effects

    Properties:
    - Deterministic: no IO, clocks, or randomness
    - Total: every (phase, event) pair is handled or explicitly ignored
    - CLOSED is terminal; late resource events only re-trigger Teardown
    """

    # ------------------------------------------------------------------
    # CLOSED gating
    # ------------------------------------------------------------------
    if state.phase is Phase.CLOSED:
        if isinstance(event, (DevicesAcquired, ChannelOpened)):
            # A handle acquired after close must still be released.
            return state, _logs_last((
                Teardown(reason=state.close_reason),
                _log(state, event, "late_resource_released"),
            ))
        return _ignore(state, event, "session_closed")

    # ------------------------------------------------------------------
    # Global: toggles apply in every live phase
    # ------------------------------------------------------------------
    if isinstance(event, MicToggled):
        if event.enabled == state.mic_enabled:
            return _ignore(state, event, "mic_unchanged")
        new_state = replace(state, mic_enabled=event.enabled)
        return new_state, _logs_last((
            NotifyUi(),
            _log(new_state, event, "mic_toggled", {"enabled": event.enabled}),
        ))

    if isinstance(event, CameraToggled):
        if event.enabled == state.camera_enabled:
            return _ignore(state, event, "camera_unchanged")
        new_state = replace(state, camera_enabled=event.enabled)
        return new_state, _logs_last((
            NotifyUi(),
            _log(new_state, event, "camera_toggled", {"enabled": event.enabled}),
        ))

    # ------------------------------------------------------------------
    # IDLE
    # ------------------------------------------------------------------
    if state.phase is Phase.IDLE:
        if isinstance(event, StartRequested):
            new_state = replace(
                state,
                phase=Phase.CONNECTING,
                last_error=None,
                close_reason=None,
            )
            return new_state, _logs_last((
                NotifyUi(),
                AcquireDevices(),
                _transition(state, new_state, event, "start_requested"),
            ))

        if isinstance(event, StopRequested):
            return _ignore(state, event, "not_started")

        return _ignore(state, event, "idle")

    # ------------------------------------------------------------------
    # CONNECTING
    # ------------------------------------------------------------------
    if state.phase is Phase.CONNECTING:
        if isinstance(event, StartRequested):
            return _ignore(state, event, "already_connecting")

        if isinstance(event, DevicesAcquired):
            return state, _logs_last((
                OpenChannel(),
                _log(state, event, "devices_acquired"),
            ))

        if isinstance(event, DeviceAcquireFailed):
            # Fatal to start: nothing was acquired, back to IDLE.
            new_state = replace(state, phase=Phase.IDLE, last_error=event.reason)
            return new_state, _logs_last((
                NotifyUi(notice=event.reason),
                _log(new_state, event, "device_acquire_failed", {"reason": event.reason}),
                _transition(state, new_state, event, "device_acquire_failed"),
            ))

        if isinstance(event, ChannelOpened):
            new_state = replace(state, phase=Phase.ACTIVE)
            return new_state, _logs_last((
                StartAudioCapture(),
                StartVideoTimer(),
                NotifyUi(),
                _transition(state, new_state, event, "channel_opened"),
            ))

        if isinstance(event, (StopRequested, ChannelClosed, ChannelError, CaptureError)):
            return _enter_closed(state, event)

        return _ignore(state, event, "connecting")

    # ------------------------------------------------------------------
    # ACTIVE
    # ------------------------------------------------------------------
    if state.phase is Phase.ACTIVE:
        if isinstance(event, ServerContent):
            return _apply_server_content(state, event)

        if isinstance(event, PlaybackDrained):
            if event.buffers_scheduled < state.audio_chunks_received:
                return _ignore(state, event, "stale_drain")
            if not state.remote_speaking:
                return _ignore(state, event, "already_silent")
            new_state = replace(state, remote_speaking=False)
            return new_state, _logs_last((
                NotifyUi(),
                _log(new_state, event, "playback_drained"),
            ))

        if isinstance(event, ListeningChanged):
            if event.listening == state.listening:
                return _ignore(state, event, "listening_unchanged")
            new_state = replace(state, listening=event.listening)
            return new_state, _logs_last((
                NotifyUi(),
                _log(new_state, event, "listening_changed", {"listening": event.listening}),
            ))

        if isinstance(event, (StopRequested, ChannelClosed, ChannelError, CaptureError)):
            return _enter_closed(state, event)

        if isinstance(event, StartRequested):
            return _ignore(state, event, "already_active")

        return _ignore(state, event, "active")

    return _ignore(state, event, "unhandled_phase")
