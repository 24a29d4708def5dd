# pylint: disable=missing-module-docstring,missing-function-docstring
from dataclasses import replace

from orchestrator.reducer import reduce
from orchestrator.state_dataclass import SessionState, TranscriptEvent
from orchestrator.enums.phase import Phase
from orchestrator.enums.speaker import Speaker

from orchestrator.events import (
    EventType,
    StartRequested,
    StopRequested,
    MicToggled,
    CameraToggled,
    DevicesAcquired,
    DeviceAcquireFailed,
    CaptureError,
    ListeningChanged,
    ChannelOpened,
    ServerContent,
    ChannelClosed,
    ChannelError,
    PlaybackDrained,
)

from orchestrator.commands import (
    Command,
    AcquireDevices,
    OpenChannel,
    StartAudioCapture,
    StartVideoTimer,
    SchedulePlayback,
    Teardown,
    NotifyUi,
    LogEvent,
)


# ---------------------------------------------------------------------
# Event helpers (mirror runtime construction)
# ---------------------------------------------------------------------

def start() -> StartRequested:
    return StartRequested(ts_ms=0, event_type=EventType.START_REQUESTED)


def stop(reason: str = "user_stop") -> StopRequested:
    return StopRequested(ts_ms=0, event_type=EventType.STOP_REQUESTED, reason=reason)


def mic(enabled: bool) -> MicToggled:
    return MicToggled(ts_ms=0, event_type=EventType.MIC_TOGGLED, enabled=enabled)


def camera(enabled: bool) -> CameraToggled:
    return CameraToggled(ts_ms=0, event_type=EventType.CAMERA_TOGGLED, enabled=enabled)


def acquired() -> DevicesAcquired:
    return DevicesAcquired(ts_ms=0, event_type=EventType.DEVICES_ACQUIRED)


def acquire_failed(reason: str = "denied") -> DeviceAcquireFailed:
    return DeviceAcquireFailed(ts_ms=0, event_type=EventType.DEVICE_ACQUIRE_FAILED, reason=reason)


def opened() -> ChannelOpened:
    return ChannelOpened(ts_ms=0, event_type=EventType.CHANNEL_OPENED)


def content(**parts) -> ServerContent:
    return ServerContent(ts_ms=0, event_type=EventType.SERVER_CONTENT, **parts)


def drained(buffers_scheduled: int) -> PlaybackDrained:
    return PlaybackDrained(
        ts_ms=0,
        event_type=EventType.PLAYBACK_DRAINED,
        buffers_scheduled=buffers_scheduled,
    )


def listening(value: bool) -> ListeningChanged:
    return ListeningChanged(ts_ms=0, event_type=EventType.LISTENING_CHANGED, listening=value)


# ---------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------

def idle() -> SessionState:
    return SessionState(session_id="sess_test")


def connecting() -> SessionState:
    return replace(idle(), phase=Phase.CONNECTING)


def active(**fields) -> SessionState:
    return replace(idle(), phase=Phase.ACTIVE, **fields)


def decisions(commands: tuple[Command, ...]) -> list[str]:
    """Extract decision strings from LogEvent commands."""
    return [
        c.event["decision"]
        for c in commands
        if isinstance(c, LogEvent)
    ]


def of_type(commands: tuple[Command, ...], cls: type) -> list[Command]:
    return [c for c in commands if isinstance(c, cls)]


# ---------------------------------------------------------------------
# 1. Reducer shape & purity
# ---------------------------------------------------------------------

def test_reducer_returns_state_and_tuple():
    new_state, commands = reduce(idle(), start())

    assert isinstance(commands, tuple)
    assert isinstance(new_state, SessionState)


def test_reducer_does_not_mutate_input_state():
    state = idle()
    before = replace(state)

    reduce(state, start())

    assert state == before


def test_logs_come_after_side_effect_commands():
    _, commands = reduce(idle(), start())

    first_log = next(i for i, c in enumerate(commands) if isinstance(c, LogEvent))
    assert all(isinstance(c, LogEvent) for c in commands[first_log:])


# ---------------------------------------------------------------------
# 2. Start / connect
# ---------------------------------------------------------------------

def test_start_from_idle_acquires_devices():
    new_state, commands = reduce(idle(), start())

    assert new_state.phase is Phase.CONNECTING
    assert of_type(commands, AcquireDevices)
    assert isinstance(commands[0], NotifyUi)
    assert decisions(commands) == ["state_changed"]


def test_start_clears_previous_error():
    state = replace(idle(), last_error="old", close_reason="old")

    new_state, _ = reduce(state, start())

    assert new_state.last_error is None
    assert new_state.close_reason is None


def test_start_while_connecting_is_ignored():
    state = connecting()

    new_state, commands = reduce(state, start())

    assert new_state == state
    assert decisions(commands) == ["ignore"]
    assert commands[0].event["details"]["reason"] == "already_connecting"


def test_devices_acquired_opens_channel():
    new_state, commands = reduce(connecting(), acquired())

    assert new_state.phase is Phase.CONNECTING
    assert of_type(commands, OpenChannel)


def test_device_denied_returns_to_idle_with_notice():
    new_state, commands = reduce(connecting(), acquire_failed("NotAllowedError"))

    assert new_state.phase is Phase.IDLE
    assert new_state.last_error == "NotAllowedError"
    notify = of_type(commands, NotifyUi)
    assert notify and notify[0].notice == "NotAllowedError"
    assert not of_type(commands, Teardown)


def test_channel_opened_starts_capture_and_snapshots():
    new_state, commands = reduce(connecting(), opened())

    assert new_state.phase is Phase.ACTIVE
    assert of_type(commands, StartAudioCapture)
    assert of_type(commands, StartVideoTimer)


def test_stop_while_connecting_closes_and_tears_down():
    new_state, commands = reduce(connecting(), stop())

    assert new_state.phase is Phase.CLOSED
    assert new_state.close_reason == "user_stop"
    assert new_state.last_error is None
    teardown = of_type(commands, Teardown)
    assert teardown and teardown[0].reason == "user_stop"


# ---------------------------------------------------------------------
# 3. Server content
# ---------------------------------------------------------------------

def test_output_transcription_sets_remote_text_and_speaking():
    new_state, commands = reduce(active(), content(output_text="Hello, Asha."))

    assert new_state.remote_transcript.text == "Hello, Asha."
    assert new_state.remote_transcript.is_final is False
    assert new_state.remote_speaking is True
    assert of_type(commands, NotifyUi)


def test_input_transcription_sets_user_text():
    new_state, _ = reduce(active(), content(input_text="I want Python"))

    assert new_state.user_transcript.text == "I want Python"
    assert new_state.remote_speaking is False


def test_turn_complete_keeps_remote_text_and_clears_user_text():
    state = active(
        remote_speaking=True,
        user_transcript=TranscriptEvent(speaker=Speaker.USER, text="um"),
        remote_transcript=TranscriptEvent(speaker=Speaker.REMOTE, text="Question one"),
    )

    new_state, _ = reduce(state, content(turn_complete=True))

    assert new_state.user_transcript.text == ""
    assert new_state.remote_transcript.text == "Question one"
    assert new_state.remote_transcript.is_final is True
    assert new_state.remote_speaking is False


def test_audio_schedules_playback_and_counts_chunks():
    new_state, commands = reduce(active(), content(audio_pcm=b"\x00\x01" * 4))

    assert new_state.remote_speaking is True
    assert new_state.audio_chunks_received == 1
    playback = of_type(commands, SchedulePlayback)
    assert playback and playback[0].pcm_bytes == b"\x00\x01" * 4


def test_turn_complete_with_audio_leaves_remote_speaking():
    new_state, _ = reduce(
        active(remote_speaking=True),
        content(turn_complete=True, audio_pcm=b"\x00\x00"),
    )

    assert new_state.remote_speaking is True
    assert new_state.remote_transcript.is_final is True


def test_empty_server_content_is_ignored():
    state = active()

    new_state, commands = reduce(state, content())

    assert new_state == state
    assert decisions(commands) == ["ignore"]


def test_server_content_before_active_is_ignored():
    state = connecting()

    new_state, commands = reduce(state, content(output_text="early"))

    assert new_state == state
    assert not of_type(commands, NotifyUi)


# ---------------------------------------------------------------------
# 4. Playback drain
# ---------------------------------------------------------------------

def test_drain_clears_remote_speaking():
    state = active(remote_speaking=True, audio_chunks_received=3)

    new_state, commands = reduce(state, drained(3))

    assert new_state.remote_speaking is False
    assert decisions(commands) == ["playback_drained"]


def test_stale_drain_is_ignored():
    state = active(remote_speaking=True, audio_chunks_received=3)

    new_state, commands = reduce(state, drained(2))

    assert new_state.remote_speaking is True
    assert commands[0].event["details"]["reason"] == "stale_drain"


def test_drain_when_already_silent_is_ignored():
    new_state, commands = reduce(active(audio_chunks_received=1), drained(1))

    assert new_state.remote_speaking is False
    assert commands[0].event["details"]["reason"] == "already_silent"


# ---------------------------------------------------------------------
# 5. Toggles & listening
# ---------------------------------------------------------------------

def test_mic_toggle_applies_in_any_live_phase():
    for state in (idle(), connecting(), active()):
        new_state, commands = reduce(state, mic(False))
        assert new_state.mic_enabled is False
        assert of_type(commands, NotifyUi)


def test_unchanged_toggle_is_ignored():
    _, commands = reduce(active(), camera(True))

    assert decisions(commands) == ["ignore"]


def test_camera_toggle_off():
    new_state, _ = reduce(active(), camera(False))

    assert new_state.camera_enabled is False


def test_listening_flip_updates_state():
    new_state, commands = reduce(active(), listening(True))

    assert new_state.listening is True
    assert decisions(commands) == ["listening_changed"]


# ---------------------------------------------------------------------
# 6. Closing
# ---------------------------------------------------------------------

def test_channel_error_closes_with_error_notice():
    event = ChannelError(ts_ms=0, event_type=EventType.CHANNEL_ERROR, reason="reset")

    new_state, commands = reduce(active(remote_speaking=True, listening=True), event)

    assert new_state.phase is Phase.CLOSED
    assert new_state.last_error == "channel_error:reset"
    assert new_state.remote_speaking is False
    assert new_state.listening is False
    assert of_type(commands, NotifyUi)[0].notice == "channel_error:reset"


def test_channel_closed_by_server():
    event = ChannelClosed(ts_ms=0, event_type=EventType.CHANNEL_CLOSED, reason="bye")

    new_state, _ = reduce(active(), event)

    assert new_state.phase is Phase.CLOSED
    assert new_state.close_reason == "channel_closed:bye"
    assert new_state.last_error is None


def test_capture_error_closes_session():
    event = CaptureError(ts_ms=0, event_type=EventType.CAPTURE_ERROR, reason="track_ended")

    new_state, commands = reduce(active(), event)

    assert new_state.phase is Phase.CLOSED
    assert new_state.last_error == "capture_error:track_ended"
    assert of_type(commands, Teardown)


def test_closed_ignores_everything_but_late_resources():
    state = replace(idle(), phase=Phase.CLOSED, close_reason="user_stop")

    for event in (start(), stop(), content(output_text="x"), drained(0), mic(False)):
        new_state, commands = reduce(state, event)
        assert new_state == state
        assert not of_type(commands, Teardown)
        assert decisions(commands) == ["ignore"]


def test_late_devices_after_close_are_torn_down():
    state = replace(idle(), phase=Phase.CLOSED, close_reason="user_stop")

    for event in (acquired(), opened()):
        new_state, commands = reduce(state, event)
        assert new_state.phase is Phase.CLOSED
        assert of_type(commands, Teardown)[0].reason == "user_stop"
        assert decisions(commands) == ["late_resource_released"]
