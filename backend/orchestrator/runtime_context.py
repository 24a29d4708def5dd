"""
Runtime execution context.

Provides Runtime with live access to session-owned imperative resources
needed for command execution and side effects (devices, channel, playback).

This module contains:
- Zero orchestration logic
- Zero state mutation
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from channels.base import EmitEvent, RemoteChannel

if TYPE_CHECKING:
    from audio.playback import PlaybackScheduler
    from capture.pipeline import CapturePipeline
    from devices.base import DeviceSurface, MediaStream, PlaybackDevice
    from orchestrator.state_dataclass import SessionState
    from session.interview_session import InterviewSession


class RuntimeExecutionContext:
    """
    Imperative execution context for Runtime.

    This object provides *live views* into session-owned resources
    so Runtime does not need to synchronize or cache anything.

    Runtime is allowed to:
    - Acquire and release devices
    - Open, use and close the channel
    - Attach / detach handles on the session container

    Runtime is NOT allowed to:
    - Mutate session state directly
    - Perform orchestration decisions
    """

    def __init__(self, session: InterviewSession) -> None:
        self.session = session

    # ----------------------------
    # Session metadata
    # ----------------------------

    @property
    def session_id(self) -> str:
        return self.session.session_id

    # ----------------------------
    # Devices
    # ----------------------------

    @property
    def devices(self) -> DeviceSurface:
        return self.session.devices

    @property
    def stream(self) -> MediaStream | None:
        return self.session.stream

    @property
    def pipeline(self) -> CapturePipeline | None:
        return self.session.pipeline

    @property
    def playback_device(self) -> PlaybackDevice | None:
        return self.session.playback_device

    @property
    def scheduler(self) -> PlaybackScheduler | None:
        return self.session.scheduler

    # ----------------------------
    # Remote channel
    # ----------------------------

    @property
    def channel(self) -> RemoteChannel | None:
        return self.session.channel

    def make_channel(self, emit: EmitEvent) -> RemoteChannel:
        return self.session.channel_factory(emit, self.session.session_id)

    # ----------------------------
    # UI
    # ----------------------------

    def notify_ui(self, state: SessionState, notice: str | None) -> None:
        listener = self.session.on_state
        if listener is not None:
            listener(state, notice)
