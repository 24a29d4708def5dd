"""
Interview session container.

- Holds every imperative handle one interview attempt owns
  (media stream, playback device + scheduler, capture pipeline, channel)
- Owned by InterviewController; mutated only by the Runtime
- NOT a state machine
- Contains no orchestration logic

detach_*() hands a handle over exactly once, which is what makes teardown
idempotent: a second teardown finds nothing left to release.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Callable

from channels.base import EmitEvent, RemoteChannel
from devices.base import DeviceSurface, MediaStream, PlaybackDevice

if TYPE_CHECKING:
    from audio.playback import PlaybackScheduler
    from capture.pipeline import CapturePipeline
    from orchestrator.state_dataclass import SessionState


ChannelFactory = Callable[[EmitEvent, str], RemoteChannel]
StateListener = Callable[["SessionState", "str | None"], None]


@dataclass
class InterviewSession:
    """Mutable runtime container for a single interview session."""

    # ------------------------------------------------------------------
    # Identity / lifecycle
    # ------------------------------------------------------------------

    session_id: str
    devices: DeviceSurface
    channel_factory: ChannelFactory
    on_state: StateListener | None = None
    created_at: float = field(default_factory=time.time)

    # ------------------------------------------------------------------
    # Live handles (set once acquired, cleared by teardown)
    # ------------------------------------------------------------------

    channel: RemoteChannel | None = None
    stream: MediaStream | None = None
    playback_device: PlaybackDevice | None = None
    scheduler: PlaybackScheduler | None = None
    pipeline: CapturePipeline | None = None

    # ------------------------------------------------------------------
    # Attachment helpers
    # ------------------------------------------------------------------

    def attach_channel(self, channel: RemoteChannel) -> None:
        self.channel = channel

    def attach_stream(self, stream: MediaStream, pipeline: CapturePipeline) -> None:
        self.stream = stream
        self.pipeline = pipeline

    def attach_playback(self, device: PlaybackDevice, scheduler: PlaybackScheduler) -> None:
        self.playback_device = device
        self.scheduler = scheduler

    # ------------------------------------------------------------------
    # Detachment (ownership hand-over for release)
    # ------------------------------------------------------------------

    def detach_channel(self) -> RemoteChannel | None:
        channel, self.channel = self.channel, None
        return channel

    def detach_stream(self) -> MediaStream | None:
        stream, self.stream = self.stream, None
        self.pipeline = None
        return stream

    def detach_playback(self) -> tuple[PlaybackDevice | None, PlaybackScheduler | None]:
        device, self.playback_device = self.playback_device, None
        scheduler, self.scheduler = self.scheduler, None
        return device, scheduler

    def held_handles(self) -> list[str]:
        """Names of handles still held (for logging / tests)."""
        held = []
        if self.channel is not None:
            held.append("channel")
        if self.stream is not None:
            held.append("stream")
        if self.playback_device is not None:
            held.append("playback_device")
        return held
