"""
Interview controller: the public start / stop / toggle surface.

- Creates a fresh InterviewSession + Runtime for every start
- At most one live session; a start while connecting/active is rejected
- Only DevicePermissionError (DeviceError) and SessionAlreadyActive cross
  this boundary; every other failure ends the session and is reported
  through the state listener
"""

from __future__ import annotations

from typing import Any
from uuid import uuid4

from devices.base import DeviceSurface
from observability.logger import log_event, now_ms
from orchestrator.enums.phase import Phase
from orchestrator.events import (
    CameraToggled,
    EventType,
    MicToggled,
    StartRequested,
    StopRequested,
)
from orchestrator.runtime import Runtime
from orchestrator.runtime_context import RuntimeExecutionContext
from orchestrator.state_dataclass import SessionState
from session.interview_session import ChannelFactory, InterviewSession, StateListener


class SessionAlreadyActive(Exception):
    """Raised when start() is called while a session is connecting or active."""


_LIVE_PHASES = frozenset({Phase.CONNECTING, Phase.ACTIVE})


def _new_session_id() -> str:
    return f"sess_{uuid4().hex[:12]}"


def session_state_payload(state: SessionState, notice: str | None = None) -> dict[str, Any]:
    """
    UI-facing snapshot of a session state.
    """
    payload: dict[str, Any] = {
        "type": "SESSION_STATE",
        "session_id": state.session_id,
        "phase": state.phase.value,
        "mic_enabled": state.mic_enabled,
        "camera_enabled": state.camera_enabled,
        "listening": state.listening,
        "remote_speaking": state.remote_speaking,
        "user_transcript": state.user_transcript.text,
        "remote_transcript": state.remote_transcript.text,
        "remote_transcript_final": state.remote_transcript.is_final,
        "last_error": state.last_error,
    }
    if notice is not None:
        payload["notice"] = notice
    return payload


class InterviewController:
    """
    One controller == one candidate seat (one UI, sequential sessions).

    Toggles made while no session is live are remembered and applied to
    the next session's initial state.
    """

    def __init__(
        self,
        *,
        devices: DeviceSurface,
        channel_factory: ChannelFactory,
        on_state: StateListener | None = None,
    ) -> None:
        self._devices = devices
        self._channel_factory = channel_factory
        self._on_state = on_state

        self._runtime: Runtime | None = None
        self._session: InterviewSession | None = None

        self._mic_enabled = True
        self._camera_enabled = True

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def state(self) -> SessionState | None:
        """Current session state, or None before the first start."""
        if self._runtime is None:
            return None
        return self._runtime.state

    @property
    def runtime(self) -> Runtime | None:
        return self._runtime

    @property
    def session(self) -> InterviewSession | None:
        return self._session

    def is_live(self) -> bool:
        state = self.state
        return state is not None and state.phase in _LIVE_PHASES

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    async def start(self) -> SessionState:
        """
        Begin a new interview session.

        Returns once devices are acquired and the channel open was
        attempted; the session becomes ACTIVE when the remote side confirms.

        Raises:
            SessionAlreadyActive: a session is connecting or active.
            DevicePermissionError: camera / microphone denied; the session
                is back in IDLE and nothing is held.
        """
        if self.is_live():
            raise SessionAlreadyActive(
                f"session {self._session.session_id if self._session else '?'} is live"
            )

        previous = self._runtime
        if previous is not None:
            await previous.shutdown()

        session_id = _new_session_id()
        session = InterviewSession(
            session_id=session_id,
            devices=self._devices,
            channel_factory=self._channel_factory,
            on_state=self._publish,
        )
        runtime = Runtime(
            initial_state=SessionState(
                session_id=session_id,
                mic_enabled=self._mic_enabled,
                camera_enabled=self._camera_enabled,
            ),
            context=RuntimeExecutionContext(session),
        )
        self._session = session
        self._runtime = runtime

        log_event({
            "ts_ms": now_ms(),
            "event_type": "SESSION_STARTED",
            "session_id": session_id,
        })

        runtime.start_pump()
        await runtime.handle_event(StartRequested(
            event_type=EventType.START_REQUESTED,
            ts_ms=now_ms(),
        ))

        error = runtime.acquire_error
        if error is not None and runtime.state.phase is Phase.IDLE:
            await runtime.shutdown()
            raise error

        return runtime.state

    async def stop(self, reason: str = "user_stop") -> None:
        """
        End the current session. Idempotent; safe in any phase.
        """
        runtime = self._runtime
        if runtime is None:
            return

        await runtime.handle_event(StopRequested(
            event_type=EventType.STOP_REQUESTED,
            ts_ms=now_ms(),
            reason=reason,
        ))
        await runtime.shutdown()

        log_event({
            "ts_ms": now_ms(),
            "event_type": "SESSION_ENDED",
            "session_id": runtime.state.session_id,
            "phase": runtime.state.phase.value,
            "reason": reason,
        })

    async def set_mic(self, enabled: bool) -> None:
        self._mic_enabled = enabled
        if self._runtime is not None:
            await self._runtime.handle_event(MicToggled(
                event_type=EventType.MIC_TOGGLED,
                ts_ms=now_ms(),
                enabled=enabled,
            ))

    async def set_camera(self, enabled: bool) -> None:
        self._camera_enabled = enabled
        if self._runtime is not None:
            await self._runtime.handle_event(CameraToggled(
                event_type=EventType.CAMERA_TOGGLED,
                ts_ms=now_ms(),
                enabled=enabled,
            ))

    async def toggle_mic(self) -> bool:
        await self.set_mic(not self._mic_enabled)
        return self._mic_enabled

    async def toggle_camera(self) -> bool:
        await self.set_camera(not self._camera_enabled)
        return self._camera_enabled

    async def wait_closed(self) -> None:
        if self._runtime is not None:
            await self._runtime.wait_closed()

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _publish(self, state: SessionState, notice: str | None) -> None:
        if self._on_state is not None:
            self._on_state(state, notice)
