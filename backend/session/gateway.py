"""
Interview gateway: one browser WebSocket connection.

Responsibilities:
- Owns the browser device surface and the interview controller
- Routes inbound JSON control messages -> controller / device surface
- Routes inbound binary capture frames -> device surface
- Collects every outbound message (state snapshots, device requests,
  playback frames, errors) into one ordered outbound queue

NOT responsible for:
- Any state machine logic
- Talking to the remote conversational engine directly
"""

from __future__ import annotations

import asyncio
import json
from typing import TYPE_CHECKING, Any

from channels.base import EmitEvent, RemoteChannel
from channels.gemini_live import GeminiLiveChannel
from channels.prompts import build_interviewer_prompt
from constants import (
    DEVICE_DENIED_NOTICE,
    FRAME_KIND_CAMERA_JPEG,
    FRAME_KIND_MIC_PCM,
    INPUT_AUDIO_FORMAT,
    OUTPUT_AUDIO_FORMAT,
)
from devices.base import DeviceError
from devices.browser import BrowserDeviceSurface
from observability.logger import log_event, now_ms
from orchestrator.state_dataclass import SessionState
from protocol.binary import BinaryProtocolError, decode_client_frame
from session.controller import InterviewController, SessionAlreadyActive, session_state_payload
from session.interview_session import ChannelFactory

if TYPE_CHECKING:
    from config import AppConfig


Outbound = dict[str, Any] | bytes


class InterviewGateway:
    """
    One gateway == one browser connection == sequential interview sessions.
    """

    def __init__(
        self,
        *,
        config: AppConfig,
        channel_factory: ChannelFactory | None = None,
    ) -> None:
        self._config = config
        self._outbound: asyncio.Queue[Outbound] = asyncio.Queue()
        self._candidate_name = ""
        self._start_task: asyncio.Task[None] | None = None

        self.devices = BrowserDeviceSurface(
            send_json=self._send_json,
            send_bytes=self._send_bytes,
        )
        self.controller = InterviewController(
            devices=self.devices,
            channel_factory=channel_factory or self._live_channel,
            on_state=self._on_state,
        )

    # ------------------------------------------------------------------
    # Connection lifecycle
    # ------------------------------------------------------------------

    async def on_ws_connect(self) -> None:
        self._send_json({
            "type": "SESSION_INIT",
            "audio_in": {
                "sample_rate": INPUT_AUDIO_FORMAT.sample_rate_hz,
                "mime_type": INPUT_AUDIO_FORMAT.mime_type,
            },
            "audio_out": {
                "sample_rate": OUTPUT_AUDIO_FORMAT.sample_rate_hz,
                "mime_type": OUTPUT_AUDIO_FORMAT.mime_type,
            },
        })

    async def on_ws_disconnect(self, reason: str | None = None) -> None:
        self.devices.close()

        task = self._start_task
        self._start_task = None
        if task is not None and not task.done():
            await asyncio.gather(task, return_exceptions=True)

        await self.controller.stop(reason=reason or "client_disconnect")

    async def next_outbound(self) -> Outbound:
        return await self._outbound.get()

    def drain_outbound(self) -> list[Outbound]:
        drained: list[Outbound] = []
        while not self._outbound.empty():
            drained.append(self._outbound.get_nowait())
        return drained

    # ------------------------------------------------------------------
    # Inbound
    # ------------------------------------------------------------------

    async def on_json_message(self, payload: str) -> None:
        """Route inbound JSON control messages."""
        try:
            data = json.loads(payload)
        except json.JSONDecodeError as e:
            log_event({
                "ts_ms": now_ms(),
                "event_type": "JSON_DECODE_ERROR",
                "level": "warning",
                "error": str(e),
                "payload_preview": payload[:100],
            })
            return

        if not isinstance(data, dict):
            self._log_unknown(None)
            return

        msg_type = data.get("type")

        if msg_type == "START":
            if self._start_task is not None and not self._start_task.done():
                self._send_error("session_already_active", "An interview is already starting.")
                return
            if self.controller.is_live():
                self._send_error("session_already_active", "An interview is already running.")
                return
            self._candidate_name = str(data.get("candidate_name") or "")
            # Start waits on DEVICE_GRANTED, which arrives through this same
            # loop, so it cannot be awaited inline.
            self._start_task = asyncio.create_task(self._run_start())
        elif msg_type == "STOP":
            await self._stop()
        elif msg_type == "MIC":
            await self.controller.set_mic(bool(data.get("enabled", True)))
        elif msg_type == "CAMERA":
            await self.controller.set_camera(bool(data.get("enabled", True)))
        elif msg_type == "DEVICE_GRANTED":
            self.devices.on_device_granted()
        elif msg_type == "DEVICE_DENIED":
            self.devices.on_device_denied(data.get("reason"))
        elif msg_type == "DEVICE_LOST":
            self.devices.on_capture_failed(str(data.get("reason") or "device_lost"))
        else:
            self._log_unknown(msg_type)

    async def on_binary_message(self, payload: bytes) -> None:
        """Route inbound capture frames."""
        try:
            frame = decode_client_frame(payload)
        except BinaryProtocolError as e:
            log_event({
                "ts_ms": now_ms(),
                "event_type": "BINARY_DECODE_ERROR",
                "level": "warning",
                "session_id": self._session_id(),
                "error": str(e),
                "payload_len": len(payload),
            })
            return

        if frame.kind == FRAME_KIND_MIC_PCM:
            self.devices.deliver_audio(frame.body)
        elif frame.kind == FRAME_KIND_CAMERA_JPEG:
            self.devices.deliver_frame(frame.body)

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    async def _stop(self) -> None:
        await self.controller.stop()

        # A start still waiting on the browser prompt finishes against the
        # closed session and acquires nothing.
        self.devices.cancel_request("user_stop")
        task = self._start_task
        if task is not None and not task.done():
            await asyncio.gather(task, return_exceptions=True)

    async def _run_start(self) -> None:
        try:
            await self.controller.start()
        except SessionAlreadyActive:
            self._send_error("session_already_active", "An interview is already running.")
        except DeviceError as e:
            log_event({
                "ts_ms": now_ms(),
                "event_type": "DEVICE_PERMISSION_DENIED",
                "level": "warning",
                "error": str(e),
            })
            self._send_error("device_permission_denied", DEVICE_DENIED_NOTICE)

    def _live_channel(self, emit: EmitEvent, session_id: str) -> RemoteChannel:
        api_key = self._config.gemini_api_key
        if not api_key:
            raise RuntimeError("GEMINI_API_KEY environment variable not set")
        return GeminiLiveChannel(
            emit=emit,
            api_key=api_key,
            system_instruction=build_interviewer_prompt(self._candidate_name),
            model=self._config.live_model,
            voice=self._config.live_voice,
            url=self._config.live_ws_url,
            session_id=session_id,
        )

    def _on_state(self, state: SessionState, notice: str | None) -> None:
        self._send_json(session_state_payload(state, notice))

    def _send_json(self, message: dict[str, Any]) -> None:
        self._outbound.put_nowait(message)

    def _send_bytes(self, frame: bytes) -> None:
        self._outbound.put_nowait(frame)

    def _send_error(self, code: str, message: str) -> None:
        self._send_json({"type": "ERROR", "code": code, "message": message})

    def _session_id(self) -> str | None:
        state = self.controller.state
        return state.session_id if state is not None else None

    def _log_unknown(self, msg_type: Any) -> None:
        log_event({
            "ts_ms": now_ms(),
            "event_type": "UNKNOWN_MESSAGE_TYPE",
            "level": "warning",
            "msg_type": msg_type,
            "session_id": self._session_id(),
        })
