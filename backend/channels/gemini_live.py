"""
Gemini Live remote channel over a raw WebSocket.

Core model:
- One connection per interview session; never reconnected.
- open() connects and sends the setup message; the session counts as open
  only when the server answers with setupComplete.
- Inbound messages are decoded into session events and handed to the sink.
  A malformed message is logged and skipped as a whole so the reducer never
  sees half of one.
- Outbound media is fire-and-forget: sends on a channel that is not open
  are dropped with a debug log.

Design constraints:
- Channel must not call the reducer directly.
- Channel must not own session state transitions.
- After close() nothing is emitted, including for a connect that was still
  in progress.
"""

from __future__ import annotations

import asyncio
import urllib.parse
from typing import Any, Awaitable, Callable

from websockets.asyncio.client import ClientConnection, connect as ws_connect
from websockets.exceptions import ConnectionClosed, ConnectionClosedError

from channels.base import EmitEvent, RemoteChannel
from channels.prompts import prompt_fingerprint
from constants import (
    LIVE_CLOSE_TIMEOUT_S,
    LIVE_MAX_MESSAGE_BYTES,
    LIVE_MODEL_DEFAULT,
    LIVE_VOICE_DEFAULT,
    LIVE_WS_URL_DEFAULT,
)
from observability.logger import log_event, now_ms
from observability.metrics import timed
from orchestrator.events import (
    ChannelClosed,
    ChannelError,
    ChannelOpened,
    EventType,
    ServerContent,
)
from protocol.live import (
    LiveProtocolError,
    ServerMessage,
    build_realtime_input,
    build_setup_message,
    encode_message,
    parse_server_message,
)


Connect = Callable[..., Awaitable[Any]]


class GeminiLiveChannel(RemoteChannel):
    """
    Bidirectional audio/video channel to the Gemini Live API.

    Events emitted:
    - ChannelOpened: once, on setupComplete
    - ServerContent: per inbound message with any content part
    - ChannelClosed: server closed the stream normally
    - ChannelError: connect failure or abnormal close
    """

    def __init__(
        self,
        *,
        emit: EmitEvent,
        api_key: str,
        system_instruction: str,
        model: str = LIVE_MODEL_DEFAULT,
        voice: str = LIVE_VOICE_DEFAULT,
        url: str = LIVE_WS_URL_DEFAULT,
        session_id: str | None = None,
        connect: Connect = ws_connect,
    ) -> None:
        self._emit = emit
        self._api_key = api_key
        self._system_instruction = system_instruction
        self._model = model
        self._voice = voice
        self._url = url
        self._session_id = session_id
        self._connect = connect

        self._ws: ClientConnection | None = None
        self._recv_task: asyncio.Task[None] | None = None

        self._opened = False
        self._closed = False

        self.messages_received = 0
        self.messages_skipped = 0
        self.sends_dropped = 0

    # -------------------------------------------------------------------------
    # Public interface
    # -------------------------------------------------------------------------

    @property
    def is_open(self) -> bool:
        return self._opened and not self._closed and self._ws is not None

    async def open(self) -> None:
        if self._closed or self._ws is not None:
            return

        try:
            with timed("channel_open_latency", session_id=self._session_id):
                ws = await self._connect(
                    self._build_url(),
                    max_size=LIVE_MAX_MESSAGE_BYTES,
                    ping_interval=None,
                )
                await ws.send(encode_message(build_setup_message(
                    model=self._model,
                    system_instruction=self._system_instruction,
                    voice=self._voice,
                )))
        except Exception as e:  # pylint: disable=broad-exception-caught
            self._log("LIVE_CONNECT_FAILED", level="error", error=repr(e))
            if not self._closed:
                self._emit(ChannelError(
                    event_type=EventType.CHANNEL_ERROR,
                    ts_ms=now_ms(),
                    reason=f"live_connect_failed: {e!r}",
                ))
            return

        if self._closed:
            # close() ran while connecting; release the late socket.
            await self._close_socket(ws)
            return

        self._ws = ws
        self._recv_task = asyncio.create_task(self._recv_loop(ws))
        self._log(
            "LIVE_SETUP_SENT",
            model=self._model,
            voice=self._voice,
            **prompt_fingerprint(self._system_instruction),
        )

    async def send_realtime_input(self, data: str, mime_type: str) -> bool:
        ws = self._ws
        if ws is None or not self._opened or self._closed:
            self.sends_dropped += 1
            self._log("LIVE_SEND_DROPPED", level="debug", mime_type=mime_type, reason="not_open")
            return False

        try:
            await ws.send(encode_message(build_realtime_input(data=data, mime_type=mime_type)))
        except Exception as e:  # pylint: disable=broad-exception-caught
            self.sends_dropped += 1
            self._log("LIVE_SEND_DROPPED", level="debug", mime_type=mime_type, reason=repr(e))
            return False
        return True

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True

        task = self._recv_task
        self._recv_task = None
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()

        ws = self._ws
        self._ws = None
        if ws is not None:
            await self._close_socket(ws)

        self._log(
            "LIVE_CLOSED",
            messages_received=self.messages_received,
            messages_skipped=self.messages_skipped,
            sends_dropped=self.sends_dropped,
        )

    # -------------------------------------------------------------------------
    # Connection management
    # -------------------------------------------------------------------------

    def _build_url(self) -> str:
        qs = urllib.parse.urlencode({"key": self._api_key})
        return f"{self._url}?{qs}"

    async def _close_socket(self, ws: Any) -> None:
        try:
            await asyncio.wait_for(ws.close(), timeout=LIVE_CLOSE_TIMEOUT_S)
        except Exception as e:  # pylint: disable=broad-exception-caught
            self._log("LIVE_CLOSE_FAILED", level="debug", error=repr(e))

    # -------------------------------------------------------------------------
    # Background loop
    # -------------------------------------------------------------------------

    async def _recv_loop(self, ws: Any) -> None:
        """
        Receive server messages until the stream ends.

        A normal end is reported as ChannelClosed, an abnormal one as
        ChannelError. Nothing is reported once close() was called.
        """
        try:
            async for raw in ws:
                self.messages_received += 1
                try:
                    message = parse_server_message(raw)
                except LiveProtocolError as e:
                    self.messages_skipped += 1
                    self._log("LIVE_MESSAGE_SKIPPED", level="warning", error=str(e))
                    continue

                self._handle_message(message)
        except asyncio.CancelledError:
            return
        except ConnectionClosedError as e:
            if not self._closed:
                self._emit(ChannelError(
                    event_type=EventType.CHANNEL_ERROR,
                    ts_ms=now_ms(),
                    reason=f"live_closed_abnormally: {_describe_close(e)}",
                ))
            return
        except Exception as e:  # pylint: disable=broad-exception-caught
            self._log("LIVE_RECV_FAILED", level="error", error=repr(e))
            if not self._closed:
                self._emit(ChannelError(
                    event_type=EventType.CHANNEL_ERROR,
                    ts_ms=now_ms(),
                    reason=f"live_recv_failed: {e!r}",
                ))
            return

        if not self._closed:
            self._emit(ChannelClosed(
                event_type=EventType.CHANNEL_CLOSED,
                ts_ms=now_ms(),
                reason=_close_reason(ws),
            ))

    def _handle_message(self, message: ServerMessage) -> None:
        if self._closed:
            return

        if message.setup_complete and not self._opened:
            self._opened = True
            self._emit(ChannelOpened(
                event_type=EventType.CHANNEL_OPENED,
                ts_ms=now_ms(),
            ))

        if message.has_content:
            self._emit(ServerContent(
                event_type=EventType.SERVER_CONTENT,
                ts_ms=now_ms(),
                output_text=message.output_text,
                input_text=message.input_text,
                turn_complete=message.turn_complete,
                audio_pcm=message.audio_pcm,
            ))

    def _log(self, event_type: str, *, level: str = "info", **details: Any) -> None:
        log_event({
            "ts_ms": now_ms(),
            "event_type": event_type,
            "level": level,
            "session_id": self._session_id,
            "details": details,
        })


def _describe_close(exc: ConnectionClosed) -> str:
    frame = exc.rcvd
    if frame is None:
        return "no close frame"
    return f"{frame.code} {frame.reason}".strip()


def _close_reason(ws: Any) -> str | None:
    reason = getattr(ws, "close_reason", None)
    return reason or None
