"""
Runtime execution shell for a single interview session.

Responsibilities:
- Own session state
- Call pure reducer
- Execute commands with side effects (devices, channel, playback, timers)
- Convert device / channel / playback callbacks into events
- Serialize callback events through one inbox processed by a pump task
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Any, Callable, Coroutine

from audio.pcm import MalformedPayloadError
from audio.playback import PlaybackScheduler
from capture.pipeline import CapturePipeline
from constants import OUTPUT_SAMPLE_RATE_HZ, VIDEO_SNAPSHOT_INTERVAL_S
from devices.base import DeviceError
from observability.logger import log_event, now_ms
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
    CaptureError,
    ChannelError,
    DeviceAcquireFailed,
    DevicesAcquired,
    Event,
    EventType,
    ListeningChanged,
    PlaybackDrained,
)
from orchestrator.reducer import reduce
from orchestrator.state_dataclass import SessionState

if TYPE_CHECKING:
    from orchestrator.runtime_context import RuntimeExecutionContext


TIMER_VIDEO_SNAPSHOT = "video_snapshot"


class Runtime:
    """
    Runtime execution boundary for a single interview session.

    Responsibilities:
    - Own the authoritative session state
    - Act as the universal event sink for the session
      (controller calls, channel events, device and playback callbacks)
    - Invoke the pure reducer deterministically
    - Execute emitted commands with side effects
    - Own the snapshot timer and fire-and-forget send tasks

    Guarantees:
    - Reducer is always called exactly once per incoming event
    - State is updated before any side effects execute
    - Callback events are processed one at a time, in arrival order
    - Runtime never performs orchestration logic itself

    Entry points:
    - handle_event(): direct, awaited (controller start / stop / toggles)
    - post(): non-blocking, from callbacks; drained by the pump task
    """

    def __init__(
        self,
        *,
        initial_state: SessionState,
        context: RuntimeExecutionContext,
        snapshot_interval_s: float = VIDEO_SNAPSHOT_INTERVAL_S,
    ) -> None:
        self._state = initial_state
        self._ctx = context
        self._snapshot_interval_s = snapshot_interval_s

        self._timers: dict[str, asyncio.Task[None]] = {}
        self._tasks: set[asyncio.Task[Any]] = set()

        self._inbox: asyncio.Queue[Event] = asyncio.Queue()
        self._pump_task: asyncio.Task[None] | None = None

        self._acquire_error: DeviceError | None = None
        self.teardowns = 0

    @property
    def state(self) -> SessionState:
        """
        Return the current immutable session state.

        State is only replaced internally by Runtime via the reducer;
        consumers must treat it as read-only.
        """
        return self._state

    @property
    def acquire_error(self) -> DeviceError | None:
        """The device error that made start fail, if any."""
        return self._acquire_error

    # ------------------------------------------------------------------
    # Event entry points
    # ------------------------------------------------------------------

    async def handle_event(self, event: Event) -> None:
        """
        Process a single event through the orchestration pipeline.

        1. Pass the current state and event to the pure reducer
        2. Swap in the new state
        3. Execute all emitted commands sequentially, in emitted order
        """
        new_state, commands = reduce(self._state, event)
        self._state = new_state

        for cmd in commands:
            await self._execute_command(cmd)

    def post(self, event: Event) -> None:
        """
        Queue an event from a callback. Never blocks, never raises.

        Events posted after the pump has finished are dropped (logged).
        """
        if self._pump_task is None or self._pump_task.done():
            log_event({
                "ts_ms": now_ms(),
                "event_type": "EVENT_DROPPED",
                "level": "debug",
                "session_id": self._ctx.session_id,
                "dropped_event_type": event.event_type.value,
                "reason": "pump_not_running",
            })
            return
        self._inbox.put_nowait(event)

    def start_pump(self) -> None:
        if self._pump_task is None:
            self._pump_task = asyncio.create_task(self._pump())

    async def wait_closed(self) -> None:
        """Wait until the session has reached CLOSED and the pump exited."""
        task = self._pump_task
        if task is not None:
            await asyncio.gather(task, return_exceptions=True)

    async def shutdown(self) -> None:
        """
        Clean shutdown of runtime.

        Cancels the timer, send tasks and the pump and waits for them.
        Does not release devices; that is Teardown's job.
        """
        for timer_id in list(self._timers.keys()):
            self._cancel_timer(timer_id)

        pending = list(self._tasks)
        pump = self._pump_task
        if pump is not None and pump is not asyncio.current_task():
            pending.append(pump)

        for task in pending:
            if not task.done():
                task.cancel()

        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

    async def _pump(self) -> None:
        while True:
            event = await self._inbox.get()
            try:
                await self.handle_event(event)
            except Exception as e:  # pylint: disable=broad-exception-caught
                log_event({
                    "ts_ms": now_ms(),
                    "event_type": "RUNTIME_EVENT_FAILED",
                    "level": "error",
                    "session_id": self._ctx.session_id,
                    "failed_event_type": event.event_type.value,
                    "error": repr(e),
                })
            if self._state.phase is Phase.CLOSED:
                return

    # ------------------------------------------------------------------
    # Command execution (side effects)
    # ------------------------------------------------------------------

    async def _execute_command(self, cmd: Command) -> None:
        """Execute a single command with side effects."""

        if isinstance(cmd, LogEvent):
            log_event({
                **cmd.event,
                "session_id": self._ctx.session_id,
            })

        elif isinstance(cmd, AcquireDevices):
            await self._acquire_devices()

        elif isinstance(cmd, OpenChannel):
            try:
                channel = self._ctx.make_channel(self.post)
            except Exception as e:  # pylint: disable=broad-exception-caught
                await self.handle_event(ChannelError(
                    event_type=EventType.CHANNEL_ERROR,
                    ts_ms=now_ms(),
                    reason=f"channel_unavailable: {e}",
                ))
                return
            self._ctx.session.attach_channel(channel)
            await channel.open()

        elif isinstance(cmd, StartAudioCapture):
            stream = self._ctx.stream
            pipeline = self._ctx.pipeline
            if stream is None or pipeline is None:
                self._log_skip(cmd, "no_stream")
                return
            stream.start_audio(pipeline.on_audio_block, self._on_capture_error)

        elif isinstance(cmd, StartVideoTimer):
            self._start_periodic(
                timer_id=TIMER_VIDEO_SNAPSHOT,
                interval_s=self._snapshot_interval_s,
                on_tick=self._snapshot_tick,
            )

        elif isinstance(cmd, SchedulePlayback):
            self._schedule_playback(cmd.pcm_bytes)

        elif isinstance(cmd, NotifyUi):
            self._ctx.notify_ui(self._state, cmd.notice)

        elif isinstance(cmd, Teardown):
            await self._teardown(cmd.reason)

        else:
            log_event({
                "ts_ms": now_ms(),
                "event_type": "UNKNOWN_COMMAND",
                "level": "error",
                "session_id": self._ctx.session_id,
                "command_type": cmd.command_type.value,
            })

    async def _acquire_devices(self) -> None:
        try:
            stream = await self._ctx.devices.open_media()
        except DeviceError as e:
            await self._acquire_failed(e)
            return

        try:
            playback = self._ctx.devices.open_playback(OUTPUT_SAMPLE_RATE_HZ)
        except DeviceError as e:
            self._release_sync("stream", stream.stop)
            await self._acquire_failed(e)
            return

        pipeline = CapturePipeline(
            stream=stream,
            get_state=lambda: self._state,
            transmit=self._transmit,
            on_listening=self._on_listening,
        )
        self._ctx.session.attach_stream(stream, pipeline)

        scheduler = PlaybackScheduler(device=playback, on_drained=self._on_drained)
        self._ctx.session.attach_playback(playback, scheduler)

        # Dispatched even if the session closed meanwhile; the reducer
        # answers with another Teardown that releases these handles.
        await self.handle_event(DevicesAcquired(
            event_type=EventType.DEVICES_ACQUIRED,
            ts_ms=now_ms(),
        ))

    async def _acquire_failed(self, error: DeviceError) -> None:
        self._acquire_error = error
        await self.handle_event(DeviceAcquireFailed(
            event_type=EventType.DEVICE_ACQUIRE_FAILED,
            ts_ms=now_ms(),
            reason=str(error) or type(error).__name__,
        ))

    def _schedule_playback(self, pcm_bytes: bytes) -> None:
        scheduler = self._ctx.scheduler
        if scheduler is None:
            log_event({
                "ts_ms": now_ms(),
                "event_type": "PLAYBACK_SKIPPED",
                "level": "warning",
                "session_id": self._ctx.session_id,
                "reason": "no_scheduler",
            })
            return

        try:
            frame = scheduler.decode(pcm_bytes)
        except MalformedPayloadError as e:
            log_event({
                "ts_ms": now_ms(),
                "event_type": "PLAYBACK_DECODE_FAILED",
                "level": "warning",
                "session_id": self._ctx.session_id,
                "error": str(e),
            })
            return

        scheduled = scheduler.schedule(frame)
        log_event({
            "ts_ms": now_ms(),
            "event_type": "PLAYBACK_SCHEDULED",
            "level": "debug",
            "session_id": self._ctx.session_id,
            "index": scheduled.index,
            "start_s": scheduled.start_s,
            "duration_s": scheduled.duration_s,
        })

    async def _teardown(self, reason: str | None) -> None:
        """
        Release everything the session still holds, in a fixed order.

        Each handle is detached before it is released, so running this
        twice never releases anything twice.
        """
        self.teardowns += 1
        released: list[str] = []

        # 1. Video timer
        if TIMER_VIDEO_SNAPSHOT in self._timers:
            self._cancel_timer(TIMER_VIDEO_SNAPSHOT)
            released.append("video_timer")

        # 2. Remote channel
        channel = self._ctx.session.detach_channel()
        if channel is not None:
            await self._release("channel", channel.close())
            released.append("channel")

        # 3 + 4. Audio processing, then every media track
        stream = self._ctx.session.detach_stream()
        if stream is not None:
            self._release_sync("stream_audio", stream.stop_audio)
            self._release_sync("stream", stream.stop)
            released.append("stream")

        # 5 + 6. Playback active set, then the output device
        device, scheduler = self._ctx.session.detach_playback()
        if scheduler is not None:
            scheduler.clear()
            released.append("playback_active_set")
        if device is not None:
            self._release_sync("playback_device", device.close)
            released.append("playback_device")

        log_event({
            "ts_ms": now_ms(),
            "event_type": "TEARDOWN_EXECUTED",
            "session_id": self._ctx.session_id,
            "reason": reason,
            "released": released,
        })

        pump = self._pump_task
        if pump is not None and not pump.done() and pump is not asyncio.current_task():
            pump.cancel()

    async def _release(self, name: str, closing: Coroutine[Any, Any, None]) -> None:
        try:
            await closing
        except Exception as e:  # pylint: disable=broad-exception-caught
            self._log_release_failed(name, e)

    def _release_sync(self, name: str, release: Callable[[], None]) -> None:
        try:
            release()
        except Exception as e:  # pylint: disable=broad-exception-caught
            self._log_release_failed(name, e)

    def _log_release_failed(self, name: str, error: Exception) -> None:
        log_event({
            "ts_ms": now_ms(),
            "event_type": "RELEASE_FAILED",
            "level": "warning",
            "session_id": self._ctx.session_id,
            "handle": name,
            "error": repr(error),
        })

    def _log_skip(self, cmd: Command, reason: str) -> None:
        log_event({
            "ts_ms": now_ms(),
            "event_type": "COMMAND_SKIPPED",
            "level": "debug",
            "session_id": self._ctx.session_id,
            "command_type": cmd.command_type.value,
            "reason": reason,
        })

    # ------------------------------------------------------------------
    # Callback adapters (callbacks -> events / sends)
    # ------------------------------------------------------------------

    def _transmit(self, data: str, mime_type: str) -> None:
        channel = self._ctx.channel
        if channel is None:
            return
        self._spawn(channel.send_realtime_input(data, mime_type))

    def _on_listening(self, listening: bool) -> None:
        self.post(ListeningChanged(
            event_type=EventType.LISTENING_CHANGED,
            ts_ms=now_ms(),
            listening=listening,
        ))

    def _on_capture_error(self, reason: str) -> None:
        self.post(CaptureError(
            event_type=EventType.CAPTURE_ERROR,
            ts_ms=now_ms(),
            reason=reason,
        ))

    def _on_drained(self, buffers_scheduled: int) -> None:
        self.post(PlaybackDrained(
            event_type=EventType.PLAYBACK_DRAINED,
            ts_ms=now_ms(),
            buffers_scheduled=buffers_scheduled,
        ))

    def _snapshot_tick(self) -> None:
        pipeline = self._ctx.pipeline
        if pipeline is None:
            return
        self._spawn(pipeline.capture_snapshot())

    def _spawn(self, coro: Coroutine[Any, Any, Any]) -> None:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    # ------------------------------------------------------------------
    # Timer management
    # ------------------------------------------------------------------

    def _start_periodic(
        self,
        *,
        timer_id: str,
        interval_s: float,
        on_tick: Callable[[], None],
    ) -> None:
        """
        Start or replace a periodic timer.

        on_tick must not block; anything slow is spawned as its own task
        so a late tick never delays the next one.
        """
        self._cancel_timer(timer_id)

        async def _timer_task() -> None:
            try:
                while True:
                    await asyncio.sleep(interval_s)
                    on_tick()
            except asyncio.CancelledError:
                # Timer was cancelled - this is normal
                return

        self._timers[timer_id] = asyncio.create_task(_timer_task())

    def _cancel_timer(self, timer_id: str) -> None:
        """
        Cancel an in-flight timer if it exists.

        Idempotent: safe to call even if timer doesn't exist.
        """
        task = self._timers.pop(timer_id, None)
        if task is not None and not task.done():
            task.cancel()
