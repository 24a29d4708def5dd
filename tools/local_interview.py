#!/usr/bin/env python
"""
Run one interview on this machine's microphone, speaker and camera.

    GEMINI_API_KEY=... python tools/local_interview.py --candidate-name Asha

Session state is printed as it changes. Ctrl-C ends the interview.
"""

import argparse
import asyncio

from dotenv import load_dotenv

from channels.base import EmitEvent, RemoteChannel
from channels.gemini_live import GeminiLiveChannel
from channels.prompts import build_interviewer_prompt
from config import AppConfig
from devices.base import DeviceError
from devices.local import LocalDeviceSurface
from observability import logger
from orchestrator.state_dataclass import SessionState
from session.controller import InterviewController


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(description="Run a live interview with local devices")
    p.add_argument("--candidate-name", default="")
    p.add_argument("--camera-index", type=int, default=0)
    p.add_argument("--no-camera", action="store_true", help="Start with the camera toggled off")
    p.add_argument("--log-level", default="warning", help="Minimum log level (default: warning)")
    return p


def _print_state(state: SessionState, notice: str | None) -> None:
    flags = []
    if state.listening:
        flags.append("listening")
    if state.remote_speaking:
        flags.append("speaking")
    print(f"[{state.phase.value}] {' '.join(flags)}".rstrip())
    if state.remote_transcript.text:
        marker = "" if state.remote_transcript.is_final else "..."
        print(f"  interviewer: {state.remote_transcript.text}{marker}")
    if state.user_transcript.text:
        print(f"  you: {state.user_transcript.text}")
    if notice:
        print(f"  ! {notice}")


async def main(argv: list[str] | None = None) -> None:
    args = build_parser().parse_args(argv)

    config = AppConfig.load_from_env()
    logger.configure(level=args.log_level, json_lines=False)
    if not config.gemini_api_key:
        raise SystemExit("GEMINI_API_KEY is not set")

    def channel_factory(emit: EmitEvent, session_id: str) -> RemoteChannel:
        return GeminiLiveChannel(
            emit=emit,
            api_key=config.gemini_api_key or "",
            system_instruction=build_interviewer_prompt(args.candidate_name),
            model=config.live_model,
            voice=config.live_voice,
            url=config.live_ws_url,
            session_id=session_id,
        )

    controller = InterviewController(
        devices=LocalDeviceSurface(camera_index=args.camera_index),
        channel_factory=channel_factory,
        on_state=_print_state,
    )
    if args.no_camera:
        await controller.set_camera(False)

    try:
        await controller.start()
    except DeviceError as e:
        raise SystemExit(f"Devices unavailable: {e}") from e

    try:
        await controller.wait_closed()
    finally:
        await controller.stop(reason="user_stop")


if __name__ == "__main__":
    load_dotenv()
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        raise SystemExit(0)
