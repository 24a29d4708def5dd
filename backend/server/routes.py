"""
Route registration for the interview hall API.

Responsibilities:
- Define HTTP and WebSocket endpoints
- Wire gateway to WebSocket lifecycle
- Pull dependencies from app.state
"""

from __future__ import annotations

import asyncio
import json
from typing import Any

from fastapi import FastAPI, HTTPException, WebSocket, WebSocketDisconnect
from pydantic import BaseModel, Field

from constants import DEFAULT_PROBLEM_POINTS
from observability.logger import log_event, now_ms
from services.judge_service import CodeJudge, TestCase, TutorService
from session.gateway import InterviewGateway


# ------------------------------------------------------------------
# Request bodies
# ------------------------------------------------------------------

class TestCaseBody(BaseModel):
    input: str = ""
    expected_output: str = ""
    is_hidden: bool = False


class JudgeRequest(BaseModel):
    code: str
    language: str
    test_cases: list[TestCaseBody]


class RunRequest(BaseModel):
    code: str
    language: str
    stdin: str = ""


class TutorRequest(BaseModel):
    question: str
    context: str = ""


class AwardRequest(BaseModel):
    user_id: str
    problem_id: str
    points: int = Field(default=DEFAULT_PROBLEM_POINTS, ge=0)


def register_routes(app: FastAPI) -> None:
    """Register all routes on the FastAPI app."""
    @app.get("/health")
    async def health() -> dict[str, str]: # pyright: ignore[reportUnusedFunction]
        return {"status": "ok"}

    # -------------------------
    # Code lab
    # -------------------------

    @app.post("/judge")
    async def judge(body: JudgeRequest) -> dict[str, Any]: # pyright: ignore[reportUnusedFunction]
        code_judge: CodeJudge = _require(app.state.judge)
        results = await code_judge.validate_solution(
            body.code,
            body.language,
            [
                TestCase(input=tc.input, expected_output=tc.expected_output, is_hidden=tc.is_hidden)
                for tc in body.test_cases
            ],
        )
        return {
            "results": [r.to_dict() for r in results],
            "passed": sum(1 for r in results if r.passed),
            "total": len(results),
        }

    @app.post("/run")
    async def run(body: RunRequest) -> dict[str, str]: # pyright: ignore[reportUnusedFunction]
        code_judge: CodeJudge = _require(app.state.judge)
        output = await code_judge.run_code(body.code, body.language, body.stdin)
        return {"output": output}

    @app.post("/tutor")
    async def tutor(body: TutorRequest) -> dict[str, str]: # pyright: ignore[reportUnusedFunction]
        tutor_service: TutorService = _require(app.state.tutor)
        answer = await tutor_service.answer(body.question, body.context)
        return {"answer": answer}

    @app.post("/scores/award")
    async def award(body: AwardRequest) -> dict[str, Any]: # pyright: ignore[reportUnusedFunction]
        scorebook = app.state.scorebook
        awarded = scorebook.award(body.user_id, body.problem_id, body.points)
        return {
            "user_id": body.user_id,
            "awarded": awarded,
            "score": scorebook.score(body.user_id),
        }

    @app.get("/scores/{user_id}")
    async def score(user_id: str) -> dict[str, Any]: # pyright: ignore[reportUnusedFunction]
        scorebook = app.state.scorebook
        return {
            "user_id": user_id,
            "score": scorebook.score(user_id),
            "completed": scorebook.completed(user_id),
        }

    # -------------------------
    # Live interview
    # -------------------------

    @app.websocket("/ws/interview")
    async def interview_endpoint(ws: WebSocket) -> None: # pyright: ignore[reportUnusedFunction]
        await ws.accept()

        gateway = InterviewGateway(
            config=app.state.config,
            channel_factory=app.state.channel_factory,
        )
        writer = asyncio.create_task(_write_outbound(ws, gateway))

        try:
            await gateway.on_ws_connect()

            while True:
                msg = await ws.receive()

                if msg["type"] == "websocket.disconnect":
                    raise WebSocketDisconnect()

                if msg.get("text") is not None:
                    await gateway.on_json_message(msg["text"])

                elif msg.get("bytes") is not None:
                    await gateway.on_binary_message(msg["bytes"])

        except WebSocketDisconnect:
            await gateway.on_ws_disconnect(reason="client_disconnect")

        except Exception as exc:  # pylint: disable=broad-exception-caught
            state = gateway.controller.state
            log_event({
                "ts_ms": now_ms(),
                "event_type": "WS_FATAL_ERROR",
                "level": "error",
                "session_id": state.session_id if state else None,
                "exception": type(exc).__name__,
                "message": str(exc),
            })
            await gateway.on_ws_disconnect(reason="server_error")

        finally:
            writer.cancel()
            await asyncio.gather(writer, return_exceptions=True)


def _require(service: Any) -> Any:
    if service is None:
        raise HTTPException(status_code=503, detail="LLM provider is not configured")
    return service


async def _write_outbound(ws: WebSocket, gateway: InterviewGateway) -> None:
    """
    Single writer for the socket: JSON control messages and binary frames
    leave in the order the gateway produced them.
    """
    try:
        while True:
            item = await gateway.next_outbound()
            if isinstance(item, bytes):
                await ws.send_bytes(item)
            else:
                await ws.send_text(json.dumps(item))
    except (WebSocketDisconnect, RuntimeError):
        # Socket already closed; the reader side handles teardown.
        return
