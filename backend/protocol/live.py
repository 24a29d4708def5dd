# backend/protocol/live.py
"""
JSON message codec for the Gemini Live bidirectional stream.

Client -> Server:
    {"setup": {...}}                      first message on a new connection
    {"realtimeInput": {"mediaChunks": [{"mimeType": ..., "data": <base64>}]}}

Server -> Client (fields used here):
    {"setupComplete": {}}                 session accepted
    {"serverContent": {
        "outputTranscription": {"text": ...},
        "inputTranscription":  {"text": ...},
        "turnComplete": true,
        "modelTurn": {"parts": [{"inlineData": {"data": <base64 PCM16 24k>}}]}
    }}

One server message may carry several serverContent parts at once; each is
surfaced independently. Server messages may arrive as text or as UTF-8
bytes.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any

from audio.pcm import MalformedPayloadError, text_to_bytes
from constants import AUDIO_SAMPLE_WIDTH_BYTES, LIVE_RESPONSE_MODALITIES


# -------------------------
# Exceptions
# -------------------------

class LiveProtocolError(Exception):
    """
    Raised when an inbound message cannot be understood.

    The message is unsafe to apply and must be skipped; the session
    continues.
    """


# -------------------------
# Client -> Server
# -------------------------

def build_setup_message(
    *,
    model: str,
    system_instruction: str,
    voice: str,
    response_modalities: tuple[str, ...] = LIVE_RESPONSE_MODALITIES,
) -> dict[str, Any]:
    """
    Session configuration: audio out, both transcriptions, prebuilt voice.
    """
    if not model.startswith("models/"):
        model = f"models/{model}"

    return {
        "setup": {
            "model": model,
            "generationConfig": {
                "responseModalities": list(response_modalities),
                "speechConfig": {
                    "voiceConfig": {
                        "prebuiltVoiceConfig": {"voiceName": voice},
                    },
                },
            },
            "systemInstruction": {"parts": [{"text": system_instruction}]},
            "inputAudioTranscription": {},
            "outputAudioTranscription": {},
        }
    }


def build_realtime_input(*, data: str, mime_type: str) -> dict[str, Any]:
    return {
        "realtimeInput": {
            "mediaChunks": [{"mimeType": mime_type, "data": data}],
        }
    }


def encode_message(message: dict[str, Any]) -> str:
    return json.dumps(message, separators=(",", ":"))


# -------------------------
# Server -> Client
# -------------------------

@dataclass(frozen=True)
class ServerMessage:
    """
    Decoded server message. Fields absent from the wire are None / False.
    """
    setup_complete: bool = False
    output_text: str | None = None
    input_text: str | None = None
    turn_complete: bool = False
    audio_pcm: bytes | None = None

    @property
    def has_content(self) -> bool:
        return (
            self.output_text is not None
            or self.input_text is not None
            or self.turn_complete
            or self.audio_pcm is not None
        )


def _transcription_text(content: dict[str, Any], key: str) -> str | None:
    part = content.get(key)
    if part is None:
        return None
    if not isinstance(part, dict):
        raise LiveProtocolError(f"{key} is not an object")
    text = part.get("text")
    if text is None:
        return None
    if not isinstance(text, str):
        raise LiveProtocolError(f"{key}.text is not a string")
    return text


def _first_inline_audio(content: dict[str, Any]) -> bytes | None:
    turn = content.get("modelTurn")
    if turn is None:
        return None
    if not isinstance(turn, dict):
        raise LiveProtocolError("modelTurn is not an object")

    parts = turn.get("parts") or []
    if not isinstance(parts, list) or not parts:
        return None

    first = parts[0]
    if not isinstance(first, dict):
        raise LiveProtocolError("modelTurn.parts[0] is not an object")
    inline = first.get("inlineData")
    if not isinstance(inline, dict):
        return None
    data = inline.get("data")
    if data is None:
        return None
    if not isinstance(data, str):
        raise LiveProtocolError("inlineData.data is not a string")

    try:
        pcm = text_to_bytes(data)
    except MalformedPayloadError as e:
        raise LiveProtocolError(f"inlineData.data: {e}") from e

    if len(pcm) % AUDIO_SAMPLE_WIDTH_BYTES != 0:
        raise LiveProtocolError(f"PCM16 payload has odd length {len(pcm)}")
    return pcm or None


def parse_server_message(raw: str | bytes) -> ServerMessage:
    """
    Decode one inbound message.

    Raises:
        LiveProtocolError if the message is not valid JSON, not an object,
        or carries a malformed part.
    """
    if isinstance(raw, (bytes, bytearray)):
        try:
            raw = bytes(raw).decode("utf-8")
        except UnicodeDecodeError as e:
            raise LiveProtocolError(f"message is not UTF-8: {e}") from e

    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise LiveProtocolError(f"message is not JSON: {e}") from e

    if not isinstance(data, dict):
        raise LiveProtocolError("message is not a JSON object")

    setup_complete = "setupComplete" in data

    content = data.get("serverContent")
    if content is None:
        return ServerMessage(setup_complete=setup_complete)
    if not isinstance(content, dict):
        raise LiveProtocolError("serverContent is not an object")

    return ServerMessage(
        setup_complete=setup_complete,
        output_text=_transcription_text(content, "outputTranscription"),
        input_text=_transcription_text(content, "inputTranscription"),
        turn_complete=bool(content.get("turnComplete", False)),
        audio_pcm=_first_inline_audio(content),
    )
