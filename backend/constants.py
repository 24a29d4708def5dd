"""
CONSTANTS
---------
Single source of truth for all behavioral constants of the interview backend.

Rules:
- If changing a value changes runtime behavior, it belongs here.
- No magic numbers elsewhere in the codebase.
- Other modules MUST import from this file.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Final, Tuple

# =============================================================================
# Audio Format (PCM16 mono; 16kHz up, 24kHz down)
# =============================================================================

INPUT_SAMPLE_RATE_HZ: Final[int] = 16_000
OUTPUT_SAMPLE_RATE_HZ: Final[int] = 24_000
AUDIO_CHANNELS: Final[int] = 1
AUDIO_SAMPLE_WIDTH_BYTES: Final[int] = 2  # PCM16 (signed 16-bit)

# float <-> int16 scale factor
PCM16_SCALE: Final[float] = 32768.0
PCM16_MIN: Final[int] = -32768
PCM16_MAX: Final[int] = 32767

# Capture callback block (samples per block at INPUT_SAMPLE_RATE_HZ)
CAPTURE_BLOCK_SIZE: Final[int] = 4096

# Mime types understood by the remote channel
AUDIO_INPUT_MIME: Final[str] = f"audio/pcm;rate={INPUT_SAMPLE_RATE_HZ}"
SNAPSHOT_MIME: Final[str] = "image/jpeg"

# =============================================================================
# Activity (loudness) indicator
# =============================================================================

LISTENING_RMS_THRESHOLD: Final[float] = 0.01

# =============================================================================
# Video snapshots
# =============================================================================

VIDEO_SNAPSHOT_INTERVAL_S: Final[float] = 1.5
SNAPSHOT_WIDTH: Final[int] = 320
SNAPSHOT_HEIGHT: Final[int] = 240
SNAPSHOT_JPEG_QUALITY: Final[int] = 40

# =============================================================================
# Remote conversational channel (Gemini Live)
# =============================================================================

LIVE_WS_URL_DEFAULT: Final[str] = (
    "wss://generativelanguage.googleapis.com/ws/"
    "google.ai.generativelanguage.v1beta.GenerativeService.BidiGenerateContent"
)
LIVE_MODEL_DEFAULT: Final[str] = "gemini-2.5-flash-native-audio-preview-09-2025"
LIVE_VOICE_DEFAULT: Final[str] = "Puck"
LIVE_RESPONSE_MODALITIES: Final[Tuple[str, ...]] = ("AUDIO",)
LIVE_MAX_MESSAGE_BYTES: Final[int] = 2**22
LIVE_CLOSE_TIMEOUT_S: Final[float] = 2.0

# =============================================================================
# Interview script
# =============================================================================

INTERVIEW_QUESTION_COUNT: Final[int] = 5
INTERVIEW_TRACKS: Final[Tuple[str, ...]] = (
    "Python", "Machine Learning", "Artificial Intelligence", "Java", "C",
)
INTERVIEW_REPEAT_PHRASES: Final[Tuple[str, ...]] = (
    "repeat", "pardon", "what?", "say that again", "didn't catch that",
)
SYSTEM_PROMPT_VERSION: Final[str] = "v1"
PROMPT_HASH_HEX_LEN: Final[int] = 8

# =============================================================================
# Browser device surface (WebSocket binary frames)
# =============================================================================

# Client -> Server
FRAME_KIND_MIC_PCM: Final[int] = 0x01
FRAME_KIND_CAMERA_JPEG: Final[int] = 0x02

# Server -> Client
FRAME_KIND_PLAYBACK_PCM: Final[int] = 0x11

FRAME_KIND_BYTES: Final[int] = 1
PLAYBACK_START_BYTES: Final[int] = 8  # f64 little-endian, seconds

DEVICE_PERMISSION_TIMEOUT_S: Final[float] = 30.0
DEVICE_DENIED_NOTICE: Final[str] = (
    "Please allow camera and microphone access to enter the hall."
)

# =============================================================================
# Grading / scoring collaborator
# =============================================================================

JUDGE_ERROR_OUTPUT: Final[str] = "Judge Error"
JUDGE_MISSING_OUTPUT: Final[str] = "Error"
RUN_UNAVAILABLE_OUTPUT: Final[str] = "Execution unavailable."
RUN_EMPTY_OUTPUT: Final[str] = "No output."
TUTOR_ERROR_OUTPUT: Final[str] = "Error generating response."
TUTOR_EMPTY_OUTPUT: Final[str] = "I couldn't generate a response."
DEFAULT_PROBLEM_POINTS: Final[int] = 25

# =============================================================================
# Helper Functions
# =============================================================================

def samples_to_seconds(num_samples: int, sample_rate_hz: int) -> float:
    """
    Convert a sample count to a duration in seconds.

    Defensive behavior:
    - Non-positive input returns 0.0 instead of propagating an error.
    """
    if num_samples <= 0 or sample_rate_hz <= 0:
        return 0.0
    return num_samples / sample_rate_hz


# =============================================================================
# Convenience Bundles
# =============================================================================

@dataclass(frozen=True)
class AudioFormat:
    """
    Immutable bundle describing a PCM audio format.

    This is a convenience wrapper for passing format metadata around;
    it is NOT a second source of truth.
    """
    sample_rate_hz: int
    channels: int = AUDIO_CHANNELS
    sample_width_bytes: int = AUDIO_SAMPLE_WIDTH_BYTES

    @property
    def mime_type(self) -> str:
        """Return the channel mime type for this format."""
        return f"audio/pcm;rate={self.sample_rate_hz}"


INPUT_AUDIO_FORMAT: Final[AudioFormat] = AudioFormat(sample_rate_hz=INPUT_SAMPLE_RATE_HZ)
OUTPUT_AUDIO_FORMAT: Final[AudioFormat] = AudioFormat(sample_rate_hz=OUTPUT_SAMPLE_RATE_HZ)
