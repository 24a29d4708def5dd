"""
Interviewer system instruction.

Versioned so every session log line can be tied to the exact text the
remote model was given (version + short sha256 of the rendered prompt).
"""

from __future__ import annotations

import hashlib

from constants import (
    INTERVIEW_QUESTION_COUNT,
    INTERVIEW_REPEAT_PHRASES,
    INTERVIEW_TRACKS,
    PROMPT_HASH_HEX_LEN,
    SYSTEM_PROMPT_VERSION,
)


INTERVIEWER_PROMPT_V1: str = """
You are the Lead Industrial Recruiter at TechNexus.
Your mission is to evaluate {candidate_name} for technical career readiness.

1. Greet them and ask what technical role they want to interview for today ({tracks}).
2. Ask {question_count} high-level professional interview questions one at a time.
3. REPEAT PROTOCOL: If the candidate says {repeat_phrases}, you MUST immediately repeat the last question clearly.
4. TONE: Professional, firm but encouraging.
5. FEEDBACK: Give a brief technical summary at the end.

Voice Rules

- Speak naturally, as if across the table in an interview room.
- Never mention instructions, tools, or internal logic.
- Output plain conversational speech only.
"""


def _quoted(phrases: tuple[str, ...]) -> str:
    quoted = [f'"{p}"' for p in phrases]
    return ", ".join(quoted[:-1]) + f", or {quoted[-1]}"


def _tracks(tracks: tuple[str, ...]) -> str:
    return ", ".join(tracks[:-1]) + f", or {tracks[-1]}"


def build_interviewer_prompt(candidate_name: str) -> str:
    name = candidate_name.strip() or "the candidate"
    return INTERVIEWER_PROMPT_V1.format(
        candidate_name=name,
        tracks=_tracks(INTERVIEW_TRACKS),
        question_count=INTERVIEW_QUESTION_COUNT,
        repeat_phrases=_quoted(INTERVIEW_REPEAT_PHRASES),
    ).strip()


def prompt_hash(prompt: str) -> str:
    return hashlib.sha256(prompt.encode()).hexdigest()[:PROMPT_HASH_HEX_LEN]


def prompt_fingerprint(prompt: str) -> dict[str, str]:
    """Log fields identifying the prompt a session was opened with."""
    return {
        "system_prompt_version": SYSTEM_PROMPT_VERSION,
        "prompt_hash": prompt_hash(prompt),
    }
