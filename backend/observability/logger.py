"""
JSONL event logger.

- One JSON object per line
- Output to stdout
- No buffering, no batching
- Minimum level gate read once from LOG_LEVEL
"""

from __future__ import annotations

import json
import os
import sys
import time
from typing import Any, Callable, Mapping


_LEVELS: dict[str, int] = {"debug": 10, "info": 20, "warning": 30, "error": 40}


# ------------------------------------------------------------------
# Explicit output sink (patchable in tests)
# ------------------------------------------------------------------

def _stdout_print(line: str) -> None:
    sys.stdout.write(line + "\n")
    sys.stdout.flush()

_print: Callable[[str], None] = _stdout_print

_min_level: int = _LEVELS.get(os.getenv("LOG_LEVEL", "info").lower(), 20)
_json_lines: bool = True


def configure(*, level: str, json_lines: bool = True) -> None:
    """
    Set the minimum level written and the line format.

    Unknown level names fall back to info. With json_lines=False each event
    is rendered as "event_type key=value ..." for local reading.
    """
    global _min_level, _json_lines  # pylint: disable=global-statement
    _min_level = _LEVELS.get(level.lower(), 20)
    _json_lines = json_lines


def _plain(event: Mapping[str, Any]) -> str:
    head = str(event.get("event_type", "EVENT"))
    rest = " ".join(
        f"{key}={value}" for key, value in event.items() if key != "event_type"
    )
    return f"{head} {rest}" if rest else head


def now_ms() -> int:
    """Wall-clock timestamp for log correlation."""
    return time.time_ns() // 1_000_000


def log_event(event: Mapping[str, Any]) -> None:
    """
    Write a single JSONL event to stdout.

    The caller is responsible for:
    - Supplying a fully-formed event dict
    - Including ts_ms, session_id, phase, etc.

    Events may carry an optional "level" key (debug | info | warning |
    error, default info). Events below the configured level are dropped.

    This function:
    - Serializes to JSON
    - Writes exactly one line
    - Flushes immediately (no buffering)
    - Never raises
    """
    level = _LEVELS.get(str(event.get("level", "info")), 20)
    if level < _min_level:
        return

    if not _json_lines:
        _print(_plain(event))
        return

    try:
        line = json.dumps(event, ensure_ascii=False, separators=(",", ":"))
    except (TypeError, ValueError) as e:
        # Logging must never crash the runtime
        fallback: dict[str, Any] = {
            "ts_ms": event.get("ts_ms"),
            "event_type": "LOGGER_SERIALIZATION_ERROR",
            "error": str(e),
            "original_event_repr": repr(event),
        }
        line = json.dumps(fallback, ensure_ascii=False, separators=(",", ":"))

    _print(line)
