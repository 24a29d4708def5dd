"""
Score book: points awarded per (user, problem), persisted as one JSON file.

File layout:
    {"users": {"<user_id>": {"score": 50, "completed": ["p1", "p2"]}}}

Awarding is idempotent: a problem already completed by a user is never
counted twice.
"""

from __future__ import annotations

import json
import threading
from pathlib import Path
from typing import Any

from constants import DEFAULT_PROBLEM_POINTS
from observability.logger import log_event, now_ms


class ScoreBook:
    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)
        self._lock = threading.Lock()
        self._users: dict[str, dict[str, Any]] | None = None

    def award(self, user_id: str, problem_id: str, points: int = DEFAULT_PROBLEM_POINTS) -> bool:
        """
        Credit points for a solved problem.

        Returns False (and changes nothing) if the user already completed
        the problem. Negative points are rejected with ValueError.
        """
        if points < 0:
            raise ValueError(f"points must be >= 0, got {points}")

        with self._lock:
            users = self._load()
            entry = users.setdefault(user_id, {"score": 0, "completed": []})
            if problem_id in entry["completed"]:
                log_event({
                    "ts_ms": now_ms(),
                    "event_type": "SCORE_AWARD_DUPLICATE",
                    "user_id": user_id,
                    "problem_id": problem_id,
                })
                return False

            entry["completed"].append(problem_id)
            entry["score"] += points
            self._save(users)

        log_event({
            "ts_ms": now_ms(),
            "event_type": "SCORE_AWARDED",
            "user_id": user_id,
            "problem_id": problem_id,
            "points": points,
            "score": entry["score"],
        })
        return True

    def score(self, user_id: str) -> int:
        with self._lock:
            entry = self._load().get(user_id)
        return int(entry["score"]) if entry else 0

    def completed(self, user_id: str) -> list[str]:
        with self._lock:
            entry = self._load().get(user_id)
        return list(entry["completed"]) if entry else []

    # ------------------------------------------------------------------
    # Storage
    # ------------------------------------------------------------------

    def _load(self) -> dict[str, dict[str, Any]]:
        if self._users is not None:
            return self._users

        if not self._path.exists():
            self._users = {}
            return self._users

        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            log_event({
                "ts_ms": now_ms(),
                "event_type": "SCORE_STORE_UNREADABLE",
                "level": "error",
                "path": str(self._path),
                "error": str(e),
            })
            raise

        users = data.get("users", {}) if isinstance(data, dict) else {}
        self._users = {
            str(user_id): {
                "score": int(entry.get("score", 0)),
                "completed": list(entry.get("completed", [])),
            }
            for user_id, entry in users.items()
            if isinstance(entry, dict)
        }
        return self._users

    def _save(self, users: dict[str, dict[str, Any]]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self._path.with_suffix(self._path.suffix + ".tmp")
        tmp.write_text(json.dumps({"users": users}, indent=2), encoding="utf-8")
        tmp.replace(self._path)
