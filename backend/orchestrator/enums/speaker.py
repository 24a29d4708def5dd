"""
Transcript speaker enumeration.
"""

from __future__ import annotations

from enum import Enum


class Speaker(str, Enum):
    """Which side of the conversation a transcript fragment belongs to."""

    USER = "user"
    REMOTE = "remote"
