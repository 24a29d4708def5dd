"""
Authoritative session phase enumeration.

Rules:
- This enum defines ONLY the lifecycle phases of one interview session.
- No behavior, no helper methods, no side effects.
- Transitions are defined exclusively in the reducer.
"""

from __future__ import annotations

from enum import Enum


class Phase(str, Enum):
    """
    Lifecycle of a single interview session.

    IDLE:
        Created, nothing acquired yet.

    CONNECTING:
        Devices and the remote channel are being established.

    ACTIVE:
        Remote channel confirmed open; media flows both ways.

    CLOSED:
        Terminal. Every device handle has been released.
    """

    IDLE = "IDLE"
    CONNECTING = "CONNECTING"
    ACTIVE = "ACTIVE"
    CLOSED = "CLOSED"
