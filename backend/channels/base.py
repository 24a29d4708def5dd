"""
Remote conversational channel contract.

This module defines the *interface only*. The concrete Gemini Live
implementation lives in channels/gemini_live.py.

Key invariants:
- The channel emits session events (ChannelOpened, ServerContent,
  ChannelClosed, ChannelError) through the sink it was constructed with;
  it never calls the reducer or makes state transitions.
- ChannelOpened is emitted at most once, when the remote side confirms
  the session setup.
- After close() nothing more is emitted.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Callable

from orchestrator.events import Event


EmitEvent = Callable[[Event], None]


class RemoteChannel(ABC):
    """
    Abstract bidirectional channel to the remote conversational engine.

    Note: the emit callback is synchronous and must not block; the runtime
    queues events and processes them one at a time.

    Implementations are responsible for:
    - Connecting and sending the session configuration in open()
    - Decoding inbound messages into events (malformed ones are skipped)
    - Sending media chunks via send_realtime_input()

    Non-responsibilities:
    - No session lifecycle decisions
    - No retries or reconnection
    - No playback or capture
    """

    @abstractmethod
    async def open(self) -> None:
        """
        Connect and send the session configuration.

        Failures are reported as ChannelError through the sink; open()
        itself does not raise for network failures.
        """
        raise NotImplementedError

    @abstractmethod
    async def send_realtime_input(self, data: str, mime_type: str) -> bool:
        """
        Send one base64 media chunk.

        Returns False (and drops the chunk) if the channel is not open.
        Never raises for transport failures.
        """
        raise NotImplementedError

    @abstractmethod
    async def close(self) -> None:
        """
        Close the channel. Idempotent; safe while open() is still connecting.
        """
        raise NotImplementedError

    @property
    @abstractmethod
    def is_open(self) -> bool:
        """True once setup is confirmed and until close."""
        raise NotImplementedError
