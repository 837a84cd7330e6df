"""
Per-call session state.

A Session is the aggregate root for one phone call: it owns the VAD, the
conversation context, the AI stream handle and the transport. Its mutable
fields are only touched by the handlers for that call, which are serialised
through the session's lock.
"""

import asyncio
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, List, Optional

from fastapi import WebSocket

from callstream.audio.vad import VoiceActivityDetector
from callstream.bot.resilience import ResilientHandle

if TYPE_CHECKING:
    from callstream.bot.ai_stream import AIStream


class SessionState(str, Enum):
    CREATED = "created"
    ACTIVE = "active"
    CLOSING = "closing"
    TIMED_OUT = "timed_out"
    ERRORED = "errored"
    DESTROYED = "destroyed"


@dataclass
class ConversationContext:
    """Rolling conversational state for one call."""

    personality_id: str
    max_history_length: int = 10
    history: List[str] = field(default_factory=list)
    current_speech: str = ""
    last_response: str = ""
    started_at: float = field(default_factory=time.time)
    turn_count: int = 0

    def append_history(self, entry: str) -> None:
        """Append an utterance, evicting the oldest entries beyond the bound."""
        self.history.append(entry)
        overflow = len(self.history) - self.max_history_length
        if overflow > 0:
            del self.history[:overflow]


async def _close_ai_stream(stream: "AIStream") -> None:
    await stream.close()


class Session:
    """Complete mutable state and resources of one active call."""

    def __init__(
        self,
        call_id: str,
        transport: WebSocket,
        vad: VoiceActivityDetector,
        context: ConversationContext,
        now: float,
    ):
        self.call_id = call_id
        self.transport = transport
        self.vad = vad
        self.context = context
        self.ai: ResilientHandle["AIStream"] = ResilientHandle(
            name=f"ai-stream:{call_id}", closer=_close_ai_stream
        )
        self.state = SessionState.CREATED
        self.last_speech_at = now
        self.last_activity_at = now
        self.lock = asyncio.Lock()
        self.probe_task: Optional[asyncio.Task] = None

    @property
    def ai_stream(self) -> Optional["AIStream"]:
        return self.ai.current

    @property
    def is_live(self) -> bool:
        """False once teardown has started."""
        return self.state in (SessionState.CREATED, SessionState.ACTIVE)

    def __repr__(self) -> str:
        return f"Session(call_id={self.call_id!r}, state={self.state.value})"
