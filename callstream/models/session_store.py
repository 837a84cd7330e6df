"""
Session registry and lifecycle management.

This module provides the SessionStore class, the single owner of the
callId -> Session mapping. It enforces the live-session ceiling, keeps the
activity timestamps used by the inactivity sweep, and implements the one
idempotent teardown path every terminal transition goes through.
"""

import asyncio
import logging
import time
from typing import TYPE_CHECKING, Callable, Dict, List, Optional

from fastapi import WebSocket
from starlette.websockets import WebSocketState

from callstream.audio.vad import VoiceActivityDetector
from callstream.config.constants import CLOSE_CODE_NORMAL, LOGGER_NAME
from callstream.config.settings import StreamSettings
from callstream.models.session import (
    ConversationContext,
    Session,
    SessionState,
)

if TYPE_CHECKING:
    from callstream.bot.recognition import RecognitionGateway

logger = logging.getLogger(LOGGER_NAME)


def transport_is_open(transport: WebSocket) -> bool:
    """True while both sides of the WebSocket still consider it connected."""
    return (
        getattr(transport, "client_state", None) == WebSocketState.CONNECTED
        and getattr(transport, "application_state", None) == WebSocketState.CONNECTED
    )


class SessionStore:
    """
    Registry of live call sessions.

    A second connection for a call id that already has a live session
    replaces it: the old session is destroyed before the new one is
    registered, so the capacity check only ever counts live calls.
    """

    def __init__(
        self,
        settings: Optional[StreamSettings] = None,
        recognition_gateway: Optional["RecognitionGateway"] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.settings = settings or StreamSettings()
        self.recognition_gateway = recognition_gateway
        self.clock = clock
        self._sessions: Dict[str, Session] = {}
        self._create_lock = asyncio.Lock()

    @property
    def active_count(self) -> int:
        return len(self._sessions)

    async def create_session(self, call_id: str, transport: WebSocket) -> Optional[Session]:
        """
        Create and register a session for a call.

        Args:
            call_id: Unique identifier of the call
            transport: The duplex audio connection owned by the session

        Returns:
            The new Session, or None if the live-session ceiling is reached
        """
        async with self._create_lock:
            existing = self._sessions.get(call_id)
            if existing is not None:
                logger.warning(f"Replacing existing session for call {call_id}")
                await self.destroy_session(
                    call_id, SessionState.CLOSING, reason="replaced by new connection"
                )

            if len(self._sessions) >= self.settings.max_concurrent_calls:
                logger.warning(
                    f"Rejecting call {call_id}: {len(self._sessions)} live sessions "
                    f"(limit {self.settings.max_concurrent_calls})"
                )
                return None

            now = self.clock()
            session = Session(
                call_id=call_id,
                transport=transport,
                vad=VoiceActivityDetector(
                    silence_threshold=self.settings.vad_silence_threshold,
                    max_buffer_size=self.settings.vad_buffer_size,
                ),
                context=ConversationContext(
                    personality_id=self.settings.default_personality,
                    max_history_length=self.settings.max_history_length,
                    started_at=now,
                ),
                now=now,
            )
            self._sessions[call_id] = session
            logger.info(f"Session created for call {call_id} ({len(self._sessions)} live)")
            return session

    def get_session(self, call_id: str) -> Optional[Session]:
        return self._sessions.get(call_id)

    def touch(self, call_id: str) -> None:
        """Record activity (inbound frame or keepalive) for a call."""
        session = self._sessions.get(call_id)
        if session is None:
            return
        session.last_activity_at = self.clock()
        if session.state == SessionState.CREATED:
            session.state = SessionState.ACTIVE

    def is_inactive(self, call_id: str) -> bool:
        """True if the call has been silent past the timeout (or is unknown)."""
        session = self._sessions.get(call_id)
        if session is None:
            return True
        idle = self.clock() - session.last_activity_at
        return idle > self.settings.inactivity_timeout_seconds

    def list_session_ids(self) -> List[str]:
        return list(self._sessions.keys())

    async def destroy_session(
        self,
        call_id: str,
        state: SessionState = SessionState.CLOSING,
        reason: str = "",
        expected: Optional[Session] = None,
    ) -> bool:
        """
        Tear a session down and release its resources.

        Closes the AI stream, closes the transport if still open and closes
        the recognition stream for the call, then forgets the session.
        Calling it again for the same call is a no-op.

        Args:
            call_id: Call to destroy
            state: Terminal state recorded before teardown
            reason: Human readable reason for the logs
            expected: Only destroy if the registered session is this one

        Returns:
            True if a session was destroyed by this call
        """
        session = self._sessions.get(call_id)
        if session is None or (expected is not None and session is not expected):
            return False
        del self._sessions[call_id]

        session.state = state
        logger.info(
            f"Destroying session for call {call_id} ({state.value}"
            + (f": {reason}" if reason else "")
            + ")"
        )

        probe = session.probe_task
        if probe is not None and probe is not asyncio.current_task():
            probe.cancel()
        session.probe_task = None

        await session.ai.close()

        if transport_is_open(session.transport):
            try:
                await session.transport.close(code=CLOSE_CODE_NORMAL)
            except Exception as e:
                logger.warning(f"Error closing transport for call {call_id}: {e}")

        if self.recognition_gateway is not None:
            await self.recognition_gateway.close_stream(call_id)

        session.state = SessionState.DESTROYED
        return True

    async def destroy_all(self, reason: str = "shutdown") -> None:
        for call_id in self.list_session_ids():
            await self.destroy_session(call_id, SessionState.CLOSING, reason=reason)
