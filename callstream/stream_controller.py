"""
Stream session controller for telephony audio WebSocket connections.

This module implements the server side of the /audio-stream protocol:
- Validate the call identifier and enforce the live-session ceiling
- Accept the connection and keep it alive with an application-level ping
- Decode inbound audio chunks and run them through the frame pipeline
- Tear sessions down on disconnect, transport error or inactivity

The StreamSessionController is the central component that ties the session
store, the recognition gateway, the AI stream factory and the notification
sink together for every call.
"""

import asyncio
import json
import logging
import time
from typing import Callable, List, Optional

from fastapi import WebSocket, WebSocketDisconnect
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from callstream.audio.frames import AudioFrame
from callstream.bot.ai_stream import AIStreamFactory, gemini_stream_factory
from callstream.bot.realtime_transcription import RealtimeTranscriptionProvider
from callstream.bot.recognition import RecognitionGateway
from callstream.bot.resilience import RetryPolicy
from callstream.config.constants import (
    CALL_ID_QUERY_PARAM,
    CLOSE_CODE_CAPACITY_EXCEEDED,
    CLOSE_CODE_INVALID_CALL_ID,
    HTTP_STATUS_CAPACITY_EXCEEDED,
    HTTP_STATUS_INVALID_CALL_ID,
    LOGGER_NAME,
)
from callstream.config.settings import StreamSettings
from callstream.errors import (
    CallIdValidationError,
    CapacityExceeded,
    TransportClosed,
    TransportError,
)
from callstream.handlers.frame_handlers import handle_audio_frame
from callstream.models.message_schemas import (
    AudioChunkMessage,
    ControlMessage,
    PingMessage,
    SessionSnapshot,
    StreamErrorMessage,
    is_valid_call_id,
)
from callstream.models.session import Session, SessionState
from callstream.models.session_store import SessionStore, transport_is_open
from callstream.services.notifications import (
    LoggingNotificationSink,
    NotificationSink,
    now_ms,
)
from callstream.services.personalities import PersonalityStore

logger = logging.getLogger(LOGGER_NAME)


def build_recognition_gateway(
    settings: StreamSettings, clock: Callable[[], float] = time.time
) -> RecognitionGateway:
    """Recognition gateway backed by OpenAI Realtime transcription."""
    provider = RealtimeTranscriptionProvider(
        api_key=settings.openai_api_key,
        model=settings.openai_transcription_model,
        language=settings.transcription_language,
    )
    return RecognitionGateway(
        provider,
        policy=RetryPolicy(
            max_retries=settings.recognition_max_retries,
            backoff_seconds=settings.recognition_retry_delay_seconds,
        ),
        idle_timeout_seconds=settings.recognition_idle_timeout_seconds,
        clock=clock,
    )


class StreamSessionController:
    """Owns the lifecycle of every call's audio stream.

    Frames of one call are processed strictly in order: the receive loop
    awaits each frame and the session lock serialises any other handler
    that touches the same session. Provider failures are reported through
    the notification sink and never end a call; only transport signals and
    the inactivity sweep do.
    """

    def __init__(
        self,
        settings: Optional[StreamSettings] = None,
        store: Optional[SessionStore] = None,
        recognition_gateway: Optional[RecognitionGateway] = None,
        notification_sink: Optional[NotificationSink] = None,
        personalities: Optional[PersonalityStore] = None,
        ai_stream_factory: Optional[AIStreamFactory] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.settings = settings or StreamSettings()
        self.clock = clock
        self.recognition_gateway = recognition_gateway or build_recognition_gateway(
            self.settings, clock
        )
        self.store = store or SessionStore(self.settings, self.recognition_gateway, clock)
        if self.store.recognition_gateway is None:
            self.store.recognition_gateway = self.recognition_gateway
        self.notification_sink = notification_sink or LoggingNotificationSink()
        self.personalities = personalities or PersonalityStore()
        self.ai_stream_factory = ai_stream_factory or gemini_stream_factory(self.settings)
        self._sweep_task: Optional[asyncio.Task] = None

    # Lifecycle

    async def start(self) -> None:
        """Start the periodic inactivity sweep."""
        if self._sweep_task is None:
            self._sweep_task = asyncio.create_task(self._sweep_loop())
            logger.info(
                f"Inactivity sweep started (every {self.settings.sweep_interval_seconds}s, "
                f"timeout {self.settings.inactivity_timeout_seconds}s)"
            )

    async def stop(self) -> None:
        """Stop the sweep and tear every live session down."""
        if self._sweep_task is not None:
            self._sweep_task.cancel()
            try:
                await self._sweep_task
            except asyncio.CancelledError:
                pass
            self._sweep_task = None

        await self.store.destroy_all(reason="shutdown")
        await self.recognition_gateway.close_all()
        await self.notification_sink.close()
        logger.info("Stream session controller stopped")

    # Connections

    async def open_session(self, call_id: Optional[str], websocket: WebSocket) -> Session:
        """
        Register a session for an incoming connection.

        Raises:
            CallIdValidationError: if the call id is missing or malformed
            CapacityExceeded: if the live-session ceiling is reached
        """
        if not is_valid_call_id(call_id):
            raise CallIdValidationError(f"Invalid call id: {call_id!r}")

        session = await self.store.create_session(call_id, websocket)
        if session is None:
            raise CapacityExceeded(
                f"Maximum concurrent calls ({self.settings.max_concurrent_calls}) reached"
            )
        return session

    async def handle_websocket(self, websocket: WebSocket) -> None:
        """Handle an audio stream connection throughout its lifecycle.

        Args:
            websocket: The FastAPI WebSocket connection object

        This method:
        1. Validates the callSid query parameter and reserves a session
        2. Accepts the connection and starts the liveness probe
        3. Processes inbound messages in a loop until the transport closes
        4. Destroys the session when the connection ends
        """
        call_id = websocket.query_params.get(CALL_ID_QUERY_PARAM)

        try:
            session = await self.open_session(call_id, websocket)
        except CallIdValidationError as e:
            logger.warning(f"Rejecting connection: {e}")
            await self._reject(
                websocket,
                CLOSE_CODE_INVALID_CALL_ID,
                HTTP_STATUS_INVALID_CALL_ID,
                "Invalid or missing callSid",
            )
            return
        except CapacityExceeded as e:
            logger.warning(f"Rejecting call {call_id}: {e}")
            await self._reject(
                websocket,
                CLOSE_CODE_CAPACITY_EXCEEDED,
                HTTP_STATUS_CAPACITY_EXCEEDED,
                "Maximum concurrent calls reached",
            )
            return

        await websocket.accept()
        session.probe_task = asyncio.create_task(self._liveness_probe(session))
        logger.info(f"Audio stream connected for call {call_id}")

        state = SessionState.CLOSING
        reason = "transport closed"
        try:
            while True:
                data = await websocket.receive_text()
                await self.handle_message(session, data)
        except WebSocketDisconnect as e:
            reason = f"transport closed (code {e.code})"
        except Exception as e:
            if session.is_live:
                logger.error(f"Error in audio stream for call {call_id}: {e}", exc_info=True)
                state = SessionState.ERRORED
                reason = f"transport error: {e}"
            else:
                logger.debug(f"Receive loop for destroyed call {call_id} ended: {e}")
        finally:
            await self.store.destroy_session(call_id, state, reason=reason, expected=session)
            logger.info(f"Audio stream closed for call {call_id}")

    async def _reject(self, websocket: WebSocket, close_code: int, status_code: int, reason: str) -> None:
        """Refuse a connection that never got a session.

        Servers that support the websocket.http.response extension get a plain
        HTTP error response in place of the handshake. Otherwise the socket is
        accepted and closed straight away so the client still sees the close
        code; a close before accept would reach it as a bare 403.
        """
        extensions = websocket.scope.get("extensions") or {}
        if "websocket.http.response" in extensions:
            await websocket.send_denial_response(
                JSONResponse({"error": reason}, status_code=status_code)
            )
            return
        await websocket.accept()
        await websocket.close(code=close_code, reason=reason)

    async def handle_message(self, session: Session, data: str) -> None:
        """Route one inbound text message to control handling or the frame pipeline."""
        call_id = session.call_id
        try:
            message = json.loads(data)
        except json.JSONDecodeError:
            logger.warning(f"Received invalid JSON for call {call_id}: {data[:100]}...")
            return

        if not isinstance(message, dict):
            logger.warning(f"Ignoring non-object message for call {call_id}")
            return

        if "event" in message:
            try:
                control = ControlMessage(**message)
            except ValidationError as e:
                logger.warning(f"Ignoring unknown control message for call {call_id}: {e}")
                return
            logger.debug(f"Received {control.event} for call {call_id}")
            self.store.touch(call_id)
            return

        try:
            chunk = AudioChunkMessage(**message)
            frame = AudioFrame.from_payload(call_id, chunk.payload, is_final=chunk.isFinal)
        except (ValueError, TypeError) as e:
            logger.warning(f"Invalid audio chunk for call {call_id}: {e}")
            await self._send_error(session, "Failed to process audio")
            return

        if chunk.metadata.callSid != call_id:
            logger.warning(
                f"Dropping chunk addressed to {chunk.metadata.callSid} on stream for call {call_id}"
            )
            return

        await self.process_frame(session, frame)

    async def process_frame(self, session: Session, frame: AudioFrame) -> None:
        """Run one frame through the pipeline under the session lock."""
        async with session.lock:
            if not session.is_live:
                return
            try:
                await handle_audio_frame(frame, session, self)
            except Exception as e:
                logger.error(f"Error processing audio for call {session.call_id}: {e}", exc_info=True)
                await self._send_error(session, "Failed to process audio")

    async def _send(self, session: Session, text: str) -> None:
        if not transport_is_open(session.transport):
            raise TransportClosed(f"Transport for call {session.call_id} is closed")
        try:
            await session.transport.send_text(text)
        except Exception as e:
            raise TransportError(f"Send failed for call {session.call_id}: {e}") from e

    async def _send_error(self, session: Session, error: str) -> None:
        try:
            await self._send(session, StreamErrorMessage(error=error).model_dump_json())
        except TransportError as e:
            logger.warning(f"Could not report error to call {session.call_id}: {e}")

    async def _liveness_probe(self, session: Session) -> None:
        """Send a ping every interval; replies are recorded by handle_message."""
        while session.is_live:
            await asyncio.sleep(self.settings.ping_interval_seconds)
            if not session.is_live:
                break
            try:
                await self._send(session, PingMessage(timestamp=now_ms()).model_dump_json())
            except TransportClosed:
                break
            except TransportError as e:
                logger.warning(f"Liveness probe failed for call {session.call_id}: {e}")

    # Sweep

    async def sweep_once(self) -> List[str]:
        """
        Destroy inactive sessions and close idle recognition streams.

        Returns:
            The call ids whose sessions were timed out
        """
        timed_out = []
        for call_id in self.store.list_session_ids():
            if not self.store.is_inactive(call_id):
                continue
            session = self.store.get_session(call_id)
            idle = self.clock() - session.last_activity_at if session else 0.0
            destroyed = await self.store.destroy_session(
                call_id,
                SessionState.TIMED_OUT,
                reason=f"no activity for {idle:.0f}s",
            )
            if destroyed:
                timed_out.append(call_id)

        for call_id in self.recognition_gateway.idle_stream_ids():
            logger.info(f"Closing idle speech stream for call {call_id}")
            await self.recognition_gateway.close_stream(call_id)

        if timed_out:
            logger.info(f"Sweep timed out {len(timed_out)} session(s): {', '.join(timed_out)}")
        return timed_out

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self.settings.sweep_interval_seconds)
            try:
                await self.sweep_once()
            except Exception as e:
                logger.error(f"Error during inactivity sweep: {e}", exc_info=True)

    # Observation and control

    async def set_personality(self, call_id: str, personality_id: str) -> bool:
        """
        Switch a live call to another personality.

        The call's AI stream is dropped so the next turn is generated with
        the new personality and the existing history.

        Returns:
            False if there is no live session for the call

        Raises:
            KeyError: if the personality is not registered
        """
        if not self.personalities.has(personality_id):
            raise KeyError(personality_id)

        session = self.store.get_session(call_id)
        if session is None:
            return False

        async with session.lock:
            if not session.is_live:
                return False
            session.context.personality_id = personality_id
            await session.ai.invalidate()

        logger.info(f"Call {call_id} switched to personality {personality_id}")
        return True

    def snapshot(self) -> List[SessionSnapshot]:
        snapshots = []
        for call_id in self.store.list_session_ids():
            session = self.store.get_session(call_id)
            if session is None:
                continue
            context = session.context
            snapshots.append(
                SessionSnapshot(
                    callId=call_id,
                    state=session.state.value,
                    personality=context.personality_id,
                    turnCount=context.turn_count,
                    historyLength=len(context.history),
                    hasAiStream=session.ai_stream is not None,
                    startedAt=context.started_at,
                    lastActivityAt=session.last_activity_at,
                    lastSpeechAt=session.last_speech_at,
                )
            )
        return snapshots
