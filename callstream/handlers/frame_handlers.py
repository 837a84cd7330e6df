"""
Per-frame processing for live call sessions.

This module implements the pipeline every inbound audio frame goes through
(VAD, speech recognition, transcript notifications) and the finalize-turn
procedure that turns a completed caller utterance into a streamed AI reply.
Both run under the session's lock, so a call's context is never mutated by
two frames at once.
"""

import logging
from typing import TYPE_CHECKING

from callstream.audio.frames import AudioFrame
from callstream.config.constants import (
    EVENT_AI_RESPONSE_COMPLETE,
    EVENT_AI_RESPONSE_ERROR,
    EVENT_AI_RESPONSE_PARTIAL,
    EVENT_SPEECH_ERROR,
    EVENT_SPEECH_RECOGNIZED,
    FALLBACK_GENERATION_ERROR,
    LOGGER_NAME,
    USER_HISTORY_PREFIX,
)
from callstream.errors import RecognitionTransientError
from callstream.models.session import Session
from callstream.services.notifications import publish

if TYPE_CHECKING:
    from callstream.stream_controller import StreamSessionController

logger = logging.getLogger(LOGGER_NAME)


async def handle_audio_frame(
    frame: AudioFrame,
    session: Session,
    controller: "StreamSessionController",
) -> None:
    """
    Run one frame through VAD and, when it carries speech, the recognizer.

    A final transcript finalizes the turn. When the recognizer never marks a
    result final, buffered interim text is finalized once the caller has
    been silent past the silence threshold, or when the frame is flagged as
    the last of the caller's audio.

    Args:
        frame: Decoded audio frame
        session: Session the frame belongs to
        controller: Controller providing the store, gateway and sink
    """
    call_id = session.call_id
    context = session.context
    sink = controller.notification_sink

    controller.store.touch(call_id)
    vad_result = session.vad.analyze(frame.samples)
    now = controller.clock()

    if vad_result.is_speech:
        session.last_speech_at = now
        try:
            result = await controller.recognition_gateway.process_chunk(call_id, frame)
        except RecognitionTransientError as e:
            logger.error(f"Speech recognition error for call {call_id}: {e}")
            await publish(sink, call_id, EVENT_SPEECH_ERROR, {"error": "Speech recognition failed"})
            result = None

        if result is not None and session.is_live:
            await publish(
                sink,
                call_id,
                EVENT_SPEECH_RECOGNIZED,
                {
                    "text": result.text,
                    "isFinal": result.is_final,
                    "confidence": result.confidence,
                },
            )
            if result.is_final:
                context.current_speech = ""
                if result.text.strip():
                    await finalize_turn(result.text, session, controller)
            else:
                context.current_speech = result.text
    else:
        silence_ms = (now - session.last_speech_at) * 1000
        if context.current_speech and silence_ms > controller.settings.silence_finalize_ms:
            logger.debug(f"Finalizing buffered speech for call {call_id} after {silence_ms:.0f}ms of silence")
            await finalize_turn(context.current_speech, session, controller)
            context.current_speech = ""

    if frame.is_final and context.current_speech and session.is_live:
        await finalize_turn(context.current_speech, session, controller)
        context.current_speech = ""


async def finalize_turn(
    text: str,
    session: Session,
    controller: "StreamSessionController",
) -> None:
    """
    Record a completed caller utterance and stream the AI reply for it.

    The AI stream is created on first use with the call's personality and
    history. A stream that failed is closed and dropped so the next turn
    starts from a fresh one. Replies for a session torn down mid-generation
    are discarded.
    """
    call_id = session.call_id
    context = session.context
    sink = controller.notification_sink

    context.append_history(f"{USER_HISTORY_PREFIX}{text}")
    personality = controller.personalities.get(context.personality_id)

    delivered = False

    async def on_chunk(chunk: str) -> None:
        nonlocal delivered
        if not session.is_live:
            return
        delivered = True
        await publish(
            sink,
            call_id,
            EVENT_AI_RESPONSE_PARTIAL,
            {"text": chunk, "turnCount": context.turn_count},
        )

    if not session.is_live:
        logger.info(f"Skipping AI response for closed call {call_id}")
        return

    try:
        ai_stream = await session.ai.acquire(
            lambda: controller.ai_stream_factory(personality, list(context.history))
        )
    except Exception as e:
        if session.ai.closed:
            logger.info(f"Call {call_id} closed while its AI stream was starting")
            return
        logger.error(f"Failed to initialize AI stream for call {call_id}: {e}", exc_info=True)
        await on_chunk(FALLBACK_GENERATION_ERROR)
        await publish(sink, call_id, EVENT_AI_RESPONSE_ERROR, {"error": "Failed to initialize AI stream"})
        return

    try:
        response = await ai_stream.stream_response(text, on_chunk)
    except Exception as e:
        logger.error(f"Error generating AI response for call {call_id}: {e}", exc_info=True)
        if not delivered:
            await on_chunk(FALLBACK_GENERATION_ERROR)
        await publish(sink, call_id, EVENT_AI_RESPONSE_ERROR, {"error": "Failed to generate response"})
        await session.ai.invalidate()
        return

    if not session.is_live:
        logger.info(f"Discarding AI response for closed call {call_id}")
        return

    if ai_stream.failed:
        await publish(sink, call_id, EVENT_AI_RESPONSE_ERROR, {"error": "Failed to generate response"})
        await session.ai.invalidate()

    context.last_response = response
    context.turn_count += 1
    await publish(sink, call_id, EVENT_AI_RESPONSE_COMPLETE, {"turnCount": context.turn_count})
