import asyncio
import base64
import json
import logging
import time
from typing import Dict, List, Optional

import websockets
from websockets.exceptions import ConnectionClosed, ConnectionClosedOK

from callstream.bot.recognition import (
    RecognitionProvider,
    RecognitionResult,
    RecognitionStream,
)
from callstream.config.constants import LOGGER_NAME
from callstream.errors import InitializationError

logger = logging.getLogger(LOGGER_NAME)

REALTIME_TRANSCRIPTION_URL = "wss://api.openai.com/v1/realtime?intent=transcription"
CONNECTION_TIMEOUT = 10  # seconds
SEND_TIMEOUT = 5.0  # seconds

# WebSocket configuration for low latency
WS_MAX_SIZE = 16 * 1024 * 1024  # 16MB - large enough for audio chunks
WS_MAX_QUEUE = 32  # Small queue to prevent buffering
WS_PING_INTERVAL = 5  # 5 seconds between pings

EVENT_TRANSCRIPT_DELTA = "conversation.item.input_audio_transcription.delta"
EVENT_TRANSCRIPT_COMPLETED = "conversation.item.input_audio_transcription.completed"
EVENT_ERROR = "error"


class RealtimeTranscriptionStream(RecognitionStream):
    """
    One OpenAI Realtime transcription session over WebSocket.

    Audio is appended as base64 pcm16. Transcript deltas accumulate into an
    interim hypothesis per conversation item; a completed event turns it
    into a final result.
    """

    def __init__(self, call_id: str, ws):
        self.call_id = call_id
        self.ws = ws
        self._results: List[RecognitionResult] = []
        self._partials: Dict[str, str] = {}
        self._failure: Optional[Exception] = None
        self._closed = False
        self._recv_task: Optional[asyncio.Task] = None

    def start(self) -> None:
        self._recv_task = asyncio.create_task(self._recv_loop())

    async def send(self, audio: bytes) -> None:
        if self._closed:
            raise ConnectionError(f"Transcription stream for call {self.call_id} is closed")
        if self._failure is not None:
            raise ConnectionError(f"Transcription stream failed: {self._failure}")

        message = {
            "type": "input_audio_buffer.append",
            "audio": base64.b64encode(audio).decode("utf-8"),
        }
        await asyncio.wait_for(self.ws.send(json.dumps(message)), timeout=SEND_TIMEOUT)

    def drain(self) -> List[RecognitionResult]:
        results, self._results = self._results, []
        return results

    def _handle_event(self, data: dict) -> None:
        event_type = data.get("type")
        item_id = data.get("item_id", "")

        if event_type == EVENT_TRANSCRIPT_DELTA:
            text = self._partials.get(item_id, "") + data.get("delta", "")
            self._partials[item_id] = text
            self._results.append(RecognitionResult(text=text, is_final=False))
        elif event_type == EVENT_TRANSCRIPT_COMPLETED:
            self._partials.pop(item_id, None)
            transcript = data.get("transcript", "")
            self._results.append(
                RecognitionResult(text=transcript, is_final=True, confidence=1.0)
            )
        elif event_type == EVENT_ERROR:
            logger.error(f"Transcription error for call {self.call_id}: {data.get('error')}")
        else:
            logger.debug(f"Received transcription event of type: {event_type}")

    async def _recv_loop(self) -> None:
        try:
            async for message in self.ws:
                if isinstance(message, bytes):
                    continue
                try:
                    data = json.loads(message)
                except json.JSONDecodeError:
                    logger.warning(f"Received invalid JSON: {message[:100]}...")
                    continue
                self._handle_event(data)
        except ConnectionClosedOK:
            logger.info(f"Transcription connection closed normally for call {self.call_id}")
        except ConnectionClosed as e:
            logger.warning(f"Transcription connection lost for call {self.call_id}: {e}")
            self._failure = e
        except Exception as e:
            logger.error(f"Error in transcription receive loop: {e}", exc_info=True)
            self._failure = e
        else:
            if not self._closed:
                self._failure = ConnectionError("Transcription connection ended")

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True

        if self._recv_task:
            self._recv_task.cancel()
            try:
                await self._recv_task
            except asyncio.CancelledError:
                pass
            self._recv_task = None

        try:
            await self.ws.close()
        except Exception as e:
            logger.warning(f"Error closing transcription WebSocket: {e}")


class RealtimeTranscriptionProvider(RecognitionProvider):
    """Opens OpenAI Realtime transcription sessions, one per call."""

    def __init__(
        self,
        api_key: Optional[str],
        model: str = "gpt-4o-transcribe",
        language: str = "en",
        url: str = REALTIME_TRANSCRIPTION_URL,
    ):
        self.api_key = api_key
        self.model = model
        self.language = language
        self.url = url

    def _session_config(self) -> dict:
        return {
            "type": "transcription_session.update",
            "session": {
                "input_audio_format": "pcm16",
                "input_audio_transcription": {
                    "model": self.model,
                    "language": self.language,
                },
                "turn_detection": {"type": "server_vad", "silence_duration_ms": 500},
            },
        }

    async def open_stream(self, call_id: str) -> RealtimeTranscriptionStream:
        if not self.api_key:
            raise InitializationError("OPENAI_API_KEY environment variable not set")

        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "OpenAI-Beta": "realtime=v1",
        }

        connection_start = time.time()
        ws = await asyncio.wait_for(
            websockets.connect(
                self.url,
                max_size=WS_MAX_SIZE,
                max_queue=WS_MAX_QUEUE,
                ping_interval=WS_PING_INTERVAL,
                ping_timeout=10,
                compression=None,
                additional_headers=headers,
            ),
            timeout=CONNECTION_TIMEOUT,
        )
        logger.debug(
            f"Transcription connection for call {call_id} established in "
            f"{time.time() - connection_start:.2f} seconds"
        )

        await ws.send(json.dumps(self._session_config()))

        stream = RealtimeTranscriptionStream(call_id, ws)
        stream.start()
        logger.info(f"Opened transcription stream for call {call_id} with model {self.model}")
        return stream
