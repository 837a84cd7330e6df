import base64
import logging
from unittest.mock import AsyncMock

import numpy as np
import pytest
from fastapi import WebSocket
from starlette.websockets import WebSocketState

from callstream.audio.frames import AudioFrame
from callstream.bot.ai_stream import AIStream
from callstream.bot.recognition import (
    RecognitionGateway,
    RecognitionProvider,
    RecognitionResult,
    RecognitionStream,
)
from callstream.bot.resilience import RetryPolicy
from callstream.config.settings import StreamSettings
from callstream.services.notifications import NotificationSink
from callstream.stream_controller import StreamSessionController


@pytest.fixture(autouse=True)
def reset_logging():
    """Reset logging configuration before each test"""
    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
    logging.basicConfig(level=logging.NOTSET)
    yield


class FakeClock:
    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeRecognitionStream(RecognitionStream):
    def __init__(self, provider: "FakeRecognitionProvider", call_id: str):
        self.provider = provider
        self.call_id = call_id
        self.closed = False
        self._pending = []

    async def send(self, audio: bytes) -> None:
        if self.provider.failures_remaining > 0:
            self.provider.failures_remaining -= 1
            raise ConnectionError("recognition stream broke")
        self.provider.sent.append(audio)
        if self.provider.script:
            result = self.provider.script.pop(0)
            if result is not None:
                self._pending.append(result)

    def drain(self):
        results, self._pending = self._pending, []
        return results

    async def close(self) -> None:
        self.closed = True


class FakeRecognitionProvider(RecognitionProvider):
    """Provider whose streams return scripted results, one entry per write."""

    def __init__(self, script=None, failures: int = 0):
        self.script = list(script or [])
        self.failures_remaining = failures
        self.sent = []
        self.streams = []

    async def open_stream(self, call_id: str) -> FakeRecognitionStream:
        stream = FakeRecognitionStream(self, call_id)
        self.streams.append(stream)
        return stream


class FakeAIStream(AIStream):
    def __init__(self, personality, context, chunks=None, error=None):
        super().__init__(personality, context)
        self.chunks = ["Hi", " there"] if chunks is None else chunks
        self.error = error
        self.inputs = []
        self.release_count = 0

    async def _generate(self, text):
        self.inputs.append(text)
        for chunk in self.chunks:
            yield chunk
        if self.error is not None:
            raise self.error

    async def _release(self) -> None:
        self.release_count += 1


class FakeAIStreamFactory:
    """Creates FakeAIStreams; errors are handed out to streams in creation order."""

    def __init__(self, chunks=None, errors=None):
        self.chunks = chunks
        self.errors = list(errors or [])
        self.init_error = None
        self.calls = []
        self.streams = []

    async def __call__(self, personality, initial_context):
        self.calls.append((personality, list(initial_context)))
        if self.init_error is not None:
            raise self.init_error
        error = self.errors.pop(0) if self.errors else None
        stream = FakeAIStream(personality, initial_context, chunks=self.chunks, error=error)
        self.streams.append(stream)
        return stream


class RecordingSink(NotificationSink):
    def __init__(self):
        self.events = []
        self.closed = False

    async def emit(self, call_id, event, data):
        self.events.append((call_id, event, data))

    def of(self, event):
        return [data for _, name, data in self.events if name == event]

    def names(self):
        return [name for _, name, _ in self.events]

    async def close(self) -> None:
        self.closed = True


def _pcm16_payload(amplitude: float, samples: int = 160) -> str:
    data = np.full(samples, int(amplitude * 32767), dtype="<i2").tobytes()
    return base64.b64encode(data).decode("utf-8")


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def settings():
    return StreamSettings(recognition_retry_delay_seconds=0.0)


@pytest.fixture
def recognition_provider():
    return FakeRecognitionProvider()


@pytest.fixture
def gateway(recognition_provider, clock):
    return RecognitionGateway(
        recognition_provider,
        policy=RetryPolicy(max_retries=3, backoff_seconds=0.0),
        clock=clock,
    )


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
def ai_factory():
    return FakeAIStreamFactory()


@pytest.fixture
def controller(settings, clock, gateway, sink, ai_factory):
    return StreamSessionController(
        settings=settings,
        recognition_gateway=gateway,
        notification_sink=sink,
        ai_stream_factory=ai_factory,
        clock=clock,
    )


@pytest.fixture
def make_websocket():
    """Factory for connected WebSocket mocks carrying an optional callSid."""

    def _make(call_id=None, denial_response=False):
        websocket = AsyncMock(spec=WebSocket)
        extensions = {"websocket.http.response": {}} if denial_response else {}
        websocket.scope = {"type": "websocket", "extensions": extensions}
        websocket.client_state = WebSocketState.CONNECTED
        websocket.application_state = WebSocketState.CONNECTED
        websocket.query_params = {"callSid": call_id} if call_id is not None else {}

        async def close(code=1000, reason=None):
            websocket.client_state = WebSocketState.DISCONNECTED
            websocket.application_state = WebSocketState.DISCONNECTED

        websocket.close.side_effect = close
        return websocket

    return _make


@pytest.fixture
def pcm16_payload():
    return _pcm16_payload


@pytest.fixture
def speech_frame():
    def _make(call_id="CA123", amplitude=0.5, is_final=False):
        return AudioFrame.from_payload(call_id, _pcm16_payload(amplitude), is_final=is_final)

    return _make


@pytest.fixture
def silence_frame():
    def _make(call_id="CA123", is_final=False):
        return AudioFrame.from_payload(call_id, _pcm16_payload(0.0), is_final=is_final)

    return _make


@pytest.fixture
def final_result():
    def _make(text, confidence=0.9):
        return RecognitionResult(text=text, is_final=True, confidence=confidence)

    return _make


@pytest.fixture
def interim_result():
    def _make(text):
        return RecognitionResult(text=text, is_final=False)

    return _make
