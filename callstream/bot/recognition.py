"""
Streaming speech recognition gateway.

The gateway keeps one recognizer stream per call, writes caller audio to it
and surfaces the interim and final transcripts the recognizer has produced.
Write or stream failures recreate the underlying stream transparently; only
after the retry budget is spent does the caller see a
RecognitionTransientError.
"""

import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

from callstream.audio.frames import AudioFrame
from callstream.bot.resilience import ResilientHandle, RetryPolicy
from callstream.config.constants import LOGGER_NAME
from callstream.errors import RecognitionTransientError

logger = logging.getLogger(LOGGER_NAME)


@dataclass(frozen=True)
class RecognitionResult:
    text: str
    is_final: bool
    confidence: float = 0.0


class RecognitionStream(ABC):
    """One open streaming-recognition session with a provider."""

    @abstractmethod
    async def send(self, audio: bytes) -> None:
        """Write caller audio. Raises on write or stream failure."""

    @abstractmethod
    def drain(self) -> List[RecognitionResult]:
        """Return (and forget) the results received since the last drain."""

    @abstractmethod
    async def close(self) -> None:
        """End the stream. Must tolerate repeated calls."""


class RecognitionProvider(ABC):
    """Factory for provider streams."""

    @abstractmethod
    async def open_stream(self, call_id: str) -> RecognitionStream:
        """Open a new recognition stream for a call."""


def merge_results(results: List[RecognitionResult]) -> Optional[RecognitionResult]:
    """
    Collapse a batch of results into the one the caller should act on.

    Final results win and are joined in arrival order; otherwise the latest
    interim hypothesis is returned.
    """
    if not results:
        return None
    finals = [r for r in results if r.is_final and r.text.strip()]
    if finals:
        return RecognitionResult(
            text=" ".join(r.text.strip() for r in finals),
            is_final=True,
            confidence=min(r.confidence for r in finals),
        )
    return results[-1]


class _StreamEntry:
    def __init__(self, handle: ResilientHandle[RecognitionStream], now: float):
        self.handle = handle
        self.last_activity = now


class RecognitionGateway:
    """Per-call adapter in front of a streaming RecognitionProvider."""

    def __init__(
        self,
        provider: RecognitionProvider,
        policy: RetryPolicy = RetryPolicy(max_retries=3, backoff_seconds=1.0),
        idle_timeout_seconds: float = 300.0,
        clock: Callable[[], float] = time.time,
    ):
        self.provider = provider
        self.policy = policy
        self.idle_timeout_seconds = idle_timeout_seconds
        self.clock = clock
        self._streams: Dict[str, _StreamEntry] = {}

    def _entry(self, call_id: str) -> _StreamEntry:
        entry = self._streams.get(call_id)
        if entry is None:
            handle: ResilientHandle[RecognitionStream] = ResilientHandle(
                name=f"recognition:{call_id}",
                factory=lambda: self.provider.open_stream(call_id),
                closer=lambda stream: stream.close(),
                policy=self.policy,
            )
            entry = _StreamEntry(handle, self.clock())
            self._streams[call_id] = entry
        return entry

    def has_stream(self, call_id: str) -> bool:
        return call_id in self._streams

    async def create_stream(self, call_id: str) -> RecognitionStream:
        """Open (or return the already open) recognition stream for a call."""
        entry = self._entry(call_id)
        try:
            return await entry.handle.acquire()
        except Exception:
            if self._streams.get(call_id) is entry:
                del self._streams[call_id]
            raise

    async def process_chunk(self, call_id: str, frame: AudioFrame) -> Optional[RecognitionResult]:
        """
        Write one frame and return the newest recognition outcome, if any.

        Raises:
            RecognitionTransientError: if the stream kept failing after retries
        """
        entry = self._entry(call_id)
        entry.last_activity = self.clock()

        async def write(stream: RecognitionStream) -> List[RecognitionResult]:
            await stream.send(frame.audio)
            return stream.drain()

        try:
            results = await entry.handle.run(write)
        except Exception as e:
            if entry.handle.closed:
                logger.debug(f"Dropped chunk for closed speech stream of call {call_id}: {e}")
                return None
            raise RecognitionTransientError(
                f"Speech recognition failed for call {call_id}: {e}"
            ) from e

        if self._streams.get(call_id) is not entry:
            # stream was closed or replaced while the chunk was in flight
            await entry.handle.close()
            return None

        return merge_results(results)

    async def close_stream(self, call_id: str) -> None:
        """Close the call's stream. Unknown or already closed ids are ignored."""
        entry = self._streams.pop(call_id, None)
        if entry is None:
            return
        await entry.handle.close()
        logger.info(f"Closed speech stream for call {call_id}")

    def idle_stream_ids(self) -> List[str]:
        """Calls whose stream saw no audio for longer than the idle timeout."""
        now = self.clock()
        return [
            call_id
            for call_id, entry in self._streams.items()
            if now - entry.last_activity > self.idle_timeout_seconds
        ]

    async def close_all(self) -> None:
        for call_id in list(self._streams.keys()):
            await self.close_stream(call_id)
