"""
Notification sinks for call events.

The controller publishes every recognition result, AI reply chunk and error
to a sink keyed by call id so that operator dashboards can follow calls in
real time. Emission is fire-and-forget: sinks may raise, but publish()
never lets a failure reach call processing.
"""

import logging
import time
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

import httpx

from callstream.config.constants import LOGGER_NAME
from callstream.models.message_schemas import NotificationEnvelope

logger = logging.getLogger(LOGGER_NAME)


def channel_for(call_id: str) -> str:
    return f"call-{call_id}"


class NotificationSink(ABC):
    """Destination for per-call events."""

    @abstractmethod
    async def emit(self, call_id: str, event: str, data: Dict[str, Any]) -> None:
        """Deliver one event. May raise; callers go through publish()."""

    async def close(self) -> None:
        return None


class LoggingNotificationSink(NotificationSink):
    """Writes events to the application log."""

    async def emit(self, call_id: str, event: str, data: Dict[str, Any]) -> None:
        logger.info(f"[{channel_for(call_id)}] {event}: {data}")


class WebhookNotificationSink(NotificationSink):
    """
    Posts events as JSON to an HTTP endpoint (e.g. a pub/sub relay).

    The body is a NotificationEnvelope: {"channel", "event", "data"}.
    """

    def __init__(
        self,
        url: str,
        timeout_seconds: float = 5.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.url = url
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(timeout_seconds, connect=timeout_seconds)
        )

    async def emit(self, call_id: str, event: str, data: Dict[str, Any]) -> None:
        envelope = NotificationEnvelope(channel=channel_for(call_id), event=event, data=data)
        response = await self._client.post(
            self.url,
            content=envelope.model_dump_json(),
            headers={"Content-Type": "application/json"},
        )
        response.raise_for_status()

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()


def now_ms() -> int:
    return time.time_ns() // 1_000_000


async def publish(sink: NotificationSink, call_id: str, event: str, data: Dict[str, Any]) -> None:
    """
    Emit an event with a millisecond timestamp, logging instead of raising.

    Args:
        sink: Destination sink
        call_id: Call the event belongs to
        event: Event type, e.g. "speech.recognized"
        data: Event payload
    """
    payload = {**data, "timestamp": now_ms()}
    try:
        await sink.emit(call_id, event, payload)
    except Exception as e:
        logger.error(f"Notification {event} failed for call {call_id}: {e}")
