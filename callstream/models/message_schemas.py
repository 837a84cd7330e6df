"""
Pydantic models for the audio stream WebSocket protocol and the HTTP surface.

This module defines structured data models for all incoming and outgoing messages
on the /audio-stream connection, the envelopes published to notification sinks,
and the request/response bodies of the observation endpoints.
"""

import re
from typing import Any, Dict, List, Literal, Optional, Pattern

from pydantic import BaseModel, Field, field_validator

from callstream.config.constants import CALL_ID_PATTERN

CALL_ID_REGEX: Pattern = re.compile(CALL_ID_PATTERN)


def is_valid_call_id(call_id: Optional[str]) -> bool:
    """Return True when the call identifier is present and well-formed."""
    return bool(call_id) and CALL_ID_REGEX.match(call_id) is not None


# Inbound messages
class StreamMetadata(BaseModel):
    """Addressing metadata attached to every audio chunk."""

    callSid: str = Field(..., description="Call identifier")
    streamSid: Optional[str] = Field(None, description="Media stream identifier")
    timestamp: Optional[str] = Field(None, description="Sender timestamp")

    @field_validator("callSid")
    def validate_call_sid(cls, v):
        """Validate that the call identifier is well-formed."""
        if not is_valid_call_id(v):
            raise ValueError("callSid is missing or malformed")
        return v


class AudioChunkMessage(BaseModel):
    """Model for one chunk of caller audio (base64 16-bit PCM)."""

    metadata: StreamMetadata
    payload: str = Field("", description="Base64 encoded audio")
    isFinal: bool = Field(False, description="Last chunk of the caller's audio")


class ControlMessage(BaseModel):
    """Model for liveness replies sent by the telephony side."""

    event: Literal["pong", "keepalive"]
    timestamp: Optional[int] = None


# Outbound messages
class PingMessage(BaseModel):
    """Liveness probe sent periodically to the telephony side."""

    event: Literal["ping"] = "ping"
    timestamp: int = Field(..., description="Milliseconds since the epoch")


class StreamErrorMessage(BaseModel):
    """Error reported back over the audio stream for an unprocessable chunk."""

    error: str


# Notifications
class NotificationEnvelope(BaseModel):
    """Body published to webhook notification sinks."""

    channel: str = Field(..., description="Per-call channel, e.g. call-CA123")
    event: str = Field(..., description="Event type, e.g. speech.recognized")
    data: Dict[str, Any] = Field(default_factory=dict)


# HTTP surface
class SessionSnapshot(BaseModel):
    """Read-only summary of a live call session."""

    callId: str
    state: str
    personality: str
    turnCount: int
    historyLength: int
    hasAiStream: bool
    startedAt: float
    lastActivityAt: float
    lastSpeechAt: float


class PersonalityUpdateRequest(BaseModel):
    """Request body for switching the personality of a live call."""

    personality: str = Field(..., min_length=1)


class PersonalityUpdateResponse(BaseModel):
    callId: str
    personality: str
    available: List[str] = Field(default_factory=list)
