"""
Constants and configuration values used throughout the application.

This module defines constants that are used across different parts of the application,
providing a centralized location for event names, close codes and spoken fallbacks.
"""

# Logger name used throughout the application
LOGGER_NAME = "call_stream"

# Query parameter carrying the call identifier on the audio stream endpoint
CALL_ID_QUERY_PARAM = "callSid"
CALL_ID_PATTERN = r"^[A-Za-z0-9_-]{1,64}$"

# WebSocket close codes
CLOSE_CODE_NORMAL = 1000
CLOSE_CODE_INVALID_CALL_ID = 1008
CLOSE_CODE_CAPACITY_EXCEEDED = 1013

# HTTP statuses for handshakes refused before accept
HTTP_STATUS_INVALID_CALL_ID = 400
HTTP_STATUS_CAPACITY_EXCEEDED = 503

# Notification event types
EVENT_SPEECH_RECOGNIZED = "speech.recognized"
EVENT_SPEECH_ERROR = "speech.error"
EVENT_AI_RESPONSE_PARTIAL = "ai.response.partial"
EVENT_AI_RESPONSE_COMPLETE = "ai.response.complete"
EVENT_AI_RESPONSE_ERROR = "ai.response.error"

# Prefix applied to caller utterances in conversation history
USER_HISTORY_PREFIX = "User: "

# Spoken fallbacks
FALLBACK_EMPTY_RESPONSE = "I'm sorry, I didn't quite catch that. Could you say it again?"
FALLBACK_GENERATION_ERROR = (
    "I apologize, but I encountered an issue. Could you please repeat that?"
)
