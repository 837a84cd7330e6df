"""
Runtime settings for the stream session manager.

Every tunable used by the session store, the controller and the provider
bindings lives on StreamSettings. Values default to the production
constants and can be overridden from the environment (a .env file is
loaded by the application entrypoint before from_env() is called).
"""

import os
from typing import Optional

from pydantic import BaseModel, Field


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    return int(value) if value not in (None, "") else default


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    return float(value) if value not in (None, "") else default


class StreamSettings(BaseModel):
    """Typed configuration for call sessions and their providers."""

    # Session store
    max_concurrent_calls: int = Field(100, ge=1, description="Live session ceiling")
    max_history_length: int = Field(10, ge=1, description="Utterances kept per call")
    inactivity_timeout_seconds: float = Field(300.0, gt=0)

    # Controller timers
    sweep_interval_seconds: float = Field(60.0, gt=0)
    ping_interval_seconds: float = Field(30.0, gt=0)
    silence_finalize_ms: float = Field(1000.0, ge=0)

    # Voice activity detection
    vad_silence_threshold: float = Field(0.1, gt=0)
    vad_buffer_size: int = Field(50, ge=1)

    # Speech recognition
    recognition_max_retries: int = Field(3, ge=0)
    recognition_retry_delay_seconds: float = Field(1.0, ge=0)
    recognition_idle_timeout_seconds: float = Field(300.0, gt=0)
    openai_api_key: Optional[str] = None
    openai_transcription_model: str = "gpt-4o-transcribe"
    transcription_language: str = "en"

    # Generation
    default_personality: str = "professional"
    google_api_key: Optional[str] = None
    gemini_model: str = "gemini-1.5-flash"
    max_output_tokens: int = Field(200, ge=1)

    # Notifications
    notification_webhook_url: Optional[str] = None
    notification_timeout_seconds: float = Field(5.0, gt=0)

    @classmethod
    def from_env(cls) -> "StreamSettings":
        """Build settings from environment variables, falling back to defaults."""
        return cls(
            max_concurrent_calls=_env_int("MAX_CONCURRENT_CALLS", 100),
            max_history_length=_env_int("MAX_HISTORY_LENGTH", 10),
            inactivity_timeout_seconds=_env_float("INACTIVITY_TIMEOUT_SECONDS", 300.0),
            sweep_interval_seconds=_env_float("SWEEP_INTERVAL_SECONDS", 60.0),
            ping_interval_seconds=_env_float("PING_INTERVAL_SECONDS", 30.0),
            silence_finalize_ms=_env_float("SILENCE_FINALIZE_MS", 1000.0),
            vad_silence_threshold=_env_float("VAD_SILENCE_THRESHOLD", 0.1),
            vad_buffer_size=_env_int("VAD_BUFFER_SIZE", 50),
            recognition_max_retries=_env_int("RECOGNITION_MAX_RETRIES", 3),
            recognition_retry_delay_seconds=_env_float("RECOGNITION_RETRY_DELAY_SECONDS", 1.0),
            recognition_idle_timeout_seconds=_env_float("RECOGNITION_IDLE_TIMEOUT_SECONDS", 300.0),
            openai_api_key=os.getenv("OPENAI_API_KEY"),
            openai_transcription_model=os.getenv("OPENAI_TRANSCRIPTION_MODEL", "gpt-4o-transcribe"),
            transcription_language=os.getenv("TRANSCRIPTION_LANGUAGE", "en"),
            default_personality=os.getenv("DEFAULT_PERSONALITY", "professional"),
            google_api_key=os.getenv("GOOGLE_API_KEY"),
            gemini_model=os.getenv("GEMINI_MODEL", "gemini-1.5-flash"),
            max_output_tokens=_env_int("MAX_OUTPUT_TOKENS", 200),
            notification_webhook_url=os.getenv("NOTIFICATION_WEBHOOK_URL") or None,
            notification_timeout_seconds=_env_float("NOTIFICATION_TIMEOUT_SECONDS", 5.0),
        )
