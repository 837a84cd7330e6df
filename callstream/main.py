"""
FastAPI server for real-time call audio streams.

This module initializes and configures the FastAPI application that receives
caller audio from the telephony side over the /audio-stream WebSocket, and
exposes a small HTTP surface for health checks and for operators to observe
and steer live calls.

The server wires the session store, the speech recognition gateway, the AI
stream factory and the notification sink into a StreamSessionController and
ties its background sweep to the application lifespan.
"""

import os
from contextlib import asynccontextmanager
from pathlib import Path

import dotenv
from fastapi import FastAPI, HTTPException, WebSocket

from callstream.config.logging_config import configure_logging
from callstream.config.settings import StreamSettings
from callstream.models.message_schemas import (
    PersonalityUpdateRequest,
    PersonalityUpdateResponse,
)
from callstream.services.notifications import (
    LoggingNotificationSink,
    WebhookNotificationSink,
)
from callstream.stream_controller import StreamSessionController

# Load environment variables from .env file if it exists
env_path = Path(".") / ".env"
if env_path.exists():
    dotenv.load_dotenv(env_path)

# Configure logging
logger = configure_logging()

# Get configuration from environment variables
PORT = int(os.getenv("PORT", "8000"))
HOST = os.getenv("HOST", "0.0.0.0")

settings = StreamSettings.from_env()

if settings.notification_webhook_url:
    notification_sink = WebhookNotificationSink(
        settings.notification_webhook_url,
        timeout_seconds=settings.notification_timeout_seconds,
    )
else:
    notification_sink = LoggingNotificationSink()

# Create the stream session controller
controller = StreamSessionController(settings=settings, notification_sink=notification_sink)


@asynccontextmanager
async def lifespan(app: FastAPI):
    await controller.start()
    try:
        yield
    finally:
        await controller.stop()


# Create FastAPI application
app = FastAPI(
    title="Call Stream Manager",
    description="Real-time call audio sessions with streaming speech recognition and AI replies",
    version="1.0.0",
    lifespan=lifespan,
)


@app.websocket("/audio-stream")
async def audio_stream_endpoint(websocket: WebSocket):
    """WebSocket endpoint for caller audio.

    The call is identified by the callSid query parameter. Each inbound text
    message is either a JSON audio chunk
    ({"metadata": {"callSid", "streamSid", "timestamp"}, "payload", "isFinal"})
    or a liveness reply ({"event": "pong"} / {"event": "keepalive"}).
    """
    await controller.handle_websocket(websocket)


@app.get("/health")
async def health_check():
    """Health check endpoint for monitoring system status.

    Returns:
        dict: Status information including live session count and provider configuration.
    """
    return {
        "status": "healthy",
        "active_sessions": controller.store.active_count,
        "max_concurrent_calls": settings.max_concurrent_calls,
        "openai_api_key_configured": bool(settings.openai_api_key),
        "google_api_key_configured": bool(settings.google_api_key),
    }


@app.get("/calls")
async def list_calls():
    """Summaries of every live call session."""
    return {"calls": [snapshot.model_dump() for snapshot in controller.snapshot()]}


@app.post("/calls/{call_id}/personality", response_model=PersonalityUpdateResponse)
async def update_personality(call_id: str, request: PersonalityUpdateRequest):
    """Switch the personality used for the rest of a live call."""
    available = controller.personalities.list_ids()
    try:
        updated = await controller.set_personality(call_id, request.personality)
    except KeyError:
        raise HTTPException(
            status_code=400,
            detail=f"Unknown personality '{request.personality}'. Available: {', '.join(available)}",
        )
    if not updated:
        raise HTTPException(status_code=404, detail=f"No live session for call {call_id}")

    return PersonalityUpdateResponse(
        callId=call_id, personality=request.personality, available=available
    )


@app.get("/")
async def root():
    """Root endpoint to display basic information about the API.

    Returns:
        dict: Basic information about the API and its purpose.
    """
    return {
        "name": "Call Stream Manager",
        "description": "Real-time call audio sessions with streaming speech recognition and AI replies",
        "version": "1.0.0",
        "endpoints": {
            "/audio-stream": "WebSocket endpoint for caller audio (?callSid=...)",
            "/health": "Health check endpoint",
            "/calls": "Live call sessions",
            "/calls/{call_id}/personality": "Switch a live call's personality",
        },
    }


if __name__ == "__main__":
    import uvicorn

    logger.info(f"Starting server on http://{HOST}:{PORT}")
    uvicorn.run(
        app,
        host=HOST,
        port=PORT,
        websocket_max_size=16777216,  # 16MB - large enough for audio chunks
        http="h11",
    )
