"""
Call Stream Manager - real-time audio sessions for AI-answered phone calls

This application accepts caller audio from a telephony provider over a
WebSocket, detects speech, transcribes it with a streaming recognizer, and
answers each completed utterance with a streamed reply from a conversational
AI model in a configurable personality. Every transcript and reply chunk is
published per call so operator dashboards can follow calls live.

Architecture Overview:
- FastAPI server exposing the /audio-stream WebSocket and a small HTTP surface
- OpenAI Realtime transcription for streaming speech recognition
- Google Gemini chat sessions for streamed replies
- One session per call, torn down on disconnect or inactivity

Key Components:
- audio: PCM frame decoding and energy-based voice activity detection
- bot: Provider bindings (recognition gateway, AI streams) and retry policy
- config: Constants, settings and logging setup
- handlers: The per-frame pipeline and the finalize-turn procedure
- models: Wire schemas, session state and the session store
- services: Notification sinks and the personality store
- stream_controller: Connection lifecycle, liveness probe and inactivity sweep

Getting Started:
1. Set up environment variables:
   - OPENAI_API_KEY: Key for speech recognition
   - GOOGLE_API_KEY: Key for reply generation
   - NOTIFICATION_WEBHOOK_URL: Optional endpoint receiving call events
   - PORT / HOST / LOG_LEVEL: Server settings

2. Start the server:
   ```bash
   python run.py
   ```

3. Point the telephony media stream at ws://your-server:8000/audio-stream?callSid=<call id>
"""
