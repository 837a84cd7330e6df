"""
Bot module: provider bindings for speech recognition and reply generation.

Key components:
- resilience: ResilientHandle and RetryPolicy, the recreate-on-failure policy
  shared by the recognition gateway and per-call AI streams.
- recognition: RecognitionGateway plus the abstract RecognitionProvider /
  RecognitionStream contract it drives.
- realtime_transcription: RecognitionProvider backed by OpenAI Realtime
  transcription sessions over WebSocket.
- ai_stream: AIStream contract and the Gemini-backed GeminiStream.

Usage examples:
```python
from callstream.bot import RecognitionGateway, RealtimeTranscriptionProvider

gateway = RecognitionGateway(RealtimeTranscriptionProvider(api_key))
result = await gateway.process_chunk("CA123", frame)
if result and result.is_final:
    ...
await gateway.close_stream("CA123")
```
"""

from callstream.bot.ai_stream import AIStream, GeminiStream, gemini_stream_factory
from callstream.bot.realtime_transcription import RealtimeTranscriptionProvider
from callstream.bot.recognition import (
    RecognitionGateway,
    RecognitionProvider,
    RecognitionResult,
    RecognitionStream,
)
from callstream.bot.resilience import ResilientHandle, RetryPolicy

__all__ = [
    "AIStream",
    "GeminiStream",
    "gemini_stream_factory",
    "RealtimeTranscriptionProvider",
    "RecognitionGateway",
    "RecognitionProvider",
    "RecognitionResult",
    "RecognitionStream",
    "ResilientHandle",
    "RetryPolicy",
]
