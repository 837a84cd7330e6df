"""
Models module for data structures and state management in the call stream manager.

Key components:
- message_schemas: Pydantic models for the /audio-stream WebSocket protocol,
  notification envelopes and the HTTP observation endpoints.
- session: The per-call Session aggregate and its ConversationContext.
- session_store: The SessionStore registry enforcing the live-session
  ceiling and owning the idempotent teardown path.

Usage examples:
```python
from callstream.models.session_store import SessionStore

store = SessionStore()
session = await store.create_session("CA123", websocket)
if session is None:
    ...  # at capacity

store.touch("CA123")
await store.destroy_session("CA123", reason="caller hung up")
```
"""

from callstream.models.message_schemas import (
    AudioChunkMessage,
    ControlMessage,
    NotificationEnvelope,
    PersonalityUpdateRequest,
    PersonalityUpdateResponse,
    PingMessage,
    SessionSnapshot,
    StreamErrorMessage,
    StreamMetadata,
)
from callstream.models.session import ConversationContext, Session, SessionState
from callstream.models.session_store import SessionStore
