"""
Services module for collaborators of the stream session manager.

Key components:
- notifications: NotificationSink implementations (application log, HTTP
  webhook) and the publish() helper that keeps emission failures away from
  call processing.
- personalities: The PersonalityStore lookup supplying system prompts,
  traits and temperatures for AI replies.
"""

from callstream.services.notifications import (
    LoggingNotificationSink,
    NotificationSink,
    WebhookNotificationSink,
    publish,
)
from callstream.services.personalities import Personality, PersonalityStore

__all__ = [
    "LoggingNotificationSink",
    "NotificationSink",
    "WebhookNotificationSink",
    "publish",
    "Personality",
    "PersonalityStore",
]
