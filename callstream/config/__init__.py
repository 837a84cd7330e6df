"""
Configuration module for the call stream session manager.

This module provides centralized configuration management for the entire application,
including constants, logging setup, and environment-based settings.

Key components:
- constants: Application-wide constants such as notification event names,
  WebSocket close codes and spoken fallback phrases.
- logging_config: A consistent logging infrastructure with console and
  rotating file output.
- settings: The StreamSettings model holding every tunable (capacity,
  timeouts, VAD threshold, provider credentials).

Usage examples:
```python
from callstream.config.constants import LOGGER_NAME, EVENT_SPEECH_RECOGNIZED
from callstream.config.logging_config import configure_logging
from callstream.config.settings import StreamSettings

logger = configure_logging()
settings = StreamSettings.from_env()
logger.info(f"Accepting up to {settings.max_concurrent_calls} calls")
```
"""
