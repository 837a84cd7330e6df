"""
Handlers module for inbound call audio.

- frame_handlers: the per-frame pipeline (VAD -> speech recognition ->
  transcript notifications) and the finalize-turn procedure that streams an
  AI reply for a completed utterance.

The StreamSessionController calls these under each session's lock; they are
not meant to be invoked concurrently for the same call.
"""
