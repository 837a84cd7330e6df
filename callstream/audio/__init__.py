"""
Audio processing for inbound call streams.

- vad: energy-based voice activity detection over decoded frames.
- frames: AudioFrame, the decoded form of one inbound audio chunk.
"""

from callstream.audio.frames import AudioFrame, decode_pcm16
from callstream.audio.vad import VADResult, VoiceActivityDetector

__all__ = ["AudioFrame", "decode_pcm16", "VADResult", "VoiceActivityDetector"]
