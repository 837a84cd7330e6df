"""
Decoded audio frames.

Inbound chunks carry base64 little-endian 16-bit mono PCM. The raw bytes are
kept for the recognizer and a float view in [-1, 1] is derived for VAD.
"""

import base64
import binascii
import time
from dataclasses import dataclass, field
from typing import Optional

import numpy as np

PCM16_SCALE = 32768.0


def decode_pcm16(audio: bytes) -> np.ndarray:
    """Convert 16-bit little-endian PCM to float32 samples in [-1, 1]."""
    usable = len(audio) - (len(audio) % 2)
    if usable <= 0:
        return np.zeros(0, dtype=np.float32)
    samples = np.frombuffer(audio[:usable], dtype="<i2")
    return samples.astype(np.float32) / PCM16_SCALE


@dataclass
class AudioFrame:
    """One chunk of caller audio, consumed immediately by the pipeline."""

    call_id: str
    audio: bytes
    samples: np.ndarray
    is_final: bool = False
    timestamp: float = field(default_factory=time.time)

    @classmethod
    def from_payload(
        cls, call_id: str, payload: str, is_final: bool = False, timestamp: Optional[float] = None
    ) -> "AudioFrame":
        """
        Build a frame from a base64 payload.

        Raises:
            ValueError: if the payload is not valid base64
        """
        try:
            audio = base64.b64decode(payload, validate=True)
        except (binascii.Error, ValueError) as e:
            raise ValueError(f"Invalid audio payload: {e}") from e
        return cls(
            call_id=call_id,
            audio=audio,
            samples=decode_pcm16(audio),
            is_final=is_final,
            timestamp=timestamp if timestamp is not None else time.time(),
        )
