"""
Energy-based voice activity detection for inbound call audio.

Each frame is classified on its own: the RMS energy of the samples is
compared against a fixed silence threshold. A bounded buffer of the most
recent frames is kept for smoothing and inspection; it never blocks or
fails.
"""

import time
from collections import deque
from dataclasses import dataclass, field
from typing import Deque, Sequence, Union

import numpy as np

DEFAULT_SILENCE_THRESHOLD = 0.1
DEFAULT_BUFFER_SIZE = 50

Samples = Union[np.ndarray, Sequence[float]]


@dataclass(frozen=True)
class VADResult:
    """Speech/silence decision for a single frame."""

    is_speech: bool
    confidence: float
    observed_at: float = field(default_factory=time.time)


class VoiceActivityDetector:
    """
    Simple RMS-energy Voice Activity Detector.

    Frames are float samples in [-1, 1]. A frame is speech when its energy
    strictly exceeds the silence threshold; confidence is the energy
    normalized against twice the threshold and clamped to [0, 1].
    """

    def __init__(
        self,
        silence_threshold: float = DEFAULT_SILENCE_THRESHOLD,
        max_buffer_size: int = DEFAULT_BUFFER_SIZE,
    ):
        self.silence_threshold = silence_threshold
        self.max_buffer_size = max_buffer_size
        self._buffer: Deque[np.ndarray] = deque(maxlen=max_buffer_size)

    def analyze(self, samples: Samples) -> VADResult:
        """
        Classify one frame of audio.

        Args:
            samples: Float samples of one frame; an empty frame is silence.

        Returns:
            VADResult for the frame
        """
        frame = np.asarray(samples, dtype=np.float32)
        energy = self.calculate_energy(frame)
        self._buffer.append(frame)

        return VADResult(
            is_speech=energy > self.silence_threshold,
            confidence=self.calculate_confidence(energy),
            observed_at=time.time(),
        )

    @staticmethod
    def calculate_energy(frame: np.ndarray) -> float:
        """Root-mean-square amplitude of the frame (0.0 for an empty frame)."""
        if frame.size == 0:
            return 0.0
        return float(np.sqrt(np.mean(np.square(frame, dtype=np.float64))))

    def calculate_confidence(self, energy: float) -> float:
        return float(min(1.0, max(0.0, energy / (self.silence_threshold * 2))))

    @property
    def buffered_frames(self) -> int:
        return len(self._buffer)

    def reset(self) -> None:
        """Drop all buffered frames."""
        self._buffer.clear()
