"""Audio-related data models."""

from dataclasses import dataclass, field
from typing import Optional

import numpy as np


@dataclass
class AudioFrame:
    """A single captured audio frame.

    Samples are float32 in [-1, 1] when captured locally and int16 once
    quantized for the wire.
    """
    samples: np.ndarray
    sample_rate: int = 16000
    channels: int = 1
    timestamp: Optional[float] = None  # Monotonic capture time in seconds
    sequence_number: int = 0

    @property
    def duration_ms(self) -> float:
        if self.sample_rate <= 0:
            return 0.0
        return len(self.samples) / self.sample_rate * 1000.0


@dataclass
class GateDecision:
    """Outcome of the turn-taking gate for one outbound frame."""
    transmit: bool
    rms: float
    agent_speaking: bool
    reason: str = field(default="")
