"""Half-duplex turn taking over a full-duplex agent connection."""

import logging
import time
from typing import Callable, Optional, Sequence, Union

import numpy as np

from ..models.audio import GateDecision

logger = logging.getLogger(__name__)


def frame_rms(samples: Union[np.ndarray, Sequence[float]]) -> float:
    """Root-mean-square energy of a float frame; 0.0 for an empty frame."""
    data = np.asarray(samples, dtype=np.float64)
    if data.size == 0:
        return 0.0
    return float(np.sqrt(np.mean(np.square(data))))


class TurnTakingGate:
    """Decides per outbound frame whether microphone audio may be transmitted.

    The agent counts as speaking while inbound audio arrived within the
    trailing window. A frame is transmitted only when its RMS is above the
    silence threshold and the agent is not speaking. Rejected frames are
    dropped, never buffered or replayed.
    """

    def __init__(self,
                 silence_threshold: float = 0.005,
                 agent_speaking_window_ms: float = 1000.0,
                 clock: Optional[Callable[[], float]] = None):
        """Initialize the gate.

        Args:
            silence_threshold: Minimum frame RMS that counts as speech
            agent_speaking_window_ms: Trailing window after inbound audio during
                which the agent is considered to be speaking
            clock: Monotonic clock returning seconds (defaults to time.monotonic)
        """
        self.silence_threshold = silence_threshold
        self.agent_speaking_window_ms = agent_speaking_window_ms
        self._clock = clock or time.monotonic
        self.last_inbound_audio_timestamp: Optional[float] = None

        self.frames_transmitted = 0
        self.frames_dropped_silence = 0
        self.frames_dropped_agent_speaking = 0

    def note_inbound_audio(self) -> None:
        """Stamp the arrival of an inbound agent audio frame."""
        self.last_inbound_audio_timestamp = self._clock()

    def is_agent_speaking(self) -> bool:
        if self.last_inbound_audio_timestamp is None:
            return False
        elapsed_ms = (self._clock() - self.last_inbound_audio_timestamp) * 1000.0
        return elapsed_ms < self.agent_speaking_window_ms

    def evaluate(self, samples: Union[np.ndarray, Sequence[float]]) -> GateDecision:
        """Evaluate one outbound candidate frame.

        Args:
            samples: Float samples of the captured frame

        Returns:
            GateDecision with the transmit verdict and the measured RMS
        """
        rms = frame_rms(samples)
        agent_speaking = self.is_agent_speaking()

        if agent_speaking:
            self.frames_dropped_agent_speaking += 1
            return GateDecision(transmit=False, rms=rms, agent_speaking=True, reason="agent_speaking")

        if rms <= self.silence_threshold:
            self.frames_dropped_silence += 1
            return GateDecision(transmit=False, rms=rms, agent_speaking=False, reason="silence")

        self.frames_transmitted += 1
        return GateDecision(transmit=True, rms=rms, agent_speaking=False, reason="speech")

    def should_transmit(self, samples: Union[np.ndarray, Sequence[float]]) -> bool:
        return self.evaluate(samples).transmit

    def reset(self) -> None:
        self.last_inbound_audio_timestamp = None
        self.frames_transmitted = 0
        self.frames_dropped_silence = 0
        self.frames_dropped_agent_speaking = 0
        logger.debug("Turn-taking gate reset")

    def get_stats(self) -> dict:
        return {
            "frames_transmitted": self.frames_transmitted,
            "frames_dropped_silence": self.frames_dropped_silence,
            "frames_dropped_agent_speaking": self.frames_dropped_agent_speaking,
            "silence_threshold": self.silence_threshold,
            "agent_speaking_window_ms": self.agent_speaking_window_ms,
        }
