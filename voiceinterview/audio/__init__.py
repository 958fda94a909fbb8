"""Audio encoding, turn taking and local device I/O."""

from .codec import AudioFrameCodec
from .turn_taking import TurnTakingGate, frame_rms
from .device import AbstractAudioDevice, MicrophoneHandle, PyAudioDevice

__all__ = [
    'AudioFrameCodec',
    'TurnTakingGate',
    'frame_rms',
    'AbstractAudioDevice',
    'MicrophoneHandle',
    'PyAudioDevice'
]
