"""Conversion between captured float samples and the 16-bit PCM wire format."""

import base64
import binascii
import logging
from typing import Sequence, Union

import numpy as np

from ..errors.exceptions import AudioDecodeError

logger = logging.getLogger(__name__)


class AudioFrameCodec:
    """Encodes float32 samples to base64 little-endian int16 PCM and back.

    Negative samples are scaled by 0x8000 and non-negative ones by 0x7FFF,
    so -1.0 maps to -32768 and 1.0 maps to 32767. Decoding divides by
    32768, so a round trip is lossy only to 16-bit quantization (at most
    1.5 / 32768 per sample, from rounding plus the asymmetric scale).
    """

    WIRE_DTYPE = np.dtype("<i2")
    DECODE_SCALE = 32768.0

    def __init__(self, sample_rate: int = 16000, channels: int = 1):
        """Initialize codec.

        Args:
            sample_rate: Sample rate assumed for decoded frames
            channels: Number of channels (the wire format is mono)
        """
        if channels != 1:
            raise ValueError(f"Only mono PCM is supported, got {channels} channels")
        self.sample_rate = sample_rate
        self.channels = channels

    def to_pcm16(self, samples: Union[np.ndarray, Sequence[float]]) -> np.ndarray:
        """Clamp float samples to [-1, 1] and quantize to int16."""
        floats = np.clip(np.asarray(samples, dtype=np.float64), -1.0, 1.0)
        scaled = np.where(floats < 0, floats * 0x8000, floats * 0x7FFF)
        return np.rint(scaled).astype(self.WIRE_DTYPE)

    def encode_pcm(self, samples: Union[np.ndarray, Sequence[float]]) -> bytes:
        """Quantize samples and pack them little-endian."""
        return self.to_pcm16(samples).tobytes()

    def encode(self, samples: Union[np.ndarray, Sequence[float]]) -> str:
        """Encode float samples to the base64 wire representation.

        Args:
            samples: Float samples, nominally in [-1, 1]

        Returns:
            Base64 text of little-endian 16-bit PCM
        """
        return base64.b64encode(self.encode_pcm(samples)).decode("ascii")

    def decode_pcm(self, pcm: bytes) -> np.ndarray:
        """Reinterpret raw little-endian int16 bytes as float32 samples."""
        if len(pcm) % 2 != 0:
            raise AudioDecodeError(f"PCM payload has odd byte length: {len(pcm)}")
        ints = np.frombuffer(pcm, dtype=self.WIRE_DTYPE)
        return (ints.astype(np.float32) / np.float32(self.DECODE_SCALE)).astype(np.float32)

    def decode(self, wire: Union[str, bytes], sample_rate: int = None) -> np.ndarray:
        """Decode a base64 wire payload to float32 samples in [-1, 1].

        Args:
            wire: Base64 text or bytes
            sample_rate: Sample rate of the payload (informational)

        Returns:
            Float32 samples

        Raises:
            AudioDecodeError: If the payload is not valid base64 or has an odd byte length
        """
        try:
            pcm = base64.b64decode(wire, validate=True)
        except (binascii.Error, ValueError) as e:
            raise AudioDecodeError(f"Malformed base64 audio payload: {e}") from e

        samples = self.decode_pcm(pcm)
        logger.debug(f"Decoded {len(samples)} samples at {sample_rate or self.sample_rate}Hz")
        return samples
