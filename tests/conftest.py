"""Pytest configuration and fixtures for voice interview tests."""

import pytest
import asyncio
import json
import tempfile
import logging
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional
from unittest.mock import Mock, patch
import numpy as np

from voiceinterview.audio.codec import AudioFrameCodec
from voiceinterview.audio.device import AbstractAudioDevice, MicrophoneHandle
from voiceinterview.config import SessionSettings
from voiceinterview.errors.exceptions import MicrophonePermissionError
from voiceinterview.models.audio import AudioFrame
from voiceinterview.models.session import Message, MessageRole
from voiceinterview.transport.base import AbstractTransport, TransportFrame


# Configure logging for tests
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


class FakeTransport(AbstractTransport):
    """In-memory transport: tests push inbound frames and inspect sent messages."""

    def __init__(self, open_errors: Optional[List[Optional[BaseException]]] = None):
        self.inbound: "asyncio.Queue[TransportFrame]" = asyncio.Queue()
        self.sent: List[Dict[str, Any]] = []
        self.sent_bytes: List[bytes] = []
        self.open_errors = list(open_errors or [])
        self.open_calls = 0
        self.close_calls = 0
        self.close_error: Optional[BaseException] = None
        self.last_headers: Optional[Dict[str, str]] = None
        self._closed = True

    async def open(self, url: str, headers: Optional[Dict[str, str]] = None) -> None:
        self.open_calls += 1
        self.last_headers = headers
        error = self.open_errors.pop(0) if self.open_errors else None
        if error is not None:
            raise error
        self._closed = False

    async def send_json(self, message: Dict[str, Any]) -> None:
        if self._closed:
            raise ConnectionError("connection is not open")
        self.sent.append(message)

    async def send_bytes(self, data: bytes) -> None:
        if self._closed:
            raise ConnectionError("connection is not open")
        self.sent_bytes.append(data)

    async def receive(self) -> TransportFrame:
        frame = await self.inbound.get()
        if frame.is_terminal:
            self._closed = True
        return frame

    async def close(self) -> None:
        self.close_calls += 1
        self._closed = True
        if self.close_error is not None:
            raise self.close_error

    @property
    def closed(self) -> bool:
        return self._closed

    # Test helpers

    def push_json(self, data: Dict[str, Any]) -> None:
        self.inbound.put_nowait(TransportFrame(kind="text", data=json.dumps(data)))

    def push_text(self, text: str) -> None:
        self.inbound.put_nowait(TransportFrame(kind="text", data=text))

    def push_bytes(self, data: bytes) -> None:
        self.inbound.put_nowait(TransportFrame(kind="binary", data=data))

    def push_close(self, code: Optional[int] = 1000) -> None:
        self.inbound.put_nowait(TransportFrame(kind="closed", close_code=code))

    def push_error(self, error: BaseException) -> None:
        self.inbound.put_nowait(TransportFrame(kind="error", error=error))

    def sent_types(self) -> List[str]:
        return [m.get("type") for m in self.sent]


class FakeAudioDevice(AbstractAudioDevice):
    """Audio device double recording acquisitions, releases and playback."""

    def __init__(self, deny_permission: bool = False):
        self.deny_permission = deny_permission
        self.on_frame = None
        self.on_error = None
        self.handles: List[MicrophoneHandle] = []
        self.release_calls = 0
        self.played: List[tuple] = []

    def acquire_microphone(self, on_frame, on_error=None) -> MicrophoneHandle:
        if self.deny_permission:
            raise MicrophonePermissionError("Permission denied by user")
        self.on_frame = on_frame
        self.on_error = on_error
        handle = MicrophoneHandle("fake-microphone")
        self.handles.append(handle)
        return handle

    def release_microphone(self, handle: MicrophoneHandle) -> None:
        self.release_calls += 1
        handle.released = True

    def playback(self, samples: np.ndarray, sample_rate: int) -> None:
        self.played.append((samples, sample_rate))

    @property
    def held(self) -> bool:
        return any(not h.released for h in self.handles)

    def emit(self, frame: AudioFrame) -> None:
        """Deliver a frame as the capture thread would."""
        self.on_frame(frame)

    def fail_capture(self, error: BaseException) -> None:
        """Stop the current capture with a device error, as the capture thread would."""
        for handle in self.handles:
            handle.released = True
        self.on_error(error)


@pytest.fixture
def temp_data_dir():
    """Create temporary directory for test data."""
    with tempfile.TemporaryDirectory() as temp_dir:
        yield temp_dir


@pytest.fixture
def fake_transport():
    return FakeTransport()


@pytest.fixture
def fake_audio_device():
    return FakeAudioDevice()


@pytest.fixture
def codec():
    return AudioFrameCodec(sample_rate=16000)


@pytest.fixture
def speech_samples():
    """A 440 Hz tone well above the silence threshold (RMS ~0.35)."""
    t = np.linspace(0, 4096 / 16000, 4096, False)
    return (0.5 * np.sin(2 * np.pi * 440 * t)).astype(np.float32)


@pytest.fixture
def silent_samples():
    return np.zeros(4096, dtype=np.float32)


@pytest.fixture
def speech_frame(speech_samples):
    return AudioFrame(samples=speech_samples, sample_rate=16000, timestamp=0.0, sequence_number=1)


@pytest.fixture
def session_settings():
    """Settings with no context delay and a long session timeout."""
    return SessionSettings(
        agent_url="wss://agent.test/conversation",
        api_key="secret-key",
        connect_timeout_seconds=1.0,
        context_delay_ms=0,
        session_timeout_ms=60000,
        max_reconnect_attempts=3,
    )


@pytest.fixture
def mock_pyaudio():
    """Mock PyAudio for testing without actual audio hardware."""
    with patch('pyaudio.PyAudio') as mock_pyaudio_class:
        mock_pyaudio_instance = Mock()
        mock_stream = Mock()

        # Silent float32 audio
        mock_stream.read.return_value = b'\x00' * (4096 * 4)
        mock_stream.stop_stream.return_value = None
        mock_stream.close.return_value = None

        mock_pyaudio_instance.open.return_value = mock_stream
        mock_pyaudio_instance.terminate.return_value = None

        mock_pyaudio_class.return_value = mock_pyaudio_instance

        yield {
            'class': mock_pyaudio_class,
            'instance': mock_pyaudio_instance,
            'stream': mock_stream
        }


@pytest.fixture
def make_transcript():
    """Build a transcript from (role, text, seconds offset) tuples."""
    def build(entries, start: Optional[datetime] = None) -> List[Message]:
        start = start or datetime(2024, 1, 1, 10, 0, 0)
        return [
            Message(role=MessageRole(role), content=text, timestamp=start + timedelta(seconds=offset))
            for role, text, offset in entries
        ]
    return build


@pytest.fixture
def test_config(temp_data_dir):
    """Configuration mapping pointing storage at a temp directory."""
    return {
        "agent": {
            "url": "wss://agent.test/conversation",
            "api_key": "secret-key",
            "context_delay_ms": 0,
        },
        "session": {
            "timeout_ms": 60000,
            "max_reconnect_attempts": 2,
        },
        "audio": {
            "sample_rate": 16000,
            "chunk_size": 4096,
            "channels": 1,
        },
        "storage": {
            "data_directory": temp_data_dir,
        },
    }
