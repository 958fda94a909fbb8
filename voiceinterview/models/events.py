"""Wire messages and session events for the duplex agent connection."""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from .errors import ClassifiedError
from .session import CallStatus, MessageRole


class WireModel(BaseModel):
    """Base for immutable wire messages."""
    model_config = ConfigDict(frozen=True)


# Outbound frames

class AudioChunkFrame(WireModel):
    type: Literal["audio_chunk"] = "audio_chunk"
    payload: str  # base64 little-endian 16-bit PCM, mono


class SessionInitFrame(WireModel):
    type: Literal["session_init"] = "session_init"
    context: Dict[str, Any] = Field(default_factory=dict)


class SessionContextFrame(WireModel):
    type: Literal["session_context"] = "session_context"
    context: Dict[str, Any] = Field(default_factory=dict)


class PongFrame(WireModel):
    type: Literal["pong"] = "pong"
    event_id: Any


# Inbound variants

class InboundAudio(WireModel):
    kind: Literal["audio"] = "audio"
    payload: Union[str, bytes]
    encoding: Literal["base64", "pcm"] = "base64"
    sample_rate: Optional[int] = None


class InboundTranscript(WireModel):
    kind: Literal["transcript"] = "transcript"
    role: MessageRole
    text: str
    is_final: bool = True


class InboundControl(WireModel):
    kind: Literal["control"] = "control"
    event: str
    data: Dict[str, Any] = Field(default_factory=dict)


class InboundUnknown(WireModel):
    kind: Literal["unknown"] = "unknown"
    raw: Any = None


InboundMessage = Union[InboundAudio, InboundTranscript, InboundControl, InboundUnknown]


# Events flowing through a session's inbound queue

@dataclass
class InboundReceived:
    """A classified message arrived from the agent."""
    message: InboundMessage
    received_at: datetime = field(default_factory=datetime.now)


@dataclass
class TransportClosed:
    """The transport closed; ``code`` is the close code when known.

    ``epoch`` identifies the connection the event belongs to.
    """
    code: Optional[int] = None
    reason: str = ""
    epoch: int = 0


@dataclass
class TransportFailed:
    """The transport raised or reported an error."""
    error: Any
    epoch: int = 0


@dataclass
class StatusChanged:
    """The state machine moved between two states."""
    previous: CallStatus
    current: CallStatus


@dataclass
class FrameDropped:
    """An inbound frame was skipped; the session continues."""
    error: ClassifiedError


@dataclass
class CaptureFailed:
    """The microphone capture thread stopped on a device error."""
    error: Any


@dataclass
class EndRequested:
    """Caller asked the session to end."""
    reason: str = "requested"


@dataclass
class MuteRequested:
    """Caller asked to pause (``paused=True``) or resume the microphone.

    ``reply`` resolves to whether the status changed.
    """
    paused: bool
    reply: asyncio.Future


SessionEvent = Union[InboundReceived, TransportClosed, TransportFailed, FrameDropped, CaptureFailed,
                     StatusChanged, EndRequested, MuteRequested]


@dataclass
class PublishedEvent:
    """Envelope sent to pub/sub subscribers."""
    session_id: str
    topic: str
    payload: Any
    timestamp: datetime = field(default_factory=datetime.now)


@dataclass
class ErrorEvent:
    """A classified error published for subscribers."""
    session_id: str
    error: ClassifiedError
    terminal: bool
