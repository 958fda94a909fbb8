"""Data models for the voice interview pipeline."""

from .audio import AudioFrame, GateDecision
from .session import CallStatus, MessageRole, Session, Message, InterviewContext
from .errors import (
    ErrorKind,
    ErrorCode,
    ErrorRecord,
    RecoveryStrategy,
    ClassifiedError,
    RecoveryOutcome,
)
from .analytics import (
    InterviewMetrics,
    AnalyticsReport,
    PerformanceMetrics,
    PerformanceReport,
)
from .events import (
    AudioChunkFrame,
    SessionInitFrame,
    SessionContextFrame,
    PongFrame,
    InboundAudio,
    InboundTranscript,
    InboundControl,
    InboundUnknown,
    InboundMessage,
    InboundReceived,
    TransportClosed,
    TransportFailed,
    FrameDropped,
    StatusChanged,
    EndRequested,
    MuteRequested,
    CaptureFailed,
    SessionEvent,
    PublishedEvent,
    ErrorEvent,
)

__all__ = [
    "AudioFrame",
    "GateDecision",
    "CallStatus",
    "MessageRole",
    "Session",
    "Message",
    "InterviewContext",
    # Errors
    "ErrorKind",
    "ErrorCode",
    "ErrorRecord",
    "RecoveryStrategy",
    "ClassifiedError",
    "RecoveryOutcome",
    # Reports
    "InterviewMetrics",
    "AnalyticsReport",
    "PerformanceMetrics",
    "PerformanceReport",
    # Wire and session events
    "AudioChunkFrame",
    "SessionInitFrame",
    "SessionContextFrame",
    "PongFrame",
    "InboundAudio",
    "InboundTranscript",
    "InboundControl",
    "InboundUnknown",
    "InboundMessage",
    "InboundReceived",
    "TransportClosed",
    "TransportFailed",
    "FrameDropped",
    "StatusChanged",
    "EndRequested",
    "MuteRequested",
    "CaptureFailed",
    "SessionEvent",
    "PublishedEvent",
    "ErrorEvent",
]
