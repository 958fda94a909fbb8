"""Error types, classification and recovery."""

from .exceptions import (
    VoiceInterviewError,
    AudioDecodeError,
    SessionError,
    MicrophonePermissionError,
    FeedbackError,
)
from .classifier import ErrorClassifier, RECOVERY_STRATEGIES
from .recovery import execute_recovery_strategy

__all__ = [
    'VoiceInterviewError',
    'AudioDecodeError',
    'SessionError',
    'MicrophonePermissionError',
    'FeedbackError',
    'ErrorClassifier',
    'RECOVERY_STRATEGIES',
    'execute_recovery_strategy'
]
