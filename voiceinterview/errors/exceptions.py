"""Exception types raised by the voice interview pipeline."""

from typing import Optional

from ..models.errors import ErrorKind


class VoiceInterviewError(Exception):
    """Base class for all pipeline errors."""


class AudioDecodeError(VoiceInterviewError):
    """An inbound audio payload could not be decoded."""
    code = "AUDIO_ERROR"


class SessionError(VoiceInterviewError):
    """A classified session failure.

    ``message`` is the user-facing remediation text for ``kind``.
    """

    def __init__(self, kind: ErrorKind, message: str, recoverable: bool = False,
                 cause: Optional[BaseException] = None):
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.recoverable = recoverable
        self.cause = cause


class MicrophonePermissionError(SessionError, PermissionError):
    """The local microphone could not be acquired."""
    code = "PERMISSION_DENIED"

    def __init__(self, message: str = "Microphone permission denied",
                 cause: Optional[BaseException] = None):
        super().__init__(ErrorKind.PERMISSION, message, recoverable=False, cause=cause)


class FeedbackError(VoiceInterviewError):
    """The feedback collaborator rejected or failed a hand-off."""

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status = status
