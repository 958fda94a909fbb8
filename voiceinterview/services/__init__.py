"""Services layer for session lifecycle, persistence and feedback."""

from .feedback import AbstractFeedbackCollaborator, FileFeedbackCollaborator, HttpFeedbackCollaborator
from .session_manager import SessionManager

__all__ = [
    "AbstractFeedbackCollaborator",
    "FileFeedbackCollaborator",
    "HttpFeedbackCollaborator",
    "SessionManager"
]
