"""Post-session transcript analytics."""

from .engine import TranscriptAnalyticsEngine

__all__ = [
    'TranscriptAnalyticsEngine'
]
