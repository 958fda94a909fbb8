"""Session lifecycle: state machine, duplex channel and orchestration."""

from .state_machine import SessionStateMachine, VALID_TRANSITIONS
from .channel import DuplexSessionChannel, classify_inbound
from .publisher import SessionEventPublisher
from .performance import SessionPerformanceTracker
from .interview_session import InterviewSession, SessionResult

__all__ = [
    'SessionStateMachine',
    'VALID_TRANSITIONS',
    'DuplexSessionChannel',
    'classify_inbound',
    'SessionEventPublisher',
    'SessionPerformanceTracker',
    'InterviewSession',
    'SessionResult'
]
