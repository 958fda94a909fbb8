"""Session-related data models."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional


class CallStatus(Enum):
    """Lifecycle states of a voice interview session."""
    INACTIVE = "INACTIVE"
    INITIALIZING = "INITIALIZING"
    CONNECTING = "CONNECTING"
    ACTIVE = "ACTIVE"
    PAUSED = "PAUSED"
    FINISHING = "FINISHING"
    FINISHED = "FINISHED"
    ERROR = "ERROR"


class MessageRole(Enum):
    """Speaker of a transcript message."""
    USER = "user"
    ASSISTANT = "assistant"


@dataclass
class Session:
    """Lifecycle record of one interview session.

    Only ``status`` is driven by callers; every other field is derived by
    the state machine as transitions happen.
    """
    id: str
    status: CallStatus = CallStatus.INACTIVE
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    duration_ms: Optional[float] = None
    error_count: int = 0
    reconnect_attempts: int = 0
    last_activity: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "status": self.status.value,
            "start_time": self.start_time.isoformat() if self.start_time else None,
            "end_time": self.end_time.isoformat() if self.end_time else None,
            "duration_ms": self.duration_ms,
            "error_count": self.error_count,
            "reconnect_attempts": self.reconnect_attempts,
            "last_activity": self.last_activity.isoformat() if self.last_activity else None,
        }


@dataclass(frozen=True)
class Message:
    """One transcript line, in arrival order."""
    role: MessageRole
    content: str
    timestamp: datetime

    def to_dict(self) -> Dict[str, Any]:
        return {
            "role": self.role.value,
            "content": self.content,
            "timestamp": self.timestamp.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Message":
        return cls(
            role=MessageRole(data["role"]),
            content=data["content"],
            timestamp=datetime.fromisoformat(data["timestamp"]),
        )


@dataclass
class InterviewContext:
    """Metadata describing the interview, sent to the agent after the handshake."""
    candidate_name: str
    role: str
    experience_level: str = "Mid-level"
    years_of_experience: int = 0
    tech_stack: List[str] = field(default_factory=list)
    interview_type: str = "technical"
    interview_duration_minutes: int = 30
    questions: List[str] = field(default_factory=list)
    user_id: Optional[str] = None

    @property
    def primary_tech(self) -> str:
        return self.tech_stack[0] if self.tech_stack else "JavaScript"

    def to_metadata(self) -> Dict[str, Any]:
        """Render the context as the opaque metadata dict carried on the wire."""
        metadata: Dict[str, Any] = {
            "candidate_name": self.candidate_name,
            "role": self.role,
            "experience_level": self.experience_level,
            "years_of_experience": str(self.years_of_experience),
            "tech_stack": ", ".join(self.tech_stack),
            "interview_type": self.interview_type,
            "primary_tech": self.primary_tech,
            "interview_duration_minutes": self.interview_duration_minutes,
        }
        if self.questions:
            metadata["questions"] = list(self.questions)
        if self.user_id:
            metadata["user_id"] = self.user_id
        return metadata
