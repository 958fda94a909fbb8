"""Error taxonomy, error records and recovery data models."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional


class ErrorKind(Enum):
    """Bounded taxonomy that every transport/vendor failure is mapped into."""
    NETWORK = "NETWORK"
    AUTHENTICATION = "AUTHENTICATION"
    PERMISSION = "PERMISSION"
    RATE_LIMIT = "RATE_LIMIT"
    ASSISTANT_CONFIG = "ASSISTANT_CONFIG"
    AUDIO = "AUDIO"
    TIMEOUT = "TIMEOUT"
    UNKNOWN = "UNKNOWN"


class ErrorCode(Enum):
    """Codes recorded against a session: every ErrorKind plus the lifecycle terminals."""
    NETWORK = "NETWORK"
    AUTHENTICATION = "AUTHENTICATION"
    PERMISSION = "PERMISSION"
    RATE_LIMIT = "RATE_LIMIT"
    ASSISTANT_CONFIG = "ASSISTANT_CONFIG"
    AUDIO = "AUDIO"
    TIMEOUT = "TIMEOUT"
    UNKNOWN = "UNKNOWN"
    SESSION_TIMEOUT = "SESSION_TIMEOUT"
    MAX_RECONNECT_ATTEMPTS = "MAX_RECONNECT_ATTEMPTS"

    @classmethod
    def from_kind(cls, kind: ErrorKind) -> "ErrorCode":
        return cls(kind.value)


@dataclass(frozen=True)
class ErrorRecord:
    """An error recorded against a session."""
    code: ErrorCode
    message: str
    timestamp: datetime
    recoverable: bool

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code.value,
            "message": self.message,
            "timestamp": self.timestamp.isoformat(),
            "recoverable": self.recoverable,
        }


@dataclass(frozen=True)
class RecoveryStrategy:
    """Retry policy for one error kind."""
    should_retry: bool
    retry_delay_ms: int
    max_retries: int
    user_action: str


@dataclass
class ClassifiedError:
    """A raw failure after classification."""
    kind: ErrorKind
    message: str
    strategy: RecoveryStrategy
    timestamp: datetime = field(default_factory=datetime.now)
    context: Dict[str, Any] = field(default_factory=dict)

    @property
    def recoverable(self) -> bool:
        return self.strategy.should_retry

    def to_record(self) -> ErrorRecord:
        return ErrorRecord(
            code=ErrorCode.from_kind(self.kind),
            message=self.message,
            timestamp=self.timestamp,
            recoverable=self.recoverable,
        )


@dataclass
class RecoveryOutcome:
    """Result of running a recovery strategy."""
    success: bool
    attempts: int = 0
    result: Any = None
    final_error: Optional[ClassifiedError] = None
