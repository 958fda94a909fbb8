"""Classification of raw transport and vendor failures into a fixed taxonomy."""

import json
import logging
from datetime import datetime
from typing import Any, Dict, Optional

from ..models.errors import ClassifiedError, ErrorKind, RecoveryStrategy
from .exceptions import SessionError

logger = logging.getLogger(__name__)


RECOVERY_STRATEGIES: Dict[ErrorKind, RecoveryStrategy] = {
    ErrorKind.NETWORK: RecoveryStrategy(
        should_retry=True, retry_delay_ms=2000, max_retries=3,
        user_action="Check your internet connection and try again."),
    ErrorKind.AUTHENTICATION: RecoveryStrategy(
        should_retry=False, retry_delay_ms=0, max_retries=0,
        user_action="Please refresh the page and try again. If the problem persists, contact support."),
    ErrorKind.PERMISSION: RecoveryStrategy(
        should_retry=False, retry_delay_ms=0, max_retries=0,
        user_action="Please allow microphone access in your browser settings and refresh the page."),
    ErrorKind.RATE_LIMIT: RecoveryStrategy(
        should_retry=True, retry_delay_ms=5000, max_retries=2,
        user_action="Please wait a moment before trying again."),
    ErrorKind.ASSISTANT_CONFIG: RecoveryStrategy(
        should_retry=False, retry_delay_ms=0, max_retries=0,
        user_action="There's a configuration issue. Please contact support."),
    ErrorKind.AUDIO: RecoveryStrategy(
        should_retry=True, retry_delay_ms=1000, max_retries=2,
        user_action="Check your microphone and audio settings."),
    ErrorKind.TIMEOUT: RecoveryStrategy(
        should_retry=True, retry_delay_ms=3000, max_retries=2,
        user_action="The connection timed out. Please try again."),
    ErrorKind.UNKNOWN: RecoveryStrategy(
        should_retry=True, retry_delay_ms=2000, max_retries=1,
        user_action="An unexpected error occurred. Please try again."),
}

SENSITIVE_KEYS = {"token", "apikey", "api_key", "authorization"}


def _lookup(error: Any, key: str) -> Any:
    if isinstance(error, dict):
        return error.get(key)
    return getattr(error, key, None)


class ErrorClassifier:
    """Maps any raw failure (exception, dict, string) to an ErrorKind.

    Matching is by substring of the lowercased message, by error code and by
    HTTP status, checked in a fixed priority order. Every input maps to
    exactly one kind; anything unmatched is UNKNOWN.
    """

    def __init__(self, strategies: Optional[Dict[ErrorKind, RecoveryStrategy]] = None):
        self.strategies = dict(RECOVERY_STRATEGIES)
        if strategies:
            self.strategies.update(strategies)

    def classify(self, error: Any) -> ErrorKind:
        if error is None:
            return ErrorKind.UNKNOWN
        if isinstance(error, SessionError):
            return error.kind

        message = self.extract_message(error)
        code = self.extract_code(error)
        status = self.extract_status(error)

        def has(*needles: str) -> bool:
            return any(needle in message for needle in needles)

        if has('network', 'connection', 'fetch') or code == 'NETWORK_ERROR':
            return ErrorKind.NETWORK
        if has('unauthorized', 'authentication', 'token') or code == 'UNAUTHORIZED' or status == 401:
            return ErrorKind.AUTHENTICATION
        if has('permission', 'microphone', 'media') or code == 'PERMISSION_DENIED':
            return ErrorKind.PERMISSION
        if has('rate limit', 'too many requests') or status == 429:
            return ErrorKind.RATE_LIMIT
        if has('assistant', 'configuration', 'missing') or code == 'ASSISTANT_NOT_FOUND':
            return ErrorKind.ASSISTANT_CONFIG
        if has('audio', 'microphone', 'sound') or code == 'AUDIO_ERROR':
            return ErrorKind.AUDIO
        if has('timeout', 'timed out') or code == 'TIMEOUT':
            return ErrorKind.TIMEOUT
        return ErrorKind.UNKNOWN

    @staticmethod
    def extract_message(error: Any) -> str:
        """Lowercased message text of a raw failure.

        Exceptions contribute their type name as well, so an exception
        raised without a message (``asyncio.TimeoutError()``) still carries
        a usable signal.
        """
        if isinstance(error, str):
            return error.lower()
        if isinstance(error, BaseException):
            return f"{type(error).__name__} {error}".lower().strip()

        message = _lookup(error, 'message')
        if message:
            return str(message).lower()
        nested = _lookup(error, 'error')
        if nested is not None and not isinstance(nested, str):
            nested_message = _lookup(nested, 'message')
            if nested_message:
                return str(nested_message).lower()
        elif nested:
            return nested.lower()
        status_text = _lookup(error, 'statusText') or _lookup(error, 'status_text')
        if status_text:
            return str(status_text).lower()

        try:
            return json.dumps(error, default=str).lower()
        except (TypeError, ValueError):
            return 'unknown error'

    @staticmethod
    def extract_code(error: Any) -> str:
        code = _lookup(error, 'code')
        if code:
            return str(code)
        nested = _lookup(error, 'error')
        if nested is not None and not isinstance(nested, str):
            nested_code = _lookup(nested, 'code')
            if nested_code:
                return str(nested_code)
        if isinstance(error, BaseException):
            return type(error).__name__
        name = _lookup(error, 'name')
        return str(name) if name else ''

    @staticmethod
    def extract_status(error: Any) -> Optional[int]:
        status = _lookup(error, 'status')
        if status is None:
            return None
        try:
            return int(status)
        except (TypeError, ValueError):
            return None

    def get_recovery_strategy(self, kind: ErrorKind) -> RecoveryStrategy:
        return self.strategies.get(kind, self.strategies[ErrorKind.UNKNOWN])

    def create_error(self, error: Any, context: Optional[Dict[str, Any]] = None) -> ClassifiedError:
        """Classify a raw failure and attach its recovery strategy.

        Args:
            error: Raw failure of any shape
            context: Extra context merged into the sanitised error context

        Returns:
            ClassifiedError whose message is the user-facing remediation text
        """
        kind = self.classify(error)
        strategy = self.get_recovery_strategy(kind)
        error_context: Dict[str, Any] = {
            "original_error": self.sanitize(error),
            "error_type": kind.value,
        }
        if context:
            error_context.update(self.sanitize(context))
        return ClassifiedError(
            kind=kind,
            message=strategy.user_action,
            strategy=strategy,
            timestamp=datetime.now(),
            context=error_context,
        )

    @staticmethod
    def sanitize(error: Any) -> Any:
        """Strip credentials from an error before it is logged or stored."""
        if isinstance(error, dict):
            return {k: v for k, v in error.items() if str(k).lower() not in SENSITIVE_KEYS}
        if isinstance(error, BaseException):
            return {"type": type(error).__name__, "message": str(error)}
        return error

    def log_error(self, error: ClassifiedError, context: Optional[Dict[str, Any]] = None) -> None:
        log_context = dict(error.context)
        if context:
            log_context.update(self.sanitize(context))

        if error.recoverable:
            logger.warning(f"Recoverable session error [{error.kind.value}]: {error.message} context={log_context}")
        else:
            logger.error(f"Critical session error [{error.kind.value}]: {error.message} context={log_context}")
