"""Authoritative lifecycle tracker for one interview session."""

import asyncio
import dataclasses
import logging
from datetime import datetime
from typing import Callable, Dict, FrozenSet, List, Optional

from ..models.errors import ErrorCode, ErrorRecord
from ..models.session import CallStatus, Session

logger = logging.getLogger(__name__)


VALID_TRANSITIONS: Dict[CallStatus, FrozenSet[CallStatus]] = {
    CallStatus.INACTIVE: frozenset({CallStatus.INITIALIZING, CallStatus.CONNECTING, CallStatus.ACTIVE}),
    CallStatus.INITIALIZING: frozenset({CallStatus.CONNECTING, CallStatus.ACTIVE, CallStatus.ERROR}),
    CallStatus.CONNECTING: frozenset({CallStatus.ACTIVE, CallStatus.ERROR}),
    CallStatus.ACTIVE: frozenset({CallStatus.PAUSED, CallStatus.FINISHING, CallStatus.ERROR}),
    CallStatus.PAUSED: frozenset({CallStatus.ACTIVE, CallStatus.FINISHING, CallStatus.ERROR}),
    CallStatus.FINISHING: frozenset({CallStatus.FINISHED, CallStatus.ERROR}),
    CallStatus.FINISHED: frozenset({CallStatus.INACTIVE}),
    CallStatus.ERROR: frozenset({CallStatus.INACTIVE, CallStatus.CONNECTING}),
}

ERROR_DEDUP_WINDOW_MS = 5000
MAX_ERROR_RECORDS = 10

StatusCallback = Callable[[CallStatus, CallStatus], None]


class SessionStateMachine:
    """Validates status transitions and derives every other session field.

    All mutation goes through ``update_status``, ``add_error``,
    ``attempt_reconnect`` and ``reset``; callers only ever see copies of the
    session record. The session timeout is armed on the running asyncio loop
    each time ACTIVE is entered and disarmed whenever ACTIVE is left.
    """

    def __init__(self,
                 session_id: str,
                 session_timeout_ms: float = 30 * 60 * 1000,
                 max_reconnect_attempts: int = 3,
                 on_status_change: Optional[StatusCallback] = None,
                 clock: Optional[Callable[[], datetime]] = None):
        """Initialize state machine.
        
        Args:
            session_id: Immutable session identifier
            session_timeout_ms: How long a session may stay ACTIVE
            max_reconnect_attempts: Upper bound on reconnect attempts
            on_status_change: Called with (previous, current) after each accepted transition
            clock: Wall clock used for timestamps (defaults to datetime.now)
        """
        self.session_timeout_ms = session_timeout_ms
        self.max_reconnect_attempts = max_reconnect_attempts
        self.on_status_change = on_status_change
        self._clock = clock or datetime.now

        self._session = Session(id=session_id)
        self._errors: List[ErrorRecord] = []
        self._timeout_handle: Optional[asyncio.TimerHandle] = None

    # Read-only views

    @property
    def session(self) -> Session:
        return dataclasses.replace(self._session)

    @property
    def status(self) -> CallStatus:
        return self._session.status

    @property
    def errors(self) -> List[ErrorRecord]:
        return list(self._errors)

    @property
    def can_reconnect(self) -> bool:
        return self._session.reconnect_attempts < self.max_reconnect_attempts

    @property
    def is_active(self) -> bool:
        return self._session.status == CallStatus.ACTIVE

    @property
    def has_errors(self) -> bool:
        return len(self._errors) > 0

    @property
    def last_error(self) -> Optional[ErrorRecord]:
        return self._errors[-1] if self._errors else None

    @property
    def timeout_armed(self) -> bool:
        return self._timeout_handle is not None

    # Transitions

    def can_transition(self, new_status: CallStatus) -> bool:
        return new_status in VALID_TRANSITIONS[self._session.status]

    def update_status(self, new_status: CallStatus) -> bool:
        """Move to ``new_status`` if the edge is allowed.

        Same-state updates and illegal edges leave the session unchanged;
        illegal edges are logged as warnings. Never raises.

        Returns:
            True if the status changed
        """
        previous = self._session.status
        if new_status == previous:
            return False
        if not self.can_transition(new_status):
            logger.warning(f"Invalid status transition for session {self._session.id}: "
                           f"{previous.value} -> {new_status.value}")
            return False
        self._apply(new_status)
        return True

    def _apply(self, new_status: CallStatus) -> None:
        previous = self._session.status
        now = self._clock()
        session = self._session
        session.status = new_status
        session.last_activity = now

        if new_status == CallStatus.ACTIVE and session.start_time is None:
            session.start_time = now
        elif new_status in (CallStatus.FINISHING, CallStatus.FINISHED) and session.start_time is not None:
            session.end_time = now
            session.duration_ms = (now - session.start_time).total_seconds() * 1000.0

        if new_status == CallStatus.ACTIVE:
            self._arm_timeout()
        else:
            self._disarm_timeout()

        logger.info(f"Session {session.id}: {previous.value} -> {new_status.value}")
        if self.on_status_change is not None:
            self.on_status_change(previous, new_status)

    def _force(self, new_status: CallStatus) -> None:
        if self._session.status == new_status:
            return
        if not self.can_transition(new_status):
            logger.warning(f"Forcing status transition for session {self._session.id}: "
                           f"{self._session.status.value} -> {new_status.value}")
        self._apply(new_status)

    # Timeout

    def _arm_timeout(self) -> None:
        self._disarm_timeout()
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("No running event loop, session timeout not armed")
            return
        self._timeout_handle = loop.call_later(self.session_timeout_ms / 1000.0, self.expire)

    def _disarm_timeout(self) -> None:
        if self._timeout_handle is not None:
            self._timeout_handle.cancel()
            self._timeout_handle = None

    def expire(self) -> bool:
        """Apply the session timeout: ACTIVE goes to FINISHING with SESSION_TIMEOUT.

        Called by the armed timer; a no-op unless the session is still ACTIVE.
        """
        self._timeout_handle = None
        if self._session.status != CallStatus.ACTIVE:
            return False
        logger.warning(f"Session {self._session.id} timed out after {self.session_timeout_ms}ms")
        self.update_status(CallStatus.FINISHING)
        self.add_error(ErrorCode.SESSION_TIMEOUT, "Interview session timed out", recoverable=False)
        return True

    # Errors and reconnection

    def add_error(self, code: ErrorCode, message: str, recoverable: bool) -> Optional[ErrorRecord]:
        """Record an error, collapsing repeats of one code within 5 seconds.

        ``error_count`` counts every call, including collapsed ones.

        Returns:
            The stored record, or None if it was collapsed into an earlier one
        """
        now = self._clock()
        self._session.error_count += 1
        self._session.last_activity = now

        for existing in self._errors:
            age_ms = (now - existing.timestamp).total_seconds() * 1000.0
            if existing.code == code and age_ms < ERROR_DEDUP_WINDOW_MS:
                logger.debug(f"Duplicate {code.value} error within {ERROR_DEDUP_WINDOW_MS}ms dropped")
                return None

        record = ErrorRecord(code=code, message=message, timestamp=now, recoverable=recoverable)
        self._errors = (self._errors + [record])[-MAX_ERROR_RECORDS:]
        return record

    def attempt_reconnect(self) -> bool:
        """Count one reconnect attempt and move to CONNECTING.

        Once the maximum is reached a MAX_RECONNECT_ATTEMPTS error is
        recorded and the session is forced into ERROR.

        Returns:
            False when no further reconnection is allowed
        """
        if self._session.reconnect_attempts >= self.max_reconnect_attempts:
            self.add_error(ErrorCode.MAX_RECONNECT_ATTEMPTS,
                           "Maximum reconnection attempts exceeded", recoverable=False)
            self._force(CallStatus.ERROR)
            return False

        self._session.reconnect_attempts += 1
        logger.info(f"Reconnect attempt {self._session.reconnect_attempts}/{self.max_reconnect_attempts} "
                    f"for session {self._session.id}")
        self.update_status(CallStatus.CONNECTING)
        return True

    def reset(self) -> None:
        """Disarm the timer and return to a fresh INACTIVE session."""
        self._disarm_timeout()
        self._session = Session(id=self._session.id)
        self._errors = []
        logger.info(f"Session {self._session.id} reset")

    def close(self) -> None:
        """Disarm all timers."""
        self._disarm_timeout()
