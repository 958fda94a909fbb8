"""Bounded retry of a failed operation according to its error kind."""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional

from ..models.errors import ClassifiedError, ErrorKind, RecoveryOutcome
from .classifier import ErrorClassifier
from .exceptions import SessionError

logger = logging.getLogger(__name__)

RetryFunction = Callable[[], Awaitable[Any]]


async def execute_recovery_strategy(kind: ErrorKind,
                                    retry_fn: RetryFunction,
                                    attempt: int = 0,
                                    classifier: Optional[ErrorClassifier] = None,
                                    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
                                    cancel_event: Optional[asyncio.Event] = None,
                                    last_error: Optional[ClassifiedError] = None) -> RecoveryOutcome:
    """Retry ``retry_fn`` with the fixed backoff of ``kind``.

    The attempt counter is threaded through the recursion; no retry state
    is kept anywhere else. Each level waits the strategy delay, calls
    ``retry_fn`` once and recurses with ``attempt + 1`` on failure.

    Args:
        kind: Error kind whose strategy governs the retries
        retry_fn: Coroutine function performing one attempt
        attempt: Attempts already made
        classifier: Classifier used for strategies and for failed attempts
        sleep: Awaitable delay in seconds (injectable for tests)
        cancel_event: When set, no further attempts are issued
        last_error: Classified failure of the previous attempt

    Returns:
        RecoveryOutcome; on failure ``final_error`` is the last attempt's error
    """
    classifier = classifier or ErrorClassifier()
    strategy = classifier.get_recovery_strategy(kind)

    if not strategy.should_retry or attempt >= strategy.max_retries:
        logger.info(f"Recovery for {kind.value} exhausted after {attempt} attempt(s)")
        return RecoveryOutcome(success=False, attempts=attempt, final_error=last_error)

    if cancel_event is not None and cancel_event.is_set():
        logger.info(f"Recovery for {kind.value} cancelled before attempt {attempt + 1}")
        return RecoveryOutcome(success=False, attempts=attempt, final_error=last_error)

    if strategy.retry_delay_ms > 0:
        await sleep(strategy.retry_delay_ms / 1000.0)

    if cancel_event is not None and cancel_event.is_set():
        logger.info(f"Recovery for {kind.value} cancelled during backoff")
        return RecoveryOutcome(success=False, attempts=attempt, final_error=last_error)

    logger.info(f"Recovery attempt {attempt + 1}/{strategy.max_retries} for {kind.value}")
    try:
        result = await retry_fn()
    except asyncio.CancelledError:
        raise
    except Exception as e:
        error = classifier.create_error(e, {"attempt": attempt + 1})
        classifier.log_error(error)
        if isinstance(e, SessionError) and not e.recoverable:
            return RecoveryOutcome(success=False, attempts=attempt + 1, final_error=error)
        return await execute_recovery_strategy(
            kind, retry_fn, attempt + 1,
            classifier=classifier, sleep=sleep, cancel_event=cancel_event, last_error=error)

    return RecoveryOutcome(success=True, attempts=attempt + 1, result=result)
