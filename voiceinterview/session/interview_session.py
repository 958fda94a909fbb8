"""One interview session: connection, lifecycle, recovery and the final report."""

import asyncio
import logging
import uuid
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from ..analytics.engine import TranscriptAnalyticsEngine
from ..audio.codec import AudioFrameCodec
from ..audio.device import AbstractAudioDevice
from ..audio.turn_taking import TurnTakingGate
from ..config import SessionSettings
from ..errors.classifier import ErrorClassifier
from ..errors.exceptions import MicrophonePermissionError, SessionError, VoiceInterviewError
from ..errors.recovery import execute_recovery_strategy
from ..models.analytics import AnalyticsReport, PerformanceReport
from ..models.errors import ClassifiedError, ErrorCode, ErrorKind, ErrorRecord
from ..models.events import (
    CaptureFailed,
    EndRequested,
    FrameDropped,
    InboundControl,
    InboundReceived,
    InboundTranscript,
    MuteRequested,
    StatusChanged,
    TransportClosed,
    TransportFailed,
)
from ..models.session import CallStatus, InterviewContext, Message, Session
from ..transport.base import AbstractTransport
from .channel import DuplexSessionChannel
from .performance import SessionPerformanceTracker
from .publisher import SessionEventPublisher
from .state_machine import SessionStateMachine

logger = logging.getLogger(__name__)

END_EVENTS = {"conversation_ended", "session_ended", "call_ended", "end_call"}
NORMAL_CLOSE_CODE = 1000


@dataclass
class SessionResult:
    """Everything a finished session leaves behind."""
    session: Session
    transcript: List[Message]
    errors: List[ErrorRecord]
    performance: PerformanceReport
    report: Optional[AnalyticsReport] = None
    terminal_error: Optional[ClassifiedError] = None
    end_reason: str = ""

    @property
    def succeeded(self) -> bool:
        return self.session.status == CallStatus.FINISHED


class InterviewSession:
    """Runs one voice interview end to end.

    Once the session is live, every state change is made by a single handler
    task that consumes the session's event queue: inbound messages,
    transport closure and failure, dropped frames, capture failures, status
    changes and pause, resume and end requests. The channel's receive and
    microphone tasks only produce events. The state machine's timeout timer
    only moves ACTIVE to FINISHING; the handler completes the shutdown.
    There is no module-level session state; each instance owns its channel,
    gate and state machine.
    """

    def __init__(self,
                 settings: SessionSettings,
                 transport: AbstractTransport,
                 audio_device: AbstractAudioDevice,
                 context: Optional[InterviewContext] = None,
                 session_id: Optional[str] = None,
                 init_overrides: Optional[Dict[str, Any]] = None,
                 classifier: Optional[ErrorClassifier] = None,
                 analytics: Optional[TranscriptAnalyticsEngine] = None):
        """Initialize interview session.

        Args:
            settings: Connection, timeout, audio and turn-taking settings
            transport: Transport exclusively owned by this session
            audio_device: Local microphone and playback collaborator
            context: Interview metadata sent to the agent after the handshake
            session_id: Session identifier (generated when omitted)
            init_overrides: Extra fields for the session_init context
            classifier: Error classifier
            analytics: Analytics engine run once the session is FINISHED
        """
        self.settings = settings
        self.context = context
        self.session_id = session_id or uuid.uuid4().hex
        self.init_overrides = init_overrides
        self.classifier = classifier or ErrorClassifier()
        self.analytics = analytics or TranscriptAnalyticsEngine()

        self.events: "asyncio.Queue" = asyncio.Queue()
        self.publisher = SessionEventPublisher(self.session_id)
        self.performance = SessionPerformanceTracker()
        self.state = SessionStateMachine(
            self.session_id,
            session_timeout_ms=settings.session_timeout_ms,
            max_reconnect_attempts=settings.max_reconnect_attempts,
            on_status_change=self._on_status_change,
        )
        self.gate = TurnTakingGate(
            silence_threshold=settings.silence_threshold,
            agent_speaking_window_ms=settings.agent_speaking_window_ms,
        )
        self.channel = DuplexSessionChannel(
            transport,
            audio_device,
            self.publisher,
            codec=AudioFrameCodec(sample_rate=settings.sample_rate, channels=settings.channels),
            gate=self.gate,
            classifier=self.classifier,
            performance=self.performance,
            connect_timeout_seconds=settings.connect_timeout_seconds,
            context_delay_ms=settings.context_delay_ms,
            capture_queue_size=settings.capture_queue_size,
        )

        self.messages: List[Message] = []
        self.terminal_error: Optional[ClassifiedError] = None
        self._cancel = asyncio.Event()
        self._done = asyncio.Event()
        self._ending = False
        self._result: Optional[SessionResult] = None
        self._handler_task: Optional[asyncio.Task] = None
        self._receive_task: Optional[asyncio.Task] = None
        self._microphone_task: Optional[asyncio.Task] = None
        self._recovering_kind = ErrorKind.UNKNOWN

        logger.info(f"InterviewSession created: {self.session_id}")

    @property
    def status(self) -> CallStatus:
        return self.state.status

    @property
    def result(self) -> Optional[SessionResult]:
        return self._result

    # Lifecycle

    async def start(self) -> None:
        """Connect to the agent and begin streaming.

        Recoverable connection failures are retried per their recovery
        strategy before this returns.

        Raises:
            SessionError: When connecting fails terminally; its message is
                the user-facing remediation text
        """
        if self.state.status != CallStatus.INACTIVE or self._result is not None:
            raise VoiceInterviewError(f"Session {self.session_id} was already started")

        self.performance.start_session()
        self.state.update_status(CallStatus.INITIALIZING)
        self.state.update_status(CallStatus.CONNECTING)

        try:
            await self.channel.connect(**self._connect_args())
        except asyncio.CancelledError:
            await self._shutdown()
            raise
        except Exception as e:
            error = self._record_failure(e)
            recovered = error.recoverable and await self._recover(error)
            if self._ending:
                # Ended while connecting
                return
            if not recovered:
                error = self.terminal_error or error
                await self._fail(error)
                raise SessionError(error.kind, error.message, recoverable=False, cause=e) from e
        else:
            if self._ending:
                await self.channel.close()
                return
            self.state.update_status(CallStatus.ACTIVE)

        self._start_receiving()
        self._microphone_task = asyncio.create_task(self.channel.stream_microphone(self.events))
        self._handler_task = asyncio.create_task(self._run())
        logger.info(f"Session {self.session_id} is live")

    async def wait_until_finished(self) -> SessionResult:
        await self._done.wait()
        return self._result

    async def end_session(self, reason: str = "requested") -> SessionResult:
        """End the session from any state. Idempotent.

        Stops any reconnect in progress, disarms timers, releases the
        microphone and transport and returns the session result.
        """
        if self._result is not None:
            return self._result
        self._cancel.set()
        if self._handler_task is not None and not self._handler_task.done():
            await self.events.put(EndRequested(reason=reason))
            await self._done.wait()
        else:
            await self._finish(reason)
        return self._result

    async def pause(self) -> bool:
        """Stop transmitting microphone audio while keeping the connection.

        Returns:
            True if the session moved to PAUSED
        """
        return await self._request_mute(paused=True)

    async def resume(self) -> bool:
        return await self._request_mute(paused=False)

    async def _request_mute(self, paused: bool) -> bool:
        if self._handler_task is None or self._handler_task.done() or self._result is not None:
            return False
        reply = asyncio.get_running_loop().create_future()
        await self.events.put(MuteRequested(paused=paused, reply=reply))
        return await reply

    def _apply_mute(self, paused: bool) -> bool:
        if paused:
            changed = self.state.update_status(CallStatus.PAUSED)
        else:
            changed = self.state.status == CallStatus.PAUSED and self.state.update_status(CallStatus.ACTIVE)
        if changed:
            self.channel.muted = paused
        return changed

    # Event handling

    def _on_status_change(self, previous: CallStatus, current: CallStatus) -> None:
        self.publisher.publish_status(previous, current)
        self.events.put_nowait(StatusChanged(previous=previous, current=current))

    async def _run(self) -> None:
        try:
            while not self._done.is_set():
                event = await self.events.get()
                await self._handle_event(event)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.exception(f"Session {self.session_id} event handler failed")
            await self._fail(self.classifier.create_error(e))

    async def _handle_event(self, event) -> None:
        if isinstance(event, EndRequested):
            await self._finish(event.reason)

        elif isinstance(event, StatusChanged):
            if event.current == CallStatus.FINISHING and not self._ending:
                await self._finish("session timeout")

        elif isinstance(event, InboundReceived):
            self._handle_inbound(event)
            message = event.message
            if isinstance(message, InboundControl):
                if message.event in END_EVENTS:
                    await self._finish(f"agent sent {message.event}")
                elif message.event == "error":
                    await self._handle_failure(message.data)

        elif isinstance(event, MuteRequested):
            if not event.reply.done():
                event.reply.set_result(self._apply_mute(event.paused))

        elif isinstance(event, CaptureFailed):
            await self._handle_capture_failure(event.error)

        elif isinstance(event, FrameDropped):
            self.performance.record_error()
            self.classifier.log_error(event.error)
            self.state.add_error(ErrorCode.from_kind(event.error.kind), event.error.message,
                                 recoverable=True)
            self.publisher.publish_error(event.error, terminal=False)

        elif isinstance(event, (TransportClosed, TransportFailed)):
            if event.epoch != self.channel.connection_epoch or self._ending:
                logger.debug(f"Ignoring stale transport event: {event}")
            elif isinstance(event, TransportClosed) and event.code == NORMAL_CLOSE_CODE:
                await self._finish("agent closed the connection")
            elif isinstance(event, TransportClosed):
                await self._handle_failure({"message": f"connection closed unexpectedly (code {event.code})",
                                            "code": "NETWORK_ERROR"})
            else:
                await self._handle_failure(event.error)

    def _handle_inbound(self, event: InboundReceived) -> None:
        message = event.message
        if isinstance(message, InboundTranscript) and message.is_final:
            entry = Message(role=message.role, content=message.text, timestamp=event.received_at)
            self.messages.append(entry)
            self.publisher.publish_transcript(entry)

    # Failure and recovery

    def _record_failure(self, raw: Any) -> ClassifiedError:
        error = self.classifier.create_error(raw, {"session_id": self.session_id})
        self.classifier.log_error(error)
        self.performance.record_error()
        self.state.add_error(ErrorCode.from_kind(error.kind), error.message, error.recoverable)
        return error

    async def _handle_failure(self, raw: Any) -> None:
        if self._ending:
            return
        error = self._record_failure(raw)
        if not error.recoverable:
            await self._fail(error)
            return

        self.publisher.publish_error(error, terminal=False)
        self._stop_receiving()
        if await self._recover(error):
            self._start_receiving()
        elif not self._cancel.is_set():
            await self._fail(self.terminal_error or error)

    async def _handle_capture_failure(self, raw: BaseException) -> None:
        """Re-acquire the microphone under the AUDIO recovery strategy."""
        if self._ending:
            return
        error = self._record_failure(SessionError(ErrorKind.AUDIO, f"Audio capture stopped: {raw}",
                                                  recoverable=True, cause=raw))
        self.publisher.publish_error(error, terminal=False)
        outcome = await execute_recovery_strategy(
            ErrorKind.AUDIO,
            self._reacquire_microphone,
            classifier=self.classifier,
            sleep=self._interruptible_sleep,
            cancel_event=self._cancel,
        )
        if outcome.success:
            logger.info(f"Session {self.session_id} microphone restored after {outcome.attempts} attempt(s)")
        elif not self._cancel.is_set():
            await self._fail(outcome.final_error or error)

    async def _reacquire_microphone(self) -> None:
        try:
            await self.channel.reacquire_microphone()
        except MicrophonePermissionError as e:
            raise SessionError(ErrorKind.AUDIO, str(e), recoverable=True, cause=e) from e

    async def _recover(self, error: ClassifiedError) -> bool:
        """Reconnect under the recovery strategy of ``error.kind``."""
        self._recovering_kind = error.kind
        self.state.update_status(CallStatus.ERROR)
        outcome = await execute_recovery_strategy(
            error.kind,
            self._reconnect_once,
            classifier=self.classifier,
            sleep=self._interruptible_sleep,
            cancel_event=self._cancel,
        )
        if outcome.success:
            logger.info(f"Session {self.session_id} recovered after {outcome.attempts} attempt(s)")
            return True

        if outcome.final_error is not None:
            self.terminal_error = outcome.final_error
        logger.warning(f"Session {self.session_id} could not recover from {error.kind.value}")
        return False

    async def _reconnect_once(self) -> None:
        if not self.state.attempt_reconnect():
            last = self.state.last_error
            raise SessionError(self._recovering_kind,
                               last.message if last else "Maximum reconnection attempts exceeded",
                               recoverable=False)
        self.performance.record_reconnection()
        try:
            await self.channel.reconnect(**self._connect_args())
        except BaseException:
            self.state.update_status(CallStatus.ERROR)
            raise
        self.state.update_status(CallStatus.ACTIVE)

    async def _interruptible_sleep(self, seconds: float) -> None:
        try:
            await asyncio.wait_for(self._cancel.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            pass

    def _connect_args(self) -> Dict[str, Any]:
        return {
            "url": self.settings.agent_url,
            "headers": self.settings.auth_headers,
            "init_context": self.init_overrides,
            "metadata": self.context.to_metadata() if self.context else None,
        }

    # Shutdown

    def _start_receiving(self) -> None:
        self._receive_task = asyncio.create_task(self.channel.pump_into(self.events))

    def _stop_receiving(self) -> None:
        if self._receive_task is not None and not self._receive_task.done():
            self._receive_task.cancel()
        self._receive_task = None

    async def _shutdown(self) -> None:
        self._cancel.set()
        self.state.close()
        self._stop_receiving()
        if self._microphone_task is not None and not self._microphone_task.done():
            self._microphone_task.cancel()
        self._microphone_task = None
        await self.channel.close()

    async def _fail(self, error: ClassifiedError) -> None:
        """Surface a terminal error and stop the session in ERROR."""
        if self._result is not None:
            return
        self._ending = True
        self.terminal_error = error
        self.state.update_status(CallStatus.ERROR)
        self.publisher.publish_error(error, terminal=True)
        logger.error(f"Session {self.session_id} failed: {error.message}")
        await self._shutdown()
        self._complete(report=None, reason=f"terminal {error.kind.value} error")

    async def _finish(self, reason: str) -> None:
        """End normally: FINISHING, release resources, FINISHED, analytics."""
        if self._result is not None:
            return
        self._ending = True
        logger.info(f"Ending session {self.session_id}: {reason}")

        if self.state.status in (CallStatus.ACTIVE, CallStatus.PAUSED):
            self.state.update_status(CallStatus.FINISHING)
        await self._shutdown()

        report = None
        if self.state.status == CallStatus.FINISHING:
            self.state.update_status(CallStatus.FINISHED)
            report = self.analytics.generate_report(tuple(self.messages), self.state.session, self.state.errors)
        elif self.state.status != CallStatus.INACTIVE:
            # Ended before the agent connection was established
            if self.state.status != CallStatus.ERROR:
                self.state.update_status(CallStatus.ERROR)
            self.state.update_status(CallStatus.INACTIVE)

        self._complete(report=report, reason=reason)

    def _complete(self, report: Optional[AnalyticsReport], reason: str) -> None:
        self._result = SessionResult(
            session=self.state.session,
            transcript=list(self.messages),
            errors=self.state.errors,
            performance=self.performance.report(),
            report=report,
            terminal_error=self.terminal_error,
            end_reason=reason,
        )
        self._done.set()
        while not self.events.empty():
            event = self.events.get_nowait()
            if isinstance(event, MuteRequested) and not event.reply.done():
                event.reply.set_result(False)
        logger.info(f"Session {self.session_id} ended with status {self._result.session.status.value}")
