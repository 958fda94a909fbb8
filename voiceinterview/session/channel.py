"""Duplex channel to the voice agent: handshake, audio streaming, inbound demux."""

import asyncio
import json
import logging
from typing import Any, Dict, Optional, Union

from ..audio.codec import AudioFrameCodec
from ..audio.device import AbstractAudioDevice, MicrophoneHandle
from ..audio.turn_taking import TurnTakingGate
from ..errors.classifier import ErrorClassifier
from ..errors.exceptions import AudioDecodeError
from ..models.audio import AudioFrame, GateDecision
from ..models.events import (
    AudioChunkFrame,
    CaptureFailed,
    FrameDropped,
    InboundAudio,
    InboundControl,
    InboundMessage,
    InboundReceived,
    InboundTranscript,
    InboundUnknown,
    PongFrame,
    SessionContextFrame,
    SessionInitFrame,
    TransportClosed,
    TransportFailed,
)
from ..models.session import MessageRole
from ..transport.base import AbstractTransport, TransportFrame
from .performance import SessionPerformanceTracker
from .publisher import SessionEventPublisher

logger = logging.getLogger(__name__)

_ROLE_ALIASES = {
    "user": MessageRole.USER,
    "candidate": MessageRole.USER,
    "assistant": MessageRole.ASSISTANT,
    "agent": MessageRole.ASSISTANT,
    "ai": MessageRole.ASSISTANT,
}


def _text(value: Any) -> Optional[str]:
    return value if isinstance(value, str) and value else None


def _rate(value: Any) -> Optional[int]:
    return value if isinstance(value, int) and not isinstance(value, bool) and value > 0 else None


def _classify_payload(data: Dict[str, Any]) -> InboundMessage:
    msg_type = data.get("type") if isinstance(data.get("type"), str) else None

    # Audio
    audio_event = data.get("audio_event")
    if isinstance(audio_event, dict) and _text(audio_event.get("audio_base_64")):
        return InboundAudio(payload=audio_event["audio_base_64"], sample_rate=_rate(audio_event.get("sample_rate")))
    for key in ("audio_base_64", "audio"):
        if _text(data.get(key)):
            return InboundAudio(payload=data[key], sample_rate=_rate(data.get("sample_rate")))
    if msg_type == "audio_chunk" and _text(data.get("payload")):
        return InboundAudio(payload=data["payload"], sample_rate=_rate(data.get("sample_rate")))

    # Transcript
    user_event = data.get("user_transcription_event")
    if isinstance(user_event, dict) and _text(user_event.get("user_transcript")):
        return InboundTranscript(role=MessageRole.USER, text=user_event["user_transcript"])
    agent_event = data.get("agent_response_event")
    if isinstance(agent_event, dict) and _text(agent_event.get("agent_response")):
        return InboundTranscript(role=MessageRole.ASSISTANT, text=agent_event["agent_response"])
    if _text(data.get("user_transcript")):
        return InboundTranscript(role=MessageRole.USER, text=data["user_transcript"])
    if _text(data.get("agent_response")):
        return InboundTranscript(role=MessageRole.ASSISTANT, text=data["agent_response"])

    role = data.get("role")
    role = _ROLE_ALIASES.get(role.lower()) if isinstance(role, str) else None
    text = _text(data.get("text")) or _text(data.get("content")) or _text(data.get("transcript"))
    if role is not None and text is not None:
        transcript_type = data.get("transcriptType") or data.get("transcript_type") or "final"
        return InboundTranscript(role=role, text=text, is_final=transcript_type == "final")

    # Control
    if msg_type is not None:
        return InboundControl(event=msg_type, data=data)

    return InboundUnknown(raw=data)


def classify_inbound(frame: Union[TransportFrame, str, bytes, Dict[str, Any], None]) -> InboundMessage:
    """Classify one inbound item as audio, transcript, control or unknown.

    Total: malformed JSON, unexpected shapes and empty frames all map to
    ``InboundUnknown``. Binary frames are raw little-endian PCM.
    """
    if isinstance(frame, TransportFrame):
        frame = frame.data
    if isinstance(frame, (bytes, bytearray)):
        if not frame:
            return InboundUnknown(raw=None)
        return InboundAudio(payload=bytes(frame), encoding="pcm")
    if isinstance(frame, str):
        try:
            frame = json.loads(frame)
        except ValueError:
            return InboundUnknown(raw=frame)
    if isinstance(frame, dict):
        return _classify_payload(frame)
    return InboundUnknown(raw=frame)


def _ping_event_id(data: Dict[str, Any]) -> Any:
    if "event_id" in data:
        return data["event_id"]
    ping_event = data.get("ping_event")
    if isinstance(ping_event, dict):
        return ping_event.get("event_id")
    return None


class DuplexSessionChannel:
    """Owns one transport and one microphone handle for a session.

    Microphone frames arrive on the PyAudio capture thread and cross into
    the event loop through a bounded queue; frames that do not fit are
    dropped. Inbound agent audio is decoded and played here, everything
    else is forwarded to the session's event queue in arrival order.
    """

    def __init__(self,
                 transport: AbstractTransport,
                 audio_device: AbstractAudioDevice,
                 publisher: SessionEventPublisher,
                 codec: Optional[AudioFrameCodec] = None,
                 gate: Optional[TurnTakingGate] = None,
                 classifier: Optional[ErrorClassifier] = None,
                 performance: Optional[SessionPerformanceTracker] = None,
                 connect_timeout_seconds: float = 10.0,
                 context_delay_ms: float = 1000.0,
                 capture_queue_size: int = 32):
        """Initialize channel.
        
        Args:
            transport: Duplex transport, exclusively owned by this channel
            audio_device: Local microphone and playback collaborator
            publisher: Session event publisher
            codec: Audio codec (16kHz mono by default)
            gate: Turn-taking gate for outbound frames
            classifier: Classifier for frame-level failures
            performance: Performance tracker fed with send/receive events
            connect_timeout_seconds: Hard upper bound on the transport handshake
            context_delay_ms: Delay between session_init and session_context
            capture_queue_size: Captured frames buffered before dropping
        """
        self.transport = transport
        self.audio_device = audio_device
        self.publisher = publisher
        self.codec = codec or AudioFrameCodec()
        self.gate = gate or TurnTakingGate()
        self.classifier = classifier or ErrorClassifier()
        self.performance = performance or SessionPerformanceTracker()
        self.connect_timeout_seconds = connect_timeout_seconds
        self.context_delay_ms = context_delay_ms

        self.capture_queue: "asyncio.Queue[Optional[AudioFrame]]" = asyncio.Queue(maxsize=capture_queue_size)
        self.dropped_capture_frames = 0
        self.capture_failure: Optional[BaseException] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._microphone: Optional[MicrophoneHandle] = None
        self._context_task: Optional[asyncio.Task] = None
        self._closed = False
        self.connection_epoch = 0
        self.muted = False

    @property
    def is_open(self) -> bool:
        return not self._closed and not self.transport.closed

    @property
    def microphone_held(self) -> bool:
        return self._microphone is not None and not self._microphone.released

    # Connection

    async def connect(self, url: str,
                      headers: Optional[Dict[str, str]] = None,
                      init_context: Optional[Dict[str, Any]] = None,
                      metadata: Optional[Dict[str, Any]] = None) -> None:
        """Acquire the microphone, open the transport and run the handshake.

        The microphone is acquired before any network attempt, so a
        permission failure never touches the network. A microphone that is
        already held is kept.

        Raises:
            MicrophonePermissionError: If the microphone cannot be acquired
            asyncio.TimeoutError: If the handshake exceeds the connect timeout
            Exception: Any transport failure, for the caller to classify
        """
        self._loop = asyncio.get_running_loop()
        self._closed = False
        if not self.microphone_held:
            self._acquire_microphone()
        await self._open_transport(url, headers, init_context, metadata)

    def _acquire_microphone(self) -> None:
        self.capture_failure = None
        self._microphone = self.audio_device.acquire_microphone(self._on_captured_frame, self._on_capture_error)
        logger.info(f"Microphone acquired: {self._microphone.device_name}")

    async def reacquire_microphone(self) -> None:
        """Acquire the microphone again after its capture stopped on an error.

        Raises:
            MicrophonePermissionError: If the microphone cannot be acquired
        """
        if self.microphone_held:
            return
        self._acquire_microphone()

    async def reconnect(self, url: str,
                        headers: Optional[Dict[str, str]] = None,
                        init_context: Optional[Dict[str, Any]] = None,
                        metadata: Optional[Dict[str, Any]] = None) -> None:
        """Replace the transport connection, keeping the microphone."""
        self._cancel_context_task()
        try:
            await self.transport.close()
        except Exception as e:
            logger.debug(f"Ignoring error closing stale transport: {e}")
        self.gate.reset()
        await self.connect(url, headers, init_context, metadata)

    async def _open_transport(self, url, headers, init_context, metadata) -> None:
        self.connection_epoch += 1
        self.performance.record_connection_start()
        await asyncio.wait_for(self.transport.open(url, headers), timeout=self.connect_timeout_seconds)
        self.performance.record_connection_success()

        init = SessionInitFrame(context=self._init_context(init_context))
        await self.transport.send_json(init.model_dump())
        self.performance.record_message_sent()
        logger.info("Session initiation sent")

        if metadata:
            self._context_task = asyncio.create_task(self._send_context_later(metadata))

    def _init_context(self, overrides: Optional[Dict[str, Any]]) -> Dict[str, Any]:
        context: Dict[str, Any] = {
            "audio": {
                "input_format": f"pcm_{self.codec.sample_rate}",
                "output_format": f"pcm_{self.codec.sample_rate}",
            }
        }
        if overrides:
            context.update(overrides)
        return context

    async def _send_context_later(self, metadata: Dict[str, Any]) -> None:
        await asyncio.sleep(self.context_delay_ms / 1000.0)
        if not self.is_open:
            return
        try:
            await self.transport.send_json(SessionContextFrame(context=metadata).model_dump())
            self.performance.record_message_sent()
            logger.info("Session context sent")
        except Exception as e:
            # The receive loop reports the broken transport.
            logger.warning(f"Failed to send session context: {e}")

    # Outbound audio

    def _on_captured_frame(self, frame: AudioFrame) -> None:
        """Capture-thread callback: hand the frame to the event loop."""
        loop = self._loop
        if loop is None or self._closed:
            return
        try:
            loop.call_soon_threadsafe(self._offer_frame, frame)
        except RuntimeError:
            logger.debug("Event loop closed, captured frame discarded")

    def _offer_frame(self, frame: AudioFrame) -> None:
        try:
            self.capture_queue.put_nowait(frame)
        except asyncio.QueueFull:
            self.dropped_capture_frames += 1
            if self.dropped_capture_frames % 50 == 1:
                logger.warning(f"Capture queue full, {self.dropped_capture_frames} frames dropped")

    def _on_capture_error(self, error: BaseException) -> None:
        """Capture-thread callback: the device stopped capturing."""
        loop = self._loop
        if loop is None or self._closed:
            return
        try:
            loop.call_soon_threadsafe(self._report_capture_error, error)
        except RuntimeError:
            logger.debug("Event loop closed, capture error discarded")

    def _report_capture_error(self, error: BaseException) -> None:
        # None in the capture queue tells stream_microphone to report the failure.
        self.capture_failure = error
        if self.capture_queue.full():
            self.capture_queue.get_nowait()
            self.dropped_capture_frames += 1
        self.capture_queue.put_nowait(None)

    async def send_audio(self, frame: AudioFrame) -> GateDecision:
        """Gate one captured frame and transmit it if allowed."""
        decision = self.gate.evaluate(frame.samples)
        if decision.transmit:
            chunk = AudioChunkFrame(payload=self.codec.encode(frame.samples))
            await self.transport.send_json(chunk.model_dump())
            self.performance.record_message_sent()
        return decision

    async def stream_microphone(self, events: asyncio.Queue) -> None:
        """Forward captured frames through the gate until the channel closes.

        A capture failure is forwarded as a ``CaptureFailed`` event.
        """
        while not self._closed:
            frame = await self.capture_queue.get()
            if frame is None:
                error, self.capture_failure = self.capture_failure, None
                if error is not None:
                    await events.put(CaptureFailed(error=error))
                continue
            if self.muted or self.transport.closed:
                continue
            epoch = self.connection_epoch
            try:
                await self.send_audio(frame)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"Failed to send audio frame: {e}")
                await events.put(TransportFailed(error=e, epoch=epoch))

    # Inbound

    async def pump_into(self, events: asyncio.Queue) -> None:
        """Receive until the transport ends, forwarding events in arrival order.

        Audio is played back here and never forwarded; a frame that fails
        to decode becomes a ``FrameDropped`` event.
        """
        epoch = self.connection_epoch
        while True:
            try:
                frame = await self.transport.receive()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                await events.put(TransportFailed(error=e, epoch=epoch))
                return

            if frame.kind == "closed":
                await events.put(TransportClosed(code=frame.close_code, reason="transport closed",
                                                 epoch=epoch))
                return
            if frame.kind == "error":
                await events.put(TransportFailed(error=frame.error, epoch=epoch))
                return

            self.performance.record_message_received()
            message = classify_inbound(frame)
            forwarded = await self.handle_inbound(message)
            if forwarded is not None:
                await events.put(forwarded)

    async def handle_inbound(self, message: InboundMessage):
        """Dispatch one classified message.

        Returns:
            The session event to forward, or None when handled locally
        """
        if isinstance(message, InboundAudio):
            self.gate.note_inbound_audio()
            self.performance.record_first_response()
            return self._play(message)

        if isinstance(message, InboundControl):
            if message.event == "ping":
                await self._answer_ping(message)
                return None
            self.publisher.publish_control(message)
            return InboundReceived(message=message)

        if isinstance(message, InboundTranscript):
            if message.role == MessageRole.ASSISTANT:
                self.performance.record_first_response()
            return InboundReceived(message=message)

        logger.debug(f"Unrecognised inbound message: {str(message.raw)[:200]}")
        return None

    def _play(self, message: InboundAudio) -> Optional[FrameDropped]:
        sample_rate = message.sample_rate or self.codec.sample_rate
        try:
            if message.encoding == "pcm":
                samples = self.codec.decode_pcm(message.payload)
            else:
                samples = self.codec.decode(message.payload, sample_rate)
        except AudioDecodeError as e:
            error = self.classifier.create_error(e, {"stage": "inbound_audio"})
            logger.warning(f"Skipping undecodable agent audio frame: {e}")
            return FrameDropped(error=error)

        self.audio_device.playback(samples, sample_rate)
        self.publisher.publish_audio(samples)
        return None

    async def _answer_ping(self, message: InboundControl) -> None:
        event_id = _ping_event_id(message.data)
        if event_id is None:
            return
        try:
            await self.transport.send_json(PongFrame(event_id=event_id).model_dump())
        except Exception as e:
            logger.warning(f"Failed to answer ping {event_id}: {e}")

    # Shutdown

    def _cancel_context_task(self) -> None:
        if self._context_task is not None and not self._context_task.done():
            self._context_task.cancel()
        self._context_task = None

    async def close(self) -> None:
        """Close the transport and release the microphone. Idempotent.

        The microphone is released on every path, including a failing
        transport close. Releasing joins the capture thread, so it runs in
        a worker thread to keep the event loop responsive.
        """
        if self._closed and not self.microphone_held:
            return
        self._closed = True
        self._cancel_context_task()
        try:
            await self.transport.close()
        except Exception as e:
            logger.warning(f"Error closing transport: {e}")
        finally:
            microphone, self._microphone = self._microphone, None
            if microphone is not None:
                await asyncio.to_thread(self.audio_device.release_microphone, microphone)
                logger.info("Microphone released")
