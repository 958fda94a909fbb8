"""Unit tests for DuplexSessionChannel and inbound classification."""

import asyncio
import time

import numpy as np
import pytest

from voiceinterview.audio.turn_taking import TurnTakingGate
from voiceinterview.errors.exceptions import MicrophonePermissionError
from voiceinterview.models.errors import ErrorKind
from voiceinterview.models.events import (
    CaptureFailed,
    FrameDropped,
    InboundAudio,
    InboundControl,
    InboundReceived,
    InboundTranscript,
    InboundUnknown,
    TransportClosed,
    TransportFailed,
)
from voiceinterview.models.session import MessageRole
from voiceinterview.session.channel import DuplexSessionChannel, classify_inbound
from voiceinterview.session.publisher import SessionEventPublisher
from voiceinterview.transport.base import TransportFrame


def make_channel(transport, device, **kwargs) -> DuplexSessionChannel:
    return DuplexSessionChannel(transport, device, SessionEventPublisher("channel-test"), **kwargs)


@pytest.mark.unit
class TestClassifyInbound:
    """Test cases for inbound message classification."""

    def test_audio_event(self):
        message = classify_inbound('{"type": "audio", "audio_event": {"audio_base_64": "AAA=", "sample_rate": 24000}}')

        assert isinstance(message, InboundAudio)
        assert message.payload == "AAA="
        assert message.sample_rate == 24000

    def test_audio_chunk(self):
        message = classify_inbound({"type": "audio_chunk", "payload": "AAA="})

        assert isinstance(message, InboundAudio)
        assert message.encoding == "base64"

    def test_binary_frame_is_pcm(self):
        message = classify_inbound(TransportFrame(kind="binary", data=b'\x00\x01'))

        assert isinstance(message, InboundAudio)
        assert message.encoding == "pcm"

    def test_user_transcript_event(self):
        message = classify_inbound({"type": "user_transcript",
                                    "user_transcription_event": {"user_transcript": "I use Python"}})

        assert message == InboundTranscript(role=MessageRole.USER, text="I use Python")

    def test_agent_response_event(self):
        message = classify_inbound({"type": "agent_response",
                                    "agent_response_event": {"agent_response": "Tell me more"}})

        assert isinstance(message, InboundTranscript)
        assert message.role == MessageRole.ASSISTANT

    def test_role_and_text_with_partial(self):
        """Test role + text messages honour the transcript type."""
        message = classify_inbound({"type": "transcript", "role": "assistant", "text": "Hel",
                                    "transcriptType": "partial"})

        assert isinstance(message, InboundTranscript)
        assert not message.is_final

    def test_control(self):
        message = classify_inbound({"type": "conversation_ended"})

        assert isinstance(message, InboundControl)
        assert message.event == "conversation_ended"

    @pytest.mark.parametrize("raw", ["not json {", "[1, 2]", "42", b"", None, {"no_type": True}])
    def test_unknown_is_total(self, raw):
        """Test that malformed or unexpected input maps to Unknown."""
        assert isinstance(classify_inbound(raw), InboundUnknown)


@pytest.mark.unit
class TestConnect:
    """Test cases for the handshake."""

    def test_connect_sends_session_init(self, fake_transport, fake_audio_device):
        """Test microphone acquisition, handshake and delayed context."""
        async def scenario():
            channel = make_channel(fake_transport, fake_audio_device, context_delay_ms=0)
            await channel.connect("wss://agent.test", {"Authorization": "Bearer k"},
                                  init_context={"conversation_config_override": {"language": "en"}},
                                  metadata={"candidate_name": "Ada"})
            await asyncio.sleep(0.01)
            return channel

        channel = asyncio.run(scenario())

        assert fake_audio_device.held
        assert channel.connection_epoch == 1
        assert fake_transport.last_headers == {"Authorization": "Bearer k"}
        init, context = fake_transport.sent
        assert init["type"] == "session_init"
        assert init["context"]["audio"]["input_format"] == "pcm_16000"
        assert init["context"]["conversation_config_override"] == {"language": "en"}
        assert context == {"type": "session_context", "context": {"candidate_name": "Ada"}}

    def test_permission_denied_before_network(self, fake_transport, fake_audio_device):
        """Test a denied microphone never opens the transport."""
        fake_audio_device.deny_permission = True

        async def scenario():
            channel = make_channel(fake_transport, fake_audio_device)
            await channel.connect("wss://agent.test")

        with pytest.raises(MicrophonePermissionError):
            asyncio.run(scenario())
        assert fake_transport.open_calls == 0

    def test_connect_timeout(self, fake_transport, fake_audio_device):
        """Test the handshake is bounded by the connect timeout."""
        async def hanging_open(url, headers=None):
            await asyncio.sleep(10)

        fake_transport.open = hanging_open

        async def scenario():
            channel = make_channel(fake_transport, fake_audio_device, connect_timeout_seconds=0.05)
            await channel.connect("wss://agent.test")

        with pytest.raises(asyncio.TimeoutError):
            asyncio.run(scenario())

    def test_reconnect_keeps_microphone(self, fake_transport, fake_audio_device):
        async def scenario():
            channel = make_channel(fake_transport, fake_audio_device)
            await channel.connect("wss://agent.test")
            channel.gate.note_inbound_audio()
            await channel.reconnect("wss://agent.test")
            return channel

        channel = asyncio.run(scenario())

        assert len(fake_audio_device.handles) == 1
        assert fake_transport.open_calls == 2
        assert channel.connection_epoch == 2
        assert channel.gate.last_inbound_audio_timestamp is None


@pytest.mark.unit
class TestOutboundAudio:
    """Test cases for microphone streaming."""

    def test_speech_sent_as_audio_chunk(self, fake_transport, fake_audio_device, speech_frame):
        async def scenario():
            channel = make_channel(fake_transport, fake_audio_device)
            await channel.connect("wss://agent.test")
            return await channel.send_audio(speech_frame)

        decision = asyncio.run(scenario())

        assert decision.transmit
        assert fake_transport.sent[-1]["type"] == "audio_chunk"
        assert isinstance(fake_transport.sent[-1]["payload"], str)

    def test_gate_blocks_while_agent_speaks(self, fake_transport, fake_audio_device, speech_frame):
        """Test no outbound audio while inbound audio is recent."""
        async def scenario():
            channel = make_channel(fake_transport, fake_audio_device,
                                   gate=TurnTakingGate(agent_speaking_window_ms=60000))
            await channel.connect("wss://agent.test")
            await channel.handle_inbound(InboundAudio(payload=b'\x00\x00', encoding="pcm"))
            return await channel.send_audio(speech_frame)

        decision = asyncio.run(scenario())

        assert not decision.transmit
        assert "audio_chunk" not in fake_transport.sent_types()

    def test_capture_queue_drops_when_full(self, fake_transport, fake_audio_device, speech_frame):
        """Test captured frames beyond the queue bound are dropped, not blocked on."""
        async def scenario():
            channel = make_channel(fake_transport, fake_audio_device, capture_queue_size=2)
            await channel.connect("wss://agent.test")
            for _ in range(5):
                fake_audio_device.emit(speech_frame)
            await asyncio.sleep(0)
            return channel

        channel = asyncio.run(scenario())

        assert channel.capture_queue.qsize() == 2
        assert channel.dropped_capture_frames == 3

    def test_muted_channel_sends_nothing(self, fake_transport, fake_audio_device, speech_frame):
        async def scenario():
            channel = make_channel(fake_transport, fake_audio_device)
            await channel.connect("wss://agent.test")
            channel.muted = True
            task = asyncio.create_task(channel.stream_microphone(asyncio.Queue()))
            fake_audio_device.emit(speech_frame)
            await asyncio.sleep(0.01)
            task.cancel()

        asyncio.run(scenario())

        assert "audio_chunk" not in fake_transport.sent_types()


@pytest.mark.unit
class TestInbound:
    """Test cases for inbound dispatch."""

    def test_audio_played_and_not_forwarded(self, fake_transport, fake_audio_device, codec):
        payload = codec.encode(np.array([0.25, -0.25]))

        async def scenario():
            channel = make_channel(fake_transport, fake_audio_device)
            return await channel.handle_inbound(InboundAudio(payload=payload, sample_rate=24000))

        forwarded = asyncio.run(scenario())

        assert forwarded is None
        samples, rate = fake_audio_device.played[0]
        assert rate == 24000
        assert samples[0] == pytest.approx(0.25, abs=2 / 32768)

    def test_undecodable_audio_becomes_frame_dropped(self, fake_transport, fake_audio_device):
        async def scenario():
            channel = make_channel(fake_transport, fake_audio_device)
            return await channel.handle_inbound(InboundAudio(payload="%%%"))

        forwarded = asyncio.run(scenario())

        assert isinstance(forwarded, FrameDropped)
        assert forwarded.error.kind == ErrorKind.AUDIO
        assert fake_audio_device.played == []

    def test_ping_answered_with_pong(self, fake_transport, fake_audio_device):
        """Test keep-alive pings are answered and not forwarded."""
        async def scenario():
            channel = make_channel(fake_transport, fake_audio_device)
            await channel.connect("wss://agent.test")
            return await channel.handle_inbound(
                InboundControl(event="ping", data={"type": "ping", "ping_event": {"event_id": 7}}))

        forwarded = asyncio.run(scenario())

        assert forwarded is None
        assert fake_transport.sent[-1] == {"type": "pong", "event_id": 7}

    def test_pump_forwards_in_order_then_closes(self, fake_transport, fake_audio_device):
        """Test the receive loop forwards events in arrival order."""
        fake_transport.push_json({"role": "user", "text": "first"})
        fake_transport.push_text("garbage")
        fake_transport.push_json({"role": "assistant", "text": "second"})
        fake_transport.push_close(1000)

        async def scenario():
            channel = make_channel(fake_transport, fake_audio_device)
            await channel.connect("wss://agent.test")
            events = asyncio.Queue()
            await channel.pump_into(events)
            return [events.get_nowait() for _ in range(events.qsize())]

        events = asyncio.run(scenario())

        texts = [e.message.text for e in events if isinstance(e, InboundReceived)]
        assert texts == ["first", "second"]
        assert isinstance(events[-1], TransportClosed)
        assert events[-1].code == 1000
        assert events[-1].epoch == 1

    def test_pump_reports_transport_error(self, fake_transport, fake_audio_device):
        fake_transport.push_error(ConnectionResetError("reset"))

        async def scenario():
            channel = make_channel(fake_transport, fake_audio_device)
            await channel.connect("wss://agent.test")
            events = asyncio.Queue()
            await channel.pump_into(events)
            return events.get_nowait()

        event = asyncio.run(scenario())

        assert isinstance(event, TransportFailed)
        assert isinstance(event.error, ConnectionResetError)


@pytest.mark.unit
class TestClose:
    """Test cases for channel shutdown."""

    def test_close_releases_microphone_when_transport_close_fails(self, fake_transport, fake_audio_device):
        """Test the microphone is released even if closing the transport raises."""
        fake_transport.close_error = ConnectionError("already gone")

        async def scenario():
            channel = make_channel(fake_transport, fake_audio_device)
            await channel.connect("wss://agent.test")
            await channel.close()
            await channel.close()
            return channel

        channel = asyncio.run(scenario())

        assert not fake_audio_device.held
        assert fake_audio_device.release_calls == 1
        assert not channel.is_open

    def test_close_does_not_block_event_loop(self, fake_transport, fake_audio_device):
        """Test a slow microphone release runs off the event loop."""
        release = fake_audio_device.release_microphone

        def slow_release(handle):
            time.sleep(0.3)
            release(handle)

        fake_audio_device.release_microphone = slow_release

        async def scenario():
            channel = make_channel(fake_transport, fake_audio_device)
            await channel.connect("wss://agent.test")
            ticks = 0
            closing = asyncio.create_task(channel.close())
            while not closing.done():
                await asyncio.sleep(0.01)
                ticks += 1
            await closing
            return ticks

        ticks = asyncio.run(scenario())

        assert ticks >= 10
        assert not fake_audio_device.held


@pytest.mark.unit
class TestCaptureFailure:
    """Test cases for microphone capture errors."""

    def test_capture_error_forwarded_as_event(self, fake_transport, fake_audio_device, speech_frame):
        """Test a device error reaches the session queue even when the capture queue is full."""
        async def scenario():
            channel = make_channel(fake_transport, fake_audio_device, capture_queue_size=1)
            await channel.connect("wss://agent.test")
            events = asyncio.Queue()
            fake_audio_device.emit(speech_frame)
            fake_audio_device.emit(speech_frame)
            fake_audio_device.fail_capture(OSError("Input overflowed"))
            task = asyncio.create_task(channel.stream_microphone(events))
            event = await asyncio.wait_for(events.get(), timeout=1.0)
            task.cancel()
            return channel, event

        channel, event = asyncio.run(scenario())

        assert isinstance(event, CaptureFailed)
        assert isinstance(event.error, OSError)
        assert not channel.microphone_held
        assert channel.capture_failure is None

    def test_reacquire_after_failure(self, fake_transport, fake_audio_device):
        async def scenario():
            channel = make_channel(fake_transport, fake_audio_device)
            await channel.connect("wss://agent.test")
            fake_audio_device.fail_capture(OSError("Stream closed"))
            await channel.reacquire_microphone()
            await channel.reacquire_microphone()
            return channel

        channel = asyncio.run(scenario())

        assert len(fake_audio_device.handles) == 2
        assert channel.microphone_held
        assert fake_transport.open_calls == 1
