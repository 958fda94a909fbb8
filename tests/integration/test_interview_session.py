"""Integration tests: full interview sessions against a fake agent and microphone."""

import asyncio
import json
from dataclasses import replace
from unittest.mock import MagicMock

import numpy as np
import pytest

from voiceinterview.audio.codec import AudioFrameCodec
from voiceinterview.config import VoiceInterviewConfig
from voiceinterview.errors.classifier import ErrorClassifier
from voiceinterview.errors.exceptions import SessionError, VoiceInterviewError
from voiceinterview.models.errors import ErrorCode, ErrorKind, RecoveryStrategy
from voiceinterview.models.session import CallStatus, InterviewContext, MessageRole
from voiceinterview.main import Server
from voiceinterview.services.session_manager import SessionManager
from voiceinterview.session.interview_session import InterviewSession


def fast_classifier() -> ErrorClassifier:
    """Classifier whose NETWORK and AUDIO strategies retry without delay."""
    return ErrorClassifier(strategies={
        ErrorKind.NETWORK: RecoveryStrategy(should_retry=True, retry_delay_ms=0, max_retries=3,
                                            user_action="Check your internet connection and try again."),
        ErrorKind.AUDIO: RecoveryStrategy(should_retry=True, retry_delay_ms=0, max_retries=2,
                                          user_action="Check your microphone and audio settings."),
    })


async def wait_until(condition, timeout: float = 1.0) -> bool:
    deadline = asyncio.get_running_loop().time() + timeout
    while not condition():
        if asyncio.get_running_loop().time() > deadline:
            return False
        await asyncio.sleep(0.01)
    return True


def run_session(session: InterviewSession, timeout: float = 2.0):
    async def scenario():
        await session.start()
        return await asyncio.wait_for(session.wait_until_finished(), timeout)
    return scenario


@pytest.fixture
def context():
    return InterviewContext(candidate_name="Ada", role="Backend Engineer", experience_level="Senior",
                            years_of_experience=8, tech_stack=["Python", "PostgreSQL"])


@pytest.mark.integration
class TestInterviewSession:
    """End-to-end session scenarios."""

    def test_normal_session(self, session_settings, fake_transport, fake_audio_device, context):
        """Test a session that converses and is closed normally by the agent."""
        audio = AudioFrameCodec().encode(np.linspace(-0.5, 0.5, 160))
        fake_transport.push_json({"type": "agent_response",
                                  "agent_response_event": {"agent_response": "Tell me about a system you designed."}})
        fake_transport.push_json({"type": "audio", "audio_event": {"audio_base_64": audio}})
        fake_transport.push_json({"type": "ping", "ping_event": {"event_id": 3}})
        fake_transport.push_json({"role": "user", "text": "I designed a cach", "transcriptType": "partial"})
        fake_transport.push_json({"type": "user_transcript",
                                  "user_transcription_event": {"user_transcript": "I designed a caching layer."}})
        fake_transport.push_close(1000)

        async def scenario():
            session = InterviewSession(session_settings, fake_transport, fake_audio_device, context=context)
            result = await run_session(session)()
            await asyncio.sleep(0)
            return result

        result = asyncio.run(scenario())

        assert result.succeeded
        assert result.session.status == CallStatus.FINISHED
        assert [(m.role, m.content) for m in result.transcript] == [
            (MessageRole.ASSISTANT, "Tell me about a system you designed."),
            (MessageRole.USER, "I designed a caching layer."),
        ]
        assert result.report is not None
        assert result.report.metrics.message_count == 2
        assert result.session.duration_ms is not None
        assert {"type": "pong", "event_id": 3} in fake_transport.sent
        assert fake_transport.sent[0]["type"] == "session_init"
        assert fake_transport.last_headers == {"Authorization": "Bearer secret-key"}
        assert len(fake_audio_device.played) == 1
        assert not fake_audio_device.held

    def test_agent_end_event_finishes(self, session_settings, fake_transport, fake_audio_device):
        fake_transport.push_json({"type": "conversation_ended"})

        result = asyncio.run(run_session(
            InterviewSession(session_settings, fake_transport, fake_audio_device))())

        assert result.session.status == CallStatus.FINISHED
        assert result.end_reason == "agent sent conversation_ended"

    def test_end_session_is_idempotent(self, session_settings, fake_transport, fake_audio_device):
        """Test caller-requested end from ACTIVE, called twice."""
        async def scenario():
            session = InterviewSession(session_settings, fake_transport, fake_audio_device)
            await session.start()
            assert session.status == CallStatus.ACTIVE
            first = await session.end_session("candidate left")
            second = await session.end_session()
            return first, second

        first, second = asyncio.run(scenario())

        assert first is second
        assert first.session.status == CallStatus.FINISHED
        assert first.end_reason == "candidate left"
        assert not fake_audio_device.held

    def test_session_cannot_start_twice(self, session_settings, fake_transport, fake_audio_device):
        async def scenario():
            session = InterviewSession(session_settings, fake_transport, fake_audio_device)
            await session.start()
            try:
                await session.start()
            finally:
                await session.end_session()

        with pytest.raises(VoiceInterviewError):
            asyncio.run(scenario())

    def test_session_timeout(self, session_settings, fake_transport, fake_audio_device):
        """Test an ACTIVE session times out into FINISHED with a report."""
        settings = replace(session_settings, session_timeout_ms=50)

        result = asyncio.run(run_session(
            InterviewSession(settings, fake_transport, fake_audio_device))())

        assert result.session.status == CallStatus.FINISHED
        assert result.report is not None
        assert ErrorCode.SESSION_TIMEOUT in [e.code for e in result.errors]
        assert not fake_audio_device.held

    def test_pause_and_resume(self, session_settings, fake_transport, fake_audio_device):
        async def scenario():
            session = InterviewSession(session_settings, fake_transport, fake_audio_device)
            await session.start()
            assert await session.pause()
            paused = (session.status, session.channel.muted)
            assert await session.resume()
            resumed = (session.status, session.channel.muted)
            await session.end_session()
            return paused, resumed

        paused, resumed = asyncio.run(scenario())

        assert paused == (CallStatus.PAUSED, True)
        assert resumed == (CallStatus.ACTIVE, False)

    def test_pause_after_end_is_refused(self, session_settings, fake_transport, fake_audio_device):
        """Test pause on a finished session returns False without touching state."""
        async def scenario():
            session = InterviewSession(session_settings, fake_transport, fake_audio_device)
            await session.start()
            result = await session.end_session()
            return result, await session.pause()

        result, paused = asyncio.run(scenario())

        assert paused is False
        assert result.session.status == CallStatus.FINISHED

    def test_microphone_audio_reaches_agent(self, session_settings, fake_transport, fake_audio_device,
                                            speech_frame):
        async def scenario():
            session = InterviewSession(session_settings, fake_transport, fake_audio_device)
            await session.start()
            fake_audio_device.emit(speech_frame)
            await asyncio.sleep(0.05)
            await session.end_session()

        asyncio.run(scenario())

        assert "audio_chunk" in fake_transport.sent_types()


@pytest.mark.integration
class TestSessionFailures:
    """Failure and recovery scenarios."""

    def test_permission_denied_never_connects(self, session_settings, fake_transport, fake_audio_device):
        """Test a denied microphone fails fast without network or retries."""
        fake_audio_device.deny_permission = True

        async def scenario():
            session = InterviewSession(session_settings, fake_transport, fake_audio_device)
            with pytest.raises(SessionError) as exc_info:
                await session.start()
            return exc_info.value, await session.wait_until_finished()

        error, result = asyncio.run(scenario())

        assert error.kind == ErrorKind.PERMISSION
        assert fake_transport.open_calls == 0
        assert result.session.status == CallStatus.ERROR
        assert result.session.reconnect_attempts == 0
        assert result.report is None
        assert result.terminal_error.kind == ErrorKind.PERMISSION

    def test_authentication_failure_is_terminal(self, session_settings, fake_transport, fake_audio_device):
        """Test a 401 on connect is not retried and releases the microphone."""
        fake_transport.open_errors = [PermissionError("401 Unauthorized")]

        async def scenario():
            session = InterviewSession(session_settings, fake_transport, fake_audio_device)
            with pytest.raises(SessionError) as exc_info:
                await session.start()
            return exc_info.value, await session.wait_until_finished()

        error, result = asyncio.run(scenario())

        assert error.kind == ErrorKind.AUTHENTICATION
        assert error.message == result.terminal_error.message
        assert fake_transport.open_calls == 1
        assert result.session.status == CallStatus.ERROR
        assert not fake_audio_device.held

    def test_connect_recovers_from_network_failure(self, session_settings, fake_transport, fake_audio_device):
        fake_transport.open_errors = [ConnectionError("network unreachable")]

        async def scenario():
            session = InterviewSession(session_settings, fake_transport, fake_audio_device,
                                       classifier=fast_classifier())
            await session.start()
            status = session.status
            await session.end_session()
            return status, session.result

        status, result = asyncio.run(scenario())

        assert status == CallStatus.ACTIVE
        assert fake_transport.open_calls == 2
        assert result.session.reconnect_attempts == 1
        assert result.session.status == CallStatus.FINISHED

    def test_reconnect_after_abnormal_close(self, session_settings, fake_transport, fake_audio_device):
        """Test an unexpected close is recovered by reconnecting."""
        fake_transport.push_close(1006)
        fake_transport.push_json({"role": "user", "text": "Back again"})
        fake_transport.push_close(1000)

        async def scenario():
            session = InterviewSession(session_settings, fake_transport, fake_audio_device,
                                       classifier=fast_classifier())
            return await run_session(session)()

        result = asyncio.run(scenario())

        assert result.session.status == CallStatus.FINISHED
        assert result.session.reconnect_attempts == 1
        assert result.performance.metrics.reconnections == 1
        assert fake_transport.open_calls == 2
        assert [m.content for m in result.transcript] == ["Back again"]
        assert ErrorCode.NETWORK in [e.code for e in result.errors]
        assert len(fake_audio_device.handles) == 1

    def test_reconnect_exhaustion(self, session_settings, fake_transport, fake_audio_device):
        """Test bounded reconnection ends in ERROR with MAX_RECONNECT_ATTEMPTS."""
        settings = replace(session_settings, max_reconnect_attempts=1)
        fake_transport.open_errors = [None, ConnectionError("network unreachable")]
        fake_transport.push_close(1006)

        async def scenario():
            session = InterviewSession(settings, fake_transport, fake_audio_device,
                                       classifier=fast_classifier())
            return await run_session(session)()

        result = asyncio.run(scenario())

        assert result.session.status == CallStatus.ERROR
        assert result.report is None
        assert result.terminal_error.kind == ErrorKind.NETWORK
        assert ErrorCode.MAX_RECONNECT_ATTEMPTS in [e.code for e in result.errors]
        assert result.session.reconnect_attempts == 1
        assert not fake_audio_device.held

    def test_transport_error_recovered(self, session_settings, fake_transport, fake_audio_device):
        """Test a transport error mid-session is recovered and the new connection is used."""
        fake_transport.push_error(ConnectionResetError("connection reset"))
        fake_transport.push_close(1000)

        async def scenario():
            session = InterviewSession(session_settings, fake_transport, fake_audio_device,
                                       classifier=fast_classifier())
            result = await run_session(session)()
            return result

        result = asyncio.run(scenario())

        assert result.session.status == CallStatus.FINISHED
        assert result.session.reconnect_attempts == 1

    def test_undecodable_audio_does_not_end_session(self, session_settings, fake_transport, fake_audio_device):
        fake_transport.push_json({"audio_base_64": "%%%"})
        fake_transport.push_json({"role": "user", "text": "still here"})
        fake_transport.push_close(1000)

        result = asyncio.run(run_session(
            InterviewSession(session_settings, fake_transport, fake_audio_device))())

        assert result.session.status == CallStatus.FINISHED
        assert [e.code for e in result.errors] == [ErrorCode.AUDIO]
        assert result.errors[0].recoverable
        assert [m.content for m in result.transcript] == ["still here"]

    def test_capture_failure_recovers_microphone(self, session_settings, fake_transport, fake_audio_device,
                                                 speech_frame):
        """Test a dead capture stream is recorded as AUDIO and the microphone re-acquired."""
        async def scenario():
            session = InterviewSession(session_settings, fake_transport, fake_audio_device,
                                       classifier=fast_classifier())
            await session.start()
            fake_audio_device.fail_capture(OSError("Input overflowed"))
            assert await wait_until(lambda: len(fake_audio_device.handles) == 2)
            status = session.status
            fake_audio_device.emit(speech_frame)
            assert await wait_until(lambda: "audio_chunk" in fake_transport.sent_types())
            return status, await session.end_session()

        status, result = asyncio.run(scenario())

        assert status == CallStatus.ACTIVE
        assert result.session.status == CallStatus.FINISHED
        assert [e.code for e in result.errors] == [ErrorCode.AUDIO]
        assert result.terminal_error is None
        assert not fake_audio_device.held

    def test_capture_failure_without_microphone_is_terminal(self, session_settings, fake_transport,
                                                            fake_audio_device):
        """Test the session fails with AUDIO once re-acquiring the microphone is exhausted."""
        async def scenario():
            session = InterviewSession(session_settings, fake_transport, fake_audio_device,
                                       classifier=fast_classifier())
            await session.start()
            fake_audio_device.deny_permission = True
            fake_audio_device.fail_capture(OSError("Device unavailable"))
            return await asyncio.wait_for(session.wait_until_finished(), 2.0)

        result = asyncio.run(scenario())

        assert result.session.status == CallStatus.ERROR
        assert result.terminal_error.kind == ErrorKind.AUDIO
        assert result.report is None
        assert ErrorCode.AUDIO in [e.code for e in result.errors]
        assert fake_transport.closed


@pytest.mark.integration
class TestSessionManagerFlow:
    """Session manager persistence and feedback hand-off."""

    def test_complete_session_persists_and_requests_feedback(self, test_config, fake_transport,
                                                             fake_audio_device, context):
        test_config["agent"]["context_delay_ms"] = 0
        manager = SessionManager(VoiceInterviewConfig.from_dict(test_config), fake_audio_device,
                                 transport_factory=lambda: fake_transport)
        fake_transport.push_json({"role": "assistant", "text": "Welcome, Ada."})
        fake_transport.push_json({"role": "user", "text": "Thanks, happy to be here."})
        fake_transport.push_close(1000)

        async def scenario():
            session = manager.create_session(context)
            result = await run_session(session)()
            feedback_id = await manager.complete_session(result, context)
            return result, feedback_id

        result, feedback_id = asyncio.run(scenario())

        session_id = result.session.id
        session_path = manager.file_manager.get_session_path(session_id)
        assert feedback_id.startswith(f"feedback_{session_id}_")
        assert manager.list_sessions() == [session_id]
        assert manager.load_report(session_id) == result.report
        assert manager.file_manager.load_transcript(session_id) == result.transcript
        with open(session_path / "session_info.json", encoding='utf-8') as f:
            info = json.load(f)
        assert info["status"] == "FINISHED"
        assert info["context"]["interview"]["candidate_name"] == "Ada"
        with open(session_path / "feedback.json", encoding='utf-8') as f:
            assert json.load(f) == {"feedback_id": feedback_id}
        assert manager.active_session is None


@pytest.mark.integration
class TestServerRun:
    """Live interview run from the command line."""

    def test_interrupted_run_still_persists_and_reports(self, test_config, fake_transport, fake_audio_device,
                                                        context):
        """Test cancelling the run, as Ctrl+C does, still saves the session and shows the report."""
        config = VoiceInterviewConfig.from_dict(test_config)
        server = Server(config)
        server.view = MagicMock()
        server.session_manager = SessionManager(config, fake_audio_device, transport_factory=lambda: fake_transport)
        fake_transport.push_json({"role": "assistant", "text": "Tell me about your last project."})

        async def scenario():
            run = asyncio.create_task(server.run(context, None))
            assert await wait_until(lambda: len(fake_transport.sent) > 0)
            await asyncio.sleep(0.05)
            run.cancel()
            await run

        asyncio.run(scenario())

        manager = server.session_manager
        [session_id] = manager.list_sessions()
        assert manager.load_report(session_id) is not None
        assert [m.content for m in manager.file_manager.load_transcript(session_id)] == \
            ["Tell me about your last project."]
        assert manager.file_manager.get_session_path(session_id).joinpath("feedback.json").exists()
        server.view.show_analytics.assert_called_once()
        server.view.show_performance.assert_called_once()
        assert not fake_audio_device.held
