"""Session manager: creates interview sessions, persists results, hands off feedback."""

import logging
from typing import Any, Callable, Dict, List, Optional

from ..analytics.engine import TranscriptAnalyticsEngine
from ..audio.device import AbstractAudioDevice
from ..config import VoiceInterviewConfig
from ..errors.exceptions import FeedbackError
from ..models.analytics import AnalyticsReport
from ..models.session import CallStatus, InterviewContext, Message, Session
from ..session.interview_session import InterviewSession, SessionResult
from ..storage.file_manager import FileManager
from ..transport.base import AbstractTransport
from ..transport.websocket import AiohttpWebSocketTransport
from .feedback import AbstractFeedbackCollaborator, FileFeedbackCollaborator, HttpFeedbackCollaborator

logger = logging.getLogger(__name__)


class SessionManager:
    """Manages interview sessions, file storage and the feedback hand-off."""
    
    def __init__(self,
                 config: VoiceInterviewConfig,
                 audio_device: AbstractAudioDevice,
                 transport_factory: Optional[Callable[[], AbstractTransport]] = None,
                 feedback: Optional[AbstractFeedbackCollaborator] = None):
        """Initialize session manager.
        
        Args:
            config: Application configuration
            audio_device: Local audio collaborator shared by sessions one at a time
            transport_factory: Builds a fresh transport per session
            feedback: Feedback collaborator (built from config when omitted)
        """
        self.config = config
        self.settings = config.get_session_settings()
        self.audio_device = audio_device
        self.transport_factory = transport_factory or AiohttpWebSocketTransport
        self.file_manager = FileManager(config.get_data_directory())
        self.feedback = feedback or self._build_feedback()
        self.analytics = TranscriptAnalyticsEngine()
        self.active_session: Optional[InterviewSession] = None
        logger.info(f"SessionManager initialized with data dir: {config.get_data_directory()}")

    def _build_feedback(self) -> AbstractFeedbackCollaborator:
        endpoint = self.config.get('feedback.endpoint')
        if endpoint:
            return HttpFeedbackCollaborator(endpoint, api_key=self.config.get('feedback.api_key'))
        return FileFeedbackCollaborator(self.file_manager)
    
    def create_session(self, context: Optional[InterviewContext] = None) -> InterviewSession:
        """Create a new interview session with its own transport.
        
        Raises:
            RuntimeError: If a session is still running on the shared microphone
        """
        if self.active_session is not None and self.active_session.result is None:
            raise RuntimeError(f"Session {self.active_session.session_id} is still running")

        session_id = self.file_manager.create_session_directory()
        session = InterviewSession(
            self.settings,
            self.transport_factory(),
            self.audio_device,
            context=context,
            session_id=session_id,
            analytics=self.analytics,
        )
        self.active_session = session
        logger.info(f"Created new session: {session_id}")
        return session

    def save_session_result(self, result: SessionResult,
                            context: Optional[InterviewContext] = None) -> Dict[str, Any]:
        """Persist session info, transcript and report.
        
        Returns:
            Dictionary with saved file paths
        """
        session_id = result.session.id
        info = {"performance": result.performance.to_dict(), "end_reason": result.end_reason}
        if context:
            info["interview"] = context.to_metadata()
        if result.terminal_error:
            info["terminal_error"] = {"kind": result.terminal_error.kind.value,
                                      "message": result.terminal_error.message}
        info["errors"] = [e.to_dict() for e in result.errors]

        saved_files = [
            self.file_manager.save_session_info(result.session, info),
            self.file_manager.save_transcript(session_id, result.transcript),
        ]
        if result.report is not None:
            saved_files.append(self.file_manager.save_report(result.report))

        logger.info(f"Saved session data for {session_id}: {len(saved_files)} files")
        return {
            "session_id": session_id,
            "session_path": str(self.file_manager.get_session_path(session_id)),
            "saved_files": saved_files,
        }

    async def complete_session(self, result: SessionResult,
                               context: Optional[InterviewContext] = None) -> Optional[str]:
        """Persist a finished session and hand it to the feedback collaborator.
        
        Returns:
            Feedback id, or None when the session produced no report or the
            hand-off failed
        """
        self.save_session_result(result, context)
        if self.active_session is not None and self.active_session.session_id == result.session.id:
            self.active_session = None

        if result.report is None:
            logger.info(f"Session {result.session.id} ended without a report, no feedback requested")
            return None

        try:
            feedback_id = await self.feedback.submit(result.session.id, result.transcript, result.report)
        except FeedbackError as e:
            logger.error(f"Feedback hand-off failed for session {result.session.id}: {e}")
            return None
        self.file_manager.save_json(result.session.id, "feedback.json", {"feedback_id": feedback_id})
        return feedback_id

    def analyze_transcript(self, messages: List[Message], session_id: str = "offline") -> AnalyticsReport:
        """Run analytics over a stored transcript outside a live session."""
        session = Session(id=session_id, status=CallStatus.FINISHED)
        return self.analytics.generate_report(messages, session, [])
    
    def list_sessions(self) -> List[str]:
        return self.file_manager.list_sessions()

    def load_report(self, session_id: str) -> Optional[AnalyticsReport]:
        return self.file_manager.load_report(session_id)
