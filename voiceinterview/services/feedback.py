"""Hand-off of finished transcripts to a feedback-generation collaborator."""

import logging
import uuid
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Optional, Sequence

import aiohttp

from ..errors.exceptions import FeedbackError
from ..models.analytics import AnalyticsReport
from ..models.session import Message
from ..storage.file_manager import FileManager

logger = logging.getLogger(__name__)


class AbstractFeedbackCollaborator(ABC):
    """Accepts (session id, transcript, analytics report) and returns a feedback id."""

    @abstractmethod
    async def submit(self, session_id: str, transcript: Sequence[Message], report: AnalyticsReport) -> str:
        """Hand off a finished session.
        
        Returns:
            Opaque feedback identifier
            
        Raises:
            FeedbackError: If the hand-off fails
        """
        pass


class FileFeedbackCollaborator(AbstractFeedbackCollaborator):
    """Writes the feedback request next to the session for offline processing."""

    REQUEST_FILE = "feedback_request.json"

    def __init__(self, file_manager: FileManager):
        self.file_manager = file_manager

    async def submit(self, session_id: str, transcript: Sequence[Message], report: AnalyticsReport) -> str:
        feedback_id = f"feedback_{session_id}_{uuid.uuid4().hex[:8]}"
        request = {
            "feedback_id": feedback_id,
            "session_id": session_id,
            "created_at": datetime.now().isoformat(),
            "transcript": [m.to_dict() for m in transcript],
            "analytics": report.to_dict(),
        }
        try:
            self.file_manager.save_json(session_id, self.REQUEST_FILE, request)
        except OSError as e:
            raise FeedbackError(f"Could not store feedback request: {e}") from e
        logger.info(f"Feedback request stored for session {session_id}: {feedback_id}")
        return feedback_id


class HttpFeedbackCollaborator(AbstractFeedbackCollaborator):
    """POSTs the feedback request to a remote endpoint."""

    def __init__(self, endpoint: str, api_key: Optional[str] = None, timeout_seconds: float = 30.0):
        """Initialize HTTP collaborator.
        
        Args:
            endpoint: URL accepting the feedback request
            api_key: Optional bearer token
            timeout_seconds: Total request timeout
        """
        self.endpoint = endpoint
        self.api_key = api_key
        self.timeout = aiohttp.ClientTimeout(total=timeout_seconds)
        logger.info(f"HttpFeedbackCollaborator initialized for endpoint: {endpoint}")

    async def submit(self, session_id: str, transcript: Sequence[Message], report: AnalyticsReport) -> str:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"

        data = {
            "session_id": session_id,
            "transcript": [m.to_dict() for m in transcript],
            "analytics": report.to_dict(),
        }

        try:
            async with aiohttp.ClientSession(timeout=self.timeout) as session:
                async with session.post(self.endpoint, headers=headers, json=data) as response:
                    if response.status not in (200, 201):
                        error_text = await response.text()
                        raise FeedbackError(f"Feedback API error: {response.status} - {error_text}",
                                            status=response.status)
                    result = await response.json()
        except aiohttp.ClientError as e:
            raise FeedbackError(f"Feedback request failed: {e}") from e

        feedback_id = None
        if isinstance(result, dict):
            feedback_id = result.get("feedback_id") or result.get("feedbackId")
        if not feedback_id:
            raise FeedbackError("Feedback API response did not include a feedback_id")
        logger.info(f"Feedback submitted for session {session_id}: {feedback_id}")
        return str(feedback_id)
