"""Session event publisher for pub/sub fan-out to subscribers."""

import logging
from typing import Any

from pubsub import pub

from ..models.events import ErrorEvent, PublishedEvent
from ..models.errors import ClassifiedError
from ..models.session import CallStatus, Message

logger = logging.getLogger(__name__)

AUDIO_TOPIC = "interview_audio"
TRANSCRIPT_TOPIC = "interview_transcript"
CONTROL_TOPIC = "interview_control"
STATUS_TOPIC = "interview_status"
ERROR_TOPIC = "interview_error"


class SessionEventPublisher:
    """Publishes one session's events using pubsub.pub, one topic per kind.

    Every message is sent as ``event=<PublishedEvent>`` (or ``ErrorEvent``
    on the error topic) and carries the session id, so subscribers of
    concurrent sessions can filter.
    """

    def __init__(self, session_id: str, topic_prefix: str = ""):
        """Initialize session publisher.
        
        Args:
            session_id: Session whose events are published
            topic_prefix: Optional prefix for every topic name
        """
        self.session_id = session_id
        self.audio_topic = f"{topic_prefix}{AUDIO_TOPIC}"
        self.transcript_topic = f"{topic_prefix}{TRANSCRIPT_TOPIC}"
        self.control_topic = f"{topic_prefix}{CONTROL_TOPIC}"
        self.status_topic = f"{topic_prefix}{STATUS_TOPIC}"
        self.error_topic = f"{topic_prefix}{ERROR_TOPIC}"
        logger.info(f"SessionEventPublisher initialized for session: {session_id}")

    def _send(self, topic: str, payload: Any) -> None:
        pub.sendMessage(topic, event=PublishedEvent(session_id=self.session_id, topic=topic, payload=payload))

    def publish_audio(self, samples: Any) -> None:
        self._send(self.audio_topic, samples)

    def publish_transcript(self, message: Message) -> None:
        self._send(self.transcript_topic, message)
        logger.debug(f"Published transcript message: {message.role.value} ({len(message.content)} chars)")

    def publish_control(self, control: Any) -> None:
        self._send(self.control_topic, control)

    def publish_status(self, previous: CallStatus, current: CallStatus) -> None:
        self._send(self.status_topic, {"previous": previous, "current": current})

    def publish_error(self, error: ClassifiedError, terminal: bool) -> None:
        pub.sendMessage(self.error_topic,
                        event=ErrorEvent(session_id=self.session_id, error=error, terminal=terminal))
        logger.debug(f"Published {'terminal' if terminal else 'recoverable'} error: {error.kind.value}")
