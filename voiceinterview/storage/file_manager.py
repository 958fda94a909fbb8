"""File storage for interview sessions: session info, transcripts and reports."""

import json
import logging
import random
import string
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from ..models.analytics import AnalyticsReport
from ..models.session import Message, Session

logger = logging.getLogger(__name__)

SESSION_INFO_FILE = "session_info.json"
TRANSCRIPT_FILE = "transcript.json"
REPORT_FILE = "analytics_report.json"


class FileManager:
    """Manages per-session directories under ``<data_dir>/sessions``."""
    
    def __init__(self, data_dir: str = "./data"):
        """Initialize file manager with data directory.
        
        Args:
            data_dir: Base directory for storing all data
        """
        self.data_dir = Path(data_dir)
        self.sessions_dir = self.data_dir / "sessions"
        self.logs_dir = self.data_dir / "logs"
        
        self._ensure_directories()
        
        logger.info(f"FileManager initialized with data_dir: {self.data_dir}")
    
    def _ensure_directories(self) -> None:
        for directory in [self.data_dir, self.sessions_dir, self.logs_dir]:
            directory.mkdir(parents=True, exist_ok=True)
            logger.debug(f"Ensured directory exists: {directory}")
    
    def create_session_directory(self) -> str:
        """Create new session directory with timestamp and random suffix.
        
        Returns:
            Session ID (timestamp-based with random suffix)
        """
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        random_suffix = ''.join(random.choices(string.ascii_lowercase + string.digits, k=4))
        session_id = f"{timestamp}_{random_suffix}"
        session_path = self.sessions_dir / session_id
        session_path.mkdir(exist_ok=True)
        
        logger.info(f"Created session directory: {session_path}")
        return session_id

    def get_session_path(self, session_id: str) -> Path:
        return self.sessions_dir / session_id

    def _write_json(self, session_id: str, filename: str, data: Any) -> str:
        session_path = self.get_session_path(session_id)
        session_path.mkdir(parents=True, exist_ok=True)
        target = session_path / filename
        try:
            with open(target, 'w', encoding='utf-8') as f:
                json.dump(data, f, indent=2)
        except OSError as e:
            logger.error(f"Error writing {target}: {e}")
            raise
        logger.info(f"Saved {target}")
        return str(target)

    def _read_json(self, session_id: str, filename: str) -> Optional[Any]:
        source = self.get_session_path(session_id) / filename
        if not source.exists():
            logger.warning(f"File not found: {source}")
            return None
        try:
            with open(source, 'r', encoding='utf-8') as f:
                return json.load(f)
        except (OSError, ValueError) as e:
            logger.error(f"Error reading {source}: {e}")
            return None
    
    def save_session_info(self, session: Session, context: Optional[Dict[str, Any]] = None) -> str:
        """Save the session record (and optional interview context) as JSON.
        
        Returns:
            Path to saved session info file
        """
        info = session.to_dict()
        if context:
            info["context"] = context
        return self._write_json(session.id, SESSION_INFO_FILE, info)

    def load_session_info(self, session_id: str) -> Optional[Dict[str, Any]]:
        return self._read_json(session_id, SESSION_INFO_FILE)

    def save_transcript(self, session_id: str, messages: Sequence[Message]) -> str:
        return self._write_json(session_id, TRANSCRIPT_FILE, [m.to_dict() for m in messages])

    def load_transcript(self, session_id: str) -> Optional[List[Message]]:
        data = self._read_json(session_id, TRANSCRIPT_FILE)
        if data is None:
            return None
        return [Message.from_dict(item) for item in data]

    @staticmethod
    def load_transcript_file(path: str) -> List[Message]:
        """Load a transcript JSON file from an arbitrary path.
        
        Raises:
            FileNotFoundError: If the file does not exist
            ValueError: If the file is not a transcript
        """
        with open(path, 'r', encoding='utf-8') as f:
            data = json.load(f)
        if not isinstance(data, list):
            raise ValueError(f"Transcript file must contain a list of messages: {path}")
        try:
            return [Message.from_dict(item) for item in data]
        except (KeyError, TypeError) as e:
            raise ValueError(f"Malformed transcript entry in {path}: {e}") from e

    def save_report(self, report: AnalyticsReport) -> str:
        return self._write_json(report.session_id, REPORT_FILE, report.to_dict())

    def load_report(self, session_id: str) -> Optional[AnalyticsReport]:
        data = self._read_json(session_id, REPORT_FILE)
        return AnalyticsReport.from_dict(data) if data is not None else None

    def save_json(self, session_id: str, filename: str, data: Any) -> str:
        """Save an arbitrary JSON document into the session directory."""
        return self._write_json(session_id, filename, data)
    
    def list_sessions(self) -> List[str]:
        """List all stored session IDs, sorted chronologically."""
        sessions = [
            path.name for path in self.sessions_dir.iterdir()
            if path.is_dir() and (path / SESSION_INFO_FILE).exists()
        ]
        sessions.sort()
        logger.debug(f"Found {len(sessions)} sessions")
        return sessions
