"""Abstract base class for duplex agent transports."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Optional, Union
import logging

logger = logging.getLogger(__name__)


@dataclass
class TransportFrame:
    """One item read from a transport.

    ``kind`` is ``text``, ``binary``, ``closed`` or ``error``.
    """
    kind: str
    data: Union[str, bytes, None] = None
    close_code: Optional[int] = None
    error: Optional[BaseException] = None

    @property
    def is_terminal(self) -> bool:
        return self.kind in ("closed", "error")


class AbstractTransport(ABC):
    """Message-oriented duplex connection to a voice agent."""

    @abstractmethod
    async def open(self, url: str, headers: Optional[Dict[str, str]] = None) -> None:
        """Open the connection.
        
        Args:
            url: Agent endpoint
            headers: Extra handshake headers (authorization etc.)
            
        Raises:
            Exception: Any transport failure; callers classify it
        """
        pass

    @abstractmethod
    async def send_json(self, message: Dict[str, Any]) -> None:
        """Send one JSON control or audio message."""
        pass

    @abstractmethod
    async def send_bytes(self, data: bytes) -> None:
        """Send one binary frame."""
        pass

    @abstractmethod
    async def receive(self) -> TransportFrame:
        """Wait for the next inbound frame.
        
        Returns a ``closed`` or ``error`` frame instead of raising once the
        connection ends, and keeps returning ``closed`` afterwards.
        """
        pass

    @abstractmethod
    async def close(self) -> None:
        """Close the connection. Safe to call more than once."""
        pass

    @property
    @abstractmethod
    def closed(self) -> bool:
        pass
