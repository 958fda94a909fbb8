"""Duplex transports to the voice agent."""

from .base import AbstractTransport, TransportFrame
from .websocket import AiohttpWebSocketTransport

__all__ = [
    'AbstractTransport',
    'TransportFrame',
    'AiohttpWebSocketTransport'
]
