"""Voice interview - real-time voice conversation with a remote interview agent."""

__version__ = "0.1.0"
