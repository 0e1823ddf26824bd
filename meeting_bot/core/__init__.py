"""
Core module exports.
"""

from .exceptions import (
    MeetingBotException,
    ConfigurationError,
    JoinError,
    ReportingError,
    RecordingError,
    SessionLostError,
    StorageError,
    InvalidTransitionError,
    BotAlreadyFinishedError,
)

__all__ = [
    "MeetingBotException",
    "ConfigurationError",
    "JoinError",
    "ReportingError",
    "RecordingError",
    "SessionLostError",
    "StorageError",
    "InvalidTransitionError",
    "BotAlreadyFinishedError",
]
