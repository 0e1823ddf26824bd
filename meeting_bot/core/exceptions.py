"""
Custom exceptions for the Meeting Bot runtime.
"""

from typing import Any, Dict, Optional


class MeetingBotException(Exception):
    """Base exception for Meeting Bot errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)


class ConfigurationError(MeetingBotException):
    """Raised when configuration is invalid."""
    pass


class JoinError(MeetingBotException):
    """
    Raised when a join step did not complete.

    ``stage`` names the step that failed (e.g. ``name-field``), ``cause``
    describes what went wrong in that step.
    """

    def __init__(self, stage: str, cause: str):
        self.stage = str(getattr(stage, "value", stage))
        self.cause = cause
        super().__init__(
            f"{self.stage}: {cause}",
            details={"stage": self.stage, "cause": cause},
        )


class ReportingError(MeetingBotException):
    """Raised when a heartbeat, event or status call to the control plane fails."""
    pass


class RecordingError(MeetingBotException):
    """Raised when the recording sink cannot be started or written."""
    pass


class SessionLostError(MeetingBotException):
    """Raised when the joined session disappears outside the normal end-of-meeting path."""
    pass


class StorageError(MeetingBotException):
    """Raised when a recording upload fails."""
    pass


class InvalidTransitionError(MeetingBotException):
    """Raised when the lifecycle state machine is asked for an illegal transition."""
    pass


class BotAlreadyFinishedError(InvalidTransitionError):
    """Raised when a bot that already reached a terminal state is run again."""
    pass
