"""
Meeting Bot Package.
Joins a single meeting, records it and reports its lifecycle to the control plane.
"""

__version__ = "1.0.0"
__author__ = "Meeting Bot Team"

from .bot import BotState, MeetingBot
from .config import settings, logger, get_logger
from .models import (
    BotIdentity,
    Event,
    EventCode,
    EventData,
    LifecycleStatus,
    MeetingPlatform,
    RecordingHandle,
)

__all__ = [
    # Orchestrator
    "MeetingBot",
    "BotState",

    # Models
    "BotIdentity",
    "Event",
    "EventCode",
    "EventData",
    "LifecycleStatus",
    "MeetingPlatform",
    "RecordingHandle",

    # Config
    "settings",
    "logger",
    "get_logger",
]
