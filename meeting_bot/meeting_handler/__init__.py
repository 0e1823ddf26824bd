"""
Meeting handler module.

Provides the platform join sequences, the browser launcher they run in,
and the meeting-end detector.
"""

from typing import Dict, Type

from meeting_bot.config import BotSettings, MeetingPlatform
from .base import JoinedSession, JoinStage, MeetingPlatformHandler
from .browser import MeetingBrowser
from .end_detector import (
    DetectorState,
    EndDetectionPolicy,
    EndReason,
    MeetingEndDetector,
)
from .meet_handler import MeetMeetingHandler
from .teams_meeting_handler import TeamsMeetingHandler
from .zoom_meeting_handler import ZoomMeetingHandler


PLATFORM_HANDLERS: Dict[MeetingPlatform, Type[MeetingPlatformHandler]] = {
    MeetingPlatform.MEET: MeetMeetingHandler,
    MeetingPlatform.TEAMS: TeamsMeetingHandler,
    MeetingPlatform.ZOOM: ZoomMeetingHandler,
}


def get_platform_handler(
    platform: MeetingPlatform,
    browser: MeetingBrowser,
    bot_settings: BotSettings,
) -> MeetingPlatformHandler:
    """Create the handler for a platform."""
    platform = MeetingPlatform(platform)
    if platform is MeetingPlatform.MEET:
        return MeetMeetingHandler(
            browser,
            step_timeout_ms=bot_settings.step_timeout_ms,
            settle_ms=bot_settings.meet_settle_ms,
        )
    return PLATFORM_HANDLERS[platform](browser, step_timeout_ms=bot_settings.step_timeout_ms)


__all__ = [
    "JoinedSession",
    "JoinStage",
    "MeetingPlatformHandler",
    "MeetingBrowser",
    "DetectorState",
    "EndDetectionPolicy",
    "EndReason",
    "MeetingEndDetector",
    "MeetMeetingHandler",
    "TeamsMeetingHandler",
    "ZoomMeetingHandler",
    "PLATFORM_HANDLERS",
    "get_platform_handler",
]
