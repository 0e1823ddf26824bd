"""
Configuration module for the Meeting Bot.
"""

from .settings import (
    Settings,
    settings,
    MeetingPlatform,
    PlatformDefaults,
    PLATFORM_DEFAULTS,
    BotSettings,
    RecordingSettings,
    ControlPlaneSettings,
    DetectorSettings,
    S3Settings,
)
from .logger import logger, get_logger, setup_logging

__all__ = [
    "Settings",
    "settings",
    "MeetingPlatform",
    "PlatformDefaults",
    "PLATFORM_DEFAULTS",
    "BotSettings",
    "RecordingSettings",
    "ControlPlaneSettings",
    "DetectorSettings",
    "S3Settings",
    "logger",
    "get_logger",
    "setup_logging",
]
