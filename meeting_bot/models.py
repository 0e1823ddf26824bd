"""
Data models for the bot runtime.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field

from meeting_bot.config import MeetingPlatform
from meeting_bot.core.exceptions import ConfigurationError


class LifecycleStatus(str, Enum):
    """Authoritative status of a bot run as seen by the control plane."""
    JOINING = "JOINING"
    IN_CALL = "IN_CALL"
    DONE = "DONE"
    FAILED = "FAILED"

    @property
    def is_terminal(self) -> bool:
        return self in (LifecycleStatus.DONE, LifecycleStatus.FAILED)

    def can_transition_to(self, new: "LifecycleStatus") -> bool:
        """Forward-only ordering, FAILED from anything non-terminal."""
        if self.is_terminal:
            return False
        if new is LifecycleStatus.FAILED:
            return True
        return _STATUS_ORDER[new] > _STATUS_ORDER[self]


_STATUS_ORDER = {
    LifecycleStatus.JOINING: 0,
    LifecycleStatus.IN_CALL: 1,
    LifecycleStatus.DONE: 2,
    LifecycleStatus.FAILED: 2,
}


class EventCode(str, Enum):
    """Codes for events appended to the bot's event log."""
    JOINING = "JOINING"
    IN_CALL = "IN_CALL"
    RECORDING_STARTED = "RECORDING_STARTED"
    RECORDING_STOPPED = "RECORDING_STOPPED"
    CALL_ENDED = "CALL_ENDED"
    DONE = "DONE"
    FAILED = "FAILED"
    LOG = "LOG"


# Every EventCode must appear here; codes that do not move the lifecycle map to None.
_EVENT_STATUS: Dict[EventCode, Optional[LifecycleStatus]] = {
    EventCode.JOINING: LifecycleStatus.JOINING,
    EventCode.IN_CALL: LifecycleStatus.IN_CALL,
    EventCode.RECORDING_STARTED: None,
    EventCode.RECORDING_STOPPED: None,
    EventCode.CALL_ENDED: None,
    EventCode.DONE: LifecycleStatus.DONE,
    EventCode.FAILED: LifecycleStatus.FAILED,
    EventCode.LOG: None,
}


def status_for_event(event_type: EventCode) -> Optional[LifecycleStatus]:
    """Lifecycle status carried by an event code, if any."""
    return _EVENT_STATUS[EventCode(event_type)]


class EventData(BaseModel):
    """Optional payload attached to an event."""
    model_config = ConfigDict(populate_by_name=True)

    description: Optional[str] = None
    sub_code: Optional[str] = None


class Event(BaseModel):
    """Append-only record of a notable occurrence during a run."""
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    event_type: EventCode = Field(alias="eventType")
    event_time: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        alias="eventTime",
    )
    data: Optional[EventData] = None

    def to_payload(self) -> Dict[str, Any]:
        """Wire representation sent to the control plane."""
        return self.model_dump(mode="json", by_alias=True)


@dataclass(frozen=True)
class BotIdentity:
    """Identity of the one bot this process runs."""
    id: int
    platform: MeetingPlatform
    meeting_url: str

    @classmethod
    def from_values(
        cls,
        bot_id: Optional[int],
        platform: Optional[Any],
        meeting_url: Optional[str],
    ) -> "BotIdentity":
        """Build an identity, raising ConfigurationError on missing values."""
        missing = [
            name for name, value in (
                ("bot id", bot_id),
                ("platform", platform),
                ("meeting url", meeting_url),
            )
            if value in (None, "")
        ]
        if missing:
            raise ConfigurationError(
                f"Missing launch configuration: {', '.join(missing)}",
                details={"missing": missing},
            )
        try:
            resolved = MeetingPlatform(platform)
        except ValueError as exc:
            raise ConfigurationError(f"Unsupported platform: {platform}") from exc
        return cls(id=int(bot_id), platform=resolved, meeting_url=meeting_url.strip())


@dataclass
class RecordingHandle:
    """An open recording sink. Owned by the recording pipe until closed."""
    path: Path
    container: str
    video_codec: str
    audio_codec: str
    started_at: float
    process: Optional[Any] = None
    closed: bool = False
    stopped_at: Optional[float] = None
    size_bytes: int = 0

    @property
    def duration_seconds(self) -> float:
        if self.stopped_at is None:
            return 0.0
        return self.stopped_at - self.started_at

    def to_dict(self) -> dict:
        """Convert to dictionary for logging and JSON serialization."""
        return {
            "path": str(self.path),
            "container": self.container,
            "video_codec": self.video_codec,
            "audio_codec": self.audio_codec,
            "closed": self.closed,
            "duration_seconds": self.duration_seconds,
            "size_bytes": self.size_bytes,
        }


__all__ = [
    "MeetingPlatform",
    "LifecycleStatus",
    "EventCode",
    "EventData",
    "Event",
    "BotIdentity",
    "RecordingHandle",
    "status_for_event",
]

