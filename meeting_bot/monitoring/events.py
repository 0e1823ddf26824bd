"""
Event and lifecycle status reporting.

Every notable occurrence is appended to the bot's event log on the control
plane. Events that carry a lifecycle status are followed by exactly one
status update. Reporting is best effort: failures are logged here and never
reach the caller.
"""

from __future__ import annotations

import asyncio
from contextlib import contextmanager
from typing import Dict, Iterator, Optional, Protocol

from meeting_bot.config import get_logger
from meeting_bot.models import (
    Event,
    EventCode,
    EventData,
    LifecycleStatus,
    status_for_event,
)

logger = get_logger("events")


class ReportingClient(Protocol):
    async def report_event(self, bot_id: int, event: Event) -> None: ...

    async def update_bot_status(
        self,
        bot_id: int,
        status: LifecycleStatus,
        recording: Optional[str] = None,
    ) -> None: ...


@contextmanager
def best_effort(operation: str) -> Iterator[None]:
    """Log and swallow any failure of ``operation``."""
    try:
        yield
    except Exception as e:
        logger.warning(f"{operation} failed: {e}")


class EventReporter:
    """
    Publishes events and the status transitions they imply.

    Reports are serialized so the control plane sees them in the order they
    were made. The last status sent per bot is remembered to keep the
    lifecycle forward-only.
    """

    def __init__(self, client: ReportingClient) -> None:
        self._client = client
        self._lock = asyncio.Lock()
        self._statuses: Dict[int, LifecycleStatus] = {}

    def current_status(self, bot_id: int) -> Optional[LifecycleStatus]:
        return self._statuses.get(bot_id)

    async def report_event(
        self,
        bot_id: int,
        event_type: EventCode,
        data: Optional[EventData] = None,
        recording: Optional[str] = None,
    ) -> None:
        """
        Publish an event, then the status it carries.

        Args:
            bot_id: Control-plane bot id
            event_type: Event code to publish
            data: Optional description and sub code
            recording: Recording reference; required with DONE
        """
        event_type = EventCode(event_type)
        status = status_for_event(event_type)

        if status is LifecycleStatus.DONE and not recording:
            logger.error(f"Refusing to report DONE for bot {bot_id} without a recording")
            return

        async with self._lock:
            event = Event(event_type=event_type, data=data)
            with best_effort(f"Reporting event {event_type.value} for bot {bot_id}"):
                await self._client.report_event(bot_id, event)
                logger.info(f"Reported event {event_type.value} for bot {bot_id}")

            if status is None:
                return

            current = self._statuses.get(bot_id)
            if current is not None and not current.can_transition_to(status):
                logger.warning(
                    f"Skipping status {status.value} for bot {bot_id}: "
                    f"already {current.value}"
                )
                return

            # Recorded before sending so a failed update is never repeated
            self._statuses[bot_id] = status
            with best_effort(f"Updating status to {status.value} for bot {bot_id}"):
                await self._client.update_bot_status(
                    bot_id,
                    status,
                    recording=recording if status is LifecycleStatus.DONE else None,
                )
                logger.info(f"Bot {bot_id} status is now {status.value}")
