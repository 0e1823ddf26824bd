"""
Meeting-end detection.

Polls a joined session for the end of the meeting. Each poll blocks inside
a Playwright selector wait bounded by the poll interval, so an unbounded
watch (the Zoom default) never spins. When the end is detected the
``on_end`` callback runs exactly once, however many detections race.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Optional, Tuple

from playwright.async_api import (
    ElementHandle,
    Error as PlaywrightError,
    TimeoutError as PlaywrightTimeoutError,
)

from meeting_bot.config import get_logger, MeetingPlatform, PLATFORM_DEFAULTS
from .base import JoinedSession, Target
from .selectors import get_selectors_for


logger = get_logger("end_detector")

# Follow-up checks in the same poll only need a glance
_QUICK_CHECK_MS = 250


class EndReason(str, Enum):
    """Why the detector stopped watching."""
    MEETING_ENDED = "meeting_ended"
    LEAVE_CONTROL_GONE = "leave_control_gone"
    TIMEOUT = "timeout"
    SESSION_LOST = "session_lost"
    SESSION_CLOSED = "session_closed"
    STOPPED = "stopped"

    @property
    def triggers_teardown(self) -> bool:
        # SESSION_CLOSED means the owner already tore the session down
        return self is not EndReason.SESSION_CLOSED


class DetectorState(str, Enum):
    IDLE = "idle"
    POLLING = "polling"
    ENDED = "ended"


@dataclass(frozen=True)
class EndDetectionPolicy:
    """Per-platform rules for recognising the end of a meeting."""
    leave_control: str
    leave_state: str
    meeting_ended: Optional[str]
    acknowledge_end: bool
    watch_leave_control: bool
    poll_interval_seconds: float
    max_duration_seconds: Optional[float]
    # Consecutive polls without a leave control before the meeting counts as over
    confirm_polls: int = 2

    @classmethod
    def for_platform(
        cls,
        platform: MeetingPlatform,
        poll_interval_seconds: Optional[float] = None,
        max_duration_seconds: Optional[float] = None,
    ) -> "EndDetectionPolicy":
        """
        Build the policy for a platform.

        Args:
            platform: Meeting platform
            poll_interval_seconds: Override of the platform poll interval
            max_duration_seconds: Override of the platform timeout; zero or
                less means wait for as long as the meeting lasts
        """
        platform = MeetingPlatform(platform)
        defaults = PLATFORM_DEFAULTS[platform]
        selectors = get_selectors_for(platform)

        interval = poll_interval_seconds or defaults.poll_interval_seconds
        if max_duration_seconds is None:
            max_duration = defaults.max_duration_seconds
        elif max_duration_seconds <= 0:
            max_duration = None
        else:
            max_duration = max_duration_seconds

        is_zoom = platform is MeetingPlatform.ZOOM
        return cls(
            leave_control=selectors.leave_control,
            leave_state=selectors.leave_state,
            meeting_ended=selectors.meeting_ended,
            # Zoom keeps its end-of-call dialog open until acknowledged
            acknowledge_end=is_zoom,
            # Zoom hides its footer on inactivity, so only the dialog counts
            watch_leave_control=not is_zoom,
            poll_interval_seconds=interval,
            max_duration_seconds=max_duration,
        )


EndCallback = Callable[[EndReason], Awaitable[None]]


class MeetingEndDetector:
    """
    Poll state machine: IDLE -> POLLING -> ENDED.

    Usage pattern:
        detector = MeetingEndDetector(policy, on_end=teardown)
        reason = await detector.await_end(session, stop_event)
    """

    def __init__(self, policy: EndDetectionPolicy, on_end: Optional[EndCallback] = None) -> None:
        self.policy = policy
        self._on_end = on_end
        self.state = DetectorState.IDLE
        self.reason: Optional[EndReason] = None
        self.polls = 0
        self._fired = False
        self._gone_streak = 0

    async def await_end(
        self,
        session: JoinedSession,
        stop_event: Optional[asyncio.Event] = None,
    ) -> EndReason:
        """
        Suspend until the meeting ends or the session goes away.

        Args:
            session: Joined session to watch (not owned)
            stop_event: Process-level shutdown signal

        Returns:
            The reason the watch ended
        """
        loop = asyncio.get_running_loop()
        deadline = None
        if self.policy.max_duration_seconds is not None:
            deadline = loop.time() + self.policy.max_duration_seconds

        self.state = DetectorState.POLLING
        logger.info(
            f"Watching {session.platform.value} meeting for its end "
            f"(poll every {self.policy.poll_interval_seconds}s, "
            f"timeout {self.policy.max_duration_seconds or 'none'})"
        )

        while True:
            reason = self._check_session(session, stop_event)
            if reason is None and deadline is not None and loop.time() >= deadline:
                reason = EndReason.TIMEOUT
            if reason is None:
                reason = await self._poll(session, stop_event)
            if reason is not None:
                break

        self.state = DetectorState.ENDED
        if self.reason is None:
            self.reason = reason
        logger.info(f"Meeting end detected after {self.polls} polls: {reason.value}")

        if reason.triggers_teardown:
            await self._fire(reason)
        return reason

    def _check_session(
        self,
        session: JoinedSession,
        stop_event: Optional[asyncio.Event],
    ) -> Optional[EndReason]:
        if session.closed.is_set():
            return EndReason.SESSION_CLOSED
        if stop_event is not None and stop_event.is_set():
            return EndReason.STOPPED
        if not session.is_alive:
            return EndReason.SESSION_LOST
        return None

    async def _poll(
        self,
        session: JoinedSession,
        stop_event: Optional[asyncio.Event],
    ) -> Optional[EndReason]:
        self.polls += 1
        try:
            return await self._poll_once(session.target)
        except PlaywrightError as e:
            reason = self._check_session(session, stop_event)
            if reason is not None:
                return reason
            logger.debug(f"Monitor check error: {e}")
            await self._pause(stop_event)
            return None

    async def _poll_once(self, target: Target) -> Optional[EndReason]:
        policy = self.policy
        interval_ms = policy.poll_interval_seconds * 1000
        leave_check_ms = interval_ms

        if policy.meeting_ended:
            seen, dialog = await self._appears(target, policy.meeting_ended, "visible", interval_ms)
            if seen:
                if policy.acknowledge_end and dialog is not None:
                    await self._acknowledge(dialog)
                return EndReason.MEETING_ENDED
            leave_check_ms = _QUICK_CHECK_MS

        if policy.watch_leave_control:
            gone_state = "detached" if policy.leave_state == "attached" else "hidden"
            gone, _ = await self._appears(target, policy.leave_control, gone_state, leave_check_ms)
            if gone:
                self._gone_streak += 1
                if self._gone_streak >= policy.confirm_polls:
                    return EndReason.LEAVE_CONTROL_GONE
                logger.debug("Leave control missing, rechecking before ending")
            else:
                self._gone_streak = 0

        return None

    @staticmethod
    async def _appears(
        target: Target,
        selector: str,
        state: str,
        timeout_ms: float,
    ) -> Tuple[bool, Optional[ElementHandle]]:
        """Wait up to ``timeout_ms`` for ``selector`` to reach ``state``."""
        try:
            element = await target.wait_for_selector(selector, state=state, timeout=timeout_ms)
        except PlaywrightTimeoutError:
            return False, None
        return True, element

    @staticmethod
    async def _acknowledge(dialog: ElementHandle) -> None:
        try:
            await dialog.click()
            logger.info("Acknowledged the end-of-meeting dialog")
        except PlaywrightError as e:
            logger.warning(f"Could not acknowledge end-of-meeting dialog: {e}")

    async def _pause(self, stop_event: Optional[asyncio.Event]) -> None:
        if stop_event is None:
            await asyncio.sleep(self.policy.poll_interval_seconds)
            return
        try:
            await asyncio.wait_for(stop_event.wait(), timeout=self.policy.poll_interval_seconds)
        except asyncio.TimeoutError:
            pass

    async def _fire(self, reason: EndReason) -> None:
        """Run the end callback once; later detections are dropped."""
        if self._fired:
            logger.debug(f"Teardown already triggered, ignoring duplicate detection ({reason.value})")
            return
        self._fired = True
        if self._on_end is not None:
            await self._on_end(reason)
