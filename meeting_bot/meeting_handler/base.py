"""
Platform handler interface.

Each supported platform implements ``MeetingPlatformHandler``: it rewrites
the meeting URL into the platform's guest-join form, performs the prejoin
ritual and waits for the post-join signal (the in-call leave control).
Every UI step is tagged with a ``JoinStage`` so failures say exactly which
step did not complete.
"""

from __future__ import annotations

import asyncio
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional, Union

from playwright.async_api import (
    BrowserContext,
    ElementHandle,
    Error as PlaywrightError,
    Frame,
    Page,
    TimeoutError as PlaywrightTimeoutError,
)

from meeting_bot.config import get_logger, MeetingPlatform
from meeting_bot.core.exceptions import JoinError
from .browser import MeetingBrowser
from .selectors import PlatformSelectors


logger = get_logger("platform")


class JoinStage(str, Enum):
    """Join steps, used as JoinError.stage."""
    MEETING_URL = "meeting-url"
    BROWSER = "browser"
    NAVIGATE = "navigate"
    FRAME = "frame"
    NAME_FIELD = "name-field"
    MIC_TOGGLE = "mic-toggle"
    JOIN_BUTTON = "join-button"
    JOIN_AUDIO = "join-audio"
    POST_JOIN = "post-join"


Target = Union[Page, Frame]


@dataclass
class JoinedSession:
    """
    Live browsing session inside a meeting.

    The recording pipe and the end detector hold non-owning references;
    only the lifecycle orchestrator may call ``close``.
    """
    platform: MeetingPlatform
    context: BrowserContext
    page: Page
    # Where in-call UI lives: the page, or Zoom's web-client frame
    target: Target
    joined_at: float = field(default_factory=time.monotonic)
    closed: asyncio.Event = field(default_factory=asyncio.Event)

    @property
    def is_alive(self) -> bool:
        """True while the session is open and its page is still attached."""
        if self.closed.is_set() or self.page.is_closed():
            return False
        if self.target is not self.page and self.target.is_detached():
            return False
        return True

    async def close(self) -> None:
        """Close the browser context. Safe to call more than once."""
        if self.closed.is_set():
            return
        self.closed.set()
        try:
            await self.context.close()
            logger.info(f"{self.platform.value} session closed")
        except PlaywrightError as e:
            logger.debug(f"Context already gone while closing session: {e}")


class MeetingPlatformHandler(ABC):
    """
    Join sequence for one meeting platform.

    Handlers keep no per-attempt state: every ``join`` call gets a fresh
    browser context, so a failed attempt leaves nothing behind.
    """

    platform: MeetingPlatform
    selectors: PlatformSelectors

    def __init__(self, browser: MeetingBrowser, step_timeout_ms: int = 30_000) -> None:
        self.browser = browser
        self.step_timeout_ms = step_timeout_ms

    @staticmethod
    @abstractmethod
    def normalize_url(meeting_url: str) -> str:
        """Rewrite a meeting URL into the platform's anonymous join form."""

    @abstractmethod
    async def _prejoin(self, page: Page, display_name: str, step_timeout_ms: int) -> Target:
        """
        Perform the prejoin ritual and request to join.

        Returns the page or frame that hosts the in-call UI.
        """

    async def join(self, meeting_url: str, display_name: str, timeout_ms: int) -> JoinedSession:
        """
        Join a meeting as a guest.

        Args:
            meeting_url: Meeting URL as given by the user
            display_name: Name shown to other participants
            timeout_ms: How long to wait for the post-join signal

        Returns:
            The joined session

        Raises:
            JoinError: A join step did not complete in time
        """
        join_url = self.normalize_url(meeting_url)
        step_timeout_ms = min(self.step_timeout_ms, timeout_ms)
        logger.info(f"Joining {self.platform.value} meeting via {join_url}")

        try:
            context = await self.browser.new_context()
        except PlaywrightError as exc:
            raise JoinError(JoinStage.BROWSER, f"could not create browser context: {exc}") from exc

        try:
            try:
                page = await context.new_page()
            except PlaywrightError as exc:
                raise JoinError(JoinStage.BROWSER, f"could not open page: {exc}") from exc

            await self._navigate(page, join_url, step_timeout_ms)
            target = await self._prejoin(page, display_name, step_timeout_ms)

            logger.info("Waiting for the post-join signal...")
            await self._wait_for(
                target,
                self.selectors.leave_control,
                JoinStage.POST_JOIN,
                timeout_ms,
                state=self.selectors.leave_state,
            )
        except JoinError as exc:
            logger.error(f"Join failed at stage '{exc.stage}': {exc.cause}")
            await self._discard(context)
            raise
        except BaseException:
            # Cancelled while waiting, or an unexpected failure
            await asyncio.shield(self._discard(context))
            raise

        logger.info(f"Successfully joined {self.platform.value} meeting")
        return JoinedSession(
            platform=self.platform,
            context=context,
            page=page,
            target=target,
        )

    async def _navigate(self, page: Page, url: str, timeout_ms: int) -> None:
        try:
            await page.goto(url, wait_until="load", timeout=timeout_ms)
        except PlaywrightTimeoutError as exc:
            raise JoinError(JoinStage.NAVIGATE, f"page did not load within {timeout_ms}ms") from exc
        except PlaywrightError as exc:
            raise JoinError(JoinStage.NAVIGATE, str(exc)) from exc

    async def _wait_for(
        self,
        target: Target,
        selector: str,
        stage: JoinStage,
        timeout_ms: int,
        state: str = "visible",
    ) -> Optional[ElementHandle]:
        """Wait for a selector, converting Playwright failures into a staged JoinError."""
        try:
            return await target.wait_for_selector(selector, state=state, timeout=timeout_ms)
        except PlaywrightTimeoutError as exc:
            raise JoinError(stage, f"'{selector}' not {state} within {timeout_ms}ms") from exc
        except PlaywrightError as exc:
            raise JoinError(stage, str(exc)) from exc

    async def _fill(
        self,
        target: Target,
        selector: str,
        value: str,
        stage: JoinStage,
        timeout_ms: int,
    ) -> None:
        element = await self._wait_for(target, selector, stage, timeout_ms)
        try:
            await element.fill(value)
        except PlaywrightError as exc:
            raise JoinError(stage, f"could not fill '{selector}': {exc}") from exc

    async def _click(
        self,
        target: Target,
        selector: str,
        stage: JoinStage,
        timeout_ms: int,
    ) -> None:
        element = await self._wait_for(target, selector, stage, timeout_ms)
        try:
            await element.click()
        except PlaywrightError as exc:
            raise JoinError(stage, f"could not click '{selector}': {exc}") from exc

    async def _click_if_present(self, target: Target, selector: str, timeout_ms: int) -> bool:
        """Best-effort click for optional prompts."""
        try:
            element = await target.wait_for_selector(selector, state="visible", timeout=timeout_ms)
            await element.click()
            return True
        except PlaywrightError:
            return False

    @staticmethod
    async def _discard(context: Any) -> None:
        try:
            await context.close()
        except PlaywrightError as e:
            logger.debug(f"Error discarding browser context: {e}")
