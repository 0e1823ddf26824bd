"""
Google Meet Meeting Handler

Handles the Google Meet guest join flow:
- Anonymous join URL rewriting
- Device prompt dismissal
- Guest name entry
- "Ask to join" / "Join now"
"""

from __future__ import annotations

import asyncio
from urllib.parse import unquote, urlsplit

from playwright.async_api import Page

from meeting_bot.config import get_logger, MeetingPlatform
from meeting_bot.core.exceptions import JoinError
from .base import JoinStage, MeetingPlatformHandler, Target
from .browser import MeetingBrowser
from .selectors import MEET_SELECTORS


logger = get_logger("meet_handler")


class MeetMeetingHandler(MeetingPlatformHandler):
    """Handler for Google Meet meetings."""

    platform = MeetingPlatform.MEET
    selectors = MEET_SELECTORS

    def __init__(
        self,
        browser: MeetingBrowser,
        step_timeout_ms: int = 30_000,
        settle_ms: int = 10_000,
    ) -> None:
        super().__init__(browser, step_timeout_ms)
        self.settle_ms = settle_ms

    @staticmethod
    def normalize_url(meeting_url: str) -> str:
        """
        Move the meeting code into the fragment and request anonymous access.

        ``https://meet.google.com/abc-defg-hij?authuser=0`` becomes
        ``https://meet.google.com#/abc-defg-hij?authuser=0&anon=true``.
        """
        parts = urlsplit(meeting_url.strip())
        if parts.scheme not in ("http", "https") or parts.hostname != "meet.google.com":
            raise JoinError(JoinStage.MEETING_URL, f"not a Google Meet link: {meeting_url}")
        if not parts.path.strip("/"):
            raise JoinError(JoinStage.MEETING_URL, f"no meeting code in: {meeting_url}")

        query = f"{parts.query}&anon=true" if parts.query else "anon=true"
        return f"https://meet.google.com#{unquote(parts.path)}?{query}"

    async def _prejoin(self, page: Page, display_name: str, step_timeout_ms: int) -> Target:
        """
        Flow:
        1. Dismiss the device check prompt if shown
        2. Wait for the guest name field, let the page settle, enter the name
        3. Click "Ask to join" / "Join now"
        """
        if await self._click_if_present(page, self.selectors.device_prompt, min(5_000, step_timeout_ms)):
            logger.info("Clicked 'Continue without microphone and camera'")

        logger.info("Waiting for the name field...")
        await self._wait_for(page, self.selectors.name_input, JoinStage.NAME_FIELD, step_timeout_ms)

        # Meet re-renders the prejoin screen shortly after the field appears
        if self.settle_ms:
            await asyncio.sleep(self.settle_ms / 1000)

        logger.info(f"Entering bot name: {display_name}")
        await self._fill(page, self.selectors.name_input, display_name, JoinStage.NAME_FIELD, step_timeout_ms)

        logger.info("Requesting to join...")
        await self._click(page, self.selectors.join_button, JoinStage.JOIN_BUTTON, step_timeout_ms)
        return page
