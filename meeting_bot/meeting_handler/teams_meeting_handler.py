"""
Microsoft Teams Meeting Handler

Handles the Teams anonymous web join flow:
- Rewriting meeting links into the v2 web client's guest form
- Guest name entry
- Muting the microphone before joining
- Join button
"""

from __future__ import annotations

from urllib.parse import unquote, urlsplit

from playwright.async_api import Page

from meeting_bot.config import get_logger, MeetingPlatform
from meeting_bot.core.exceptions import JoinError
from .base import JoinStage, MeetingPlatformHandler, Target
from .browser import MeetingBrowser
from .selectors import TEAMS_SELECTORS


logger = get_logger("teams_handler")

TEAMS_HOSTS = ("teams.microsoft.com", "teams.live.com")


class TeamsMeetingHandler(MeetingPlatformHandler):
    """Handler for Microsoft Teams meetings."""

    platform = MeetingPlatform.TEAMS
    selectors = TEAMS_SELECTORS

    def __init__(
        self,
        browser: MeetingBrowser,
        step_timeout_ms: int = 30_000,
        mute_before_join: bool = True,
    ) -> None:
        super().__init__(browser, step_timeout_ms)
        self.mute_before_join = mute_before_join

    @staticmethod
    def normalize_url(meeting_url: str) -> str:
        """
        Route a meetup-join link through the v2 web client as an anonymous guest.

        ``https://teams.microsoft.com/l/meetup-join/19%3ameeting_X%40thread.v2/0?context=...``
        becomes
        ``https://teams.microsoft.com/v2/?meetingjoin=true#/l/meetup-join/19:meeting_X@thread.v2/0?context=...&anon=true``.
        """
        parts = urlsplit(meeting_url.strip())
        if parts.scheme not in ("http", "https") or parts.hostname not in TEAMS_HOSTS:
            raise JoinError(JoinStage.MEETING_URL, f"not a Teams link: {meeting_url}")
        if not parts.path.strip("/"):
            raise JoinError(JoinStage.MEETING_URL, f"no meeting path in: {meeting_url}")

        query = f"{parts.query}&anon=true" if parts.query else "anon=true"
        return f"https://{parts.hostname}/v2/?meetingjoin=true#{unquote(parts.path)}?{query}"

    async def _prejoin(self, page: Page, display_name: str, step_timeout_ms: int) -> Target:
        """
        Flow:
        1. Stay on the web client if Teams offers the desktop app
        2. Enter the guest name
        3. Mute the microphone
        4. Click "Join now"
        """
        if await self._click_if_present(page, self.selectors.device_prompt, min(5_000, step_timeout_ms)):
            logger.info("Clicked 'Continue on this browser'")

        logger.info(f"Entering bot name: {display_name}")
        await self._fill(page, self.selectors.name_input, display_name, JoinStage.NAME_FIELD, step_timeout_ms)

        if self.mute_before_join:
            logger.info("Muting microphone before joining...")
            await self._click(page, self.selectors.mic_toggle, JoinStage.MIC_TOGGLE, step_timeout_ms)

        logger.info("Clicking join button...")
        await self._click(page, self.selectors.join_button, JoinStage.JOIN_BUTTON, step_timeout_ms)
        return page
