"""
Zoom Meeting Handler

Handles the Zoom web client join flow. The web client UI is rendered
inside a nested iframe, so every step after navigation runs against
that frame rather than the page.
"""

from __future__ import annotations

import asyncio
import re
from urllib.parse import parse_qs, quote, urlsplit

from playwright.async_api import Error as PlaywrightError, Page

from meeting_bot.config import get_logger, MeetingPlatform
from meeting_bot.core.exceptions import JoinError
from .base import JoinStage, MeetingPlatformHandler, Target
from .browser import MeetingBrowser
from .selectors import ZOOM_SELECTORS


logger = get_logger("zoom_handler")

_MEETING_ID = re.compile(r"^\d{9,12}$")


class ZoomMeetingHandler(MeetingPlatformHandler):
    """Handler for Zoom meetings."""

    platform = MeetingPlatform.ZOOM
    selectors = ZOOM_SELECTORS

    def __init__(
        self,
        browser: MeetingBrowser,
        step_timeout_ms: int = 30_000,
        join_audio_timeout_ms: int = 60_000,
        audio_settle_ms: int = 1_000,
    ) -> None:
        super().__init__(browser, step_timeout_ms)
        self.join_audio_timeout_ms = join_audio_timeout_ms
        self.audio_settle_ms = audio_settle_ms

    @staticmethod
    def normalize_url(meeting_url: str) -> str:
        """
        Rewrite a meeting link into the web client join URL.

        ``https://us05web.zoom.us/j/87836813561?pwd=abc.1`` becomes
        ``https://app.zoom.us/wc/87836813561/join?fromPWA=1&pwd=abc.1``.
        """
        parts = urlsplit(meeting_url.strip())
        host = parts.hostname or ""
        if parts.scheme not in ("http", "https") or not (host == "zoom.us" or host.endswith(".zoom.us")):
            raise JoinError(JoinStage.MEETING_URL, f"not a Zoom link: {meeting_url}")

        segments = parts.path.split("/")
        meeting_id = segments[2] if len(segments) > 2 else ""
        if not _MEETING_ID.match(meeting_id):
            raise JoinError(JoinStage.MEETING_URL, f"no meeting id in: {meeting_url}")

        join_url = f"https://app.zoom.us/wc/{meeting_id}/join?fromPWA=1"
        pwd = parse_qs(parts.query).get("pwd")
        if pwd:
            join_url += f"&pwd={quote(pwd[0], safe='.')}"
        return join_url

    async def _prejoin(self, page: Page, display_name: str, step_timeout_ms: int) -> Target:
        """
        Flow:
        1. Wait for the web client iframe and switch into it
        2. Enter the guest name
        3. Click the preview "Join" button
        4. Join audio by computer once offered
        """
        logger.info("Waiting for the Zoom web client frame...")
        iframe = await self._wait_for(page, self.selectors.web_client_frame, JoinStage.FRAME, step_timeout_ms)
        try:
            frame = await iframe.content_frame()
        except PlaywrightError as exc:
            raise JoinError(JoinStage.FRAME, f"web client frame unavailable: {exc}") from exc
        if frame is None:
            raise JoinError(JoinStage.FRAME, "web client iframe has no content frame")

        logger.info(f"Entering bot name: {display_name}")
        await self._fill(frame, self.selectors.name_input, display_name, JoinStage.NAME_FIELD, step_timeout_ms)

        logger.info("Clicking join button...")
        await self._click(frame, self.selectors.join_button, JoinStage.JOIN_BUTTON, step_timeout_ms)

        logger.info("Waiting for the join audio button...")
        await self._wait_for(
            frame,
            self.selectors.join_audio_button,
            JoinStage.JOIN_AUDIO,
            self.join_audio_timeout_ms,
        )
        if self.audio_settle_ms:
            await asyncio.sleep(self.audio_settle_ms / 1000)
        await self._click(frame, self.selectors.join_audio_button, JoinStage.JOIN_AUDIO, step_timeout_ms)
        return frame
