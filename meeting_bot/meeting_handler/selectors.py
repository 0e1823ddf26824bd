"""
DOM selectors for the supported meeting platforms.

This module centralizes the UI selectors each platform handler and the
meeting-end detector rely on. Meeting UIs are updated frequently by their
vendors, so selectors may need periodic maintenance.

Every value is a single Playwright CSS selector; alternatives are joined
with commas so one wait covers all known variants.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from meeting_bot.config import MeetingPlatform


def any_of(*selectors: str) -> str:
    """Combine alternative CSS selectors into one selector list."""
    return ", ".join(selectors)


@dataclass(frozen=True)
class PlatformSelectors:
    """Selectors for one platform's join flow and in-call state."""
    name_input: str
    join_button: str
    leave_control: str
    # Element state that counts as "joined" for the leave control
    leave_state: str = "visible"
    mic_toggle: Optional[str] = None
    device_prompt: Optional[str] = None
    web_client_frame: Optional[str] = None
    join_audio_button: Optional[str] = None
    meeting_ended: Optional[str] = None


MEET_SELECTORS = PlatformSelectors(
    name_input=any_of(
        'input[type="text"][aria-label="Your name"]',
        'input[placeholder="Your name"]',
        'input[aria-label="Enter your name"]',
    ),
    join_button=any_of(
        'button:has-text("Ask to join")',
        'button:has-text("Join now")',
    ),
    leave_control='button[aria-label*="Leave call"]',
    device_prompt='button:has-text("Continue without microphone and camera")',
    meeting_ended=any_of(
        'div:has-text("You\'ve been removed from the meeting")',
        'div:has-text("The call ended")',
    ),
)


TEAMS_SELECTORS = PlatformSelectors(
    device_prompt=any_of(
        '[data-tid="joinOnWeb"]',
        'button:has-text("Continue on this browser")',
    ),
    name_input=any_of(
        '[data-tid="prejoin-display-name-input"]',
        'input[placeholder="Type your name"]',
        '#prejoin-input-name',
    ),
    mic_toggle='[data-tid="toggle-mute"]',
    join_button=any_of(
        '[data-tid="prejoin-join-button"]',
        'button:has-text("Join now")',
    ),
    leave_control=any_of(
        'button[aria-label="Leave (Ctrl+Shift+H)"]',
        'button[data-tid="hangup-main-btn"]',
        '#hangup-button',
    ),
)


ZOOM_SELECTORS = PlatformSelectors(
    web_client_frame=".pwa-webclient__iframe",
    name_input="#input-for-name",
    join_button="button.zm-btn.preview-join-button",
    join_audio_button="button.join-audio-by-voip__join-btn",
    # Zoom auto-hides its footer, so attachment is enough
    leave_control=any_of(
        "button.footer__leave-btn",
        'button[aria-label="Leave"]',
    ),
    leave_state="attached",
    meeting_ended="button.zm-btn.zm-btn-legacy.zm-btn--primary.zm-btn__outline--blue",
)


PLATFORM_SELECTORS = {
    MeetingPlatform.MEET: MEET_SELECTORS,
    MeetingPlatform.TEAMS: TEAMS_SELECTORS,
    MeetingPlatform.ZOOM: ZOOM_SELECTORS,
}


def get_selectors_for(platform: MeetingPlatform) -> PlatformSelectors:
    """Get the selector set for a platform."""
    return PLATFORM_SELECTORS[MeetingPlatform(platform)]
