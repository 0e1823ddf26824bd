"""
Playwright browser launcher for the bot.

Launches one Chromium instance per bot process and hands out isolated
browser contexts with media permissions pre-granted and a realistic
identity, so each join attempt starts from a clean slate and can be
revoked as a unit.
"""

from __future__ import annotations

from typing import Optional

from playwright.async_api import (
    async_playwright,
    Browser,
    BrowserContext,
    Playwright,
)

from meeting_bot.config import get_logger, BotSettings


logger = get_logger("browser")


CHROMIUM_ARGS = [
    "--enable-usermedia-screen-capturing",
    "--allow-http-screen-capture",
    "--auto-accept-this-tab-capture",
    "--use-fake-ui-for-media-stream",  # Auto-accept permission prompts
    "--disable-blink-features=AutomationControlled",  # Hide navigator.webdriver
    "--disable-features=IsolateOrigins,site-per-process",
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-infobars",
    "--start-maximized",
]


STEALTH_INIT_SCRIPT = """
    Object.defineProperty(navigator, 'webdriver', {get: () => undefined});

    const originalQuery = window.navigator.permissions.query;
    window.navigator.permissions.query = (parameters) => (
        parameters.name === 'notifications' ?
        Promise.resolve({ state: Notification.permission }) :
        originalQuery(parameters)
    );

    // Automation builds ship without plugins
    Object.defineProperty(navigator, 'plugins', {
        get: () => [1, 2, 3, 4, 5],
    });

    if (!window.chrome) {
        window.chrome = { runtime: {} };
    }
"""


class MeetingBrowser:
    """
    Owns the Playwright driver and the Chromium process.

    Usage pattern:
        browser = MeetingBrowser(settings.bot)
        await browser.start()
        context = await browser.new_context()
        ...
        await browser.stop()
    """

    def __init__(self, bot_settings: BotSettings) -> None:
        self._settings = bot_settings
        self._playwright: Optional[Playwright] = None
        self._browser: Optional[Browser] = None

    @property
    def is_running(self) -> bool:
        """Return True if the browser is currently available."""
        return self._browser is not None

    async def start(self) -> None:
        """Start Playwright and launch a Chromium browser instance."""
        if self._browser is not None:
            return

        logger.info(f"Launching Chromium (headless={self._settings.headless})...")
        self._playwright = await async_playwright().start()
        self._browser = await self._playwright.chromium.launch(
            headless=self._settings.headless,
            ignore_default_args=["--enable-automation"],
            args=CHROMIUM_ARGS,
        )
        logger.info("Chromium launched.")

    async def new_context(self) -> BrowserContext:
        """Create a new isolated browser context with stealth settings."""
        if self._browser is None:
            await self.start()

        context = await self._browser.new_context(
            user_agent=self._settings.user_agent,
            viewport={
                "width": self._settings.viewport_width,
                "height": self._settings.viewport_height,
            },
            device_scale_factor=1,
            permissions=["microphone", "camera"],
            ignore_https_errors=True,
        )
        await context.add_init_script(STEALTH_INIT_SCRIPT)
        return context

    async def stop(self) -> None:
        """Close the browser and stop Playwright. Safe to call more than once."""
        if self._browser is None and self._playwright is None:
            return

        logger.info("Closing browser...")
        try:
            if self._browser is not None:
                await self._browser.close()
        except Exception as e:
            logger.warning(f"Error closing browser: {e}")
        finally:
            self._browser = None

        try:
            if self._playwright is not None:
                await self._playwright.stop()
        except Exception as e:
            logger.warning(f"Error stopping Playwright: {e}")
        finally:
            self._playwright = None
