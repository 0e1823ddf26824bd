"""
Meeting Bot entry point.

Usage:
    meeting-bot --bot-id 42 --platform meet --url "https://meet.google.com/abc-defg-hij"

Every flag falls back to its environment variable (BOT_ID, BOT_PLATFORM,
BOT_MEETING_URL, ...), see ``meeting_bot.config.settings``.
"""

import argparse
import asyncio
import signal
import sys
from typing import List, Optional

from meeting_bot import __version__
from meeting_bot.bot import MeetingBot
from meeting_bot.config import settings, get_logger, setup_logging, MeetingPlatform, Settings
from meeting_bot.core.exceptions import ConfigurationError
from meeting_bot.models import BotIdentity, LifecycleStatus

main_logger = get_logger("main")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="meeting-bot",
        description="Join a Meet, Teams or Zoom meeting, record it and report to the control plane",
    )
    parser.add_argument("--bot-id", type=int, help="Control-plane bot id")
    parser.add_argument(
        "--platform",
        choices=[p.value for p in MeetingPlatform],
        help="Meeting platform",
    )
    parser.add_argument("--url", dest="meeting_url", help="Meeting URL to join")
    parser.add_argument("--name", dest="display_name", help="Name shown to participants")
    parser.add_argument(
        "--join-timeout-ms",
        type=int,
        help="How long to wait to be admitted (per-platform default when unset)",
    )
    parser.add_argument(
        "--headless",
        action="store_true",
        default=None,
        help="Run Chromium headless",
    )
    parser.add_argument("--control-plane-url", help="Control plane API root")
    parser.add_argument("--output", dest="output_dir", help="Recordings directory")
    parser.add_argument(
        "--log-level",
        type=str.upper,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Logging level",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def apply_overrides(args: argparse.Namespace, config: Settings) -> Settings:
    """Copy the flags that were given onto the settings."""
    if args.bot_id is not None:
        config.bot.id = args.bot_id
    if args.platform is not None:
        config.bot.platform = MeetingPlatform(args.platform)
    if args.meeting_url:
        config.bot.meeting_url = args.meeting_url
    if args.display_name:
        config.bot.display_name = args.display_name
    if args.join_timeout_ms is not None:
        config.bot.join_timeout_ms = args.join_timeout_ms
    if args.headless is not None:
        config.bot.headless = args.headless
    if args.control_plane_url:
        config.control_plane.url = args.control_plane_url
    if args.output_dir:
        config.recording.local_path = args.output_dir
    if args.log_level:
        config.log_level = args.log_level
    return config


def install_signal_handlers(bot: MeetingBot) -> None:
    """Route SIGINT and SIGTERM to a graceful shutdown of the bot."""
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, bot.request_shutdown)
        except NotImplementedError:
            # Windows event loops have no add_signal_handler
            signal.signal(sig, lambda s, f: bot.request_shutdown())


async def main(argv: Optional[List[str]] = None) -> LifecycleStatus:
    """Parse arguments, run one bot and return its terminal status."""
    args = build_parser().parse_args(argv)
    config = apply_overrides(args, settings)
    # Picks up --log-level and the bot id used in the log file name
    setup_logging(log_level=config.log_level)

    identity = BotIdentity.from_values(
        config.bot.id,
        config.bot.platform,
        config.bot.meeting_url,
    )

    bot = MeetingBot.from_settings(identity, config)
    install_signal_handlers(bot)
    return await bot.run()


def run() -> None:
    """Console script entry point."""
    try:
        status = asyncio.run(main())
    except ConfigurationError as e:
        main_logger.error(f"Configuration error: {e.message}")
        sys.exit(2)
    except KeyboardInterrupt:
        main_logger.info("Interrupted")
        sys.exit(130)

    sys.exit(0 if status is LifecycleStatus.DONE else 1)


if __name__ == "__main__":
    run()
