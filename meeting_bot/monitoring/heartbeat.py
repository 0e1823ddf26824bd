"""
Heartbeat reporter.

Signals liveness to the control plane on a fixed period for as long as the
bot process runs. Liveness is independent of lifecycle status: this module
never reads or writes it.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Optional, Protocol

from meeting_bot.config import get_logger

logger = get_logger("heartbeat")


class HeartbeatClient(Protocol):
    async def heartbeat(self, bot_id: int) -> bool: ...


class HeartbeatReporter:
    """Best-effort periodic liveness signal."""

    def __init__(self, client: HeartbeatClient, interval_seconds: float = 5.0) -> None:
        self._client = client
        self.interval_seconds = interval_seconds
        self.sent = 0
        self.failed = 0
        self.last_sent_at: Optional[datetime] = None

    async def run(self, bot_id: int, cancel_event: asyncio.Event) -> None:
        """
        Send heartbeats until ``cancel_event`` is set.

        A failed send is logged and the loop carries on. Cancellation is
        honoured within one interval; a call already in flight is allowed
        to finish.
        """
        logger.info(f"Heartbeat started for bot {bot_id} (every {self.interval_seconds}s)")
        while not cancel_event.is_set():
            try:
                await self._client.heartbeat(bot_id)
                self.sent += 1
                self.last_sent_at = datetime.now(timezone.utc)
                logger.debug(f"Heartbeat sent for bot {bot_id}")
            except asyncio.CancelledError:
                raise
            except Exception as e:
                self.failed += 1
                logger.warning(f"Failed to send heartbeat: {e}")

            try:
                await asyncio.wait_for(cancel_event.wait(), timeout=self.interval_seconds)
            except asyncio.TimeoutError:
                continue

        logger.info(f"Heartbeat stopped for bot {bot_id} ({self.sent} sent, {self.failed} failed)")
