"""Async HTTP client for the control plane's bot endpoints.

Wraps the three calls a running bot makes: heartbeat, event report and
status update. Every failure surfaces as ReportingError; event and status
calls retry transient errors with tenacity, heartbeats do not (the next
beat is only a few seconds away).
"""

from __future__ import annotations

from typing import Any, Dict, Optional

import httpx
from tenacity import (
    AsyncRetrying,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from meeting_bot.config import get_logger, ControlPlaneSettings
from meeting_bot.core.exceptions import ReportingError
from meeting_bot.models import Event, LifecycleStatus

logger = get_logger("control_plane")


def _is_retryable(exc: BaseException) -> bool:
    return isinstance(exc, ReportingError) and bool(exc.details.get("retryable"))


class ControlPlaneClient:
    """Async client for the control plane REST API.

    Args:
        base_url: Control plane API root.
        api_key: Key sent in the X-API-Key header.
        timeout: Per-request timeout in seconds.
        max_attempts: Attempts for event and status calls.
        retry_wait: Base backoff between attempts in seconds.
        transport: Optional httpx transport (tests use MockTransport).
    """

    def __init__(
        self,
        base_url: str,
        api_key: str = "",
        timeout: float = 10.0,
        max_attempts: int = 3,
        retry_wait: float = 1.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        headers = {"Content-Type": "application/json"}
        if api_key:
            headers["X-API-Key"] = api_key
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            headers=headers,
            timeout=timeout,
            transport=transport,
        )
        self._max_attempts = max(1, max_attempts)
        self._retry_wait = retry_wait

    @classmethod
    def from_settings(cls, cp: ControlPlaneSettings) -> "ControlPlaneClient":
        return cls(
            base_url=cp.url,
            api_key=cp.api_key,
            timeout=cp.timeout_seconds,
            max_attempts=cp.max_attempts,
            retry_wait=cp.retry_wait_seconds,
        )

    async def heartbeat(self, bot_id: int) -> bool:
        """POST /bots/{id}/heartbeat. Raises ReportingError unless the call succeeds."""
        data = await self._send(
            "POST",
            f"/bots/{bot_id}/heartbeat",
            {"id": bot_id, "events": []},
        )
        if not data.get("success", False):
            raise ReportingError(f"Heartbeat rejected for bot {bot_id}", details=data)
        return True

    async def report_event(self, bot_id: int, event: Event) -> None:
        """POST /bots/{id}/events with one event log entry."""
        await self._with_retry(
            "POST",
            f"/bots/{bot_id}/events",
            {"id": bot_id, "event": event.to_payload()},
        )

    async def update_bot_status(
        self,
        bot_id: int,
        status: LifecycleStatus,
        recording: Optional[str] = None,
    ) -> None:
        """PATCH /bots/{id}/status; ``recording`` travels in the same request."""
        payload: Dict[str, Any] = {"id": bot_id, "status": LifecycleStatus(status).value}
        if recording is not None:
            payload["recording"] = recording
        await self._with_retry("PATCH", f"/bots/{bot_id}/status", payload)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _with_retry(self, method: str, url: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self._max_attempts),
            wait=wait_exponential(multiplier=self._retry_wait, min=0, max=10),
            retry=retry_if_exception(_is_retryable),
            reraise=True,
        ):
            with attempt:
                return await self._send(method, url, payload)
        return {}

    async def _send(self, method: str, url: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        try:
            response = await self._client.request(method, url, json=payload)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            status = exc.response.status_code
            raise ReportingError(
                f"{method} {url} returned {status}",
                details={"url": url, "status_code": status, "retryable": status >= 500},
            ) from exc
        except httpx.TransportError as exc:
            raise ReportingError(
                f"{method} {url} failed: {exc}",
                details={"url": url, "retryable": True},
            ) from exc

        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError:
            return {}
