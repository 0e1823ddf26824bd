"""Shared fixtures and Playwright/ffmpeg test doubles.

The fakes model just enough of Playwright's async API for the join flows
and the end detector:
- ``wait_for_selector`` resolves when the element is in the wanted state
  and raises ``playwright.async_api.TimeoutError`` otherwise
- elements can be scheduled to appear or disappear after N waits
- pages close, frames detach, contexts close their pages
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Dict, List, Optional, Set

import pytest
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from meeting_bot.config import BotSettings, MeetingPlatform, RecordingSettings
from meeting_bot.models import RecordingHandle


# ── Playwright doubles ──────────────────────────────────────────────────────


class FakeElement:
    """Element handle that records clicks and fills on its owner."""

    def __init__(self, owner: "FakeTarget", selector: str, frame: Optional["FakeFrame"] = None):
        self.owner = owner
        self.selector = selector
        self.frame = frame

    async def click(self) -> None:
        self.owner.clicked.append(self.selector)

    async def fill(self, value: str) -> None:
        self.owner.filled[self.selector] = value

    async def content_frame(self):
        return self.frame


class FakeTarget:
    """Common selector behaviour of pages and frames."""

    def __init__(
        self,
        present: Optional[Set[str]] = None,
        appear_after: Optional[Dict[str, int]] = None,
        disappear_after: Optional[Dict[str, int]] = None,
        timeline: Optional[List[str]] = None,
    ):
        self.present: Set[str] = set(present or ())
        self.appear_after: Dict[str, int] = dict(appear_after or {})
        self.disappear_after: Dict[str, int] = dict(disappear_after or {})
        self.frames: Dict[str, "FakeFrame"] = {}
        self.waits: Dict[str, int] = {}
        self.clicked: List[str] = []
        self.filled: Dict[str, str] = {}
        self.timeline = timeline if timeline is not None else []
        # Upper bound on how long a wait for a missing element really sleeps
        self.max_block = 0.005

    def is_present(self, selector: str) -> bool:
        count = self.waits.get(selector, 0)
        if selector in self.appear_after:
            return count > self.appear_after[selector]
        if selector in self.disappear_after:
            return count <= self.disappear_after[selector]
        return selector in self.present

    async def wait_for_selector(self, selector: str, state: str = "visible", timeout: float = 30_000):
        self.waits[selector] = self.waits.get(selector, 0) + 1
        present = self.is_present(selector)
        wants_present = state in ("visible", "attached")
        if present == wants_present:
            await asyncio.sleep(0)
            if wants_present:
                return FakeElement(self, selector, self.frames.get(selector))
            return None
        await asyncio.sleep(min(timeout / 1000, self.max_block))
        raise PlaywrightTimeoutError(f"Timeout {timeout}ms exceeded waiting for {selector}")


class FakeFrame(FakeTarget):
    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self.detached = False

    def is_detached(self) -> bool:
        return self.detached


class FakePage(FakeTarget):
    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self.closed = False
        self.visited: List[str] = []

    async def goto(self, url: str, wait_until: str = "load", timeout: float = 30_000) -> None:
        self.visited.append(url)
        self.timeline.append("navigate")

    def is_closed(self) -> bool:
        return self.closed


class FakeContext:
    def __init__(self, page: FakePage):
        self.page = page
        self.closed = False

    async def new_page(self) -> FakePage:
        return self.page

    async def close(self) -> None:
        self.closed = True
        self.page.closed = True
        self.page.timeline.append("session:close")


class FakeBrowser:
    """Stands in for MeetingBrowser; hands out one fresh context per page given."""

    def __init__(self, *pages: FakePage):
        self._pages = list(pages)
        self.contexts: List[FakeContext] = []
        self.started = 0
        self.stopped = 0

    async def start(self) -> None:
        self.started += 1

    async def new_context(self) -> FakeContext:
        page = self._pages.pop(0) if len(self._pages) > 1 else self._pages[0]
        context = FakeContext(page)
        self.contexts.append(context)
        return context

    async def stop(self) -> None:
        self.stopped += 1


# ── Recording doubles ───────────────────────────────────────────────────────


class FakeRecorder:
    """Recording pipe double that writes ``payload`` to its sink on stop."""

    def __init__(self, sink_path: Path, payload: bytes = b"\x1a\x45\xdf\xa3 webm", timeline=None):
        self.sink_path = Path(sink_path)
        self.payload = payload
        self.timeline = timeline if timeline is not None else []
        self.started_with = None
        self.start_error: Optional[Exception] = None
        self.stop_calls = 0
        self.started = asyncio.Event()

    async def start(self, session) -> RecordingHandle:
        if self.start_error is not None:
            raise self.start_error
        assert session.is_alive
        self.started_with = session
        self.timeline.append("recording:start")
        self.started.set()
        return RecordingHandle(
            path=self.sink_path,
            container="webm",
            video_codec="libvpx",
            audio_codec="libopus",
            started_at=0.0,
        )

    async def stop(self, handle: RecordingHandle) -> None:
        self.stop_calls += 1
        if handle.closed:
            return
        handle.closed = True
        self.timeline.append("recording:stop")
        self.sink_path.parent.mkdir(parents=True, exist_ok=True)
        self.sink_path.write_bytes(self.payload)
        handle.stopped_at = 1.0
        handle.size_bytes = len(self.payload)


class FakeStdin:
    def __init__(self, process: "FakeProcess"):
        self.process = process
        self.written = b""
        self.closed = False

    def write(self, data: bytes) -> None:
        self.written += data
        if b"q" in data and not self.process.ignore_quit:
            self.process.finish(0)

    async def drain(self) -> None:
        return None

    def close(self) -> None:
        self.closed = True


class FakeStderr:
    def __init__(self, data: bytes = b""):
        self.data = data

    async def read(self) -> bytes:
        return self.data


class FakeProcess:
    """asyncio subprocess double for ffmpeg."""

    def __init__(
        self,
        exit_immediately: Optional[int] = None,
        stderr: bytes = b"",
        ignore_quit: bool = False,
        output: Optional[Path] = None,
    ):
        self.returncode: Optional[int] = None
        self.stdin = FakeStdin(self)
        self.stderr = FakeStderr(stderr)
        self.ignore_quit = ignore_quit
        self.output = output
        self.killed = False
        self._exited = asyncio.Event()
        if exit_immediately is not None:
            self.finish(exit_immediately)

    def finish(self, code: int) -> None:
        if self.output is not None:
            self.output.parent.mkdir(parents=True, exist_ok=True)
            self.output.write_bytes(b"\x1a\x45\xdf\xa3 recorded")
        self.returncode = code
        self._exited.set()

    def kill(self) -> None:
        self.killed = True
        self.finish(-9)

    async def wait(self) -> int:
        await self._exited.wait()
        return self.returncode


# ── Fixtures ────────────────────────────────────────────────────────────────


@pytest.fixture
def timeline() -> List[str]:
    return []


@pytest.fixture
def bot_settings() -> BotSettings:
    return BotSettings(
        id=42,
        platform=MeetingPlatform.MEET,
        meeting_url="https://meet.google.com/abc-defg-hij",
        step_timeout_ms=1_000,
        meet_settle_ms=0,
    )


@pytest.fixture
def recording_settings(tmp_path) -> RecordingSettings:
    return RecordingSettings(
        local_path=str(tmp_path / "recordings"),
        startup_grace_seconds=0.01,
        stop_timeout_seconds=0.1,
    )
