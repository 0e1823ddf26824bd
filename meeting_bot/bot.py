"""
Meeting Bot Orchestrator.
Drives one bot run: join, record, detect the end, tear down and report.
"""

from __future__ import annotations

import asyncio
from contextlib import suppress
from enum import Enum
from pathlib import Path
from typing import Dict, FrozenSet, Optional

from playwright.async_api import Error as PlaywrightError

from meeting_bot.config import get_logger, Settings
from meeting_bot.core.exceptions import (
    BotAlreadyFinishedError,
    InvalidTransitionError,
    JoinError,
    RecordingError,
    SessionLostError,
    StorageError,
)
from meeting_bot.meeting_handler import (
    EndDetectionPolicy,
    EndReason,
    JoinedSession,
    JoinStage,
    MeetingBrowser,
    MeetingEndDetector,
    MeetingPlatformHandler,
    get_platform_handler,
)
from meeting_bot.models import (
    BotIdentity,
    EventCode,
    EventData,
    LifecycleStatus,
    RecordingHandle,
)
from meeting_bot.monitoring import ControlPlaneClient, EventReporter, HeartbeatReporter
from meeting_bot.recording import RecordingPipe, recording_path_for
from meeting_bot.storage import S3Service

logger = get_logger("bot")


class BotState(str, Enum):
    """Orchestrator states."""
    STARTING = "starting"
    JOINING = "joining"
    RECORDING = "recording"
    ENDING = "ending"
    DONE = "done"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (BotState.DONE, BotState.FAILED)


TRANSITIONS: Dict[BotState, FrozenSet[BotState]] = {
    BotState.STARTING: frozenset({BotState.JOINING, BotState.FAILED}),
    BotState.JOINING: frozenset({BotState.RECORDING, BotState.FAILED}),
    BotState.RECORDING: frozenset({BotState.ENDING, BotState.FAILED}),
    BotState.ENDING: frozenset({BotState.DONE, BotState.FAILED}),
    BotState.DONE: frozenset(),
    BotState.FAILED: frozenset(),
}


class MeetingBot:
    """
    Lifecycle orchestrator for a single bot run.

    Owns the joined session and the recording handle. The heartbeat runs
    as an independent task for the whole run; the end detector runs as a
    task once the bot is in the call and triggers teardown when the
    meeting is over.
    """

    def __init__(
        self,
        identity: BotIdentity,
        *,
        browser: MeetingBrowser,
        handler: MeetingPlatformHandler,
        recorder: RecordingPipe,
        reporter: EventReporter,
        heartbeat: HeartbeatReporter,
        detection_policy: EndDetectionPolicy,
        display_name: str = "Meeting Bot",
        join_timeout_ms: int = 600_000,
        uploader: Optional[S3Service] = None,
        client: Optional[ControlPlaneClient] = None,
    ) -> None:
        self.identity = identity
        self.browser = browser
        self.handler = handler
        self.recorder = recorder
        self.reporter = reporter
        self.heartbeat = heartbeat
        self.detection_policy = detection_policy
        self.display_name = display_name
        self.join_timeout_ms = join_timeout_ms
        self.uploader = uploader
        self._client = client

        self.state = BotState.STARTING
        self.session: Optional[JoinedSession] = None
        self.recording: Optional[RecordingHandle] = None
        self.end_reason: Optional[EndReason] = None

        self._running = False
        self._finished = False
        self._torn_down = False
        self._teardown_lock = asyncio.Lock()
        self._shutdown_event = asyncio.Event()
        self._heartbeat_stop = asyncio.Event()

    @classmethod
    def from_settings(cls, identity: BotIdentity, settings: Settings) -> "MeetingBot":
        """Wire a bot from configuration."""
        browser = MeetingBrowser(settings.bot)
        client = ControlPlaneClient.from_settings(settings.control_plane)
        sink_path = recording_path_for(
            settings.recordings_dir,
            identity.id,
            identity.platform,
            settings.recording.container,
        )
        uploader = S3Service(settings.s3) if settings.recording.upload_to_s3 else None
        return cls(
            identity,
            browser=browser,
            handler=get_platform_handler(identity.platform, browser, settings.bot),
            recorder=RecordingPipe(settings.recording, sink_path),
            reporter=EventReporter(client),
            heartbeat=HeartbeatReporter(client, settings.control_plane.heartbeat_interval_seconds),
            detection_policy=EndDetectionPolicy.for_platform(
                identity.platform,
                poll_interval_seconds=settings.detector.poll_interval_seconds,
                max_duration_seconds=settings.detector.max_duration_seconds,
            ),
            display_name=settings.bot.display_name,
            join_timeout_ms=settings.bot.resolved_join_timeout_ms(identity.platform),
            uploader=uploader,
            client=client,
        )

    @property
    def status(self) -> Optional[LifecycleStatus]:
        """Terminal lifecycle status, once the run is over."""
        if self.state is BotState.DONE:
            return LifecycleStatus.DONE
        if self.state is BotState.FAILED:
            return LifecycleStatus.FAILED
        return None

    def request_shutdown(self) -> None:
        """Ask a running bot to leave. The recording is kept and reported."""
        if not self._shutdown_event.is_set():
            logger.info("Shutdown requested")
            self._shutdown_event.set()

    async def run(self) -> LifecycleStatus:
        """
        Run the bot to completion.

        Returns:
            The terminal lifecycle status (DONE or FAILED)

        Raises:
            BotAlreadyFinishedError: The bot already ran to completion
            InvalidTransitionError: The bot is already running
        """
        if self.state.is_terminal:
            raise BotAlreadyFinishedError(
                f"Bot {self.identity.id} already finished",
                details={"state": self.state.value},
            )
        if self._running:
            raise InvalidTransitionError(f"Bot {self.identity.id} is already running")
        self._running = True

        logger.info(
            f"Starting bot {self.identity.id} for {self.identity.platform.value} "
            f"meeting {self.identity.meeting_url}"
        )
        heartbeat_task = asyncio.create_task(
            self.heartbeat.run(self.identity.id, self._heartbeat_stop)
        )
        try:
            await self._run_pipeline()
        except asyncio.CancelledError:
            logger.warning(f"Bot {self.identity.id} cancelled")
            await asyncio.shield(self._teardown())
            await asyncio.shield(self._fail("cancelled"))
            raise
        except Exception as e:
            logger.exception(f"Unexpected error in bot {self.identity.id}: {e}")
            await self._teardown()
            await self._fail(f"unexpected error: {e}")
        finally:
            self._heartbeat_stop.set()
            await heartbeat_task
            await self.browser.stop()
            if self._client is not None:
                await self._client.aclose()
            self._running = False

        logger.info(f"Bot {self.identity.id} finished with status {self.status.value}")
        return self.status

    async def _run_pipeline(self) -> None:
        self._transition(BotState.JOINING)
        await self.reporter.report_event(self.identity.id, EventCode.JOINING)

        try:
            session = await self._join()
        except JoinError as exc:
            await self._fail(str(exc), sub_code=exc.stage)
            return
        if session is None:
            await self._fail("shutdown requested before the bot was admitted")
            return
        self.session = session

        self._transition(BotState.RECORDING)
        try:
            self.recording = await self.recorder.start(session)
        except SessionLostError as exc:
            await self._teardown()
            await self._fail(f"session lost: {exc.message}")
            return
        except RecordingError as exc:
            await self._teardown()
            await self._fail(f"recording: {exc.message}")
            return
        await self.reporter.report_event(self.identity.id, EventCode.RECORDING_STARTED)
        await self.reporter.report_event(self.identity.id, EventCode.IN_CALL)

        detector = MeetingEndDetector(self.detection_policy, on_end=self._on_meeting_end)
        reason = await detector.await_end(session, self._shutdown_event)
        self.end_reason = reason

        self._transition(BotState.ENDING)
        await self._teardown(reason)
        await self.reporter.report_event(
            self.identity.id,
            EventCode.RECORDING_STOPPED,
            data=EventData(description=reason.value),
        )

        if reason is EndReason.SESSION_LOST:
            lost = SessionLostError("browser page closed or detached during the call")
            await self._fail(f"session lost: {lost.message}")
            return

        recording = await self._finalize_recording()
        if recording is None:
            await self._fail("recording missing or empty")
            return

        await self.reporter.report_event(
            self.identity.id,
            EventCode.CALL_ENDED,
            data=EventData(description=reason.value),
        )
        await self._finish(BotState.DONE, EventCode.DONE, recording=recording)

    async def _join(self) -> Optional[JoinedSession]:
        """Join the meeting, giving up early on shutdown."""
        try:
            await self.browser.start()
        except PlaywrightError as exc:
            raise JoinError(JoinStage.BROWSER, f"could not launch browser: {exc}") from exc

        join_task = asyncio.create_task(
            self.handler.join(self.identity.meeting_url, self.display_name, self.join_timeout_ms)
        )
        stop_task = asyncio.create_task(self._shutdown_event.wait())
        try:
            await asyncio.wait({join_task, stop_task}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            stop_task.cancel()

        if join_task.done():
            return join_task.result()

        join_task.cancel()
        with suppress(asyncio.CancelledError, JoinError):
            await join_task
        return None

    async def _on_meeting_end(self, reason: EndReason) -> None:
        logger.info(f"Meeting over ({reason.value}), tearing down")
        await self._teardown(reason)

    async def _teardown(self, reason: Optional[EndReason] = None) -> None:
        """Stop the recording, then close the session. Runs once."""
        async with self._teardown_lock:
            if self._torn_down:
                return
            self._torn_down = True
            if self.recording is not None:
                await self.recorder.stop(self.recording)
            if self.session is not None:
                await self.session.close()
            logger.debug(f"Teardown complete ({reason.value if reason else 'no reason'})")

    async def _finalize_recording(self) -> Optional[str]:
        """Reference to report with DONE: S3 URI when uploaded, else the local path."""
        handle = self.recording
        if handle is None or handle.size_bytes <= 0:
            logger.error("No usable recording was produced")
            return None

        reference = str(handle.path)
        if self.uploader is not None and self.uploader.is_enabled():
            try:
                uploaded = await asyncio.to_thread(
                    self.uploader.upload_recording, Path(handle.path), self.identity.id
                )
            except StorageError as e:
                logger.warning(f"{e.message}; reporting local recording instead")
            else:
                if uploaded:
                    reference = uploaded
        return reference

    async def _fail(self, cause: str, sub_code: Optional[str] = None) -> None:
        logger.error(f"Bot {self.identity.id} failed: {cause}")
        await self._finish(
            BotState.FAILED,
            EventCode.FAILED,
            data=EventData(description=cause, sub_code=sub_code),
        )

    async def _finish(
        self,
        state: BotState,
        event_type: EventCode,
        data: Optional[EventData] = None,
        recording: Optional[str] = None,
    ) -> None:
        """Enter a terminal state and report it. Only the first call counts."""
        if self._finished:
            logger.warning(f"Ignoring {event_type.value}: bot already {self.state.value}")
            return
        self._finished = True
        self._transition(state)
        await self.reporter.report_event(
            self.identity.id, event_type, data=data, recording=recording
        )

    def _transition(self, new: BotState) -> None:
        if new not in TRANSITIONS[self.state]:
            raise InvalidTransitionError(
                f"Illegal transition {self.state.value} -> {new.value}",
                details={"from": self.state.value, "to": new.value},
            )
        logger.debug(f"Bot {self.identity.id}: {self.state.value} -> {new.value}")
        self.state = new
