"""Unit tests for the FFmpeg recording pipe.

FFmpeg is replaced by a fake asyncio subprocess. Covers:
- Sink path naming and FFmpeg argument construction
- Start refusals (closed session, ffmpeg missing, immediate exit, double start)
- Graceful stop, forced kill on overrun, idempotent stop
"""

from __future__ import annotations

from unittest.mock import AsyncMock, patch

import pytest

from meeting_bot.config import MeetingPlatform, RecordingSettings
from meeting_bot.core.exceptions import RecordingError, SessionLostError
from meeting_bot.meeting_handler import JoinedSession
from meeting_bot.recording import RecordingPipe, recording_path_for
from tests.conftest import FakeContext, FakePage, FakeProcess


@pytest.fixture
def session() -> JoinedSession:
    page = FakePage()
    return JoinedSession(
        platform=MeetingPlatform.MEET,
        context=FakeContext(page),
        page=page,
        target=page,
    )


@pytest.fixture
def sink(recording_settings):
    return recording_path_for(recording_settings.local_path, 42, MeetingPlatform.MEET)


# ── Paths and arguments ─────────────────────────────────────────────────────


class TestRecordingPaths:

    @pytest.mark.parametrize("container, name", [
        ("webm", "bot-7-zoom.webm"),
        ("mkv", "bot-7-zoom.mkv"),
        ("mp4", "bot-7-zoom.mp4"),
    ])
    def test_path_per_container(self, tmp_path, container, name):
        path = recording_path_for(tmp_path, 7, MeetingPlatform.ZOOM, container)
        assert path == tmp_path / name

    def test_webm_arguments(self, recording_settings, sink):
        args = RecordingPipe(recording_settings, sink)._build_ffmpeg_args()

        assert args[args.index("-f") + 1] == "x11grab"
        assert args[args.index("-i") + 1] == ":99"
        assert "pulse" in args
        assert args[args.index("-c:v") + 1] == "libvpx"
        assert args[args.index("-c:a") + 1] == "libopus"
        assert "-deadline" in args
        assert args[-3:] == ["-f", "webm", str(sink)]

    def test_mp4_is_fragmented(self, tmp_path):
        settings = RecordingSettings(container="mp4", video_codec="libx264", audio_codec="aac")
        path = recording_path_for(tmp_path, 1, MeetingPlatform.TEAMS, "mp4")

        args = RecordingPipe(settings, path)._build_ffmpeg_args()

        assert args[args.index("-movflags") + 1] == "frag_keyframe+empty_moov"
        assert "-deadline" not in args
        assert args[-3:] == ["-f", "mp4", str(path)]


# ── Start ───────────────────────────────────────────────────────────────────


class TestRecordingStart:

    @pytest.mark.asyncio
    async def test_start_returns_open_handle(self, recording_settings, sink, session):
        process = FakeProcess(output=sink)
        pipe = RecordingPipe(recording_settings, sink)

        with patch("asyncio.create_subprocess_exec", new=AsyncMock(return_value=process)) as spawn:
            handle = await pipe.start(session)

        assert spawn.await_args.args[0] == "ffmpeg"
        assert handle.path == sink
        assert handle.container == "webm"
        assert not handle.closed
        assert pipe.is_recording

    @pytest.mark.asyncio
    async def test_closed_session_refused(self, recording_settings, sink, session):
        await session.close()
        pipe = RecordingPipe(recording_settings, sink)

        with pytest.raises(SessionLostError, match="no longer active"):
            await pipe.start(session)

    @pytest.mark.asyncio
    async def test_ffmpeg_missing(self, recording_settings, sink, session):
        pipe = RecordingPipe(recording_settings, sink)

        with patch("asyncio.create_subprocess_exec", new=AsyncMock(side_effect=FileNotFoundError)):
            with pytest.raises(RecordingError, match="not found"):
                await pipe.start(session)

    @pytest.mark.asyncio
    async def test_ffmpeg_exiting_immediately(self, recording_settings, sink, session):
        process = FakeProcess(exit_immediately=1, stderr=b":99: cannot open display\n")
        pipe = RecordingPipe(recording_settings, sink)

        with patch("asyncio.create_subprocess_exec", new=AsyncMock(return_value=process)):
            with pytest.raises(RecordingError) as exc_info:
                await pipe.start(session)

        assert exc_info.value.details["stderr"] == ":99: cannot open display"
        assert not pipe.is_recording

    @pytest.mark.asyncio
    async def test_second_start_refused(self, recording_settings, sink, session):
        pipe = RecordingPipe(recording_settings, sink)

        with patch("asyncio.create_subprocess_exec", new=AsyncMock(return_value=FakeProcess(output=sink))):
            await pipe.start(session)
            with pytest.raises(RecordingError, match="already open"):
                await pipe.start(session)


# ── Stop ────────────────────────────────────────────────────────────────────


class TestRecordingStop:

    @pytest.mark.asyncio
    async def test_stop_quits_ffmpeg_and_measures_file(self, recording_settings, sink, session):
        process = FakeProcess(output=sink)
        pipe = RecordingPipe(recording_settings, sink)
        with patch("asyncio.create_subprocess_exec", new=AsyncMock(return_value=process)):
            handle = await pipe.start(session)

        await pipe.stop(handle)

        assert process.stdin.written == b"q"
        assert process.stdin.closed
        assert not process.killed
        assert handle.closed
        assert handle.size_bytes == sink.stat().st_size > 0
        assert not pipe.is_recording

    @pytest.mark.asyncio
    async def test_stop_twice_is_noop(self, recording_settings, sink, session):
        process = FakeProcess(output=sink)
        pipe = RecordingPipe(recording_settings, sink)
        with patch("asyncio.create_subprocess_exec", new=AsyncMock(return_value=process)):
            handle = await pipe.start(session)

        await pipe.stop(handle)
        await pipe.stop(handle)

        assert process.stdin.written == b"q"

    @pytest.mark.asyncio
    async def test_unresponsive_ffmpeg_is_killed(self, recording_settings, sink, session):
        process = FakeProcess(output=sink, ignore_quit=True)
        pipe = RecordingPipe(recording_settings, sink)
        with patch("asyncio.create_subprocess_exec", new=AsyncMock(return_value=process)):
            handle = await pipe.start(session)

        await pipe.stop(handle)

        assert process.killed
        assert handle.closed

    @pytest.mark.asyncio
    async def test_stop_after_ffmpeg_died(self, recording_settings, sink, session):
        process = FakeProcess(output=sink)
        pipe = RecordingPipe(recording_settings, sink)
        with patch("asyncio.create_subprocess_exec", new=AsyncMock(return_value=process)):
            handle = await pipe.start(session)
        process.finish(255)

        await pipe.stop(handle)

        assert process.stdin.written == b""
        assert handle.closed

    @pytest.mark.asyncio
    async def test_broken_pipe_does_not_raise(self, recording_settings, sink, session):
        process = FakeProcess(output=sink)
        pipe = RecordingPipe(recording_settings, sink)
        with patch("asyncio.create_subprocess_exec", new=AsyncMock(return_value=process)):
            handle = await pipe.start(session)

        def broken(_data):
            raise BrokenPipeError("pipe closed")

        process.stdin.write = broken
        await pipe.stop(handle)

        assert handle.closed
        assert handle.stopped_at is not None
