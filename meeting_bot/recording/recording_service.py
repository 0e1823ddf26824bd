"""
Recording pipe for the Meeting Bot.

Captures what the bot's browser shows and plays (X display + PulseAudio
monitor) with FFmpeg and writes it progressively to a streamable
container. One pipe serves one joined session; its sink path is fixed at
launch time.
"""

from __future__ import annotations

import asyncio
import time
from pathlib import Path
from typing import List, Optional

from meeting_bot.config import get_logger, MeetingPlatform, RecordingSettings
from meeting_bot.core.exceptions import RecordingError, SessionLostError
from meeting_bot.meeting_handler.base import JoinedSession
from meeting_bot.models import RecordingHandle

logger = get_logger("recording")


# container -> (ffmpeg muxer, file extension)
CONTAINERS = {
    "webm": ("webm", ".webm"),
    "mkv": ("matroska", ".mkv"),
    "mp4": ("mp4", ".mp4"),
}


def recording_path_for(
    recordings_dir: str | Path,
    bot_id: int,
    platform: MeetingPlatform,
    container: str = "webm",
) -> Path:
    """Deterministic output path for one bot run."""
    _, extension = CONTAINERS[container]
    return Path(recordings_dir) / f"bot-{bot_id}-{MeetingPlatform(platform).value}{extension}"


class RecordingPipe:
    """
    Records one joined session to a file using FFmpeg.

    Usage pattern:
        pipe = RecordingPipe(settings.recording, sink_path)
        handle = await pipe.start(session)
        ...
        await pipe.stop(handle)
    """

    def __init__(self, recording_settings: RecordingSettings, sink_path: Path) -> None:
        """
        Initialize the recording pipe.

        Args:
            recording_settings: Capture and encoding configuration
            sink_path: Output file, chosen at bot launch
        """
        self._settings = recording_settings
        self.sink_path = Path(sink_path)
        self._handle: Optional[RecordingHandle] = None

    @property
    def is_recording(self) -> bool:
        return self._handle is not None and not self._handle.closed

    async def start(self, session: JoinedSession) -> RecordingHandle:
        """
        Start capturing the joined session.

        Args:
            session: Session that has passed the post-join signal

        Returns:
            Handle for the open recording

        Raises:
            RecordingError: Capture could not be started
            SessionLostError: The session closed before capture began
        """
        if self._handle is not None:
            raise RecordingError("A recording is already open for this session")
        if not session.is_alive:
            raise SessionLostError("Cannot record a session that is no longer active")

        self.sink_path.parent.mkdir(parents=True, exist_ok=True)
        ffmpeg_args = self._build_ffmpeg_args()
        logger.info(f"FFmpeg command: ffmpeg {' '.join(ffmpeg_args)}")

        started_at = time.monotonic()
        try:
            process = await asyncio.create_subprocess_exec(
                "ffmpeg", *ffmpeg_args,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError as exc:
            raise RecordingError("ffmpeg command not found") from exc
        except OSError as exc:
            raise RecordingError(f"Failed to start FFmpeg: {exc}") from exc

        # FFmpeg fails fast on a missing display or audio source
        try:
            await asyncio.wait_for(process.wait(), timeout=self._settings.startup_grace_seconds)
        except asyncio.TimeoutError:
            pass
        else:
            stderr = b""
            if process.stderr is not None:
                stderr = await process.stderr.read()
            raise RecordingError(
                f"FFmpeg exited immediately with code {process.returncode}",
                details={"stderr": stderr.decode(errors="replace").strip()},
            )

        self._handle = RecordingHandle(
            path=self.sink_path,
            container=self._settings.container,
            video_codec=self._settings.video_codec,
            audio_codec=self._settings.audio_codec,
            started_at=started_at,
            process=process,
        )
        logger.info(f"Recording started: {self.sink_path}")
        return self._handle

    async def stop(self, handle: RecordingHandle) -> None:
        """
        Flush and close the recording.

        Never raises. Calling it again, or after FFmpeg already died with
        the browser, is a no-op apart from logging.
        """
        if handle.closed:
            logger.debug(f"Recording already closed: {handle.path}")
            return
        handle.closed = True

        process = handle.process
        try:
            if process is not None and process.returncode is None:
                logger.info("Stopping recording...")
                # 'q' lets FFmpeg finalize the container
                if process.stdin is not None:
                    process.stdin.write(b"q")
                    await process.stdin.drain()
                    process.stdin.close()
                try:
                    await asyncio.wait_for(process.wait(), timeout=self._settings.stop_timeout_seconds)
                except asyncio.TimeoutError:
                    logger.warning("FFmpeg didn't exit gracefully, killing...")
                    process.kill()
                    await process.wait()
            elif process is not None:
                logger.warning(f"FFmpeg had already exited with code {process.returncode}")
        except OSError as e:
            # Pipe closed or process gone under us
            logger.warning(f"Error stopping FFmpeg: {e}")
        finally:
            handle.stopped_at = time.monotonic()
            handle.size_bytes = self._file_size(handle.path)

        logger.info(
            f"Recording stopped. Duration: {handle.duration_seconds:.1f}s, "
            f"Size: {handle.size_bytes / 1024:.1f}KB"
        )

    def _build_ffmpeg_args(self) -> List[str]:
        """Build FFmpeg command arguments."""
        s = self._settings
        muxer, _ = CONTAINERS[s.container]
        args = [
            "-y",
            "-loglevel", "error",
            "-nostats",

            # Input: the display the browser renders to
            "-f", "x11grab",
            "-video_size", s.video_size,
            "-framerate", str(s.video_framerate),
            "-i", s.display,

            # Input: what the browser plays
            "-f", "pulse",
            "-i", s.pulse_source,

            "-c:v", s.video_codec,
            "-b:v", s.video_bitrate,
        ]
        if s.video_codec.startswith("libvpx"):
            args.extend(["-deadline", "realtime", "-cpu-used", "8"])

        args.extend([
            "-c:a", s.audio_codec,
            "-b:a", s.audio_bitrate,
        ])

        if muxer == "mp4":
            # Fragmented MP4 stays readable if the bot dies mid-call
            args.extend(["-movflags", "frag_keyframe+empty_moov"])

        args.extend(["-f", muxer, str(self.sink_path)])
        return args

    @staticmethod
    def _file_size(path: Path) -> int:
        try:
            return path.stat().st_size
        except OSError:
            return 0
