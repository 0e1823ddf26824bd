"""
Configuration settings for the Meeting Bot runtime.
Uses Pydantic Settings for type-safe configuration with environment variable support.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class MeetingPlatform(str, Enum):
    """Supported meeting platforms."""
    MEET = "meet"
    TEAMS = "teams"
    ZOOM = "zoom"

    @classmethod
    def _missing_(cls, value):
        if isinstance(value, str):
            normalized = value.strip().lower()
            if normalized == "google_meet":
                return cls.MEET
            for member in cls:
                if member.value == normalized:
                    return member
        return None


@dataclass(frozen=True)
class PlatformDefaults:
    """Per-platform timing defaults."""
    join_timeout_ms: int
    poll_interval_seconds: float
    # None means the end detector waits for as long as the call lasts
    max_duration_seconds: Optional[float]


PLATFORM_DEFAULTS: Dict[MeetingPlatform, PlatformDefaults] = {
    MeetingPlatform.MEET: PlatformDefaults(
        join_timeout_ms=600_000,
        poll_interval_seconds=5.0,
        max_duration_seconds=4 * 60 * 60,
    ),
    MeetingPlatform.TEAMS: PlatformDefaults(
        join_timeout_ms=600_000,
        poll_interval_seconds=5.0,
        max_duration_seconds=4 * 60 * 60,
    ),
    MeetingPlatform.ZOOM: PlatformDefaults(
        join_timeout_ms=120_000,
        poll_interval_seconds=1.0,
        max_duration_seconds=None,
    ),
}


class BotSettings(BaseSettings):
    """Bot identity and join behaviour."""
    model_config = SettingsConfigDict(env_prefix="BOT_")

    id: Optional[int] = Field(default=None, description="Control-plane bot id")
    meeting_url: Optional[str] = Field(default=None, description="Meeting URL to join")
    platform: Optional[MeetingPlatform] = Field(default=None, description="Meeting platform")
    display_name: str = Field(default="Meeting Bot", description="Name shown to participants")
    join_timeout_ms: Optional[int] = Field(
        default=None,
        description="Post-join signal timeout (per-platform default when unset)"
    )
    step_timeout_ms: int = Field(default=30_000, description="Timeout for each prejoin UI step")
    meet_settle_ms: int = Field(
        default=10_000,
        description="Pause after the Meet name field appears before typing"
    )
    headless: bool = Field(default=False, description="Run Chromium headless")

    user_agent: str = Field(
        default=(
            "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
            "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
        ),
        description="Browser user agent"
    )
    viewport_width: int = Field(default=1280, description="Viewport width")
    viewport_height: int = Field(default=720, description="Viewport height")

    def resolved_join_timeout_ms(self, platform: MeetingPlatform) -> int:
        """Join timeout, falling back to the platform default."""
        if self.join_timeout_ms is not None:
            return self.join_timeout_ms
        return PLATFORM_DEFAULTS[platform].join_timeout_ms


class RecordingSettings(BaseSettings):
    """Meeting recording configuration."""
    model_config = SettingsConfigDict(env_prefix="RECORDING_")

    local_path: str = Field(default="recordings", description="Local recordings directory")
    container: str = Field(default="webm", description="Output container: webm, mkv or mp4")

    # Capture sources
    display: str = Field(default=":99", description="X display the browser renders to")
    pulse_source: str = Field(default="default.monitor", description="PulseAudio source")

    # Video settings
    video_size: str = Field(default="1280x720", description="Captured area (WIDTHxHEIGHT)")
    video_codec: str = Field(default="libvpx", description="Video codec")
    video_bitrate: str = Field(default="2M", description="Video bitrate")
    video_framerate: int = Field(default=30, description="Video framerate")

    # Audio settings
    audio_codec: str = Field(default="libopus", description="Audio codec")
    audio_bitrate: str = Field(default="128k", description="Audio bitrate")

    startup_grace_seconds: float = Field(
        default=1.0,
        description="How long ffmpeg must survive before capture counts as started"
    )
    stop_timeout_seconds: float = Field(default=10.0, description="Graceful stop timeout")
    upload_to_s3: bool = Field(default=False, description="Upload finished recordings to S3")

    @field_validator("container")
    @classmethod
    def validate_container(cls, v: str) -> str:
        v = v.lower()
        if v not in ("webm", "mkv", "mp4"):
            raise ValueError(f"Unsupported container: {v}")
        return v


class ControlPlaneSettings(BaseSettings):
    """Control plane endpoint configuration."""
    model_config = SettingsConfigDict(env_prefix="CONTROL_PLANE_")

    url: str = Field(default="http://localhost:3001/api", description="Control plane base URL")
    api_key: str = Field(default="", description="API key sent as X-API-Key")
    timeout_seconds: float = Field(default=10.0, description="Per-request timeout")
    heartbeat_interval_seconds: float = Field(default=5.0, description="Heartbeat period")
    max_attempts: int = Field(default=3, description="Attempts for event and status calls")
    retry_wait_seconds: float = Field(default=1.0, description="Base retry backoff")


class DetectorSettings(BaseSettings):
    """Meeting-end detection overrides."""
    model_config = SettingsConfigDict(env_prefix="DETECTOR_")

    poll_interval_seconds: Optional[float] = Field(
        default=None,
        description="Poll interval (per-platform default when unset)"
    )
    max_duration_seconds: Optional[float] = Field(
        default=None,
        description="Overall meeting timeout (per-platform default when unset)"
    )


class S3Settings(BaseSettings):
    """AWS S3 configuration for recording uploads."""
    model_config = SettingsConfigDict(env_prefix="AWS_")

    s3_bucket_name: Optional[str] = Field(default=None, description="Target bucket")
    access_key_id: Optional[str] = Field(default=None, description="AWS access key id")
    secret_access_key: Optional[str] = Field(default=None, description="AWS secret key")
    region: str = Field(default="us-east-1", description="AWS region")


class Settings(BaseSettings):
    """Main application settings."""
    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore"
    )

    # Nested settings
    bot: BotSettings = Field(default_factory=BotSettings)
    recording: RecordingSettings = Field(default_factory=RecordingSettings)
    control_plane: ControlPlaneSettings = Field(default_factory=ControlPlaneSettings)
    detector: DetectorSettings = Field(default_factory=DetectorSettings)
    s3: S3Settings = Field(default_factory=S3Settings)

    # Application settings
    debug: bool = Field(default=False, description="Enable debug mode")
    log_level: str = Field(default="INFO", description="Logging level")
    log_to_file: bool = Field(default=True, description="Write rotating log files under logs/")

    @property
    def recordings_dir(self) -> str:
        """Get recordings directory path."""
        return self.recording.local_path

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"Invalid log level: {v}")
        return v.upper()


# Global settings instance
settings = Settings()
