"""
Recording Module

Records the joined meeting's combined audio and video with FFmpeg
(X display + PulseAudio capture) into a streamable container file.
"""

from .recording_service import CONTAINERS, RecordingPipe, recording_path_for

__all__ = ["CONTAINERS", "RecordingPipe", "recording_path_for"]
