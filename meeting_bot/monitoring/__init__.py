"""
Monitoring Module

Keeps the control plane informed about a running bot: periodic heartbeats,
the event log and the lifecycle status.
"""

from .control_plane import ControlPlaneClient
from .events import EventReporter, best_effort
from .heartbeat import HeartbeatReporter

__all__ = ["ControlPlaneClient", "EventReporter", "HeartbeatReporter", "best_effort"]
