"""HTTP and WebSocket surface of the workflow engine."""

from .endpoints import router
from .monitor import MonitorEvent, ProgressMonitor

__all__ = ["router", "MonitorEvent", "ProgressMonitor"]
