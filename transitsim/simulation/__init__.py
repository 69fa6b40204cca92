"""Route orchestration, agent motion and frame scheduling."""

from .motion import AgentMotion, degrees_per_second
from .orchestrator import MapView, RouteOrchestrator
from .fleet import Fleet
from .polyline import Polyline, SegmentLocation, planar_bearing
from .scheduler import AsyncioFrameScheduler, FrameHandle, FrameScheduler, ManualFrameScheduler

__all__ = [
    "AgentMotion",
    "degrees_per_second",
    "MapView",
    "RouteOrchestrator",
    "Fleet",
    "Polyline",
    "SegmentLocation",
    "planar_bearing",
    "AsyncioFrameScheduler",
    "FrameHandle",
    "FrameScheduler",
    "ManualFrameScheduler",
]
