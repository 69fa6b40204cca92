"""
Agent motion model.

Moves one bus along its route polyline forever. Progress is a fraction of
total polyline length that advances at a constant rate derived from the
agent's speed, and wraps back to the first point on reaching 1.
"""

import logging
from typing import Callable, Optional

from transitsim.config import settings
from transitsim.models import GeoPoint, MotionSample, MotionState, Route
from transitsim.simulation.polyline import Polyline
from transitsim.simulation.scheduler import FrameHandle, FrameScheduler

logger = logging.getLogger(__name__)

SECONDS_PER_HOUR = 3600.0


def degrees_per_second(speed_kmh: float, km_per_degree: Optional[float] = None) -> float:
    """
    Convert km/h into coordinate degrees per second.

    Uses one fixed km-per-degree factor for both axes at every latitude.
    """
    km_per_degree = km_per_degree or settings.km_per_degree
    return speed_kmh / km_per_degree / SECONDS_PER_HOUR


class AgentMotion:
    """
    Per-route motion model.

    Usage:
        motion = AgentMotion(route, speed_kmh=75.0, on_sample=publish)
        motion.start(scheduler)
        ...
        motion.stop()
    """

    def __init__(
        self,
        route: Route,
        speed_kmh: float = 60.0,
        on_sample: Optional[Callable[[Route, MotionSample], None]] = None,
        km_per_degree: Optional[float] = None,
    ):
        """
        Args:
            route: Route to follow. Never mutated.
            speed_kmh: Travel speed in km/h.
            on_sample: Called with the route and each new sample.
            km_per_degree: Override for the speed conversion factor.
        """
        self.route = route
        self.speed_kmh = speed_kmh
        self.on_sample = on_sample
        self.polyline = Polyline(route.polyline)
        self.state = MotionState()
        self._handle: Optional[FrameHandle] = None

        if self.polyline.is_degenerate:
            self.rate = 0.0
        else:
            self.rate = degrees_per_second(speed_kmh, km_per_degree) / self.polyline.total_length

        first = route.polyline[0] if route.polyline else GeoPoint(0.0, 0.0)
        self.sample = MotionSample(position=first, heading=0.0)

    @property
    def inert(self) -> bool:
        """An inert model never moves and never emits."""
        return self.polyline.is_degenerate

    @property
    def running(self) -> bool:
        return self._handle is not None and self._handle.active

    def start(self, scheduler: FrameScheduler) -> None:
        """Register the per-frame tick with ``scheduler``."""
        if self.inert:
            logger.debug(f"Route {self.route.id} has no length, agent stays inert")
            return
        if self.running:
            return
        self.state.last_sample_ms = scheduler.now()
        self._handle = scheduler.schedule(self.tick)

    def stop(self) -> None:
        """Unregister the tick. Safe to call more than once."""
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def advance(self, elapsed_s: float) -> float:
        """Move progress forward by ``elapsed_s`` seconds, wrapping at 1."""
        progress = self.state.progress + self.rate * max(elapsed_s, 0.0)
        if progress >= 1.0:
            progress = 0.0
        self.state.progress = progress
        return progress

    def sample_at(self, progress: float) -> MotionSample:
        """Position and heading at ``progress`` without touching the state."""
        location = self.polyline.locate(progress)
        position = self.polyline.interpolate(location)
        heading = self.polyline.segment_bearing(location.index)
        if heading is None:
            heading = self.sample.heading
        return MotionSample(position=position, heading=heading)

    def tick(self, now_ms: float) -> Optional[MotionSample]:
        """Frame callback: advance, resample and publish."""
        if self.inert:
            return None

        last = self.state.last_sample_ms
        elapsed_s = 0.0 if last is None else (now_ms - last) / 1000.0
        self.state.last_sample_ms = now_ms

        progress = self.advance(elapsed_s)
        self.sample = self.sample_at(progress)

        if self.on_sample is not None:
            self.on_sample(self.route, self.sample)
        return self.sample
