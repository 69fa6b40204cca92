"""
Fleet: one running motion model per active route.

Listens for route set replacements from the orchestrator, starts a motion
model for every new route and stops the ones whose route disappeared.
Publishes route polylines and per-frame marker updates to a render sink.
"""

import logging
from typing import Dict, Mapping, Optional

import numpy as np

from transitsim.config import SimulationSettings, settings as default_settings
from transitsim.metrics import metrics
from transitsim.models import MotionSample, Route
from transitsim.rendering import RenderSink, RouteDraw, make_marker
from transitsim.simulation.motion import AgentMotion
from transitsim.simulation.scheduler import FrameScheduler

logger = logging.getLogger(__name__)


class Fleet:
    """Binds routes to motion models by route id."""

    def __init__(
        self,
        scheduler: FrameScheduler,
        sink: Optional[RenderSink] = None,
        config: Optional[SimulationSettings] = None,
        rng: Optional[np.random.Generator] = None,
    ):
        self.scheduler = scheduler
        self.sink = sink
        self.config = config or default_settings
        self.rng = rng or np.random.default_rng()
        self._agents: Dict[str, AgentMotion] = {}

    @property
    def agents(self) -> Mapping[str, AgentMotion]:
        return dict(self._agents)

    def __len__(self) -> int:
        return len(self._agents)

    def pick_speed(self) -> float:
        return float(self.rng.uniform(self.config.speed_min_kmh, self.config.speed_max_kmh))

    def sync(self, routes: Mapping[str, Route]) -> None:
        """Reconcile running agents with ``routes``."""
        for route_id in [rid for rid in self._agents if rid not in routes]:
            self._remove(route_id)

        for route_id, route in routes.items():
            if route_id not in self._agents:
                self._add(route)

        metrics.set_gauge("active_agents", len(self._agents))
        logger.info(f"Fleet now running {len(self._agents)} agents")

    def _add(self, route: Route) -> None:
        motion = AgentMotion(
            route,
            speed_kmh=self.pick_speed(),
            on_sample=self._publish_sample,
            km_per_degree=self.config.km_per_degree,
        )
        self._agents[route.id] = motion

        if self.sink is not None:
            self.sink.draw_route(RouteDraw(
                route_id=route.id,
                coordinates=route.coordinates,
                color=route.color,
                width=self.config.route_line_width,
                opacity=self.config.route_line_opacity,
            ))
            self._publish_sample(route, motion.sample)

        motion.start(self.scheduler)

    def _remove(self, route_id: str) -> None:
        motion = self._agents.pop(route_id)
        motion.stop()
        if self.sink is not None:
            self.sink.remove_marker(route_id)
            self.sink.remove_route(route_id)

    def _publish_sample(self, route: Route, sample: MotionSample) -> None:
        if self.sink is None:
            return
        self.sink.update_marker(make_marker(
            route.id, sample.position, sample.heading, route.color, route.label
        ))

    def close(self) -> None:
        """Stop every agent."""
        for route_id in list(self._agents):
            self._remove(route_id)
        metrics.set_gauge("active_agents", 0)
