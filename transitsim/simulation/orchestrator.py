"""
Route orchestration.

Builds the active route set for a viewport:
1. look up named places in the viewport (may be empty)
2. sample start/end pairs from those places, or uniformly in the viewport
3. request road routes in concurrent batches separated by a fixed delay
4. swap the successful routes in as the new active set in one step

A new cycle runs when the map settles somewhere significantly different
from where the last cycle started. At most one cycle runs at a time.
"""

import asyncio
import logging
import uuid
from types import MappingProxyType
from typing import Awaitable, Callable, Dict, List, Mapping, Optional, Protocol, Set

import numpy as np

from transitsim.config import SimulationSettings, settings as default_settings
from transitsim.metrics import metrics, timed
from transitsim.models import NamedPoint, Route, ViewportBounds
from transitsim.providers.base import PlacesLookup, RouteLookup

logger = logging.getLogger(__name__)

RouteSetListener = Callable[[Mapping[str, Route]], None]
EndpointSampler = Callable[[], NamedPoint]


class MapView(Protocol):
    """The parts of the map widget the orchestrator consumes."""

    def get_bounds(self) -> ViewportBounds:
        ...

    def on(self, event: str, handler: Callable[[], None]) -> None:
        ...

    def off(self, event: str, handler: Callable[[], None]) -> None:
        ...


class RouteOrchestrator:
    """
    Owns the active route set and regenerates it for the visible region.

    Usage:
        orchestrator = RouteOrchestrator(places, directions)
        orchestrator.add_listener(fleet.sync)
        orchestrator.attach(map_view)
    """

    def __init__(
        self,
        places: PlacesLookup,
        directions: RouteLookup,
        config: Optional[SimulationSettings] = None,
        rng: Optional[np.random.Generator] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.places = places
        self.directions = directions
        self.config = config or default_settings
        self.rng = rng or np.random.default_rng()
        self._sleep = sleep

        self._routes: Dict[str, Route] = {}
        self._listeners: List[RouteSetListener] = []
        self._snapshot: Optional[ViewportBounds] = None
        self._generating = False
        self._view: Optional[MapView] = None
        self._tasks: Set[asyncio.Task] = set()

        self.batches_issued = 0

    # ------------------------------------------------------------------
    # Route set
    # ------------------------------------------------------------------

    @property
    def routes(self) -> Mapping[str, Route]:
        """Read-only view of the active route set."""
        return MappingProxyType(self._routes)

    @property
    def is_generating(self) -> bool:
        return self._generating

    @property
    def snapshot(self) -> Optional[ViewportBounds]:
        """Viewport captured when the last cycle started."""
        return self._snapshot

    def add_listener(self, listener: RouteSetListener) -> None:
        self._listeners.append(listener)

    def _replace_routes(self, routes: List[Route]) -> None:
        self._routes = {route.id: route for route in routes}
        metrics.set_gauge("active_routes", len(self._routes))

        current = self.routes
        for listener in self._listeners:
            try:
                listener(current)
            except Exception as e:
                logger.error(f"Route set listener failed: {e}", exc_info=True)

    # ------------------------------------------------------------------
    # Candidate generation
    # ------------------------------------------------------------------

    def make_sampler(self, places: List[NamedPoint], bounds: ViewportBounds) -> EndpointSampler:
        """Endpoint sampler: known places with replacement, else uniform in bounds."""
        if places:
            def sample_place() -> NamedPoint:
                return places[int(self.rng.integers(len(places)))]
            return sample_place

        def sample_uniform() -> NamedPoint:
            return NamedPoint(
                lng=float(self.rng.uniform(bounds.min_lng, bounds.max_lng)),
                lat=float(self.rng.uniform(bounds.min_lat, bounds.max_lat)),
                name=self.config.fallback_place_name,
            )
        return sample_uniform

    def is_near_duplicate(self, start: NamedPoint, end: NamedPoint) -> bool:
        eps = self.config.endpoint_epsilon
        return abs(start.lng - end.lng) < eps and abs(start.lat - end.lat) < eps

    def color_for(self, index: int) -> str:
        palette = self.config.palette
        return palette[index % len(palette)]

    @timed("places_lookup")
    async def _lookup_places(self, bounds: ViewportBounds) -> List[NamedPoint]:
        try:
            return list(await self.places.places_in_bounds(bounds))
        except Exception as e:
            logger.error(f"Places lookup failed, sampling random points: {e}")
            return []

    async def _build_route(self, index: int, start: NamedPoint, end: NamedPoint) -> Optional[Route]:
        metrics.increment("route_requests")
        try:
            polyline = await self.directions.route_between(start, end)
        except Exception as e:
            logger.error(f"Route request {index} failed: {e}")
            polyline = None

        if not polyline or len(polyline) < 2:
            metrics.increment("candidates_skipped")
            return None

        return Route(
            id=f"bus-{index}-{uuid.uuid4().hex}",
            polyline=tuple(polyline),
            start=start,
            end=end,
            color=self.color_for(index),
        )

    async def _run_cycle(self, bounds: ViewportBounds) -> List[Route]:
        places = await self._lookup_places(bounds)
        sampler = self.make_sampler(places, bounds)

        count = self.config.agent_count
        batch_size = self.config.batch_size
        delay_s = self.config.batch_delay_ms / 1000.0
        routes: List[Route] = []

        for batch_start in range(0, count, batch_size):
            if batch_start > 0:
                await self._sleep(delay_s)

            async with asyncio.TaskGroup() as group:
                tasks = []
                for index in range(batch_start, min(batch_start + batch_size, count)):
                    start, end = sampler(), sampler()
                    if self.is_near_duplicate(start, end):
                        logger.debug(f"Slot {index}: endpoints too close, skipping")
                        metrics.increment("candidates_skipped")
                        continue
                    tasks.append(group.create_task(self._build_route(index, start, end)))
            self.batches_issued += 1

            routes.extend(route for route in (t.result() for t in tasks) if route is not None)

        return routes

    async def generate(self, bounds: ViewportBounds) -> bool:
        """
        Run one generation cycle for ``bounds``.

        Returns:
            False if another cycle was already running, True otherwise
        """
        if self._generating:
            metrics.increment("generations_suppressed")
            logger.debug("Generation already in flight, ignoring request")
            return False

        self._generating = True
        self._snapshot = bounds
        metrics.increment("generation_cycles")
        logger.info(
            f"Generating {self.config.agent_count} routes for viewport "
            f"lng[{bounds.min_lng:.4f}, {bounds.max_lng:.4f}] "
            f"lat[{bounds.min_lat:.4f}, {bounds.max_lat:.4f}] zoom {bounds.zoom:.1f}"
        )

        try:
            with metrics.timer("generation_cycle"):
                routes = await self._run_cycle(bounds)
        except Exception as e:
            logger.error(f"Error generating routes: {e}", exc_info=True)
            return True
        finally:
            self._generating = False

        metrics.increment("routes_built", len(routes))
        logger.info(f"Generated {len(routes)}/{self.config.agent_count} routes")
        self._replace_routes(routes)
        return True

    # ------------------------------------------------------------------
    # Map signals
    # ------------------------------------------------------------------

    def is_significant_change(self, bounds: ViewportBounds) -> bool:
        """True if ``bounds`` moved or zoomed past the thresholds since the last cycle."""
        if self._snapshot is None:
            return True

        old, new = self._snapshot.center, bounds.center
        moved = (
            abs(new.lng - old.lng) > self.config.center_shift_threshold
            or abs(new.lat - old.lat) > self.config.center_shift_threshold
        )
        zoomed = abs(bounds.zoom - self._snapshot.zoom) > self.config.zoom_shift_threshold
        return moved or zoomed

    async def on_view_settled(self, bounds: ViewportBounds) -> bool:
        """Handle the map settling after a pan/zoom. Returns True if a cycle ran."""
        if not self.is_significant_change(bounds):
            return False
        return await self.generate(bounds)

    async def on_map_loaded(self, get_bounds: Callable[[], ViewportBounds]) -> bool:
        """Initial generation, delayed so it does not race the map's first paint."""
        await self._sleep(self.config.settle_delay_ms / 1000.0)
        if self._routes:
            return False
        return await self.generate(get_bounds())

    def attach(self, view: MapView) -> None:
        """Subscribe to the map's load and moveend signals."""
        self.detach()
        self._view = view
        view.on("load", self._handle_load)
        view.on("moveend", self._handle_moveend)

    def detach(self) -> None:
        """Unsubscribe from the map and cancel pending work."""
        if self._view is not None:
            self._view.off("load", self._handle_load)
            self._view.off("moveend", self._handle_moveend)
            self._view = None
        for task in list(self._tasks):
            task.cancel()

    def _spawn(self, coro) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def _handle_load(self) -> None:
        if self._view is None:
            return
        if self._snapshot is None:
            self._snapshot = self._view.get_bounds()
        self._spawn(self.on_map_loaded(self._view.get_bounds))

    def _handle_moveend(self) -> None:
        if self._view is None:
            return
        self._spawn(self.on_view_settled(self._view.get_bounds()))

    async def close(self) -> None:
        """Detach and wait for cancelled work to unwind."""
        tasks = list(self._tasks)
        self.detach()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
