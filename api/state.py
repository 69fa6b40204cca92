"""
Simulation state for the TRANSITSIM API.

Wires the orchestrator, fleet, scheduler and render sink together and
exposes the map view the browser drives by posting settled viewports.
"""
import logging
from collections import defaultdict
from typing import Callable, Dict, List, Optional

import httpx
from starlette.requests import Request

from transitsim.config import SimulationSettings, settings as sim_settings
from transitsim.models import ViewportBounds
from transitsim.providers import OsrmRouteProvider, OverpassPlacesProvider, PlacesLookup, RouteLookup
from transitsim.rendering import SnapshotSink
from transitsim.simulation import AsyncioFrameScheduler, Fleet, FrameScheduler, RouteOrchestrator

logger = logging.getLogger(__name__)


class ServerMapView:
    """
    Map view backed by viewports reported over HTTP.

    ``settle(bounds)`` stores the new viewport and fires "moveend";
    ``load()`` fires "load" once.
    """

    def __init__(self, initial: ViewportBounds):
        self._bounds = initial
        self._handlers: Dict[str, List[Callable[[], None]]] = defaultdict(list)
        self.loaded = False

    def get_bounds(self) -> ViewportBounds:
        return self._bounds

    def on(self, event: str, handler: Callable[[], None]) -> None:
        self._handlers[event].append(handler)

    def off(self, event: str, handler: Callable[[], None]) -> None:
        if handler in self._handlers[event]:
            self._handlers[event].remove(handler)

    def _emit(self, event: str) -> None:
        for handler in list(self._handlers[event]):
            handler()

    def load(self) -> None:
        if not self.loaded:
            self.loaded = True
            self._emit("load")

    def settle(self, bounds: ViewportBounds) -> None:
        self._bounds = bounds
        self._emit("moveend")


class SimulationState:
    """Everything one running simulation needs, with start/stop."""

    def __init__(
        self,
        initial_bounds: ViewportBounds,
        places: Optional[PlacesLookup] = None,
        directions: Optional[RouteLookup] = None,
        scheduler: Optional[FrameScheduler] = None,
        config: Optional[SimulationSettings] = None,
    ):
        self.config = config or sim_settings
        self._client: Optional[httpx.AsyncClient] = None
        if places is None or directions is None:
            self._client = httpx.AsyncClient(timeout=self.config.http_timeout_s)

        self.places = places or OverpassPlacesProvider(client=self._client, url=self.config.overpass_url)
        self.directions = directions or OsrmRouteProvider(client=self._client, base_url=self.config.osrm_url)
        self.scheduler = scheduler or AsyncioFrameScheduler(frame_rate_hz=self.config.frame_rate_hz)

        self.sink = SnapshotSink()
        self.view = ServerMapView(initial_bounds)
        self.orchestrator = RouteOrchestrator(self.places, self.directions, config=self.config)
        self.fleet = Fleet(self.scheduler, sink=self.sink, config=self.config)
        self.orchestrator.add_listener(self.fleet.sync)
        self.running = False

    @property
    def places_breaker(self):
        return getattr(self.places, "breaker", None)

    def start(self) -> None:
        """Attach to the map view and report it loaded. Needs a running event loop."""
        if self.running:
            return
        self.orchestrator.attach(self.view)
        self.view.load()
        self.running = True
        logger.info("Simulation started")

    async def stop(self) -> None:
        await self.orchestrator.close()
        self.fleet.close()
        if isinstance(self.scheduler, AsyncioFrameScheduler):
            await self.scheduler.aclose()
        if self._client is not None:
            await self._client.aclose()
        self.running = False
        logger.info("Simulation stopped")


def get_simulation(request: Request) -> SimulationState:
    """FastAPI dependency returning the app's simulation."""
    return request.app.state.simulation
