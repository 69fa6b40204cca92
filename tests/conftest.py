"""
Shared pytest fixtures for TRANSITSIM tests.

Environment defaults are set before any api.* import so settings pick
them up. Network lookups are replaced by in-memory fakes.
"""

import asyncio
import os
from typing import List, Optional

import numpy as np
import pytest

# ---------------------------------------------------------------------------
# Section 1: Environment setup (before ANY api.* imports)
# ---------------------------------------------------------------------------
os.environ.setdefault("ENVIRONMENT", "development")
os.environ.setdefault("LOG_LEVEL", "warning")
os.environ.setdefault("STREAM_INTERVAL_MS", "10")

from transitsim.config import SimulationSettings  # noqa: E402
from transitsim.metrics import metrics  # noqa: E402
from transitsim.models import GeoPoint, NamedPoint, Route, ViewportBounds  # noqa: E402


# ---------------------------------------------------------------------------
# Section 2: Fake providers
# ---------------------------------------------------------------------------

class FakePlaces:
    """Places lookup returning a fixed list (or raising)."""

    def __init__(self, places: Optional[List[NamedPoint]] = None, error: Optional[Exception] = None):
        self.places = places or []
        self.error = error
        self.calls: List[ViewportBounds] = []

    async def places_in_bounds(self, bounds):
        self.calls.append(bounds)
        await asyncio.sleep(0)
        if self.error is not None:
            raise self.error
        return list(self.places)


class FakeDirections:
    """
    Route lookup answering with a straight two-hop path.

    ``fail_every``: every n-th request (1-based) returns None.
    ``gate``: optional asyncio.Event every request waits on.
    """

    def __init__(self, fail_every: int = 0, error: Optional[Exception] = None, gate=None):
        self.fail_every = fail_every
        self.error = error
        self.gate = gate
        self.calls = []

    async def route_between(self, start, end):
        self.calls.append((start, end))
        ordinal = len(self.calls)
        if self.gate is not None:
            await self.gate.wait()
        await asyncio.sleep(0)
        if self.error is not None:
            raise self.error
        if self.fail_every and ordinal % self.fail_every == 0:
            return None
        mid = GeoPoint(lng=(start.lng + end.lng) / 2, lat=start.lat)
        return [GeoPoint(start.lng, start.lat), mid, GeoPoint(end.lng, end.lat)]


class RecordingSleep:
    """Stand-in for asyncio.sleep that records delays and yields once."""

    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)
        await asyncio.sleep(0)


class FakeMapView:
    """Map view with settable bounds and manual event firing."""

    def __init__(self, bounds: ViewportBounds):
        self.bounds = bounds
        self.handlers = {}

    def get_bounds(self):
        return self.bounds

    def on(self, event, handler):
        self.handlers.setdefault(event, []).append(handler)

    def off(self, event, handler):
        if handler in self.handlers.get(event, []):
            self.handlers[event].remove(handler)

    def fire(self, event):
        for handler in list(self.handlers.get(event, [])):
            handler()


def make_route(points, route_id: str = "bus-0-test", color: str = "#f97316") -> Route:
    """Build a route from ``(lng, lat)`` tuples."""
    polyline = tuple(GeoPoint(lng=float(x), lat=float(y)) for x, y in points)
    start = NamedPoint(lng=polyline[0].lng, lat=polyline[0].lat, name="Depot") if polyline else NamedPoint(0.0, 0.0, "Depot")
    end = NamedPoint(lng=polyline[-1].lng, lat=polyline[-1].lat, name="Terminal") if polyline else NamedPoint(0.0, 0.0, "Terminal")
    return Route(id=route_id, polyline=polyline, start=start, end=end, color=color)


# ---------------------------------------------------------------------------
# Section 3: Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture(autouse=True)
def reset_metrics():
    metrics.reset()
    yield


@pytest.fixture
def nyc_bounds():
    return ViewportBounds(min_lng=-74.1, max_lng=-73.9, min_lat=40.6, max_lat=40.8, zoom=12.0)


@pytest.fixture
def fast_config():
    """Small, delay-free settings."""
    return SimulationSettings(
        agent_count=10,
        batch_size=5,
        batch_delay_ms=200.0,
        settle_delay_ms=0.0,
    )


@pytest.fixture
def rng():
    return np.random.default_rng(1234)


@pytest.fixture
def fake_places():
    return FakePlaces()


@pytest.fixture
def fake_directions():
    return FakeDirections()


@pytest.fixture
def recording_sleep():
    return RecordingSleep()
