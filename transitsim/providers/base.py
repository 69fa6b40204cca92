"""Lookup interfaces the route orchestrator depends on."""

from typing import List, Optional, Protocol

from transitsim.models import GeoPoint, NamedPoint, ViewportBounds


class PlacesLookup(Protocol):
    """Named places inside a viewport. Failures degrade to an empty list."""

    async def places_in_bounds(self, bounds: ViewportBounds) -> List[NamedPoint]:
        ...


class RouteLookup(Protocol):
    """Road path between two points, or None when there is no usable route."""

    async def route_between(self, start: GeoPoint, end: GeoPoint) -> Optional[List[GeoPoint]]:
        ...
