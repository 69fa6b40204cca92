"""
Rendering sink interface.

The simulation never draws anything itself. Per route it publishes a
polyline draw request, per agent a marker update once per frame. The map
client decides how to draw them.
"""

import threading
from dataclasses import asdict, dataclass
from typing import Dict, List, Protocol

from transitsim.models import GeoPoint

MARKER_TITLE = "Bus Service"


@dataclass(frozen=True)
class RouteDraw:
    """Polyline draw request for one route."""
    route_id: str
    coordinates: List[List[float]]
    color: str
    width: float
    opacity: float


@dataclass(frozen=True)
class MarkerUpdate:
    """Marker state for one agent."""
    route_id: str
    lng: float
    lat: float
    rotation: float
    color: str
    icon: str
    title: str
    tooltip: str


class RenderSink(Protocol):
    def draw_route(self, draw: RouteDraw) -> None:
        ...

    def remove_route(self, route_id: str) -> None:
        ...

    def update_marker(self, marker: MarkerUpdate) -> None:
        ...

    def remove_marker(self, route_id: str) -> None:
        ...


def bus_icon_svg(color: str = "#f97316") -> str:
    """40x40 bus glyph in ``color``; rotated by the client using the marker rotation."""
    return (
        '<svg width="40" height="40" viewBox="0 0 24 24" fill="none" '
        'xmlns="http://www.w3.org/2000/svg">'
        f'<rect x="4" y="6" width="16" height="12" rx="2" fill="{color}"/>'
        f'<rect x="4" y="6" width="16" height="12" rx="2" stroke="white" stroke-width="1"/>'
        '<rect x="6" y="8" width="5" height="4" rx="0.5" fill="white" opacity="0.9"/>'
        '<rect x="13" y="8" width="5" height="4" rx="0.5" fill="white" opacity="0.9"/>'
        '<circle cx="8" cy="18" r="2" fill="#111827"/>'
        '<circle cx="16" cy="18" r="2" fill="#111827"/>'
        '<circle cx="6" cy="15" r="0.8" fill="#fef3c7"/>'
        '<circle cx="18" cy="15" r="0.8" fill="#fef3c7"/>'
        '</svg>'
    )


def make_marker(route_id: str, position: GeoPoint, heading: float, color: str, label: str) -> MarkerUpdate:
    return MarkerUpdate(
        route_id=route_id,
        lng=position.lng,
        lat=position.lat,
        rotation=heading,
        color=color,
        icon=bus_icon_svg(color),
        title=MARKER_TITLE,
        tooltip=label,
    )


class SnapshotSink:
    """
    Keeps the latest published draw requests and markers in memory.

    Written from the event loop, read by HTTP handlers; a lock keeps
    snapshots consistent.
    """

    def __init__(self):
        self._routes: Dict[str, RouteDraw] = {}
        self._markers: Dict[str, MarkerUpdate] = {}
        self._lock = threading.Lock()

    def draw_route(self, draw: RouteDraw) -> None:
        with self._lock:
            self._routes[draw.route_id] = draw

    def remove_route(self, route_id: str) -> None:
        with self._lock:
            self._routes.pop(route_id, None)

    def update_marker(self, marker: MarkerUpdate) -> None:
        with self._lock:
            self._markers[marker.route_id] = marker

    def remove_marker(self, route_id: str) -> None:
        with self._lock:
            self._markers.pop(route_id, None)

    def routes(self) -> List[dict]:
        with self._lock:
            return [asdict(d) for d in self._routes.values()]

    def markers(self, include_icon: bool = True) -> List[dict]:
        with self._lock:
            markers = [asdict(m) for m in self._markers.values()]
        if not include_icon:
            for marker in markers:
                marker.pop("icon", None)
        return markers
