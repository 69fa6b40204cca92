"""
Core data model for the bus simulation.

Coordinates are planar (lng, lat) pairs in degrees. No datum or
projection handling beyond what the upstream route provider uses.
"""

from dataclasses import dataclass
from typing import List, Optional, Tuple


@dataclass(frozen=True)
class GeoPoint:
    """A planar coordinate."""
    lng: float
    lat: float

    def as_pair(self) -> List[float]:
        return [self.lng, self.lat]


@dataclass(frozen=True)
class NamedPoint(GeoPoint):
    """A coordinate with a display label."""
    name: str = "Location"

    def to_dict(self) -> dict:
        return {"lng": self.lng, "lat": self.lat, "name": self.name}


@dataclass(frozen=True)
class ViewportBounds:
    """Snapshot of the visible map rectangle and zoom level."""
    min_lng: float
    max_lng: float
    min_lat: float
    max_lat: float
    zoom: float = 0.0

    def __post_init__(self):
        if self.min_lng > self.max_lng:
            raise ValueError(f"min_lng {self.min_lng} exceeds max_lng {self.max_lng}")
        if self.min_lat > self.max_lat:
            raise ValueError(f"min_lat {self.min_lat} exceeds max_lat {self.max_lat}")

    @property
    def center(self) -> GeoPoint:
        return GeoPoint(
            lng=(self.min_lng + self.max_lng) / 2,
            lat=(self.min_lat + self.max_lat) / 2,
        )

    def contains(self, point: GeoPoint) -> bool:
        return (
            self.min_lng <= point.lng <= self.max_lng
            and self.min_lat <= point.lat <= self.max_lat
        )


@dataclass(frozen=True)
class Route:
    """
    One bus route.

    Immutable once created; ``id`` is stable for the route's lifetime and
    is what ties a motion model to its route.
    """
    id: str
    polyline: Tuple[GeoPoint, ...]
    start: NamedPoint
    end: NamedPoint
    color: str

    @property
    def coordinates(self) -> List[List[float]]:
        """Polyline as ``[lng, lat]`` pairs."""
        return [p.as_pair() for p in self.polyline]

    @property
    def label(self) -> str:
        return f"{self.start.name} → {self.end.name}"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "coordinates": self.coordinates,
            "start": self.start.to_dict(),
            "end": self.end.to_dict(),
            "color": self.color,
        }


@dataclass
class MotionState:
    """Per-agent mutable state, owned by exactly one motion model."""
    progress: float = 0.0
    last_sample_ms: Optional[float] = None


@dataclass(frozen=True)
class MotionSample:
    """Observable agent state emitted once per tick."""
    position: GeoPoint
    heading: float
