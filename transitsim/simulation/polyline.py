"""
Planar polyline geometry.

Lengths and bearings are computed directly on (lng, lat) degrees. This is a
flat approximation for a visual simulation, not geodesic math.
"""

import math
from dataclasses import dataclass
from typing import Optional, Sequence, Tuple

import numpy as np

from transitsim.models import GeoPoint


def planar_bearing(dx: float, dy: float) -> Optional[float]:
    """
    Bearing of a direction vector in degrees.

    0° points along +y (north), 90° along +x (east), -90° along -x (west).
    Returns None for a zero vector, whose direction is undefined.
    """
    if dx == 0.0 and dy == 0.0:
        return None
    return math.degrees(math.atan2(dx, dy))


@dataclass(frozen=True)
class SegmentLocation:
    """Where a progress fraction falls on a polyline."""
    index: int  # segment i runs from point i to point i + 1
    fraction: float  # local interpolation factor in [0, 1]


class Polyline:
    """
    Immutable polyline with precomputed cumulative-length fractions.

    ``ends[i]`` is the fraction of total length covered once segment ``i`` is
    complete, so ``ends`` is non-decreasing and ``ends[-1]`` is ~1.0.
    """

    def __init__(self, points: Sequence[GeoPoint]):
        self.points: Tuple[GeoPoint, ...] = tuple(points)
        coords = np.array([[p.lng, p.lat] for p in self.points], dtype=float).reshape(-1, 2)
        self._coords = coords

        if len(coords) >= 2:
            self.segment_lengths = np.hypot(*np.diff(coords, axis=0).T)
        else:
            self.segment_lengths = np.zeros(0)
        self.total_length = float(self.segment_lengths.sum())

        if self.total_length > 0:
            self.ends = np.cumsum(self.segment_lengths) / self.total_length
            self.starts = np.concatenate(([0.0], self.ends[:-1]))
        else:
            self.ends = np.zeros(len(self.segment_lengths))
            self.starts = np.zeros(len(self.segment_lengths))

    def __len__(self) -> int:
        return len(self.points)

    @property
    def segment_count(self) -> int:
        return len(self.segment_lengths)

    @property
    def is_degenerate(self) -> bool:
        """True when there is nothing to move along."""
        return self.segment_count == 0 or self.total_length <= 0

    def locate(self, progress: float) -> SegmentLocation:
        """
        Find the first segment whose end fraction is >= ``progress``.

        Binary search over the prefix sums; same result as scanning segments
        in order and stopping at the first match.
        """
        index = int(np.searchsorted(self.ends, progress, side="left"))
        if index >= self.segment_count:
            # Rounding left the last prefix just below progress
            return SegmentLocation(index=self.segment_count - 1, fraction=1.0)

        span = self.ends[index] - self.starts[index]
        if span <= 0:
            return SegmentLocation(index=index, fraction=0.0)
        fraction = (progress - self.starts[index]) / span
        return SegmentLocation(index=index, fraction=min(max(fraction, 0.0), 1.0))

    def interpolate(self, location: SegmentLocation) -> GeoPoint:
        a, b = self._coords[location.index], self._coords[location.index + 1]
        lng, lat = a + (b - a) * location.fraction
        return GeoPoint(lng=float(lng), lat=float(lat))

    def segment_bearing(self, index: int) -> Optional[float]:
        dx, dy = self._coords[index + 1] - self._coords[index]
        return planar_bearing(float(dx), float(dy))
