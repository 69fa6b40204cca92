"""External lookups: places in a viewport and road routes between points."""

from .base import PlacesLookup, RouteLookup
from .overpass import OverpassPlacesProvider
from .osrm import OsrmRouteProvider, NoRouteError

__all__ = [
    "PlacesLookup",
    "RouteLookup",
    "OverpassPlacesProvider",
    "OsrmRouteProvider",
    "NoRouteError",
]
