"""
Overpass API places lookup.

Finds populated places (city, town, village, suburb nodes) inside the
current viewport so bus endpoints land somewhere meaningful.
"""

import logging
from typing import List, Optional

import httpx

from transitsim.config import settings
from transitsim.models import NamedPoint, ViewportBounds
from transitsim.resilience import CircuitBreaker, CircuitOpenError

logger = logging.getLogger(__name__)

PLACE_KINDS = "city|town|village|suburb"
UNNAMED_PLACE = "Unknown Place"


def build_places_query(bounds: ViewportBounds, timeout_s: int = 25) -> str:
    """Overpass QL for place nodes in (south, west, north, east) order."""
    bbox = f"{bounds.min_lat},{bounds.min_lng},{bounds.max_lat},{bounds.max_lng}"
    return (
        f"[out:json][timeout:{timeout_s}];\n"
        f"(\n"
        f"  node[\"place\"~\"{PLACE_KINDS}\"]({bbox});\n"
        f");\n"
        f"out body;\n"
    )


def parse_places(payload: dict) -> List[NamedPoint]:
    """Turn an Overpass JSON response into named points, skipping broken elements."""
    places = []
    for element in payload.get("elements") or []:
        try:
            lng = float(element["lon"])
            lat = float(element["lat"])
        except (KeyError, TypeError, ValueError):
            continue
        name = (element.get("tags") or {}).get("name") or UNNAMED_PLACE
        places.append(NamedPoint(lng=lng, lat=lat, name=name))
    return places


class OverpassPlacesProvider:
    """Places-in-bounds lookup backed by the public Overpass interpreter."""

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        url: Optional[str] = None,
        breaker: Optional[CircuitBreaker] = None,
    ):
        self.url = url or settings.overpass_url
        self._client = client or httpx.AsyncClient(timeout=settings.http_timeout_s)
        self._owns_client = client is None
        self.breaker = breaker or CircuitBreaker(
            name="overpass_api", failure_threshold=3, recovery_timeout=120
        )
        self._fetch = self.breaker.call_async(self._post_query)

    async def _post_query(self, query: str) -> dict:
        response = await self._client.post(self.url, data={"data": query})
        response.raise_for_status()
        return response.json()

    async def places_in_bounds(self, bounds: ViewportBounds) -> List[NamedPoint]:
        try:
            payload = await self._fetch(build_places_query(bounds))
        except CircuitOpenError as e:
            logger.warning(f"Skipping places lookup: {e}")
            return []
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Error fetching places from Overpass: {e}")
            return []

        if not isinstance(payload, dict):
            logger.error(f"Unexpected Overpass payload type: {type(payload).__name__}")
            return []

        places = parse_places(payload)
        logger.info(f"Overpass returned {len(places)} places in viewport")
        return places

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()
