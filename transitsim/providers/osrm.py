"""
OSRM directions lookup.

Requests a driving route between two points and returns its full GeoJSON
geometry. Anything other than a successful JSON response with at least one
route of two or more coordinates counts as "no route". Each request stands
alone: a failed pair never affects the next one.
"""

import logging
from typing import List, Optional

import httpx

from transitsim.config import settings
from transitsim.models import GeoPoint

logger = logging.getLogger(__name__)


class NoRouteError(Exception):
    """The directions service answered, but without a usable route."""
    pass


def parse_route_geometry(payload: dict) -> List[GeoPoint]:
    """
    Extract the first route's coordinates from an OSRM response.

    Raises:
        NoRouteError: If the payload holds no usable geometry
    """
    routes = payload.get("routes") if isinstance(payload, dict) else None
    if not routes:
        raise NoRouteError(f"no routes in response (code={payload.get('code') if isinstance(payload, dict) else None})")

    try:
        coordinates = routes[0]["geometry"]["coordinates"]
        points = [GeoPoint(lng=float(c[0]), lat=float(c[1])) for c in coordinates]
    except (KeyError, IndexError, TypeError, ValueError) as e:
        raise NoRouteError(f"malformed route geometry: {e}")

    if len(points) < 2:
        raise NoRouteError(f"route geometry has {len(points)} point(s)")
    return points


class OsrmRouteProvider:
    """Route lookup backed by an OSRM ``/route/v1/driving`` endpoint."""

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        base_url: Optional[str] = None,
        profile: str = "driving",
    ):
        self.base_url = (base_url or settings.osrm_url).rstrip("/")
        self.profile = profile
        self._client = client or httpx.AsyncClient(timeout=settings.http_timeout_s)
        self._owns_client = client is None

    def route_url(self, start: GeoPoint, end: GeoPoint) -> str:
        return (
            f"{self.base_url}/route/v1/{self.profile}/"
            f"{start.lng},{start.lat};{end.lng},{end.lat}"
        )

    async def _get_route(self, start: GeoPoint, end: GeoPoint) -> dict:
        response = await self._client.get(
            self.route_url(start, end),
            params={"overview": "full", "geometries": "geojson"},
        )
        if not response.is_success:
            raise httpx.HTTPStatusError(
                f"OSRM API error: {response.status_code} {response.reason_phrase}",
                request=response.request,
                response=response,
            )

        content_type = response.headers.get("content-type", "")
        if "application/json" not in content_type:
            raise NoRouteError(f"OSRM API returned non-JSON response: {response.text[:200]}")

        return response.json()

    async def route_between(self, start: GeoPoint, end: GeoPoint) -> Optional[List[GeoPoint]]:
        try:
            payload = await self._get_route(start, end)
            return parse_route_geometry(payload)
        except NoRouteError as e:
            logger.info(f"No route between {start} and {end}: {e}")
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Error fetching route: {e}")
        return None

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()
