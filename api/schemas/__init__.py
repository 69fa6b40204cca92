"""
TRANSITSIM API Pydantic schemas.

Re-exports all schema classes:
    from api.schemas import ViewportRequest, RoutesResponse, ...
"""

# Common
from .common import PlaceModel, ViewportRequest  # noqa: F401

# Simulation
from .simulation import (  # noqa: F401
    ViewportResponse,
    RouteModel,
    RoutesResponse,
    MarkerModel,
    AgentsResponse,
    HealthResponse,
)
