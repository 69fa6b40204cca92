"""Route, agent and health schemas."""

from typing import Dict, List, Optional

from pydantic import BaseModel

from .common import PlaceModel


class ViewportResponse(BaseModel):
    accepted: bool
    significant_change: bool
    generating: bool


class RouteModel(BaseModel):
    id: str
    coordinates: List[List[float]]
    start: PlaceModel
    end: PlaceModel
    color: str
    width: float
    opacity: float


class RoutesResponse(BaseModel):
    count: int
    generating: bool
    routes: List[RouteModel]


class MarkerModel(BaseModel):
    route_id: str
    lng: float
    lat: float
    rotation: float
    color: str
    title: str
    tooltip: str
    icon: Optional[str] = None


class AgentsResponse(BaseModel):
    count: int
    agents: List[MarkerModel]


class HealthResponse(BaseModel):
    status: str
    running: bool
    routes: int
    agents: int
    generating: bool
    circuit_breakers: Dict[str, Dict]
    metrics: Dict
