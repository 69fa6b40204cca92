"""
Simulation API router.

Handles the active route set, current agent markers, and viewport reports
from the map client (the "view settled" signal).
"""

import logging

from fastapi import APIRouter, Depends, Query

from api.schemas import (
    AgentsResponse,
    MarkerModel,
    RouteModel,
    RoutesResponse,
    ViewportRequest,
    ViewportResponse,
)
from api.state import SimulationState, get_simulation

router = APIRouter(prefix="/api", tags=["Simulation"])

logger = logging.getLogger(__name__)


@router.get("/routes", response_model=RoutesResponse)
async def list_routes(sim: SimulationState = Depends(get_simulation)):
    """Active routes with their polyline draw style."""
    routes = [
        RouteModel(
            **route.to_dict(),
            width=sim.config.route_line_width,
            opacity=sim.config.route_line_opacity,
        )
        for route in sim.orchestrator.routes.values()
    ]
    return RoutesResponse(
        count=len(routes),
        generating=sim.orchestrator.is_generating,
        routes=routes,
    )


@router.get("/agents", response_model=AgentsResponse)
async def list_agents(
    include_icon: bool = Query(False, description="Include the rendered SVG icon per marker"),
    sim: SimulationState = Depends(get_simulation),
):
    """Latest marker state for every agent."""
    markers = [MarkerModel(**m) for m in sim.sink.markers(include_icon=include_icon)]
    return AgentsResponse(count=len(markers), agents=markers)


@router.post("/viewport", response_model=ViewportResponse)
async def report_viewport(
    viewport: ViewportRequest,
    sim: SimulationState = Depends(get_simulation),
):
    """
    Report that the map finished panning/zooming.

    Starts a new generation cycle when the view moved or zoomed far enough
    and no cycle is already running.
    """
    bounds = viewport.to_bounds()
    significant = sim.orchestrator.is_significant_change(bounds)
    accepted = sim.running
    if accepted:
        sim.view.settle(bounds)
    else:
        logger.info("Viewport reported while simulation is stopped, ignoring")

    return ViewportResponse(
        accepted=accepted,
        significant_change=significant,
        generating=sim.orchestrator.is_generating,
    )
