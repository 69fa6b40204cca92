"""
FastAPI application for TRANSITSIM.

Runs the bus simulation server-side and exposes it to a map client:
- active routes as polyline draw requests
- agent markers, as a REST snapshot and a WebSocket stream
- viewport reports that drive route regeneration
- health and metrics

Run with ``python -m api.main`` or ``uvicorn api.main:app``.
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api.config import settings
from api.live import include_in_app as include_live_routes
from api.middleware import setup_middleware
from api.routers import simulation as simulation_router
from api.routers import system as system_router
from api.state import SimulationState
from transitsim import __version__
from transitsim.config import configure_logging
from transitsim.models import ViewportBounds

configure_logging(settings.log_level)
logger = logging.getLogger(__name__)


def initial_bounds() -> ViewportBounds:
    return ViewportBounds(
        min_lng=settings.initial_min_lng,
        max_lng=settings.initial_max_lng,
        min_lat=settings.initial_min_lat,
        max_lat=settings.initial_max_lat,
        zoom=settings.initial_zoom,
    )


def create_app(simulation: Optional[SimulationState] = None) -> FastAPI:
    """
    Build the API application.

    Args:
        simulation: Simulation to serve. Tests pass one wired to fake
            providers; otherwise one is built for the initial viewport at
            startup.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        sim = simulation or SimulationState(initial_bounds())
        app.state.simulation = sim
        if settings.simulation_autostart:
            sim.start()
        else:
            logger.info("Autostart disabled, simulation idle until started")
        try:
            yield
        finally:
            await sim.stop()

    application = FastAPI(
        title="TRANSITSIM API",
        description="Simulated buses driving real road routes around the visible map.",
        version=__version__,
        docs_url="/api/docs",
        openapi_url="/api/openapi.json",
        lifespan=lifespan,
    )

    setup_middleware(application, debug=settings.is_development)
    application.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )

    application.include_router(system_router.router)
    application.include_router(simulation_router.router)
    include_live_routes(application)
    return application


app = create_app()


if __name__ == "__main__":
    uvicorn.run(
        "api.main:app",
        host=settings.api_host,
        port=settings.api_port,
        log_level=settings.log_level,
    )
