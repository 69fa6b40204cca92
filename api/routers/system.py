"""
System / health API router.
"""

import logging

from fastapi import APIRouter, Depends

from api.schemas import HealthResponse
from api.state import SimulationState, get_simulation
from transitsim.metrics import metrics
from transitsim.resilience import CircuitState

router = APIRouter(tags=["System"])

logger = logging.getLogger(__name__)


@router.get("/api/health", response_model=HealthResponse)
async def health_check(sim: SimulationState = Depends(get_simulation)):
    """
    Simulation health.

    Reports "degraded" while the place lookup circuit breaker is open; the
    simulation keeps running with whatever routes it has.
    """
    breaker = sim.places_breaker
    breakers = {breaker.name: breaker.get_status()} if breaker is not None else {}
    degraded = any(b["state"] == CircuitState.OPEN.value for b in breakers.values())

    return HealthResponse(
        status="degraded" if degraded else "healthy",
        running=sim.running,
        routes=len(sim.orchestrator.routes),
        agents=len(sim.fleet),
        generating=sim.orchestrator.is_generating,
        circuit_breakers=breakers,
        metrics=metrics.get_summary(),
    )


@router.get("/")
async def root():
    return {"service": "transitsim", "docs": "/api/docs"}
