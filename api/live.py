"""
Live agent stream for TRANSITSIM.

Pushes marker snapshots over a WebSocket so the map client can move its
bus markers without polling.
"""

import asyncio
import logging
from datetime import datetime, timezone

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from api.config import settings

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/live", tags=["live"])


def build_frame(sim) -> dict:
    """One stream packet: current markers plus route set status."""
    markers = sim.sink.markers(include_icon=False)
    return {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "routes": len(sim.orchestrator.routes),
        "generating": sim.orchestrator.is_generating,
        "agents": markers,
    }


@router.websocket("/stream")
async def stream_agents(websocket: WebSocket):
    """
    WebSocket endpoint for agent marker streaming.

    Sends a JSON frame every ``stream_interval_ms`` until the client leaves.
    """
    await websocket.accept()
    sim = websocket.app.state.simulation
    interval = settings.stream_interval_ms / 1000.0
    logger.info("Agent stream client connected")

    try:
        while True:
            await websocket.send_json(build_frame(sim))
            await asyncio.sleep(interval)
    except WebSocketDisconnect:
        logger.info("Agent stream client disconnected")


def include_in_app(app):
    """Include this router in the main FastAPI app."""
    app.include_router(router)
    logger.info("Included live agent stream routes")
