"""
HTTP middleware for the TRANSITSIM API.

One middleware does the per-request bookkeeping:
- assigns (or accepts) an X-Request-ID and echoes it back
- logs one JSON line per request, except for high-frequency polling paths
- turns unhandled exceptions into a sanitized 500 carrying the request id
"""
import json
import logging
import time
import uuid
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Callable, Optional

from fastapi import FastAPI
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

REQUEST_ID_HEADER = "X-Request-ID"

request_id_ctx: ContextVar[Optional[str]] = ContextVar("request_id", default=None)


def get_request_id() -> Optional[str]:
    return request_id_ctx.get()


class StructuredLogger:
    """JSON-per-line logger tagged with the current request id."""

    def __init__(self, name: str, service: str = "transitsim-api"):
        self.logger = logging.getLogger(name)
        self.service = service

    def log(self, level: int, message: str, **fields):
        entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": logging.getLevelName(level),
            "service": self.service,
            "message": message,
            "request_id": get_request_id(),
        }
        entry.update(fields)
        self.logger.log(level, json.dumps({k: v for k, v in entry.items() if v is not None}))

    def info(self, message: str, **fields):
        self.log(logging.INFO, message, **fields)

    def error(self, message: str, **fields):
        self.log(logging.ERROR, message, **fields)


access_log = StructuredLogger("transitsim.access")


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Request id, access log line and last-resort error handling."""

    # The map client polls these several times a second
    QUIET_PATHS = frozenset({"/api/health", "/api/agents"})

    def __init__(self, app, debug: bool = False):
        super().__init__(app)
        self.debug = debug

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
        token = request_id_ctx.set(request_id)
        started = time.perf_counter()
        try:
            try:
                response = await call_next(request)
            except Exception as e:
                access_log.error(
                    "Unhandled exception",
                    method=request.method,
                    path=request.url.path,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                response = JSONResponse(
                    status_code=500,
                    content={
                        "error": "Internal Server Error",
                        "detail": str(e) if self.debug else "An internal error occurred.",
                        "request_id": request_id,
                    },
                )

            response.headers[REQUEST_ID_HEADER] = request_id
            if request.url.path not in self.QUIET_PATHS:
                access_log.info(
                    "Request completed",
                    method=request.method,
                    path=request.url.path,
                    status_code=response.status_code,
                    duration_ms=round((time.perf_counter() - started) * 1000, 2),
                    client_ip=request.client.host if request.client else None,
                )
            return response
        finally:
            request_id_ctx.reset(token)


def setup_middleware(app: FastAPI, debug: bool = False):
    app.add_middleware(RequestContextMiddleware, debug=debug)
