"""FastAPI server for Calendar Intel.

Run with:
    uvicorn calendar_intel.server:app --reload --host 0.0.0.0 --port 8000
"""

from __future__ import annotations

import logging
import uuid
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware

from calendar_intel.api.dependencies import build_services
from calendar_intel.api.routes import router
from calendar_intel.config import CORS_ORIGINS, SERVER_HOST, SERVER_PORT
from calendar_intel.services.metrics import metrics

# ── Logging ──────────────────────────────────────────────────────────
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-8s %(name)s - %(message)s",
)
logger = logging.getLogger(__name__)


# ── Lifespan: initialise / tear-down shared resources ────────────────
@asynccontextmanager
async def lifespan(application: FastAPI):
    """Build the router and the analysis services once and keep them in app state."""
    logger.info("Building services…")
    application.state.services = build_services()
    logger.info("Services ready.")
    yield
    flushed = metrics.flush()
    logger.debug("Flushed %d metric data points on shutdown", flushed)


# ── FastAPI application ──────────────────────────────────────────────
app = FastAPI(
    title="Calendar Intel",
    description=(
        "Scheduling intelligence: pattern learning, focus-time protection "
        "and AI meeting scheduling over a Nylas calendar."
    ),
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ── Request-ID middleware ────────────────────────────────────────────
@app.middleware("http")
async def add_request_id(request: Request, call_next) -> Response:
    """Attach a unique request ID to every request for log correlation.

    The ID is echoed back in the ``X-Request-ID`` response header.
    """
    request_id = request.headers.get("X-Request-ID", str(uuid.uuid4()))
    request.state.request_id = request_id
    logger.info("[%s] %s %s", request_id, request.method, request.url.path)
    response = await call_next(request)
    response.headers["X-Request-ID"] = request_id
    return response


# ── Register routes ──────────────────────────────────────────────────
app.include_router(router, prefix="/api")


@app.get("/")
async def root():
    """Root endpoint with API info."""
    return {
        "service": "Calendar Intel",
        "version": "0.1.0",
        "docs": "/docs",
        "health": "/api/health",
    }


if __name__ == "__main__":
    logger.info("Starting Calendar Intel API server on %s:%d", SERVER_HOST, SERVER_PORT)
    uvicorn.run(
        "calendar_intel.server:app",
        host=SERVER_HOST,
        port=SERVER_PORT,
        reload=True,
    )
