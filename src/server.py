"""HTTP front end for the booking assistant.

Serves ``POST /chat`` (one assistant run per question) and ``GET /health``.
The orchestrator is built once at startup and shared by every request;
buffered backend metrics are flushed on shutdown.

Run with:
    booking-assistant-server                      # host/port from SERVER_HOST / SERVER_PORT
    uvicorn src.server:app --host 0.0.0.0 --port 3000
"""

from __future__ import annotations

import logging
import time
import uuid
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware

from src.agent import create_booking_agent
from src.api.routes import router
from src.config import ASSISTANT_ID, CALENDAR_ID, CORS_ORIGINS, SERVER_HOST, SERVER_PORT
from src.services.metrics import metrics

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-8s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(application: FastAPI):
    logger.info("Connecting assistant %s to calendar %s", ASSISTANT_ID, CALENDAR_ID)
    application.state.agent = create_booking_agent()
    try:
        yield
    finally:
        application.state.agent = None
        metrics.flush()


app = FastAPI(
    title="Booking Assistant",
    description="Chat with an assistant that checks calendar availability and books appointments.",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def add_request_id(request: Request, call_next) -> Response:
    """Tag each request with an ``X-Request-ID`` and log how long it took.

    A chat request spans a whole assistant run, so the elapsed time is the
    run's wall time as the caller saw it.
    """
    request_id = request.headers.get("X-Request-ID", str(uuid.uuid4()))
    request.state.request_id = request_id
    t0 = time.perf_counter()
    response = await call_next(request)
    logger.info(
        "[%s] %s %s -> %d (%.0fms)",
        request_id, request.method, request.url.path, response.status_code,
        (time.perf_counter() - t0) * 1000,
    )
    response.headers["X-Request-ID"] = request_id
    return response


app.include_router(router)


@app.get("/")
async def root():
    """Service name plus the routes a client can call."""
    return {
        "service": app.title,
        "version": app.version,
        "docs": app.docs_url,
        "endpoints": {"chat": "POST /chat", "health": "GET /health"},
    }


def main() -> None:
    logger.info("Starting booking assistant on %s:%d", SERVER_HOST, SERVER_PORT)
    uvicorn.run(app, host=SERVER_HOST, port=SERVER_PORT)


if __name__ == "__main__":
    main()
