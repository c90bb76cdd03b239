"""FastAPI route definitions for the booking assistant API."""

from __future__ import annotations

import asyncio
import logging

from fastapi import APIRouter, HTTPException, Request

from src.api.extraction import extract_user_details
from src.api.schemas import ChatRequest, ChatResponse, HealthResponse

logger = logging.getLogger(__name__)

router = APIRouter()


def _get_agent(request: Request):
    """Retrieve the run orchestrator built during the FastAPI lifespan."""
    agent = getattr(request.app.state, "agent", None)
    if agent is None:
        raise HTTPException(
            status_code=503,
            detail="The assistant is still starting up. Please try again in a moment.",
        )
    return agent


# ── Endpoints ────────────────────────────────────────────────────────


@router.get("/health", response_model=HealthResponse)
async def health_check():
    """Health check endpoint."""
    return HealthResponse()


@router.post("/chat", response_model=ChatResponse)
async def chat(request: ChatRequest, http_request: Request):
    """Answer one chat question with a full assistant run.

    The run polls the backend with blocking sleeps, so it executes in a
    worker thread and the event loop keeps serving other requests.
    """
    agent = _get_agent(http_request)
    request_id = getattr(http_request.state, "request_id", "?")

    details = extract_user_details(request.question)
    logger.info(
        "[%s] Extracted fields: %s",
        request_id,
        ", ".join(k for k, v in details.as_dict().items() if v) or "none",
    )

    try:
        reply = await asyncio.to_thread(agent.run, request.question, details)
    except Exception as e:
        # run() already converts run failures; this only catches wiring bugs.
        logger.exception("[%s] Error processing chat request", request_id)
        raise HTTPException(
            status_code=500,
            detail="An internal error occurred. Please try again.",
        ) from e

    return ChatResponse(response=reply)
