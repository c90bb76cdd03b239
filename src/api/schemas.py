"""Pydantic schemas for the FastAPI endpoints."""

from __future__ import annotations

from pydantic import BaseModel, Field


class ChatRequest(BaseModel):
    """Incoming chat question from the widget."""

    question: str = Field(..., min_length=1, max_length=2000, description="The user's message")


class ChatResponse(BaseModel):
    """The assistant's answer."""

    response: str = Field(..., description="The assistant's reply")


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = "ok"
    service: str = "booking-assistant"
