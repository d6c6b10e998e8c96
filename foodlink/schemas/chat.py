"""Schemas for the FAQ chatbot."""
from typing import Any

from pydantic import BaseModel, Field


class ChatRequest(BaseModel):
    # Validated by the endpoint so a bad message is a 400, not a 422
    message: Any = None
    session_id: str | None = Field(default=None, max_length=64)


class ChatResponse(BaseModel):
    reply: str
    intent: str | None = None
