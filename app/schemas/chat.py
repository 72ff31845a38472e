"""Pydantic request/response models for the chatbot endpoints."""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class ChatHistoryItem(BaseModel):
    """One prior turn sent back by the client."""

    role: Literal["system", "user", "assistant"]
    content: str


class ChatRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    message: str
    conversation_history: list[ChatHistoryItem] = Field(default_factory=list, alias="conversationHistory")


class ChatResponse(BaseModel):
    response: str
    timestamp: datetime
    provider: str


class ProviderStatus(BaseModel):
    name: str
    enabled: bool


class HealthResponse(BaseModel):
    status: Literal["OK", "No providers configured"]
    providers: list[ProviderStatus]
    timestamp: datetime


class ErrorResponse(BaseModel):
    error: str
