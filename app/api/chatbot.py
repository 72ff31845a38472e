"""Chatbot endpoints for the multi-provider assistant."""

from datetime import datetime, timezone

from fastapi import APIRouter, Depends

from app.core.dependencies import get_chat_gateway, get_chat_service, get_client_id
from app.gateway.gateway import ChatGateway
from app.gateway.types import ChatMessage
from app.schemas.chat import ChatRequest, ChatResponse, ErrorResponse, HealthResponse, ProviderStatus
from app.services.chat_service import ChatService

router = APIRouter(prefix="/chatbot", tags=["chatbot"])


@router.post(
    "",
    response_model=ChatResponse,
    responses={400: {"model": ErrorResponse}, 429: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
)
async def chat(
    body: ChatRequest,
    service: ChatService = Depends(get_chat_service),
    client_id: str = Depends(get_client_id),
):
    history = [ChatMessage(role=item.role, content=item.content) for item in body.conversation_history]
    reply = await service.reply(body.message, history, client_id=client_id)
    return ChatResponse(response=reply.text, timestamp=reply.timestamp, provider=reply.provider)


@router.get("/health", response_model=HealthResponse)
async def health(gateway: ChatGateway = Depends(get_chat_gateway)):
    providers = [ProviderStatus(name=p["name"], enabled=p["enabled"]) for p in gateway.get_status()]
    return HealthResponse(
        status="OK" if gateway.has_enabled_provider else "No providers configured",
        providers=providers,
        timestamp=datetime.now(timezone.utc),
    )
