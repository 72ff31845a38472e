from fastapi import Depends, Request
from slowapi.util import get_remote_address

from app.core.config import settings
from app.gateway.gateway import ChatGateway
from app.gateway.rate_limiter import SlidingWindowRateLimiter
from app.services.chat_service import ChatService


def build_chat_gateway() -> ChatGateway:
    return ChatGateway.from_settings(settings)


def build_rate_limiter() -> SlidingWindowRateLimiter:
    return SlidingWindowRateLimiter(
        max_requests=settings.chat_rate_limit,
        window_seconds=settings.chat_rate_window_seconds,
    )


def get_chat_gateway(request: Request) -> ChatGateway:
    return request.app.state.chat_gateway


def get_rate_limiter(request: Request) -> SlidingWindowRateLimiter:
    return request.app.state.chat_rate_limiter


def get_chat_service(
    gateway: ChatGateway = Depends(get_chat_gateway),
    rate_limiter: SlidingWindowRateLimiter = Depends(get_rate_limiter),
) -> ChatService:
    return ChatService(
        gateway=gateway,
        rate_limiter=rate_limiter,
        max_message_length=settings.chat_max_message_length,
        history_limit=settings.chat_history_limit,
    )


def get_client_id(request: Request) -> str:
    """Rate-limit identity: the caller's remote address."""
    return get_remote_address(request) or "unknown"
