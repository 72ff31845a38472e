"""Chat service: validation, rate limiting and context assembly.

Sits between the HTTP route and the gateway:
  1. Validate the user message (non-blank, bounded length)
  2. Admit the caller through the sliding-window limiter
  3. Build the canonical sequence: system prompt + recent history + message
  4. Run one fallback pass and map the outcome to a reply or a ChatError
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime, timezone

from app.core.exceptions import (
    InvalidInputError,
    RateLimitedError,
    ServiceBusyError,
    ServiceNotConfiguredError,
)
from app.core.metrics import CHAT_REQUESTS
from app.gateway.gateway import ChatGateway
from app.gateway.rate_limiter import SlidingWindowRateLimiter
from app.gateway.types import (
    AllProvidersFailedError,
    ChatMessage,
    NoProvidersConfiguredError,
    Role,
)
from app.services.system_prompt import SYSTEM_PROMPT

logger = logging.getLogger(__name__)


@dataclass
class ChatReply:
    text: str
    provider: str
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class ChatService:
    def __init__(
        self,
        gateway: ChatGateway,
        rate_limiter: SlidingWindowRateLimiter,
        max_message_length: int = 1000,
        history_limit: int = 4,
        system_prompt: str = SYSTEM_PROMPT,
    ):
        self.gateway = gateway
        self.rate_limiter = rate_limiter
        self.max_message_length = max_message_length
        self.history_limit = history_limit
        self.system_prompt = system_prompt

    def validate_message(self, message: str) -> None:
        if not isinstance(message, str) or not message.strip():
            raise InvalidInputError("Message is required and must be a non-empty string")
        if len(message) > self.max_message_length:
            raise InvalidInputError(
                f"Message too long. Please keep messages under {self.max_message_length} characters."
            )

    def build_messages(self, message: str, history: Iterable[ChatMessage] = ()) -> list[ChatMessage]:
        """System prompt, then the last ``history_limit`` turns, then the new message."""
        history = list(history)
        recent = history[-self.history_limit :] if self.history_limit > 0 else []
        return [
            ChatMessage(role=Role.SYSTEM, content=self.system_prompt),
            *recent,
            ChatMessage(role=Role.USER, content=message),
        ]

    async def reply(
        self,
        message: str,
        history: Iterable[ChatMessage] = (),
        client_id: str = "unknown",
    ) -> ChatReply:
        """Produce a reply for one chat request.

        Raises:
            InvalidInputError: blank or oversized message.
            RateLimitedError: caller exceeded the window.
            ServiceNotConfiguredError: no provider has a credential.
            ServiceBusyError: every configured provider failed.
        """
        try:
            self.validate_message(message)
        except InvalidInputError:
            CHAT_REQUESTS.labels(outcome="invalid_input").inc()
            raise

        if not await self.rate_limiter.check_and_record(client_id):
            CHAT_REQUESTS.labels(outcome="rate_limited").inc()
            logger.info("Chat request rejected by rate limiter", extra={"client": client_id})
            raise RateLimitedError()

        messages = self.build_messages(message, history)
        result = await self.gateway.execute(messages)

        try:
            result.raise_for_status()
        except NoProvidersConfiguredError as e:
            CHAT_REQUESTS.labels(outcome="no_providers").inc()
            raise ServiceNotConfiguredError("No AI providers configured. Please contact the administrator.") from e
        except AllProvidersFailedError as e:
            CHAT_REQUESTS.labels(outcome="all_failed").inc()
            raise ServiceBusyError() from e

        CHAT_REQUESTS.labels(outcome="success").inc()
        return ChatReply(text=result.text, provider=result.provider)
