"""Provider Adapters — protocol-level handling for each upstream LLM.

Each adapter translates the canonical message sequence into the provider's
HTTP request, performs exactly one POST, and extracts the reply text.

Provider-specific behaviors:
  - Groq: OpenAI-compatible chat completions
  - Google AI Studio: generateContent with a single flattened prompt, key in query
  - Hugging Face: Inference API, latest user message only, list or dict envelope
  - Together AI: OpenAI-compatible chat completions
  - Cohere: v1 chat, latest user message + system preamble
"""

from __future__ import annotations

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

import httpx

from app.gateway.normalizer import (
    clean_reply,
    flatten_prompt,
    latest_user_message,
    system_context,
    to_openai_messages,
)
from app.gateway.types import (
    ChatMessage,
    ProviderConfig,
    ProviderError,
    validate_conversation,
)

logger = logging.getLogger(__name__)


@dataclass
class ProviderRequest:
    """Everything needed for the single outbound call."""

    url: str
    payload: dict[str, Any]
    headers: dict[str, str] = field(default_factory=dict)
    params: dict[str, str] = field(default_factory=dict)


class BaseProviderAdapter(ABC):
    """Base class for all provider adapters."""

    name: str = ""
    default_model: str = ""

    def __init__(self, api_key: str, config: ProviderConfig | None = None):
        self.api_key = api_key
        self.config = config or ProviderConfig(name=self.name, env_key="")

    @property
    def model(self) -> str:
        return self.config.model or self.default_model

    @abstractmethod
    def build_request(self, messages: list[ChatMessage]) -> ProviderRequest:
        """Translate the canonical sequence into this provider's request."""
        ...

    @abstractmethod
    def parse_response(self, data: Any) -> str | None:
        """Extract reply text from this provider's response envelope.

        May raise KeyError/IndexError/TypeError on an unexpected shape.
        """
        ...

    def _bearer_headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

    async def invoke(self, messages: list[ChatMessage]) -> str:
        """Send one request and return the trimmed, non-empty reply.

        Raises:
            ProviderError: on non-2xx status, timeout, transport error,
                unparseable body, or empty reply.
        """
        validate_conversation(messages)
        request = self.build_request(messages)
        timeout = self.config.timeout_seconds
        start = time.monotonic()

        # httpx timeouts are per phase; wait_for bounds the whole exchange
        try:
            async with httpx.AsyncClient(timeout=timeout) as client:
                resp = await asyncio.wait_for(
                    client.post(
                        request.url,
                        json=request.payload,
                        headers=request.headers,
                        params=request.params or None,
                    ),
                    timeout=timeout,
                )
        except (httpx.TimeoutException, asyncio.TimeoutError):
            raise ProviderError(self.name, f"timeout after {timeout}s") from None
        except httpx.HTTPError as e:
            raise ProviderError(self.name, f"transport error: {type(e).__name__}") from e

        elapsed_ms = int((time.monotonic() - start) * 1000)

        if not resp.is_success:
            raise ProviderError(
                self.name,
                f"API error: {resp.status_code}",
                status_code=resp.status_code,
            )

        try:
            data = resp.json()
            text = self.parse_response(data)
        except (ValueError, KeyError, IndexError, TypeError, AttributeError) as e:
            raise ProviderError(
                self.name,
                f"unexpected response shape ({type(e).__name__})",
                status_code=resp.status_code,
            ) from e

        reply = clean_reply(text)
        if not reply:
            raise ProviderError(self.name, "empty completion", status_code=resp.status_code)

        logger.debug("%s replied in %dms (%d chars)", self.name, elapsed_ms, len(reply))
        return reply


# ---------------------------------------------------------------------------
# OpenAI-compatible adapters (Groq, Together AI)
# ---------------------------------------------------------------------------


class OpenAICompatibleAdapter(BaseProviderAdapter):
    """Chat completions endpoint that accepts the full message list."""

    api_url: str = ""

    def build_request(self, messages: list[ChatMessage]) -> ProviderRequest:
        return ProviderRequest(
            url=self.api_url,
            headers=self._bearer_headers(),
            payload={
                "model": self.model,
                "messages": to_openai_messages(messages),
                "max_tokens": self.config.max_tokens,
                "temperature": self.config.temperature,
            },
        )

    def parse_response(self, data: Any) -> str | None:
        choices = data.get("choices") or []
        if not choices:
            return None
        return (choices[0].get("message") or {}).get("content")


class GroqAdapter(OpenAICompatibleAdapter):
    name = "Groq"
    default_model = "llama-3.1-8b-instant"
    api_url = "https://api.groq.com/openai/v1/chat/completions"


class TogetherAIAdapter(OpenAICompatibleAdapter):
    name = "Together AI"
    default_model = "meta-llama/Llama-3.3-70B-Instruct-Turbo"
    api_url = "https://api.together.xyz/v1/chat/completions"


# ---------------------------------------------------------------------------
# Google AI Studio (Gemini)
# ---------------------------------------------------------------------------


class GoogleAIAdapter(BaseProviderAdapter):
    """Gemini generateContent; takes one flattened prompt, no message list."""

    name = "Google AI Studio"
    default_model = "gemini-1.5-flash"
    api_url_template = "https://generativelanguage.googleapis.com/v1beta/models/{model}:generateContent"

    def build_request(self, messages: list[ChatMessage]) -> ProviderRequest:
        return ProviderRequest(
            url=self.api_url_template.format(model=self.model),
            headers={"Content-Type": "application/json"},
            params={"key": self.api_key},
            payload={
                "contents": [{"parts": [{"text": flatten_prompt(messages)}]}],
                "generationConfig": {
                    "maxOutputTokens": self.config.max_tokens,
                    "temperature": self.config.temperature,
                },
            },
        )

    def parse_response(self, data: Any) -> str | None:
        candidates = data.get("candidates") or []
        if not candidates:
            # Blocked prompts come back with promptFeedback and no candidates
            block_reason = (data.get("promptFeedback") or {}).get("blockReason")
            if block_reason:
                logger.info("Google AI blocked prompt: %s", block_reason)
            return None
        parts = (candidates[0].get("content") or {}).get("parts") or []
        return "".join(p.get("text", "") for p in parts)


# ---------------------------------------------------------------------------
# Hugging Face Inference API
# ---------------------------------------------------------------------------


class HuggingFaceAdapter(BaseProviderAdapter):
    """Text-generation inference; sees only the latest user message."""

    name = "Hugging Face"
    default_model = "microsoft/DialoGPT-large"
    api_url_template = "https://api-inference.huggingface.co/models/{model}"

    def build_request(self, messages: list[ChatMessage]) -> ProviderRequest:
        return ProviderRequest(
            url=self.api_url_template.format(model=self.model),
            headers=self._bearer_headers(),
            payload={
                "inputs": latest_user_message(messages),
                "parameters": {
                    "max_length": self.config.max_tokens,
                    "temperature": self.config.temperature,
                },
            },
        )

    def parse_response(self, data: Any) -> str | None:
        # Envelope is either [{"generated_text": ...}] or {"generated_text": ...}
        if isinstance(data, list):
            return data[0].get("generated_text") if data else None
        return data.get("generated_text")


# ---------------------------------------------------------------------------
# Cohere
# ---------------------------------------------------------------------------


class CohereAdapter(BaseProviderAdapter):
    """Cohere v1 chat; latest user message with the system prompt as preamble."""

    name = "Cohere"
    default_model = "command-r"
    api_url = "https://api.cohere.ai/v1/chat"

    def build_request(self, messages: list[ChatMessage]) -> ProviderRequest:
        return ProviderRequest(
            url=self.api_url,
            headers=self._bearer_headers(),
            payload={
                "model": self.model,
                "message": latest_user_message(messages),
                "preamble": system_context(messages),
                "max_tokens": self.config.max_tokens,
                "temperature": self.config.temperature,
            },
        )

    def parse_response(self, data: Any) -> str | None:
        return data.get("text")


# ---------------------------------------------------------------------------
# Adapter registry
# ---------------------------------------------------------------------------

ADAPTER_REGISTRY: dict[str, type[BaseProviderAdapter]] = {
    GroqAdapter.name: GroqAdapter,
    GoogleAIAdapter.name: GoogleAIAdapter,
    HuggingFaceAdapter.name: HuggingFaceAdapter,
    TogetherAIAdapter.name: TogetherAIAdapter,
    CohereAdapter.name: CohereAdapter,
}


def get_adapter(name: str, api_key: str, config: ProviderConfig | None = None) -> BaseProviderAdapter:
    """Factory: get the appropriate adapter for a provider name."""
    cls = ADAPTER_REGISTRY.get(name)
    if cls is None:
        raise ValueError(f"No adapter registered for provider: {name}")
    return cls(api_key=api_key, config=config)
