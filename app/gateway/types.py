"""Core types and DTOs for the chat gateway."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from app.gateway.providers import BaseProviderAdapter


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class Role(str, Enum):
    """Chat roles understood by every provider."""

    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


class FallbackStatus(str, Enum):
    """Outcome of one pass over the provider list."""

    SUCCESS = "success"
    NO_PROVIDERS = "no_providers"  # Nothing configured (operator problem)
    ALL_FAILED = "all_failed"  # Every configured provider failed (transient)


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


class GatewayError(Exception):
    """Base class for gateway failures."""


class ProviderError(GatewayError):
    """A single upstream provider failed to produce a usable reply."""

    def __init__(self, provider: str, cause: str, status_code: int | None = None):
        super().__init__(f"{provider}: {cause}")
        self.provider = provider
        self.cause = cause
        self.status_code = status_code


class NoProvidersConfiguredError(GatewayError):
    """No provider has a credential configured."""

    def __init__(self, message: str = "No AI providers configured"):
        super().__init__(message)


class AllProvidersFailedError(GatewayError):
    """Every enabled provider was tried and none returned a usable reply."""

    def __init__(self, attempts: list[ProviderAttempt] | None = None):
        self.attempts = attempts or []
        names = ", ".join(a.provider for a in self.attempts) or "none"
        super().__init__(f"All AI providers failed (tried: {names})")


# ---------------------------------------------------------------------------
# Canonical chat message
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ChatMessage:
    """A single role-tagged chat turn."""

    role: Role
    content: str

    def __post_init__(self) -> None:
        # Accept plain strings ("user") but reject anything outside the enum
        try:
            role = Role(self.role)
        except ValueError:
            raise ValueError(f"Invalid chat role: {self.role!r}") from None
        object.__setattr__(self, "role", role)

    def to_dict(self) -> dict[str, str]:
        return {"role": self.role.value, "content": self.content}


def validate_conversation(messages: list[ChatMessage]) -> None:
    """Check the canonical sequence every adapter expects.

    Raises:
        ValueError: if the sequence is empty or does not end with a user turn.
    """
    if not messages:
        raise ValueError("Message sequence must not be empty")
    if messages[-1].role != Role.USER:
        raise ValueError("Last message must have role 'user'")


# ---------------------------------------------------------------------------
# Provider configuration and descriptors
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ProviderConfig:
    """Static connection and generation settings for one provider."""

    name: str
    env_key: str  # Settings attribute holding the credential
    model: str = ""
    timeout_seconds: float = 10.0
    max_tokens: int = 500
    temperature: float = 0.7


# Ordered by priority: earlier entries are tried first
DEFAULT_PROVIDER_CONFIGS: tuple[ProviderConfig, ...] = (
    ProviderConfig(name="Groq", env_key="groq_api_key", model="llama-3.1-8b-instant"),
    ProviderConfig(name="Google AI Studio", env_key="google_ai_api_key", model="gemini-1.5-flash"),
    ProviderConfig(name="Hugging Face", env_key="huggingface_api_key", model="microsoft/DialoGPT-large"),
    ProviderConfig(
        name="Together AI",
        env_key="together_api_key",
        model="meta-llama/Llama-3.3-70B-Instruct-Turbo",
    ),
    ProviderConfig(name="Cohere", env_key="cohere_api_key", model="command-r"),
)


@dataclass(frozen=True)
class ProviderDescriptor:
    """A provider slot in the fallback chain.

    Created once at startup and never mutated. ``enabled`` reflects whether
    a credential was present in configuration at that time.
    """

    name: str
    enabled: bool
    priority: int
    adapter: BaseProviderAdapter | None = None

    async def invoke(self, messages: list[ChatMessage]) -> str:
        if self.adapter is None:
            raise ProviderError(self.name, "no adapter configured")
        return await self.adapter.invoke(messages)


# ---------------------------------------------------------------------------
# Fallback result
# ---------------------------------------------------------------------------


@dataclass
class ProviderAttempt:
    """A failed provider call recorded during one fallback pass."""

    provider: str
    error: str
    status_code: int | None = None
    latency_ms: int = 0


@dataclass
class FallbackResult:
    """Structured outcome of ``ChatGateway.execute``."""

    status: FallbackStatus
    text: str = ""
    provider: str = ""
    attempts: list[ProviderAttempt] = field(default_factory=list)

    def raise_for_status(self) -> None:
        """Raise the terminal error kind for a non-success result."""
        if self.status == FallbackStatus.NO_PROVIDERS:
            raise NoProvidersConfiguredError()
        if self.status == FallbackStatus.ALL_FAILED:
            raise AllProvidersFailedError(self.attempts)
