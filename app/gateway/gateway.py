"""Chat Gateway — ordered provider fallback.

Main entry point for getting a chat reply from the upstream providers:
  1. Validates the canonical message sequence
  2. Walks enabled providers in ascending priority order
  3. Invokes each adapter once; the first non-empty reply wins
  4. Logs and records every failure, then moves on
  5. Returns a FallbackResult (success, no_providers, or all_failed)

Providers are tried strictly one after another. Nothing is retried within
a pass.

Usage:
    gateway = ChatGateway.from_settings(settings)

    result = await gateway.execute(messages)
    result.raise_for_status()
    print(result.provider, result.text)
"""

from __future__ import annotations

import logging
import time

from app.core.metrics import PROVIDER_CALLS, PROVIDER_LATENCY
from app.gateway.normalizer import clean_reply
from app.gateway.providers import get_adapter
from app.gateway.types import (
    DEFAULT_PROVIDER_CONFIGS,
    ChatMessage,
    FallbackResult,
    FallbackStatus,
    ProviderAttempt,
    ProviderConfig,
    ProviderDescriptor,
    ProviderError,
    validate_conversation,
)

logger = logging.getLogger(__name__)


class ChatGateway:
    """Sequential fallback over a fixed, priority-ordered provider list."""

    def __init__(self, providers: list[ProviderDescriptor]):
        # sorted() is stable: equal priorities keep construction order
        self._providers: tuple[ProviderDescriptor, ...] = tuple(sorted(providers, key=lambda p: p.priority))

    @classmethod
    def from_settings(
        cls,
        settings,
        provider_configs: tuple[ProviderConfig, ...] = DEFAULT_PROVIDER_CONFIGS,
    ) -> ChatGateway:
        """Build descriptors from configuration.

        A provider is enabled iff its credential setting is non-empty.
        Priority follows the order of ``provider_configs``.
        """
        descriptors: list[ProviderDescriptor] = []
        for priority, base_config in enumerate(provider_configs, start=1):
            api_key = (getattr(settings, base_config.env_key, "") or "").strip()
            config = ProviderConfig(
                name=base_config.name,
                env_key=base_config.env_key,
                model=base_config.model,
                timeout_seconds=settings.provider_timeout_seconds,
                max_tokens=settings.provider_max_tokens,
                temperature=settings.provider_temperature,
            )
            adapter = get_adapter(config.name, api_key, config=config) if api_key else None
            descriptors.append(
                ProviderDescriptor(
                    name=config.name,
                    enabled=bool(api_key),
                    priority=priority,
                    adapter=adapter,
                )
            )
        return cls(descriptors)

    @property
    def providers(self) -> tuple[ProviderDescriptor, ...]:
        return self._providers

    @property
    def enabled_providers(self) -> list[ProviderDescriptor]:
        return [p for p in self._providers if p.enabled]

    @property
    def has_enabled_provider(self) -> bool:
        return any(p.enabled for p in self._providers)

    async def execute(self, messages: list[ChatMessage]) -> FallbackResult:
        """Try enabled providers in order until one replies.

        Raises:
            ValueError: if ``messages`` is empty or does not end with a user turn.
        """
        validate_conversation(messages)

        enabled = self.enabled_providers
        if not enabled:
            logger.error("No AI providers configured")
            return FallbackResult(status=FallbackStatus.NO_PROVIDERS)

        attempts: list[ProviderAttempt] = []

        for provider in enabled:
            logger.info("Trying %s...", provider.name)
            start = time.monotonic()
            try:
                text = clean_reply(await provider.invoke(messages))
                if not text:
                    raise ProviderError(provider.name, "empty completion")
            except ProviderError as e:
                attempts.append(self._record_failure(provider, str(e), e.status_code, start))
                continue
            except Exception as e:
                # Unexpected adapter bugs must not break the fallback chain
                logger.exception("Unexpected error from %s", provider.name)
                attempts.append(self._record_failure(provider, f"{type(e).__name__}: {e}", None, start))
                continue

            latency = time.monotonic() - start
            latency_ms = int(latency * 1000)
            PROVIDER_CALLS.labels(provider=provider.name, outcome="success").inc()
            PROVIDER_LATENCY.labels(provider=provider.name).observe(latency)
            logger.info(
                "%s succeeded in %dms",
                provider.name,
                latency_ms,
                extra={"provider": provider.name, "latency_ms": latency_ms},
            )
            return FallbackResult(
                status=FallbackStatus.SUCCESS,
                text=text,
                provider=provider.name,
                attempts=attempts,
            )

        logger.error(
            "All AI providers failed: %s",
            "; ".join(f"{a.provider} ({a.error})" for a in attempts),
        )
        return FallbackResult(status=FallbackStatus.ALL_FAILED, attempts=attempts)

    @staticmethod
    def _record_failure(
        provider: ProviderDescriptor,
        error: str,
        status_code: int | None,
        start: float,
    ) -> ProviderAttempt:
        latency = time.monotonic() - start
        attempt = ProviderAttempt(
            provider=provider.name,
            error=error,
            status_code=status_code,
            latency_ms=int(latency * 1000),
        )
        PROVIDER_CALLS.labels(provider=provider.name, outcome="error").inc()
        PROVIDER_LATENCY.labels(provider=provider.name).observe(latency)
        logger.warning(
            "%s failed: %s",
            provider.name,
            error,
            extra={"provider": attempt.provider, "status_code": attempt.status_code, "latency_ms": attempt.latency_ms},
        )
        return attempt

    def get_status(self) -> list[dict]:
        """Provider list for the health endpoint."""
        return [{"name": p.name, "enabled": p.enabled, "priority": p.priority} for p in self._providers]
