"""Sentry error tracking integration.

Initializes Sentry SDK if SENTRY_DSN env variable is set. Chat messages
and conversation history never leave the process: request bodies are
dropped from events before sending.
"""

import logging

from app.core.config import settings
from app.core.logging import request_id_var

logger = logging.getLogger(__name__)


def scrub_chat_event(event: dict, hint: dict) -> dict:
    """``before_send`` hook: drop request bodies, tag the request id."""
    request = event.get("request")
    if isinstance(request, dict):
        request.pop("data", None)

    request_id = request_id_var.get()
    if request_id != "-":
        event.setdefault("tags", {})["request_id"] = request_id
    return event


def init_sentry() -> bool:
    """Initialize Sentry if SENTRY_DSN is configured. Returns True if enabled."""
    if not settings.sentry_dsn:
        logger.debug("Sentry DSN not configured, skipping")
        return False

    import sentry_sdk
    from sentry_sdk.integrations.fastapi import FastApiIntegration
    from sentry_sdk.integrations.httpx import HttpxIntegration

    sentry_sdk.init(
        dsn=settings.sentry_dsn,
        environment=settings.app_env,
        traces_sample_rate=0.1 if settings.app_env == "production" else 1.0,
        send_default_pii=False,
        before_send=scrub_chat_event,
        integrations=[
            FastApiIntegration(transaction_style="endpoint"),
            HttpxIntegration(),
        ],
    )
    logger.info("Sentry initialized (env=%s, providers=%s)", settings.app_env, ",".join(settings.configured_providers))
    return True
