"""Message Normalizer — canonical chat sequence ↔ provider shapes.

Providers disagree on request shape. Some take the whole message list,
others only a single prompt string or a separate system/context field.
These helpers do the shaping so adapters stay small:
  - OpenAI-style message lists
  - Latest user message / system context extraction
  - Flattened single-prompt rendering
  - Reply text cleanup
"""

from __future__ import annotations

import re

from app.gateway.types import ChatMessage, Role

# Three or more blank lines collapse to one
_EXCESS_NEWLINES = re.compile(r"\n{3,}")


def to_openai_messages(messages: list[ChatMessage]) -> list[dict[str, str]]:
    """Render the sequence as an OpenAI chat ``messages`` array."""
    return [m.to_dict() for m in messages]


def latest_user_message(messages: list[ChatMessage]) -> str:
    """Content of the last user turn, or empty string if there is none."""
    for message in reversed(messages):
        if message.role == Role.USER:
            return message.content
    return ""


def system_context(messages: list[ChatMessage]) -> str:
    """Content of the first system turn, or empty string."""
    for message in messages:
        if message.role == Role.SYSTEM:
            return message.content
    return ""


def flatten_prompt(messages: list[ChatMessage]) -> str:
    """Single prompt string for providers without a message list.

    Prepends the system context, when present, to the latest user message.
    """
    user_message = latest_user_message(messages)
    context = system_context(messages)
    if context:
        return f"{context}\n\nUser: {user_message}"
    return user_message


def clean_reply(text: str | None) -> str:
    """Trim a provider reply. Returns empty string for missing text.

    Idempotent, so it is safe to apply at both the adapter and gateway.
    """
    if not text or not isinstance(text, str):
        return ""
    text = text.replace("\r\n", "\n").strip()
    return _EXCESS_NEWLINES.sub("\n\n", text)
