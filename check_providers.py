"""
check_providers.py — smoke test for the chatbot AI providers.

Runs in three steps:
  1. Lists which providers have a key configured (.env / environment)
  2. Optionally sends a short probe message through each enabled adapter
  3. Optionally queries the health endpoint of a running server

Usage:
    python check_providers.py                 # configuration only
    python check_providers.py --probe         # + one real call per provider
    python check_providers.py --server http://localhost:3001
"""

import argparse
import asyncio
import logging
import sys

import httpx

from app.core.config import settings
from app.gateway.gateway import ChatGateway
from app.gateway.types import ChatMessage, ProviderError, Role

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(name)s %(levelname)s: %(message)s",
)
logger = logging.getLogger("check_providers")

PROBE_MESSAGE = "Reply with the single word: pong"


def _section(title: str) -> None:
    print("\n" + "=" * 60)
    print(f"  {title}")
    print("=" * 60)


async def probe_providers(gateway: ChatGateway) -> int:
    """Call each enabled provider once. Returns the number that answered."""
    messages = [
        ChatMessage(role=Role.SYSTEM, content="You are a connectivity check. Keep answers short."),
        ChatMessage(role=Role.USER, content=PROBE_MESSAGE),
    ]
    ok = 0
    for provider in gateway.enabled_providers:
        try:
            text = await provider.invoke(messages)
        except ProviderError as e:
            print(f"  ✗ {provider.name}: {e.cause}")
            continue
        except Exception as e:
            logger.exception("Unexpected error probing %s", provider.name)
            print(f"  ✗ {provider.name}: {type(e).__name__}: {e}")
            continue
        ok += 1
        print(f"  ✓ {provider.name}: {text[:60]!r}")
    return ok


async def check_server(base_url: str) -> bool:
    async with httpx.AsyncClient(base_url=base_url, timeout=10) as c:
        try:
            r = await c.get("/api/chatbot/health")
            r.raise_for_status()
        except httpx.HTTPError as e:
            print(f"  ✗ Health check failed: {e}")
            return False

        health = r.json()
        print(f"  Status: {health['status']}")
        for p in health["providers"]:
            print(f"    {'✓' if p['enabled'] else '·'} {p['name']}")
        return health["status"] == "OK"


async def main() -> int:
    parser = argparse.ArgumentParser(description="Check chatbot AI provider configuration")
    parser.add_argument("--probe", action="store_true", help="send one probe message to each enabled provider")
    parser.add_argument("--server", default="", help="base URL of a running server to health-check")
    args = parser.parse_args()

    gateway = ChatGateway.from_settings(settings)

    # ── Step 1: Configuration ────────────────────────────────
    _section("Step 1: Configured providers")
    for p in gateway.get_status():
        print(f"  {p['priority']}. {p['name']:<18} {'✓ configured' if p['enabled'] else '✗ no key'}")

    if not gateway.has_enabled_provider:
        print("\n  ❌ No providers configured. Set at least one of:")
        print("     GROQ_API_KEY, GOOGLE_AI_API_KEY, HUGGINGFACE_API_KEY, TOGETHER_API_KEY, COHERE_API_KEY")
        return 1

    exit_code = 0

    # ── Step 2: Probe ────────────────────────────────────────
    if args.probe:
        _section("Step 2: Probe each provider")
        answered = await probe_providers(gateway)
        print(f"\n  {answered}/{len(gateway.enabled_providers)} providers answered")
        if answered == 0:
            exit_code = 1

    # ── Step 3: Running server ───────────────────────────────
    if args.server:
        _section(f"Step 3: Health check {args.server}")
        if not await check_server(args.server):
            exit_code = 1

    return exit_code


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
