from collections.abc import AsyncGenerator

import pytest
from httpx import ASGITransport, AsyncClient

from app.core.config import settings

# Override settings for tests
settings.app_env = "development"
settings.chat_max_message_length = 1000
settings.chat_history_limit = 4

from app.core.dependencies import get_chat_gateway, get_rate_limiter  # noqa: E402
from app.gateway.gateway import ChatGateway  # noqa: E402
from app.gateway.rate_limiter import SlidingWindowRateLimiter  # noqa: E402
from app.main import app  # noqa: E402
from tests.fakes import FakeClock, make_provider  # noqa: E402


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def call_log() -> list[str]:
    return []


@pytest.fixture
def rate_limiter(clock: FakeClock) -> SlidingWindowRateLimiter:
    return SlidingWindowRateLimiter(max_requests=3, window_seconds=60, clock=clock)


@pytest.fixture
def gateway(call_log: list[str]) -> ChatGateway:
    """A fails, B answers "Hello!"."""
    return ChatGateway(
        [
            make_provider("A", 1, fail=True, call_log=call_log),
            make_provider("B", 2, reply="Hello!", call_log=call_log),
        ]
    )


@pytest.fixture
async def client(gateway: ChatGateway, rate_limiter: SlidingWindowRateLimiter) -> AsyncGenerator[AsyncClient, None]:
    app.dependency_overrides[get_chat_gateway] = lambda: gateway
    app.dependency_overrides[get_rate_limiter] = lambda: rate_limiter
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
    app.dependency_overrides.clear()
