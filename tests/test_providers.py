"""Tests for provider adapters (mocked HTTP, plus one local slow server)."""

from __future__ import annotations

import asyncio
import json
import time
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from app.gateway.providers import (
    ADAPTER_REGISTRY,
    CohereAdapter,
    GoogleAIAdapter,
    GroqAdapter,
    HuggingFaceAdapter,
    TogetherAIAdapter,
    get_adapter,
)
from app.gateway.types import ChatMessage, ProviderConfig, ProviderError, Role

MESSAGES = [
    ChatMessage(role=Role.SYSTEM, content="You are a certificate assistant."),
    ChatMessage(role=Role.USER, content="What formats?"),
    ChatMessage(role=Role.ASSISTANT, content="PDF and images."),
    ChatMessage(role=Role.USER, content="How do I verify?"),
]


def _make_httpx_response(status_code: int, json_data=None, text: str = "") -> httpx.Response:
    """Create a proper httpx.Response with request set."""
    request = httpx.Request("POST", "https://example.com")
    if json_data is not None:
        return httpx.Response(status_code, json=json_data, request=request)
    return httpx.Response(status_code, text=text, request=request)


def _mock_openai_response(text="Use the blockchain hash."):
    return _make_httpx_response(
        200,
        json_data={
            "choices": [{"message": {"role": "assistant", "content": text}, "finish_reason": "stop"}],
            "model": "llama-3.1-8b-instant",
        },
    )


def _patched_client(response=None, side_effect=None):
    """Patch httpx.AsyncClient in the providers module; returns (patcher, client)."""
    patcher = patch("app.gateway.providers.httpx.AsyncClient")
    mock_client_cls = patcher.start()
    mock_client = AsyncMock()
    if side_effect is not None:
        mock_client.post.side_effect = side_effect
    else:
        mock_client.post.return_value = response
    mock_client.__aenter__ = AsyncMock(return_value=mock_client)
    mock_client.__aexit__ = AsyncMock(return_value=None)
    mock_client_cls.return_value = mock_client
    return patcher, mock_client_cls, mock_client


@pytest.fixture
def http():
    """Yields a factory that installs a mocked AsyncClient for one test."""
    patchers = []

    def _install(response=None, side_effect=None):
        patcher, cls, client = _patched_client(response, side_effect)
        patchers.append(patcher)
        return cls, client

    yield _install
    for p in patchers:
        p.stop()


# ==========================================================================
# Test: OpenAI-compatible (Groq, Together AI)
# ==========================================================================


class TestGroqAdapter:
    @pytest.mark.asyncio
    async def test_success(self, http):
        _, client = http(_mock_openai_response("  Use the blockchain hash.  "))
        adapter = GroqAdapter(api_key="gsk-test")

        text = await adapter.invoke(MESSAGES)

        assert text == "Use the blockchain hash."
        assert client.post.await_count == 1

    @pytest.mark.asyncio
    async def test_request_shape(self, http):
        _, client = http(_mock_openai_response())
        adapter = GroqAdapter(api_key="gsk-test")

        await adapter.invoke(MESSAGES)

        args, kwargs = client.post.call_args
        assert args[0] == "https://api.groq.com/openai/v1/chat/completions"
        assert kwargs["headers"]["Authorization"] == "Bearer gsk-test"
        payload = kwargs["json"]
        assert payload["model"] == "llama-3.1-8b-instant"
        assert payload["max_tokens"] == 500
        assert payload["temperature"] == 0.7
        assert [m["role"] for m in payload["messages"]] == ["system", "user", "assistant", "user"]
        assert payload["messages"][-1]["content"] == "How do I verify?"

    @pytest.mark.asyncio
    async def test_timeout_from_config(self, http):
        cls, _ = http(_mock_openai_response())
        adapter = GroqAdapter(api_key="k", config=ProviderConfig(name="Groq", env_key="groq_api_key", timeout_seconds=3))

        await adapter.invoke(MESSAGES)

        assert cls.call_args.kwargs["timeout"] == 3

    @pytest.mark.asyncio
    async def test_http_error_status(self, http):
        http(_make_httpx_response(429, text="rate limited"))
        adapter = GroqAdapter(api_key="k")

        with pytest.raises(ProviderError) as exc_info:
            await adapter.invoke(MESSAGES)

        assert exc_info.value.status_code == 429
        assert exc_info.value.provider == "Groq"
        assert str(exc_info.value) == "Groq: API error: 429"

    @pytest.mark.asyncio
    async def test_timeout(self, http):
        http(side_effect=httpx.TimeoutException("timeout"))
        adapter = GroqAdapter(api_key="k")

        with pytest.raises(ProviderError, match="timeout"):
            await adapter.invoke(MESSAGES)

    @pytest.mark.asyncio
    async def test_transport_error(self, http):
        http(side_effect=httpx.ConnectError("refused"))
        adapter = GroqAdapter(api_key="k")

        with pytest.raises(ProviderError, match="transport error"):
            await adapter.invoke(MESSAGES)

    @pytest.mark.asyncio
    async def test_non_json_body(self, http):
        http(_make_httpx_response(200, text="<html>oops</html>"))
        adapter = GroqAdapter(api_key="k")

        with pytest.raises(ProviderError, match="unexpected response shape"):
            await adapter.invoke(MESSAGES)

    @pytest.mark.asyncio
    async def test_empty_choices(self, http):
        http(_make_httpx_response(200, json_data={"choices": []}))
        adapter = GroqAdapter(api_key="k")

        with pytest.raises(ProviderError, match="empty completion"):
            await adapter.invoke(MESSAGES)

    @pytest.mark.asyncio
    async def test_whitespace_content(self, http):
        http(_mock_openai_response("   \n "))
        adapter = GroqAdapter(api_key="k")

        with pytest.raises(ProviderError, match="empty completion"):
            await adapter.invoke(MESSAGES)

    @pytest.mark.asyncio
    async def test_rejects_sequence_ending_with_assistant(self, http):
        _, client = http(_mock_openai_response())
        adapter = GroqAdapter(api_key="k")

        with pytest.raises(ValueError):
            await adapter.invoke(MESSAGES[:-1])
        client.post.assert_not_called()


@pytest.fixture
async def slow_upstream():
    """Local HTTP server that sends a 200 body one byte every 50ms."""
    body = json.dumps({"choices": [{"message": {"role": "assistant", "content": "late" + " " * 20}}]}).encode()
    handlers: list[asyncio.Task] = []

    async def handle(reader: asyncio.StreamReader, writer: asyncio.StreamWriter):
        handlers.append(asyncio.current_task())
        try:
            head = await reader.readuntil(b"\r\n\r\n")
            length = 0
            for line in head.decode().split("\r\n"):
                if line.lower().startswith("content-length:"):
                    length = int(line.split(":", 1)[1])
            await reader.readexactly(length)

            writer.write(
                b"HTTP/1.1 200 OK\r\nContent-Type: application/json\r\n"
                + f"Content-Length: {len(body)}\r\n\r\n".encode()
            )
            for i in range(len(body)):
                writer.write(body[i : i + 1])
                await writer.drain()
                await asyncio.sleep(0.05)
        except (ConnectionError, asyncio.IncompleteReadError):
            pass
        finally:
            writer.close()

    server = await asyncio.start_server(handle, "127.0.0.1", 0)
    port = server.sockets[0].getsockname()[1]
    yield f"http://127.0.0.1:{port}/v1/chat/completions"

    for task in handlers:
        task.cancel()
    server.close()
    await server.wait_closed()


class TestRequestDeadline:
    @pytest.mark.asyncio
    async def test_slow_body_hits_total_timeout(self, slow_upstream):
        """Each chunk arrives well within the read timeout; the whole reply does not."""

        class LocalGroq(GroqAdapter):
            api_url = slow_upstream

        config = ProviderConfig(name="Groq", env_key="groq_api_key", timeout_seconds=0.5)
        adapter = LocalGroq(api_key="k", config=config)

        start = time.monotonic()
        with pytest.raises(ProviderError, match=r"timeout after 0\.5s"):
            await adapter.invoke(MESSAGES)

        assert time.monotonic() - start < 1.5


class TestTogetherAIAdapter:
    @pytest.mark.asyncio
    async def test_success(self, http):
        _, client = http(_mock_openai_response("Together says hi"))
        adapter = TogetherAIAdapter(api_key="tg")

        assert await adapter.invoke(MESSAGES) == "Together says hi"

        args, kwargs = client.post.call_args
        assert args[0] == "https://api.together.xyz/v1/chat/completions"
        assert kwargs["json"]["model"] == "meta-llama/Llama-3.3-70B-Instruct-Turbo"


# ==========================================================================
# Test: Google AI Studio
# ==========================================================================


class TestGoogleAIAdapter:
    @pytest.mark.asyncio
    async def test_success_and_flattened_prompt(self, http):
        _, client = http(
            _make_httpx_response(
                200,
                json_data={"candidates": [{"content": {"parts": [{"text": "Scan the QR code."}]}}]},
            )
        )
        adapter = GoogleAIAdapter(api_key="goog")

        assert await adapter.invoke(MESSAGES) == "Scan the QR code."

        args, kwargs = client.post.call_args
        assert args[0].endswith("/models/gemini-1.5-flash:generateContent")
        assert kwargs["params"] == {"key": "goog"}
        assert "Authorization" not in kwargs["headers"]
        prompt = kwargs["json"]["contents"][0]["parts"][0]["text"]
        assert prompt == "You are a certificate assistant.\n\nUser: How do I verify?"
        assert kwargs["json"]["generationConfig"] == {"maxOutputTokens": 500, "temperature": 0.7}

    @pytest.mark.asyncio
    async def test_blocked_prompt(self, http):
        http(_make_httpx_response(200, json_data={"candidates": [], "promptFeedback": {"blockReason": "SAFETY"}}))
        adapter = GoogleAIAdapter(api_key="goog")

        with pytest.raises(ProviderError, match="empty completion"):
            await adapter.invoke(MESSAGES)

    @pytest.mark.asyncio
    async def test_server_error(self, http):
        http(_make_httpx_response(500, json_data={"error": {"message": "internal"}}))
        adapter = GoogleAIAdapter(api_key="goog")

        with pytest.raises(ProviderError) as exc_info:
            await adapter.invoke(MESSAGES)
        assert exc_info.value.status_code == 500
        # Upstream body never ends up in the error text
        assert "internal" not in str(exc_info.value)


# ==========================================================================
# Test: Hugging Face
# ==========================================================================


class TestHuggingFaceAdapter:
    @pytest.mark.asyncio
    async def test_list_envelope(self, http):
        _, client = http(_make_httpx_response(200, json_data=[{"generated_text": "Sure thing."}]))
        adapter = HuggingFaceAdapter(api_key="hf")

        assert await adapter.invoke(MESSAGES) == "Sure thing."

        args, kwargs = client.post.call_args
        assert args[0] == "https://api-inference.huggingface.co/models/microsoft/DialoGPT-large"
        assert kwargs["json"]["inputs"] == "How do I verify?"
        assert kwargs["json"]["parameters"]["max_length"] == 500

    @pytest.mark.asyncio
    async def test_dict_envelope(self, http):
        http(_make_httpx_response(200, json_data={"generated_text": "Dict reply"}))
        adapter = HuggingFaceAdapter(api_key="hf")

        assert await adapter.invoke(MESSAGES) == "Dict reply"

    @pytest.mark.asyncio
    async def test_empty_list(self, http):
        http(_make_httpx_response(200, json_data=[]))
        adapter = HuggingFaceAdapter(api_key="hf")

        with pytest.raises(ProviderError):
            await adapter.invoke(MESSAGES)

    @pytest.mark.asyncio
    async def test_model_loading_503(self, http):
        http(_make_httpx_response(503, json_data={"error": "Model is currently loading"}))
        adapter = HuggingFaceAdapter(api_key="hf")

        with pytest.raises(ProviderError) as exc_info:
            await adapter.invoke(MESSAGES)
        assert exc_info.value.status_code == 503


# ==========================================================================
# Test: Cohere
# ==========================================================================


class TestCohereAdapter:
    @pytest.mark.asyncio
    async def test_success_and_preamble(self, http):
        _, client = http(_make_httpx_response(200, json_data={"text": "Upload a PDF.", "generation_id": "g1"}))
        adapter = CohereAdapter(api_key="co")

        assert await adapter.invoke(MESSAGES) == "Upload a PDF."

        args, kwargs = client.post.call_args
        assert args[0] == "https://api.cohere.ai/v1/chat"
        payload = kwargs["json"]
        assert payload["message"] == "How do I verify?"
        assert payload["preamble"] == "You are a certificate assistant."
        assert payload["model"] == "command-r"

    @pytest.mark.asyncio
    async def test_missing_text(self, http):
        http(_make_httpx_response(200, json_data={"generation_id": "g1"}))
        adapter = CohereAdapter(api_key="co")

        with pytest.raises(ProviderError):
            await adapter.invoke(MESSAGES)


# ==========================================================================
# Test: Registry
# ==========================================================================


class TestAdapterRegistry:
    def test_registry_covers_all_providers(self):
        assert set(ADAPTER_REGISTRY) == {"Groq", "Google AI Studio", "Hugging Face", "Together AI", "Cohere"}

    def test_get_adapter(self):
        adapter = get_adapter("Cohere", "co-key")
        assert isinstance(adapter, CohereAdapter)
        assert adapter.api_key == "co-key"

    def test_get_adapter_unknown(self):
        with pytest.raises(ValueError):
            get_adapter("Nope", "k")
