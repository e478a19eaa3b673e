"""Tests for the language-model client (HTTP mocked with httpx.MockTransport)."""

import json

import httpx
import pytest

from carbonmatch_mcp.oracle import IntentOracle, OracleError, build_intent_prompt, build_strategy_prompt


def _oracle(handler) -> IntentOracle:
    oracle = IntentOracle(api_key="secret-key", model="test-model", base_url="https://llm.example/v1/")
    oracle._client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return oracle


def _reply(text: str) -> httpx.Response:
    return httpx.Response(200, json={"candidates": [{"content": {"parts": [{"text": text}]}}]})


class TestPrompts:
    """Test prompt construction."""

    def test_intent_prompt(self):
        """The query and language name are embedded."""
        prompt = build_intent_prompt("2kg apples", "zh")
        assert "User request: 2kg apples" in prompt
        assert "The user writes in Chinese." in prompt

    def test_strategy_prompt(self):
        """The entity name is embedded."""
        assert "Activity: exotic fruit" in build_strategy_prompt("exotic fruit", "en")


class TestIntentOracle:
    """Test requests, response parsing and error sanitising."""

    @pytest.mark.asyncio
    async def test_analyze(self):
        """The first candidate's text is returned."""
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["body"] = json.loads(request.content)
            return _reply('{"intent": "general_chat"}')

        oracle = _oracle(handler)
        assert await oracle.analyze("hello") == '{"intent": "general_chat"}'
        assert seen["url"] == "https://llm.example/v1/models/test-model:generateContent?key=secret-key"
        assert "hello" in seen["body"]["contents"][0]["parts"][0]["text"]
        await oracle.close()

    @pytest.mark.asyncio
    async def test_propose_search_strategy(self):
        """Strategy requests return raw text."""
        oracle = _oracle(lambda request: _reply('{"sectors": ["Energy"]}'))
        assert await oracle.propose_search_strategy("power") == '{"sectors": ["Energy"]}'

    @pytest.mark.asyncio
    async def test_not_configured(self):
        """Without an API key no request is made."""
        oracle = IntentOracle(api_key="")
        assert not oracle.is_configured
        with pytest.raises(OracleError, match="not configured"):
            await oracle.analyze("hello")

    @pytest.mark.asyncio
    async def test_http_error_status(self):
        """Error statuses raise OracleError."""
        oracle = _oracle(lambda request: httpx.Response(429))
        with pytest.raises(OracleError, match="HTTP 429"):
            await oracle.analyze("hello")

    @pytest.mark.asyncio
    async def test_unexpected_shape(self):
        """Responses without candidate text raise OracleError."""
        oracle = _oracle(lambda request: httpx.Response(200, json={"candidates": []}))
        with pytest.raises(OracleError, match="unexpected response shape"):
            await oracle.analyze("hello")

    @pytest.mark.asyncio
    async def test_network_error_hides_key(self):
        """Connection errors never leak the API key."""
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        oracle = _oracle(handler)
        with pytest.raises(OracleError) as exc_info:
            await oracle.analyze("hello")
        assert "secret-key" not in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_timeout(self):
        """Timeouts raise OracleError."""
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("slow", request=request)

        with pytest.raises(OracleError, match="timed out"):
            await _oracle(handler).analyze("hello")

    @pytest.mark.asyncio
    async def test_close_resets_client(self):
        """close() drops the client so it is recreated lazily."""
        oracle = _oracle(lambda request: _reply("x"))
        await oracle.close()
        assert oracle._client is None
