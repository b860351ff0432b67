"""tests for client with mocking."""

import pytest
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, patch

from canvas_copilot.core.client import ClaudeClient, ClientProtocol, CompletionResult, MockClient


class TestCompletionResult:
    """tests for CompletionResult dataclass."""

    def test_defaults(self):
        r = CompletionResult(text="hello")
        assert r.input_tokens == 0
        assert r.output_tokens == 0
        assert r.cost_usd == 0.0


class TestMockClient:
    """tests for MockClient."""

    @pytest.mark.asyncio
    async def test_default_response(self):
        client = MockClient()
        result = await client.complete("anything")
        assert result.text == client.default_response
        assert client.calls == ["anything"]

    @pytest.mark.asyncio
    async def test_matches_substring_case_insensitively(self):
        client = MockClient(responses={"Mind Map": "root\n- child"})
        result = await client.complete("brainstorm a mind map about tea")
        assert result.text == "root\n- child"

    def test_satisfies_protocol(self):
        assert isinstance(MockClient(), ClientProtocol)
        assert isinstance(ClaudeClient(), ClientProtocol)


async def _aiter(items):
    for item in items:
        yield item


def _sdk_client(events):
    sdk = MagicMock()
    sdk.connect = AsyncMock()
    sdk.query = AsyncMock()
    sdk.disconnect = AsyncMock()
    sdk.receive_response = MagicMock(return_value=_aiter(events))
    return sdk


class TestClaudeClient:
    """tests for ClaudeClient with the sdk mocked out."""

    def test_defaults(self, tmp_path):
        client = ClaudeClient(cwd=tmp_path)
        assert client.cwd == tmp_path
        assert client.model == "opus"
        assert ClaudeClient().cwd == Path.cwd()

    @pytest.mark.asyncio
    async def test_collects_text_and_usage(self):
        block = MagicMock(spec=["text"])
        block.text = "hello"
        message = MagicMock(spec=["content"])
        message.content = [block]
        final = MagicMock(spec=["usage", "total_cost_usd"])
        final.usage = {"input_tokens": 12, "output_tokens": 3}
        final.total_cost_usd = 0.01
        sdk = _sdk_client([message, final])

        with patch("canvas_copilot.core.client.ClaudeAgentOptions") as options, \
                patch("canvas_copilot.core.client.ClaudeSDKClient", return_value=sdk):
            result = await ClaudeClient().complete("say hello")

        assert result.text == "hello"
        assert result.input_tokens == 12
        assert result.output_tokens == 3
        assert result.cost_usd == 0.01
        sdk.query.assert_awaited_once_with("say hello")
        sdk.disconnect.assert_awaited_once()
        assert options.call_args.kwargs["tools"] == []

    @pytest.mark.asyncio
    async def test_errors_wrapped_and_disconnected(self):
        sdk = _sdk_client([])
        sdk.connect.side_effect = ConnectionError("offline")

        with patch("canvas_copilot.core.client.ClaudeAgentOptions"), \
                patch("canvas_copilot.core.client.ClaudeSDKClient", return_value=sdk):
            with pytest.raises(RuntimeError, match="offline"):
                await ClaudeClient().complete("hi")
        sdk.disconnect.assert_awaited_once()
