"""ai client used by the overlay panel to (re)generate answers.

the real client goes through claude-agent-sdk. the mock client returns
canned answers for tests and --mock runs.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Protocol, runtime_checkable

from claude_agent_sdk import ClaudeAgentOptions, ClaudeSDKClient

logger = logging.getLogger(__name__)


@dataclass
class CompletionResult:
    """answer text plus usage."""

    text: str
    input_tokens: int = 0
    output_tokens: int = 0
    cost_usd: float = 0.0


@runtime_checkable
class ClientProtocol(Protocol):
    """protocol for answer generators (real or mock)."""

    async def complete(self, prompt: str) -> CompletionResult:
        ...


class MockClient:
    """mock client for testing without api calls."""

    def __init__(self, responses: Optional[dict[str, str]] = None, delay: float = 0.0):
        """responses: prompt substring -> answer, matched case-insensitively."""
        self.responses = responses or {}
        self.calls: list[str] = []
        self.delay = delay
        self.default_response = "## mock answer\n\n- point 1\n- point 2"

    async def complete(self, prompt: str) -> CompletionResult:
        self.calls.append(prompt)
        if self.delay:
            await asyncio.sleep(self.delay)

        prompt_lower = prompt.lower()
        for key, response in self.responses.items():
            if key.lower() in prompt_lower:
                return CompletionResult(text=response)
        return CompletionResult(text=self.default_response)


class ClaudeClient:
    """client for claude via claude-agent-sdk, one connection per query."""

    def __init__(self, cwd: Optional[Path] = None, model: str = "opus"):
        self.cwd = cwd or Path.cwd()
        self.model = model

    async def complete(self, prompt: str) -> CompletionResult:
        options = ClaudeAgentOptions(
            cwd=str(self.cwd),
            model=self.model,
            tools=[],
            allowed_tools=[],
        )
        client = ClaudeSDKClient(options)
        text_parts: list[str] = []
        result = CompletionResult(text="")
        try:
            await client.connect()
            await client.query(prompt)
            async for event in client.receive_response():
                content = getattr(getattr(event, "message", event), "content", None)
                if isinstance(content, list):
                    text_parts.extend(block.text for block in content if hasattr(block, "text"))
                usage = getattr(event, "usage", None)
                if isinstance(usage, dict):
                    result.input_tokens = usage.get("input_tokens", 0)
                    result.output_tokens = usage.get("output_tokens", 0)
                cost = getattr(event, "total_cost_usd", None)
                if cost is not None:
                    result.cost_usd = cost
        except Exception as e:
            raise RuntimeError(f"claude api error: {e}") from e
        finally:
            try:
                await client.disconnect()
            except Exception as e:
                logger.debug("disconnect failed: %s", e)

        result.text = "\n".join(text_parts)
        logger.debug("completion: %d chars", len(result.text))
        return result
