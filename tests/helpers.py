"""Stubs shared by the test modules."""

from __future__ import annotations

import asyncio
import copy
from typing import Any

from bugbuster.ai.client import ModelClient, ModelResponse
from bugbuster.ai.tools.base import Tool
from bugbuster.messenger.base import DeliveryChannel


def text_response(text: str, input_tokens: int = 100, output_tokens: int = 20) -> ModelResponse:
    return ModelResponse.from_blocks(
        [{"type": "text", "text": text}],
        input_tokens=input_tokens,
        output_tokens=output_tokens,
        stop_reason="end_turn",
    )


def tool_response(
    name: str,
    tool_input: dict[str, Any] | None = None,
    call_id: str = "toolu_1",
    text: str | None = None,
    input_tokens: int = 100,
    output_tokens: int = 20,
) -> ModelResponse:
    blocks: list[dict[str, Any]] = []
    if text is not None:
        blocks.append({"type": "text", "text": text})
    blocks.append({"type": "tool_use", "id": call_id, "name": name, "input": tool_input or {}})
    return ModelResponse.from_blocks(
        blocks, input_tokens=input_tokens, output_tokens=output_tokens, stop_reason="tool_use"
    )


class ScriptedClient(ModelClient):
    """Returns queued responses in order; an exception in the script is raised.

    A callable entry is called with the messages and may be async.
    """

    def __init__(self, responses=None, default: ModelResponse | None = None):
        self.responses = list(responses or [])
        self.default = default
        self.calls: list[list[dict[str, Any]]] = []
        self.systems: list[str] = []
        self.tools: list[Any] = []

    @property
    def model_name(self) -> str:
        return "test-model"

    async def complete(self, system, messages, tools=None):
        self.calls.append(copy.deepcopy(messages))
        self.systems.append(system)
        self.tools.append(tools)
        if self.responses:
            nxt = self.responses.pop(0)
        elif self.default is not None:
            nxt = self.default
        else:
            return text_response("ok")

        if isinstance(nxt, BaseException):
            raise nxt
        if callable(nxt):
            result = nxt(messages)
            if asyncio.iscoroutine(result):
                result = await result
            return result
        return nxt


class RecordingDelivery(DeliveryChannel):
    def __init__(self, fail: bool = False):
        super().__init__()
        self.fail = fail
        self.posts: list[tuple[str, str]] = []
        self.closed = False

    async def post(self, channel_id: str, text: str) -> None:
        if self.fail:
            raise ConnectionError("webhook down")
        self.posts.append((channel_id, text))

    async def close(self) -> None:
        self.closed = True

    def texts(self, channel_id: str | None = None) -> list[str]:
        return [t for c, t in self.posts if channel_id is None or c == channel_id]


class StubTool(Tool):
    def __init__(self, name: str, result: Any = "ok", error: Exception | None = None):
        self._name = name
        self.result = result
        self.error = error
        self.calls: list[dict[str, Any]] = []

    @property
    def name(self) -> str:
        return self._name

    @property
    def description(self) -> str:
        return f"stub {self._name}"

    @property
    def input_schema(self) -> dict[str, Any]:
        return {"type": "object", "properties": {}}

    async def execute(self, **kwargs: Any):
        self.calls.append(kwargs)
        if self.error is not None:
            raise self.error
        return self.result


def user_texts(messages: list[dict[str, Any]]) -> list[str]:
    """All plain text the user side contributed, in order."""
    texts: list[str] = []
    for message in messages:
        if message["role"] != "user":
            continue
        content = message["content"]
        if isinstance(content, str):
            texts.append(content)
        else:
            texts.extend(b["text"] for b in content if b.get("type") == "text")
    return texts
