"""Model client abstraction with the Anthropic API backend."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

from bugbuster.ai.tools.base import ToolInvocation
from bugbuster.config import AnthropicConfig
from bugbuster.log import get_logger

logger = get_logger(__name__)


@dataclass
class ModelResponse:
    """One model completion: text segments and/or tool invocations."""

    text_segments: list[str] = field(default_factory=list)
    tool_invocations: list[ToolInvocation] = field(default_factory=list)
    input_tokens: int = 0
    output_tokens: int = 0
    # Assistant content blocks in API form, appended to history verbatim
    content: list[dict[str, Any]] = field(default_factory=list)
    stop_reason: str | None = None

    @classmethod
    def from_blocks(
        cls,
        content: list[dict[str, Any]],
        input_tokens: int = 0,
        output_tokens: int = 0,
        stop_reason: str | None = None,
    ) -> ModelResponse:
        """Build a response from API-form content blocks."""
        texts = [b["text"] for b in content if b.get("type") == "text"]
        invocations = [
            ToolInvocation(name=b["name"], input=dict(b.get("input") or {}), invocation_id=b["id"])
            for b in content
            if b.get("type") == "tool_use"
        ]
        return cls(
            text_segments=texts,
            tool_invocations=invocations,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            content=content,
            stop_reason=stop_reason,
        )


class ModelClient(ABC):
    """Submit a conversation, receive text and/or tool invocations."""

    @abstractmethod
    async def complete(
        self,
        system: str,
        messages: list[dict[str, Any]],
        tools: list[dict[str, Any]] | None = None,
    ) -> ModelResponse:
        ...

    @property
    @abstractmethod
    def model_name(self) -> str:
        ...

    async def close(self) -> None:
        """Release transport resources."""


class AnthropicClient(ModelClient):
    """Anthropic Messages API backend using the official SDK."""

    def __init__(self, config: AnthropicConfig):
        import anthropic

        self._config = config
        self._client = anthropic.AsyncAnthropic(
            api_key=config.api_key,
            base_url=config.base_url,
            max_retries=config.max_retries,
            timeout=config.timeout,
        )

    @property
    def model_name(self) -> str:
        return self._config.model

    async def complete(
        self,
        system: str,
        messages: list[dict[str, Any]],
        tools: list[dict[str, Any]] | None = None,
    ) -> ModelResponse:
        kwargs: dict[str, Any] = {
            "model": self._config.model,
            "max_tokens": self._config.max_tokens,
            "system": system,
            "messages": messages,
            "temperature": self._config.temperature,
        }
        if tools:
            kwargs["tools"] = tools

        logger.debug("api_request", model=self._config.model, message_count=len(messages))
        response = await self._client.messages.create(**kwargs)
        logger.debug(
            "api_response",
            model=self._config.model,
            input_tokens=response.usage.input_tokens,
            output_tokens=response.usage.output_tokens,
            stop_reason=response.stop_reason,
        )

        content: list[dict[str, Any]] = []
        for block in response.content:
            if block.type == "text":
                content.append({"type": "text", "text": block.text})
            elif block.type == "tool_use":
                content.append(
                    {"type": "tool_use", "id": block.id, "name": block.name, "input": block.input}
                )

        return ModelResponse.from_blocks(
            content,
            input_tokens=response.usage.input_tokens,
            output_tokens=response.usage.output_tokens,
            stop_reason=response.stop_reason,
        )

    async def close(self) -> None:
        await self._client.close()
