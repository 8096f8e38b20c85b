"""Abstract tool interface for Claude tool use."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True, slots=True)
class ToolOutput:
    """Tool result text plus structured data for the caller (not sent to the model)."""

    text: str
    data: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class ToolInvocation:
    name: str
    input: dict[str, Any]
    invocation_id: str


@dataclass(frozen=True, slots=True)
class ToolResult:
    invocation_id: str
    content: str
    is_error: bool = False
    name: str = ""
    data: dict[str, Any] = field(default_factory=dict)

    def to_api_block(self) -> dict[str, Any]:
        block: dict[str, Any] = {
            "type": "tool_result",
            "tool_use_id": self.invocation_id,
            "content": self.content,
        }
        if self.is_error:
            block["is_error"] = True
        return block


class Tool(ABC):
    """Base class for all Claude-callable tools."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Unique tool name sent to the Anthropic API."""
        ...

    @property
    @abstractmethod
    def description(self) -> str:
        """Human-readable description for Claude."""
        ...

    @property
    @abstractmethod
    def input_schema(self) -> dict[str, Any]:
        """JSON Schema dict describing accepted parameters."""
        ...

    @abstractmethod
    async def execute(self, **kwargs: Any) -> str | ToolOutput:
        """Run the tool and return a text result for Claude.

        Raising marks the result as an error for the model; it does not
        abort the conversation.
        """
        ...

    def to_api_dict(self) -> dict[str, Any]:
        """Serialize to the Anthropic API tool definition format."""
        return {
            "name": self.name,
            "description": self.description,
            "input_schema": self.input_schema,
        }
