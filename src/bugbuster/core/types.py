"""Shared types and enumerations."""

from __future__ import annotations

from enum import StrEnum


class TurnRole(StrEnum):
    USER = "user"
    ASSISTANT = "assistant"
    TOOL_RESULT = "tool_result"


class LoopState(StrEnum):
    AWAITING_MODEL = "awaiting_model"
    EXECUTING_TOOLS = "executing_tools"
    DONE = "done"
    ABORTED_LIMIT = "aborted_limit"
