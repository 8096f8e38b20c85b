"""Conversation turns and their conversion to Anthropic API message format."""

from __future__ import annotations

import base64
from dataclasses import dataclass
from typing import Any

from bugbuster.core.types import TurnRole
from bugbuster.messenger.models import Attachment, Payload

_TEXT_PREFIXES = ("text/",)
_TEXT_TYPES = frozenset({
    "application/json", "application/xml", "application/javascript",
    "application/x-yaml", "application/sql", "application/x-sh",
    "application/csv",
})


@dataclass
class Turn:
    """One history entry. ``content`` is a string or a list of API content blocks."""

    role: TurnRole
    content: str | list[dict[str, Any]]

    @property
    def is_user_text(self) -> bool:
        return self.role == TurnRole.USER


def _is_text_media_type(media_type: str) -> bool:
    return media_type.startswith(_TEXT_PREFIXES) or media_type in _TEXT_TYPES


def attachment_block(att: Attachment) -> dict[str, Any]:
    """Convert an attachment to an image block, inlined text, or a metadata note."""
    if att.media_type.startswith("image/"):
        return {
            "type": "image",
            "source": {
                "type": "base64",
                "media_type": att.media_type,
                "data": base64.b64encode(att.data).decode(),
            },
        }
    if _is_text_media_type(att.media_type):
        text = att.data.decode("utf-8", errors="replace")
        return {"type": "text", "text": f"[File: {att.filename}]\n{text}"}

    size_kb = len(att.data) / 1024
    return {
        "type": "text",
        "text": f"[File: {att.filename} ({att.media_type}, {size_kb:.1f} KB), binary content not shown]",
    }


def user_turn(payload: Payload) -> Turn:
    """Build the user turn for an inbound payload."""
    if not payload.attachments:
        return Turn(TurnRole.USER, payload.text)
    blocks: list[dict[str, Any]] = []
    if payload.text:
        blocks.append({"type": "text", "text": payload.text})
    blocks.extend(attachment_block(a) for a in payload.attachments)
    return Turn(TurnRole.USER, blocks)


def _as_blocks(content: str | list[dict[str, Any]]) -> list[dict[str, Any]]:
    if isinstance(content, str):
        return [{"type": "text", "text": content}] if content else []
    return list(content)


def build_messages(history: list[Turn]) -> list[dict[str, Any]]:
    """Convert history turns into the API ``messages`` list.

    Tool results travel as ``user`` messages. Consecutive messages with the
    same API role are merged, which keeps the list valid after a run that
    failed before the model answered.
    """
    messages: list[dict[str, Any]] = []

    for turn in history:
        role = "assistant" if turn.role == TurnRole.ASSISTANT else "user"
        if messages and messages[-1]["role"] == role:
            merged = _as_blocks(messages[-1]["content"]) + _as_blocks(turn.content)
            messages[-1] = {"role": role, "content": merged}
        else:
            content = turn.content if isinstance(turn.content, str) else list(turn.content)
            messages.append({"role": role, "content": content})

    return messages


def trim_history(history: list[Turn], window: int) -> int:
    """Drop the oldest turns so at most ``window`` remain; returns how many were dropped.

    The cut is only made in front of a plain user turn so a tool_use block is
    never separated from its tool_result. When the latest exchange alone is
    longer than the window, everything before it is dropped and the exchange
    is kept whole. ``window`` of 0 disables trimming.
    """
    if window <= 0 or len(history) <= window:
        return 0

    start = len(history) - window
    cut = start
    while cut < len(history) and not history[cut].is_user_text:
        cut += 1
    if cut >= len(history):
        cut = start
        while cut > 0 and not history[cut].is_user_text:
            cut -= 1
    if cut <= 0:
        return 0

    del history[:cut]
    return cut
