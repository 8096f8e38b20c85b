"""Inbound message and payload models."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional


@dataclass(frozen=True, slots=True)
class Attachment:
    """Binary attachment (image, file, etc.)."""

    data: bytes
    media_type: str  # e.g. "image/jpeg", "image/png"
    filename: str = "attachment"


@dataclass(frozen=True, slots=True)
class InboundMessage:
    """A chat message as received from the webhook."""

    channel_id: str
    user_id: str
    user_name: str
    text: str
    channel_name: Optional[str] = None
    message_id: Optional[str] = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    attachments: list[Attachment] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class Payload:
    """What the reasoning loop receives for one user turn."""

    text: str
    attachments: list[Attachment] = field(default_factory=list)
