"""Abstract outbound delivery interface."""

from __future__ import annotations

from abc import ABC, abstractmethod

from bugbuster.log import get_logger

logger = get_logger(__name__)


class DeliveryChannel(ABC):
    """Pushes text chunks to a chat channel.

    Subclasses implement ``post``, which raises on failure. Callers in the
    reasoning pipeline use ``deliver``, which never raises.
    """

    def __init__(self) -> None:
        self._channel_names: dict[str, str] = {}

    @abstractmethod
    async def post(self, channel_id: str, text: str) -> None:
        """Send one message to the channel."""
        ...

    async def close(self) -> None:
        """Release transport resources."""

    def remember_channel_name(self, channel_id: str, channel_name: str | None) -> None:
        """Store the platform's display name for a channel, used as a routing hint."""
        if channel_name:
            self._channel_names[channel_id] = channel_name

    def channel_name(self, channel_id: str) -> str | None:
        return self._channel_names.get(channel_id)

    async def deliver(self, channel_id: str, text: str) -> bool:
        """Best-effort send; failures are logged and reported as False."""
        try:
            await self.post(channel_id, text)
        except Exception as e:
            logger.error("delivery_failed", channel_id=channel_id, error=str(e))
            return False
        return True


def split_message(text: str, max_length: int = 4000) -> list[str]:
    """Split a message into chunks that fit within platform limits."""
    if len(text) <= max_length:
        return [text]

    chunks = []
    while text:
        if len(text) <= max_length:
            chunks.append(text)
            break
        split_pos = text.rfind("\n", 0, max_length)
        if split_pos <= 0:
            split_pos = max_length
        chunks.append(text[:split_pos])
        text = text[split_pos:].lstrip("\n")
    return chunks
