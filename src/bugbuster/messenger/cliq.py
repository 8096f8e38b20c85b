"""Zoho Cliq delivery through the bot's incoming webhook."""

from __future__ import annotations

import httpx

from bugbuster.config import CliqConfig
from bugbuster.log import get_logger
from bugbuster.messenger.base import DeliveryChannel, split_message

logger = get_logger(__name__)


class CliqWebhookDelivery(DeliveryChannel):
    """Posts ``{"text", "channel_id"}`` to the configured incoming webhook.

    The Cliq side (a Deluge handler) routes the text to the channel, so no
    OAuth token is needed here.
    """

    def __init__(self, config: CliqConfig, client: httpx.AsyncClient | None = None):
        super().__init__()
        self._config = config
        self._client = client or httpx.AsyncClient(timeout=config.timeout)

    async def post(self, channel_id: str, text: str) -> None:
        if not self._config.webhook_url:
            raise RuntimeError("Cliq webhook URL not configured")

        for chunk in split_message(text, self._config.max_message_length):
            body: dict[str, str] = {"text": chunk, "channel_id": channel_id}
            name = self.channel_name(channel_id)
            if name:
                body["channel_name"] = name
            if self._config.bot_name:
                body["bot_name"] = self._config.bot_name

            response = await self._client.post(self._config.webhook_url, json=body)
            response.raise_for_status()
            logger.debug("cliq_message_posted", channel_id=channel_id, length=len(chunk))

    async def close(self) -> None:
        await self._client.aclose()
