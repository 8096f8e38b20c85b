"""Message handler: receives chat messages, handles commands, hands the rest to the agent."""

from __future__ import annotations

from collections import OrderedDict

from bugbuster.core.service import AgentService
from bugbuster.log import get_logger
from bugbuster.messenger.base import DeliveryChannel
from bugbuster.messenger.models import InboundMessage, Payload

logger = get_logger(__name__)

SEEN_MESSAGE_LIMIT = 1000


class MessageHandler:
    """Handles the flow: message -> command or agent submit."""

    def __init__(self, service: AgentService, delivery: DeliveryChannel):
        self._service = service
        self._delivery = delivery
        self._seen: OrderedDict[str, None] = OrderedDict()

    def _is_duplicate(self, message: InboundMessage) -> bool:
        if not message.message_id:
            return False
        key = f"{message.channel_id}:{message.message_id}"
        if key in self._seen:
            return True
        self._seen[key] = None
        if len(self._seen) > SEEN_MESSAGE_LIMIT:
            self._seen.popitem(last=False)
        return False

    async def handle(self, message: InboundMessage) -> str | None:
        """Process an incoming message end-to-end. Returns the model's text, if any ran."""
        channel_id = message.channel_id
        text = message.text.strip()

        if not text and not message.attachments:
            return None

        if self._is_duplicate(message):
            logger.info("duplicate_message_skipped", channel_id=channel_id, message_id=message.message_id)
            return None

        command = text.lower()
        if command == "/reset":
            self._service.reset_session(channel_id)
            await self._delivery.deliver(channel_id, "Session reset. Starting fresh.")
            return None

        if command == "/stats":
            stats = self._service.get_stats(channel_id)
            await self._delivery.deliver(
                channel_id,
                f"Session cost: ${stats.total_cost:.4f}\nMessages: {stats.message_count}",
            )
            return None

        payload = Payload(
            text=f"{message.user_name}: {text}" if message.user_name else text,
            attachments=list(message.attachments),
        )

        try:
            return await self._service.submit(
                channel_id, payload, delivery_target=message.channel_name
            )
        except Exception as e:
            # The channel already got the "something broke" message
            logger.error("message_handling_failed", channel_id=channel_id, error=str(e))
            return None
