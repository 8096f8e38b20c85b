"""Stdout delivery for local runs."""

from __future__ import annotations

from bugbuster.messenger.base import DeliveryChannel


class ConsoleDelivery(DeliveryChannel):
    """Prints each chunk as it is produced."""

    async def post(self, channel_id: str, text: str) -> None:
        print(f"[{channel_id}] {text}\n", flush=True)
