"""Agent service: the single entry point the webhook handler talks to."""

from __future__ import annotations

import uuid

from bugbuster.ai.conversation import trim_history, user_turn
from bugbuster.ai.reasoning import LoopOutcome, ReasoningLoop
from bugbuster.core.queue import MessageQueue
from bugbuster.core.session import ChannelSessionStore, SessionStats
from bugbuster.log import channel_context, get_logger
from bugbuster.messenger.base import DeliveryChannel
from bugbuster.messenger.models import Payload

logger = get_logger(__name__)


def format_error(error: BaseException) -> str:
    return f"something broke: {error}"


def format_ticket(ticket: dict) -> str:
    return f"Jira ticket created: {ticket.get('key')} {ticket.get('url', '')}".rstrip()


class AgentService:
    """Owns the session store, the per-channel queue and the reasoning loop.

    Built once at startup and injected where needed; there is no module-level
    state.
    """

    def __init__(
        self,
        reasoning: ReasoningLoop,
        session_store: ChannelSessionStore,
        delivery: DeliveryChannel,
        history_window: int = 0,
    ):
        self._reasoning = reasoning
        self._store = session_store
        self._delivery = delivery
        self._history_window = history_window
        self._queue: MessageQueue[Payload] = MessageQueue(self._process)
        self._store.set_busy_check(self._queue.is_locked)
        self._last_outcome: dict[str, LoopOutcome] = {}

    @property
    def queue(self) -> MessageQueue[Payload]:
        return self._queue

    @property
    def sessions(self) -> ChannelSessionStore:
        return self._store

    async def submit(
        self,
        channel_id: str,
        payload: Payload,
        delivery_target: str | None = None,
    ) -> str:
        """Process a message for the channel and return what the model said.

        ``delivery_target`` is the channel's display name, kept as a routing
        hint for the delivery transport.
        """
        self._delivery.remember_channel_name(channel_id, delivery_target)
        self._store.touch(channel_id)
        return await self._queue.submit(channel_id, payload)

    def reset_session(self, channel_id: str) -> bool:
        self._last_outcome.pop(channel_id, None)
        return self._store.evict(channel_id)

    def get_stats(self, channel_id: str) -> SessionStats:
        return self._store.get_stats(channel_id)

    def active_channels(self) -> list[str]:
        return self._store.active_channels()

    def last_outcome(self, channel_id: str) -> LoopOutcome | None:
        return self._last_outcome.get(channel_id)

    async def close(self) -> None:
        await self._queue.close()
        self._store.close()

    async def _process(self, channel_id: str, payload: Payload) -> str:
        run_id = uuid.uuid4().hex[:8]
        with channel_context(channel_id, run_id):
            session = self._store.get_or_create(channel_id)
            history = session.history
            history.append(user_turn(payload))
            logger.info("run_started", history_turns=len(history))

            try:
                outcome = await self._reasoning.run(channel_id, history)
            except Exception as e:
                logger.error("run_failed", error=str(e))
                await self._delivery.deliver(channel_id, format_error(e))
                raise
            finally:
                dropped = trim_history(history, self._history_window)
                if dropped:
                    logger.info("history_trimmed", dropped=dropped, kept=len(history))
                if self._store.get(channel_id) is session:
                    self._store.touch(channel_id)
                else:
                    logger.info("session_reset_during_run")

            self._last_outcome[channel_id] = outcome
            if outcome.ticket:
                logger.info("ticket_outcome", key=outcome.ticket.get("key"))
                await self._delivery.deliver(channel_id, format_ticket(outcome.ticket))

            logger.info(
                "run_finished",
                state=str(outcome.state),
                turns=outcome.turns,
                delivered=outcome.delivered,
                suppressed=outcome.suppressed,
            )
            return outcome.text
