"""Application orchestrator - wires all components and manages lifecycle."""

from __future__ import annotations

from bugbuster.ai.client import AnthropicClient, ModelClient
from bugbuster.ai.handler import MessageHandler
from bugbuster.ai.prompt import SystemPrompt
from bugbuster.ai.reasoning import ReasoningLoop
from bugbuster.ai.tools.registry import ToolRegistry
from bugbuster.config import AppConfig
from bugbuster.core.service import AgentService
from bugbuster.core.session import ChannelSessionStore
from bugbuster.log import get_logger
from bugbuster.messenger.base import DeliveryChannel
from bugbuster.messenger.cliq import CliqWebhookDelivery

logger = get_logger(__name__)


class BugBusterApp:
    """Top-level application orchestrator.

    ``model_client`` and ``delivery`` default to the Anthropic API and the Cliq
    webhook; tests and the local ``chat`` command pass their own.
    """

    def __init__(
        self,
        config: AppConfig,
        model_client: ModelClient | None = None,
        delivery: DeliveryChannel | None = None,
        tool_registry: ToolRegistry | None = None,
    ):
        self.config = config
        self.model_client = model_client or AnthropicClient(config.anthropic)
        self.delivery = delivery or CliqWebhookDelivery(config.cliq)
        self.system_prompt = SystemPrompt(config.prompt)

        if tool_registry is None:
            tool_registry = ToolRegistry()
            tool_registry.discover_and_register(config)
        self.tool_registry = tool_registry

        self.session_store = ChannelSessionStore(
            idle_timeout=config.agent.idle_timeout_minutes * 60,
        )
        self.reasoning = ReasoningLoop(
            client=self.model_client,
            tool_registry=self.tool_registry,
            delivery=self.delivery,
            session_store=self.session_store,
            pricing=config.pricing,
            system_prompt=self.system_prompt.build,
            max_turns=config.agent.max_turns,
            silent_marker=config.agent.silent_marker,
            tool_names=config.agent.tools,
        )
        self.service = AgentService(
            reasoning=self.reasoning,
            session_store=self.session_store,
            delivery=self.delivery,
            history_window=config.agent.history_window,
        )
        self.handler = MessageHandler(self.service, self.delivery)

    async def start(self) -> None:
        logger.info(
            "bugbuster_started",
            model=self.model_client.model_name,
            tools=self.tool_registry.names(),
            max_turns=self.config.agent.max_turns,
            idle_timeout_minutes=self.config.agent.idle_timeout_minutes,
        )

    async def stop(self) -> None:
        """Gracefully shut down all components."""
        await self.service.close()
        for closer in (self.delivery.close, self.model_client.close):
            try:
                await closer()
            except Exception as e:
                logger.error("shutdown_error", error=str(e))
        logger.info("bugbuster_stopped")
