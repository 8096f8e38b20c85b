import pytest

from bugbuster.ai.reasoning import ReasoningLoop
from bugbuster.ai.tools.registry import ToolRegistry
from bugbuster.config import PricingConfig
from bugbuster.core.service import AgentService
from bugbuster.core.session import ChannelSessionStore

from helpers import RecordingDelivery, ScriptedClient


@pytest.fixture
def delivery():
    return RecordingDelivery()


@pytest.fixture
def registry():
    return ToolRegistry()


@pytest.fixture
def store():
    s = ChannelSessionStore(idle_timeout=60)
    yield s
    s.close()


@pytest.fixture
def make_loop(registry, delivery, store):
    def _make(client: ScriptedClient, max_turns: int = 50, **kwargs) -> ReasoningLoop:
        return ReasoningLoop(
            client=client,
            tool_registry=registry,
            delivery=delivery,
            session_store=store,
            pricing=PricingConfig(),
            system_prompt=lambda: "system",
            max_turns=max_turns,
            **kwargs,
        )

    return _make


@pytest.fixture
def make_service(make_loop, delivery, store):
    def _make(client: ScriptedClient, history_window: int = 0, **kwargs) -> AgentService:
        return AgentService(
            reasoning=make_loop(client, **kwargs),
            session_store=store,
            delivery=delivery,
            history_window=history_window,
        )

    return _make
