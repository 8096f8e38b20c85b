"""Reasoning loop: model -> tools -> model until a final answer or the turn limit."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable

from bugbuster.ai.client import ModelClient, ModelResponse
from bugbuster.ai.conversation import Turn, build_messages
from bugbuster.ai.tools.base import ToolResult
from bugbuster.ai.tools.jira import TICKET_TOOL_NAME
from bugbuster.ai.tools.registry import ToolRegistry
from bugbuster.config import PricingConfig
from bugbuster.core.session import ChannelSession, ChannelSessionStore
from bugbuster.core.types import LoopState, TurnRole
from bugbuster.log import get_logger
from bugbuster.messenger.base import DeliveryChannel

logger = get_logger(__name__)

MAX_TURNS = 50
SILENT_MARKER = "[SILENT]"
TIMEOUT_MESSAGE = "Analysis timed out. Please continue the investigation manually."


@dataclass(frozen=True, slots=True)
class ToolUse:
    name: str
    is_error: bool


@dataclass
class LoopOutcome:
    state: LoopState = LoopState.AWAITING_MODEL
    turns: int = 0
    transcript: list[str] = field(default_factory=list)
    tools_used: list[ToolUse] = field(default_factory=list)
    ticket: dict[str, Any] | None = None
    delivered: int = 0
    suppressed: int = 0

    @property
    def text(self) -> str:
        """Everything the model said during the run, suppressed chunks included."""
        return "\n".join(self.transcript)


def is_silent(text: str, marker: str = SILENT_MARKER) -> bool:
    """True when a chunk is, or contains, the do-not-deliver marker."""
    stripped = text.strip()
    return stripped == marker or marker in stripped


class ReasoningLoop:
    """Drives one request through any number of tool round trips.

    Each model response's text is delivered as soon as it arrives, before its
    tool invocations run. Invocations of one turn run sequentially in the
    order requested and their results go back to the model as a single
    tool-result turn. Tool failures become error-flagged results; model and
    history errors propagate to the caller.
    """

    def __init__(
        self,
        client: ModelClient,
        tool_registry: ToolRegistry,
        delivery: DeliveryChannel,
        session_store: ChannelSessionStore,
        pricing: PricingConfig,
        system_prompt: Callable[[], str],
        max_turns: int = MAX_TURNS,
        silent_marker: str = SILENT_MARKER,
        tool_names: list[str] | None = None,
    ):
        if max_turns < 1:
            raise ValueError("max_turns must be at least 1")
        self._client = client
        self._tools = tool_registry
        self._delivery = delivery
        self._store = session_store
        self._pricing = pricing
        self._system_prompt = system_prompt
        self._max_turns = max_turns
        self._silent_marker = silent_marker
        self._tool_names = tool_names

    @property
    def max_turns(self) -> int:
        return self._max_turns

    async def run(self, channel_id: str, history: list[Turn]) -> LoopOutcome:
        """Run until DONE or ABORTED_LIMIT. ``history`` must end with the new user turn."""
        outcome = LoopOutcome()
        system = self._system_prompt()
        owner = self._store.get(channel_id)
        tool_defs = self._tools.definitions(self._tool_names)

        while outcome.turns < self._max_turns:
            outcome.state = LoopState.AWAITING_MODEL
            outcome.turns += 1
            logger.debug("model_turn", channel_id=channel_id, turn=outcome.turns)

            response = await self._client.complete(
                system=system,
                messages=build_messages(history),
                tools=tool_defs or None,
            )
            self._account(channel_id, response, first=outcome.turns == 1, owner=owner)
            await self._emit(channel_id, response.text_segments, outcome)

            if not response.tool_invocations:
                if response.content:
                    history.append(Turn(TurnRole.ASSISTANT, response.content))
                outcome.state = LoopState.DONE
                logger.info(
                    "reasoning_done",
                    channel_id=channel_id,
                    turns=outcome.turns,
                    tools=len(outcome.tools_used),
                )
                return outcome

            history.append(Turn(TurnRole.ASSISTANT, response.content))
            outcome.state = LoopState.EXECUTING_TOOLS
            logger.info(
                "tools_requested",
                channel_id=channel_id,
                turn=outcome.turns,
                tools=[inv.name for inv in response.tool_invocations],
            )

            results: list[ToolResult] = []
            for invocation in response.tool_invocations:
                result = await self._tools.execute(invocation)
                results.append(result)
                outcome.tools_used.append(ToolUse(invocation.name, result.is_error))
                if invocation.name == TICKET_TOOL_NAME and not result.is_error:
                    outcome.ticket = dict(result.data)
            history.append(Turn(TurnRole.TOOL_RESULT, [r.to_api_block() for r in results]))

        outcome.state = LoopState.ABORTED_LIMIT
        logger.warning("reasoning_turn_limit", channel_id=channel_id, max_turns=self._max_turns)
        history.append(Turn(TurnRole.ASSISTANT, TIMEOUT_MESSAGE))
        outcome.transcript.append(TIMEOUT_MESSAGE)
        if await self._delivery.deliver(channel_id, TIMEOUT_MESSAGE):
            outcome.delivered += 1
        return outcome

    def _account(
        self,
        channel_id: str,
        response: ModelResponse,
        first: bool,
        owner: ChannelSession | None,
    ) -> None:
        if response.stop_reason == "max_tokens":
            logger.warning("model_output_truncated", channel_id=channel_id, output_tokens=response.output_tokens)

        cost = self._pricing.cost(response.input_tokens, response.output_tokens)
        if owner is not None and self._store.get(channel_id) is not owner:
            # Session was reset mid-run; don't bill the fresh one
            logger.info("cost_not_recorded", channel_id=channel_id, cost=round(cost, 6))
            return
        total = self._store.record_cost(channel_id, cost, count_message=first)
        logger.debug(
            "model_cost",
            channel_id=channel_id,
            input_tokens=response.input_tokens,
            output_tokens=response.output_tokens,
            stop_reason=response.stop_reason,
            cost=round(cost, 6),
            session_total=round(total, 6),
        )

    async def _emit(self, channel_id: str, segments: list[str], outcome: LoopOutcome) -> None:
        for segment in segments:
            text = segment.strip()
            if not text:
                continue
            outcome.transcript.append(text)
            if is_silent(text, self._silent_marker):
                outcome.suppressed += 1
                logger.info("response_suppressed", channel_id=channel_id)
                continue
            if await self._delivery.deliver(channel_id, text):
                outcome.delivered += 1
