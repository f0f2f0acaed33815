"""Tool orchestration loop driving the model and MCP servers."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Sequence

from ..schemas.chat import Attachment, Message, ToolCallRecord, ToolResultRecord
from ..schemas.mcp_servers import MCPServerConnection
from ..schemas.wire import (
    Part,
    Turn,
    function_call_part,
    function_response_part,
    text_part,
)
from .formatter import format_conversation
from .mcp_registry import dispatch_tool_call

if TYPE_CHECKING:
    from ..gemini import GeminiClient, ProgressCallback
    from .mcp_client import MCPToolClient

logger = logging.getLogger(__name__)

DEFAULT_TURN_LIMIT = 5


def executing_tool_marker(text: str, tool_name: str) -> str:
    """Return the progress text shown while ``tool_name`` runs."""

    return f"{text}\n\n*Executing tool: {tool_name}...*\n\n"


@dataclass
class ToolLoopResult:
    text: str
    iterations: int
    budget_exhausted: bool = False
    tool_calls: list[ToolCallRecord] = field(default_factory=list)
    tool_results: list[ToolResultRecord] = field(default_factory=list)


class ToolOrchestrator:
    """Alternate model turns and tool executions until a final answer arrives.

    The loop keeps its own turn list, seeded from the formatted history, so the
    caller's messages are never touched. Tool calls within a turn run one after
    another in the order the model emitted them.
    """

    def __init__(
        self,
        client: GeminiClient,
        mcp_client: MCPToolClient,
        *,
        turn_limit: int = DEFAULT_TURN_LIMIT,
    ) -> None:
        if turn_limit < 1:
            raise ValueError("turn_limit must be at least 1")
        self._client = client
        self._mcp_client = mcp_client
        self._turn_limit = turn_limit

    @property
    def turn_limit(self) -> int:
        return self._turn_limit

    async def run(
        self,
        messages: Sequence[Message],
        context_documents: Sequence[Attachment],
        servers: Sequence[MCPServerConnection],
        on_progress: ProgressCallback | None = None,
        *,
        model: str | None = None,
    ) -> ToolLoopResult:
        formatted = format_conversation(messages, context_documents, servers)
        turns: list[Turn] = list(formatted.turns)
        servers = list(servers)

        tool_calls: list[ToolCallRecord] = []
        tool_results: list[ToolResultRecord] = []
        text = ""

        for iteration in range(1, self._turn_limit + 1):
            result = await self._client.stream(
                turns,
                formatted.tool_declarations,
                on_progress,
                model=model,
            )
            text = result.text
            if not result.is_tool_call_turn:
                return ToolLoopResult(
                    text=text,
                    iterations=iteration,
                    tool_calls=tool_calls,
                    tool_results=tool_results,
                )

            model_parts: list[Part] = []
            if result.text:
                model_parts.append(text_part(result.text))
            model_parts.extend(function_call_part(call) for call in result.tool_calls)
            turns.append(Turn(role="model", parts=model_parts))

            response_parts: list[Part] = []
            for call in result.tool_calls:
                if on_progress is not None:
                    on_progress(executing_tool_marker(result.text, call.name))
                logger.info(
                    "Executing tool '%s' (iteration %d/%d)",
                    call.name,
                    iteration,
                    self._turn_limit,
                )
                outcome = await dispatch_tool_call(
                    self._mcp_client, servers, call.name, call.args
                )
                response_parts.append(function_response_part(call.name, outcome))
                tool_calls.append(ToolCallRecord(name=call.name, args=call.args))
                tool_results.append(ToolResultRecord(name=call.name, result=outcome))
            turns.append(Turn(role="user", parts=response_parts))

        logger.warning(
            "Tool loop stopped after %d iterations without a final answer",
            self._turn_limit,
        )
        return ToolLoopResult(
            text=text,
            iterations=self._turn_limit,
            budget_exhausted=True,
            tool_calls=tool_calls,
            tool_results=tool_results,
        )


__all__ = [
    "DEFAULT_TURN_LIMIT",
    "ToolLoopResult",
    "ToolOrchestrator",
    "executing_tool_marker",
]
