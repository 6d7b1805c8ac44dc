"""
Claude logo finder.

Uses Claude's server-side web search tool; search results come back inside
the same response, so only custom tool calls need a tool_result reply.
"""

from typing import Any, List, Optional

from anthropic import Anthropic

from .base import (
    CONTINUE_NUDGE,
    REQUEST_TIMEOUT,
    SUBMIT_TOOL_DESCRIPTION,
    SUBMIT_TOOL_NAME,
    SUBMIT_TOOL_SCHEMA,
    AgentLogoFinder,
    AgentTurn,
    ToolCall,
)

MAX_TOKENS = 1024
WEB_SEARCH_MAX_USES = 5

TOOLS = [
    {"type": "web_search_20250305", "name": "web_search", "max_uses": WEB_SEARCH_MAX_USES},
    {
        "name": SUBMIT_TOOL_NAME,
        "description": SUBMIT_TOOL_DESCRIPTION,
        "input_schema": SUBMIT_TOOL_SCHEMA,
    },
]


class AnthropicLogoFinder(AgentLogoFinder):
    """Anthropic Messages API backend."""

    provider_name = "anthropic"

    def __init__(self, model: str, api_key: Optional[str] = None):
        """Initialize the Claude logo finder.

        Args:
            model: Claude model name (required)
            api_key: API key; the SDK falls back to ANTHROPIC_API_KEY when omitted

        Raises:
            ValueError: If model is missing/empty
        """
        super().__init__(model)
        self.client = Anthropic(api_key=api_key, timeout=REQUEST_TIMEOUT)

    def _initial_messages(self, prompt: str) -> List[Any]:
        return [{"role": "user", "content": prompt}]

    def _send(self, messages: List[Any]) -> AgentTurn:
        message = self.client.messages.create(
            model=self.model,
            max_tokens=MAX_TOKENS,
            messages=messages,
            tools=TOOLS,
        )

        calls = []
        for block in message.content:
            if block.type == "tool_use":
                calls.append(ToolCall(name=block.name, call_id=block.id, arguments=block.input))
            elif block.type == "server_tool_use":
                calls.append(ToolCall(
                    name=block.name, call_id=block.id, arguments=block.input, server_side=True,
                ))
        return AgentTurn(tool_calls=calls, raw=message)

    def _follow_up(self, turn: AgentTurn) -> List[Any]:
        message = turn.raw
        follow_up: List[Any] = [{"role": "assistant", "content": message.content}]

        tool_results = [
            {"type": "tool_result", "tool_use_id": call.call_id, "content": CONTINUE_NUDGE}
            for call in turn.tool_calls
            if not call.server_side
        ]
        if tool_results:
            follow_up.append({"role": "user", "content": tool_results})
        elif message.stop_reason != "pause_turn":
            # a paused turn resumes from the assistant message alone
            follow_up.append({"role": "user", "content": CONTINUE_NUDGE})
        return follow_up
