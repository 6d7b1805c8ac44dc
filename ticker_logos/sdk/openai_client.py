"""
OpenAI logo finder.

Uses the Responses API with the hosted web_search tool and the submit
function tool. Output items are fed back verbatim as input for the next
turn.
"""

from typing import Any, List, Optional

from openai import OpenAI

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

SYSTEM_PROMPT = (
    "You are a logo finder assistant. Search the web to find official company logos "
    "for stock tickers.\nReturn the direct image URL via the submit_logo_url function. "
    "Prefer high-resolution PNG/SVG from official sources."
)

TOOLS = [
    {"type": "web_search"},
    {
        "type": "function",
        "name": SUBMIT_TOOL_NAME,
        "description": SUBMIT_TOOL_DESCRIPTION,
        "parameters": SUBMIT_TOOL_SCHEMA,
    },
]


class OpenAILogoFinder(AgentLogoFinder):
    """OpenAI Responses API backend."""

    provider_name = "openai"

    def __init__(self, model: str, api_key: Optional[str] = None):
        """Initialize the OpenAI logo finder.

        Args:
            model: OpenAI model name (required)
            api_key: API key; the SDK falls back to OPENAI_API_KEY when omitted

        Raises:
            ValueError: If model is missing/empty
        """
        super().__init__(model)
        self.client = OpenAI(api_key=api_key, timeout=REQUEST_TIMEOUT)

    def _initial_messages(self, prompt: str) -> List[Any]:
        return [
            {"role": "system", "content": SYSTEM_PROMPT},
            {"role": "user", "content": prompt},
        ]

    def _send(self, messages: List[Any]) -> AgentTurn:
        response = self.client.responses.create(
            model=self.model,
            input=messages,
            tools=TOOLS,
        )

        calls = []
        for item in response.output:
            if item.type == "function_call":
                calls.append(ToolCall(name=item.name, call_id=item.call_id, arguments=item.arguments))
            elif item.type == "web_search_call":
                calls.append(ToolCall(name="web_search", call_id=item.id, server_side=True))
        return AgentTurn(tool_calls=calls, raw=response)

    def _follow_up(self, turn: AgentTurn) -> List[Any]:
        follow_up: List[Any] = list(turn.raw.output)

        outputs = [
            {"type": "function_call_output", "call_id": call.call_id, "output": CONTINUE_NUDGE}
            for call in turn.tool_calls
            if not call.server_side
        ]
        if outputs:
            follow_up.extend(outputs)
        else:
            follow_up.append({"role": "user", "content": CONTINUE_NUDGE})
        return follow_up
