"""
Shared agent loop for LLM logo search.

Each backend gets the same prompt and the same two tools: the vendor's
web search and a ``submit_logo_url`` tool for the structured answer. The
loop below drives the conversation; subclasses only translate messages to
and from their vendor's API.
"""

import json
import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union

from ticker_logos.core.errors import Cancelled, ExceededMaxTurns, NoLogoFound

log = logging.getLogger(__name__)

MAX_TURNS = 5
SUBMIT_TOOL_NAME = "submit_logo_url"
CONFIDENCE_LEVELS = ("high", "medium", "low")
REQUEST_TIMEOUT = 30.0
CANCEL_POLL_INTERVAL = 0.05
CONTINUE_NUDGE = "Received. Please continue and call submit_logo_url with the logo URL."

SUBMIT_TOOL_DESCRIPTION = (
    "Submit the logo URL you found. Call this tool once you have found the best logo URL."
)

SUBMIT_TOOL_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "logo_url": {
            "type": "string",
            "description": (
                "Direct URL to the logo image (PNG, SVG, or JPG). "
                "Must be a direct image URL, not a webpage."
            ),
        },
        "company_name": {
            "type": "string",
            "description": "The official company name for this stock ticker.",
        },
        "source": {
            "type": "string",
            "description": "The website where the logo was found (e.g., 'wikipedia.org', 'company.com').",
        },
        "confidence": {
            "type": "string",
            "enum": list(CONFIDENCE_LEVELS),
            "description": "How confident you are this is the correct official logo.",
        },
    },
    "required": ["logo_url"],
}


@dataclass(frozen=True)
class LogoSearchResult:
    """Structured answer submitted by an LLM backend."""
    logo_url: str
    company_name: str = ""
    source: str = ""
    confidence: Optional[str] = None


@dataclass
class ToolCall:
    """A tool invocation found in a backend response."""
    name: str
    call_id: str = ""
    arguments: Union[str, Dict[str, Any], None] = None
    server_side: bool = False  # executed by the vendor (web search); needs no tool result


@dataclass
class AgentTurn:
    """One backend response reduced to what the loop needs."""
    tool_calls: List[ToolCall] = field(default_factory=list)
    raw: Any = None

    def submission(self) -> Optional[ToolCall]:
        for call in self.tool_calls:
            if call.name == SUBMIT_TOOL_NAME:
                return call
        return None


def build_prompt(symbol: str, company_name: str = "") -> str:
    """Create the user prompt for a logo search."""
    hint = f" (company name: {company_name})" if company_name else ""
    return f"""Find the official company logo for stock ticker symbol "{symbol}"{hint}.

Search the web to find a high-quality logo image. Prefer:
1. Official company website logos
2. Wikipedia commons logos (often high-quality SVG/PNG)
3. Well-known financial data sites

Requirements for the logo URL:
- Must be a DIRECT link to an image file (ending in .png, .svg, .jpg, or similar)
- Must be a high-resolution version (at least 200x200 pixels)
- Must be the company's primary/official logo (not a product logo or icon variant)
- The URL must be publicly accessible (no authentication required)

Once you find the best logo, call the {SUBMIT_TOOL_NAME} tool with the URL and details.
If you cannot find a suitable logo, explain why in your response."""


def parse_submission(symbol: str, arguments: Union[str, Dict[str, Any], None]) -> LogoSearchResult:
    """Turn submit-tool arguments into a LogoSearchResult.

    Raises:
        NoLogoFound: If the arguments are malformed or the URL is empty
    """
    if isinstance(arguments, str):
        try:
            arguments = json.loads(arguments or "{}")
        except ValueError as e:
            raise NoLogoFound(f"parsing {SUBMIT_TOOL_NAME} arguments for {symbol}: {e}") from e
    if not isinstance(arguments, dict):
        raise NoLogoFound(f"malformed {SUBMIT_TOOL_NAME} arguments for {symbol}")

    logo_url = str(arguments.get("logo_url") or "").strip()
    if not logo_url:
        raise NoLogoFound(f"no logo URL submitted for {symbol}")

    confidence = str(arguments.get("confidence") or "").strip().lower()
    return LogoSearchResult(
        logo_url=logo_url,
        company_name=str(arguments.get("company_name") or ""),
        source=str(arguments.get("source") or ""),
        confidence=confidence if confidence in CONFIDENCE_LEVELS else None,
    )


class AgentLogoFinder(ABC):
    """LLM backend that searches the web for a ticker's logo URL."""

    provider_name: str = ""

    def __init__(self, model: str):
        if not model or not model.strip():
            raise ValueError("model is required and cannot be empty")
        self.model = model

    @property
    def model_name(self) -> str:
        return self.model

    def find_logo_url(
        self,
        symbol: str,
        company_name: str = "",
        cancel: Optional[threading.Event] = None,
    ) -> LogoSearchResult:
        """Run the bounded agent loop for one symbol.

        With a cancel event each request runs on a worker thread, so a cancel
        ends the wait without waiting for the vendor to answer. The abandoned
        response is discarded.

        Raises:
            NoLogoFound: If the backend stops without submitting a usable URL
            ExceededMaxTurns: If MAX_TURNS pass without a submission
            Cancelled: If the cancel event fires before or during a turn
        """
        messages = self._initial_messages(build_prompt(symbol, company_name))

        for turn_number in range(1, MAX_TURNS + 1):
            if cancel is not None and cancel.is_set():
                raise Cancelled(f"{self.provider_name} search for {symbol} cancelled")
            turn = self._send_cancellable(messages, cancel, symbol)

            submission = turn.submission()
            if submission is not None:
                return parse_submission(symbol, submission.arguments)

            if not turn.tool_calls:
                raise NoLogoFound(f"{self.provider_name} ended without finding a logo for {symbol}")

            log.debug(
                "agent.turn provider=%s symbol=%s turn=%d tools=%s",
                self.provider_name, symbol, turn_number,
                ",".join(call.name for call in turn.tool_calls),
            )
            messages.extend(self._follow_up(turn))

        raise ExceededMaxTurns(f"exceeded max turns without finding logo for {symbol}")

    def _send_cancellable(
        self,
        messages: List[Any],
        cancel: Optional[threading.Event],
        symbol: str,
    ) -> AgentTurn:
        if cancel is None:
            return self._send(messages)

        outcome: Dict[str, Any] = {}
        done = threading.Event()

        def run() -> None:
            try:
                outcome["turn"] = self._send(messages)
            except Exception as e:
                outcome["error"] = e
            finally:
                done.set()

        worker = threading.Thread(target=run, name=f"{self.provider_name}-request", daemon=True)
        worker.start()
        while not done.wait(CANCEL_POLL_INTERVAL):
            if cancel.is_set():
                log.info("agent.cancelled provider=%s symbol=%s", self.provider_name, symbol)
                raise Cancelled(f"{self.provider_name} search for {symbol} cancelled")

        if "error" in outcome:
            raise outcome["error"]
        return outcome["turn"]

    @abstractmethod
    def _initial_messages(self, prompt: str) -> List[Any]:
        """Build the opening conversation for the prompt."""

    @abstractmethod
    def _send(self, messages: List[Any]) -> AgentTurn:
        """Send the running history and reduce the response to an AgentTurn."""

    @abstractmethod
    def _follow_up(self, turn: AgentTurn) -> List[Any]:
        """Messages appended after a turn that used tools other than submit."""
