"""
LLM backends for logo search.

Each backend runs the same bounded agent loop against its vendor's API.
"""

from .anthropic_client import AnthropicLogoFinder
from .base import AgentLogoFinder, LogoSearchResult
from .openai_client import OpenAILogoFinder

__all__ = ["AgentLogoFinder", "AnthropicLogoFinder", "LogoSearchResult", "OpenAILogoFinder"]
