"""
Wiring from configuration to a ready LogoService.
"""

import logging
from pathlib import Path
from typing import List, Optional

import httpx

from ticker_logos.config.loader import AppConfig, LLMConfig
from ticker_logos.core.service import LogoService
from ticker_logos.providers.http import make_client
from ticker_logos.providers.llm import LLMSearchProvider
from ticker_logos.providers.mirror import GitHubMirrorProvider
from ticker_logos.sdk import AgentLogoFinder, AnthropicLogoFinder, OpenAILogoFinder
from ticker_logos.storage.blobs import BlobStore
from ticker_logos.storage.repository import LLMCallRepository, LogoRepository, initialize_schema

log = logging.getLogger(__name__)

FINDER_CLASSES = {
    "anthropic": AnthropicLogoFinder,
    "openai": OpenAILogoFinder,
}


def build_finders(llm_config: LLMConfig) -> List[AgentLogoFinder]:
    """Create LLM backends in configured order, skipping those without an API key."""
    finders = []
    for name in llm_config.provider_order:
        provider = llm_config.provider(name)
        if not provider.api_key:
            log.info("llm.provider_skipped provider=%s reason=no_api_key", name)
            continue
        finders.append(FINDER_CLASSES[name](model=provider.model, api_key=provider.api_key))
    return finders


def build_service(config: AppConfig, client: Optional[httpx.Client] = None) -> LogoService:
    """Build a LogoService, creating storage directories and the schema.

    Args:
        config: Validated application configuration
        client: Shared HTTP client; one is created when omitted

    Returns:
        LogoService with the mirror and, when any backend has a key, the LLM layer
    """
    db_path = config.storage.database_path
    Path(db_path).parent.mkdir(parents=True, exist_ok=True)
    initialize_schema(db_path)

    client = client or make_client()
    mirror = GitHubMirrorProvider(
        config.github.repos,
        client=client,
        token=config.github.token or None,
    )

    finders = build_finders(config.llm)
    llm = None
    if finders:
        llm = LLMSearchProvider(
            finders,
            rate_per_minute=config.llm.rate_per_minute,
            call_repo=LLMCallRepository(db_path),
            client=client,
        )
    else:
        log.warning("llm.disabled reason=no_providers_configured")

    return LogoService(
        logo_repo=LogoRepository(db_path),
        blobs=BlobStore(config.storage.logo_dir),
        mirror=mirror,
        llm=llm,
    )
