"""
LLM search provider.

Asks LLM backends, in configured order, to find an official logo URL on the
web, then downloads the image. Every attempt waits on one shared token
bucket so the whole process stays within the configured calls per minute.
Used only for on-demand misses; bulk import would search every ticker and
is not supported.
"""

import logging
import threading
import time
from typing import Optional, Sequence

import httpx

from ticker_logos.core.errors import Cancelled, LLMSearchFailed, NoLogoFound
from ticker_logos.core.rate_limit import TokenBucket
from ticker_logos.sdk.base import AgentLogoFinder, LogoSearchResult
from ticker_logos.storage.models import LLMCallRecord
from ticker_logos.storage.repository import LLMCallRepository
from .base import ImportCallback, ImportStats, LogoProvider, LogoResult, check_cancelled
from .http import MAX_DOWNLOAD_BYTES, download, make_client

log = logging.getLogger(__name__)


class LLMSearchProvider(LogoProvider):
    """Ordered fallback chain of rate-limited LLM backends."""

    def __init__(
        self,
        finders: Sequence[AgentLogoFinder],
        rate_per_minute: float,
        call_repo: Optional[LLMCallRepository] = None,
        client: Optional[httpx.Client] = None,
    ):
        """Initialize the provider.

        Args:
            finders: Backends in priority order; the first success wins
            rate_per_minute: LLM calls admitted per minute across all callers
            call_repo: Audit ledger; when None no audit rows are written
            client: HTTP client used to download the found image
        """
        self.finders = list(finders)
        self.limiter = TokenBucket(rate_per_minute, burst=1)
        self.call_repo = call_repo
        self.client = client or make_client()

    @property
    def name(self) -> str:
        return "llm"

    def get_logo(
        self,
        symbol: str,
        cancel: Optional[threading.Event] = None,
        company_name: str = "",
    ) -> LogoResult:
        """Search for and download a logo, trying each backend in order.

        Raises:
            NoLogoFound: If no backend is configured
            LLMSearchFailed: If every backend failed; chained to the last error
            Cancelled: If the cancel event fires, including during the rate limit wait
        """
        if not self.finders:
            raise NoLogoFound("no LLM providers configured")

        last_error: Optional[Exception] = None
        for index, finder in enumerate(self.finders):
            self.limiter.wait(cancel)
            check_cancelled(cancel)

            try:
                return self._try_finder(finder, symbol, company_name, cancel)
            except Cancelled:
                raise
            except Exception as e:
                last_error = e
                if index < len(self.finders) - 1:
                    log.warning(
                        "llm.provider_failed symbol=%s provider=%s error=%s; trying next",
                        symbol, finder.provider_name, e,
                    )

        raise LLMSearchFailed(f"all LLM providers failed for {symbol}: {last_error}") from last_error

    def bulk_import(
        self,
        callback: ImportCallback,
        cancel: Optional[threading.Event] = None,
    ) -> ImportStats:
        raise NotImplementedError("LLM provider does not support bulk import")

    def _try_finder(
        self,
        finder: AgentLogoFinder,
        symbol: str,
        company_name: str,
        cancel: Optional[threading.Event],
    ) -> LogoResult:
        start = time.monotonic()
        search: Optional[LogoSearchResult] = None
        try:
            search = finder.find_logo_url(symbol, company_name, cancel)
        finally:
            duration_ms = int((time.monotonic() - start) * 1000)
            self._record_call(finder, symbol, search, duration_ms)

        image_data = download(self.client, search.logo_url, MAX_DOWNLOAD_BYTES, cancel)
        log.info(
            "llm.found symbol=%s provider=%s url=%s confidence=%s",
            symbol, finder.provider_name, search.logo_url, search.confidence,
        )
        return LogoResult(
            symbol=symbol,
            image_data=image_data,
            source=f"llm:{finder.provider_name}",
            original_url=search.logo_url,
            company_name=search.company_name or company_name,
        )

    def _record_call(
        self,
        finder: AgentLogoFinder,
        symbol: str,
        search: Optional[LogoSearchResult],
        duration_ms: int,
    ) -> None:
        """Append an audit row. Failures here never block acquisition."""
        if self.call_repo is None:
            return
        call = LLMCallRecord(
            symbol=symbol,
            provider=finder.provider_name,
            model=finder.model_name,
            success=search is not None,
            result_url=search.logo_url if search else None,
            duration_ms=duration_ms,
        )
        try:
            self.call_repo.create(call)
        except Exception as e:
            log.error("llm.record_call_failed symbol=%s provider=%s error=%s", symbol, finder.provider_name, e)
