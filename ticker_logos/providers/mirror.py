"""
Repository-mirror provider.

Downloads logos from community GitHub repositories that keep one image per
ticker at ``<icons_dir>/<SYMBOL>.png`` (e.g. davidepalazzo/ticker-logos,
nvstly/icons). Single lookups fetch the raw file directly; bulk imports
list each repository with one recursive git-tree request.
"""

import logging
import threading
from typing import List, Optional, Sequence

import httpx

from ticker_logos.core.errors import (
    Cancelled,
    DownloadError,
    InvalidSymbol,
    NotFound,
)
from ticker_logos.storage.models import normalize_symbol
from .base import (
    ImportCallback,
    ImportStats,
    IngestOutcome,
    LogoProvider,
    LogoResult,
    check_cancelled,
)
from .http import MAX_DOWNLOAD_BYTES, download, make_client

log = logging.getLogger(__name__)

RAW_BASE_URL = "https://raw.githubusercontent.com"
API_BASE_URL = "https://api.github.com"
PROGRESS_EVERY = 100


class GitHubMirrorProvider(LogoProvider):
    """Acquires logos from an ordered list of GitHub icon repositories."""

    def __init__(
        self,
        repos: Sequence[str],
        client: Optional[httpx.Client] = None,
        branch: str = "main",
        icons_dir: str = "ticker_icons",
        extension: str = ".png",
        token: Optional[str] = None,
    ):
        self.repos: List[str] = list(repos)
        self.client = client or make_client()
        self.branch = branch
        self.icons_dir = icons_dir.strip("/")
        self.extension = extension
        self.token = token

    @property
    def name(self) -> str:
        return "github"

    def raw_url(self, repo: str, path: str) -> str:
        return f"{RAW_BASE_URL}/{repo}/{self.branch}/{path}"

    def tree_url(self, repo: str) -> str:
        return f"{API_BASE_URL}/repos/{repo}/git/trees/{self.branch}?recursive=1"

    def get_logo(self, symbol: str, cancel: Optional[threading.Event] = None) -> LogoResult:
        """Fetch a logo from the first repository that has it.

        Raises:
            NotFound: If no configured repository has the symbol
        """
        symbol = symbol.upper()
        for repo in self.repos:
            check_cancelled(cancel)
            url = self.raw_url(repo, f"{self.icons_dir}/{symbol}{self.extension}")
            try:
                data = download(self.client, url, MAX_DOWNLOAD_BYTES, cancel)
            except DownloadError as e:
                log.debug("mirror.miss repo=%s symbol=%s error=%s", repo, symbol, e)
                continue
            return LogoResult(
                symbol=symbol,
                image_data=data,
                source=f"github:{repo}",
                original_url=url,
            )
        raise NotFound(f"logo for {symbol} not found in any GitHub repo")

    def bulk_import(
        self,
        callback: ImportCallback,
        cancel: Optional[threading.Event] = None,
    ) -> ImportStats:
        """Feed every icon in every configured repository to ``callback``.

        A repository that cannot be listed is recorded in the error list and
        the remaining repositories are still imported.

        Raises:
            Cancelled: If the cancel event fires; ``stats`` on the exception
                holds the counters accumulated so far
        """
        stats = ImportStats()
        for repo in self.repos:
            check_cancelled(cancel, stats)
            log.info("mirror.import_start repo=%s", repo)

            repo_stats = ImportStats()
            try:
                self._import_repo(repo, callback, cancel, repo_stats)
            except Cancelled:
                stats.merge(repo_stats)
                raise Cancelled("bulk import cancelled", stats=stats)
            except DownloadError as e:
                log.error("mirror.import_failed repo=%s error=%s", repo, e)
                stats.merge(repo_stats)
                stats.add_error(f"{repo}: {e}")
                continue

            stats.merge(repo_stats)
            log.info(
                "mirror.import_done repo=%s total=%d imported=%d skipped=%d failed=%d",
                repo, repo_stats.total, repo_stats.imported, repo_stats.skipped, repo_stats.failed,
            )
        return stats

    def _import_repo(
        self,
        repo: str,
        callback: ImportCallback,
        cancel: Optional[threading.Event],
        stats: ImportStats,
    ) -> None:
        prefix = f"{self.icons_dir}/"
        for entry in self._fetch_tree(repo):
            path = entry.get("path", "")
            if entry.get("type") != "blob":
                continue
            if not path.startswith(prefix) or not path.endswith(self.extension):
                continue

            filename = path.rsplit("/", 1)[-1]
            stem = filename[: -len(self.extension)]
            stats.total += 1

            check_cancelled(cancel)

            try:
                symbol = normalize_symbol(stem)
            except InvalidSymbol as e:
                stats.failed += 1
                stats.add_error(f"{stem}: {e}")
                continue

            url = self.raw_url(repo, path)
            try:
                data = download(self.client, url, MAX_DOWNLOAD_BYTES, cancel)
            except DownloadError as e:
                stats.failed += 1
                stats.add_error(f"{symbol}: download failed: {e}")
                continue

            result = LogoResult(
                symbol=symbol,
                image_data=data,
                source=f"github:{repo}",
                original_url=url,
            )
            try:
                outcome = callback(result)
            except Cancelled:
                raise
            except Exception as e:
                stats.failed += 1
                stats.add_error(f"{symbol}: {e}")
                continue

            if outcome == IngestOutcome.ALREADY_PROCESSED:
                stats.skipped += 1
                continue

            stats.imported += 1
            if stats.imported % PROGRESS_EVERY == 0:
                log.info(
                    "mirror.import_progress repo=%s imported=%d total_seen=%d",
                    repo, stats.imported, stats.total,
                )

    def _fetch_tree(self, repo: str) -> List[dict]:
        """List every file of a repository with a single git-tree request."""
        headers = {"Accept": "application/vnd.github+json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"

        url = self.tree_url(repo)
        try:
            resp = self.client.get(url, headers=headers)
        except httpx.HTTPError as e:
            raise DownloadError(f"fetching tree: {e}") from e

        if resp.status_code != 200:
            raise DownloadError(f"GitHub API returned {resp.status_code}: {resp.text[:200]}")

        try:
            body = resp.json()
        except ValueError as e:
            raise DownloadError(f"decoding tree: {e}") from e

        if not isinstance(body, dict):
            raise DownloadError(f"decoding tree: expected an object, got {type(body).__name__}")
        entries = body.get("tree", [])
        if not isinstance(entries, list) or not all(isinstance(entry, dict) for entry in entries):
            raise DownloadError("decoding tree: 'tree' must be a list of objects")

        if body.get("truncated"):
            log.warning("mirror.tree_truncated repo=%s entries=%d", repo, len(entries))
        return entries
