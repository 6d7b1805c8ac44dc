"""
Error taxonomy for logo acquisition.

Expected misses (NotFound) drive the next fallback layer and are never
logged as errors. Callers see exhaustion of every provider and
normalization failures, plus the input errors that are also ValueErrors.
"""

from typing import Any, FrozenSet, Optional


class LogoServiceError(Exception):
    """Base class for every error raised by the logo service."""


class NotFound(LogoServiceError):
    """A record, blob or provider lookup came back empty."""


class AlreadyExists(LogoServiceError):
    """A record for the symbol already exists."""


class StorageError(LogoServiceError):
    """Metadata or blob storage failed for a reason other than absence."""


class NoProviderFound(LogoServiceError):
    """Every acquisition layer was tried and none produced a logo."""


class NoLogoFound(LogoServiceError):
    """An LLM backend finished its search without a usable logo URL."""


class ExceededMaxTurns(NoLogoFound):
    """The agent loop ran out of turns before the result was submitted."""


class LLMSearchFailed(LogoServiceError):
    """All configured LLM backends failed for a symbol."""


class DownloadError(LogoServiceError):
    """An outbound download failed (transport error or non-200 status)."""


class DownloadTooLarge(DownloadError):
    """A response body exceeded the download byte cap."""


class InvalidColor(LogoServiceError, ValueError):
    """A background color is not exactly six hex digits."""


class InvalidSize(LogoServiceError, ValueError):
    """A size token is not one of the fixed logo sizes."""


class InvalidSymbol(LogoServiceError, ValueError):
    """A ticker symbol is empty or contains characters outside the allowed set."""


class ProcessingFailed(LogoServiceError):
    """Normalization failed for one or more sizes.

    ``succeeded`` holds the sizes that were still persisted; it is empty
    when the source produced no usable output at all.
    """

    def __init__(self, message: str, succeeded: FrozenSet[Any] = frozenset()):
        super().__init__(message)
        self.succeeded = frozenset(succeeded)


class Cancelled(LogoServiceError):
    """The caller's cancellation signal fired.

    Bulk imports attach the statistics accumulated before cancellation.
    """

    def __init__(self, message: str = "operation cancelled", stats: Optional[Any] = None):
        super().__init__(message)
        self.stats = stats
