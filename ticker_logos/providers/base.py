"""
Provider contract for logo acquisition sources.

Every source (repository mirror, LLM search) supplies raw image bytes for
a symbol. Providers are held as a plain ordered sequence and tried with
first-success-wins semantics.
"""

import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, List, Optional

from ticker_logos.core.errors import Cancelled

MAX_IMPORT_ERRORS = 100


@dataclass
class LogoResult:
    """A raw logo acquired from a provider, before normalization."""
    symbol: str
    image_data: bytes
    source: str  # e.g. "github:davidepalazzo/ticker-logos" or "llm:anthropic"
    original_url: str
    company_name: str = ""


class IngestOutcome(Enum):
    """What the ingestion callback did with an acquired logo."""
    PROCESSED = "processed"
    ALREADY_PROCESSED = "already_processed"


@dataclass
class ImportStats:
    """Counters accumulated by a bulk import."""
    total: int = 0
    imported: int = 0
    skipped: int = 0
    failed: int = 0
    errors: List[str] = field(default_factory=list)
    errors_dropped: int = 0

    def add_error(self, message: str) -> None:
        """Record an error string, keeping at most MAX_IMPORT_ERRORS."""
        if len(self.errors) < MAX_IMPORT_ERRORS:
            self.errors.append(message)
        else:
            self.errors_dropped += 1

    def merge(self, other: "ImportStats") -> None:
        self.total += other.total
        self.imported += other.imported
        self.skipped += other.skipped
        self.failed += other.failed
        for message in other.errors:
            self.add_error(message)
        self.errors_dropped += other.errors_dropped


ImportCallback = Callable[[LogoResult], IngestOutcome]


def check_cancelled(cancel: Optional[threading.Event], stats: Optional[ImportStats] = None) -> None:
    """Raise Cancelled if the cancellation event has fired."""
    if cancel is not None and cancel.is_set():
        raise Cancelled("operation cancelled", stats=stats)


class LogoProvider(ABC):
    """A source capable of supplying raw logo bytes for a symbol."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Human-readable provider name."""

    @abstractmethod
    def get_logo(self, symbol: str, cancel: Optional[threading.Event] = None) -> LogoResult:
        """Fetch a single logo.

        Raises:
            NotFound: If this provider has no logo for the symbol
            Cancelled: If the cancel event fires
        """

    @abstractmethod
    def bulk_import(
        self,
        callback: ImportCallback,
        cancel: Optional[threading.Event] = None,
    ) -> ImportStats:
        """Feed every logo this provider knows about to ``callback``."""
