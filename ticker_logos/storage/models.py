"""
Data models for storage layer.

Defines the logo record, the LLM audit row, and the fixed size/status
enumerations shared by every layer.
"""

import re
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from ticker_logos.core.errors import InvalidSize, InvalidSymbol

SYMBOL_PATTERN = re.compile(r"^[A-Z0-9][A-Z0-9._-]{0,15}$")


class LogoSize(Enum):
    """Fixed square output sizes."""
    XS = "xs"
    S = "s"
    M = "m"
    L = "l"
    XL = "xl"

    @property
    def pixels(self) -> int:
        """Edge length of the square PNG in pixels."""
        return _SIZE_PIXELS[self]

    @property
    def column(self) -> str:
        """Name of the availability flag column for this size."""
        return f"has_{self.value}"

    @classmethod
    def parse(cls, token: str) -> "LogoSize":
        """Parse a size token such as ``"m"`` or ``"XL"``.

        Raises:
            InvalidSize: If the token is not one of xs, s, m, l, xl
        """
        try:
            return cls((token or "").strip().lower())
        except ValueError:
            raise InvalidSize(
                f"invalid size {token!r}: must be one of {', '.join(s.value for s in ALL_SIZES)}"
            )


_SIZE_PIXELS = {
    LogoSize.XS: 16,
    LogoSize.S: 32,
    LogoSize.M: 64,
    LogoSize.L: 128,
    LogoSize.XL: 256,
}

ALL_SIZES: List[LogoSize] = [LogoSize.XS, LogoSize.S, LogoSize.M, LogoSize.L, LogoSize.XL]


class LogoStatus(Enum):
    """Processing state of a logo record."""
    PENDING = "pending"
    PROCESSED = "processed"
    FAILED = "failed"
    NOT_FOUND = "not_found"


def normalize_symbol(symbol: str) -> str:
    """Uppercase and validate a ticker symbol.

    Raises:
        InvalidSymbol: If the symbol is empty or contains disallowed characters
    """
    normalized = (symbol or "").strip().upper()
    if not SYMBOL_PATTERN.match(normalized):
        raise InvalidSymbol(f"invalid symbol: {symbol!r}")
    return normalized


@dataclass
class LogoRecord:
    """Acquisition and processing state of one symbol's logo.

    Size flags only ever move from False to True; the repository enforces
    this even when a full record is written back.
    """
    symbol: str
    company_name: str = ""
    source: str = ""
    original_url: str = ""
    has_xs: bool = False
    has_s: bool = False
    has_m: bool = False
    has_l: bool = False
    has_xl: bool = False
    status: LogoStatus = LogoStatus.PENDING
    error_message: Optional[str] = None
    id: Optional[int] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def has_size(self, size: LogoSize) -> bool:
        """Whether the given size has been normalized and stored."""
        return bool(getattr(self, size.column))

    def mark_size(self, size: LogoSize) -> None:
        setattr(self, size.column, True)

    @property
    def available_sizes(self) -> List[LogoSize]:
        return [size for size in ALL_SIZES if self.has_size(size)]

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to a JSON-ready dictionary."""
        data: Dict[str, Any] = {
            "id": self.id,
            "symbol": self.symbol,
            "company_name": self.company_name,
            "source": self.source,
            "original_url": self.original_url,
            "status": self.status.value,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
        for size in ALL_SIZES:
            data[size.column] = self.has_size(size)
        if self.error_message:
            data["error_message"] = self.error_message
        return data


@dataclass(frozen=True)
class LLMCallRecord:
    """Immutable audit row for one LLM backend invocation.

    Append-only; kept for cost observability and never consulted by the
    acquisition logic.
    """
    symbol: str
    provider: str
    model: str
    success: bool
    result_url: Optional[str] = None
    duration_ms: Optional[int] = None
    timestamp: datetime = field(default_factory=datetime.now)
