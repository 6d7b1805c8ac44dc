"""
Logo acquisition orchestration.

Composes the layers into cache -> repository mirror -> LLM search ->
normalize -> persist. The expensive LLM layer is reached only when the
cache and the free mirror both miss.

Concurrent misses for the same symbol are not serialized: both callers may
acquire and normalize, and since normalization is deterministic and size
flags only move from False to True, the writes converge.
"""

import logging
import threading
from typing import Callable, Dict, List, Optional, Tuple

from ticker_logos.providers.base import ImportStats, IngestOutcome, LogoProvider, LogoResult
from ticker_logos.storage.blobs import BlobStore
from ticker_logos.storage.models import (
    ALL_SIZES,
    LogoRecord,
    LogoSize,
    LogoStatus,
    normalize_symbol,
)
from ticker_logos.storage.repository import LogoRepository
from .errors import (
    AlreadyExists,
    Cancelled,
    LogoServiceError,
    NoProviderFound,
    NotFound,
    ProcessingFailed,
    StorageError,
)
from .imaging import NormalizationResult, apply_background, normalize_all, parse_hex_color

log = logging.getLogger(__name__)

Normalizer = Callable[[bytes], NormalizationResult]


class LogoService:
    """Serves logos from the cache, acquiring and normalizing them on a miss."""

    def __init__(
        self,
        logo_repo: LogoRepository,
        blobs: BlobStore,
        mirror: LogoProvider,
        llm: Optional[LogoProvider] = None,
        normalizer: Normalizer = normalize_all,
    ):
        """Initialize the service.

        Args:
            logo_repo: Metadata store for logo records
            blobs: Blob store holding the normalized PNGs
            mirror: Free repository-mirror provider, always tried first
            llm: Paid LLM search provider; None disables the last fallback
            normalizer: Converts raw bytes into per-size PNGs
        """
        self.logo_repo = logo_repo
        self.blobs = blobs
        self.mirror = mirror
        self.llm = llm
        self.normalizer = normalizer

    def get_logo(
        self,
        symbol: str,
        size: LogoSize,
        cancel: Optional[threading.Event] = None,
    ) -> bytes:
        """Return the PNG for a symbol and size, acquiring it on a cache miss.

        Raises:
            InvalidSymbol: If the symbol is malformed
            NoProviderFound: If neither the mirror nor the LLM layer has a logo
            ProcessingFailed: If the requested size could not be normalized
            Cancelled: If the cancel event fires during acquisition
        """
        symbol = normalize_symbol(symbol)

        cached = self._from_cache(symbol, size)
        if cached is not None:
            return cached

        log.info("logo.cache_miss symbol=%s size=%s", symbol, size.value)
        result = self._acquire(symbol, cancel)

        try:
            self.process_and_store(result)
        except ProcessingFailed as e:
            if size not in e.succeeded:
                raise
            log.warning("logo.partial symbol=%s serving=%s error=%s", symbol, size.value, e)

        return self.blobs.read(symbol, size)

    def get_logo_with_background(
        self,
        symbol: str,
        size: LogoSize,
        hex_color: str,
        cancel: Optional[threading.Event] = None,
    ) -> bytes:
        """Return the PNG flattened onto a solid background color.

        The color is validated before any acquisition work happens. The
        flattened image is never written back to the cache.
        """
        parse_hex_color(hex_color)
        return apply_background(self.get_logo(symbol, size, cancel), hex_color)

    def process_and_store(self, result: LogoResult) -> IngestOutcome:
        """Normalize an acquired logo and persist every size that succeeds.

        Shared by on-demand misses and bulk-import callbacks. A symbol that
        is already processed is left untouched unless one of its flagged
        blobs has gone missing, in which case the blobs are rewritten from
        ``result`` and the status stays ``processed``. Size flags are never
        cleared.

        Returns:
            ALREADY_PROCESSED when nothing was written, PROCESSED otherwise

        Raises:
            ProcessingFailed: If any size failed; ``succeeded`` lists the sizes
                that were still stored and flagged
        """
        symbol = normalize_symbol(result.symbol)

        record = self._find(symbol)
        if record is not None and record.status == LogoStatus.PROCESSED:
            missing = self._missing_blobs(record)
            if not missing:
                return IngestOutcome.ALREADY_PROCESSED
            return self._restore_blobs(record, result, missing)

        if record is None:
            record = self._create_pending(symbol, result)
            if record.status == LogoStatus.PROCESSED:
                return IngestOutcome.ALREADY_PROCESSED
        else:
            record.company_name = result.company_name or record.company_name
            record.source = result.source
            record.original_url = result.original_url
            record.status = LogoStatus.PENDING
            record.error_message = None
            self.logo_repo.update(record)

        stored, errors = self._write_sizes(symbol, result.image_data)

        if errors:
            message = _error_message(errors)
            self.logo_repo.set_status(symbol, LogoStatus.FAILED, message)
            log.error("logo.processing_failed symbol=%s stored=%d error=%s", symbol, len(stored), message)
            raise ProcessingFailed(message, succeeded=frozenset(stored))

        self.logo_repo.set_status(symbol, LogoStatus.PROCESSED)
        log.info("logo.processed symbol=%s source=%s", symbol, result.source)
        return IngestOutcome.PROCESSED

    def import_from_mirror(self, cancel: Optional[threading.Event] = None) -> ImportStats:
        """Bulk import every logo the repository mirror knows about.

        Raises:
            Cancelled: With the partial ImportStats attached
        """
        return self.mirror.bulk_import(self.process_and_store, cancel)

    def stats(self) -> Dict[str, int]:
        """Total record count plus a count per status."""
        counts = {"total": self.logo_repo.count()}
        for status in LogoStatus:
            counts[status.value] = self.logo_repo.count_by_status(status)
        return counts

    def get_record(self, symbol: str) -> LogoRecord:
        """Raises NotFound if the symbol has never been ingested."""
        return self.logo_repo.get_by_symbol(normalize_symbol(symbol))

    def list_pending(self, limit: int = 100) -> List[LogoRecord]:
        return self.logo_repo.list_pending(limit)

    def purge(self, symbol: str) -> bool:
        """Remove a symbol's blobs and record so the next request re-acquires it.

        Returns:
            True if a record existed
        """
        symbol = normalize_symbol(symbol)
        self.blobs.delete_symbol(symbol)
        deleted = self.logo_repo.delete(symbol)
        if deleted:
            log.info("logo.purged symbol=%s", symbol)
        return deleted

    def _from_cache(self, symbol: str, size: LogoSize) -> Optional[bytes]:
        record = self._find(symbol)
        if record is None or record.status != LogoStatus.PROCESSED or not record.has_size(size):
            return None
        try:
            return self.blobs.read(symbol, size)
        except NotFound:
            log.warning("logo.blob_missing symbol=%s size=%s", symbol, size.value)
            return None

    def _missing_blobs(self, record: LogoRecord) -> List[LogoSize]:
        return [
            size for size in record.available_sizes
            if not self.blobs.exists(record.symbol, size)
        ]

    def _restore_blobs(
        self,
        record: LogoRecord,
        result: LogoResult,
        missing: List[LogoSize],
    ) -> IngestOutcome:
        """Rewrite the blobs of a processed record without touching its status."""
        symbol = record.symbol
        log.info(
            "logo.restoring symbol=%s missing=%s source=%s",
            symbol, ",".join(size.value for size in missing), result.source,
        )
        stored, errors = self._write_sizes(symbol, result.image_data)

        if stored:
            record.company_name = result.company_name or record.company_name
            record.source = result.source
            record.original_url = result.original_url
            self.logo_repo.update(record)

        if errors:
            message = _error_message(errors)
            log.error("logo.restore_failed symbol=%s stored=%d error=%s", symbol, len(stored), message)
            servable = frozenset(size for size in ALL_SIZES if self.blobs.exists(symbol, size))
            raise ProcessingFailed(message, succeeded=servable)
        return IngestOutcome.PROCESSED

    def _write_sizes(self, symbol: str, image_data: bytes) -> Tuple[List[LogoSize], Dict[LogoSize, str]]:
        """Normalize, write each produced size and flag the ones stored."""
        normalized = self.normalizer(image_data)
        errors: Dict[LogoSize, str] = dict(normalized.errors)
        stored = []
        for size in ALL_SIZES:
            png = normalized.images.get(size)
            if png is None:
                continue
            try:
                self.blobs.write(symbol, size, png)
            except StorageError as e:
                errors[size] = f"write: {e}"
                continue
            stored.append(size)

        for size in stored:
            self.logo_repo.set_size_available(symbol, size)
        return stored, errors

    def _acquire(self, symbol: str, cancel: Optional[threading.Event]) -> LogoResult:
        try:
            result = self.mirror.get_logo(symbol, cancel)
            log.info("logo.found symbol=%s source=%s", symbol, result.source)
            return result
        except NotFound as e:
            log.debug("logo.mirror_miss symbol=%s error=%s", symbol, e)

        if self.llm is not None:
            try:
                result = self.llm.get_logo(symbol, cancel)
                log.info("logo.found symbol=%s source=%s", symbol, result.source)
                return result
            except Cancelled:
                raise
            except LogoServiceError as e:
                log.warning("logo.llm_miss symbol=%s error=%s", symbol, e)

        raise NoProviderFound(f"no provider found a logo for {symbol}")

    def _find(self, symbol: str) -> Optional[LogoRecord]:
        try:
            return self.logo_repo.get_by_symbol(symbol)
        except NotFound:
            return None

    def _create_pending(self, symbol: str, result: LogoResult) -> LogoRecord:
        record = LogoRecord(
            symbol=symbol,
            company_name=result.company_name,
            source=result.source,
            original_url=result.original_url,
            status=LogoStatus.PENDING,
        )
        try:
            self.logo_repo.create(record)
        except AlreadyExists:
            # another caller created it between our read and insert
            return self.logo_repo.get_by_symbol(symbol)
        return record


def _error_message(errors: Dict[LogoSize, str]) -> str:
    return "processing errors: " + "; ".join(
        f"{size.value}: {errors[size]}" for size in ALL_SIZES if size in errors
    )
