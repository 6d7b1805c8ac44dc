"""
Unit tests for storage layer.

Tests schema creation, logo record lifecycle and the LLM call ledger.
"""

import os
import shutil
import tempfile
from datetime import datetime

import pytest

from ticker_logos.core.errors import AlreadyExists, InvalidSize, InvalidSymbol, NotFound
from ticker_logos.storage.models import (
    LLMCallRecord,
    LogoRecord,
    LogoSize,
    LogoStatus,
    normalize_symbol,
)
from ticker_logos.storage.repository import (
    LLMCallRepository,
    LogoRepository,
    get_connection,
    initialize_schema,
)


class TestStorageSchema:
    """Test database schema creation and structure."""

    def test_schema_creation(self):
        """Verify both tables are created."""
        with tempfile.TemporaryDirectory() as temp_dir:
            db_path = os.path.join(temp_dir, "test.db")
            initialize_schema(db_path)

            conn = get_connection(db_path)
            try:
                cursor = conn.execute("""
                    SELECT name FROM sqlite_master
                    WHERE type='table' AND name IN ('logos', 'llm_calls')
                    ORDER BY name
                """)
                tables = [row[0] for row in cursor.fetchall()]
                assert tables == ["llm_calls", "logos"]

                cursor = conn.execute("PRAGMA table_info(logos)")
                column_names = [col[1] for col in cursor.fetchall()]
                assert column_names == [
                    'id', 'symbol', 'company_name', 'source', 'original_url',
                    'has_xs', 'has_s', 'has_m', 'has_l', 'has_xl',
                    'status', 'error_message', 'created_at', 'updated_at',
                ]
            finally:
                conn.close()

    def test_schema_creation_is_idempotent(self):
        with tempfile.TemporaryDirectory() as temp_dir:
            db_path = os.path.join(temp_dir, "test.db")
            initialize_schema(db_path)
            initialize_schema(db_path)

            assert LogoRepository(db_path).count() == 0


class TestModels:
    """Test size parsing and symbol normalization."""

    def test_size_pixels(self):
        assert [size.pixels for size in LogoSize] == [16, 32, 64, 128, 256]

    @pytest.mark.parametrize("token,expected", [
        ("xs", LogoSize.XS),
        ("M", LogoSize.M),
        (" xl ", LogoSize.XL),
    ])
    def test_size_parse(self, token, expected):
        assert LogoSize.parse(token) == expected

    @pytest.mark.parametrize("token", ["", "xxl", "medium", "64"])
    def test_size_parse_rejects_unknown(self, token):
        with pytest.raises(InvalidSize):
            LogoSize.parse(token)

    def test_normalize_symbol_uppercases(self):
        assert normalize_symbol(" aapl ") == "AAPL"
        assert normalize_symbol("brk.b") == "BRK.B"

    @pytest.mark.parametrize("symbol", ["", "   ", "../etc", "A/B", "AA PL", "X" * 17])
    def test_normalize_symbol_rejects_malformed(self, symbol):
        with pytest.raises(InvalidSymbol):
            normalize_symbol(symbol)

    def test_to_dict_omits_empty_error(self):
        record = LogoRecord(symbol="AAPL", has_m=True)
        data = record.to_dict()

        assert data["status"] == "pending"
        assert data["has_m"] is True
        assert data["has_xl"] is False
        assert "error_message" not in data


class TestLogoRepository:
    """Test logo record operations."""

    def setup_method(self):
        """Set up test environment."""
        self.temp_dir = tempfile.mkdtemp()
        self.db_path = os.path.join(self.temp_dir, "test.db")
        initialize_schema(self.db_path)
        self.repo = LogoRepository(self.db_path)

    def teardown_method(self):
        """Clean up test environment."""
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def _create(self, symbol="AAPL", **kwargs):
        record = LogoRecord(symbol=symbol, source="github:test/repo", **kwargs)
        self.repo.create(record)
        return record

    def test_create_assigns_id_and_timestamps(self):
        record = self._create()

        assert record.id is not None
        assert isinstance(record.created_at, datetime)
        assert record.updated_at == record.created_at

    def test_get_by_symbol_round_trip(self):
        self._create(company_name="Apple Inc.", original_url="https://example.com/aapl.png")

        stored = self.repo.get_by_symbol("AAPL")

        assert stored.company_name == "Apple Inc."
        assert stored.original_url == "https://example.com/aapl.png"
        assert stored.status == LogoStatus.PENDING
        assert stored.available_sizes == []

    def test_get_missing_symbol(self):
        with pytest.raises(NotFound):
            self.repo.get_by_symbol("MISSING")

    def test_create_duplicate_symbol(self):
        self._create()

        with pytest.raises(AlreadyExists):
            self._create()

    def test_set_size_available(self):
        self._create()

        self.repo.set_size_available("AAPL", LogoSize.M)
        self.repo.set_size_available("AAPL", LogoSize.M)

        stored = self.repo.get_by_symbol("AAPL")
        assert stored.available_sizes == [LogoSize.M]

    def test_set_size_available_missing_symbol(self):
        with pytest.raises(NotFound):
            self.repo.set_size_available("MISSING", LogoSize.XS)

    def test_update_never_clears_size_flags(self):
        self._create()
        stale = self.repo.get_by_symbol("AAPL")
        self.repo.set_size_available("AAPL", LogoSize.XL)

        stale.company_name = "Apple"
        self.repo.update(stale)

        stored = self.repo.get_by_symbol("AAPL")
        assert stored.company_name == "Apple"
        assert stored.has_xl is True

    def test_update_missing_symbol(self):
        with pytest.raises(NotFound):
            self.repo.update(LogoRecord(symbol="MISSING"))

    def test_set_status_failed_requires_message(self):
        self._create()

        with pytest.raises(ValueError, match="requires an error message"):
            self.repo.set_status("AAPL", LogoStatus.FAILED)

    def test_set_status_clears_message_when_not_failed(self):
        self._create()
        self.repo.set_status("AAPL", LogoStatus.FAILED, "xs: decode error")
        assert self.repo.get_by_symbol("AAPL").error_message == "xs: decode error"

        self.repo.set_status("AAPL", LogoStatus.PROCESSED, "ignored")

        stored = self.repo.get_by_symbol("AAPL")
        assert stored.status == LogoStatus.PROCESSED
        assert stored.error_message is None

    def test_counts(self):
        self._create("AAPL")
        self._create("MSFT")
        self._create("GOOG")
        self.repo.set_status("MSFT", LogoStatus.PROCESSED)

        assert self.repo.count() == 3
        assert self.repo.count_by_status(LogoStatus.PENDING) == 2
        assert self.repo.count_by_status(LogoStatus.PROCESSED) == 1
        assert self.repo.count_by_status(LogoStatus.FAILED) == 0

    def test_list_pending_oldest_first(self):
        for symbol in ("CCC", "AAA", "BBB"):
            self._create(symbol)
        self.repo.set_status("AAA", LogoStatus.PROCESSED)

        pending = self.repo.list_pending(limit=10)
        assert [record.symbol for record in pending] == ["CCC", "BBB"]

        assert len(self.repo.list_pending(limit=1)) == 1

    def test_delete(self):
        self._create()

        assert self.repo.delete("AAPL") is True
        assert self.repo.delete("AAPL") is False
        with pytest.raises(NotFound):
            self.repo.get_by_symbol("AAPL")


class TestLLMCallRepository:
    """Test the append-only LLM call ledger."""

    def setup_method(self):
        self.temp_dir = tempfile.mkdtemp()
        self.db_path = os.path.join(self.temp_dir, "test.db")
        initialize_schema(self.db_path)
        self.repo = LLMCallRepository(self.db_path)

    def teardown_method(self):
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def test_create_and_fetch(self):
        self.repo.create(LLMCallRecord(
            symbol="AAPL",
            provider="anthropic",
            model="claude-sonnet-4-5-20250929",
            success=True,
            result_url="https://example.com/aapl.png",
            duration_ms=1200,
            timestamp=datetime(2024, 1, 1, 12, 0, 0),
        ))
        self.repo.create(LLMCallRecord(
            symbol="AAPL",
            provider="openai",
            model="gpt-4o",
            success=False,
            timestamp=datetime(2024, 1, 1, 12, 5, 0),
        ))

        calls = self.repo.fetch_recent(symbol="AAPL")

        assert len(calls) == 2
        assert calls[0].provider == "openai"
        assert calls[0].success is False
        assert calls[0].result_url is None
        assert calls[1].duration_ms == 1200
        assert calls[1].timestamp == datetime(2024, 1, 1, 12, 0, 0)

    def test_count_by_symbol(self):
        for symbol in ("AAPL", "AAPL", "MSFT"):
            self.repo.create(LLMCallRecord(symbol=symbol, provider="openai", model="gpt-4o", success=False))

        assert self.repo.count_by_symbol("AAPL") == 2
        assert self.repo.count_by_symbol("GOOG") == 0
