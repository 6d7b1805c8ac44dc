"""
Tests for the CLI interface.
"""
import json
import sqlite3
from unittest.mock import MagicMock, patch

import pytest
import yaml
from typer.testing import CliRunner

from ticker_logos.cli.main import (
    EXIT_CODE_CANCELLED,
    EXIT_CODE_FAIL,
    EXIT_CODE_OK,
    EXIT_CODE_USAGE,
    app,
)
from ticker_logos.config.loader import AppConfig, StorageConfig
from ticker_logos.core.errors import Cancelled, NoProviderFound, NotFound
from ticker_logos.providers.base import ImportStats
from ticker_logos.storage.models import LLMCallRecord, LogoRecord, LogoSize, LogoStatus
from ticker_logos.storage.repository import LLMCallRepository, initialize_schema

runner = CliRunner()


@pytest.fixture
def mock_service():
    """Patch config loading and service wiring."""
    with patch('ticker_logos.cli.main.load_config', return_value=AppConfig()), \
            patch('ticker_logos.cli.main.build_service') as mock_build:
        service = MagicMock()
        mock_build.return_value = service
        yield service


class TestCLI:
    """Test CLI commands."""

    def test_no_command_prints_hint(self):
        result = runner.invoke(app, [])

        assert result.exit_code == EXIT_CODE_OK
        assert "Ticker Logos" in result.output

    def test_init_creates_storage(self, tmp_path):
        config_path = tmp_path / "config.yaml"
        config_path.write_text(yaml.dump({
            "storage": {
                "database_path": str(tmp_path / "db" / "logos.db"),
                "logo_dir": str(tmp_path / "logos"),
            },
            "llm": {"provider_order": []},
        }))

        result = runner.invoke(app, ["init", "--config", str(config_path)])

        assert result.exit_code == EXIT_CODE_OK
        assert "Storage initialized" in result.output
        assert (tmp_path / "logos").is_dir()
        conn = sqlite3.connect(str(tmp_path / "db" / "logos.db"))
        try:
            tables = {row[0] for row in conn.execute("SELECT name FROM sqlite_master WHERE type='table'")}
        finally:
            conn.close()
        assert {"logos", "llm_calls"} <= tables

    def test_missing_config_file(self, tmp_path):
        result = runner.invoke(app, ["stats", "--config", str(tmp_path / "missing.yaml")])

        assert result.exit_code == EXIT_CODE_USAGE
        assert "Configuration error" in result.output

    def test_get_writes_file(self, mock_service, tmp_path):
        mock_service.get_logo.return_value = b"png-bytes"
        output = tmp_path / "aapl.png"

        result = runner.invoke(app, ["get", "aapl", "--size", "XL", "--output", str(output)])

        assert result.exit_code == EXIT_CODE_OK
        assert output.read_bytes() == b"png-bytes"
        args = mock_service.get_logo.call_args.args
        assert args[:2] == ("AAPL", LogoSize.XL)

    def test_get_with_background(self, mock_service, tmp_path):
        mock_service.get_logo_with_background.return_value = b"flat"

        result = runner.invoke(app, ["get", "AAPL", "--bg", "#ffffff", "-o", str(tmp_path / "out.png")])

        assert result.exit_code == EXIT_CODE_OK
        args = mock_service.get_logo_with_background.call_args.args
        assert args[:3] == ("AAPL", LogoSize.M, "#ffffff")
        mock_service.get_logo.assert_not_called()

    @pytest.mark.parametrize("argv", [
        ["get", "AAPL", "--size", "huge"],
        ["get", "AAPL", "--bg", "fff"],
        ["get", "../etc/passwd"],
    ])
    def test_get_invalid_input(self, mock_service, argv):
        result = runner.invoke(app, argv)

        assert result.exit_code == EXIT_CODE_USAGE
        assert "Invalid input" in result.output
        mock_service.get_logo.assert_not_called()

    def test_get_not_found(self, mock_service):
        mock_service.get_logo.side_effect = NoProviderFound("no provider found a logo for ZZZZ")

        result = runner.invoke(app, ["get", "ZZZZ"])

        assert result.exit_code == EXIT_CODE_FAIL
        assert "logo not found" in result.output

    def test_import(self, mock_service):
        mock_service.import_from_mirror.return_value = ImportStats(
            total=3, imported=2, skipped=0, failed=1, errors=["GONE: download failed"],
        )

        result = runner.invoke(app, ["import", "--source", "github"])

        assert result.exit_code == EXIT_CODE_OK
        assert "Import Result" in result.output
        assert "GONE: download failed" in result.output

    def test_import_cancelled_prints_partial_stats(self, mock_service):
        mock_service.import_from_mirror.side_effect = Cancelled(
            "bulk import cancelled", stats=ImportStats(total=5, imported=3),
        )

        result = runner.invoke(app, ["import"])

        assert result.exit_code == EXIT_CODE_CANCELLED
        assert "Import cancelled" in result.output
        assert "Import Result" in result.output

    def test_import_unknown_source(self, mock_service):
        result = runner.invoke(app, ["import", "--source", "llm"])

        assert result.exit_code == EXIT_CODE_USAGE
        mock_service.import_from_mirror.assert_not_called()

    def test_stats(self, mock_service):
        mock_service.stats.return_value = {"total": 4, "pending": 1, "processed": 2, "failed": 1, "not_found": 0}

        result = runner.invoke(app, ["stats"])

        assert result.exit_code == EXIT_CODE_OK
        assert "processed" in result.output

    def test_pending_empty(self, mock_service):
        mock_service.list_pending.return_value = []

        result = runner.invoke(app, ["pending", "--limit", "5"])

        assert result.exit_code == EXIT_CODE_OK
        assert "No pending logos" in result.output
        mock_service.list_pending.assert_called_once_with(5)

    def test_show_json(self, mock_service):
        mock_service.get_record.return_value = LogoRecord(
            symbol="AAPL", source="github:org/icons", has_m=True, status=LogoStatus.PROCESSED,
        )

        result = runner.invoke(app, ["show", "AAPL", "--json"])

        assert result.exit_code == EXIT_CODE_OK
        data = json.loads(result.output)
        assert data["symbol"] == "AAPL"
        assert data["status"] == "processed"
        assert data["has_m"] is True

    def test_show_missing(self, mock_service):
        mock_service.get_record.side_effect = NotFound("logo not found: AAPL")

        result = runner.invoke(app, ["show", "AAPL"])

        assert result.exit_code == EXIT_CODE_FAIL

    def test_purge(self, mock_service):
        mock_service.purge.return_value = True

        result = runner.invoke(app, ["purge", "aapl"])

        assert result.exit_code == EXIT_CODE_OK
        assert "Purged AAPL" in result.output

    def test_purge_missing(self, mock_service):
        mock_service.purge.return_value = False

        result = runner.invoke(app, ["purge", "AAPL"])

        assert result.exit_code == EXIT_CODE_FAIL

    def test_calls_lists_audit_rows(self, tmp_path):
        db_path = str(tmp_path / "logos.db")
        initialize_schema(db_path)
        repo = LLMCallRepository(db_path)
        repo.create(LLMCallRecord(symbol="AAPL", provider="anthropic", model="claude-test",
                                  success=True, result_url="https://x/a.png", duration_ms=120))
        repo.create(LLMCallRecord(symbol="MSFT", provider="openai", model="gpt-test", success=False))
        config = AppConfig(storage=StorageConfig(database_path=db_path, logo_dir=str(tmp_path / "logos")))

        with patch('ticker_logos.cli.main.load_config', return_value=config), \
                patch('ticker_logos.cli.main.build_service'):
            result = runner.invoke(app, ["calls", "--symbol", "aapl"])

        assert result.exit_code == EXIT_CODE_OK
        assert "AAPL: 1 LLM calls in total" in result.output
        assert "MSFT" not in result.output

    def test_calls_empty(self, mock_service):
        with patch('ticker_logos.cli.main.LLMCallRepository') as mock_repo:
            mock_repo.return_value.fetch_recent.return_value = []

            result = runner.invoke(app, ["calls"])

        assert result.exit_code == EXIT_CODE_OK
        assert "No LLM calls recorded" in result.output
