"""
CLI interface for ticker logos.

Bulk import from the repository mirror, single logo fetches and a few
admin views over the metadata store.
"""

import json
import logging
import os
import signal
import sys
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from ticker_logos.config.loader import CONFIG_PATH_ENV, AppConfig, load_config
from ticker_logos.core.errors import Cancelled, LogoServiceError, NotFound
from ticker_logos.core.imaging import parse_hex_color
from ticker_logos.core.service import LogoService
from ticker_logos.factory import build_service
from ticker_logos.storage.models import LogoSize, normalize_symbol
from ticker_logos.storage.repository import LLMCallRepository

app = typer.Typer()
console = Console()
err_console = Console(stderr=True)

EXIT_CODE_OK = 0
EXIT_CODE_FAIL = 1
EXIT_CODE_USAGE = 2
EXIT_CODE_CANCELLED = 130

IMPORT_SOURCES = ("all", "github")

ConfigOption = typer.Option(
    None,
    "--config",
    "-c",
    help=f"Path to config YAML (defaults to ${CONFIG_PATH_ENV}, then ./config.yaml)",
)


def _setup_logging(level: str) -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(message)s",
        handlers=[RichHandler(console=err_console, show_path=False)],
        force=True,
    )


def _load(config_path: Optional[str]) -> AppConfig:
    try:
        config = load_config(config_path or os.environ.get(CONFIG_PATH_ENV) or None)
    except (FileNotFoundError, ValueError) as e:
        err_console.print(f"[red]Configuration error:[/] {e}")
        sys.exit(EXIT_CODE_USAGE)
    _setup_logging(config.log.level)
    return config


def _service(config_path: Optional[str]) -> LogoService:
    config = _load(config_path)
    try:
        return build_service(config)
    except LogoServiceError as e:
        err_console.print(f"[red]Error initializing storage:[/] {e}")
        sys.exit(EXIT_CODE_FAIL)


@contextmanager
def _cancel_on_signals() -> Iterator[threading.Event]:
    """Set the yielded event on SIGINT or SIGTERM."""
    cancel = threading.Event()

    def handler(signum, frame):
        logging.getLogger(__name__).warning("shutdown.signal signal=%s", signal.Signals(signum).name)
        cancel.set()

    previous = {sig: signal.signal(sig, handler) for sig in (signal.SIGINT, signal.SIGTERM)}
    try:
        yield cancel
    finally:
        for sig, old in previous.items():
            signal.signal(sig, old)


@app.callback(invoke_without_command=True)
def main(ctx: typer.Context):
    """Ticker logos CLI."""
    if ctx.invoked_subcommand is None:
        console.print("Ticker Logos - Use --help to see available commands")


@app.command()
def init(config: Optional[str] = ConfigOption):
    """Create the storage directories and the database schema."""
    _service(config)
    console.print("[green]✓[/] Storage initialized successfully")


@app.command("import")
def import_logos(
    source: str = typer.Option("all", "--source", "-s", help="Import source: all or github"),
    config: Optional[str] = ConfigOption,
):
    """
    Bulk import logos from the GitHub repository mirror.

    Ctrl-C stops the import cleanly; logos already stored are kept and the
    partial counts are printed.
    """
    if source not in IMPORT_SOURCES:
        err_console.print(f"[red]Unknown source:[/] {source} (expected one of: {', '.join(IMPORT_SOURCES)})")
        sys.exit(EXIT_CODE_USAGE)

    service = _service(config)
    with _cancel_on_signals() as cancel:
        try:
            stats = service.import_from_mirror(cancel)
        except Cancelled as e:
            console.print("[yellow]Import cancelled[/]")
            if e.stats is not None:
                _print_import_stats(e.stats)
            sys.exit(EXIT_CODE_CANCELLED)

    _print_import_stats(stats)
    sys.exit(EXIT_CODE_OK)


@app.command()
def get(
    symbol: str = typer.Argument(..., help="Ticker symbol, e.g. AAPL"),
    size: str = typer.Option("m", "--size", help="Logo size: xs, s, m, l or xl"),
    bg: Optional[str] = typer.Option(None, "--bg", help="Background color as 6-digit hex, e.g. ffffff"),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Output file (default: <SYMBOL>_<size>.png)"),
    config: Optional[str] = ConfigOption,
):
    """Fetch one logo, acquiring it if it is not cached yet."""
    try:
        symbol = normalize_symbol(symbol)
        logo_size = LogoSize.parse(size)
        if bg is not None:
            parse_hex_color(bg)
    except ValueError as e:
        err_console.print(f"[red]Invalid input:[/] {e}")
        sys.exit(EXIT_CODE_USAGE)

    service = _service(config)
    with _cancel_on_signals() as cancel:
        try:
            if bg is not None:
                data = service.get_logo_with_background(symbol, logo_size, bg, cancel)
            else:
                data = service.get_logo(symbol, logo_size, cancel)
        except Cancelled:
            console.print("[yellow]Cancelled[/]")
            sys.exit(EXIT_CODE_CANCELLED)
        except LogoServiceError as e:
            logging.getLogger(__name__).debug("get.failed symbol=%s error=%s", symbol, e)
            err_console.print(f"[red]logo not found:[/] {symbol}")
            sys.exit(EXIT_CODE_FAIL)

    path = output or Path(f"{symbol}_{logo_size.value}.png")
    path.write_bytes(data)
    console.print(f"[green]✓[/] Wrote {path} ({len(data)} bytes)")


@app.command()
def stats(config: Optional[str] = ConfigOption):
    """Show record counts by status."""
    counts = _service(config).stats()

    table = Table(title="Logo Stats")
    table.add_column("Status")
    table.add_column("Count", justify="right")
    for key, value in counts.items():
        table.add_row(key, str(value))
    console.print(table)


@app.command()
def pending(
    limit: int = typer.Option(100, "--limit", "-n", min=1, help="Maximum records to list"),
    config: Optional[str] = ConfigOption,
):
    """List symbols still waiting to be processed, oldest first."""
    records = _service(config).list_pending(limit)
    if not records:
        console.print("[dim]No pending logos.[/]")
        return

    table = Table(title=f"Pending Logos ({len(records)})")
    table.add_column("Symbol")
    table.add_column("Source")
    table.add_column("Created")
    for record in records:
        table.add_row(record.symbol, record.source, record.created_at.isoformat() if record.created_at else "")
    console.print(table)


@app.command()
def show(
    symbol: str = typer.Argument(..., help="Ticker symbol"),
    as_json: bool = typer.Option(False, "--json", help="Print the record as JSON"),
    config: Optional[str] = ConfigOption,
):
    """Show the stored record for a symbol."""
    service = _service(config)
    try:
        record = service.get_record(symbol)
    except ValueError as e:
        err_console.print(f"[red]Invalid input:[/] {e}")
        sys.exit(EXIT_CODE_USAGE)
    except NotFound:
        err_console.print(f"[red]No record for[/] {symbol}")
        sys.exit(EXIT_CODE_FAIL)

    data = record.to_dict()
    if as_json:
        typer.echo(json.dumps(data, indent=2))
        return

    console.print(f"\n[bold]{record.symbol}[/bold] {record.company_name}")
    console.print("-" * 40)
    for key in ("status", "source", "original_url", "error_message", "created_at", "updated_at"):
        if data.get(key):
            console.print(f"{key}: {data[key]}")
    sizes = ", ".join(size.value for size in record.available_sizes) or "none"
    console.print(f"sizes: {sizes}")


@app.command()
def purge(
    symbol: str = typer.Argument(..., help="Ticker symbol"),
    config: Optional[str] = ConfigOption,
):
    """Delete a symbol's record and images so the next request re-acquires it."""
    service = _service(config)
    try:
        deleted = service.purge(symbol)
    except ValueError as e:
        err_console.print(f"[red]Invalid input:[/] {e}")
        sys.exit(EXIT_CODE_USAGE)

    if not deleted:
        err_console.print(f"[yellow]No record for[/] {symbol}")
        sys.exit(EXIT_CODE_FAIL)
    console.print(f"[green]✓[/] Purged {symbol.upper()}")


@app.command()
def calls(
    symbol: Optional[str] = typer.Option(None, "--symbol", help="Only calls for this symbol"),
    limit: int = typer.Option(20, "--limit", "-n", min=1, help="Maximum calls to list"),
    config: Optional[str] = ConfigOption,
):
    """Show recent LLM search calls, newest first."""
    app_config = _load(config)
    _service(config)
    repo = LLMCallRepository(app_config.storage.database_path)
    if symbol:
        symbol = symbol.strip().upper()
        console.print(f"{symbol}: {repo.count_by_symbol(symbol)} LLM calls in total")
    records = repo.fetch_recent(limit=limit, symbol=symbol)
    if not records:
        console.print("[dim]No LLM calls recorded.[/]")
        return

    table = Table(title="Recent LLM Calls")
    table.add_column("Time")
    table.add_column("Symbol")
    table.add_column("Provider")
    table.add_column("Model")
    table.add_column("OK")
    table.add_column("ms", justify="right")
    table.add_column("URL")
    for call in records:
        table.add_row(
            call.timestamp.strftime("%Y-%m-%d %H:%M:%S"),
            call.symbol,
            call.provider,
            call.model,
            "[green]✓[/]" if call.success else "[red]✗[/]",
            str(call.duration_ms) if call.duration_ms is not None else "",
            call.result_url or "",
        )
    console.print(table)


def _print_import_stats(stats) -> None:
    table = Table(title="Import Result")
    table.add_column("Total", justify="right")
    table.add_column("Imported", justify="right")
    table.add_column("Skipped", justify="right")
    table.add_column("Failed", justify="right")
    table.add_row(str(stats.total), str(stats.imported), str(stats.skipped), str(stats.failed))
    console.print(table)

    for error in stats.errors[:10]:
        console.print(f"[red]•[/] {error}")
    hidden = max(len(stats.errors) - 10, 0) + stats.errors_dropped
    if hidden > 0:
        console.print(f"[dim]... and {hidden} more errors[/]")


if __name__ == "__main__":
    app()
