"""
Repository pattern for data access.

Handles database operations and data persistence logic for logo records
and the append-only LLM call ledger. All column mapping lives here so the
rest of the code only ever sees LogoRecord and LLMCallRecord.
"""

import sqlite3
from contextlib import contextmanager
from datetime import datetime
from typing import Iterator, List, Optional

from ticker_logos.core.errors import AlreadyExists, NotFound, StorageError
from .models import ALL_SIZES, LLMCallRecord, LogoRecord, LogoSize, LogoStatus

DEFAULT_DB_PATH = "storage/logo-service.db"
# seconds a writer waits on another process's lock before SQLITE_BUSY
BUSY_TIMEOUT = 5.0

_LOGO_COLUMNS = (
    "id", "symbol", "company_name", "source", "original_url",
    "has_xs", "has_s", "has_m", "has_l", "has_xl",
    "status", "error_message", "created_at", "updated_at",
)

_LLM_CALL_COLUMNS = (
    "symbol", "provider", "model", "result_url", "success", "duration_ms", "created_at",
)


def get_connection(db_path: str = DEFAULT_DB_PATH) -> sqlite3.Connection:
    """Open a new connection; each operation uses its own."""
    return sqlite3.connect(db_path, timeout=BUSY_TIMEOUT)


def initialize_schema(db_path: str = DEFAULT_DB_PATH) -> None:
    """Create the logos and llm_calls tables if they don't exist.

    llm_calls is an append-only ledger: no UPDATE or DELETE is ever issued
    against it.

    Args:
        db_path: Path to SQLite database file
    """
    conn = get_connection(db_path)
    try:
        conn.executescript("""
            CREATE TABLE IF NOT EXISTS logos (
                id            INTEGER PRIMARY KEY AUTOINCREMENT,
                symbol        TEXT NOT NULL UNIQUE,
                company_name  TEXT NOT NULL DEFAULT '',
                source        TEXT NOT NULL DEFAULT 'unknown',
                original_url  TEXT NOT NULL DEFAULT '',
                has_xs        INTEGER NOT NULL DEFAULT 0,
                has_s         INTEGER NOT NULL DEFAULT 0,
                has_m         INTEGER NOT NULL DEFAULT 0,
                has_l         INTEGER NOT NULL DEFAULT 0,
                has_xl        INTEGER NOT NULL DEFAULT 0,
                status        TEXT NOT NULL DEFAULT 'pending',
                error_message TEXT,
                created_at    TEXT NOT NULL,
                updated_at    TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS llm_calls (
                id          INTEGER PRIMARY KEY AUTOINCREMENT,
                symbol      TEXT NOT NULL,
                provider    TEXT NOT NULL,
                model       TEXT NOT NULL,
                result_url  TEXT,
                success     INTEGER NOT NULL DEFAULT 0,
                duration_ms INTEGER,
                created_at  TEXT NOT NULL
            );

            CREATE INDEX IF NOT EXISTS idx_logos_status ON logos(status);
            CREATE INDEX IF NOT EXISTS idx_llm_calls_symbol ON llm_calls(symbol);
        """)
        conn.commit()
    finally:
        conn.close()


@contextmanager
def _transaction(db_path: str, stage: str) -> Iterator[sqlite3.Connection]:
    """Open a connection, commit on success and wrap SQLite failures."""
    conn = get_connection(db_path)
    try:
        yield conn
        conn.commit()
    except sqlite3.Error as e:
        conn.rollback()
        raise StorageError(f"{stage}: {e}") from e
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()


def _row_to_record(row: tuple) -> LogoRecord:
    return LogoRecord(
        id=row[0],
        symbol=row[1],
        company_name=row[2],
        source=row[3],
        original_url=row[4],
        has_xs=bool(row[5]),
        has_s=bool(row[6]),
        has_m=bool(row[7]),
        has_l=bool(row[8]),
        has_xl=bool(row[9]),
        status=LogoStatus(row[10]),
        error_message=row[11],
        created_at=datetime.fromisoformat(row[12]),
        updated_at=datetime.fromisoformat(row[13]),
    )


class LogoRepository:
    """Metadata store for logo records, keyed by uppercased symbol.

    SQLite serializes writers internally; callers own any read-then-write
    sequencing.
    """

    def __init__(self, db_path: str = DEFAULT_DB_PATH):
        """Initialize the repository with a database path.

        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = db_path

    def get_by_symbol(self, symbol: str) -> LogoRecord:
        """Fetch the record for a symbol.

        Raises:
            NotFound: If no record exists for the symbol
            StorageError: If the database query fails
        """
        with _transaction(self.db_path, f"getting logo by symbol {symbol}") as conn:
            row = conn.execute(
                f"SELECT {', '.join(_LOGO_COLUMNS)} FROM logos WHERE symbol = ?",
                (symbol,),
            ).fetchone()
        if row is None:
            raise NotFound(f"logo not found: {symbol}")
        return _row_to_record(row)

    def create(self, record: LogoRecord) -> None:
        """Insert a new record and assign its id and timestamps.

        Raises:
            AlreadyExists: If a record for the symbol already exists
        """
        now = datetime.now()
        with _transaction(self.db_path, f"creating logo {record.symbol}") as conn:
            try:
                cursor = conn.execute("""
                    INSERT INTO logos
                    (symbol, company_name, source, original_url,
                     has_xs, has_s, has_m, has_l, has_xl,
                     status, error_message, created_at, updated_at)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """, (
                    record.symbol,
                    record.company_name,
                    record.source,
                    record.original_url,
                    *(int(record.has_size(size)) for size in ALL_SIZES),
                    record.status.value,
                    record.error_message,
                    now.isoformat(),
                    now.isoformat(),
                ))
            except sqlite3.IntegrityError as e:
                raise AlreadyExists(f"logo already exists: {record.symbol}") from e
        record.id = cursor.lastrowid
        record.created_at = now
        record.updated_at = now

    def update(self, record: LogoRecord) -> None:
        """Replace every mutable column of an existing record.

        Size flags are OR-ed with the stored values, so a stale record can
        never clear a flag that another writer already set.

        Raises:
            NotFound: If no record exists for the symbol
        """
        now = datetime.now()
        flag_sql = ", ".join(f"{size.column} = MAX({size.column}, ?)" for size in ALL_SIZES)
        with _transaction(self.db_path, f"updating logo {record.symbol}") as conn:
            cursor = conn.execute(f"""
                UPDATE logos SET
                    company_name = ?,
                    source = ?,
                    original_url = ?,
                    {flag_sql},
                    status = ?,
                    error_message = ?,
                    updated_at = ?
                WHERE symbol = ?
            """, (
                record.company_name,
                record.source,
                record.original_url,
                *(int(record.has_size(size)) for size in ALL_SIZES),
                record.status.value,
                record.error_message or None,
                now.isoformat(),
                record.symbol,
            ))
        if cursor.rowcount == 0:
            raise NotFound(f"logo not found: {record.symbol}")
        record.updated_at = now

    def set_size_available(self, symbol: str, size: LogoSize) -> None:
        """Mark a size as stored. Setting an already-set flag is a no-op."""
        with _transaction(self.db_path, f"setting size {size.value} for {symbol}") as conn:
            cursor = conn.execute(
                f"UPDATE logos SET {size.column} = 1, updated_at = ? WHERE symbol = ?",
                (datetime.now().isoformat(), symbol),
            )
        if cursor.rowcount == 0:
            raise NotFound(f"logo not found: {symbol}")

    def set_status(self, symbol: str, status: LogoStatus, error_message: str = "") -> None:
        """Set the processing status of a record.

        An empty error message clears the stored one. Only ``failed`` keeps a
        message, and it must have one.

        Raises:
            ValueError: If status is failed and no error message is given
            NotFound: If no record exists for the symbol
        """
        if status == LogoStatus.FAILED and not error_message:
            raise ValueError("failed status requires an error message")
        message = error_message if status == LogoStatus.FAILED else None
        with _transaction(self.db_path, f"setting status for {symbol}") as conn:
            cursor = conn.execute(
                "UPDATE logos SET status = ?, error_message = ?, updated_at = ? WHERE symbol = ?",
                (status.value, message, datetime.now().isoformat(), symbol),
            )
        if cursor.rowcount == 0:
            raise NotFound(f"logo not found: {symbol}")

    def count(self) -> int:
        with _transaction(self.db_path, "counting logos") as conn:
            return conn.execute("SELECT COUNT(*) FROM logos").fetchone()[0]

    def count_by_status(self, status: LogoStatus) -> int:
        with _transaction(self.db_path, f"counting {status.value} logos") as conn:
            return conn.execute(
                "SELECT COUNT(*) FROM logos WHERE status = ?", (status.value,)
            ).fetchone()[0]

    def list_pending(self, limit: int = 100) -> List[LogoRecord]:
        """List pending records, oldest first."""
        with _transaction(self.db_path, "listing pending logos") as conn:
            rows = conn.execute(
                f"SELECT {', '.join(_LOGO_COLUMNS)} FROM logos "
                "WHERE status = ? ORDER BY created_at ASC, id ASC LIMIT ?",
                (LogoStatus.PENDING.value, limit),
            ).fetchall()
        return [_row_to_record(row) for row in rows]

    def delete(self, symbol: str) -> bool:
        """Purge a record. Returns False when there was nothing to delete."""
        with _transaction(self.db_path, f"deleting logo {symbol}") as conn:
            cursor = conn.execute("DELETE FROM logos WHERE symbol = ?", (symbol,))
        return cursor.rowcount > 0


class LLMCallRepository:
    """Append-only ledger of LLM backend invocations."""

    def __init__(self, db_path: str = DEFAULT_DB_PATH):
        self.db_path = db_path

    def create(self, call: LLMCallRecord) -> None:
        """Append one audit row."""
        with _transaction(self.db_path, f"recording llm call for {call.symbol}") as conn:
            conn.execute(f"""
                INSERT INTO llm_calls ({', '.join(_LLM_CALL_COLUMNS)})
                VALUES (?, ?, ?, ?, ?, ?, ?)
            """, (
                call.symbol,
                call.provider,
                call.model,
                call.result_url,
                int(call.success),
                call.duration_ms,
                call.timestamp.isoformat(),
            ))

    def count_by_symbol(self, symbol: str) -> int:
        with _transaction(self.db_path, f"counting llm calls for {symbol}") as conn:
            return conn.execute(
                "SELECT COUNT(*) FROM llm_calls WHERE symbol = ?", (symbol,)
            ).fetchone()[0]

    def fetch_recent(self, limit: int = 20, symbol: Optional[str] = None) -> List[LLMCallRecord]:
        """Fetch recent calls, newest first, optionally for a single symbol."""
        query = f"SELECT {', '.join(_LLM_CALL_COLUMNS)} FROM llm_calls"
        params: list = []
        if symbol:
            query += " WHERE symbol = ?"
            params.append(symbol)
        query += " ORDER BY created_at DESC, id DESC LIMIT ?"
        params.append(limit)

        with _transaction(self.db_path, "fetching recent llm calls") as conn:
            rows = conn.execute(query, params).fetchall()
        return [
            LLMCallRecord(
                symbol=row[0],
                provider=row[1],
                model=row[2],
                result_url=row[3],
                success=bool(row[4]),
                duration_ms=row[5],
                timestamp=datetime.fromisoformat(row[6]),
            )
            for row in rows
        ]
