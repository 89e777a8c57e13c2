"""Database connection and schema management."""

import sqlite3
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Iterator

from .exceptions import AccountNotFoundError
from .models import Account, UsageReading

DEFAULT_DB_PATH = Path.home() / ".local" / "share" / "billsnipe" / "billsnipe.db"

SCHEMA = """
-- Utility accounts (provider is NULL when the current supplier is unknown)
CREATE TABLE IF NOT EXISTS accounts (
    id TEXT PRIMARY KEY,
    region TEXT NOT NULL,
    provider TEXT,
    account_number TEXT,
    created_at TEXT DEFAULT CURRENT_TIMESTAMP
);

-- Hourly usage readings
CREATE TABLE IF NOT EXISTS usage_readings (
    id INTEGER PRIMARY KEY,
    account_id TEXT NOT NULL,
    timestamp TEXT NOT NULL,
    kwh REAL NOT NULL,
    UNIQUE(account_id, timestamp),
    FOREIGN KEY (account_id) REFERENCES accounts(id)
);

-- Regional plan catalog, rate structure stored as JSON
CREATE TABLE IF NOT EXISTS plan_catalog (
    seq INTEGER PRIMARY KEY,
    id TEXT NOT NULL UNIQUE,
    name TEXT NOT NULL,
    provider TEXT NOT NULL,
    region TEXT NOT NULL,
    schema TEXT NOT NULL,
    active INTEGER NOT NULL DEFAULT 1
);

CREATE INDEX IF NOT EXISTS idx_usage_account ON usage_readings(account_id, timestamp);
CREATE INDEX IF NOT EXISTS idx_plan_region ON plan_catalog(region, active);
"""


def get_db_path() -> Path:
    """Get the database path, creating parent directories if needed."""
    db_path = Path(DEFAULT_DB_PATH)
    db_path.parent.mkdir(parents=True, exist_ok=True)
    return db_path


@contextmanager
def get_connection(db_path: Path | None = None) -> Iterator[sqlite3.Connection]:
    """Get a database connection with row factory enabled."""
    path = db_path or get_db_path()
    conn = sqlite3.connect(path)
    conn.row_factory = sqlite3.Row
    try:
        yield conn
    finally:
        conn.close()


def init_db(db_path: Path | None = None) -> None:
    """Initialize the database schema."""
    with get_connection(db_path) as conn:
        conn.executescript(SCHEMA)
        conn.commit()


def save_account(account: Account, db_path: Path | None = None) -> None:
    """Insert or update a utility account."""
    with get_connection(db_path) as conn:
        conn.execute(
            """INSERT INTO accounts (id, region, provider, account_number)
               VALUES (?, ?, ?, ?)
               ON CONFLICT(id) DO UPDATE SET
                   region = excluded.region,
                   provider = excluded.provider,
                   account_number = excluded.account_number""",
            (account.id, account.region, account.provider, account.account_number),
        )
        conn.commit()


def get_account(account_id: str, db_path: Path | None = None) -> Account:
    """Load an account by id."""
    with get_connection(db_path) as conn:
        row = conn.execute(
            "SELECT id, region, provider, account_number FROM accounts WHERE id = ?",
            (account_id,),
        ).fetchone()

    if not row:
        raise AccountNotFoundError(f"Account not found: {account_id}")

    return Account(
        id=row["id"],
        region=row["region"],
        provider=row["provider"],
        account_number=row["account_number"],
    )


def list_accounts(db_path: Path | None = None) -> list[Account]:
    """List all accounts, oldest first."""
    with get_connection(db_path) as conn:
        rows = conn.execute(
            "SELECT id, region, provider, account_number FROM accounts ORDER BY created_at, id"
        ).fetchall()

    return [
        Account(
            id=row["id"],
            region=row["region"],
            provider=row["provider"],
            account_number=row["account_number"],
        )
        for row in rows
    ]


def get_usage_for_period(
    account_id: str,
    start: datetime | None = None,
    end: datetime | None = None,
    db_path: Path | None = None,
) -> list[UsageReading]:
    """Load an account's readings between start and end (inclusive), oldest first."""
    query = "SELECT timestamp, kwh FROM usage_readings WHERE account_id = ?"
    params: list = [account_id]
    if start is not None:
        query += " AND timestamp >= ?"
        params.append(start.isoformat())
    if end is not None:
        query += " AND timestamp <= ?"
        params.append(end.isoformat())
    query += " ORDER BY timestamp"

    with get_connection(db_path) as conn:
        rows = conn.execute(query, params).fetchall()

    return [
        UsageReading(timestamp=datetime.fromisoformat(row["timestamp"]), kwh=row["kwh"])
        for row in rows
    ]


def get_stats(db_path: Path | None = None) -> dict:
    """Get database statistics."""
    with get_connection(db_path) as conn:
        stats = {}

        row = conn.execute("SELECT COUNT(*) as count FROM accounts").fetchone()
        stats["accounts"] = {"count": row["count"]}

        row = conn.execute(
            "SELECT COUNT(*) as count, MIN(timestamp) as earliest, MAX(timestamp) as latest FROM usage_readings"
        ).fetchone()
        stats["usage_readings"] = {
            "count": row["count"],
            "earliest": row["earliest"],
            "latest": row["latest"],
        }

        rows = conn.execute(
            "SELECT account_id, COUNT(*) as count FROM usage_readings GROUP BY account_id ORDER BY account_id"
        ).fetchall()
        stats["usage_by_account"] = {row["account_id"]: row["count"] for row in rows}

        row = conn.execute(
            "SELECT COUNT(*) as count, SUM(active) as active FROM plan_catalog"
        ).fetchone()
        stats["plans"] = {"count": row["count"], "active": row["active"] or 0}

        return stats
