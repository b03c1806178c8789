"""Database module for SQLite operations.

All SQL operations are isolated here. No other module writes SQL.
"""

import sqlite3
import time
from typing import Optional


def init_db(path: str) -> sqlite3.Connection:
    """Initialize database with tables and PRAGMAs.

    Args:
        path: Path to the SQLite database file (use ':memory:' for in-memory)

    Returns:
        sqlite3.Connection: Database connection with row factory set
    """
    conn = _create_connection(path)

    conn.execute("""
        CREATE TABLE IF NOT EXISTS sampler_state (
            key TEXT PRIMARY KEY,
            value BLOB NOT NULL,
            updated_at INTEGER NOT NULL
        )
    """)

    conn.commit()
    return conn


def _create_connection(path: str) -> sqlite3.Connection:
    """Create a new database connection with proper settings.

    Args:
        path: Path to the SQLite database file

    Returns:
        sqlite3.Connection: Database connection with row factory and PRAGMAs set
    """
    conn = sqlite3.connect(path, check_same_thread=False, timeout=30.0)
    conn.row_factory = sqlite3.Row

    conn.execute("PRAGMA journal_mode=WAL")
    conn.execute("PRAGMA synchronous=NORMAL")
    conn.commit()

    return conn


def get_connection(path: str) -> sqlite3.Connection:
    """Get a new database connection for a sampler.

    Each poller should own its own connection; the connection is created
    with check_same_thread=False so it can be opened on the main thread and
    used from the poller thread.

    Args:
        path: Path to the SQLite database file

    Returns:
        sqlite3.Connection: New database connection with row factory and PRAGMAs set
    """
    return _create_connection(path)


def get_value(conn: sqlite3.Connection, key: str) -> Optional[bytes]:
    """Get the stored value for a key.

    Args:
        conn: Database connection
        key: State key

    Returns:
        The stored bytes, or None if the key has never been written
    """
    cursor = conn.execute("SELECT value FROM sampler_state WHERE key = ?", (key,))
    row = cursor.fetchone()
    return bytes(row[0]) if row is not None else None


def set_value(
    conn: sqlite3.Connection, key: str, value: bytes, updated_at: Optional[int] = None
) -> None:
    """Insert or replace the value for a key.

    Caller is responsible for committing the transaction.

    Args:
        conn: Database connection
        key: State key
        value: Bytes to store
        updated_at: Unix timestamp of the write (default: now)
    """
    if updated_at is None:
        updated_at = int(time.time())
    conn.execute(
        """INSERT OR REPLACE INTO sampler_state (key, value, updated_at)
           VALUES (?, ?, ?)""",
        (key, sqlite3.Binary(value), updated_at),
    )


def commit_batch(conn: sqlite3.Connection) -> None:
    """Commit all pending writes in a single transaction.

    Args:
        conn: Database connection
    """
    conn.commit()
