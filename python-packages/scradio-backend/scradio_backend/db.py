"""SQLite database operations for scradio-backend."""

import os
import sqlite3
from pathlib import Path
from typing import Optional

DEFAULT_DB_PATH = Path(__file__).parent.parent / "scradio-backend.db"

# Columns callers may change after creation. id, track_url, host_secret_hash
# and created_at are immutable.
MUTABLE_COLUMNS = frozenset({
    "playing",
    "position_ms",
    "state_updated_at",
    "host_lease_expires_at",
    "last_error",
})


def init_db(db_path: Optional[str] = None) -> sqlite3.Connection:
    """Open/create the SQLite database and ensure the sessions table exists.

    Args:
        db_path: Path to the SQLite database file. Defaults to DB_PATH env var
                 or scradio-backend.db next to the package.

    Returns:
        Open sqlite3 connection with row_factory set to sqlite3.Row.
    """
    resolved_path = db_path or os.environ.get("DB_PATH", str(DEFAULT_DB_PATH))
    conn = sqlite3.connect(resolved_path, check_same_thread=False)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA journal_mode=WAL")
    conn.execute("""
        CREATE TABLE IF NOT EXISTS sessions (
            id                    TEXT    PRIMARY KEY,
            track_url             TEXT    NOT NULL,
            host_secret_hash      TEXT    NOT NULL,
            created_at            INTEGER NOT NULL,
            playing               INTEGER NOT NULL DEFAULT 0,
            position_ms           INTEGER NOT NULL DEFAULT 0,
            state_updated_at      INTEGER NOT NULL,
            host_lease_expires_at INTEGER NOT NULL,
            last_error            TEXT
        )
    """)
    conn.commit()
    return conn


def _row_to_dict(row: sqlite3.Row) -> dict:
    data = dict(row)
    data["playing"] = bool(data["playing"])
    return data


def insert_session(conn: sqlite3.Connection, row: dict) -> dict:
    """Insert a new session row.

    Args:
        conn: Database connection.
        row: Full row dict. Every column except ``last_error`` is required.

    Returns:
        The stored row as a dict.
    """
    conn.execute(
        """
        INSERT INTO sessions (
            id, track_url, host_secret_hash, created_at, playing,
            position_ms, state_updated_at, host_lease_expires_at, last_error
        ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
        """,
        (
            row["id"],
            row["track_url"],
            row["host_secret_hash"],
            row["created_at"],
            int(bool(row["playing"])),
            row["position_ms"],
            row["state_updated_at"],
            row["host_lease_expires_at"],
            row.get("last_error"),
        ),
    )
    conn.commit()
    return get_session(conn, row["id"])


def get_session(conn: sqlite3.Connection, session_id: str) -> Optional[dict]:
    """Get a single session row, or None if not found."""
    row = conn.execute(
        "SELECT * FROM sessions WHERE id = ?", (session_id,)
    ).fetchone()
    return _row_to_dict(row) if row else None


def update_session(conn: sqlite3.Connection, session_id: str, fields: dict) -> bool:
    """Apply a partial update to a session row.

    Args:
        conn: Database connection.
        session_id: Row to update.
        fields: Column -> value. Only ``MUTABLE_COLUMNS`` are accepted.

    Returns:
        True if a row was updated.

    Raises:
        ValueError: If ``fields`` names an immutable or unknown column.
    """
    unknown = set(fields) - MUTABLE_COLUMNS
    if unknown:
        raise ValueError(f"Cannot update columns: {', '.join(sorted(unknown))}")
    if not fields:
        return False

    params = []
    parts = []
    for column, value in fields.items():
        parts.append(f"{column} = ?")
        params.append(int(bool(value)) if column == "playing" else value)

    params.append(session_id)
    cursor = conn.execute(
        f"UPDATE sessions SET {', '.join(parts)} WHERE id = ?",
        params,
    )
    conn.commit()
    return cursor.rowcount > 0


def delete_sessions_before(conn: sqlite3.Connection, cutoff_ms: int) -> list[str]:
    """Delete every session whose last state write is older than ``cutoff_ms``.

    Returns:
        The ids of the deleted sessions.
    """
    rows = conn.execute(
        "SELECT id FROM sessions WHERE state_updated_at < ?", (cutoff_ms,)
    ).fetchall()
    ids = [r["id"] for r in rows]
    if ids:
        conn.executemany("DELETE FROM sessions WHERE id = ?", [(i,) for i in ids])
        conn.commit()
    return ids


def count_sessions(conn: sqlite3.Connection) -> int:
    """Return the number of stored sessions."""
    return conn.execute("SELECT COUNT(*) FROM sessions").fetchone()[0]
