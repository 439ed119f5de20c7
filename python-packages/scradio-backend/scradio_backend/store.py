"""Session state store for scradio-backend.

Durable rows live in SQLite (see ``db.py``); change notification is an
in-process fan-out to subscribers registered per session id.
"""

import logging
import os
import sqlite3
import threading
import time
from typing import Callable, Optional

from . import db as session_db

logger = logging.getLogger(__name__)

DEFAULT_SESSION_TTL = int(os.environ.get("SESSION_TTL", str(24 * 60 * 60)))  # 24 hours (seconds)
DEFAULT_CLEANUP_INTERVAL = int(os.environ.get("CLEANUP_INTERVAL", str(5 * 60)))  # 5 minutes

ChangeListener = Callable[[dict], None]


class SessionStore:
    """Keyed session rows with partial update and change subscription.

    Every successful ``update()`` delivers the full new row to each
    subscriber of that session. Notification happens under the store lock,
    so subscribers observe updates in commit order and must not block.

    A periodic cleanup thread removes sessions idle for longer than
    ``session_ttl`` seconds.

    Thread-safe: all access is protected by a reentrant lock.
    """

    def __init__(
        self,
        conn: sqlite3.Connection,
        session_ttl: int = DEFAULT_SESSION_TTL,
        cleanup_interval: int = DEFAULT_CLEANUP_INTERVAL,
    ) -> None:
        self._conn = conn
        self._subscribers: dict[str, list[ChangeListener]] = {}
        self._lock = threading.RLock()
        self._session_ttl = session_ttl
        self._cleanup_interval = cleanup_interval
        self._stop_event = threading.Event()
        self._cleanup_thread: Optional[threading.Thread] = None
        if cleanup_interval > 0:
            self._start_cleanup()

    # -------------------------------------------------------------------------
    # CRUD
    # -------------------------------------------------------------------------

    def create(self, row: dict) -> dict:
        """Store a new session row and return it."""
        with self._lock:
            return session_db.insert_session(self._conn, row)

    def get(self, session_id: str) -> Optional[dict]:
        """Retrieve a session row by ID."""
        with self._lock:
            return session_db.get_session(self._conn, session_id)

    def has(self, session_id: str) -> bool:
        """Check whether a session exists."""
        return self.get(session_id) is not None

    def update(self, session_id: str, fields: dict) -> Optional[dict]:
        """Apply a partial update and notify subscribers.

        Args:
            session_id: Session to update.
            fields: Mutable columns to change.

        Returns:
            The full row after the write, or None if the session does not exist.

        Raises:
            sqlite3.Error: If the database write fails.
        """
        with self._lock:
            if not session_db.update_session(self._conn, session_id, fields):
                return None
            row = session_db.get_session(self._conn, session_id)
            self._notify(session_id, row)
            return row

    def update_with(self, session_id: str, build: Callable[[dict], dict]) -> Optional[dict]:
        """Read, derive and write a session row under one lock hold.

        ``build`` receives the current row and returns the fields to change.
        Anything it raises propagates and nothing is written.

        Returns:
            The full row after the write, or None if the session does not exist.

        Raises:
            sqlite3.Error: If the database write fails.
        """
        with self._lock:
            row = session_db.get_session(self._conn, session_id)
            if row is None:
                return None
            return self.update(session_id, build(row))

    def size(self) -> int:
        """Return the number of stored sessions."""
        with self._lock:
            return session_db.count_sessions(self._conn)

    # -------------------------------------------------------------------------
    # Change notification
    # -------------------------------------------------------------------------

    def subscribe(self, session_id: str, on_change: ChangeListener) -> Callable[[], None]:
        """Register ``on_change`` for updates to one session.

        Returns:
            A callable that removes the subscription. Safe to call twice.
        """
        with self._lock:
            self._subscribers.setdefault(session_id, []).append(on_change)

        def unsubscribe() -> None:
            with self._lock:
                listeners = self._subscribers.get(session_id)
                if listeners and on_change in listeners:
                    listeners.remove(on_change)
                    if not listeners:
                        del self._subscribers[session_id]

        return unsubscribe

    def subscriber_count(self, session_id: str) -> int:
        with self._lock:
            return len(self._subscribers.get(session_id, []))

    def _notify(self, session_id: str, row: dict) -> None:
        for listener in list(self._subscribers.get(session_id, [])):
            try:
                listener(dict(row))
            except Exception:
                logger.exception("Session change listener failed for %s", session_id)

    # -------------------------------------------------------------------------
    # Cleanup
    # -------------------------------------------------------------------------

    def _start_cleanup(self) -> None:
        self._cleanup_thread = threading.Thread(
            target=self._cleanup_loop, daemon=True, name="scradio-session-cleanup"
        )
        self._cleanup_thread.start()

    def _cleanup_loop(self) -> None:
        while not self._stop_event.wait(self._cleanup_interval):
            try:
                self._sweep()
            except sqlite3.Error:
                logger.exception("Session cleanup sweep failed")

    def _sweep(self) -> list[str]:
        cutoff_ms = int((time.time() - self._session_ttl) * 1000)
        with self._lock:
            removed = session_db.delete_sessions_before(self._conn, cutoff_ms)
            for sid in removed:
                self._subscribers.pop(sid, None)
        if removed:
            logger.info("Removed %d idle session(s)", len(removed))
        return removed

    def stop_cleanup(self) -> None:
        """Stop the periodic cleanup thread. Call during graceful shutdown."""
        self._stop_event.set()
        if self._cleanup_thread:
            self._cleanup_thread.join(timeout=5)
