import os
import sqlite3
from contextlib import contextmanager

from kora_reclaim.shared.system.logging import Logger


class DatabaseCore:
    """
    Core Database Connection Manager.
    Handles per-operation connections, WAL mode and data directory creation.

    Every write commits before the cursor context exits, so an aborted process
    leaves the store consistent and resumable. Only one bot instance may write
    to a given file at a time.
    """

    def __init__(self, db_path: str):
        self.db_path = db_path
        self._ensure_data_dir()
        self._init_wal_mode()

    def _ensure_data_dir(self):
        directory = os.path.dirname(os.path.abspath(self.db_path))
        if not os.path.exists(directory):
            os.makedirs(directory, exist_ok=True)

    def _init_wal_mode(self):
        """Enable Write-Ahead Logging."""
        try:
            with self.cursor(commit=True) as c:
                c.execute("PRAGMA journal_mode=WAL;")
                c.execute("PRAGMA synchronous=FULL;")
        except sqlite3.Error as e:
            Logger.warning(f"⚠️ [DB] Failed to enable WAL mode: {e}")

    def get_connection(self) -> sqlite3.Connection:
        """Get a configured SQLite connection."""
        conn = sqlite3.connect(self.db_path, timeout=10.0)
        conn.row_factory = sqlite3.Row
        return conn

    @contextmanager
    def cursor(self, commit=False):
        """Context manager for database interaction."""
        conn = self.get_connection()
        cursor = conn.cursor()
        try:
            yield cursor
            if commit:
                conn.commit()
        except Exception as e:
            if commit:
                conn.rollback()
            Logger.error(f"❌ [DB] Error: {e}")
            raise
        finally:
            conn.close()

    def close(self):
        """Fold the WAL back into the main database file."""
        try:
            with self.cursor(commit=True) as c:
                c.execute("PRAGMA wal_checkpoint(TRUNCATE);")
            Logger.debug(f"[DB] Closed {self.db_path}")
        except sqlite3.Error as e:
            Logger.warning(f"⚠️ [DB] Checkpoint on close failed: {e}")
