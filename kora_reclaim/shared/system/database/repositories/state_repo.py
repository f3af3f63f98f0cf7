"""
Bot State Repository
====================
Key/value bot state (scan cursors) and the scan history log.

Cursors:
- last_processed_signature: oldest signature fully processed (tail, moves back in time)
- newest_processed_signature: newest signature seen by a completed scan (head)
"""

from datetime import datetime
from typing import Optional

from kora_reclaim.shared.models import MonitoringResult, utc_now
from kora_reclaim.shared.system.database.repositories.base import (
    BaseRepository,
    from_epoch,
    to_epoch,
)
from kora_reclaim.shared.system.logging import Logger

TAIL_CURSOR_KEY = "last_processed_signature"
HEAD_CURSOR_KEY = "newest_processed_signature"


class StateRepository(BaseRepository):

    def init_table(self):
        with self.db.cursor(commit=True) as c:
            c.execute("""
            CREATE TABLE IF NOT EXISTS bot_state (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL,
                updated_at REAL NOT NULL
            )
            """)

            c.execute("""
            CREATE TABLE IF NOT EXISTS scan_history (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                scanned_at REAL NOT NULL,
                new_accounts INTEGER NOT NULL DEFAULT 0,
                closed_accounts INTEGER NOT NULL DEFAULT 0,
                error_accounts INTEGER NOT NULL DEFAULT 0,
                total_checked INTEGER NOT NULL DEFAULT 0
            )
            """)

            Logger.debug("📦 [DB] bot_state / scan_history initialized")

    def get_value(self, key: str) -> Optional[str]:
        row = self._fetchone("SELECT value FROM bot_state WHERE key = ?", (key,))
        return row["value"] if row else None

    def set_value(self, key: str, value: str) -> None:
        self._execute("""
        INSERT INTO bot_state (key, value, updated_at) VALUES (?, ?, ?)
        ON CONFLICT(key) DO UPDATE SET value = excluded.value, updated_at = excluded.updated_at
        """, (key, value, to_epoch(utc_now())))

    def get_cursor(self) -> Optional[str]:
        return self.get_value(TAIL_CURSOR_KEY)

    def set_cursor(self, signature: str) -> None:
        self.set_value(TAIL_CURSOR_KEY, signature)

    def get_head_cursor(self) -> Optional[str]:
        return self.get_value(HEAD_CURSOR_KEY)

    def set_head_cursor(self, signature: str) -> None:
        self.set_value(HEAD_CURSOR_KEY, signature)

    def record_scan(self, result: MonitoringResult, scanned_at: Optional[datetime] = None) -> None:
        self._execute("""
        INSERT INTO scan_history (scanned_at, new_accounts, closed_accounts, error_accounts, total_checked)
        VALUES (?, ?, ?, ?, ?)
        """, (
            to_epoch(scanned_at or utc_now()),
            result.new_accounts,
            result.closed_accounts,
            result.error_accounts,
            result.total_checked,
        ))

    def last_scan_time(self) -> Optional[datetime]:
        row = self._fetchone("SELECT MAX(scanned_at) AS last_at FROM scan_history")
        return from_epoch(row["last_at"]) if row else None
