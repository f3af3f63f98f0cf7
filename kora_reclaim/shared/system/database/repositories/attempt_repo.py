"""
Reclaim History Repository
==========================
Append-only audit of every reclaim attempt, live or simulated.
Rows are never updated and never read for control flow.
"""

from datetime import datetime
from typing import List, Optional

from kora_reclaim.shared.models import ReclaimAttempt
from kora_reclaim.shared.system.database.repositories.base import (
    BaseRepository,
    from_epoch,
    to_epoch,
)
from kora_reclaim.shared.system.logging import Logger


def _attempt_from_row(row: dict) -> ReclaimAttempt:
    return ReclaimAttempt(
        account_pubkey=row["account_pubkey"],
        amount=row["amount"],
        success=bool(row["success"]),
        dry_run=bool(row["dry_run"]),
        signature=row.get("tx_signature"),
        error_message=row.get("error_message"),
        created_at=from_epoch(row["created_at"]),
    )


class AttemptRepository(BaseRepository):

    def init_table(self):
        with self.db.cursor(commit=True) as c:
            c.execute("""
            CREATE TABLE IF NOT EXISTS reclaim_history (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                account_pubkey TEXT NOT NULL,
                tx_signature TEXT,
                amount INTEGER NOT NULL DEFAULT 0,
                success BOOLEAN NOT NULL,
                dry_run BOOLEAN NOT NULL DEFAULT 0,
                error_message TEXT,
                created_at REAL NOT NULL
            )
            """)

            c.execute("""
            CREATE INDEX IF NOT EXISTS idx_reclaim_history_account
            ON reclaim_history(account_pubkey, created_at)
            """)

            Logger.debug("📦 [DB] reclaim_history initialized")

    def append(self, attempt: ReclaimAttempt) -> None:
        self._execute("""
        INSERT INTO reclaim_history (
            account_pubkey, tx_signature, amount, success, dry_run, error_message, created_at
        ) VALUES (?, ?, ?, ?, ?, ?, ?)
        """, (
            attempt.account_pubkey,
            attempt.signature,
            attempt.amount,
            attempt.success,
            attempt.dry_run,
            attempt.error_message,
            to_epoch(attempt.created_at),
        ))

    def list_for_account(self, pubkey: str) -> List[ReclaimAttempt]:
        rows = self._fetchall(
            "SELECT * FROM reclaim_history WHERE account_pubkey = ? ORDER BY id ASC",
            (pubkey,),
        )
        return [_attempt_from_row(row) for row in rows]

    def list_recent(self, limit: int = 20) -> List[ReclaimAttempt]:
        rows = self._fetchall("SELECT * FROM reclaim_history ORDER BY id DESC LIMIT ?", (limit,))
        return [_attempt_from_row(row) for row in rows]

    def last_attempt_time(self) -> Optional[datetime]:
        """Time of the most recent successful live reclaim."""
        row = self._fetchone("""
        SELECT MAX(created_at) AS last_at FROM reclaim_history
        WHERE success = 1 AND dry_run = 0
        """)
        return from_epoch(row["last_at"]) if row else None
