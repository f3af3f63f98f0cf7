"""
Sponsored Account Repository
============================
One row per account the fee payer sponsored.

Lifecycle: active ⇄ closed → reclaimed (terminal), closed → protected.
The tagged lifecycle union is flattened into status + timestamp columns on
write and rebuilt on read.
"""

import json
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from kora_reclaim.shared.models import (
    AccountKind,
    AccountStatus,
    Active,
    AgeBreakdown,
    BotStatistics,
    Closed,
    Empty,
    Errored,
    Lifecycle,
    Protected,
    Reclaimed,
    SponsoredAccount,
    utc_now,
)
from kora_reclaim.shared.system.database.repositories.base import (
    BaseRepository,
    from_epoch,
    to_epoch,
)
from kora_reclaim.shared.system.logging import Logger

SECONDS_PER_DAY = 86400


def _lifecycle_columns(lifecycle: Lifecycle) -> dict:
    """Column values carried by each lifecycle variant."""
    columns = {
        "status": lifecycle.status.value,
        "closed_at": None,
        "reclaimed_at": None,
        "reclaim_tx_signature": None,
        "reclaimed_amount": None,
        "error_message": None,
    }
    if isinstance(lifecycle, Closed):
        columns["closed_at"] = to_epoch(lifecycle.closed_at)
    elif isinstance(lifecycle, Reclaimed):
        columns["closed_at"] = to_epoch(lifecycle.closed_at)
        columns["reclaimed_at"] = to_epoch(lifecycle.reclaimed_at)
        columns["reclaim_tx_signature"] = lifecycle.signature
        columns["reclaimed_amount"] = lifecycle.amount
    elif isinstance(lifecycle, Protected):
        columns["closed_at"] = to_epoch(lifecycle.closed_at)
        columns["error_message"] = lifecycle.reason
    elif isinstance(lifecycle, Errored):
        columns["error_message"] = lifecycle.message
    return columns


def _lifecycle_from_row(row: dict) -> Lifecycle:
    status = AccountStatus(row["status"])
    closed_at = from_epoch(row.get("closed_at"))
    if status == AccountStatus.CLOSED:
        return Closed(closed_at=closed_at or from_epoch(row["last_checked_at"]))
    if status == AccountStatus.RECLAIMED:
        reclaimed_at = from_epoch(row["reclaimed_at"])
        return Reclaimed(
            closed_at=closed_at or reclaimed_at,
            reclaimed_at=reclaimed_at,
            amount=row.get("reclaimed_amount") or 0,
            signature=row.get("reclaim_tx_signature"),
        )
    if status == AccountStatus.PROTECTED:
        return Protected(reason=row.get("error_message") or "", closed_at=closed_at)
    if status == AccountStatus.ERROR:
        return Errored(message=row.get("error_message") or "")
    if status == AccountStatus.EMPTY:
        return Empty()
    return Active()


def _account_from_row(row: dict) -> SponsoredAccount:
    metadata = row.get("metadata")
    return SponsoredAccount(
        pubkey=row["pubkey"],
        kind=AccountKind(row["account_type"]),
        lifecycle=_lifecycle_from_row(row),
        lamports=row["lamports"],
        rent_exempt_minimum=row["rent_exempt_minimum"],
        owner=row["owner"],
        creation_signature=row["creation_signature"],
        creation_slot=row["creation_slot"],
        created_at=from_epoch(row["created_at"]),
        last_checked_at=from_epoch(row["last_checked_at"]),
        metadata=json.loads(metadata) if metadata else None,
    )


class AccountRepository(BaseRepository):
    """
    Repository for sponsored account tracking.

    Schema:
    - status: active/empty/closed/reclaimed/protected/error
    - closed_at / reclaimed_at: epoch seconds, set by lifecycle transitions
    - rent_exempt_minimum: lamports required for the account's data size
    """

    def init_table(self):
        """Initialize sponsored_accounts table."""
        with self.db.cursor(commit=True) as c:
            c.execute("""
            CREATE TABLE IF NOT EXISTS sponsored_accounts (
                pubkey TEXT PRIMARY KEY,
                account_type TEXT NOT NULL CHECK(account_type IN ('system', 'token', 'token_2022', 'ata', 'pda', 'unknown')),
                status TEXT NOT NULL CHECK(status IN ('active', 'empty', 'closed', 'reclaimed', 'protected', 'error')),
                lamports INTEGER NOT NULL DEFAULT 0,
                rent_exempt_minimum INTEGER NOT NULL DEFAULT 0,
                owner TEXT NOT NULL,
                creation_signature TEXT NOT NULL,
                creation_slot INTEGER NOT NULL DEFAULT 0,
                created_at REAL NOT NULL,
                last_checked_at REAL NOT NULL,
                closed_at REAL,
                reclaimed_at REAL,
                reclaim_tx_signature TEXT,
                reclaimed_amount INTEGER,
                error_message TEXT,
                metadata TEXT
            )
            """)

            c.execute("""
            CREATE INDEX IF NOT EXISTS idx_sponsored_status
            ON sponsored_accounts(status)
            """)

            c.execute("""
            CREATE INDEX IF NOT EXISTS idx_sponsored_closed_at
            ON sponsored_accounts(status, closed_at)
            """)

            Logger.debug("📦 [DB] sponsored_accounts initialized")

    def upsert(self, account: SponsoredAccount) -> None:
        """
        Insert or fully replace an account row.

        Note:
            A row already in 'reclaimed' is never overwritten.
        """
        columns = _lifecycle_columns(account.lifecycle)
        with self.db.cursor(commit=True) as c:
            c.execute("""
            INSERT INTO sponsored_accounts (
                pubkey, account_type, status, lamports, rent_exempt_minimum,
                owner, creation_signature, creation_slot, created_at, last_checked_at,
                closed_at, reclaimed_at, reclaim_tx_signature, reclaimed_amount,
                error_message, metadata
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(pubkey) DO UPDATE SET
                account_type = excluded.account_type,
                status = excluded.status,
                lamports = excluded.lamports,
                rent_exempt_minimum = excluded.rent_exempt_minimum,
                owner = excluded.owner,
                creation_signature = excluded.creation_signature,
                creation_slot = excluded.creation_slot,
                created_at = excluded.created_at,
                last_checked_at = excluded.last_checked_at,
                closed_at = excluded.closed_at,
                reclaimed_at = excluded.reclaimed_at,
                reclaim_tx_signature = excluded.reclaim_tx_signature,
                reclaimed_amount = excluded.reclaimed_amount,
                error_message = excluded.error_message,
                metadata = excluded.metadata
            WHERE sponsored_accounts.status != 'reclaimed'
            """, (
                account.pubkey,
                account.kind.value,
                columns["status"],
                account.lamports,
                account.rent_exempt_minimum,
                account.owner,
                account.creation_signature,
                account.creation_slot,
                to_epoch(account.created_at),
                to_epoch(account.last_checked_at),
                columns["closed_at"],
                columns["reclaimed_at"],
                columns["reclaim_tx_signature"],
                columns["reclaimed_amount"],
                columns["error_message"],
                json.dumps(account.metadata) if account.metadata else None,
            ))

    def get(self, pubkey: str) -> Optional[SponsoredAccount]:
        row = self._fetchone("SELECT * FROM sponsored_accounts WHERE pubkey = ?", (pubkey,))
        return _account_from_row(row) if row else None

    def exists(self, pubkey: str) -> bool:
        return self._fetchone("SELECT 1 AS found FROM sponsored_accounts WHERE pubkey = ?", (pubkey,)) is not None

    def list_by_status(self, status: AccountStatus, limit: Optional[int] = None) -> List[SponsoredAccount]:
        query = "SELECT * FROM sponsored_accounts WHERE status = ? ORDER BY created_at ASC"
        params: tuple = (AccountStatus(status).value,)
        if limit is not None:
            query += " LIMIT ?"
            params += (limit,)
        return [_account_from_row(row) for row in self._fetchall(query, params)]

    def list_reclaim_eligible(
        self,
        min_age_days: float,
        limit: int,
        now: Optional[datetime] = None,
    ) -> List[SponsoredAccount]:
        """
        Closed, unreclaimed accounts whose close is at least min_age_days old.

        Returns:
            Oldest-closed first, at most `limit` rows.
        """
        now = now or utc_now()
        cutoff = now.timestamp() - min_age_days * SECONDS_PER_DAY
        rows = self._fetchall("""
        SELECT * FROM sponsored_accounts
        WHERE status = 'closed'
          AND closed_at IS NOT NULL
          AND closed_at <= ?
          AND reclaimed_at IS NULL
        ORDER BY closed_at ASC
        LIMIT ?
        """, (cutoff, limit))
        return [_account_from_row(row) for row in rows]

    def update_status(
        self,
        pubkey: str,
        lifecycle: Lifecycle,
        lamports: Optional[int] = None,
        checked_at: Optional[datetime] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> bool:
        """
        Move an account to a new lifecycle variant.
        `lamports` and `metadata` are left untouched when None.

        Returns:
            False when the account is unknown or already reclaimed.
        """
        columns = _lifecycle_columns(lifecycle)
        checked_at = checked_at or utc_now()
        with self.db.cursor(commit=True) as c:
            c.execute("""
            UPDATE sponsored_accounts SET
                status = ?,
                closed_at = ?,
                reclaimed_at = ?,
                reclaim_tx_signature = ?,
                reclaimed_amount = ?,
                error_message = ?,
                lamports = COALESCE(?, lamports),
                metadata = COALESCE(?, metadata),
                last_checked_at = ?
            WHERE pubkey = ? AND status != 'reclaimed'
            """, (
                columns["status"],
                columns["closed_at"],
                columns["reclaimed_at"],
                columns["reclaim_tx_signature"],
                columns["reclaimed_amount"],
                columns["error_message"],
                lamports,
                json.dumps(metadata) if metadata else None,
                to_epoch(checked_at),
                pubkey,
            ))
            return c.rowcount > 0

    def get_statistics(self) -> BotStatistics:
        row = self._fetchone("""
        SELECT
            COUNT(*) AS total,
            SUM(CASE WHEN status = 'active' THEN 1 ELSE 0 END) AS active,
            SUM(CASE WHEN status = 'closed' THEN 1 ELSE 0 END) AS closed,
            SUM(CASE WHEN status = 'reclaimed' THEN 1 ELSE 0 END) AS reclaimed,
            SUM(CASE WHEN status = 'protected' THEN 1 ELSE 0 END) AS protected,
            SUM(CASE WHEN status = 'error' THEN 1 ELSE 0 END) AS errored,
            SUM(CASE WHEN status = 'active' THEN lamports ELSE 0 END) AS locked,
            SUM(CASE WHEN status = 'closed' THEN rent_exempt_minimum ELSE 0 END) AS reclaimable,
            SUM(CASE WHEN status = 'reclaimed' THEN reclaimed_amount ELSE 0 END) AS reclaimed_lamports
        FROM sponsored_accounts
        """) or {}
        return BotStatistics(
            total_accounts=row.get("total") or 0,
            active_accounts=row.get("active") or 0,
            closed_accounts=row.get("closed") or 0,
            reclaimed_accounts=row.get("reclaimed") or 0,
            protected_accounts=row.get("protected") or 0,
            error_accounts=row.get("errored") or 0,
            total_locked_lamports=row.get("locked") or 0,
            total_reclaimable_lamports=row.get("reclaimable") or 0,
            total_reclaimed_lamports=row.get("reclaimed_lamports") or 0,
        )

    def get_age_breakdown(self, now: Optional[datetime] = None) -> AgeBreakdown:
        """Bucket non-reclaimed accounts by creation age."""
        now = now or utc_now()
        one_day = (now - timedelta(days=1)).timestamp()
        seven_days = (now - timedelta(days=7)).timestamp()
        thirty_days = (now - timedelta(days=30)).timestamp()
        row = self._fetchone("""
        SELECT
            SUM(CASE WHEN created_at > ? THEN 1 ELSE 0 END) AS lt_1d,
            SUM(CASE WHEN created_at <= ? AND created_at > ? THEN 1 ELSE 0 END) AS d1_7,
            SUM(CASE WHEN created_at <= ? AND created_at > ? THEN 1 ELSE 0 END) AS d7_30,
            SUM(CASE WHEN created_at <= ? THEN 1 ELSE 0 END) AS gt_30d
        FROM sponsored_accounts
        WHERE status != 'reclaimed'
        """, (one_day, one_day, seven_days, seven_days, thirty_days, thirty_days)) or {}
        return AgeBreakdown(
            less_than_1_day=row.get("lt_1d") or 0,
            one_to_seven_days=row.get("d1_7") or 0,
            seven_to_thirty_days=row.get("d7_30") or 0,
            more_than_30_days=row.get("gt_30d") or 0,
        )
