from datetime import datetime
from typing import Any, Dict, List, Optional

from kora_reclaim.shared.models import (
    AccountStatus,
    AgeBreakdown,
    BotStatistics,
    Lifecycle,
    MonitoringResult,
    Reclaimed,
    ReclaimAttempt,
    SponsoredAccount,
    utc_now,
)
from kora_reclaim.shared.system.database.core import DatabaseCore
from kora_reclaim.shared.system.database.repositories.account_repo import AccountRepository
from kora_reclaim.shared.system.database.repositories.attempt_repo import AttemptRepository
from kora_reclaim.shared.system.database.repositories.state_repo import StateRepository


class LedgerStore:
    """
    Ledger Store Facade.
    Delegates to the account, attempt and state repositories.

    The store is the sole owner of tracked account records; engines read,
    decide and write back through it on every mutation.
    """

    def __init__(self, db_path: str):
        # 1. Initialize Core (Connection, WAL)
        self.core = DatabaseCore(db_path)

        # 2. Initialize Repositories
        self.accounts = AccountRepository(self.core)
        self.attempts = AttemptRepository(self.core)
        self.state = StateRepository(self.core)

        # 3. Initialize Schemas
        self.accounts.init_table()
        self.attempts.init_table()
        self.state.init_table()

    def close(self) -> None:
        self.core.close()

    # ═══════════════════════════════════════════════════════════════
    # ACCOUNTS
    # ═══════════════════════════════════════════════════════════════

    def upsert_account(self, account: SponsoredAccount) -> None:
        self.accounts.upsert(account)

    def get_account(self, pubkey: str) -> Optional[SponsoredAccount]:
        return self.accounts.get(pubkey)

    def has_account(self, pubkey: str) -> bool:
        return self.accounts.exists(pubkey)

    def list_by_status(self, status: AccountStatus, limit: Optional[int] = None) -> List[SponsoredAccount]:
        return self.accounts.list_by_status(status, limit)

    def list_reclaim_eligible(
        self,
        min_age_days: float,
        limit: int,
        now: Optional[datetime] = None,
    ) -> List[SponsoredAccount]:
        return self.accounts.list_reclaim_eligible(min_age_days, limit, now)

    def update_status(
        self,
        pubkey: str,
        lifecycle: Lifecycle,
        lamports: Optional[int] = None,
        checked_at: Optional[datetime] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> bool:
        return self.accounts.update_status(pubkey, lifecycle, lamports, checked_at, metadata)

    def mark_reclaimed(
        self,
        pubkey: str,
        signature: str,
        amount: int,
        reclaimed_at: Optional[datetime] = None,
    ) -> bool:
        """Terminal transition plus its success attempt row."""
        account = self.accounts.get(pubkey)
        if account is None:
            return False
        reclaimed_at = reclaimed_at or utc_now()
        closed_at = account.closed_at or reclaimed_at
        updated = self.accounts.update_status(
            pubkey,
            Reclaimed(closed_at=closed_at, reclaimed_at=reclaimed_at, amount=amount, signature=signature),
            lamports=0,
            checked_at=reclaimed_at,
        )
        if updated:
            self.attempts.append(ReclaimAttempt(
                account_pubkey=pubkey,
                amount=amount,
                success=True,
                dry_run=False,
                signature=signature,
                created_at=reclaimed_at,
            ))
        return updated

    # ═══════════════════════════════════════════════════════════════
    # ATTEMPTS
    # ═══════════════════════════════════════════════════════════════

    def append_attempt(self, attempt: ReclaimAttempt) -> None:
        self.attempts.append(attempt)

    def list_attempts(self, pubkey: str) -> List[ReclaimAttempt]:
        return self.attempts.list_for_account(pubkey)

    def list_recent_attempts(self, limit: int = 20) -> List[ReclaimAttempt]:
        return self.attempts.list_recent(limit)

    # ═══════════════════════════════════════════════════════════════
    # CURSORS / SCANS
    # ═══════════════════════════════════════════════════════════════

    def get_cursor(self) -> Optional[str]:
        return self.state.get_cursor()

    def set_cursor(self, signature: str) -> None:
        self.state.set_cursor(signature)

    def get_head_cursor(self) -> Optional[str]:
        return self.state.get_head_cursor()

    def set_head_cursor(self, signature: str) -> None:
        self.state.set_head_cursor(signature)

    def record_scan(self, result: MonitoringResult, scanned_at: Optional[datetime] = None) -> None:
        self.state.record_scan(result, scanned_at)

    # ═══════════════════════════════════════════════════════════════
    # REPORTING
    # ═══════════════════════════════════════════════════════════════

    def get_statistics(self) -> BotStatistics:
        stats = self.accounts.get_statistics()
        stats.last_scan_at = self.state.last_scan_time()
        stats.last_reclaim_at = self.attempts.last_attempt_time()
        return stats

    def get_age_breakdown(self, now: Optional[datetime] = None) -> AgeBreakdown:
        return self.accounts.get_age_breakdown(now)
