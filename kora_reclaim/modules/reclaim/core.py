"""
Reclaim Engine
==============
Recovers rent from closed sponsored accounts, oldest-closed first.

Per account:
    SafetyPipeline (age → minimum → program)      reject / protect
        ↓
    live re-check: exists again?                  revert to active, abort
        ↓
    ReclaimExecutor (kind dispatch + authority)   reject
        ↓
    dry run → synthetic success, store untouched
    live    → submit + confirm → reclaimed

A failure on one account is recorded (attempt row, event, audit entry) and
the batch moves on. Accounts stay `closed` unless protected, revived or
reclaimed.
"""

import asyncio
from datetime import datetime
from typing import Awaitable, Callable, Optional

from solders.keypair import Keypair

from kora_reclaim.modules.reclaim.executor import ReclaimExecutor
from kora_reclaim.modules.reclaim.safety import ProgramPolicy, SafetyPipeline
from kora_reclaim.shared.models import (
    Active,
    Protected,
    ReclaimAttempt,
    ReclaimBatchSummary,
    ReclaimResult,
    RejectionReason,
    SponsoredAccount,
    observed_metadata,
    utc_now,
)
from kora_reclaim.shared.system.events import AuditSink, BotEvent, BotEventType, EventRecorder
from kora_reclaim.utils.helpers import format_sol


def reclaim_amount(account: SponsoredAccount, observed_lamports: int) -> int:
    """Observed balance capped at the rent-exempt minimum; the minimum when nothing is observed."""
    if observed_lamports > 0:
        return min(observed_lamports, account.rent_exempt_minimum)
    return account.rent_exempt_minimum


class ReclaimEngine:
    """
    Usage:
        engine = ReclaimEngine.from_config(config, gateway, store, signer, events, audit)
        summary = await engine.run_reclaim_cycle(dry_run=True)
    """

    def __init__(
        self,
        gateway,
        store,
        signer: Keypair,
        events: EventRecorder,
        audit: AuditSink,
        pipeline: SafetyPipeline,
        max_batch_size: int = 50,
        treasury: Optional[str] = None,
        dry_run: bool = False,
        tx_delay_ms: int = 1000,
        clock: Callable[[], datetime] = utc_now,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.gateway = gateway
        self.store = store
        self.signer = signer
        self.events = events
        self.audit = audit
        self.pipeline = pipeline
        self.executor = ReclaimExecutor(signer)
        self.max_batch_size = max_batch_size
        self.treasury = treasury
        self.dry_run = dry_run
        self.tx_delay_ms = tx_delay_ms
        self.clock = clock
        self._sleep = sleep

    @classmethod
    def from_config(cls, config, gateway, store, signer: Keypair, events: EventRecorder, audit: AuditSink, **kwargs):
        clock = kwargs.pop("clock", utc_now)
        pipeline = SafetyPipeline(
            min_age_days=config.min_account_age_days,
            min_reclaim_lamports=config.min_reclaim_lamports,
            policy=ProgramPolicy(config.allowed_programs, config.blocked_programs),
            clock=clock,
        )
        return cls(
            gateway,
            store,
            signer,
            events,
            audit,
            pipeline,
            max_batch_size=config.max_batch_size,
            treasury=config.treasury,
            dry_run=config.dry_run,
            tx_delay_ms=config.tx_delay_ms,
            clock=clock,
            **kwargs,
        )

    @property
    def destination(self) -> str:
        return self.treasury or str(self.signer.pubkey())

    async def run_reclaim_cycle(self, dry_run: Optional[bool] = None) -> ReclaimBatchSummary:
        """
        Args:
            dry_run: overrides the configured mode for this cycle when not None
        """
        is_dry_run = self.dry_run if dry_run is None else dry_run
        started_at = self.clock()

        self.events.record(BotEvent(
            type=BotEventType.RECLAIM_STARTED,
            message=f"Starting reclaim cycle (dry-run: {is_dry_run})",
            source="RECLAIM",
            data={"dry_run": is_dry_run},
        ))

        eligible = self.store.list_reclaim_eligible(
            self.pipeline.min_age_days,
            self.max_batch_size,
            now=started_at,
        )
        summary = ReclaimBatchSummary(
            total_reclaimable=sum(a.rent_exempt_minimum for a in eligible),
            started_at=started_at,
            completed_at=started_at,
            dry_run=is_dry_run,
        )
        destination = self.destination

        for account in eligible:
            try:
                result = await self._reclaim_account(account, destination, is_dry_run)
            except Exception as e:
                result = self._record_failure(account, str(e), None, is_dry_run)
            summary.results.append(result)

            if result.success and not is_dry_run:
                await self._sleep(self.tx_delay_ms / 1000)

        summary.completed_at = self.clock()
        self.events.record(BotEvent(
            type=BotEventType.RECLAIM_COMPLETED,
            message=(
                f"Reclaim cycle completed: {summary.success_count} succeeded, "
                f"{summary.failed_count} failed ({format_sol(summary.total_reclaimed)})"
            ),
            source="RECLAIM",
            data={
                "total_processed": summary.total_processed,
                "success_count": summary.success_count,
                "failed_count": summary.failed_count,
                "skipped_count": summary.skipped_count,
                "total_reclaimed": summary.total_reclaimed,
                "total_reclaimable": summary.total_reclaimable,
                "dry_run": is_dry_run,
            },
        ))
        return summary

    async def _reclaim_account(self, account: SponsoredAccount, destination: str, dry_run: bool) -> ReclaimResult:
        check = self.pipeline.evaluate(account)
        if not check.passed:
            if check.protect:
                self._protect(account, check.message)
            return self._record_failure(account, check.message, check.reason, dry_run)

        # The account may have been recreated since reconciliation.
        state = await self.gateway.get_resource_state(account.pubkey)
        if state.exists:
            self.store.update_status(
                account.pubkey,
                Active(),
                lamports=state.lamports,
                checked_at=self.clock(),
                metadata=observed_metadata(account.metadata, state),
            )
            self.events.record(BotEvent(
                type=BotEventType.ACCOUNT_REVIVED,
                message=f"Account {account.pubkey[:8]}... was revived (reclaim aborted)",
                source="RECLAIM",
                data={"account": account.pubkey, "lamports": state.lamports},
            ))
            return self._record_failure(
                account, "Account was revived - not closed", RejectionReason.REVIVED, dry_run
            )

        amount = reclaim_amount(account, state.lamports)
        plan = self.executor.prepare(account, destination, amount)
        if not plan.ok:
            return self._record_failure(account, plan.rejection.message, plan.rejection.reason, dry_run)

        if dry_run:
            return self._record_success(account, amount, None, dry_run=True)

        signature = await self.gateway.submit_close_or_transfer(plan.instructions, self.signer)
        self.store.mark_reclaimed(account.pubkey, signature, amount, reclaimed_at=self.clock())
        return self._record_success(account, amount, signature, dry_run=False)

    def _protect(self, account: SponsoredAccount, reason: str) -> None:
        self.store.update_status(
            account.pubkey,
            Protected(reason=reason, closed_at=account.closed_at),
            checked_at=self.clock(),
        )
        self.events.record(BotEvent(
            type=BotEventType.ACCOUNT_PROTECTED,
            message=f"Account {account.pubkey[:8]}... protected: {reason}",
            source="RECLAIM",
            data={"account": account.pubkey, "owner": account.owner},
        ))

    def _record_success(self, account: SponsoredAccount, amount: int, signature: Optional[str], dry_run: bool) -> ReclaimResult:
        prefix = "[DRY RUN] Would reclaim" if dry_run else "Reclaimed"
        self.events.record(BotEvent(
            type=BotEventType.RECLAIM_SUCCESS,
            message=f"{prefix} {format_sol(amount)} from {account.pubkey[:8]}...",
            source="RECLAIM",
            data={"account": account.pubkey, "amount": amount, "signature": signature, "dry_run": dry_run},
        ))
        self.audit.append({
            "action": "reclaim",
            "account": account.pubkey,
            "account_type": account.kind.value,
            "amount": amount,
            "destination": self.destination,
            "signature": signature,
            "success": True,
            "dry_run": dry_run,
        })
        return ReclaimResult(
            success=True,
            account=account.pubkey,
            amount=amount,
            dry_run=dry_run,
            signature=signature,
            timestamp=self.clock(),
        )

    def _record_failure(
        self,
        account: SponsoredAccount,
        error: str,
        reason: Optional[RejectionReason],
        dry_run: bool,
    ) -> ReclaimResult:
        now = self.clock()
        self.store.append_attempt(ReclaimAttempt(
            account_pubkey=account.pubkey,
            amount=0,
            success=False,
            dry_run=dry_run,
            error_message=error,
            created_at=now,
        ))
        mode = " (dry run)" if dry_run else ""
        self.events.record(BotEvent(
            type=BotEventType.RECLAIM_FAILED,
            message=f"Failed to reclaim {account.pubkey[:8]}...{mode}: {error}",
            source="RECLAIM",
            data={"account": account.pubkey, "error": error, "reason": reason, "dry_run": dry_run},
        ))
        self.audit.append({
            "action": "reclaim",
            "account": account.pubkey,
            "account_type": account.kind.value,
            "success": False,
            "dry_run": dry_run,
            "reason": reason.value if reason else None,
            "error": error,
        })
        return ReclaimResult(
            success=False,
            account=account.pubkey,
            amount=0,
            dry_run=dry_run,
            error=error,
            rejection=reason,
            timestamp=now,
        )
