"""
Status Reconciliation
=====================
Re-checks every active (and previously errored) account against the ledger
in bulk batches:

- gone           → closed, balance 0, closed_at = now
- still present  → active with refreshed balance
- per-account failure → error with the message; the batch continues

A failed bulk call itself propagates: nothing in that batch was observed.
"""

from dataclasses import dataclass, replace
from datetime import datetime
from typing import Callable, Optional

from kora_reclaim.modules.monitor.discovery import RentExemptCache
from kora_reclaim.shared.errors import RpcError
from kora_reclaim.shared.models import (
    AccountStatus,
    Active,
    Closed,
    Errored,
    ResourceState,
    SponsoredAccount,
    classify_account,
    observed_metadata,
    utc_now,
)
from kora_reclaim.shared.system.events import BotEvent, BotEventType, EventRecorder
from kora_reclaim.utils.helpers import chunk

BATCH_SIZE = 100


@dataclass
class ReconciliationResult:
    checked: int = 0
    closed: int = 0
    errors: int = 0
    recovered: int = 0


class AccountReconciler:

    def __init__(
        self,
        gateway,
        store,
        events: EventRecorder,
        rent_cache: Optional[RentExemptCache] = None,
        clock: Callable[[], datetime] = utc_now,
        batch_size: int = BATCH_SIZE,
    ):
        self.gateway = gateway
        self.store = store
        self.events = events
        self.rent = rent_cache or RentExemptCache(gateway)
        self.clock = clock
        self.batch_size = batch_size

    async def reconcile(self) -> ReconciliationResult:
        result = ReconciliationResult()
        accounts = self.store.list_by_status(AccountStatus.ACTIVE) + self.store.list_by_status(AccountStatus.ERROR)

        for batch in chunk(accounts, self.batch_size):
            states = await self.gateway.get_bulk_resource_state([a.pubkey for a in batch])
            for account in batch:
                result.checked += 1
                try:
                    state = states.get(account.pubkey)
                    if state is None:
                        raise RpcError(f"No state returned for {account.pubkey}")
                    await self._apply(account, state, result)
                except Exception as e:
                    result.errors += 1
                    self.store.update_status(account.pubkey, Errored(message=str(e)), checked_at=self.clock())
                    self.events.record(BotEvent(
                        type=BotEventType.ERROR,
                        message=f"Failed to reconcile {account.pubkey}: {e}",
                        source="RECONCILE",
                        data={"pubkey": account.pubkey, "error": str(e)},
                    ))

        return result

    async def _apply(self, account: SponsoredAccount, state: ResourceState, result: ReconciliationResult) -> None:
        now = self.clock()

        if not state.exists:
            self.store.update_status(account.pubkey, Closed(closed_at=now), lamports=0, checked_at=now)
            result.closed += 1
            self.events.record(BotEvent(
                type=BotEventType.ACCOUNT_CLOSED_DETECTED,
                message=f"Account closed: {account.pubkey[:8]}...",
                source="RECONCILE",
                data={"pubkey": account.pubkey, "rent_exempt_minimum": account.rent_exempt_minimum},
            ))
            return

        if account.status == AccountStatus.ERROR or not account.rent_exempt_minimum:
            # Discovery never saw this account's layout; record it now.
            self.store.upsert_account(replace(
                account,
                kind=classify_account(state.owner, state.data_size),
                lifecycle=Active(),
                lamports=state.lamports,
                rent_exempt_minimum=await self.rent.minimum_for(state.data_size),
                owner=state.owner,
                last_checked_at=now,
                metadata=observed_metadata(account.metadata, state),
            ))
            if account.status == AccountStatus.ERROR:
                result.recovered += 1
            return

        self.store.update_status(
            account.pubkey,
            Active(),
            lamports=state.lamports,
            checked_at=now,
            metadata=observed_metadata(account.metadata, state),
        )
