"""
Sponsored Account Discovery
===========================
Pages through the fee payer's signature history and records every account
that the fee payer's operations brought into existence.

Cursors (persisted after every page, so an interrupted scan resumes):
- tail: oldest signature processed; back-fill continues strictly before it
- head: newest signature seen; catch-up pages from the tip down to it

    tip ──catch-up (until=head)──▶ head ··· tail ──back-fill (before=tail)──▶ genesis

Re-processing a page is idempotent: handles already in the store are skipped.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional

from kora_reclaim.shared.errors import RpcError
from kora_reclaim.shared.models import (
    AccountKind,
    Active,
    Closed,
    Errored,
    OperationDetail,
    OperationRef,
    SponsoredAccount,
    classify_account,
    observed_metadata,
    utc_now,
)
from kora_reclaim.shared.system.events import BotEvent, BotEventType, EventRecorder
from kora_reclaim.utils.helpers import unique

PAGE_SIZE = 100


@dataclass
class DiscoveryResult:
    new_accounts: int = 0
    error_accounts: int = 0
    operations_scanned: int = 0
    failed_operations: int = 0


def extract_created_accounts(detail: OperationDetail, fee_payer: str) -> List[str]:
    """
    Accounts whose balance went from zero to positive in this operation, plus
    accounts initialized by a nested token instruction. The fee payer itself
    is never a candidate.
    """
    funded = [
        key
        for key, pre, post in zip(detail.account_keys, detail.pre_balances, detail.post_balances)
        if pre == 0 and post > 0
    ]
    return [key for key in unique(funded + list(detail.initialized_accounts)) if key != fee_payer]


class RentExemptCache:
    """getMinimumBalanceForRentExemption memoized per data size."""

    def __init__(self, gateway):
        self.gateway = gateway
        self._by_size: Dict[int, int] = {}

    async def minimum_for(self, data_size: int) -> int:
        if data_size not in self._by_size:
            self._by_size[data_size] = await self.gateway.get_minimum_exempt_balance(data_size)
        return self._by_size[data_size]


class AccountDiscovery:
    """
    Usage:
        discovery = AccountDiscovery(gateway, store, fee_payer, events)
        result = await discovery.discover_new_accounts()
    """

    def __init__(
        self,
        gateway,
        store,
        fee_payer: str,
        events: EventRecorder,
        rent_cache: Optional[RentExemptCache] = None,
        clock: Callable[[], datetime] = utc_now,
        page_size: int = PAGE_SIZE,
    ):
        self.gateway = gateway
        self.store = store
        self.fee_payer = fee_payer
        self.events = events
        self.rent = rent_cache or RentExemptCache(gateway)
        self.clock = clock
        self.page_size = page_size

    async def discover_new_accounts(self) -> DiscoveryResult:
        result = DiscoveryResult()
        head = self.store.get_head_cursor()
        tail = self.store.get_cursor()

        # 1. Catch up on operations newer than anything processed before
        boundary = head or tail
        if boundary:
            newest = await self._catch_up(boundary, result)
            if newest:
                self.store.set_head_cursor(newest)

        # 2. Back-fill older history from the tail cursor
        before = tail
        while True:
            page = await self.gateway.list_operations(self.fee_payer, before=before, limit=self.page_size)
            if not page:
                break
            if boundary is None and before is None:
                # First ever page: everything older is covered by the tail cursor.
                self.store.set_head_cursor(page[0].signature)
            await self._process_page(page, result)
            before = page[-1].signature
            self.store.set_cursor(before)

        return result

    async def _catch_up(self, until: str, result: DiscoveryResult) -> Optional[str]:
        newest = None
        before = None
        while True:
            page = await self.gateway.list_operations(self.fee_payer, before=before, until=until, limit=self.page_size)
            if not page:
                return newest
            if newest is None:
                newest = page[0].signature
            await self._process_page(page, result)
            before = page[-1].signature

    async def _process_page(self, page: List[OperationRef], result: DiscoveryResult) -> None:
        for op in page:
            result.operations_scanned += 1
            if not op.succeeded:
                continue
            try:
                detail = await self.gateway.get_operation_detail(op.signature)
            except RpcError as e:
                # Transport failures abort the page so the cursor is not advanced past it.
                if e.code is None:
                    raise
                result.failed_operations += 1
                self.events.record(BotEvent(
                    type=BotEventType.ERROR,
                    message=f"Failed to fetch operation {op.signature[:16]}...: {e}",
                    source="DISCOVERY",
                    data={"signature": op.signature, "error": str(e)},
                ))
                continue
            if detail is None or not detail.succeeded:
                continue

            for pubkey in extract_created_accounts(detail, self.fee_payer):
                if self.store.has_account(pubkey):
                    continue
                await self._track(pubkey, detail, result)

    async def _track(self, pubkey: str, detail: OperationDetail, result: DiscoveryResult) -> None:
        now = self.clock()
        created_at = datetime.fromtimestamp(detail.block_time, tz=timezone.utc) if detail.block_time else now

        try:
            state = await self.gateway.get_resource_state(pubkey)
            if state.exists:
                account = SponsoredAccount(
                    pubkey=pubkey,
                    kind=classify_account(state.owner, state.data_size),
                    lifecycle=Active(),
                    lamports=state.lamports,
                    rent_exempt_minimum=await self.rent.minimum_for(state.data_size),
                    owner=state.owner,
                    creation_signature=detail.signature,
                    creation_slot=detail.slot,
                    created_at=created_at,
                    last_checked_at=now,
                    metadata=observed_metadata(None, state),
                )
            else:
                account = SponsoredAccount(
                    pubkey=pubkey,
                    kind=AccountKind.UNKNOWN,
                    lifecycle=Closed(closed_at=now),
                    lamports=0,
                    rent_exempt_minimum=0,
                    owner="unknown",
                    creation_signature=detail.signature,
                    creation_slot=detail.slot,
                    created_at=created_at,
                    last_checked_at=now,
                )
        except Exception as e:
            result.error_accounts += 1
            self.store.upsert_account(SponsoredAccount(
                pubkey=pubkey,
                kind=AccountKind.UNKNOWN,
                lifecycle=Errored(message=str(e)),
                lamports=0,
                rent_exempt_minimum=0,
                owner="unknown",
                creation_signature=detail.signature,
                creation_slot=detail.slot,
                created_at=created_at,
                last_checked_at=now,
            ))
            self.events.record(BotEvent(
                type=BotEventType.ERROR,
                message=f"Failed to check new account {pubkey}: {e}",
                source="DISCOVERY",
                data={"pubkey": pubkey, "error": str(e)},
            ))
            return

        self.store.upsert_account(account)
        result.new_accounts += 1
        self.events.record(BotEvent(
            type=BotEventType.ACCOUNT_DISCOVERED,
            message=f"Discovered new account: {pubkey[:8]}... ({account.kind.value}, {account.status.value})",
            source="DISCOVERY",
            data={"pubkey": pubkey, "type": account.kind.value, "lamports": account.lamports},
        ))
