"""
Mock Ledger Gateway
===================
In-memory stand-in for LedgerGateway with the same paging semantics:
listings are newest-first, `before` is exclusive, `until` stops short of the
boundary signature.
"""

from typing import Dict, Iterable, List, Optional, Sequence

from solders.pubkey import Pubkey
from solders.signature import Signature
from spl.token.constants import TOKEN_PROGRAM_ID

from kora_reclaim.shared.models import OperationDetail, OperationRef, ResourceState, TokenHolderState

DEFAULT_RENT_MINIMUM = 2_039_280


def token_holder(owner, amount: int = 0, close_authority=None, program_id=TOKEN_PROGRAM_ID, mint=None) -> TokenHolderState:
    return TokenHolderState(
        mint=str(mint or Pubkey.new_unique()),
        owner=str(owner),
        amount=amount,
        close_authority=str(close_authority) if close_authority else None,
        program_id=str(program_id),
    )


class FakeGateway:
    """
    Usage:
        gateway = FakeGateway(fee_payer)
        gateway.add_operation(created=[pubkey])
        gateway.set_state(pubkey, lamports=2_039_280)
    """

    def __init__(self, fee_payer: str = ""):
        self.fee_payer = fee_payer
        self.history: List[OperationRef] = []
        self.details: Dict[str, OperationDetail] = {}
        self.states: Dict[str, ResourceState] = {}
        self.rent_minimum = DEFAULT_RENT_MINIMUM
        self.balance = 5_000_000_000
        self.slot = 250_000_000

        self.detail_errors: Dict[str, Exception] = {}
        self.state_errors: Dict[str, Exception] = {}
        self.list_error: Optional[Exception] = None
        self.bulk_error: Optional[Exception] = None
        self.submit_error: Optional[Exception] = None

        self.submitted: List[list] = []
        self.detail_requests: List[str] = []
        self.bulk_requests: List[List[str]] = []
        self.rent_requests: List[int] = []
        self.closed = False

    # ── scripting ──────────────────────────────────────────────

    def add_operation(
        self,
        created: Iterable[str] = (),
        succeeded: bool = True,
        initialized: Iterable[str] = (),
        block_time: Optional[int] = None,
        slot: int = 1,
    ) -> str:
        """Prepend a new (newest) operation that funds `created`."""
        signature = str(Signature.new_unique())
        created = list(created)
        self.history.insert(0, OperationRef(signature=signature, succeeded=succeeded, slot=slot, block_time=block_time))
        self.details[signature] = OperationDetail(
            signature=signature,
            slot=slot,
            block_time=block_time,
            succeeded=succeeded,
            account_keys=[self.fee_payer] + created,
            pre_balances=[10_000_000_000] + [0] * len(created),
            post_balances=[9_000_000_000] + [self.rent_minimum] * len(created),
            initialized_accounts=list(initialized),
        )
        return signature

    def set_state(
        self,
        pubkey: str,
        lamports: int = DEFAULT_RENT_MINIMUM,
        owner: str = "",
        data_size: int = 165,
        holder: Optional[TokenHolderState] = None,
    ) -> None:
        """A live account; pass `holder` for a decoded token account."""
        if holder is not None and not owner:
            owner = holder.program_id
        self.states[pubkey] = ResourceState(
            exists=True, lamports=lamports, owner=owner, data_size=data_size, holder=holder
        )

    def remove_state(self, pubkey: str) -> None:
        self.states.pop(pubkey, None)

    # ── gateway surface ────────────────────────────────────────

    async def list_operations(
        self,
        identity: str,
        before: Optional[str] = None,
        until: Optional[str] = None,
        limit: int = 100,
    ) -> List[OperationRef]:
        if self.list_error:
            raise self.list_error
        signatures = [op.signature for op in self.history]
        start = signatures.index(before) + 1 if before else 0
        end = signatures.index(until) if until in signatures else len(signatures)
        return self.history[start:end][:limit]

    async def get_operation_detail(self, signature: str) -> Optional[OperationDetail]:
        self.detail_requests.append(signature)
        if signature in self.detail_errors:
            raise self.detail_errors[signature]
        return self.details.get(signature)

    async def get_resource_state(self, pubkey: str) -> ResourceState:
        if pubkey in self.state_errors:
            raise self.state_errors[pubkey]
        return self.states.get(pubkey, ResourceState.missing())

    async def get_bulk_resource_state(self, pubkeys: Sequence[str]) -> Dict[str, ResourceState]:
        self.bulk_requests.append(list(pubkeys))
        if self.bulk_error:
            raise self.bulk_error
        return {pk: self.states.get(pk, ResourceState.missing()) for pk in pubkeys}

    async def get_minimum_exempt_balance(self, data_size: int) -> int:
        self.rent_requests.append(data_size)
        return self.rent_minimum

    async def get_identity_balance(self, identity: str) -> int:
        return self.balance

    async def get_current_slot(self) -> int:
        return self.slot

    async def submit_close_or_transfer(self, instructions, signer) -> str:
        if self.submit_error:
            raise self.submit_error
        self.submitted.append(list(instructions))
        return str(Signature.new_unique())

    async def close(self) -> None:
        self.closed = True
