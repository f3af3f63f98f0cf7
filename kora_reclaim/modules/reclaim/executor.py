"""
Reclaim Instruction Builder
===========================
Dispatches on account kind, verifies the operator's authority and builds the
close/transfer instruction. Mismatches come back as rejections.

- token / token_2022 / ata: operator is owner or close authority, token amount is 0
  → spl-token CloseAccount
- system: operator key is the account key → system transfer of the balance
- pda / unknown: unsupported

Holder checks run against the token account snapshot recorded while the
account was alive; by the time an account is eligible it no longer exists on
chain and cannot be read back.
"""

from dataclasses import dataclass, field
from typing import List, Optional

from solders.instruction import Instruction
from solders.keypair import Keypair
from solders.pubkey import Pubkey
from solders.system_program import TransferParams, transfer
from spl.token.instructions import close_account
from spl.token.models import CloseAccountParams

from kora_reclaim.modules.reclaim.safety import CheckResult
from kora_reclaim.shared.models import HOLDER_KINDS, AccountKind, RejectionReason, SponsoredAccount


@dataclass
class ReclaimPlan:
    instructions: List[Instruction] = field(default_factory=list)
    rejection: Optional[CheckResult] = None

    @property
    def ok(self) -> bool:
        return self.rejection is None

    @classmethod
    def reject(cls, reason: RejectionReason, message: str) -> "ReclaimPlan":
        return cls(rejection=CheckResult.reject(reason, message))


class ReclaimExecutor:

    def __init__(self, signer: Keypair):
        self.signer = signer

    @property
    def operator(self) -> str:
        return str(self.signer.pubkey())

    def prepare(self, account: SponsoredAccount, destination: str, amount: int) -> ReclaimPlan:
        if account.kind in HOLDER_KINDS:
            return self._prepare_holder(account, destination)
        if account.kind == AccountKind.SYSTEM:
            return self._prepare_system(account, destination, amount)
        return ReclaimPlan.reject(
            RejectionReason.UNSUPPORTED_TYPE,
            f"Unsupported account type: {account.kind.value}",
        )

    def _prepare_holder(self, account: SponsoredAccount, destination: str) -> ReclaimPlan:
        holder = account.holder
        if holder is None:
            return ReclaimPlan.reject(RejectionReason.NOT_FOUND, "No token account snapshot recorded")

        if self.operator not in (holder.owner, holder.close_authority):
            return ReclaimPlan.reject(
                RejectionReason.NO_AUTHORITY,
                "Operator does not have close authority for this account",
            )

        if holder.amount != 0:
            return ReclaimPlan.reject(
                RejectionReason.NONZERO_BALANCE,
                f"Token account has non-zero balance: {holder.amount}",
            )

        ix = close_account(
            CloseAccountParams(
                account=Pubkey.from_string(account.pubkey),
                dest=Pubkey.from_string(destination),
                owner=self.signer.pubkey(),
                program_id=Pubkey.from_string(holder.program_id),
                signers=[],
            )
        )
        return ReclaimPlan(instructions=[ix])

    def _prepare_system(self, account: SponsoredAccount, destination: str, amount: int) -> ReclaimPlan:
        if account.pubkey != self.operator:
            return ReclaimPlan.reject(RejectionReason.NO_AUTHORITY, "Operator does not own this account")

        ix = transfer(TransferParams(
            from_pubkey=self.signer.pubkey(),
            to_pubkey=Pubkey.from_string(destination),
            lamports=amount,
        ))
        return ReclaimPlan(instructions=[ix])
