"""
Sponsored Account Model
=======================
Tracked accounts, their lifecycle, reclaim attempts and cycle summaries.

Lifecycle is a tagged union: each status variant carries exactly the fields
meaningful for that status (a Closed account has a closed_at, a Reclaimed one
has the signature and amount, ...).

    active ──(closed on-chain)──▶ closed ──(reclaim ok)──▶ reclaimed
                                    │  ▲
                  (not allow-listed)│  │(revived on re-check) ─▶ active
                                    ▼
                                protected
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from solders.system_program import ID as SYSTEM_PROGRAM_ID
from spl.token.constants import (
    ASSOCIATED_TOKEN_PROGRAM_ID,
    TOKEN_2022_PROGRAM_ID,
    TOKEN_PROGRAM_ID,
)

from kora_reclaim.shared.models.remote import ResourceState, TokenHolderState


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class AccountStatus(str, Enum):
    ACTIVE = "active"
    EMPTY = "empty"
    CLOSED = "closed"
    RECLAIMED = "reclaimed"
    PROTECTED = "protected"
    ERROR = "error"


class AccountKind(str, Enum):
    SYSTEM = "system"          # primitive-owned
    TOKEN = "token"            # fungible-holder
    TOKEN_2022 = "token_2022"  # fungible-holder variant
    ATA = "ata"                # derived-holder
    PDA = "pda"                # program-derived (heuristic)
    UNKNOWN = "unknown"


HOLDER_KINDS = frozenset({AccountKind.TOKEN, AccountKind.TOKEN_2022, AccountKind.ATA})

KNOWN_PROGRAMS = {
    str(SYSTEM_PROGRAM_ID): AccountKind.SYSTEM,
    str(TOKEN_PROGRAM_ID): AccountKind.TOKEN,
    str(TOKEN_2022_PROGRAM_ID): AccountKind.TOKEN_2022,
    str(ASSOCIATED_TOKEN_PROGRAM_ID): AccountKind.ATA,
}


def classify_account(owner: str, data_size: int) -> AccountKind:
    """
    Classify an account by its owner program.

    The PDA fallback is an approximation: the ledger exposes no canonical type
    tag, so any account with data under an unrecognized owner is reported as
    program-derived.
    """
    kind = KNOWN_PROGRAMS.get(owner)
    if kind is not None:
        return kind
    if data_size > 0:
        return AccountKind.PDA
    return AccountKind.UNKNOWN


# =============================================================================
# LIFECYCLE VARIANTS
# =============================================================================

@dataclass(frozen=True)
class Active:
    status = AccountStatus.ACTIVE


@dataclass(frozen=True)
class Empty:
    status = AccountStatus.EMPTY


@dataclass(frozen=True)
class Closed:
    closed_at: datetime
    status = AccountStatus.CLOSED


@dataclass(frozen=True)
class Reclaimed:
    closed_at: datetime
    reclaimed_at: datetime
    amount: int
    signature: Optional[str] = None
    status = AccountStatus.RECLAIMED

    def __post_init__(self):
        if self.reclaimed_at < self.closed_at:
            raise ValueError("reclaimed_at must not precede closed_at")


@dataclass(frozen=True)
class Protected:
    reason: str
    closed_at: Optional[datetime] = None
    status = AccountStatus.PROTECTED


@dataclass(frozen=True)
class Errored:
    message: str
    status = AccountStatus.ERROR


Lifecycle = Union[Active, Empty, Closed, Reclaimed, Protected, Errored]


# =============================================================================
# TRACKED ACCOUNT
# =============================================================================

@dataclass
class SponsoredAccount:
    """An account created on behalf of the operator's fee payer."""
    pubkey: str
    kind: AccountKind
    lifecycle: Lifecycle
    lamports: int
    rent_exempt_minimum: int
    owner: str
    creation_signature: str
    creation_slot: int
    created_at: datetime
    last_checked_at: datetime
    metadata: Optional[Dict[str, Any]] = None

    @property
    def status(self) -> AccountStatus:
        return self.lifecycle.status

    @property
    def closed_at(self) -> Optional[datetime]:
        return getattr(self.lifecycle, "closed_at", None)

    @property
    def error_message(self) -> Optional[str]:
        if isinstance(self.lifecycle, Errored):
            return self.lifecycle.message
        if isinstance(self.lifecycle, Protected):
            return self.lifecycle.reason
        return None

    @property
    def holder(self) -> Optional[TokenHolderState]:
        """Token account contents as last seen while the account was alive."""
        snapshot = (self.metadata or {}).get("holder")
        return TokenHolderState.from_dict(snapshot) if snapshot else None


def observed_metadata(metadata: Optional[Dict[str, Any]], state: ResourceState) -> Optional[Dict[str, Any]]:
    """Metadata with the holder snapshot replaced by the one in a live state."""
    if state.holder is None:
        return metadata
    return {**(metadata or {}), "holder": state.holder.to_dict()}


@dataclass(frozen=True)
class ReclaimAttempt:
    """Append-only audit row. Never consulted for control flow."""
    account_pubkey: str
    amount: int
    success: bool
    dry_run: bool
    signature: Optional[str] = None
    error_message: Optional[str] = None
    created_at: datetime = field(default_factory=utc_now)


# =============================================================================
# CYCLE RESULTS
# =============================================================================

class RejectionReason(str, Enum):
    TOO_RECENT = "too_recent"
    BELOW_MINIMUM = "below_minimum"
    PROGRAM_NOT_ALLOWED = "program_not_allowed"
    REVIVED = "revived"
    NOT_FOUND = "not_found"
    NO_AUTHORITY = "no_authority"
    NONZERO_BALANCE = "nonzero_balance"
    UNSUPPORTED_TYPE = "unsupported_type"


@dataclass
class ReclaimResult:
    success: bool
    account: str
    amount: int
    dry_run: bool
    signature: Optional[str] = None
    error: Optional[str] = None
    rejection: Optional[RejectionReason] = None
    timestamp: datetime = field(default_factory=utc_now)


@dataclass
class ReclaimBatchSummary:
    total_reclaimable: int
    started_at: datetime
    completed_at: datetime
    results: List[ReclaimResult] = field(default_factory=list)
    dry_run: bool = False

    @property
    def total_processed(self) -> int:
        return len(self.results)

    @property
    def success_count(self) -> int:
        return sum(1 for r in self.results if r.success)

    @property
    def failed_count(self) -> int:
        return sum(1 for r in self.results if not r.success)

    @property
    def skipped_count(self) -> int:
        return sum(1 for r in self.results if r.rejection is not None)

    @property
    def total_reclaimed(self) -> int:
        return sum(r.amount for r in self.results if r.success)

    @property
    def duration_ms(self) -> int:
        return int((self.completed_at - self.started_at).total_seconds() * 1000)


@dataclass
class MonitoringResult:
    new_accounts: int = 0
    closed_accounts: int = 0
    error_accounts: int = 0
    total_checked: int = 0

    @property
    def total_scanned(self) -> int:
        return self.new_accounts + self.total_checked


@dataclass
class BotStatistics:
    total_accounts: int = 0
    active_accounts: int = 0
    closed_accounts: int = 0
    reclaimed_accounts: int = 0
    protected_accounts: int = 0
    error_accounts: int = 0
    total_locked_lamports: int = 0
    total_reclaimable_lamports: int = 0
    total_reclaimed_lamports: int = 0
    last_scan_at: Optional[datetime] = None
    last_reclaim_at: Optional[datetime] = None


@dataclass
class AgeBreakdown:
    less_than_1_day: int = 0
    one_to_seven_days: int = 0
    seven_to_thirty_days: int = 0
    more_than_30_days: int = 0
