"""
Remote Ledger Views
===================
Plain value types returned by the Gateway. They describe what the ledger
reported and carry no lifecycle meaning.
"""

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional


@dataclass(frozen=True)
class OperationRef:
    """One entry of a newest-first signature listing."""
    signature: str
    succeeded: bool
    slot: int = 0
    block_time: Optional[int] = None


@dataclass(frozen=True)
class OperationDetail:
    signature: str
    slot: int
    block_time: Optional[int]
    succeeded: bool
    account_keys: List[str] = field(default_factory=list)
    pre_balances: List[int] = field(default_factory=list)
    post_balances: List[int] = field(default_factory=list)
    initialized_accounts: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class TokenHolderState:
    """Decoded SPL token account (165-byte base layout)."""
    mint: str
    owner: str
    amount: int
    close_authority: Optional[str]
    program_id: str

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TokenHolderState":
        return cls(
            mint=data["mint"],
            owner=data["owner"],
            amount=int(data["amount"]),
            close_authority=data.get("close_authority"),
            program_id=data["program_id"],
        )


@dataclass(frozen=True)
class ResourceState:
    """
    Live view of one account. `holder` is set when the account is owned by a
    token program and its data decodes as a token account.
    """
    exists: bool
    lamports: int = 0
    owner: str = ""
    data_size: int = 0
    holder: Optional[TokenHolderState] = None

    @classmethod
    def missing(cls) -> "ResourceState":
        return cls(exists=False)
