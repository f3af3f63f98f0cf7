"""
Shared helpers: batching, time, validation and display formatting.
"""

from datetime import datetime, timezone
from typing import Callable, Hashable, Iterable, List, Optional, Sequence, TypeVar, Union

import base58
from solders.pubkey import Pubkey

from kora_reclaim.shared.models import utc_now

T = TypeVar("T")

LAMPORTS_PER_SOL = 1_000_000_000
SECONDS_PER_DAY = 86400


# =============================================================================
# BATCHING
# =============================================================================

def chunk(items: Sequence[T], size: int) -> List[List[T]]:
    if size < 1:
        raise ValueError("chunk size must be >= 1")
    return [list(items[i:i + size]) for i in range(0, len(items), size)]


def unique(items: Iterable[T], key: Optional[Callable[[T], Hashable]] = None) -> List[T]:
    """Drop duplicates, keeping first occurrence order."""
    seen = set()
    result = []
    for item in items:
        marker = key(item) if key else item
        if marker in seen:
            continue
        seen.add(marker)
        result.append(item)
    return result


# =============================================================================
# TIME
# =============================================================================

def age_in_days(timestamp: Union[datetime, float], now: Optional[datetime] = None) -> float:
    """Days elapsed since `timestamp` (a datetime or epoch seconds)."""
    now = now or utc_now()
    if not isinstance(timestamp, datetime):
        timestamp = datetime.fromtimestamp(timestamp, tz=timezone.utc)
    return (now - timestamp).total_seconds() / SECONDS_PER_DAY


def format_timestamp(timestamp: Optional[datetime]) -> str:
    if timestamp is None:
        return "never"
    return timestamp.strftime("%Y-%m-%d %H:%M:%S")


# =============================================================================
# VALIDATION
# =============================================================================

def is_valid_public_key(value: str) -> bool:
    if not isinstance(value, str) or not value:
        return False
    try:
        Pubkey.from_string(value)
        return True
    except ValueError:
        return False


def is_valid_signature(value: str) -> bool:
    if not isinstance(value, str) or not value:
        return False
    try:
        return len(base58.b58decode(value)) == 64
    except ValueError:
        return False


# =============================================================================
# FORMATTING
# =============================================================================

def lamports_to_sol(lamports: int, decimals: int = 4) -> float:
    return round(lamports / LAMPORTS_PER_SOL, decimals)


def format_sol(lamports: int) -> str:
    return f"{lamports / LAMPORTS_PER_SOL:.9f} SOL"


def truncate_middle(value: str, max_len: int = 20) -> str:
    if len(value) <= max_len:
        return value
    half = (max_len - 3) // 2
    return f"{value[:half]}...{value[-half:]}"
