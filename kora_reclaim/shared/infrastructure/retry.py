"""
Retry Policy
============
Exponential backoff keyed on the error message. A failure whose message
contains one of the retryable substrings (case-insensitive) is retried after
`delay`, which then grows by `backoff_multiplier` up to `max_delay_ms`.
Anything else, or the last attempt, re-raises.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Optional, Tuple, TypeVar

from kora_reclaim.shared.errors import TransactionFailedError, ValidationError
from kora_reclaim.shared.system.logging import Logger

T = TypeVar("T")

RETRYABLE_ERRORS: Tuple[str, ...] = (
    "econnreset",
    "connection reset",
    "connecterror",
    "remoteprotocolerror",
    "etimedout",
    "timed out",
    "timeout",
    "enotfound",
    "name or service not known",
    "429",
    "too many requests",
    "rate limit",
    "502",
    "503",
    "504",
)

NEVER_RETRY = (ValidationError, TransactionFailedError)


@dataclass
class RetryPolicy:
    max_attempts: int = 3
    initial_delay_ms: int = 1000
    max_delay_ms: int = 30000
    backoff_multiplier: float = 2.0
    retryable_errors: Tuple[str, ...] = RETRYABLE_ERRORS
    sleep: Callable[[float], Awaitable[None]] = field(default=asyncio.sleep, repr=False)

    def is_retryable(self, error: BaseException) -> bool:
        if isinstance(error, NEVER_RETRY):
            return False
        message = str(error).lower()
        return any(pattern in message for pattern in self.retryable_errors)

    async def run(self, operation: Callable[[], Awaitable[T]], label: Optional[str] = None) -> T:
        """
        Await `operation()` until it succeeds or fails non-retryably.

        Args:
            operation: zero-arg coroutine factory, called once per attempt
            label: name used in the retry log line
        """
        delay = self.initial_delay_ms
        attempt = 1
        while True:
            try:
                return await operation()
            except Exception as e:
                if attempt >= self.max_attempts or not self.is_retryable(e):
                    raise
                Logger.warning(
                    f"[RPC] {label or 'call'} attempt {attempt}/{self.max_attempts} failed: {e}. "
                    f"Retrying in {delay}ms"
                )
                await self.sleep(delay / 1000)
                delay = min(delay * self.backoff_multiplier, self.max_delay_ms)
                attempt += 1
