"""
Reclaim Safety Pipeline
=======================
Store-only checks applied to every eligible account, in this order,
stopping at the first failure:

1. Age      - closed at least `min_age_days` ago
2. Minimum  - rent-exempt minimum worth a transaction fee
3. Program  - owner program passes the allow/block policy (failure protects)

Each check returns a CheckResult; none of them raises.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Iterable, List, Optional

from kora_reclaim.shared.models import RejectionReason, SponsoredAccount, utc_now
from kora_reclaim.utils.helpers import age_in_days


@dataclass(frozen=True)
class CheckResult:
    passed: bool
    reason: Optional[RejectionReason] = None
    message: Optional[str] = None
    protect: bool = False

    @classmethod
    def ok(cls) -> "CheckResult":
        return cls(passed=True)

    @classmethod
    def reject(cls, reason: RejectionReason, message: str, protect: bool = False) -> "CheckResult":
        return cls(passed=False, reason=reason, message=message, protect=protect)


class ProgramPolicy:
    """
    Allow/block lists of owner programs.

    With an allow-list, a program must be on it and not blocked.
    Without one, a program only has to not be blocked.
    """

    def __init__(self, allowed: Iterable[str] = (), blocked: Iterable[str] = ()):
        self.allowed = frozenset(allowed)
        self.blocked = frozenset(blocked)

    def is_allowed(self, program_id: str) -> bool:
        if program_id in self.blocked:
            return False
        if not self.allowed:
            return True
        return program_id in self.allowed


class SafetyPipeline:

    def __init__(
        self,
        min_age_days: float,
        min_reclaim_lamports: int,
        policy: ProgramPolicy,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.min_age_days = min_age_days
        self.min_reclaim_lamports = min_reclaim_lamports
        self.policy = policy
        self.clock = clock
        self._checks: List[Callable[[SponsoredAccount], CheckResult]] = [
            self.check_age,
            self.check_minimum,
            self.check_program,
        ]

    def evaluate(self, account: SponsoredAccount) -> CheckResult:
        for check in self._checks:
            result = check(account)
            if not result.passed:
                return result
        return CheckResult.ok()

    def check_age(self, account: SponsoredAccount) -> CheckResult:
        if account.closed_at is None:
            return CheckResult.reject(RejectionReason.TOO_RECENT, "Account has no close time")
        age = age_in_days(account.closed_at, now=self.clock())
        if age < self.min_age_days:
            return CheckResult.reject(
                RejectionReason.TOO_RECENT,
                f"Account too recent ({age:.1f} days < {self.min_age_days:g} days)",
            )
        return CheckResult.ok()

    def check_minimum(self, account: SponsoredAccount) -> CheckResult:
        if account.rent_exempt_minimum < self.min_reclaim_lamports:
            return CheckResult.reject(
                RejectionReason.BELOW_MINIMUM,
                f"Below minimum reclaim ({account.rent_exempt_minimum} < {self.min_reclaim_lamports})",
            )
        return CheckResult.ok()

    def check_program(self, account: SponsoredAccount) -> CheckResult:
        if not self.policy.is_allowed(account.owner):
            return CheckResult.reject(
                RejectionReason.PROGRAM_NOT_ALLOWED,
                f"Program not allowed: {account.owner}",
                protect=True,
            )
        return CheckResult.ok()
