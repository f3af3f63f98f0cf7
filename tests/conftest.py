"""
Kora Reclaim Test Configuration
===============================
Shared fixtures and pytest markers for the test suite.
"""

import os
import sys
from datetime import datetime, timedelta, timezone

import pytest
from solders.keypair import Keypair
from solders.pubkey import Pubkey
from spl.token.constants import TOKEN_PROGRAM_ID

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from kora_reclaim.shared.models import AccountKind, Active, Closed, SponsoredAccount  # noqa: E402
from kora_reclaim.shared.system.events import MemoryAuditSink, MemoryEventRecorder  # noqa: E402
from kora_reclaim.shared.system.logging import Logger  # noqa: E402
from tests.mocks import FakeGateway  # noqa: E402

NOW = datetime(2025, 1, 31, 12, 0, 0, tzinfo=timezone.utc)


# ============================================================================
# PYTEST MARKERS
# ============================================================================

def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )
    config.addinivalue_line(
        "markers", "network: marks tests that require network access"
    )
    config.addinivalue_line(
        "markers", "integration: marks integration tests"
    )


# ============================================================================
# SHARED FIXTURES
# ============================================================================

@pytest.fixture(autouse=True)
def quiet_logger():
    Logger.set_silent(True)
    yield
    Logger.set_silent(False)


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def clock():
    return lambda: NOW


@pytest.fixture
def events():
    return MemoryEventRecorder()


@pytest.fixture
def audit():
    return MemoryAuditSink()


@pytest.fixture
def operator():
    return Keypair()


@pytest.fixture
def fee_payer():
    return str(Pubkey.new_unique())


@pytest.fixture
def gateway(fee_payer):
    return FakeGateway(fee_payer)


@pytest.fixture
def store(tmp_path):
    from kora_reclaim.shared.system.database.store import LedgerStore

    ledger = LedgerStore(str(tmp_path / "ledger.db"))
    yield ledger
    ledger.close()


@pytest.fixture
def make_account():
    """
    Factory for tracked accounts.

    Usage:
        account = make_account(closed_days_ago=10)
        account = make_account(lifecycle=Active(), kind=AccountKind.SYSTEM)
        account = make_account(closed_days_ago=10, holder=token_holder(operator.pubkey()))
    """
    def _make(
        pubkey=None,
        kind=AccountKind.TOKEN,
        lifecycle=None,
        closed_days_ago=None,
        lamports=0,
        rent_exempt_minimum=2_039_280,
        owner=str(TOKEN_PROGRAM_ID),
        created_days_ago=30,
        holder=None,
    ):
        if lifecycle is None:
            lifecycle = Closed(closed_at=NOW - timedelta(days=closed_days_ago)) if closed_days_ago is not None else Active()
        return SponsoredAccount(
            pubkey=pubkey or str(Pubkey.new_unique()),
            kind=kind,
            lifecycle=lifecycle,
            lamports=lamports,
            rent_exempt_minimum=rent_exempt_minimum,
            owner=owner,
            creation_signature="sig",
            creation_slot=1,
            created_at=NOW - timedelta(days=created_days_ago),
            last_checked_at=NOW,
            metadata={"holder": holder.to_dict()} if holder else None,
        )

    return _make
