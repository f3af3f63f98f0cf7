"""
Integration Test Configuration
==============================
Component wiring tests: real LedgerStore on tmp_path, FakeGateway in place
of the remote ledger.
"""

import io
from unittest.mock import AsyncMock

import pytest
from rich.console import Console


@pytest.fixture
def telegram():
    """TelegramManager stand-in recording every alert."""
    mock = AsyncMock()
    mock.enabled = True
    return mock


@pytest.fixture
def console():
    return Console(file=io.StringIO(), width=120)
