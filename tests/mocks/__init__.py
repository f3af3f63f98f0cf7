"""
Kora Reclaim Test Mocks
=======================
Reusable fakes for isolated testing.
"""

from tests.mocks.mock_gateway import FakeGateway, token_holder
from tests.mocks.mock_transport import FakeClock, FakeTransport, token_account_data

__all__ = [
    "FakeClock",
    "FakeGateway",
    "FakeTransport",
    "token_account_data",
    "token_holder",
]
