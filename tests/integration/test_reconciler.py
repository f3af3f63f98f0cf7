"""
Account Reconciler Integration Tests
====================================
"""

import pytest
from spl.token.constants import TOKEN_PROGRAM_ID

from kora_reclaim.modules.monitor.reconciler import AccountReconciler
from kora_reclaim.shared.errors import RpcError
from kora_reclaim.shared.models import AccountKind, AccountStatus, Active, Closed, Errored
from kora_reclaim.shared.system.events import BotEventType
from tests.mocks import token_holder

pytestmark = pytest.mark.integration


@pytest.fixture
def reconciler(gateway, store, events, clock):
    return AccountReconciler(gateway, store, events, clock=clock, batch_size=2)


class TestReconciler:

    async def test_missing_account_becomes_closed(self, reconciler, gateway, store, events, make_account, now):
        account = make_account(lifecycle=Active(), lamports=2_039_280)
        store.upsert_account(account)

        result = await reconciler.reconcile()

        loaded = store.get_account(account.pubkey)
        assert result.closed == 1
        assert loaded.status == AccountStatus.CLOSED
        assert loaded.closed_at == now
        assert loaded.lamports == 0
        assert len(events.of_type(BotEventType.ACCOUNT_CLOSED_DETECTED)) == 1

    async def test_present_account_refreshes_balance(self, reconciler, gateway, store, make_account):
        account = make_account(lifecycle=Active(), lamports=100)
        store.upsert_account(account)
        gateway.set_state(account.pubkey, lamports=2_500_000, owner=str(TOKEN_PROGRAM_ID))

        result = await reconciler.reconcile()

        loaded = store.get_account(account.pubkey)
        assert result.closed == 0
        assert loaded.status == AccountStatus.ACTIVE
        assert loaded.lamports == 2_500_000

    async def test_live_token_account_keeps_holder_snapshot(self, reconciler, gateway, store, operator, make_account):
        account = make_account(lifecycle=Active(), lamports=100)
        store.upsert_account(account)
        gateway.set_state(account.pubkey, holder=token_holder(operator.pubkey(), amount=3))
        await reconciler.reconcile()
        gateway.set_state(account.pubkey, holder=token_holder(operator.pubkey(), amount=0))
        await reconciler.reconcile()
        gateway.remove_state(account.pubkey)

        await reconciler.reconcile()

        loaded = store.get_account(account.pubkey)
        assert loaded.status == AccountStatus.CLOSED
        assert loaded.holder.owner == str(operator.pubkey())
        assert loaded.holder.amount == 0

    async def test_errored_account_recovers(self, reconciler, gateway, store, make_account):
        account = make_account(lifecycle=Errored("timeout"), kind=AccountKind.UNKNOWN, rent_exempt_minimum=0, owner="unknown")
        store.upsert_account(account)
        gateway.set_state(account.pubkey, lamports=2_039_280, owner=str(TOKEN_PROGRAM_ID))

        result = await reconciler.reconcile()

        loaded = store.get_account(account.pubkey)
        assert result.recovered == 1
        assert loaded.status == AccountStatus.ACTIVE
        assert loaded.kind == AccountKind.TOKEN
        assert loaded.rent_exempt_minimum == gateway.rent_minimum
        assert loaded.error_message is None

    async def test_only_active_and_errored_are_checked(self, reconciler, gateway, store, make_account):
        store.upsert_account(make_account(lifecycle=Active()))
        store.upsert_account(make_account(closed_days_ago=3))
        store.upsert_account(make_account(lifecycle=Errored("x")))

        result = await reconciler.reconcile()

        assert result.checked == 2

    async def test_batches_bulk_lookups(self, reconciler, gateway, store, make_account):
        for _ in range(5):
            store.upsert_account(make_account(lifecycle=Active()))

        await reconciler.reconcile()

        assert [len(batch) for batch in gateway.bulk_requests] == [2, 2, 1]

    async def test_bulk_failure_propagates(self, reconciler, gateway, store, make_account):
        account = make_account(lifecycle=Active())
        store.upsert_account(account)
        gateway.bulk_error = RpcError("getMultipleAccounts failed: HTTP 503 Service Unavailable")

        with pytest.raises(RpcError):
            await reconciler.reconcile()
        assert store.get_account(account.pubkey).status == AccountStatus.ACTIVE

    async def test_per_account_failure_marks_error_and_continues(
        self, reconciler, gateway, store, events, make_account, monkeypatch
    ):
        bad, good = make_account(lifecycle=Active()), make_account(lifecycle=Active())
        store.upsert_account(bad)
        store.upsert_account(good)

        real_bulk = gateway.get_bulk_resource_state

        async def partial(pubkeys):
            states = await real_bulk(pubkeys)
            states.pop(bad.pubkey, None)
            return states

        monkeypatch.setattr(gateway, "get_bulk_resource_state", partial)

        result = await reconciler.reconcile()

        assert result.errors == 1
        assert store.get_account(bad.pubkey).status == AccountStatus.ERROR
        assert store.get_account(good.pubkey).status == AccountStatus.CLOSED
        assert len(events.of_type(BotEventType.ERROR)) == 1

    async def test_closed_accounts_untouched(self, reconciler, gateway, store, make_account, now):
        account = make_account(lifecycle=Closed(closed_at=now))
        store.upsert_account(account)
        gateway.set_state(account.pubkey)

        await reconciler.reconcile()

        assert store.get_account(account.pubkey).status == AccountStatus.CLOSED
