"""
LedgerGateway Unit Tests
========================
Real gateway over a scripted transport: validation, rate limiting, retry,
response decoding and the submit/confirm path.
"""

import pytest
from solders.hash import Hash
from solders.keypair import Keypair
from solders.pubkey import Pubkey
from solders.signature import Signature
from solders.system_program import TransferParams, transfer
from spl.token.constants import TOKEN_PROGRAM_ID

from kora_reclaim.shared.errors import RpcError, TransactionFailedError, ValidationError
from kora_reclaim.shared.infrastructure.gateway import LedgerGateway
from kora_reclaim.shared.infrastructure.rate_limiter import TokenBucket
from kora_reclaim.shared.infrastructure.retry import RetryPolicy
from tests.mocks import FakeTransport, token_account_data

CONFIRMED = {"value": [{"confirmationStatus": "confirmed", "err": None}]}
BLOCKHASH = {"value": {"blockhash": str(Hash.default()), "lastValidBlockHeight": 100}}


@pytest.fixture
def transport():
    return FakeTransport()


async def no_wait(seconds):
    pass


@pytest.fixture
def gateway(transport, fake_clock):
    return LedgerGateway(
        transport=transport,
        limiter=TokenBucket(10, clock=fake_clock, sleep=fake_clock.sleep),
        retry=RetryPolicy(max_attempts=3, initial_delay_ms=100, sleep=no_wait),
        confirm_timeout=5,
        poll_interval=1.0,
        clock=fake_clock,
        sleep=fake_clock.sleep,
    )


class TestValidation:

    async def test_invalid_handle_rejected_before_any_token(self, gateway, transport):
        with pytest.raises(ValidationError):
            await gateway.get_resource_state("not-a-key")

        assert transport.calls == []
        assert gateway.limiter.tokens == pytest.approx(10)

    async def test_invalid_cursor_signature(self, gateway):
        with pytest.raises(ValidationError):
            await gateway.list_operations(str(Pubkey.new_unique()), before="abc")

    @pytest.mark.parametrize("limit", [0, 1001])
    async def test_page_limit_bounds(self, gateway, limit):
        with pytest.raises(ValidationError):
            await gateway.list_operations(str(Pubkey.new_unique()), limit=limit)

    async def test_bulk_lookup_limited_to_100(self, gateway, transport):
        keys = [str(Pubkey.new_unique()) for _ in range(101)]

        with pytest.raises(ValidationError):
            await gateway.get_bulk_resource_state(keys)
        assert transport.calls == []

    async def test_bulk_lookup_of_nothing_is_free(self, gateway, transport):
        assert await gateway.get_bulk_resource_state([]) == {}
        assert transport.calls == []


class TestReads:

    async def test_each_attempt_spends_a_token(self, gateway, transport):
        pubkey = str(Pubkey.new_unique())
        transport.respond(
            "getAccountInfo",
            RpcError("getAccountInfo failed: HTTP 503 Service Unavailable", status_code=503),
            {"value": {"lamports": 5000, "owner": str(TOKEN_PROGRAM_ID), "data": ["", "base64"], "space": 165}},
        )

        state = await gateway.get_resource_state(pubkey)

        assert state.exists
        assert state.lamports == 5000
        assert state.data_size == 165
        assert len(transport.calls) == 2
        assert gateway.limiter.tokens == pytest.approx(8)

    async def test_missing_account(self, gateway, transport):
        transport.respond("getAccountInfo", {"value": None})

        state = await gateway.get_resource_state(str(Pubkey.new_unique()))

        assert not state.exists
        assert state.lamports == 0

    async def test_bulk_preserves_order(self, gateway, transport):
        keys = [str(Pubkey.new_unique()) for _ in range(3)]
        transport.respond("getMultipleAccounts", {"value": [
            {"lamports": 1, "owner": "x", "data": ["", "base64"], "space": 0},
            None,
            {"lamports": 3, "owner": "y", "data": ["", "base64"], "space": 82},
        ]})

        states = await gateway.get_bulk_resource_state(keys)

        assert [states[k].exists for k in keys] == [True, False, True]
        assert states[keys[2]].lamports == 3

    async def test_bulk_length_mismatch_is_an_error(self, gateway, transport):
        transport.respond("getMultipleAccounts", {"value": [None]})

        with pytest.raises(RpcError):
            await gateway.get_bulk_resource_state([str(Pubkey.new_unique()) for _ in range(2)])

    async def test_list_operations_passes_cursors(self, gateway, transport):
        before = str(Signature.new_unique())
        newest = str(Signature.new_unique())
        transport.respond("getSignaturesForAddress", [
            {"signature": newest, "err": None, "slot": 9, "blockTime": 1700000000},
            {"signature": before, "err": {"InstructionError": [0, "Custom"]}, "slot": 8, "blockTime": None},
        ])

        page = await gateway.list_operations(str(Pubkey.new_unique()), before=before, limit=50)

        options = transport.calls_to("getSignaturesForAddress")[0][1]
        assert options == {"limit": 50, "before": before}
        assert [op.succeeded for op in page] == [True, False]
        assert page[0].block_time == 1700000000

    async def test_operation_detail_collects_initialized_accounts(self, gateway, transport):
        signature = str(Signature.new_unique())
        ata = str(Pubkey.new_unique())
        transport.respond("getTransaction", {
            "slot": 42,
            "blockTime": 1700000000,
            "meta": {
                "err": None,
                "preBalances": [100, 0],
                "postBalances": [90, 10],
                "innerInstructions": [{"index": 0, "instructions": [
                    {"parsed": {"type": "initializeAccount3", "info": {"account": ata}}},
                    {"parsed": {"type": "transfer", "info": {}}},
                ]}],
            },
            "transaction": {"message": {"accountKeys": [
                {"pubkey": "payer", "signer": True},
                {"pubkey": "created", "signer": False},
            ]}},
        })

        detail = await gateway.get_operation_detail(signature)

        assert detail.succeeded
        assert detail.slot == 42
        assert detail.account_keys == ["payer", "created"]
        assert detail.post_balances == [90, 10]
        assert detail.initialized_accounts == [ata]

    async def test_operation_detail_none_when_pruned(self, gateway, transport):
        transport.respond("getTransaction", None)

        assert await gateway.get_operation_detail(str(Signature.new_unique())) is None

    async def test_token_account_state_carries_holder(self, gateway, transport):
        mint, owner, authority = Pubkey.new_unique(), Pubkey.new_unique(), Pubkey.new_unique()
        transport.respond("getAccountInfo", {"value": {
            "lamports": 2_039_280,
            "owner": str(TOKEN_PROGRAM_ID),
            "data": [token_account_data(mint, owner, 7, close_authority=authority), "base64"],
        }})

        state = await gateway.get_resource_state(str(Pubkey.new_unique()))

        assert state.data_size == 165
        assert state.holder.mint == str(mint)
        assert state.holder.owner == str(owner)
        assert state.holder.amount == 7
        assert state.holder.close_authority == str(authority)
        assert state.holder.program_id == str(TOKEN_PROGRAM_ID)

    async def test_bulk_states_carry_holders(self, gateway, transport):
        owner = Pubkey.new_unique()
        keys = [str(Pubkey.new_unique()) for _ in range(2)]
        transport.respond("getMultipleAccounts", {"value": [
            {"lamports": 2_039_280, "owner": str(TOKEN_PROGRAM_ID),
             "data": [token_account_data(Pubkey.new_unique(), owner, 0), "base64"]},
            None,
        ]})

        states = await gateway.get_bulk_resource_state(keys)

        assert states[keys[0]].holder.owner == str(owner)
        assert states[keys[0]].holder.close_authority is None
        assert states[keys[1]].holder is None

    async def test_no_holder_for_non_token_owner(self, gateway, transport):
        transport.respond("getAccountInfo", {"value": {
            "lamports": 1,
            "owner": "11111111111111111111111111111111",
            "data": [token_account_data(Pubkey.new_unique(), Pubkey.new_unique(), 0), "base64"],
        }})

        state = await gateway.get_resource_state(str(Pubkey.new_unique()))

        assert state.exists
        assert state.holder is None


class TestSubmit:

    @pytest.fixture
    def signer(self):
        return Keypair()

    @pytest.fixture
    def instructions(self, signer):
        return [transfer(TransferParams(from_pubkey=signer.pubkey(), to_pubkey=Pubkey.new_unique(), lamports=1000))]

    async def test_submit_and_confirm(self, gateway, transport, signer, instructions):
        transport.respond("getLatestBlockhash", BLOCKHASH)
        transport.respond("sendTransaction", "ignored")
        transport.respond("getSignatureStatuses", {"value": [None]}, CONFIRMED)

        signature = await gateway.submit_close_or_transfer(instructions, signer)

        assert len(transport.calls_to("sendTransaction")) == 1
        assert transport.calls_to("getSignatureStatuses")[0][0] == [signature]

    async def test_retry_resends_identical_bytes(self, gateway, transport, signer, instructions):
        transport.respond("getLatestBlockhash", BLOCKHASH)
        transport.respond(
            "sendTransaction",
            RpcError("sendTransaction failed: HTTP 503 Service Unavailable", status_code=503),
            RpcError("sendTransaction failed: RPC error -32002: Transaction has already been processed", code=-32002),
        )
        transport.respond("getSignatureStatuses", CONFIRMED)

        await gateway.submit_close_or_transfer(instructions, signer)

        sends = transport.calls_to("sendTransaction")
        assert len(sends) == 2
        assert sends[0][0] == sends[1][0]
        assert len(transport.calls_to("getLatestBlockhash")) == 1

    async def test_ledger_rejection_is_not_retried(self, gateway, transport, signer, instructions):
        transport.respond("getLatestBlockhash", BLOCKHASH)
        transport.respond("sendTransaction", "ok")
        transport.respond("getSignatureStatuses", {"value": [{"err": {"InstructionError": [0, 1]}}]})

        with pytest.raises(TransactionFailedError):
            await gateway.submit_close_or_transfer(instructions, signer)
        assert len(transport.calls_to("sendTransaction")) == 1

    async def test_confirmation_timeout(self, transport, fake_clock, signer, instructions):
        gateway = LedgerGateway(
            transport=transport,
            limiter=TokenBucket(10, clock=fake_clock, sleep=fake_clock.sleep),
            retry=RetryPolicy(max_attempts=1, sleep=fake_clock.sleep),
            confirm_timeout=3,
            clock=fake_clock,
            sleep=fake_clock.sleep,
        )
        transport.respond("getLatestBlockhash", BLOCKHASH)
        transport.respond("sendTransaction", "ok")
        transport.respond("getSignatureStatuses", {"value": [None]})

        with pytest.raises(RpcError, match="confirmation timeout"):
            await gateway.submit_close_or_transfer(instructions, signer)
        assert len(transport.calls_to("getSignatureStatuses")) == 3

    async def test_nothing_to_submit(self, gateway, signer):
        with pytest.raises(ValidationError):
            await gateway.submit_close_or_transfer([], signer)
