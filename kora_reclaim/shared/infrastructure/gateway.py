"""
Ledger Gateway
==============
Rate-limited, retrying façade over every remote read and write.

    public method ── validate args (ValidationError, no token spent)
         │
         ▼
    @gateway_call ── RetryPolicy.run( TokenBucket.acquire → transport call )

Every attempt of every call takes a limiter token, so retries are throttled
the same way first attempts are. The gateway knows nothing about lifecycle or
safety rules.
"""

import asyncio
import base64
import functools
import struct
import time
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence

from solders.hash import Hash
from solders.instruction import Instruction
from solders.keypair import Keypair
from solders.pubkey import Pubkey
from solders.transaction import Transaction
from spl.token.constants import TOKEN_2022_PROGRAM_ID, TOKEN_PROGRAM_ID

from kora_reclaim.shared.errors import RpcError, TransactionFailedError, ValidationError
from kora_reclaim.shared.infrastructure.rate_limiter import TokenBucket
from kora_reclaim.shared.infrastructure.retry import RetryPolicy
from kora_reclaim.shared.infrastructure.rpc_manager import RpcTransport
from kora_reclaim.shared.models import OperationDetail, OperationRef, ResourceState, TokenHolderState
from kora_reclaim.shared.system.logging import Logger
from kora_reclaim.utils.helpers import is_valid_public_key, is_valid_signature

MAX_BULK_ACCOUNTS = 100
MAX_SIGNATURE_PAGE = 1000

TOKEN_ACCOUNT_SIZE = 165
TOKEN_PROGRAMS = frozenset({str(TOKEN_PROGRAM_ID), str(TOKEN_2022_PROGRAM_ID)})
INITIALIZE_ACCOUNT_TYPES = frozenset({"initializeAccount", "initializeAccount2", "initializeAccount3"})


def gateway_call(method: Callable[..., Awaitable[Any]]):
    """Run the wrapped coroutine under the retry policy, one token per attempt."""

    @functools.wraps(method)
    async def wrapper(self, *args, **kwargs):
        async def attempt():
            await self.limiter.acquire()
            return await method(self, *args, **kwargs)

        return await self.retry.run(attempt, label=method.__name__)

    return wrapper


def _require_pubkey(value: str, label: str = "public key") -> None:
    if not is_valid_public_key(value):
        raise ValidationError(f"Invalid {label}: {value!r}")


def _require_signature(value: str) -> None:
    if not is_valid_signature(value):
        raise ValidationError(f"Invalid transaction signature: {value!r}")


def _decode_data(data: Any) -> bytes:
    if isinstance(data, list) and data:
        return base64.b64decode(data[0])
    if isinstance(data, str):
        return base64.b64decode(data)
    return b""


def _resource_state(value: Optional[Dict[str, Any]]) -> ResourceState:
    if not value:
        return ResourceState.missing()
    data = _decode_data(value.get("data"))
    owner = value.get("owner", "")
    space = value.get("space")
    return ResourceState(
        exists=True,
        lamports=int(value.get("lamports", 0)),
        owner=owner,
        data_size=int(space if space is not None else len(data)),
        holder=_parse_token_layout(data, owner) if owner in TOKEN_PROGRAMS else None,
    )


def _parse_token_layout(data: bytes, program_id: str) -> Optional[TokenHolderState]:
    """
    SPL token account base layout:
        0   mint            32
        32  owner           32
        64  amount          u64
        72  delegate        COption<Pubkey> (4 + 32)
        108 state           u8
        109 is_native       COption<u64> (4 + 8)
        121 delegated       u64
        129 close_authority COption<Pubkey> (4 + 32)
    """
    if len(data) < TOKEN_ACCOUNT_SIZE:
        return None
    (amount,) = struct.unpack_from("<Q", data, 64)
    (close_tag,) = struct.unpack_from("<I", data, 129)
    close_authority = str(Pubkey.from_bytes(data[133:165])) if close_tag == 1 else None
    return TokenHolderState(
        mint=str(Pubkey.from_bytes(data[0:32])),
        owner=str(Pubkey.from_bytes(data[32:64])),
        amount=amount,
        close_authority=close_authority,
        program_id=program_id,
    )


def _key_of(entry: Any) -> str:
    return entry.get("pubkey", "") if isinstance(entry, dict) else str(entry)


def _operation_detail(signature: str, result: Dict[str, Any]) -> OperationDetail:
    meta = result.get("meta") or {}
    message = (result.get("transaction") or {}).get("message") or {}

    initialized = []
    for group in meta.get("innerInstructions") or []:
        for ix in group.get("instructions") or []:
            parsed = ix.get("parsed")
            if isinstance(parsed, dict) and parsed.get("type") in INITIALIZE_ACCOUNT_TYPES:
                account = (parsed.get("info") or {}).get("account")
                if account:
                    initialized.append(account)

    return OperationDetail(
        signature=signature,
        slot=int(result.get("slot", 0)),
        block_time=result.get("blockTime"),
        succeeded=meta.get("err") is None,
        account_keys=[_key_of(k) for k in message.get("accountKeys") or []],
        pre_balances=[int(b) for b in meta.get("preBalances") or []],
        post_balances=[int(b) for b in meta.get("postBalances") or []],
        initialized_accounts=initialized,
    )


class LedgerGateway:
    """
    Usage:
        gateway = LedgerGateway.create(rpc_url, calls_per_second=10, retry=RetryPolicy())
        state = await gateway.get_resource_state(pubkey)
        await gateway.close()
    """

    POLL_INTERVAL_S = 1.0

    def __init__(
        self,
        transport: RpcTransport,
        limiter: TokenBucket,
        retry: RetryPolicy,
        confirm_timeout: float = 60.0,
        poll_interval: float = POLL_INTERVAL_S,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.transport = transport
        self.limiter = limiter
        self.retry = retry
        self.confirm_timeout = confirm_timeout
        self.poll_interval = poll_interval
        self._clock = clock
        self._sleep = sleep

    @classmethod
    def create(
        cls,
        rpc_url: str,
        calls_per_second: float,
        retry: Optional[RetryPolicy] = None,
        confirm_timeout: float = 60.0,
    ) -> "LedgerGateway":
        return cls(
            transport=RpcTransport(rpc_url),
            limiter=TokenBucket(calls_per_second),
            retry=retry or RetryPolicy(),
            confirm_timeout=confirm_timeout,
        )

    async def close(self) -> None:
        await self.transport.close()

    @gateway_call
    async def _rpc(self, method: str, params: Optional[List[Any]] = None) -> Any:
        return await self.transport.call(method, params)

    # =========================================================================
    # READS
    # =========================================================================

    async def list_operations(
        self,
        identity: str,
        before: Optional[str] = None,
        until: Optional[str] = None,
        limit: int = 100,
    ) -> List[OperationRef]:
        """Newest-first signatures for `identity`, strictly older than `before`, newer than `until`."""
        _require_pubkey(identity, "identity")
        if before is not None:
            _require_signature(before)
        if until is not None:
            _require_signature(until)
        if not 1 <= limit <= MAX_SIGNATURE_PAGE:
            raise ValidationError(f"limit must be between 1 and {MAX_SIGNATURE_PAGE}")

        options: Dict[str, Any] = {"limit": limit}
        if before:
            options["before"] = before
        if until:
            options["until"] = until

        result = await self._rpc("getSignaturesForAddress", [identity, options])
        return [
            OperationRef(
                signature=entry["signature"],
                succeeded=entry.get("err") is None,
                slot=int(entry.get("slot", 0)),
                block_time=entry.get("blockTime"),
            )
            for entry in result or []
        ]

    async def get_operation_detail(self, signature: str) -> Optional[OperationDetail]:
        """Parsed transaction, or None when the node no longer has it."""
        _require_signature(signature)
        result = await self._rpc("getTransaction", [
            signature,
            {"encoding": "jsonParsed", "maxSupportedTransactionVersion": 0, "commitment": "confirmed"},
        ])
        if not result:
            return None
        return _operation_detail(signature, result)

    async def get_resource_state(self, pubkey: str) -> ResourceState:
        _require_pubkey(pubkey, "account")
        result = await self._rpc("getAccountInfo", [pubkey, {"encoding": "base64", "commitment": "confirmed"}])
        return _resource_state((result or {}).get("value"))

    async def get_bulk_resource_state(self, pubkeys: Sequence[str]) -> Dict[str, ResourceState]:
        """One getMultipleAccounts call for up to 100 accounts."""
        if len(pubkeys) > MAX_BULK_ACCOUNTS:
            raise ValidationError(f"Bulk lookup is limited to {MAX_BULK_ACCOUNTS} accounts, got {len(pubkeys)}")
        for pubkey in pubkeys:
            _require_pubkey(pubkey, "account")
        if not pubkeys:
            return {}

        result = await self._rpc("getMultipleAccounts", [list(pubkeys), {"encoding": "base64", "commitment": "confirmed"}])
        values = (result or {}).get("value") or []
        if len(values) != len(pubkeys):
            raise RpcError(f"getMultipleAccounts returned {len(values)} entries for {len(pubkeys)} accounts")
        return {pubkey: _resource_state(value) for pubkey, value in zip(pubkeys, values)}

    async def get_minimum_exempt_balance(self, data_size: int) -> int:
        if data_size < 0:
            raise ValidationError(f"Invalid data size: {data_size}")
        return int(await self._rpc("getMinimumBalanceForRentExemption", [data_size]))

    async def get_identity_balance(self, identity: str) -> int:
        _require_pubkey(identity, "identity")
        result = await self._rpc("getBalance", [identity, {"commitment": "confirmed"}])
        return int((result or {}).get("value", 0))

    async def get_current_slot(self) -> int:
        return int(await self._rpc("getSlot", [{"commitment": "confirmed"}]))

    async def get_latest_blockhash(self) -> Hash:
        result = await self._rpc("getLatestBlockhash", [{"commitment": "confirmed"}])
        return Hash.from_string(result["value"]["blockhash"])

    # =========================================================================
    # WRITES
    # =========================================================================

    async def submit_close_or_transfer(self, instructions: Sequence[Instruction], signer: Keypair) -> str:
        """
        Sign once, then send and confirm under the retry policy.

        A retried attempt re-sends the identical signed bytes, so the ledger
        can execute the transfer at most once whatever the retry count.

        Returns:
            The confirmed transaction signature.
        """
        if not instructions:
            raise ValidationError("No instructions to submit")
        blockhash = await self.get_latest_blockhash()
        tx = Transaction.new_signed_with_payer(list(instructions), signer.pubkey(), [signer], blockhash)
        signature = str(tx.signatures[0])
        raw = base64.b64encode(bytes(tx)).decode("ascii")
        Logger.debug(f"[RPC] Submitting {signature[:16]}...")
        await self._send_and_confirm(raw, signature)
        return signature

    @gateway_call
    async def _send_and_confirm(self, raw_tx: str, signature: str) -> None:
        try:
            await self.transport.call("sendTransaction", [
                raw_tx,
                {"encoding": "base64", "preflightCommitment": "confirmed"},
            ])
        except RpcError as e:
            # A resend of bytes the ledger already executed.
            if "already been processed" not in str(e).lower():
                raise
        await self._wait_for_confirmation(signature)

    async def _wait_for_confirmation(self, signature: str) -> None:
        deadline = self._clock() + self.confirm_timeout
        while self._clock() < deadline:
            await self.limiter.acquire()
            result = await self.transport.call("getSignatureStatuses", [[signature], {"searchTransactionHistory": True}])
            statuses = (result or {}).get("value") or []
            status = statuses[0] if statuses else None
            if status:
                if status.get("err"):
                    raise TransactionFailedError(f"Transaction {signature} failed: {status['err']}")
                if status.get("confirmationStatus") in ("confirmed", "finalized"):
                    return
            await self._sleep(self.poll_interval)
        raise RpcError(f"Transaction {signature} confirmation timeout after {self.confirm_timeout:g}s")
