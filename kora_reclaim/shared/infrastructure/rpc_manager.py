"""
JSON-RPC Transport
==================
Single HTTP client for one RPC endpoint. Every failure is normalized into an
RpcError whose text carries the HTTP status or node error, which is what the
retry classifier keys on.
"""

from typing import Any, List, Optional

import httpx

from kora_reclaim.shared.errors import RpcError
from kora_reclaim.shared.system.logging import Logger


class RpcTransport:
    """
    Usage:
        transport = RpcTransport("https://api.devnet.solana.com")
        slot = await transport.call("getSlot")
        await transport.close()
    """

    REQUEST_TIMEOUT = 30.0

    def __init__(self, rpc_url: str, timeout: float = REQUEST_TIMEOUT, client: Optional[httpx.AsyncClient] = None):
        self.rpc_url = rpc_url
        self._client = client or httpx.AsyncClient(timeout=timeout)
        self._request_id = 0

    async def call(self, method: str, params: Optional[List[Any]] = None) -> Any:
        """Issue one JSON-RPC request and return its `result` member."""
        self._request_id += 1
        payload = {"jsonrpc": "2.0", "id": self._request_id, "method": method, "params": params or []}

        try:
            response = await self._client.post(self.rpc_url, json=payload)
        except httpx.HTTPError as e:
            raise RpcError(f"{method} failed: {type(e).__name__}: {e}") from e

        if response.status_code != 200:
            raise RpcError(
                f"{method} failed: HTTP {response.status_code} {response.reason_phrase}",
                status_code=response.status_code,
            )

        try:
            body = response.json()
        except ValueError as e:
            raise RpcError(f"{method} failed: invalid JSON response") from e

        error = body.get("error")
        if error:
            code = error.get("code")
            message = error.get("message", "unknown error")
            Logger.debug(f"[RPC] {method} error {code}: {message}")
            raise RpcError(f"{method} failed: RPC error {code}: {message}", code=code)

        return body.get("result")

    async def close(self) -> None:
        await self._client.aclose()
