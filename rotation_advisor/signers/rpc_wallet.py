"""Signer backed by a wallet JSON-RPC endpoint (local node, Frame, etc.)."""
from __future__ import annotations

import logging
import ssl
from typing import Any, Mapping

import aiohttp
import certifi

from ..chains.evm.client import decode_uint
from ..errors import ExecutionError

logger = logging.getLogger(__name__)


class RpcWalletSigner:
    """Delegates signing to a wallet that exposes eth_sendTransaction.

    The wallet holds the keys; this process never sees them.
    """

    def __init__(self, url: str, address: str, timeout: int = 120) -> None:
        self.url = url
        self.address = address
        self.timeout = timeout
        self._request_id = 0

    async def _call(self, method: str, params: list[Any]) -> Any:
        self._request_id += 1
        payload = {
            "jsonrpc": "2.0",
            "id": self._request_id,
            "method": method,
            "params": params,
        }
        ssl_context = ssl.create_default_context(cafile=certifi.where())
        connector = aiohttp.TCPConnector(ssl=ssl_context)

        try:
            async with aiohttp.ClientSession(connector=connector) as session:
                async with session.post(
                    self.url,
                    json=payload,
                    timeout=aiohttp.ClientTimeout(total=self.timeout),
                ) as response:
                    result = await response.json()
        except Exception as e:
            raise ExecutionError(f"Wallet {method} failed: {e}") from e

        if "error" in result:
            raise ExecutionError(f"Wallet {method} rejected: {result['error']}")
        return result.get("result")

    async def chain_id(self) -> int:
        return decode_uint(await self._call("eth_chainId", []))

    async def switch_chain(self, chain_id: int) -> None:
        await self._call("wallet_switchEthereumChain", [{"chainId": hex(chain_id)}])
        logger.info("Wallet switched to chain %d", chain_id)

    async def send_transaction(self, tx_request: Mapping[str, Any]) -> str:
        tx = {k: v for k, v in tx_request.items() if k != "chainId"}
        tx.setdefault("from", self.address)
        return await self._call("eth_sendTransaction", [tx])
