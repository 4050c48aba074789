"""EVM JSON-RPC client with endpoint fallback."""
from __future__ import annotations

import logging
import ssl
from typing import Any

import aiohttp
import certifi

from ...config import ChainConfig
from ...errors import RpcError

logger = logging.getLogger(__name__)

# ERC-20 function selectors.
BALANCE_OF_SELECTOR = "0x70a08231"
DECIMALS_SELECTOR = "0x313ce567"


def encode_address(address: str) -> str:
    """Left-pad a 20-byte hex address to a 32-byte ABI word (no 0x)."""
    body = address.lower().removeprefix("0x")
    if len(body) != 40:
        raise ValueError(f"Invalid EVM address: {address}")
    return body.rjust(64, "0")


def decode_uint(result: str) -> int:
    """Decode a hex quantity or a 32-byte return word into an int."""
    if not result or result == "0x":
        raise ValueError("Empty eth_call result")
    return int(result, 16)


class EvmClient:
    """EVM RPC client with automatic endpoint fallback."""

    def __init__(self, config: ChainConfig) -> None:
        self.chain_id = config.chain_id
        self.chain_name = config.name
        self.endpoints = list(config.rpc_endpoints)
        self.timeout = config.rpc_timeout
        self.current_rpc_index = 0
        self._request_id = 0

    async def rpc_call(self, method: str, params: list[Any]) -> Any:
        """Make RPC call with fallback to alternative endpoints."""
        self._request_id += 1
        payload = {
            "jsonrpc": "2.0",
            "id": self._request_id,
            "method": method,
            "params": params,
        }

        ssl_context = ssl.create_default_context(cafile=certifi.where())

        last_error: Exception | None = None
        for attempt in range(len(self.endpoints)):
            rpc_index = (self.current_rpc_index + attempt) % len(self.endpoints)
            rpc_url = self.endpoints[rpc_index]

            try:
                connector = aiohttp.TCPConnector(ssl=ssl_context)
                async with aiohttp.ClientSession(connector=connector) as session:
                    async with session.post(
                        rpc_url,
                        json=payload,
                        timeout=aiohttp.ClientTimeout(total=self.timeout),
                    ) as response:
                        result = await response.json()
                        if "error" in result:
                            raise RpcError(f"RPC Error: {result['error']}")

                        if rpc_index != self.current_rpc_index:
                            logger.info(
                                "%s: switched to RPC endpoint %s",
                                self.chain_name,
                                rpc_url,
                            )
                            self.current_rpc_index = rpc_index

                        return result.get("result")
            except Exception as e:
                last_error = e
                logger.warning(
                    "%s: RPC endpoint %s failed: %s", self.chain_name, rpc_url, e
                )
                continue

        raise RpcError(
            f"{self.chain_name}: all RPC endpoints failed. Last error: {last_error}"
        )

    async def resolve_endpoint(self) -> str:
        """Find a responsive endpoint, checking it serves the expected chain."""
        reported = decode_uint(await self.rpc_call("eth_chainId", []))
        if reported != self.chain_id:
            raise RpcError(
                f"{self.chain_name}: endpoint reports chain {reported}, "
                f"expected {self.chain_id}"
            )
        return self.endpoints[self.current_rpc_index]

    async def eth_call(self, to: str, data: str) -> str:
        return await self.rpc_call("eth_call", [{"to": to, "data": data}, "latest"])

    async def get_native_balance(self, address: str) -> int:
        return decode_uint(await self.rpc_call("eth_getBalance", [address, "latest"]))

    async def get_token_balance(self, token_address: str, owner: str) -> int:
        data = BALANCE_OF_SELECTOR + encode_address(owner)
        return decode_uint(await self.eth_call(token_address, data))

    async def get_token_decimals(self, token_address: str) -> int:
        return decode_uint(await self.eth_call(token_address, DECIMALS_SELECTOR))
