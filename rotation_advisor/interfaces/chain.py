"""Chain client protocol (EVM JSON-RPC)."""
from typing import Protocol


class ChainClient(Protocol):
    """Read-only balance access on one chain."""

    chain_id: int
    chain_name: str

    async def resolve_endpoint(self) -> str: ...

    async def get_native_balance(self, address: str) -> int: ...

    async def get_token_balance(self, token_address: str, owner: str) -> int: ...

    async def get_token_decimals(self, token_address: str) -> int: ...
