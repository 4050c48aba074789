"""Signer protocol: the external signing authority."""
from typing import Any, Mapping, Protocol


class Signer(Protocol):
    address: str

    async def chain_id(self) -> int: ...

    async def switch_chain(self, chain_id: int) -> None: ...

    async def send_transaction(self, tx_request: Mapping[str, Any]) -> str: ...
