"""Balance provider protocol."""
from typing import Iterable, Protocol

from ..models import Position


class BalanceProvider(Protocol):
    """Lists non-zero positions, tolerating per-chain failures."""

    async def scan(
        self,
        wallet_address: str,
        chain_ids: Iterable[int] | None = None,
        tokens: Iterable[str] | None = None,
    ) -> list[Position]: ...
