"""Route provider protocol: quote, submit and track cross-chain routes."""
from typing import Protocol

from ..models import RouteQuote, RouteStatus
from .signer import Signer


class RouteProvider(Protocol):
    async def get_quote(
        self,
        from_chain: int,
        to_chain: int,
        from_token: str,
        to_token: str,
        amount: int,
        from_address: str,
    ) -> RouteQuote:
        """Raises RouteError when no route can be quoted."""
        ...

    async def execute(self, route: RouteQuote, signer: Signer) -> str:
        """Submit the route's transaction and return its hash."""
        ...

    async def wait_for_completion(self, route: RouteQuote, tx_hash: str) -> RouteStatus: ...
