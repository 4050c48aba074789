"""Wallet position discovery across chains."""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Callable, Iterable

from ..chains.evm import EvmClient
from ..config import NATIVE_TOKEN_ADDRESS, ChainConfig
from ..interfaces.chain import ChainClient
from ..interfaces.price_oracle import PriceOracle
from ..models import Position

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Holding:
    """Raw, non-zero token balance read from a chain."""

    symbol: str
    address: str
    balance: int
    decimals: int


@dataclass(frozen=True)
class ChainScan:
    """Outcome of one chain's sub-scan: holdings, or the error that stopped it."""

    chain: ChainConfig
    holdings: tuple[Holding, ...] = ()
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


class PositionScanner:
    """Enumerate non-zero balances for a wallet on every configured chain."""

    def __init__(
        self,
        chains: Iterable[ChainConfig],
        price_oracle: PriceOracle,
        client_factory: Callable[[ChainConfig], ChainClient] = EvmClient,
    ) -> None:
        self._chains = {c.chain_id: c for c in chains}
        self._oracle = price_oracle
        self._client_factory = client_factory
        self._clients: dict[int, ChainClient] = {}

    def _client(self, chain: ChainConfig) -> ChainClient:
        if chain.chain_id not in self._clients:
            self._clients[chain.chain_id] = self._client_factory(chain)
        return self._clients[chain.chain_id]

    async def scan(
        self,
        wallet_address: str,
        chain_ids: Iterable[int] | None = None,
        tokens: Iterable[str] | None = None,
    ) -> list[Position]:
        """Scan all selected chains concurrently and value the balances found.

        Chains that cannot be reached contribute nothing; the call itself
        never fails because of them.
        """
        if chain_ids is None:
            selected = list(self._chains.values())
        else:
            selected = [self._chains[cid] for cid in chain_ids if cid in self._chains]
        wanted = set(tokens) if tokens is not None else None

        results = await asyncio.gather(
            *(self._scan_chain(chain, wallet_address, wanted) for chain in selected),
            return_exceptions=True,
        )

        scans: list[ChainScan] = []
        for chain, result in zip(selected, results):
            if isinstance(result, Exception):
                logger.error("%s: scan failed: %s", chain.name, result)
                scans.append(ChainScan(chain=chain, error=str(result)))
            else:
                scans.append(result)

        failed = [s.chain.name for s in scans if not s.ok]
        if failed:
            logger.warning("Chains unavailable this scan: %s", ", ".join(failed))

        symbols = sorted({h.symbol for s in scans for h in s.holdings})
        prices = await self._oracle.fetch_prices(symbols) if symbols else {}

        positions: list[Position] = []
        for chain_scan in scans:
            for holding in chain_scan.holdings:
                positions.append(self._to_position(chain_scan.chain, holding, prices))

        logger.info(
            "Found %d position(s) across %d/%d chain(s)",
            len(positions),
            len(scans) - len(failed),
            len(scans),
        )
        return positions

    async def _scan_chain(
        self, chain: ChainConfig, wallet_address: str, wanted: set[str] | None
    ) -> ChainScan:
        client = self._client(chain)
        try:
            endpoint = await client.resolve_endpoint()
        except Exception as e:
            logger.error("%s: no working RPC endpoint: %s", chain.name, e)
            return ChainScan(chain=chain, error=str(e))
        logger.debug("%s: using %s", chain.name, endpoint)

        tokens = [t for t in chain.tokens if wanted is None or t.symbol in wanted]
        reads = [self._read_token(client, chain, t.symbol, t.address, wallet_address) for t in tokens]
        if wanted is None or chain.native_symbol in wanted:
            reads.append(self._read_native(client, chain, wallet_address))

        holdings = [h for h in await asyncio.gather(*reads) if h is not None]
        return ChainScan(chain=chain, holdings=tuple(holdings))

    @staticmethod
    async def _read_token(
        client: ChainClient,
        chain: ChainConfig,
        symbol: str,
        token_address: str,
        owner: str,
    ) -> Holding | None:
        try:
            balance = await client.get_token_balance(token_address, owner)
            if balance <= 0:
                return None
            decimals = await client.get_token_decimals(token_address)
        except Exception as e:
            # Token may not exist on this chain.
            logger.debug("%s: error reading %s: %s", chain.name, symbol, e)
            return None
        return Holding(symbol=symbol, address=token_address, balance=balance, decimals=decimals)

    @staticmethod
    async def _read_native(
        client: ChainClient, chain: ChainConfig, owner: str
    ) -> Holding | None:
        try:
            balance = await client.get_native_balance(owner)
        except Exception as e:
            logger.debug("%s: error reading native balance: %s", chain.name, e)
            return None
        if balance <= 0:
            return None
        return Holding(
            symbol=chain.native_symbol,
            address=NATIVE_TOKEN_ADDRESS,
            balance=balance,
            decimals=18,
        )

    @staticmethod
    def _to_position(
        chain: ChainConfig, holding: Holding, prices: dict[str, float]
    ) -> Position:
        amount = float(Decimal(holding.balance) / (Decimal(10) ** holding.decimals))
        price = prices.get(holding.symbol)
        if price is None:
            logger.debug("No USD price for %s, valuing at $0", holding.symbol)
            price = 0.0
        return Position(
            chain_id=chain.chain_id,
            chain_name=chain.name,
            token=holding.symbol,
            token_address=holding.address,
            balance=holding.balance,
            decimals=holding.decimals,
            amount=amount,
            value_usd=amount * price,
        )
