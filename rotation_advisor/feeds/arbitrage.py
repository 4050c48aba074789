"""Cross-chain price spreads for a single token, from CoinGecko."""
from __future__ import annotations

import asyncio
import logging
import ssl
from dataclasses import dataclass
from typing import Iterable

import aiohttp
import certifi

from ..config import ArbitrageFeedConfig, ChainConfig
from ..models import ArbitrageOpportunity, Confidence

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ChainPrice:
    chain_id: int
    chain_name: str
    token_address: str
    price: float


def confidence_for(spread_percent: float) -> Confidence:
    if spread_percent > 1:
        return Confidence.HIGH
    if spread_percent > 0.7:
        return Confidence.MEDIUM
    return Confidence.LOW


def detect_opportunities(
    prices: list[ChainPrice],
    token: str,
    min_profit_percent: float,
    trade_amount_usd: float,
    fee_percent: float,
) -> list[ArbitrageOpportunity]:
    """Compare every chain pair; keep spreads that clear the threshold and fees."""
    opportunities: list[ArbitrageOpportunity] = []

    for i, a in enumerate(prices):
        for b in prices[i + 1:]:
            mid = (a.price + b.price) / 2
            if mid <= 0:
                continue
            spread = abs(a.price - b.price) / mid * 100
            if spread < min_profit_percent:
                continue

            net = (spread - fee_percent) / 100 * trade_amount_usd
            if net <= 0:
                continue

            cheap, dear = (a, b) if a.price < b.price else (b, a)
            opportunities.append(
                ArbitrageOpportunity(
                    token=token,
                    from_chain_id=cheap.chain_id,
                    from_chain_name=cheap.chain_name,
                    from_price=cheap.price,
                    to_chain_id=dear.chain_id,
                    to_chain_name=dear.chain_name,
                    to_price=dear.price,
                    price_difference=spread,
                    profit_after_fees=net,
                    volume=trade_amount_usd,
                    confidence=confidence_for(spread),
                )
            )

    opportunities.sort(
        key=lambda o: (-o.profit_after_fees, o.from_chain_id, o.to_chain_id)
    )
    return opportunities


class ArbitrageFeed:
    """Live per-chain token prices turned into arbitrage opportunities."""

    def __init__(
        self, config: ArbitrageFeedConfig, chains: Iterable[ChainConfig]
    ) -> None:
        self._config = config
        self._chains = [
            c for c in chains if not c.testnet and c.chain_id in config.platforms
        ]
        self._headers = {"Accept": "application/json"}
        if config.api_key:
            self._headers["x-cg-demo-api-key"] = config.api_key

    async def _fetch_price(
        self, session: aiohttp.ClientSession, chain: ChainConfig, token: str
    ) -> ChainPrice | None:
        token_cfg = chain.token(token)
        if token_cfg is None:
            return None

        platform = self._config.platforms[chain.chain_id]
        url = f"{self._config.coingecko_url}/simple/token_price/{platform}"
        params = {"contract_addresses": token_cfg.address, "vs_currencies": "usd"}

        async with session.get(url, params=params, headers=self._headers) as response:
            if response.status != 200:
                logger.warning(
                    "CoinGecko price for %s on %s: HTTP %s",
                    token,
                    chain.name,
                    response.status,
                )
                return None
            data = await response.json()

        price = float(data.get(token_cfg.address.lower(), {}).get("usd") or 0)
        if price <= 0:
            return None
        return ChainPrice(
            chain_id=chain.chain_id,
            chain_name=chain.name,
            token_address=token_cfg.address,
            price=price,
        )

    async def fetch_cross_chain_prices(self, token: str) -> list[ChainPrice]:
        """Fetch *token*'s price on every chain at once; slow chains are dropped."""
        ssl_context = ssl.create_default_context(cafile=certifi.where())
        connector = aiohttp.TCPConnector(ssl=ssl_context)

        async with aiohttp.ClientSession(connector=connector) as session:
            results = await asyncio.gather(
                *(
                    asyncio.wait_for(
                        self._fetch_price(session, chain, token),
                        timeout=self._config.timeout,
                    )
                    for chain in self._chains
                ),
                return_exceptions=True,
            )

        prices: list[ChainPrice] = []
        for chain, result in zip(self._chains, results):
            if isinstance(result, Exception):
                logger.warning(
                    "Failed to fetch %s price on %s: %s", token, chain.name, result
                )
            elif result is not None:
                prices.append(result)
        return prices

    async def list_opportunities(
        self, token: str, min_profit_percent: float, trade_amount_usd: float
    ) -> list[ArbitrageOpportunity]:
        """Return spreads above *min_profit_percent*; failures yield []."""
        try:
            prices = await self.fetch_cross_chain_prices(token)
        except Exception as e:
            logger.error("Error fetching cross-chain prices for %s: %s", token, e)
            return []

        if len(prices) < 2:
            logger.info("Not enough %s prices to compare (%d)", token, len(prices))
            return []

        opportunities = detect_opportunities(
            prices,
            token,
            min_profit_percent,
            trade_amount_usd,
            self._config.fee_percent,
        )
        logger.info(
            "Found %d %s arbitrage opportunities above %.2f%%",
            len(opportunities),
            token,
            min_profit_percent,
        )
        return opportunities
