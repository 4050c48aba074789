"""DefiLlama yield listings, normalized to YieldOpportunity."""
from __future__ import annotations

import logging
import ssl
from typing import Any, Iterable

import aiohttp
import certifi

from ..config import ChainConfig, YieldFeedConfig
from ..models import RiskTier, YieldOpportunity

logger = logging.getLogger(__name__)


def risk_tier(apy: float) -> RiskTier:
    if apy > 30:
        return RiskTier.HIGH
    if apy > 10:
        return RiskTier.MEDIUM
    return RiskTier.LOW


class YieldFeed:
    """Fetch pool yields and keep the plausible, liquid ones."""

    def __init__(self, config: YieldFeedConfig, chains: Iterable[ChainConfig]) -> None:
        self._config = config
        # DefiLlama only tracks mainnets.
        self._chain_ids = {c.name: c.chain_id for c in chains if not c.testnet}

    def _accepts(self, pool: dict[str, Any], tokens: list[str]) -> bool:
        symbol = str(pool.get("symbol") or "").upper()
        apy = pool.get("apy")
        tvl = pool.get("tvlUsd")
        if pool.get("chain") not in self._chain_ids:
            return False
        if not any(t in symbol for t in tokens):
            return False
        if not isinstance(apy, (int, float)) or not isinstance(tvl, (int, float)):
            return False
        return (
            self._config.min_apy < apy <= self._config.max_apy
            and tvl >= self._config.min_tvl
        )

    def normalize(
        self, pools: list[dict[str, Any]], token_filter: str | None = None
    ) -> list[YieldOpportunity]:
        """Filter raw pools and map them onto YieldOpportunity, best APY first."""
        tokens = (
            [token_filter.upper()]
            if token_filter
            else [t.upper() for t in self._config.tokens]
        )
        opportunities = [
            YieldOpportunity(
                chain_id=self._chain_ids[pool["chain"]],
                chain_name=pool["chain"],
                protocol=pool.get("project", ""),
                token=pool.get("symbol", ""),
                apy=float(pool["apy"]),
                tvl=float(pool["tvlUsd"]),
                risk=risk_tier(float(pool["apy"])),
                pool_id=pool.get("pool", ""),
            )
            for pool in pools
            if self._accepts(pool, tokens)
        ]
        opportunities.sort(key=lambda o: (-o.apy, -o.tvl, o.pool_id))
        return opportunities[: self._config.limit]

    async def list_opportunities(
        self, token_filter: str | None = None
    ) -> list[YieldOpportunity]:
        """Fetch and normalize listings; any failure yields an empty list."""
        ssl_context = ssl.create_default_context(cafile=certifi.where())
        connector = aiohttp.TCPConnector(ssl=ssl_context)

        try:
            async with aiohttp.ClientSession(connector=connector) as session:
                async with session.get(
                    self._config.url,
                    timeout=aiohttp.ClientTimeout(total=self._config.timeout),
                ) as response:
                    if response.status != 200:
                        logger.error(
                            "Error fetching yields from DefiLlama: HTTP %s",
                            response.status,
                        )
                        return []
                    data = await response.json()
        except Exception as e:
            logger.error("Error fetching yields from DefiLlama: %s", e)
            return []

        opportunities = self.normalize(data.get("data") or [], token_filter)
        logger.info("Fetched %d yield opportunities", len(opportunities))
        return opportunities
