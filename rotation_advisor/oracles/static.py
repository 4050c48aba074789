"""Static and layered price oracles.

Balances of non-stable tokens are valued with a configured reference price
unless a live oracle is layered on top. The static figures are a known
approximation: plan values derived from them are only as precise as the
configured price.
"""
from __future__ import annotations

import logging
from typing import Sequence

from ..interfaces.price_oracle import PriceOracle

logger = logging.getLogger(__name__)


class StaticPriceOracle:
    """Fixed USD prices; stablecoin-looking symbols default to $1."""

    def __init__(self, prices: dict[str, float]) -> None:
        self._prices = dict(prices)

    async def fetch_prices(self, symbols: list[str] | None = None) -> dict[str, float]:
        if symbols is None:
            return dict(self._prices)
        prices: dict[str, float] = {}
        for symbol in symbols:
            if symbol in self._prices:
                prices[symbol] = self._prices[symbol]
            elif "USD" in symbol.upper():
                prices[symbol] = 1.0
        return prices


class LayeredPriceOracle:
    """Merge several oracles; later oracles override earlier ones."""

    def __init__(self, oracles: Sequence[PriceOracle]) -> None:
        self._oracles = list(oracles)

    async def fetch_prices(self, symbols: list[str] | None = None) -> dict[str, float]:
        prices: dict[str, float] = {}
        for oracle in self._oracles:
            try:
                layer = await oracle.fetch_prices(symbols)
            except Exception as e:
                logger.warning("Price oracle %s failed: %s", type(oracle).__name__, e)
                continue
            prices.update({k: v for k, v in layer.items() if v > 0})
        return prices
