"""Pyth Network price oracle."""
from __future__ import annotations

import logging
import ssl

import aiohttp
import certifi

from ..config import PythConfig

logger = logging.getLogger(__name__)

# Wrapped and bridged tokens priced off their underlying feed.
_SYMBOL_ALIASES = {"WETH": "ETH", "USDC.e": "USDC", "USDbC": "USDC", "POL": "MATIC"}


class PythOracle:
    """Fetch USD prices from the Pyth Hermes API."""

    def __init__(self, config: PythConfig, timeout: int = 10) -> None:
        self.hermes_url = config.hermes_url
        self.price_feeds = dict(config.feeds)
        self.timeout = timeout

    def _feeds_for(self, symbols: list[str] | None) -> dict[str, str]:
        if symbols is None:
            return dict(self.price_feeds)
        feeds: dict[str, str] = {}
        for symbol in symbols:
            feed_id = self.price_feeds.get(symbol) or self.price_feeds.get(
                _SYMBOL_ALIASES.get(symbol, "")
            )
            if feed_id:
                feeds[symbol] = feed_id
        return feeds

    async def fetch_prices(self, symbols: list[str] | None = None) -> dict[str, float]:
        """Fetch current prices, keyed by the requested symbols.

        Symbols without a configured feed are left out; network errors
        yield an empty mapping.
        """
        prices: dict[str, float] = {}

        feeds = self._feeds_for(symbols)
        feed_ids = sorted(set(feeds.values()))
        if not feed_ids:
            return prices

        params = [("ids[]", fid) for fid in feed_ids]
        ssl_context = ssl.create_default_context(cafile=certifi.where())
        connector = aiohttp.TCPConnector(ssl=ssl_context)

        try:
            async with aiohttp.ClientSession(connector=connector) as session:
                async with session.get(
                    self.hermes_url,
                    params=params,
                    timeout=aiohttp.ClientTimeout(total=self.timeout),
                ) as response:
                    if response.status != 200:
                        logger.error(
                            "Error fetching prices from Pyth: HTTP %s", response.status
                        )
                        return prices
                    data = await response.json()
        except Exception as e:
            logger.error("Error fetching prices from Pyth: %s", e)
            return prices

        id_to_symbols: dict[str, list[str]] = {}
        for symbol, feed_id in feeds.items():
            id_to_symbols.setdefault(feed_id.lower().removeprefix("0x"), []).append(symbol)

        for item in data.get("parsed", []):
            feed_id = str(item.get("id", "")).lower().removeprefix("0x")
            price_data = item.get("price", {})
            price = int(price_data.get("price", 0)) * (10 ** int(price_data.get("expo", 0)))
            for symbol in id_to_symbols.get(feed_id, []):
                prices[symbol] = price

        logger.debug("Pyth prices: %s", prices)
        return prices
