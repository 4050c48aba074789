"""Opportunity feeds."""
from .arbitrage import ArbitrageFeed
from .defillama import YieldFeed

__all__ = ["ArbitrageFeed", "YieldFeed"]
