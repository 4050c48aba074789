"""Opportunity provider protocols."""
from typing import Protocol

from ..models import ArbitrageOpportunity, YieldOpportunity


class YieldOpportunityProvider(Protocol):
    async def list_opportunities(
        self, token_filter: str | None = None
    ) -> list[YieldOpportunity]: ...


class ArbitrageOpportunityProvider(Protocol):
    async def list_opportunities(
        self, token: str, min_profit_percent: float, trade_amount_usd: float
    ) -> list[ArbitrageOpportunity]: ...
