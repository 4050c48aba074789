"""Scan strategies sharing the scheduler: yield rotation and arbitrage."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Protocol, Sequence

from ..config import ChainConfig, MonitorConfig
from ..interfaces.balances import BalanceProvider
from ..interfaces.opportunities import (
    ArbitrageOpportunityProvider,
    YieldOpportunityProvider,
)
from ..interfaces.routing import RouteProvider
from ..models import Opportunity, Plan, PlanKind, Position
from .planner import TokenBook, build_arbitrage_plans, build_rotation_plans

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ScanResult:
    positions: tuple[Position, ...] = ()
    opportunities: tuple[Opportunity, ...] = ()
    plans: tuple[Plan, ...] = ()

    @property
    def best_plan(self) -> Plan | None:
        return self.plans[0] if self.plans else None


class Strategy(Protocol):
    kind: PlanKind

    async def scan(self, wallet: str, config: MonitorConfig) -> ScanResult: ...

    def no_opportunity_message(self, config: MonitorConfig) -> str: ...


def _chain_ids(chains: Sequence[ChainConfig], config: MonitorConfig) -> list[int]:
    if config.source_chain_id is not None:
        return [config.source_chain_id]
    return [c.chain_id for c in chains if c.testnet == config.is_testnet]


class YieldRotationStrategy:
    """Move idle balances to the best-paying pool across chains."""

    kind = PlanKind.YIELD

    def __init__(
        self,
        chains: Sequence[ChainConfig],
        scanner: BalanceProvider,
        feed: YieldOpportunityProvider,
        route_provider: RouteProvider,
    ) -> None:
        self._chains = list(chains)
        self._scanner = scanner
        self._feed = feed
        self._routes = route_provider
        self._token_book = TokenBook(self._chains)

    async def scan(self, wallet: str, config: MonitorConfig) -> ScanResult:
        positions = await self._scanner.scan(wallet, _chain_ids(self._chains, config))
        if not positions:
            logger.info("No token balances found for %s", wallet)
            return ScanResult()

        opportunities = await self._feed.list_opportunities()
        plans = await build_rotation_plans(
            positions,
            opportunities,
            self._routes,
            wallet,
            config.min_apy_improvement,
            self._token_book,
        )
        return ScanResult(tuple(positions), tuple(opportunities), tuple(plans))

    def no_opportunity_message(self, config: MonitorConfig) -> str:
        return f"No opportunities with >{config.min_apy_improvement}% APY improvement"


class ArbitrageStrategy:
    """Trade the input token across the widest profitable price spread."""

    kind = PlanKind.ARBITRAGE

    def __init__(
        self,
        chains: Sequence[ChainConfig],
        scanner: BalanceProvider,
        feed: ArbitrageOpportunityProvider,
        route_provider: RouteProvider,
    ) -> None:
        self._chains = list(chains)
        self._scanner = scanner
        self._feed = feed
        self._routes = route_provider
        self._token_book = TokenBook(self._chains)

    def trade_amount_usd(self, config: MonitorConfig) -> float:
        """Reference trade size: max_trade_amount in whole input tokens."""
        decimals = 6
        for chain in self._chains:
            token = chain.token(config.input_token)
            if token is not None:
                decimals = token.decimals
                break
        return float(Decimal(config.max_trade_amount) / (Decimal(10) ** decimals))

    async def scan(self, wallet: str, config: MonitorConfig) -> ScanResult:
        opportunities = await self._feed.list_opportunities(
            config.input_token,
            config.min_profit_percent,
            self.trade_amount_usd(config),
        )
        if config.source_chain_id is not None:
            opportunities = [
                o for o in opportunities if o.from_chain_id == config.source_chain_id
            ]
        if not opportunities:
            return ScanResult()

        positions = await self._scanner.scan(
            wallet,
            sorted({o.from_chain_id for o in opportunities}),
            [config.input_token],
        )
        plans = await build_arbitrage_plans(
            positions,
            opportunities,
            self._routes,
            wallet,
            config.input_token,
            int(config.max_trade_amount),
            self._token_book,
        )
        return ScanResult(tuple(positions), tuple(opportunities), tuple(plans))

    def no_opportunity_message(self, config: MonitorConfig) -> str:
        return f"No opportunities above {config.min_profit_percent}%"
