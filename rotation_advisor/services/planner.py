"""Plan calculation — pair positions with opportunities and price the move.

Everything here is a function of its inputs. The only I/O is the route
quote, delegated to the injected RouteProvider.
"""
from __future__ import annotations

import logging
from decimal import Decimal
from typing import Iterable, Sequence, TypeVar

from ..config import NATIVE_TOKEN_ADDRESS, ChainConfig, TokenConfig
from ..errors import RouteError
from ..interfaces.routing import RouteProvider
from ..models import (
    ArbitrageOpportunity,
    ArbitragePlan,
    Position,
    RotationPlan,
    RouteQuote,
    YieldOpportunity,
)

logger = logging.getLogger(__name__)

FALLBACK_SYMBOL = "USDC"

P = TypeVar("P", RotationPlan, ArbitragePlan)


class TokenBook:
    """Token addresses per chain, looked up by symbol."""

    def __init__(self, chains: Iterable[ChainConfig]) -> None:
        self._chains = {c.chain_id: c for c in chains}

    def get(self, chain_id: int, symbol: str) -> TokenConfig | None:
        chain = self._chains.get(chain_id)
        if chain is None:
            return None
        if symbol == chain.native_symbol:
            return TokenConfig(symbol=symbol, address=NATIVE_TOKEN_ADDRESS, decimals=18)
        return chain.token(symbol)

    def destination(self, chain_id: int, symbol: str) -> TokenConfig | None:
        """Same token on the destination chain, else its USDC."""
        return self.get(chain_id, symbol) or self.get(chain_id, FALLBACK_SYMBOL)


def _to_units(amount: int, decimals: int) -> float:
    return float(Decimal(amount) / (Decimal(10) ** decimals))


def is_noop(position: Position, opportunity: YieldOpportunity) -> bool:
    """Same chain and the venue already holds the position's asset."""
    if position.chain_id != opportunity.chain_id:
        return False
    base = opportunity.token.split("-")[0].upper()
    return bool(base) and base in position.token.upper()


def rotation_economics(
    value_usd: float, current_apy: float, target_apy: float, cost_usd: float
) -> tuple[float, float, float, float]:
    """Return (apy_improvement, annual_gain, net_benefit, break_even_days)."""
    improvement = target_apy - current_apy
    annual_gain = value_usd * improvement / 100
    net = annual_gain - cost_usd
    if cost_usd > 0 and annual_gain > 0:
        break_even = cost_usd / (annual_gain / 365)
    elif cost_usd > 0:
        break_even = float("inf")
    else:
        break_even = 0.0
    return improvement, annual_gain, net, break_even


async def _quote(
    route_provider: RouteProvider,
    from_chain: int,
    to_chain: int,
    from_token: str,
    to_token: str,
    amount: int,
    wallet: str,
) -> RouteQuote | None:
    try:
        return await route_provider.get_quote(
            from_chain, to_chain, from_token, to_token, amount, wallet
        )
    except RouteError as e:
        logger.warning("Quote %d → %d failed: %s", from_chain, to_chain, e)
    except Exception as e:
        logger.error("Quote %d → %d errored: %s", from_chain, to_chain, e)
    return None


async def build_rotation_plans(
    positions: Sequence[Position],
    opportunities: Sequence[YieldOpportunity],
    route_provider: RouteProvider,
    wallet: str,
    min_apy_improvement: float,
    token_book: TokenBook,
) -> list[RotationPlan]:
    """Every profitable (position, opportunity) pairing, ranked."""
    plans: list[RotationPlan] = []

    for position in positions:
        for opportunity in opportunities:
            if is_noop(position, opportunity):
                continue
            if opportunity.apy - position.current_apy < min_apy_improvement:
                continue

            route = None
            cost = 0.0
            if position.chain_id != opportunity.chain_id:
                target = token_book.destination(opportunity.chain_id, position.token)
                if target is None:
                    logger.debug(
                        "No %s or %s on %s, skipping",
                        position.token,
                        FALLBACK_SYMBOL,
                        opportunity.chain_name,
                    )
                    continue
                route = await _quote(
                    route_provider,
                    position.chain_id,
                    opportunity.chain_id,
                    position.token_address,
                    target.address,
                    position.balance,
                    wallet,
                )
                if route is None:
                    continue
                cost = route.total_cost_usd

            improvement, gain, net, break_even = rotation_economics(
                position.value_usd, position.current_apy, opportunity.apy, cost
            )
            if net <= 0:
                continue

            plans.append(
                RotationPlan(
                    position=position,
                    opportunity=opportunity,
                    apy_improvement=improvement,
                    estimated_annual_gain=gain,
                    route=route,
                    gas_cost_usd=cost,
                    net_benefit=net,
                    break_even_days=break_even,
                )
            )

    return rank_plans(plans)


async def build_arbitrage_plans(
    positions: Sequence[Position],
    opportunities: Sequence[ArbitrageOpportunity],
    route_provider: RouteProvider,
    wallet: str,
    input_token: str,
    max_trade_amount: int,
    token_book: TokenBook,
) -> list[ArbitragePlan]:
    """Price each spread with a real route starting from an input-token balance.

    The route goes input token on the cheap chain to input token on the
    dear chain; the aggregator finds the swap/bridge/swap path.
    """
    holdings = {p.chain_id: p for p in positions if p.token == input_token}
    plans: list[ArbitragePlan] = []

    for opportunity in opportunities:
        position = holdings.get(opportunity.from_chain_id)
        if position is None:
            logger.debug(
                "No %s on %s for %s spread",
                input_token,
                opportunity.from_chain_name,
                opportunity.token,
            )
            continue

        target = token_book.get(opportunity.to_chain_id, input_token)
        if target is None:
            continue

        amount = min(position.balance, max_trade_amount)
        unit_price = position.value_usd / position.amount if position.amount else 0.0
        input_usd = _to_units(amount, position.decimals) * unit_price

        route = await _quote(
            route_provider,
            opportunity.from_chain_id,
            opportunity.to_chain_id,
            position.token_address,
            target.address,
            amount,
            wallet,
        )
        if route is None:
            continue

        output_usd = _to_units(route.to_amount, target.decimals) * unit_price
        expected_profit = output_usd - input_usd
        net = expected_profit - route.total_cost_usd
        if net <= 0:
            continue

        plans.append(
            ArbitragePlan(
                opportunity=opportunity,
                position=position,
                input_token=input_token,
                input_amount=amount,
                input_amount_usd=input_usd,
                expected_profit=expected_profit,
                route=route,
                gas_cost_usd=route.total_cost_usd,
                net_benefit=net,
            )
        )

    return rank_plans(plans)


def rank_plans(plans: Iterable[P]) -> list[P]:
    """Best first: net benefit, then fewer route steps, then faster."""
    return sorted(
        plans,
        key=lambda p: (-p.net_benefit, p.route_step_count, p.execution_duration),
    )
