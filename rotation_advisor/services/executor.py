"""Turn an approved plan into a broadcast transaction and track it."""
from __future__ import annotations

import logging
import time
import uuid
from decimal import Decimal
from typing import Callable

from ..errors import ExecutionError
from ..interfaces.routing import RouteProvider
from ..interfaces.signer import Signer
from ..models import (
    ArbitragePlan,
    ExecutionRecord,
    ExecutionStatus,
    Plan,
    PlanSnapshot,
    RouteStatus,
)

logger = logging.getLogger(__name__)

SAME_CHAIN_UNSUPPORTED = "Same-chain deposits require protocol-specific integration"


def realized_profit(plan: Plan, status: RouteStatus) -> float | None:
    """Net USD gained by a settled arbitrage, None when it cannot be known."""
    if not isinstance(plan, ArbitragePlan):
        return None
    if status.received_amount is None:
        return plan.net_benefit

    position = plan.position
    unit_price = position.value_usd / position.amount if position.amount else 0.0
    scale = Decimal(10) ** position.decimals
    received = float(Decimal(status.received_amount) / scale)
    spent = float(Decimal(plan.input_amount) / scale)
    return (received - spent) * unit_price - plan.gas_cost_usd


class Executor:
    """Stateless: every call builds and returns its own record."""

    def __init__(
        self,
        route_provider: RouteProvider,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._routes = route_provider
        self._clock = clock

    def _new_record(self, plan: Plan) -> ExecutionRecord:
        return ExecutionRecord(
            id=f"{plan.kind.value}_{uuid.uuid4().hex[:12]}",
            timestamp=self._clock(),
            plan=PlanSnapshot.from_plan(plan),
        )

    def failed_record(self, plan: Plan, error: str) -> ExecutionRecord:
        """Ledger entry for an attempt that never produced its own record."""
        return (
            self._new_record(plan)
            .advance(ExecutionStatus.CONFIRMING)
            .advance(ExecutionStatus.FAILED, error=error, completed_at=self._clock())
        )

    async def execute(
        self,
        plan: Plan,
        signer: Signer,
        on_update: Callable[[ExecutionRecord], None] | None = None,
    ) -> ExecutionRecord:
        record = self._new_record(plan)

        def publish(new: ExecutionRecord) -> ExecutionRecord:
            if on_update is not None:
                on_update(new)
            return new

        publish(record)
        # Failed is only reachable from confirming, so advance before signing.
        record = publish(record.advance(ExecutionStatus.CONFIRMING))

        try:
            if plan.route is None:
                raise ExecutionError(SAME_CHAIN_UNSUPPORTED)

            current_chain = await signer.chain_id()
            if current_chain != plan.source_chain_id:
                logger.info(
                    "Switching signer from chain %d to %d",
                    current_chain,
                    plan.source_chain_id,
                )
                await signer.switch_chain(plan.source_chain_id)

            tx_hash = await self._routes.execute(plan.route, signer)
            record = publish(record.with_details(tx_hash=tx_hash))
            logger.info("Submitted %s: %s", record.id, tx_hash)

            status = await self._routes.wait_for_completion(plan.route, tx_hash)
            if status.is_done:
                record = record.advance(
                    ExecutionStatus.COMPLETED,
                    realized_profit=realized_profit(plan, status),
                    completed_at=self._clock(),
                )
            else:
                reason = status.substatus or "no substatus"
                record = record.advance(
                    ExecutionStatus.FAILED,
                    error=f"Route ended {status.status} ({reason})",
                    completed_at=self._clock(),
                )
        except Exception as e:
            logger.error("Execution %s failed: %s", record.id, e)
            record = record.advance(
                ExecutionStatus.FAILED,
                error=str(e) or type(e).__name__,
                completed_at=self._clock(),
            )

        return publish(record)
