"""Data models — all frozen (immutable)."""
from __future__ import annotations

import enum
from dataclasses import asdict, dataclass, field, replace
from typing import Any, Mapping, Union

from .errors import InvalidTransitionError


class RiskTier(str, enum.Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class Confidence(str, enum.Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class PlanKind(str, enum.Enum):
    YIELD = "yield"
    ARBITRAGE = "arbitrage"


class Severity(str, enum.Enum):
    """Status sink severities."""

    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


class EngineState(str, enum.Enum):
    IDLE = "idle"
    RUNNING = "running"
    CHECKING = "checking"
    EXECUTING = "executing"
    STOPPED = "stopped"


class ExecutionStatus(str, enum.Enum):
    PENDING = "pending"
    CONFIRMING = "confirming"
    COMPLETED = "completed"
    FAILED = "failed"


# Terminal statuses have no outgoing edges.
_STATUS_TRANSITIONS: dict[ExecutionStatus, frozenset[ExecutionStatus]] = {
    ExecutionStatus.PENDING: frozenset({ExecutionStatus.CONFIRMING}),
    ExecutionStatus.CONFIRMING: frozenset(
        {ExecutionStatus.COMPLETED, ExecutionStatus.FAILED}
    ),
    ExecutionStatus.COMPLETED: frozenset(),
    ExecutionStatus.FAILED: frozenset(),
}


# ---------------------------------------------------------------------------
# Positions and opportunities
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Position:
    """Non-zero balance of one token on one chain."""

    chain_id: int
    chain_name: str
    token: str
    token_address: str
    balance: int
    decimals: int
    amount: float
    value_usd: float
    current_apy: float = 0.0
    protocol: str = ""

    def __post_init__(self) -> None:
        if self.balance <= 0:
            raise ValueError(
                f"Position balance must be positive, got {self.balance} "
                f"{self.token} on {self.chain_name}"
            )


@dataclass(frozen=True)
class YieldOpportunity:
    chain_id: int
    chain_name: str
    protocol: str
    token: str
    apy: float
    tvl: float
    risk: RiskTier
    pool_id: str = ""


@dataclass(frozen=True)
class ArbitrageOpportunity:
    """Price spread for one token between a cheaper and a dearer chain."""

    token: str
    from_chain_id: int
    from_chain_name: str
    from_price: float
    to_chain_id: int
    to_chain_name: str
    to_price: float
    price_difference: float
    profit_after_fees: float
    volume: float
    confidence: Confidence


Opportunity = Union[YieldOpportunity, ArbitrageOpportunity]


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RouteStep:
    type: str
    tool: str
    from_chain_id: int
    to_chain_id: int
    from_token: str
    to_token: str


@dataclass(frozen=True)
class RouteQuote:
    """Priced path for moving value, normalized from the aggregator response."""

    id: str
    from_chain_id: int
    to_chain_id: int
    from_token: str
    to_token: str
    from_amount: int
    to_amount: int
    to_amount_min: int
    gas_cost_usd: float
    fee_cost_usd: float
    execution_duration: float
    tool: str = ""
    steps: tuple[RouteStep, ...] = ()
    transaction_request: Mapping[str, Any] = field(default_factory=dict)
    approval_address: str = ""

    @property
    def total_cost_usd(self) -> float:
        return self.gas_cost_usd + self.fee_cost_usd

    @property
    def step_count(self) -> int:
        return len(self.steps) or 1


@dataclass(frozen=True)
class RouteStatus:
    """Eventual outcome of a submitted route."""

    status: str
    tx_hash: str = ""
    receiving_tx_hash: str = ""
    received_amount: int | None = None
    substatus: str = ""

    @property
    def is_done(self) -> bool:
        return self.status == "DONE"


# ---------------------------------------------------------------------------
# Plans
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RotationPlan:
    """Move a position into a higher-yield venue."""

    position: Position
    opportunity: YieldOpportunity
    apy_improvement: float
    estimated_annual_gain: float
    route: RouteQuote | None
    gas_cost_usd: float
    net_benefit: float
    break_even_days: float

    kind = PlanKind.YIELD

    @property
    def improvement(self) -> float:
        return self.apy_improvement

    @property
    def position_value_usd(self) -> float:
        return self.position.value_usd

    @property
    def source_chain_id(self) -> int:
        return self.position.chain_id

    @property
    def destination_chain_id(self) -> int:
        return self.opportunity.chain_id

    @property
    def route_step_count(self) -> int:
        return self.route.step_count if self.route else 0

    @property
    def execution_duration(self) -> float:
        return self.route.execution_duration if self.route else 0.0

    def describe(self) -> str:
        return (
            f"{self.position.token} on {self.position.chain_name} → "
            f"{self.opportunity.protocol} on {self.opportunity.chain_name} "
            f"(+{self.apy_improvement:.2f}% APY, net ${self.net_benefit:,.2f}/yr)"
        )


@dataclass(frozen=True)
class ArbitragePlan:
    """Buy cheap on one chain, bridge, sell dear on another."""

    opportunity: ArbitrageOpportunity
    position: Position
    input_token: str
    input_amount: int
    input_amount_usd: float
    expected_profit: float
    route: RouteQuote | None
    gas_cost_usd: float
    net_benefit: float

    kind = PlanKind.ARBITRAGE

    @property
    def improvement(self) -> float:
        return self.opportunity.price_difference

    @property
    def position_value_usd(self) -> float:
        return self.input_amount_usd

    @property
    def source_chain_id(self) -> int:
        return self.opportunity.from_chain_id

    @property
    def destination_chain_id(self) -> int:
        return self.opportunity.to_chain_id

    @property
    def steps(self) -> tuple[RouteStep, ...]:
        return self.route.steps if self.route else ()

    @property
    def route_step_count(self) -> int:
        return self.route.step_count if self.route else 0

    @property
    def execution_duration(self) -> float:
        return self.route.execution_duration if self.route else 0.0

    def describe(self) -> str:
        return (
            f"{self.opportunity.token} {self.opportunity.from_chain_name} → "
            f"{self.opportunity.to_chain_name} "
            f"({self.opportunity.price_difference:.2f}% spread, "
            f"net ${self.net_benefit:,.2f})"
        )


Plan = Union[RotationPlan, ArbitragePlan]


@dataclass(frozen=True)
class PlanSnapshot:
    """Flat summary of a plan, kept in the execution ledger."""

    kind: PlanKind
    from_chain_id: int
    from_chain_name: str
    to_chain_id: int
    to_chain_name: str
    token: str
    venue: str
    improvement: float
    amount_usd: float
    gas_cost_usd: float
    net_benefit: float
    break_even_days: float | None = None

    @classmethod
    def from_plan(cls, plan: Plan) -> PlanSnapshot:
        if isinstance(plan, RotationPlan):
            return cls(
                kind=PlanKind.YIELD,
                from_chain_id=plan.position.chain_id,
                from_chain_name=plan.position.chain_name,
                to_chain_id=plan.opportunity.chain_id,
                to_chain_name=plan.opportunity.chain_name,
                token=plan.position.token,
                venue=plan.opportunity.protocol,
                improvement=plan.apy_improvement,
                amount_usd=plan.position.value_usd,
                gas_cost_usd=plan.gas_cost_usd,
                net_benefit=plan.net_benefit,
                break_even_days=plan.break_even_days,
            )
        return cls(
            kind=PlanKind.ARBITRAGE,
            from_chain_id=plan.opportunity.from_chain_id,
            from_chain_name=plan.opportunity.from_chain_name,
            to_chain_id=plan.opportunity.to_chain_id,
            to_chain_name=plan.opportunity.to_chain_name,
            token=plan.input_token,
            venue=plan.route.tool if plan.route else "",
            improvement=plan.opportunity.price_difference,
            amount_usd=plan.input_amount_usd,
            gas_cost_usd=plan.gas_cost_usd,
            net_benefit=plan.net_benefit,
        )

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> PlanSnapshot:
        return cls(**{**raw, "kind": PlanKind(raw["kind"])})


# ---------------------------------------------------------------------------
# Execution ledger
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ExecutionRecord:
    id: str
    timestamp: float
    plan: PlanSnapshot
    status: ExecutionStatus = ExecutionStatus.PENDING
    tx_hash: str | None = None
    error: str | None = None
    realized_profit: float | None = None
    completed_at: float | None = None

    @property
    def success(self) -> bool:
        return self.status is ExecutionStatus.COMPLETED

    @property
    def is_terminal(self) -> bool:
        return not _STATUS_TRANSITIONS[self.status]

    def advance(self, status: ExecutionStatus, **changes: Any) -> ExecutionRecord:
        """Return a copy moved to *status*; only forward transitions are legal."""
        if status not in _STATUS_TRANSITIONS[self.status]:
            raise InvalidTransitionError(
                f"Execution {self.id}: {self.status.value} → {status.value} "
                f"is not a valid transition"
            )
        return replace(self, status=status, **changes)

    def with_details(self, **changes: Any) -> ExecutionRecord:
        """Return a copy with non-status fields updated."""
        if "status" in changes:
            raise InvalidTransitionError(
                f"Execution {self.id}: status changes must go through advance()"
            )
        return replace(self, **changes)

    def to_dict(self) -> dict[str, Any]:
        raw = asdict(self)
        raw["status"] = self.status.value
        raw["plan"]["kind"] = self.plan.kind.value
        return raw

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> ExecutionRecord:
        return cls(
            id=raw["id"],
            timestamp=float(raw["timestamp"]),
            plan=PlanSnapshot.from_dict(raw["plan"]),
            status=ExecutionStatus(raw.get("status", "pending")),
            tx_hash=raw.get("tx_hash"),
            error=raw.get("error"),
            realized_profit=raw.get("realized_profit"),
            completed_at=raw.get("completed_at"),
        )


# ---------------------------------------------------------------------------
# Scheduler snapshot
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class MonitorState:
    """Observer-facing snapshot; replaced wholesale on every change."""

    engine_state: EngineState = EngineState.IDLE
    last_check: float | None = None
    last_execution: float | None = None
    checks_count: int = 0
    executions_count: int = 0
    total_profit: float = 0.0
    current_positions: tuple[Position, ...] = ()
    current_opportunities: tuple[Opportunity, ...] = ()
    pending_plan: Plan | None = None
    error: str | None = None
    execution_history: tuple[ExecutionRecord, ...] = ()
    status: str = "Idle"

    @property
    def is_running(self) -> bool:
        return self.engine_state in (
            EngineState.RUNNING,
            EngineState.CHECKING,
            EngineState.EXECUTING,
        )
