"""Rotation scheduler — periodic scan, gating, single-flight execution."""
from __future__ import annotations

import asyncio
import inspect
import logging
import math
import time
from dataclasses import replace
from typing import Any, Callable, Mapping

from ..config import ChainConfig, MonitorConfig, validate_monitor_config
from ..errors import ConfigError, InvalidTransitionError
from ..interfaces.signer import Signer
from ..interfaces.storage import KeyValueStore
from ..models import (
    EngineState,
    ExecutionRecord,
    MonitorState,
    Plan,
    PlanKind,
    Severity,
)
from .executor import Executor
from .history import HistoryStore
from .strategies import ScanResult, Strategy

logger = logging.getLogger(__name__)

StatusCallback = Callable[[str, Severity], Any]
StateCallback = Callable[[MonitorState], Any]

_TRANSITIONS: dict[EngineState, frozenset[EngineState]] = {
    EngineState.IDLE: frozenset({EngineState.RUNNING}),
    EngineState.RUNNING: frozenset(
        {EngineState.CHECKING, EngineState.EXECUTING, EngineState.STOPPED}
    ),
    EngineState.CHECKING: frozenset(
        {EngineState.RUNNING, EngineState.EXECUTING, EngineState.STOPPED}
    ),
    EngineState.EXECUTING: frozenset({EngineState.RUNNING, EngineState.STOPPED}),
    EngineState.STOPPED: frozenset({EngineState.RUNNING}),
}

_LOG_LEVELS = {
    Severity.INFO: logging.INFO,
    Severity.SUCCESS: logging.INFO,
    Severity.WARNING: logging.WARNING,
    Severity.ERROR: logging.ERROR,
}


def _finished_at(record: ExecutionRecord) -> float:
    return record.completed_at if record.completed_at is not None else record.timestamp


class RotationScheduler:
    """Drives one strategy on a timer and executes the plans that pass.

    At most one execution runs at a time. Ticks run as their own tasks, so
    stopping the timer never interrupts an execution that is underway.
    """

    def __init__(
        self,
        strategy: Strategy,
        executor: Executor,
        history: HistoryStore,
        store: KeyValueStore,
        config: MonitorConfig,
        chains: Mapping[int, ChainConfig],
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._strategy = strategy
        self._executor = executor
        self._history = history
        self._store = store
        self._chains = dict(chains)
        self._clock = clock
        self._config_key = f"{strategy.kind.value}.config"
        self._config = self._load_config(config)

        self._wallet: str | None = None
        self._signer: Signer | None = None
        self._lock = asyncio.Lock()
        self._timer_task: asyncio.Task | None = None
        self._ticks: set[asyncio.Task] = set()
        self._callback_tasks: set[asyncio.Task] = set()
        self._on_status: StatusCallback | None = None
        self._on_state: StateCallback | None = None

        records = history.records
        self._state = MonitorState(
            total_profit=history.total_profit,
            execution_history=records,
            last_execution=_finished_at(records[-1]) if records else None,
        )

    @property
    def kind(self) -> PlanKind:
        return self._strategy.kind

    # ------------------------------------------------------------------
    # Config
    # ------------------------------------------------------------------

    def _load_config(self, base: MonitorConfig) -> MonitorConfig:
        stored = self._store.get(self._config_key)
        if not stored:
            return base
        try:
            config = base.merged(**stored)
            validate_monitor_config(config, self._chains)
        except ConfigError as e:
            logger.warning("Ignoring stored %s config: %s", self.kind.value, e)
            return base
        return config

    def get_config(self) -> MonitorConfig:
        return self._config

    def update_config(self, **changes: Any) -> MonitorConfig:
        """Validate, apply and persist; takes effect from the next tick.

        Raises ConfigError and leaves the live config untouched on bad input.
        """
        config = self._config.merged(**changes)
        validate_monitor_config(config, self._chains)
        if config == self._config:
            return config

        self._config = config
        self._store.set(self._config_key, config.to_dict())
        self._emit(f"Config updated: {', '.join(sorted(changes))}", Severity.INFO)
        return config

    # ------------------------------------------------------------------
    # State & callbacks
    # ------------------------------------------------------------------

    def get_state(self) -> MonitorState:
        return self._state

    def set_callbacks(
        self,
        on_status: StatusCallback | None = None,
        on_state: StateCallback | None = None,
    ) -> None:
        self._on_status = on_status
        self._on_state = on_state

    def _dispatch(self, callback: Callable[..., Any] | None, *args: Any) -> None:
        if callback is None:
            return
        try:
            result = callback(*args)
            if inspect.isawaitable(result):
                task = asyncio.ensure_future(result)
                self._callback_tasks.add(task)
                task.add_done_callback(self._callback_done)
        except Exception as e:
            logger.error("Status callback failed: %s", e)

    def _callback_done(self, task: asyncio.Task) -> None:
        self._callback_tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error("Status callback failed: %s", task.exception())

    def _update(self, **changes: Any) -> None:
        self._state = replace(self._state, **changes)
        self._dispatch(self._on_state, self._state)

    def _emit(self, message: str, severity: Severity) -> None:
        logger.log(_LOG_LEVELS[severity], "[%s] %s", self.kind.value, message)
        self._update(status=message)
        self._dispatch(self._on_status, message, severity)

    def _transition(self, target: EngineState) -> None:
        current = self._state.engine_state
        if target not in _TRANSITIONS[current]:
            raise InvalidTransitionError(
                f"Scheduler cannot go from {current.value} to {target.value}"
            )
        self._update(engine_state=target)

    def _resume(self, expected: EngineState) -> None:
        """Back to RUNNING, unless stop() moved the engine on meanwhile."""
        if self._state.engine_state is expected:
            self._transition(EngineState.RUNNING)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(
        self,
        wallet_address: str,
        signer: Signer,
        source_chain_id: int | None = None,
    ) -> None:
        if self._state.is_running:
            self._emit("Monitor already running", Severity.WARNING)
            return
        if not wallet_address:
            raise ConfigError("A wallet address is required to start")
        if signer is None:
            raise ConfigError("A signer is required to start")
        if source_chain_id is not None:
            self.update_config(source_chain_id=source_chain_id)

        self._wallet = wallet_address
        self._signer = signer
        self._transition(EngineState.RUNNING)
        self._update(error=None)

        interval = self._config.check_interval_ms / 1000
        self._emit(f"Monitor started, checking every {interval:.0f}s", Severity.SUCCESS)

        self._spawn_tick()
        self._timer_task = asyncio.create_task(self._run_timer())

    def stop(self) -> None:
        """Cancel the timer; an execution already underway still completes."""
        if not self._state.is_running:
            return
        if self._timer_task is not None:
            self._timer_task.cancel()
            self._timer_task = None
        self._transition(EngineState.STOPPED)
        self._update(pending_plan=None)
        self._emit("Monitor stopped", Severity.INFO)

    async def wait_for_pending(self) -> None:
        """Wait until every tick already spawned has finished."""
        while self._ticks:
            await asyncio.gather(*list(self._ticks), return_exceptions=True)

    async def _run_timer(self) -> None:
        while True:
            await asyncio.sleep(self._config.check_interval_ms / 1000)
            self._spawn_tick()

    def _spawn_tick(self) -> None:
        task = asyncio.create_task(self._safe_check())
        self._ticks.add(task)
        task.add_done_callback(self._ticks.discard)

    async def _safe_check(self) -> None:
        try:
            await self.run_check()
        except Exception as e:
            logger.exception("Unexpected error in %s check: %s", self.kind.value, e)
            self._update(error=str(e))
            self._resume(EngineState.CHECKING)

    # ------------------------------------------------------------------
    # Tick
    # ------------------------------------------------------------------

    def _cooldown_remaining(self, config: MonitorConfig) -> float:
        last = self._state.last_execution
        if last is None:
            return 0.0
        return max(0.0, last + config.cooldown_ms / 1000 - self._clock())

    def _improvement_threshold(self, config: MonitorConfig) -> float:
        if self.kind is PlanKind.YIELD:
            return config.min_apy_improvement
        return config.min_profit_percent

    def _select(self, result: ScanResult, config: MonitorConfig) -> Plan | None:
        """Run the best plan through the gates, in order; first failure wins."""
        plan = result.best_plan
        rejection: tuple[str, Severity] | None = None

        if plan is None:
            rejection = (self._strategy.no_opportunity_message(config), Severity.INFO)
        elif plan.position_value_usd < config.min_position_value:
            rejection = (
                f"Position too small: ${plan.position_value_usd:,.2f} "
                f"< ${config.min_position_value:,.2f}",
                Severity.INFO,
            )
        elif plan.gas_cost_usd > config.max_gas_cost:
            rejection = (
                f"Gas too high: ${plan.gas_cost_usd:,.2f} > ${config.max_gas_cost:,.2f}",
                Severity.WARNING,
            )
        elif plan.improvement < self._improvement_threshold(config):
            rejection = (
                f"Improvement too small: {plan.improvement:.2f}% "
                f"< {self._improvement_threshold(config)}%",
                Severity.INFO,
            )
        elif plan.net_benefit <= 0 or plan.net_benefit < config.min_net_profit:
            rejection = (
                f"Profit too low: ${plan.net_benefit:,.2f} "
                f"< ${config.min_net_profit:,.2f}",
                Severity.INFO,
            )

        if rejection is not None:
            self._update(pending_plan=None)
            self._emit(*rejection)
            return None

        self._update(pending_plan=plan)
        self._emit(f"Found: {plan.describe()}", Severity.SUCCESS)
        return plan

    async def run_check(self) -> None:
        """One tick: scan, gate, and execute the best plan when allowed."""
        if self._lock.locked():
            self._emit("Execution in progress, skipping check", Severity.INFO)
            return
        if self._state.engine_state is not EngineState.RUNNING:
            logger.debug(
                "Skipping %s check in state %s",
                self.kind.value,
                self._state.engine_state.value,
            )
            return

        config = self._config
        self._transition(EngineState.CHECKING)
        self._emit("Scanning for opportunities...", Severity.INFO)

        try:
            result = await self._strategy.scan(self._wallet, config)
        except Exception as e:
            if self._state.engine_state is not EngineState.CHECKING:
                return
            self._update(error=str(e))
            self._emit(f"Check failed: {e}", Severity.ERROR)
            self._resume(EngineState.CHECKING)
            return

        # stop() or a manual execution during the scan discards its result.
        if self._state.engine_state is not EngineState.CHECKING:
            logger.info(
                "Discarding %s scan result, engine is %s",
                self.kind.value,
                self._state.engine_state.value,
            )
            return

        self._update(
            last_check=self._clock(),
            checks_count=self._state.checks_count + 1,
            current_positions=result.positions,
            current_opportunities=result.opportunities,
            error=None,
        )

        plan = self._select(result, config)
        if plan is None:
            self._resume(EngineState.CHECKING)
            return

        remaining = self._cooldown_remaining(config)
        if remaining > 0:
            self._emit(f"Cooldown: {math.ceil(remaining)}s remaining", Severity.INFO)
            self._resume(EngineState.CHECKING)
            return

        if not config.auto_execute:
            self._emit("Auto-execute disabled, plan left pending", Severity.INFO)
            self._resume(EngineState.CHECKING)
            return

        await self._execute(plan)

    async def scan(self, wallet_address: str | None = None) -> ScanResult:
        """Scan and plan without touching the engine state or executing."""
        wallet = wallet_address or self._wallet
        if not wallet:
            raise ConfigError("A wallet address is required to scan")
        return await self._strategy.scan(wallet, self._config)

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    async def execute_pending(self) -> ExecutionRecord | None:
        plan = self._state.pending_plan
        if plan is None:
            self._emit("No pending plan to execute", Severity.WARNING)
            return None
        return await self.execute_plan(plan)

    async def execute_plan(self, plan: Plan) -> ExecutionRecord | None:
        """Manual trigger; same single-flight and cooldown rules as a tick."""
        if not self._state.is_running:
            self._emit("Monitor is not running", Severity.WARNING)
            return None
        if plan.net_benefit <= 0:
            self._emit(
                f"Refusing plan with net benefit ${plan.net_benefit:,.2f}",
                Severity.WARNING,
            )
            return None
        remaining = self._cooldown_remaining(self._config)
        if remaining > 0:
            self._emit(f"Cooldown: {math.ceil(remaining)}s remaining", Severity.WARNING)
            return None
        return await self._execute(plan)

    async def _execute(self, plan: Plan) -> ExecutionRecord | None:
        if self._lock.locked():
            self._emit("Execution already in progress", Severity.WARNING)
            return None

        async with self._lock:
            self._transition(EngineState.EXECUTING)
            self._emit(f"Executing: {plan.describe()}", Severity.INFO)

            try:
                try:
                    record = await self._executor.execute(
                        plan, self._signer, on_update=self._on_record_update
                    )
                except Exception as e:
                    # The executor converts its own failures; this guards callbacks.
                    logger.exception("Executor raised: %s", e)
                    record = self._executor.failed_record(
                        plan, f"Execution error: {str(e) or type(e).__name__}"
                    )
                self._record(record)
            finally:
                # Cooldown starts even when recording the outcome failed.
                self._update(
                    last_execution=self._clock(),
                    executions_count=self._state.executions_count + 1,
                    pending_plan=None,
                )
                self._resume(EngineState.EXECUTING)
            return record

    def _on_record_update(self, record: ExecutionRecord) -> None:
        if record.tx_hash and not record.is_terminal:
            self._emit(f"Transaction submitted: {record.tx_hash}", Severity.INFO)

    def _record(self, record: ExecutionRecord) -> None:
        total_profit = self._state.total_profit
        profit = record.realized_profit if record.success else None
        save_error: Exception | None = None
        try:
            self._history.append(record)
            if profit:
                total_profit = self._history.add_profit(profit)
        except Exception as e:
            logger.exception("Could not persist execution %s: %s", record.id, e)
            save_error = e
            if profit:
                total_profit += profit

        if record.success:
            if profit:
                self._emit(f"Profit realized: ${profit:,.2f}", Severity.SUCCESS)
            else:
                self._emit("Execution completed", Severity.SUCCESS)
        else:
            self._emit(f"Execution failed: {record.error}", Severity.ERROR)

        self._update(
            total_profit=total_profit,
            execution_history=self._history.records,
        )
        if save_error is not None:
            self._update(error=f"History not saved: {save_error}")
            self._emit(f"History not saved: {save_error}", Severity.ERROR)

    def clear_history(self) -> None:
        self._history.clear()
        self._update(execution_history=(), total_profit=0.0)
        self._emit("History cleared", Severity.INFO)
