"""Command-line interface for the rotation advisor."""
from __future__ import annotations

import argparse
import asyncio
import sys
from datetime import datetime, timezone

from .app import STRATEGIES, build_scanner, build_scheduler, build_strategy
from .config import AppConfig, load_config
from .errors import AdvisorError, ConfigError
from .feeds import ArbitrageFeed, YieldFeed
from .logging_setup import configure_logging
from .models import ExecutionRecord, Plan, Position
from .signers import RpcWalletSigner


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse CLI parser."""
    parser = argparse.ArgumentParser(
        prog="rotation-advisor",
        description="Cross-chain yield rotation and arbitrage advisor",
    )
    parser.add_argument(
        "--config",
        default=None,
        help="Path to config.yaml (default: config.yaml in project root)",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: INFO)",
    )

    sub = parser.add_subparsers(dest="command")

    positions = sub.add_parser("positions", help="List a wallet's balances")
    positions.add_argument("wallet", nargs="?", help="Wallet address (default: config wallet)")
    positions.add_argument("--testnet", action="store_true")

    opportunities = sub.add_parser("opportunities", help="List live opportunities")
    opportunities.add_argument("strategy", choices=STRATEGIES)
    opportunities.add_argument(
        "--token", default=None, help="Token filter (arbitrage default: USDC)"
    )

    plan = sub.add_parser("plan", help="Scan and rank plans without executing")
    plan.add_argument("strategy", choices=STRATEGIES)
    plan.add_argument("wallet", nargs="?", help="Wallet address (default: config wallet)")
    plan.add_argument("--testnet", action="store_true")
    plan.add_argument("--limit", type=int, default=5)

    run = sub.add_parser("run", help="Run the scheduler until interrupted")
    run.add_argument("strategy", choices=STRATEGIES)
    run.add_argument("wallet", nargs="?", help="Wallet address (default: config wallet)")
    run.add_argument("--signer-url", required=True, help="Wallet JSON-RPC URL")
    run.add_argument(
        "--interval",
        type=int,
        default=None,
        help="Check interval in seconds (overrides config, persisted)",
    )
    run.add_argument("--source-chain", type=int, default=None)

    history = sub.add_parser("history", help="Show or clear execution history")
    history.add_argument("strategy", choices=STRATEGIES)
    history.add_argument("--clear", action="store_true")

    return parser


# ----------------------------------------------------------------------
# Output helpers
# ----------------------------------------------------------------------


def _format_position(position: Position) -> str:
    return (
        f"{position.chain_name:<18} {position.token:<8} "
        f"{position.amount:>18,.6f}  ${position.value_usd:>12,.2f}"
    )


def _format_plan(rank: int, plan: Plan) -> str:
    line = f"{rank:>2}. {plan.describe()}"
    line += f"\n    cost ${plan.gas_cost_usd:,.2f}"
    if plan.route is not None:
        line += (
            f" · {plan.route_step_count} step(s) via {plan.route.tool or 'aggregator'}"
            f" · ~{plan.execution_duration:.0f}s"
        )
    break_even = getattr(plan, "break_even_days", None)
    if break_even:
        line += f" · break-even {break_even:.1f} days"
    return line


def _format_record(record: ExecutionRecord) -> str:
    when = datetime.fromtimestamp(record.timestamp, timezone.utc).strftime(
        "%Y-%m-%d %H:%M:%S"
    )
    snap = record.plan
    line = (
        f"{when} UTC  {record.status.value:<10} {snap.token} "
        f"{snap.from_chain_name} → {snap.to_chain_name}  net ${snap.net_benefit:,.2f}"
    )
    if record.tx_hash:
        line += f"  tx {record.tx_hash}"
    if record.error:
        line += f"  ({record.error})"
    return line


# ----------------------------------------------------------------------
# Commands
# ----------------------------------------------------------------------


def _wallet(config: AppConfig, args: argparse.Namespace) -> str:
    wallet = args.wallet or config.wallet.address
    if not wallet:
        raise ConfigError("No wallet address given and none configured")
    return wallet


async def _positions(config: AppConfig, args: argparse.Namespace) -> None:
    chain_ids = [c.chain_id for c in config.chains_for(args.testnet)]
    positions = await build_scanner(config).scan(_wallet(config, args), chain_ids)
    if not positions:
        print("No balances found.")
        return
    for position in sorted(positions, key=lambda p: -p.value_usd):
        print(_format_position(position))
    print(f"Total: ${sum(p.value_usd for p in positions):,.2f}")


async def _opportunities(config: AppConfig, args: argparse.Namespace) -> None:
    chains = list(config.chains.values())
    if args.strategy == "yield":
        listings = await YieldFeed(config.yield_feed, chains).list_opportunities(
            args.token
        )
        for o in listings:
            print(
                f"{o.apy:>7.2f}%  {o.chain_name:<10} {o.protocol:<20} "
                f"{o.token:<16} TVL ${o.tvl:>15,.0f}  {o.risk.value}"
            )
    else:
        monitor = config.monitor("arbitrage")
        strategy = build_strategy(config, "arbitrage")
        listings = await ArbitrageFeed(
            config.arbitrage_feed, chains
        ).list_opportunities(
            args.token or monitor.input_token,
            monitor.min_profit_percent,
            strategy.trade_amount_usd(monitor),
        )
        for o in listings:
            print(
                f"{o.price_difference:>6.2f}%  {o.token} {o.from_chain_name} "
                f"${o.from_price:.4f} → {o.to_chain_name} ${o.to_price:.4f}  "
                f"~${o.profit_after_fees:,.2f}  {o.confidence.value}"
            )
    if not listings:
        print("No opportunities found.")


async def _plan(config: AppConfig, args: argparse.Namespace) -> None:
    monitor = config.monitor(args.strategy)
    if args.testnet:
        monitor = monitor.merged(is_testnet=True)
    strategy = build_strategy(config, args.strategy)
    result = await strategy.scan(_wallet(config, args), monitor)

    print(
        f"{len(result.positions)} position(s), "
        f"{len(result.opportunities)} opportunity(ies)"
    )
    if not result.plans:
        print("No profitable plans.")
        return
    for rank, plan in enumerate(result.plans[: args.limit], start=1):
        print(_format_plan(rank, plan))


async def _run_scheduler(config: AppConfig, args: argparse.Namespace) -> None:
    scheduler = build_scheduler(config, args.strategy)
    if args.interval is not None:
        scheduler.update_config(check_interval_ms=args.interval * 1000)

    wallet = _wallet(config, args)
    signer = RpcWalletSigner(args.signer_url, wallet)
    await scheduler.start(wallet, signer, source_chain_id=args.source_chain)
    try:
        await asyncio.Event().wait()
    finally:
        scheduler.stop()
        await scheduler.wait_for_pending()


def _history(config: AppConfig, args: argparse.Namespace) -> None:
    scheduler = build_scheduler(config, args.strategy)
    if args.clear:
        scheduler.clear_history()
        print("History cleared.")
        return

    state = scheduler.get_state()
    if not state.execution_history:
        print("No executions recorded.")
    for record in state.execution_history:
        print(_format_record(record))
    print(f"Total realized profit: ${state.total_profit:,.2f}")


async def _run(args: argparse.Namespace) -> None:
    """Execute the selected command."""
    configure_logging(args.log_level)
    config = load_config(args.config)

    if args.command == "positions":
        await _positions(config, args)
    elif args.command == "opportunities":
        await _opportunities(config, args)
    elif args.command == "plan":
        await _plan(config, args)
    elif args.command == "run":
        await _run_scheduler(config, args)
    elif args.command == "history":
        _history(config, args)
    else:
        build_parser().print_help()
        sys.exit(1)


def main() -> None:
    """Entry point."""
    parser = build_parser()
    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(1)

    try:
        asyncio.run(_run(args))
    except KeyboardInterrupt:
        pass
    except (AdvisorError, FileNotFoundError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(2)
