"""Object graph assembly: config in, ready-to-run scheduler out."""
from __future__ import annotations

import logging

from .config import AppConfig
from .errors import ConfigError
from .feeds import ArbitrageFeed, YieldFeed
from .interfaces.price_oracle import PriceOracle
from .interfaces.storage import KeyValueStore
from .interfaces.notifier import Notifier
from .notifications import EmailNotifier, StatusSink, TelegramNotifier
from .oracles import LayeredPriceOracle, PythOracle, StaticPriceOracle
from .routing import LifiClient
from .services import (
    ArbitrageStrategy,
    Executor,
    HistoryStore,
    PositionScanner,
    RotationScheduler,
    YieldRotationStrategy,
)
from .services.strategies import Strategy
from .storage import JsonFileStore

logger = logging.getLogger(__name__)

STRATEGIES = ("yield", "arbitrage")


def build_price_oracle(config: AppConfig) -> PriceOracle:
    """Static reference prices, overridden by Pyth when feeds are configured."""
    oracles: list[PriceOracle] = [
        StaticPriceOracle(config.price_oracle.fallback_prices)
    ]
    if config.price_oracle.pyth.feeds:
        oracles.append(PythOracle(config.price_oracle.pyth))
    return LayeredPriceOracle(oracles)


def build_scanner(config: AppConfig) -> PositionScanner:
    return PositionScanner(config.chains.values(), build_price_oracle(config))


def build_strategy(
    config: AppConfig, strategy: str, route_provider: LifiClient | None = None
) -> Strategy:
    routes = route_provider or LifiClient(config.routing)
    chains = list(config.chains.values())
    scanner = build_scanner(config)

    if strategy == "yield":
        return YieldRotationStrategy(
            chains, scanner, YieldFeed(config.yield_feed, chains), routes
        )
    if strategy == "arbitrage":
        return ArbitrageStrategy(
            chains, scanner, ArbitrageFeed(config.arbitrage_feed, chains), routes
        )
    raise ConfigError(f"Unknown strategy '{strategy}'")


def build_scheduler(
    config: AppConfig, strategy: str, store: KeyValueStore | None = None
) -> RotationScheduler:
    store = store if store is not None else JsonFileStore(config.storage.path)
    routes = LifiClient(config.routing)
    scheduler = RotationScheduler(
        strategy=build_strategy(config, strategy, routes),
        executor=Executor(routes),
        history=HistoryStore(store, prefix=strategy),
        store=store,
        config=config.monitor(strategy),
        chains=config.chains,
    )

    notifiers: list[Notifier] = []
    telegram = config.notifications.telegram
    if telegram.enabled:
        notifiers.append(TelegramNotifier(telegram))
    if config.notifications.email.enabled:
        notifiers.append(EmailNotifier(config.notifications.email))

    if notifiers:
        label = f"{strategy.capitalize()} monitor"
        if config.wallet.label:
            label = f"{label} · {config.wallet.label}"
        scheduler.set_callbacks(
            on_status=StatusSink(notifiers, label, forward_info=telegram.forward_info)
        )
        logger.info(
            "Status forwarding enabled: %s",
            ", ".join(type(n).__name__ for n in notifiers),
        )

    return scheduler
