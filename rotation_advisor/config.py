"""Configuration loader — reads config.yaml, interpolates env vars, validates."""
from __future__ import annotations

import logging
import os
import re
from dataclasses import asdict, dataclass, field, fields, replace
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv

from .errors import ConfigError

logger = logging.getLogger(__name__)

MIN_CHECK_INTERVAL_MS = 10_000
NATIVE_TOKEN_ADDRESS = "0x0000000000000000000000000000000000000000"

# ---------------------------------------------------------------------------
# Frozen config dataclasses
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TokenConfig:
    symbol: str
    address: str
    decimals: int = 18


@dataclass(frozen=True)
class ChainConfig:
    chain_id: int
    name: str
    rpc_endpoints: tuple[str, ...] = ()
    rpc_timeout: int = 30
    testnet: bool = False
    native_symbol: str = "ETH"
    explorer: str = ""
    tokens: tuple[TokenConfig, ...] = ()

    def token(self, symbol: str) -> TokenConfig | None:
        for token in self.tokens:
            if token.symbol == symbol:
                return token
        return None


@dataclass(frozen=True)
class MonitorConfig:
    """Scheduler policy. Editable at runtime; applied on the next tick."""

    min_apy_improvement: float = 2.0
    min_profit_percent: float = 0.3
    min_net_profit: float = 0.0
    max_gas_cost: float = 50.0
    min_position_value: float = 100.0
    check_interval_ms: int = 60_000
    cooldown_ms: int = 300_000
    is_testnet: bool = False
    source_chain_id: int | None = None
    input_token: str = "USDC"
    max_trade_amount: str = "1000000000"
    auto_execute: bool = True

    def merged(self, **changes: Any) -> MonitorConfig:
        """Return a copy with *changes* applied and coerced to field types."""
        known = {f.name: f for f in fields(self)}
        unknown = sorted(set(changes) - set(known))
        if unknown:
            raise ConfigError(f"Unknown monitor option(s): {', '.join(unknown)}")

        coerced: dict[str, Any] = {}
        for name, value in changes.items():
            default = getattr(MonitorConfig, name)
            try:
                if name == "source_chain_id":
                    coerced[name] = None if value in (None, "") else int(value)
                elif name == "max_trade_amount":
                    coerced[name] = str(int(value))
                elif isinstance(default, bool):
                    coerced[name] = _to_bool(value)
                elif isinstance(default, int):
                    coerced[name] = int(value)
                elif isinstance(default, float):
                    coerced[name] = float(value)
                else:
                    coerced[name] = str(value)
            except (TypeError, ValueError) as e:
                raise ConfigError(f"Invalid value for {name}: {value!r}") from e
        return replace(self, **coerced)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


YIELD_MONITOR_DEFAULTS = MonitorConfig()

ARBITRAGE_MONITOR_DEFAULTS = MonitorConfig(
    min_net_profit=5.0,
    max_gas_cost=20.0,
    min_position_value=0.0,
    check_interval_ms=30_000,
    cooldown_ms=120_000,
)

_MONITOR_DEFAULTS = {
    "yield": YIELD_MONITOR_DEFAULTS,
    "arbitrage": ARBITRAGE_MONITOR_DEFAULTS,
}


@dataclass(frozen=True)
class WalletConfig:
    label: str = ""
    address: str = ""


@dataclass(frozen=True)
class YieldFeedConfig:
    url: str = "https://yields.llama.fi/pools"
    tokens: tuple[str, ...] = ("USDC", "USDT", "DAI", "WETH")
    min_apy: float = 0.5
    max_apy: float = 100.0
    min_tvl: float = 500_000.0
    limit: int = 20
    timeout: int = 30


@dataclass(frozen=True)
class ArbitrageFeedConfig:
    coingecko_url: str = "https://api.coingecko.com/api/v3"
    api_key: str = ""
    # DEX + bridge fees assumed when estimating a spread's profit.
    fee_percent: float = 0.4
    timeout: int = 5
    platforms: dict[int, str] = field(
        default_factory=lambda: {
            1: "ethereum",
            42161: "arbitrum-one",
            10: "optimistic-ethereum",
            137: "polygon-pos",
            8453: "base",
        }
    )


@dataclass(frozen=True)
class RoutingConfig:
    lifi_url: str = "https://li.quest/v1"
    integrator: str = "rotation-advisor"
    api_key: str = ""
    slippage: float = 0.005
    timeout: int = 30
    status_poll_seconds: float = 10.0
    status_timeout_seconds: float = 1800.0


@dataclass(frozen=True)
class PythConfig:
    hermes_url: str = "https://hermes.pyth.network/v2/updates/price/latest"
    feeds: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class PriceOracleConfig:
    fallback_prices: dict[str, float] = field(
        default_factory=lambda: {
            "ETH": 2500.0,
            "WETH": 2500.0,
            "MATIC": 0.8,
            "POL": 0.8,
            "USDC": 1.0,
            "USDC.e": 1.0,
            "USDbC": 1.0,
            "USDT": 1.0,
            "DAI": 1.0,
        }
    )
    pyth: PythConfig = field(default_factory=PythConfig)


@dataclass(frozen=True)
class StorageConfig:
    path: str = "data/advisor_state.json"


@dataclass(frozen=True)
class TelegramConfig:
    enabled: bool = False
    alert_bot_token: str = ""
    log_bot_token: str = ""
    chat_id: str = ""
    # Forward info-level status too, not only warnings and above.
    forward_info: bool = False


@dataclass(frozen=True)
class EmailConfig:
    enabled: bool = False
    alert_email: str = ""
    smtp_server: str = "smtp.gmail.com"
    smtp_port: int = 587
    sender_email: str = ""
    sender_password: str = ""


@dataclass(frozen=True)
class NotificationsConfig:
    telegram: TelegramConfig = field(default_factory=TelegramConfig)
    email: EmailConfig = field(default_factory=EmailConfig)


@dataclass(frozen=True)
class AppConfig:
    chains: dict[int, ChainConfig] = field(default_factory=dict)
    wallet: WalletConfig = field(default_factory=WalletConfig)
    monitors: dict[str, MonitorConfig] = field(
        default_factory=lambda: dict(_MONITOR_DEFAULTS)
    )
    yield_feed: YieldFeedConfig = field(default_factory=YieldFeedConfig)
    arbitrage_feed: ArbitrageFeedConfig = field(default_factory=ArbitrageFeedConfig)
    routing: RoutingConfig = field(default_factory=RoutingConfig)
    price_oracle: PriceOracleConfig = field(default_factory=PriceOracleConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    notifications: NotificationsConfig = field(default_factory=NotificationsConfig)

    def chains_for(self, testnet: bool) -> list[ChainConfig]:
        """Chain universe selected by the testnet flag."""
        return [c for c in self.chains.values() if c.testnet == testnet]

    def monitor(self, strategy: str) -> MonitorConfig:
        try:
            return self.monitors[strategy]
        except KeyError:
            raise ConfigError(f"Unknown strategy '{strategy}'") from None


# ---------------------------------------------------------------------------
# Built-in chain universe
# ---------------------------------------------------------------------------

_DEFAULT_CHAINS: dict[str, dict[str, Any]] = {
    "ethereum": {
        "chain_id": 1,
        "name": "Ethereum",
        "rpc_endpoints": ["https://eth.llamarpc.com", "https://rpc.ankr.com/eth"],
        "explorer": "https://etherscan.io",
        "tokens": {
            "USDC": {"address": "0xA0b86991c6218b36c1d19D4a2e9Eb0cE3606eB48", "decimals": 6},
            "USDT": {"address": "0xdAC17F958D2ee523a2206206994597C13D831ec7", "decimals": 6},
            "DAI": {"address": "0x6B175474E89094C44Da98b954EedeAC495271d0F", "decimals": 18},
            "WETH": {"address": "0xC02aaA39b223FE8D0A0e5C4F27eAD9083C756Cc2", "decimals": 18},
        },
    },
    "arbitrum": {
        "chain_id": 42161,
        "name": "Arbitrum",
        "rpc_endpoints": ["https://arb1.arbitrum.io/rpc"],
        "explorer": "https://arbiscan.io",
        "tokens": {
            "USDC": {"address": "0xaf88d065e77c8cC2239327C5EDb3A432268e5831", "decimals": 6},
            "USDC.e": {"address": "0xFF970A61A04b1cA14834A43f5dE4533eBDDB5CC8", "decimals": 6},
            "USDT": {"address": "0xFd086bC7CD5C481DCC9C85ebE478A1C0b69FCbb9", "decimals": 6},
            "WETH": {"address": "0x82aF49447D8a07e3bd95BD0d56f35241523fBab1", "decimals": 18},
        },
    },
    "optimism": {
        "chain_id": 10,
        "name": "Optimism",
        "rpc_endpoints": ["https://mainnet.optimism.io"],
        "explorer": "https://optimistic.etherscan.io",
        "tokens": {
            "USDC": {"address": "0x0b2C639c533813f4Aa9D7837CAf62653d097Ff85", "decimals": 6},
            "USDC.e": {"address": "0x7F5c764cBc14f9669B88837ca1490cCa17c31607", "decimals": 6},
            "USDT": {"address": "0x94b008aA00579c1307B0EF2c499aD98a8ce58e58", "decimals": 6},
            "WETH": {"address": "0x4200000000000000000000000000000000000006", "decimals": 18},
        },
    },
    "polygon": {
        "chain_id": 137,
        "name": "Polygon",
        "native_symbol": "POL",
        "rpc_endpoints": ["https://polygon-rpc.com"],
        "explorer": "https://polygonscan.com",
        "tokens": {
            "USDC": {"address": "0x3c499c542cEF5E3811e1192ce70d8cC03d5c3359", "decimals": 6},
            "USDC.e": {"address": "0x2791Bca1f2de4661ED88A30C99A7a9449Aa84174", "decimals": 6},
            "USDT": {"address": "0xc2132D05D31c914a87C6611C10748AEb04B58e8F", "decimals": 6},
            "WETH": {"address": "0x7ceB23fD6bC0adD59E62ac25578270cFf1b9f619", "decimals": 18},
        },
    },
    "base": {
        "chain_id": 8453,
        "name": "Base",
        "rpc_endpoints": ["https://mainnet.base.org", "https://base.llamarpc.com"],
        "explorer": "https://basescan.org",
        "tokens": {
            "USDC": {"address": "0x833589fCD6eDb6E08f4c7C32D4f71b54bdA02913", "decimals": 6},
            "USDbC": {"address": "0xd9aAEc86B65D86f6A7B5B1b0c42FFA531710b6CA", "decimals": 6},
            "WETH": {"address": "0x4200000000000000000000000000000000000006", "decimals": 18},
        },
    },
    "sepolia": {
        "chain_id": 11155111,
        "name": "Sepolia",
        "testnet": True,
        "rpc_endpoints": ["https://rpc.sepolia.org"],
        "explorer": "https://sepolia.etherscan.io",
        "tokens": {
            "USDC": {"address": "0x1c7D4B196Cb0C7B01d743Fbc6116a902379C7238", "decimals": 6},
            "WETH": {"address": "0xfFf9976782d46CC05630D1f6eBAb18b2324d6B14", "decimals": 18},
        },
    },
    "arbitrum-sepolia": {
        "chain_id": 421614,
        "name": "Arbitrum Sepolia",
        "testnet": True,
        "rpc_endpoints": ["https://sepolia-rollup.arbitrum.io/rpc"],
        "explorer": "https://sepolia.arbiscan.io",
        "tokens": {
            "USDC": {"address": "0x75faf114eafb1BDbe2F0316DF893fd58CE46AA4d", "decimals": 6},
            "WETH": {"address": "0x980B62Da83eFf3D4576C647993b0c1D7faf17c73", "decimals": 18},
        },
    },
    "optimism-sepolia": {
        "chain_id": 11155420,
        "name": "Optimism Sepolia",
        "testnet": True,
        "rpc_endpoints": ["https://sepolia.optimism.io"],
        "explorer": "https://sepolia-optimism.etherscan.io",
        "tokens": {
            "USDC": {"address": "0x5fd84259d66Cd46123540766Be93DFE6D43130D7", "decimals": 6},
            "WETH": {"address": "0x4200000000000000000000000000000000000006", "decimals": 18},
        },
    },
    "base-sepolia": {
        "chain_id": 84532,
        "name": "Base Sepolia",
        "testnet": True,
        "rpc_endpoints": ["https://sepolia.base.org"],
        "explorer": "https://sepolia.basescan.org",
        "tokens": {
            "USDC": {"address": "0x036CbD53842c5426634e7929541eC2318f3dCF7e", "decimals": 6},
            "WETH": {"address": "0x4200000000000000000000000000000000000006", "decimals": 18},
        },
    },
}

# ---------------------------------------------------------------------------
# Env interpolation
# ---------------------------------------------------------------------------

_ENV_VAR_RE = re.compile(r"\$\{([^}]+)}")


def _interpolate_env(value: Any) -> Any:
    """Recursively replace ${VAR} references with environment variable values."""
    if isinstance(value, str):
        return _ENV_VAR_RE.sub(lambda m: os.environ.get(m.group(1), ""), value)
    if isinstance(value, dict):
        return {k: _interpolate_env(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_interpolate_env(item) for item in value]
    return value


def _to_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "on")
    return bool(value)


# ---------------------------------------------------------------------------
# YAML → dataclass builders
# ---------------------------------------------------------------------------


def _build_tokens(raw: dict[str, Any]) -> tuple[TokenConfig, ...]:
    return tuple(
        TokenConfig(
            symbol=symbol,
            address=cfg.get("address", ""),
            decimals=int(cfg.get("decimals", 18)),
        )
        for symbol, cfg in raw.items()
    )


def _build_chains(raw: dict[str, Any]) -> dict[int, ChainConfig]:
    chains: dict[int, ChainConfig] = {}
    for key, cfg in raw.items():
        if "chain_id" not in cfg:
            raise ConfigError(f"Chain '{key}' has no chain_id")
        chain_id = int(cfg["chain_id"])
        chains[chain_id] = ChainConfig(
            chain_id=chain_id,
            name=cfg.get("name", key),
            rpc_endpoints=tuple(cfg.get("rpc_endpoints", [])),
            rpc_timeout=int(cfg.get("rpc_timeout", 30)),
            testnet=_to_bool(cfg.get("testnet", False)),
            native_symbol=cfg.get("native_symbol", "ETH"),
            explorer=cfg.get("explorer", ""),
            tokens=_build_tokens(cfg.get("tokens", {})),
        )
    return chains


def _build_monitors(raw: dict[str, Any]) -> dict[str, MonitorConfig]:
    monitors = dict(_MONITOR_DEFAULTS)
    for strategy, overrides in raw.items():
        if strategy not in monitors:
            raise ConfigError(f"Unknown strategy '{strategy}' in monitors")
        monitors[strategy] = monitors[strategy].merged(**(overrides or {}))
    return monitors


def _build_yield_feed(raw: dict[str, Any]) -> YieldFeedConfig:
    default = YieldFeedConfig()
    return YieldFeedConfig(
        url=raw.get("url", default.url),
        tokens=tuple(raw.get("tokens", default.tokens)),
        min_apy=float(raw.get("min_apy", default.min_apy)),
        max_apy=float(raw.get("max_apy", default.max_apy)),
        min_tvl=float(raw.get("min_tvl", default.min_tvl)),
        limit=int(raw.get("limit", default.limit)),
        timeout=int(raw.get("timeout", default.timeout)),
    )


def _build_arbitrage_feed(raw: dict[str, Any]) -> ArbitrageFeedConfig:
    default = ArbitrageFeedConfig()
    platforms = raw.get("platforms")
    return ArbitrageFeedConfig(
        coingecko_url=raw.get("coingecko_url", default.coingecko_url),
        api_key=raw.get("api_key", ""),
        fee_percent=float(raw.get("fee_percent", default.fee_percent)),
        timeout=int(raw.get("timeout", default.timeout)),
        platforms=(
            {int(k): v for k, v in platforms.items()}
            if platforms
            else default.platforms
        ),
    )


def _build_routing(raw: dict[str, Any]) -> RoutingConfig:
    default = RoutingConfig()
    return RoutingConfig(
        lifi_url=raw.get("lifi_url", default.lifi_url),
        integrator=raw.get("integrator", default.integrator),
        api_key=raw.get("api_key", ""),
        slippage=float(raw.get("slippage", default.slippage)),
        timeout=int(raw.get("timeout", default.timeout)),
        status_poll_seconds=float(
            raw.get("status_poll_seconds", default.status_poll_seconds)
        ),
        status_timeout_seconds=float(
            raw.get("status_timeout_seconds", default.status_timeout_seconds)
        ),
    )


def _build_price_oracle(raw: dict[str, Any]) -> PriceOracleConfig:
    default = PriceOracleConfig()
    pyth_raw = raw.get("pyth", {})
    fallback = dict(default.fallback_prices)
    fallback.update(
        {k: float(v) for k, v in raw.get("fallback_prices", {}).items()}
    )
    return PriceOracleConfig(
        fallback_prices=fallback,
        pyth=PythConfig(
            hermes_url=pyth_raw.get("hermes_url", PythConfig.hermes_url),
            feeds=dict(pyth_raw.get("feeds", {})),
        ),
    )


def _build_notifications(raw: dict[str, Any]) -> NotificationsConfig:
    tg = raw.get("telegram", {})
    em = raw.get("email", {})
    return NotificationsConfig(
        telegram=TelegramConfig(
            enabled=_to_bool(tg.get("enabled", False)),
            alert_bot_token=tg.get("alert_bot_token", ""),
            log_bot_token=tg.get("log_bot_token", ""),
            chat_id=str(tg.get("chat_id", "")),
            forward_info=_to_bool(tg.get("forward_info", False)),
        ),
        email=EmailConfig(
            enabled=_to_bool(em.get("enabled", False)),
            alert_email=em.get("alert_email", ""),
            smtp_server=em.get("smtp_server", EmailConfig.smtp_server),
            smtp_port=int(em.get("smtp_port", EmailConfig.smtp_port)),
            sender_email=em.get("sender_email", ""),
            sender_password=em.get("sender_password", ""),
        ),
    )


def build_config(raw: dict[str, Any]) -> AppConfig:
    """Build and validate an AppConfig from an already-parsed mapping."""
    wallet = raw.get("wallet", {})
    cfg = AppConfig(
        chains=_build_chains(raw.get("chains") or _DEFAULT_CHAINS),
        wallet=WalletConfig(
            label=wallet.get("label", ""), address=wallet.get("address", "")
        ),
        monitors=_build_monitors(raw.get("monitors", {})),
        yield_feed=_build_yield_feed(raw.get("yield_feed", {})),
        arbitrage_feed=_build_arbitrage_feed(raw.get("arbitrage_feed", {})),
        routing=_build_routing(raw.get("routing", {})),
        price_oracle=_build_price_oracle(raw.get("price_oracle", {})),
        storage=StorageConfig(
            path=raw.get("storage", {}).get("path", StorageConfig.path)
        ),
        notifications=_build_notifications(raw.get("notifications", {})),
    )
    _validate(cfg)
    return cfg


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def load_config(config_path: str | Path | None = None) -> AppConfig:
    """Load and validate application configuration from YAML + .env.

    Args:
        config_path: Path to config.yaml. Defaults to ``config.yaml`` in the
            project root (one level up from this package).
    """
    load_dotenv()

    if config_path is None:
        config_path = Path(__file__).resolve().parent.parent / "config.yaml"
    config_path = Path(config_path)

    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(config_path) as f:
        raw = yaml.safe_load(f) or {}

    cfg = build_config(_interpolate_env(raw))
    logger.info("Configuration loaded from %s", config_path)
    return cfg


def validate_monitor_config(
    monitor: MonitorConfig, chains: dict[int, ChainConfig]
) -> None:
    """Raise ConfigError when a monitor policy cannot be applied."""
    if monitor.check_interval_ms < MIN_CHECK_INTERVAL_MS:
        raise ConfigError(
            f"check_interval_ms must be at least {MIN_CHECK_INTERVAL_MS}, "
            f"got {monitor.check_interval_ms}"
        )
    if monitor.cooldown_ms < 0:
        raise ConfigError("cooldown_ms must not be negative")
    for name in (
        "min_apy_improvement",
        "min_profit_percent",
        "min_net_profit",
        "max_gas_cost",
        "min_position_value",
    ):
        if getattr(monitor, name) < 0:
            raise ConfigError(f"{name} must not be negative")
    if int(monitor.max_trade_amount) <= 0:
        raise ConfigError("max_trade_amount must be a positive integer")

    universe = {
        c.chain_id: c for c in chains.values() if c.testnet == monitor.is_testnet
    }
    if not universe:
        network = "testnet" if monitor.is_testnet else "mainnet"
        raise ConfigError(f"No {network} chains configured")
    if monitor.source_chain_id is not None and monitor.source_chain_id not in universe:
        raise ConfigError(f"Unsupported chain id: {monitor.source_chain_id}")
    if not any(c.token(monitor.input_token) for c in universe.values()):
        raise ConfigError(f"Token '{monitor.input_token}' is not tracked on any chain")


def _validate(cfg: AppConfig) -> None:
    """Raise on invalid configuration."""
    if not cfg.chains:
        raise ConfigError("At least one chain must be configured")

    for chain in cfg.chains.values():
        if not chain.rpc_endpoints:
            raise ConfigError(f"Chain '{chain.name}' has no rpc_endpoints")

    for strategy, monitor in cfg.monitors.items():
        try:
            validate_monitor_config(monitor, cfg.chains)
        except ConfigError as e:
            raise ConfigError(f"monitors.{strategy}: {e}") from None
