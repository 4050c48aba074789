"""Shared test fixtures and sample data."""
from __future__ import annotations

import textwrap
from pathlib import Path
from typing import Callable
from unittest.mock import AsyncMock, MagicMock

import pytest

from rotation_advisor.config import (
    AppConfig,
    ChainConfig,
    MonitorConfig,
    NotificationsConfig,
    PriceOracleConfig,
    PythConfig,
    TelegramConfig,
    TokenConfig,
    WalletConfig,
)
from rotation_advisor.models import (
    Position,
    RiskTier,
    RouteQuote,
    RouteStep,
    YieldOpportunity,
)
from rotation_advisor.storage import MemoryStore

WALLET = "0x" + "ab" * 20

ETH_USDC = "0xA0b86991c6218b36c1d19D4a2e9Eb0cE3606eB48"
ARB_USDC = "0xaf88d065e77c8cC2239327C5EDb3A432268e5831"
BASE_USDC = "0x833589fCD6eDb6E08f4c7C32D4f71b54bdA02913"
SEPOLIA_USDC = "0x1c7D4B196Cb0C7B01d743Fbc6116a902379C7238"


# ---------------------------------------------------------------------------
# Config fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def ethereum_chain() -> ChainConfig:
    return ChainConfig(
        chain_id=1,
        name="Ethereum",
        rpc_endpoints=("https://eth1.example.com", "https://eth2.example.com"),
        rpc_timeout=5,
        tokens=(TokenConfig("USDC", ETH_USDC, 6),),
    )


@pytest.fixture()
def arbitrum_chain() -> ChainConfig:
    return ChainConfig(
        chain_id=42161,
        name="Arbitrum",
        rpc_endpoints=("https://arb1.example.com", "https://arb2.example.com"),
        rpc_timeout=5,
        tokens=(TokenConfig("USDC", ARB_USDC, 6),),
    )


@pytest.fixture()
def base_chain() -> ChainConfig:
    return ChainConfig(
        chain_id=8453,
        name="Base",
        rpc_endpoints=("https://base.example.com",),
        rpc_timeout=5,
        tokens=(TokenConfig("USDC", BASE_USDC, 6),),
    )


@pytest.fixture()
def sepolia_chain() -> ChainConfig:
    return ChainConfig(
        chain_id=11155111,
        name="Sepolia",
        rpc_endpoints=("https://sepolia.example.com",),
        testnet=True,
        tokens=(TokenConfig("USDC", SEPOLIA_USDC, 6),),
    )


@pytest.fixture()
def chains(
    ethereum_chain: ChainConfig,
    arbitrum_chain: ChainConfig,
    base_chain: ChainConfig,
    sepolia_chain: ChainConfig,
) -> dict[int, ChainConfig]:
    return {
        c.chain_id: c
        for c in (ethereum_chain, arbitrum_chain, base_chain, sepolia_chain)
    }


@pytest.fixture()
def sample_pyth_config() -> PythConfig:
    return PythConfig(
        hermes_url="https://hermes.pyth.network/v2/updates/price/latest",
        feeds={"ETH": "aaa111", "BTC": "bbb222", "USDC": "ccc333"},
    )


@pytest.fixture()
def yield_monitor_config() -> MonitorConfig:
    return MonitorConfig(
        min_apy_improvement=2.0,
        max_gas_cost=50.0,
        min_position_value=100.0,
        check_interval_ms=60_000,
        cooldown_ms=300_000,
    )


@pytest.fixture()
def sample_app_config(
    chains: dict[int, ChainConfig], sample_pyth_config: PythConfig
) -> AppConfig:
    return AppConfig(
        chains=chains,
        wallet=WalletConfig(label="test-wallet", address=WALLET),
        price_oracle=PriceOracleConfig(pyth=sample_pyth_config),
        notifications=NotificationsConfig(
            telegram=TelegramConfig(
                enabled=True,
                alert_bot_token="fake-alert-token",
                log_bot_token="fake-log-token",
                chat_id="12345",
            ),
        ),
    )


# ---------------------------------------------------------------------------
# Model fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def make_position() -> Callable[..., Position]:
    def _make(
        chain_id: int = 42161,
        chain_name: str = "Arbitrum",
        token: str = "USDC",
        amount: float = 1000.0,
        value_usd: float | None = None,
        decimals: int = 6,
        current_apy: float = 0.0,
        token_address: str = ARB_USDC,
    ) -> Position:
        return Position(
            chain_id=chain_id,
            chain_name=chain_name,
            token=token,
            token_address=token_address,
            balance=int(round(amount * 10**decimals)),
            decimals=decimals,
            amount=amount,
            value_usd=amount if value_usd is None else value_usd,
            current_apy=current_apy,
        )

    return _make


@pytest.fixture()
def make_quote() -> Callable[..., RouteQuote]:
    def _make(
        from_chain: int = 42161,
        to_chain: int = 8453,
        gas: float = 5.0,
        fee: float = 0.0,
        to_amount: int = 999_000_000,
        steps: int = 1,
        duration: float = 60.0,
        tool: str = "across",
        from_amount: int = 1_000_000_000,
    ) -> RouteQuote:
        return RouteQuote(
            id=f"quote-{from_chain}-{to_chain}",
            from_chain_id=from_chain,
            to_chain_id=to_chain,
            from_token=ARB_USDC,
            to_token=BASE_USDC,
            from_amount=from_amount,
            to_amount=to_amount,
            to_amount_min=to_amount,
            gas_cost_usd=gas,
            fee_cost_usd=fee,
            execution_duration=duration,
            tool=tool,
            steps=tuple(
                RouteStep("cross", tool, from_chain, to_chain, "USDC", "USDC")
                for _ in range(steps)
            ),
            transaction_request={"to": "0x" + "11" * 20, "data": "0xdeadbeef"},
        )

    return _make


@pytest.fixture()
def base_opportunity() -> YieldOpportunity:
    return YieldOpportunity(
        chain_id=8453,
        chain_name="Base",
        protocol="aave-v3",
        token="USDC",
        apy=8.0,
        tvl=50_000_000.0,
        risk=RiskTier.LOW,
        pool_id="pool-base-usdc",
    )


# ---------------------------------------------------------------------------
# Collaborator fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def memory_store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture()
def route_provider(make_quote: Callable[..., RouteQuote]) -> MagicMock:
    provider = MagicMock()
    provider.get_quote = AsyncMock(return_value=make_quote())
    provider.execute = AsyncMock(return_value="0xtxhash")
    provider.wait_for_completion = AsyncMock()
    return provider


@pytest.fixture()
def signer() -> MagicMock:
    mock = MagicMock()
    mock.address = WALLET
    mock.chain_id = AsyncMock(return_value=42161)
    mock.switch_chain = AsyncMock()
    mock.send_transaction = AsyncMock(return_value="0xtxhash")
    return mock


# ---------------------------------------------------------------------------
# Config YAML fixture
# ---------------------------------------------------------------------------

SAMPLE_YAML = textwrap.dedent("""\
    wallet:
      label: test-wallet
      address: "0xTEST"
    chains:
      arbitrum:
        chain_id: 42161
        name: Arbitrum
        rpc_endpoints: ["https://rpc.example.com", "https://rpc2.example.com"]
        rpc_timeout: 10
        tokens:
          USDC: {address: "0xaf88d065e77c8cC2239327C5EDb3A432268e5831", decimals: 6}
      base:
        chain_id: 8453
        name: Base
        rpc_endpoints: ["https://base.example.com"]
        tokens:
          USDC: {address: "0x833589fCD6eDb6E08f4c7C32D4f71b54bdA02913", decimals: 6}
    monitors:
      yield:
        min_apy_improvement: 3
        cooldown_ms: 600000
      arbitrage:
        min_profit_percent: 0.5
    price_oracle:
      fallback_prices: {ETH: 3000}
      pyth:
        hermes_url: "https://hermes.example.com"
        feeds: {ETH: "aaa"}
    storage:
      path: state/test.json
    notifications:
      telegram:
        enabled: true
        alert_bot_token: "tok1"
        log_bot_token: "tok2"
        chat_id: "999"
      email:
        enabled: true
        alert_email: "ops@example.com"
        smtp_port: 2525
""")


@pytest.fixture()
def sample_yaml_path(tmp_path: Path) -> Path:
    cfg_file = tmp_path / "config.yaml"
    cfg_file.write_text(SAMPLE_YAML)
    return cfg_file


@pytest.fixture()
def sample_prices() -> dict[str, float]:
    return {"ETH": 3500.0, "WETH": 3500.0, "USDC": 1.0, "USDT": 1.0}
