"""Unit tests for DefiLlama pool normalization."""
from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from rotation_advisor.config import ChainConfig, YieldFeedConfig
from rotation_advisor.feeds.defillama import YieldFeed, risk_tier
from rotation_advisor.models import RiskTier


def _pool(chain: str, symbol: str, apy, tvl=1_000_000.0, project="aave-v3", pool=None):
    return {
        "chain": chain,
        "project": project,
        "symbol": symbol,
        "apy": apy,
        "tvlUsd": tvl,
        "pool": pool or f"{chain}-{symbol}-{apy}",
    }


@pytest.fixture()
def feed(chains: dict[int, ChainConfig]) -> YieldFeed:
    return YieldFeed(YieldFeedConfig(), chains.values())


class TestRiskTier:
    @pytest.mark.parametrize(
        "apy, expected",
        [
            (4.0, RiskTier.LOW),
            (10.0, RiskTier.LOW),
            (10.5, RiskTier.MEDIUM),
            (30.0, RiskTier.MEDIUM),
            (31.0, RiskTier.HIGH),
        ],
    )
    def test_thresholds(self, apy: float, expected: RiskTier) -> None:
        assert risk_tier(apy) is expected


class TestNormalize:
    def test_maps_known_chain(self, feed: YieldFeed) -> None:
        [opp] = feed.normalize([_pool("Base", "USDC", 6.5, pool="p1")])
        assert opp.chain_id == 8453
        assert opp.chain_name == "Base"
        assert opp.protocol == "aave-v3"
        assert opp.apy == 6.5
        assert opp.risk is RiskTier.LOW
        assert opp.pool_id == "p1"

    def test_drops_untracked_chain(self, feed: YieldFeed) -> None:
        assert feed.normalize([_pool("Solana", "USDC", 6.0)]) == []

    def test_drops_testnet_chain(self, feed: YieldFeed) -> None:
        assert feed.normalize([_pool("Sepolia", "USDC", 6.0)]) == []

    def test_drops_implausible_apy(self, feed: YieldFeed) -> None:
        pools = [
            _pool("Base", "USDC", 0.1),
            _pool("Base", "USDC", 250.0),
            _pool("Base", "USDC", None),
        ]
        assert feed.normalize(pools) == []

    def test_drops_thin_pools(self, feed: YieldFeed) -> None:
        assert feed.normalize([_pool("Base", "USDC", 6.0, tvl=10_000.0)]) == []

    def test_drops_untracked_tokens(self, feed: YieldFeed) -> None:
        assert feed.normalize([_pool("Base", "PEPE", 6.0)]) == []

    def test_token_filter(self, feed: YieldFeed) -> None:
        pools = [_pool("Base", "USDC", 6.0), _pool("Base", "WETH", 3.0)]
        result = feed.normalize(pools, token_filter="weth")
        assert [o.token for o in result] == ["WETH"]

    def test_sorted_by_apy_and_limited(self, chains: dict[int, ChainConfig]) -> None:
        feed = YieldFeed(YieldFeedConfig(limit=2), chains.values())
        pools = [
            _pool("Base", "USDC", 4.0),
            _pool("Arbitrum", "USDC", 9.0),
            _pool("Ethereum", "USDT", 6.0),
        ]
        result = feed.normalize(pools)
        assert [o.apy for o in result] == [9.0, 6.0]


class TestListOpportunities:
    def _session(self, status: int, data: dict | None = None) -> AsyncMock:
        mock_response = AsyncMock()
        mock_response.status = status
        mock_response.json = AsyncMock(return_value=data or {})
        mock_response.__aenter__ = AsyncMock(return_value=mock_response)
        mock_response.__aexit__ = AsyncMock(return_value=None)

        mock_session = AsyncMock()
        mock_session.get = MagicMock(return_value=mock_response)
        mock_session.__aenter__ = AsyncMock(return_value=mock_session)
        mock_session.__aexit__ = AsyncMock(return_value=None)
        return mock_session

    @pytest.mark.asyncio
    async def test_fetches_and_normalizes(self, feed: YieldFeed) -> None:
        data = {"data": [_pool("Base", "USDC", 6.0), _pool("Solana", "USDC", 9.0)]}

        with patch(
            "rotation_advisor.feeds.defillama.aiohttp.ClientSession",
            return_value=self._session(200, data),
        ):
            with patch("rotation_advisor.feeds.defillama.aiohttp.TCPConnector"):
                result = await feed.list_opportunities()

        assert [o.chain_name for o in result] == ["Base"]

    @pytest.mark.asyncio
    async def test_http_error_yields_empty(self, feed: YieldFeed) -> None:
        with patch(
            "rotation_advisor.feeds.defillama.aiohttp.ClientSession",
            return_value=self._session(503),
        ):
            with patch("rotation_advisor.feeds.defillama.aiohttp.TCPConnector"):
                assert await feed.list_opportunities() == []

    @pytest.mark.asyncio
    async def test_network_error_yields_empty(self, feed: YieldFeed) -> None:
        with patch(
            "rotation_advisor.feeds.defillama.aiohttp.ClientSession",
            side_effect=ConnectionError("offline"),
        ):
            with patch("rotation_advisor.feeds.defillama.aiohttp.TCPConnector"):
                assert await feed.list_opportunities() == []
