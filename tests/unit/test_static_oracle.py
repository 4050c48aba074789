"""Unit tests for static and layered price oracles."""
from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest

from rotation_advisor.oracles import LayeredPriceOracle, StaticPriceOracle


class TestStaticPriceOracle:
    @pytest.mark.asyncio
    async def test_configured_and_stable_prices(self) -> None:
        oracle = StaticPriceOracle({"ETH": 3000.0})
        prices = await oracle.fetch_prices(["ETH", "USDC", "USDbC", "ARB"])
        assert prices == {"ETH": 3000.0, "USDC": 1.0, "USDbC": 1.0}

    @pytest.mark.asyncio
    async def test_all_prices(self) -> None:
        oracle = StaticPriceOracle({"ETH": 3000.0})
        assert await oracle.fetch_prices() == {"ETH": 3000.0}


class TestLayeredPriceOracle:
    @pytest.mark.asyncio
    async def test_later_layers_override(self) -> None:
        live = MagicMock()
        live.fetch_prices = AsyncMock(return_value={"ETH": 3512.5, "USDC": 0.0})
        oracle = LayeredPriceOracle([StaticPriceOracle({"ETH": 3000.0}), live])

        prices = await oracle.fetch_prices(["ETH", "USDC"])

        assert prices == {"ETH": 3512.5, "USDC": 1.0}

    @pytest.mark.asyncio
    async def test_failing_layer_skipped(self) -> None:
        live = MagicMock()
        live.fetch_prices = AsyncMock(side_effect=ConnectionError("hermes down"))
        oracle = LayeredPriceOracle([StaticPriceOracle({"ETH": 3000.0}), live])

        assert await oracle.fetch_prices(["ETH"]) == {"ETH": 3000.0}
