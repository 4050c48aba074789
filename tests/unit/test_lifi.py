"""Unit tests for the LI.FI route client."""
from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from rotation_advisor.config import NATIVE_TOKEN_ADDRESS, RoutingConfig
from rotation_advisor.errors import RouteError
from rotation_advisor.models import RouteStatus
from rotation_advisor.routing.lifi import (
    APPROVE_SELECTOR,
    LifiClient,
    parse_quote,
    parse_status,
)

from conftest import ARB_USDC, BASE_USDC, WALLET

SPENDER = "0x" + "22" * 20

QUOTE_RESPONSE = {
    "id": "q-1",
    "tool": "across",
    "action": {
        "fromChainId": 42161,
        "toChainId": 8453,
        "fromToken": {"address": ARB_USDC, "symbol": "USDC"},
        "toToken": {"address": BASE_USDC, "symbol": "USDC"},
        "fromAmount": "1000000000",
    },
    "estimate": {
        "fromAmount": "1000000000",
        "toAmount": "998500000",
        "toAmountMin": "993500000",
        "approvalAddress": SPENDER,
        "executionDuration": 64,
        "gasCosts": [{"amountUSD": "0.42"}, {"amountUSD": "0.08"}],
        "feeCosts": [
            {"amountUSD": "1.00", "included": True},
            {"amountUSD": "0.25", "included": False},
        ],
    },
    "includedSteps": [
        {
            "type": "cross",
            "tool": "across",
            "action": {
                "fromChainId": 42161,
                "toChainId": 8453,
                "fromToken": {"symbol": "USDC"},
                "toToken": {"symbol": "USDC"},
            },
        }
    ],
    "transactionRequest": {"to": "0x" + "33" * 20, "data": "0xabcdef", "value": "0x0"},
}


def _mock_session(*responses: tuple[int, dict]) -> AsyncMock:
    mocked = []
    for status, data in responses:
        mock_response = AsyncMock()
        mock_response.status = status
        mock_response.json = AsyncMock(return_value=data)
        mock_response.__aenter__ = AsyncMock(return_value=mock_response)
        mock_response.__aexit__ = AsyncMock(return_value=None)
        mocked.append(mock_response)

    mock_session = AsyncMock()
    mock_session.get = MagicMock(side_effect=mocked)
    mock_session.__aenter__ = AsyncMock(return_value=mock_session)
    mock_session.__aexit__ = AsyncMock(return_value=None)
    return mock_session


@pytest.fixture()
def client() -> LifiClient:
    return LifiClient(
        RoutingConfig(
            lifi_url="https://li.example.com/v1/",
            api_key="lifi-key",
            status_poll_seconds=0,
            status_timeout_seconds=60,
        )
    )


class TestParsing:
    def test_parse_quote(self) -> None:
        quote = parse_quote(QUOTE_RESPONSE)
        assert quote.id == "q-1"
        assert quote.from_chain_id == 42161
        assert quote.to_token == BASE_USDC
        assert quote.from_amount == 1_000_000_000
        assert quote.to_amount == 998_500_000
        assert quote.to_amount_min == 993_500_000
        assert quote.gas_cost_usd == pytest.approx(0.5)
        # Included fees are already netted out of toAmount.
        assert quote.fee_cost_usd == pytest.approx(0.25)
        assert quote.execution_duration == 64.0
        assert quote.approval_address == SPENDER
        assert quote.step_count == 1
        assert quote.steps[0].tool == "across"

    def test_parse_status(self) -> None:
        status = parse_status(
            {
                "status": "DONE",
                "substatus": "COMPLETED",
                "sending": {"txHash": "0xsend"},
                "receiving": {"txHash": "0xrecv", "amount": "998000000"},
            }
        )
        assert status.is_done
        assert status.tx_hash == "0xsend"
        assert status.receiving_tx_hash == "0xrecv"
        assert status.received_amount == 998_000_000

    def test_parse_pending_status(self) -> None:
        status = parse_status({"status": "PENDING"})
        assert not status.is_done
        assert status.received_amount is None


class TestGetQuote:
    @pytest.mark.asyncio
    async def test_success(self, client: LifiClient) -> None:
        mock_session = _mock_session((200, QUOTE_RESPONSE))

        with patch(
            "rotation_advisor.routing.lifi.aiohttp.ClientSession", return_value=mock_session
        ):
            with patch("rotation_advisor.routing.lifi.aiohttp.TCPConnector"):
                quote = await client.get_quote(
                    42161, 8453, ARB_USDC, BASE_USDC, 1_000_000_000, WALLET
                )

        assert quote.tool == "across"
        url = mock_session.get.call_args.args[0]
        kwargs = mock_session.get.call_args.kwargs
        assert url == "https://li.example.com/v1/quote"
        assert kwargs["params"]["fromAmount"] == "1000000000"
        assert kwargs["params"]["fromAddress"] == WALLET
        assert kwargs["headers"]["x-lifi-api-key"] == "lifi-key"

    @pytest.mark.asyncio
    async def test_no_route_raises(self, client: LifiClient) -> None:
        mock_session = _mock_session((404, {"message": "No available quotes"}))

        with patch(
            "rotation_advisor.routing.lifi.aiohttp.ClientSession", return_value=mock_session
        ):
            with patch("rotation_advisor.routing.lifi.aiohttp.TCPConnector"):
                with pytest.raises(RouteError, match="No available quotes"):
                    await client.get_quote(42161, 8453, ARB_USDC, BASE_USDC, 1, WALLET)

    @pytest.mark.asyncio
    async def test_network_error_raises_route_error(self, client: LifiClient) -> None:
        with patch(
            "rotation_advisor.routing.lifi.aiohttp.ClientSession",
            side_effect=ConnectionError("offline"),
        ):
            with patch("rotation_advisor.routing.lifi.aiohttp.TCPConnector"):
                with pytest.raises(RouteError, match="offline"):
                    await client.get_quote(42161, 8453, ARB_USDC, BASE_USDC, 1, WALLET)


class TestExecute:
    @pytest.mark.asyncio
    async def test_approves_erc20_then_sends(
        self, client: LifiClient, signer: MagicMock
    ) -> None:
        signer.send_transaction = AsyncMock(side_effect=["0xapprove", "0xbridge"])
        route = parse_quote(QUOTE_RESPONSE)

        tx_hash = await client.execute(route, signer)

        assert tx_hash == "0xbridge"
        approve_tx = signer.send_transaction.await_args_list[0].args[0]
        assert approve_tx["to"] == ARB_USDC
        assert approve_tx["data"].startswith(APPROVE_SELECTOR + "0" * 24 + "22" * 20)
        assert int(approve_tx["data"][-64:], 16) == 1_000_000_000
        bridge_tx = signer.send_transaction.await_args_list[1].args[0]
        assert bridge_tx["from"] == WALLET
        assert bridge_tx["data"] == "0xabcdef"

    @pytest.mark.asyncio
    async def test_native_token_needs_no_approval(
        self, client: LifiClient, signer: MagicMock
    ) -> None:
        data = {
            **QUOTE_RESPONSE,
            "action": {
                **QUOTE_RESPONSE["action"],
                "fromToken": {"address": NATIVE_TOKEN_ADDRESS, "symbol": "ETH"},
            },
        }
        await client.execute(parse_quote(data), signer)
        signer.send_transaction.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_missing_transaction_request(
        self, client: LifiClient, signer: MagicMock
    ) -> None:
        route = parse_quote({**QUOTE_RESPONSE, "transactionRequest": None})
        with pytest.raises(RouteError, match="no transaction request"):
            await client.execute(route, signer)


class TestWaitForCompletion:
    @pytest.mark.asyncio
    async def test_polls_until_terminal(self, client: LifiClient) -> None:
        mock_session = _mock_session(
            (404, {}),
            (200, {"status": "PENDING"}),
            (200, {"status": "DONE", "receiving": {"amount": "998000000"}}),
        )
        route = parse_quote(QUOTE_RESPONSE)

        with patch(
            "rotation_advisor.routing.lifi.aiohttp.ClientSession", return_value=mock_session
        ):
            with patch("rotation_advisor.routing.lifi.aiohttp.TCPConnector"):
                status = await client.wait_for_completion(route, "0xbridge")

        assert status == RouteStatus(status="DONE", received_amount=998_000_000)
        assert mock_session.get.call_count == 3
        params = mock_session.get.call_args.kwargs["params"]
        assert params == {
            "txHash": "0xbridge",
            "fromChain": 42161,
            "toChain": 8453,
            "bridge": "across",
        }

    @pytest.mark.asyncio
    async def test_failed_route_returned(self, client: LifiClient) -> None:
        mock_session = _mock_session(
            (200, {"status": "FAILED", "substatus": "REFUNDED"})
        )

        with patch(
            "rotation_advisor.routing.lifi.aiohttp.ClientSession", return_value=mock_session
        ):
            with patch("rotation_advisor.routing.lifi.aiohttp.TCPConnector"):
                status = await client.wait_for_completion(
                    parse_quote(QUOTE_RESPONSE), "0xbridge"
                )

        assert status.status == "FAILED"
        assert status.substatus == "REFUNDED"

    @pytest.mark.asyncio
    async def test_times_out(self) -> None:
        client = LifiClient(
            RoutingConfig(status_poll_seconds=0, status_timeout_seconds=0)
        )
        mock_session = _mock_session((200, {"status": "PENDING"}))

        with patch(
            "rotation_advisor.routing.lifi.aiohttp.ClientSession", return_value=mock_session
        ):
            with patch("rotation_advisor.routing.lifi.aiohttp.TCPConnector"):
                with pytest.raises(RouteError, match="not settled"):
                    await client.wait_for_completion(
                        parse_quote(QUOTE_RESPONSE), "0xbridge"
                    )
