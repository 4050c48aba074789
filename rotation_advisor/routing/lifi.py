"""LI.FI route aggregator client — quotes, submission and status tracking."""
from __future__ import annotations

import asyncio
import logging
import ssl
import time
from typing import Any

import aiohttp
import certifi

from ..chains.evm.client import encode_address
from ..config import NATIVE_TOKEN_ADDRESS, RoutingConfig
from ..errors import RouteError
from ..interfaces.signer import Signer
from ..models import RouteQuote, RouteStatus, RouteStep

logger = logging.getLogger(__name__)

APPROVE_SELECTOR = "0x095ea7b3"
TERMINAL_STATUSES = ("DONE", "FAILED", "INVALID")


def _usd_sum(costs: list[dict[str, Any]] | None, skip_included: bool = False) -> float:
    total = 0.0
    for cost in costs or []:
        if skip_included and cost.get("included"):
            continue
        total += float(cost.get("amountUSD") or 0)
    return total


def parse_quote(data: dict[str, Any]) -> RouteQuote:
    """Normalize a /quote response body."""
    action = data.get("action", {})
    estimate = data.get("estimate", {})

    steps = tuple(
        RouteStep(
            type=step.get("type", ""),
            tool=step.get("tool", ""),
            from_chain_id=int(step.get("action", {}).get("fromChainId", 0)),
            to_chain_id=int(step.get("action", {}).get("toChainId", 0)),
            from_token=step.get("action", {}).get("fromToken", {}).get("symbol", ""),
            to_token=step.get("action", {}).get("toToken", {}).get("symbol", ""),
        )
        for step in data.get("includedSteps", [])
    )

    return RouteQuote(
        id=str(data.get("id", "")),
        from_chain_id=int(action.get("fromChainId", 0)),
        to_chain_id=int(action.get("toChainId", 0)),
        from_token=action.get("fromToken", {}).get("address", ""),
        to_token=action.get("toToken", {}).get("address", ""),
        from_amount=int(estimate.get("fromAmount") or action.get("fromAmount") or 0),
        to_amount=int(estimate.get("toAmount") or 0),
        to_amount_min=int(estimate.get("toAmountMin") or 0),
        gas_cost_usd=_usd_sum(estimate.get("gasCosts")),
        fee_cost_usd=_usd_sum(estimate.get("feeCosts"), skip_included=True),
        execution_duration=float(estimate.get("executionDuration") or 0),
        tool=data.get("tool", ""),
        steps=steps,
        transaction_request=dict(data.get("transactionRequest") or {}),
        approval_address=estimate.get("approvalAddress", ""),
    )


def parse_status(data: dict[str, Any]) -> RouteStatus:
    receiving = data.get("receiving") or {}
    amount = receiving.get("amount")
    return RouteStatus(
        status=data.get("status", "NOT_FOUND"),
        substatus=data.get("substatus", ""),
        tx_hash=(data.get("sending") or {}).get("txHash", ""),
        receiving_tx_hash=receiving.get("txHash", ""),
        received_amount=int(amount) if amount is not None else None,
    )


class LifiClient:
    """Thin async client for the LI.FI REST API."""

    def __init__(self, config: RoutingConfig) -> None:
        self._config = config
        self.base_url = config.lifi_url.rstrip("/")
        self._headers = {"Accept": "application/json"}
        if config.api_key:
            self._headers["x-lifi-api-key"] = config.api_key

    async def _get(self, path: str, params: dict[str, Any]) -> tuple[int, dict[str, Any]]:
        ssl_context = ssl.create_default_context(cafile=certifi.where())
        connector = aiohttp.TCPConnector(ssl=ssl_context)

        try:
            async with aiohttp.ClientSession(connector=connector) as session:
                async with session.get(
                    f"{self.base_url}{path}",
                    params=params,
                    headers=self._headers,
                    timeout=aiohttp.ClientTimeout(total=self._config.timeout),
                ) as response:
                    return response.status, await response.json(content_type=None)
        except Exception as e:
            raise RouteError(f"LI.FI request {path} failed: {e}") from e

    async def get_quote(
        self,
        from_chain: int,
        to_chain: int,
        from_token: str,
        to_token: str,
        amount: int,
        from_address: str,
    ) -> RouteQuote:
        params = {
            "fromChain": from_chain,
            "toChain": to_chain,
            "fromToken": from_token,
            "toToken": to_token,
            "fromAmount": str(amount),
            "fromAddress": from_address,
            "toAddress": from_address,
            "integrator": self._config.integrator,
            "slippage": self._config.slippage,
        }
        status, data = await self._get("/quote", params)
        if status != 200:
            message = data.get("message", "") if isinstance(data, dict) else ""
            raise RouteError(f"No route {from_chain} → {to_chain}: HTTP {status} {message}".strip())

        quote = parse_quote(data)
        logger.debug(
            "Quote %s: %d → %d via %s, cost $%.2f, %d step(s)",
            quote.id,
            from_chain,
            to_chain,
            quote.tool,
            quote.total_cost_usd,
            quote.step_count,
        )
        return quote

    async def execute(self, route: RouteQuote, signer: Signer) -> str:
        """Approve the spender when needed, then send the route's transaction."""
        if not route.transaction_request:
            raise RouteError(f"Route {route.id} has no transaction request")

        if route.approval_address and route.from_token.lower() != NATIVE_TOKEN_ADDRESS:
            approve_data = (
                APPROVE_SELECTOR
                + encode_address(route.approval_address)
                + format(route.from_amount, "064x")
            )
            approval_hash = await signer.send_transaction(
                {"from": signer.address, "to": route.from_token, "data": approve_data}
            )
            logger.info("Approval submitted: %s", approval_hash)

        tx_request = {"from": signer.address, **route.transaction_request}
        return await signer.send_transaction(tx_request)

    async def get_status(self, route: RouteQuote, tx_hash: str) -> RouteStatus:
        params = {
            "txHash": tx_hash,
            "fromChain": route.from_chain_id,
            "toChain": route.to_chain_id,
        }
        if route.tool:
            params["bridge"] = route.tool
        status, data = await self._get("/status", params)
        if status == 404:
            return RouteStatus(status="NOT_FOUND", tx_hash=tx_hash)
        if status != 200:
            raise RouteError(f"Status lookup for {tx_hash} failed: HTTP {status}")
        return parse_status(data)

    async def wait_for_completion(self, route: RouteQuote, tx_hash: str) -> RouteStatus:
        """Poll until the route settles; raises RouteError on timeout."""
        deadline = time.monotonic() + self._config.status_timeout_seconds
        while True:
            status = await self.get_status(route, tx_hash)
            if status.status in TERMINAL_STATUSES:
                return status
            if time.monotonic() >= deadline:
                raise RouteError(
                    f"Route {route.id} not settled after "
                    f"{self._config.status_timeout_seconds:.0f}s (last: {status.status})"
                )
            await asyncio.sleep(self._config.status_poll_seconds)
