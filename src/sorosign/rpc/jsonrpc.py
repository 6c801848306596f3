"""Soroban JSON-RPC client over httpx.

Docs: https://developers.stellar.org/docs/data/apis/rpc/api-reference/methods
"""

import asyncio
import logging
import time
from itertools import count
from typing import Any, Optional

import httpx
from pydantic import ValidationError
from stellar_sdk import xdr as stellar_xdr

from sorosign.config import Settings, get_settings
from sorosign.rpc.base import (
    RpcClient,
    RpcError,
    SendTransactionResult,
    SimulationResult,
    TransactionResult,
)
from sorosign.rpc.models import (
    RawGetTransactionResponse,
    RawLatestLedgerResponse,
    RawSendTransactionResponse,
    RawSimulateTransactionResponse,
)

logger = logging.getLogger(__name__)


class JsonRpcClient(RpcClient):
    """Client for a Soroban RPC server."""

    def __init__(
        self,
        url: Optional[str] = None,
        timeout: Optional[float] = None,
        poll_interval: Optional[float] = None,
        poll_timeout: Optional[float] = None,
        settings: Optional[Settings] = None,
    ):
        settings = settings or get_settings()
        self.url = url or settings.rpc_url
        self.timeout = timeout if timeout is not None else settings.rpc_timeout
        self.poll_interval = poll_interval if poll_interval is not None else settings.poll_interval
        self.poll_timeout = poll_timeout if poll_timeout is not None else settings.poll_timeout
        self._client: Optional[httpx.AsyncClient] = None
        self._ids = count(1)

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def _call(self, method: str, params: Optional[dict] = None) -> Any:
        client = await self._get_client()
        payload = {"jsonrpc": "2.0", "id": next(self._ids), "method": method}
        if params is not None:
            payload["params"] = params

        try:
            response = await client.post(self.url, json=payload)
            response.raise_for_status()
            body = response.json()
        except httpx.HTTPError as e:
            logger.error(f"RPC {method} failed: {e}")
            raise RpcError(f"{method} request failed: {e}") from e
        except ValueError as e:
            raise RpcError(f"{method} returned invalid JSON: {e}") from e

        if body.get("error"):
            error = body["error"]
            raise RpcError(f"{method} error {error.get('code')}: {error.get('message')}")
        return body.get("result")

    async def simulate_transaction(
        self, envelope: stellar_xdr.TransactionEnvelope
    ) -> SimulationResult:
        result = await self._call("simulateTransaction", {"transaction": envelope.to_xdr()})
        try:
            raw = RawSimulateTransactionResponse.model_validate(result)
        except ValidationError as e:
            raise RpcError(f"Unexpected simulateTransaction response: {e}") from e
        simulation = SimulationResult.from_raw(raw)
        logger.debug(
            f"Simulated at ledger {simulation.latest_ledger}: "
            f"min resource fee {simulation.min_resource_fee}"
        )
        return simulation

    async def send_transaction(
        self, envelope: stellar_xdr.TransactionEnvelope
    ) -> SendTransactionResult:
        result = await self._call("sendTransaction", {"transaction": envelope.to_xdr()})
        try:
            raw = RawSendTransactionResponse.model_validate(result)
        except ValidationError as e:
            raise RpcError(f"Unexpected sendTransaction response: {e}") from e
        return SendTransactionResult.from_raw(raw)

    async def get_transaction(self, tx_hash: str) -> TransactionResult:
        result = await self._call("getTransaction", {"hash": tx_hash})
        try:
            raw = RawGetTransactionResponse.model_validate(result)
        except ValidationError as e:
            raise RpcError(f"Unexpected getTransaction response: {e}") from e
        return TransactionResult.from_raw(tx_hash, raw)

    async def poll_transaction(self, tx_hash: str) -> TransactionResult:
        deadline = time.monotonic() + self.poll_timeout
        while True:
            result = await self.get_transaction(tx_hash)
            if result.status != "NOT_FOUND":
                logger.info(f"Transaction {tx_hash}: {result.status}")
                return result
            if time.monotonic() >= deadline:
                raise RpcError(f"Transaction {tx_hash} not found after {self.poll_timeout}s")
            await asyncio.sleep(self.poll_interval)

    async def get_latest_ledger(self) -> int:
        result = await self._call("getLatestLedger")
        try:
            return RawLatestLedgerResponse.model_validate(result).sequence
        except ValidationError as e:
            raise RpcError(f"Unexpected getLatestLedger response: {e}") from e

    async def close(self):
        if self._client is not None:
            await self._client.aclose()
            self._client = None
