"""Tests for the Soroban JSON-RPC client."""

import json

import httpx
import pytest
from stellar_sdk import scval

from conftest import make_address_auth, make_transaction, make_transaction_data
from sorosign.config import Settings
from sorosign.rpc import JsonRpcClient, RpcError
from sorosign.rpc.base import TransactionSubmissionFailed
from sorosign.tx.assembled import unsigned_envelope


def _client(responses, calls=None) -> JsonRpcClient:
    """Client whose HTTP layer answers each method from a dict of results."""

    def handler(request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        if calls is not None:
            calls.append(body)
        answer = responses[body["method"]]
        if callable(answer):
            answer = answer()
        return httpx.Response(200, json={"jsonrpc": "2.0", "id": body["id"], **answer})

    client = JsonRpcClient(settings=Settings(rpc_url="http://rpc.test", poll_interval=0, poll_timeout=1))
    client._client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return client


class TestJsonRpcClient:
    """Tests for JsonRpcClient."""

    @pytest.mark.asyncio
    async def test_simulate_transaction(self, alice_address, bob_address):
        """Test the camelCase answer is decoded into XDR values."""
        entry = make_address_auth(bob_address)
        data = make_transaction_data()
        calls = []
        client = _client(
            {
                "simulateTransaction": {
                    "result": {
                        "latestLedger": 1234,
                        "minResourceFee": "115",
                        "results": [{"auth": [entry.to_xdr()], "xdr": scval.to_uint32(7).to_xdr()}],
                        "transactionData": data.to_xdr(),
                        "events": [],
                    }
                }
            },
            calls,
        )
        envelope = unsigned_envelope(make_transaction(alice_address))

        simulation = await client.simulate_transaction(envelope)
        await client.close()

        assert calls[0]["method"] == "simulateTransaction"
        assert calls[0]["params"] == {"transaction": envelope.to_xdr()}
        assert simulation.min_resource_fee == 115
        assert simulation.latest_ledger == 1234
        assert simulation.results[0].auth == [entry]
        assert simulation.transaction_data == data
        assert scval.from_uint32(simulation.return_value) == 7
        assert simulation.restore_preamble is None

    @pytest.mark.asyncio
    async def test_simulate_with_restore_preamble(self, alice_address):
        data = make_transaction_data()
        client = _client(
            {
                "simulateTransaction": {
                    "result": {
                        "minResourceFee": "10",
                        "transactionData": data.to_xdr(),
                        "restorePreamble": {"transactionData": data.to_xdr(), "minResourceFee": "50"},
                    }
                }
            }
        )

        simulation = await client.simulate_transaction(unsigned_envelope(make_transaction(alice_address)))

        assert simulation.restore_preamble.min_resource_fee == 50
        assert simulation.restore_preamble.transaction_data == data

    @pytest.mark.asyncio
    async def test_rpc_error(self, alice_address):
        client = _client({"simulateTransaction": {"error": {"code": -32602, "message": "invalid params"}}})

        with pytest.raises(RpcError) as exc_info:
            await client.simulate_transaction(unsigned_envelope(make_transaction(alice_address)))

        assert "invalid params" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_http_error(self):
        client = JsonRpcClient(settings=Settings(rpc_url="http://rpc.test"))
        client._client = httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(503)))

        with pytest.raises(RpcError):
            await client.get_latest_ledger()

    @pytest.mark.asyncio
    async def test_get_latest_ledger(self):
        client = _client({"getLatestLedger": {"result": {"id": "abc", "protocolVersion": 22, "sequence": 5000}}})

        assert await client.get_latest_ledger() == 5000

    @pytest.mark.asyncio
    async def test_send_polls_until_final(self, alice_address):
        """Test NOT_FOUND answers are polled through to SUCCESS."""
        statuses = iter(["NOT_FOUND", "NOT_FOUND", "SUCCESS"])
        client = _client(
            {
                "sendTransaction": {"result": {"hash": "ab" * 32, "status": "PENDING", "latestLedger": 10}},
                "getTransaction": lambda: {"result": {"status": next(statuses), "ledger": 12}},
            }
        )

        result = await client.send_transaction_polling(unsigned_envelope(make_transaction(alice_address)))

        assert result.successful
        assert result.hash == "ab" * 32
        assert result.ledger == 12

    @pytest.mark.asyncio
    async def test_send_rejected(self, alice_address):
        client = _client(
            {"sendTransaction": {"result": {"hash": "cd" * 32, "status": "ERROR", "errorResultXdr": "AAAA"}}}
        )

        with pytest.raises(TransactionSubmissionFailed) as exc_info:
            await client.send_transaction_polling(unsigned_envelope(make_transaction(alice_address)))

        assert exc_info.value.status == "ERROR"
        assert exc_info.value.result_xdr == "AAAA"

    @pytest.mark.asyncio
    async def test_poll_timeout(self):
        client = _client({"getTransaction": {"result": {"status": "NOT_FOUND"}}})
        client.poll_timeout = 0

        with pytest.raises(RpcError):
            await client.poll_transaction("ef" * 32)
