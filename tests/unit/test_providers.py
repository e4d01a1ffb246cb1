# PATH: tests/unit/test_providers.py
"""
Tests for chains/providers.py using httpx.MockTransport.
"""

import json

import httpx
import pytest

from chains.providers import RPCProvider
from core.exceptions import (
    InfraError,
    NonceConflictError,
    SimulationRevertError,
    TransportError,
    TransportTimeoutError,
)

PRIMARY = "https://primary.example"
BACKUP = "https://backup.example"


def provider_with(handler, urls=(PRIMARY, BACKUP)):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return RPCProvider(1, list(urls), client=client)


def ok(result):
    def handler(request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        return httpx.Response(200, json={"jsonrpc": "2.0", "id": body["id"], "result": result})
    return handler


class TestCall:
    @pytest.mark.asyncio
    async def test_result_from_first_endpoint(self):
        provider = provider_with(ok("0x10"))
        response = await provider.call("eth_blockNumber")

        assert response.result == "0x10"
        assert response.endpoint_used == PRIMARY
        assert provider.stats[PRIMARY].successful_requests == 1
        assert provider.stats[BACKUP].total_requests == 0

    @pytest.mark.asyncio
    async def test_failover_on_http_error(self):
        def handler(request):
            if str(request.url).startswith(PRIMARY):
                return httpx.Response(502)
            return ok("0x1")(request)

        provider = provider_with(handler)
        response = await provider.call("eth_chainId")

        assert response.endpoint_used == BACKUP
        assert provider.stats[PRIMARY].failed_requests == 1

    @pytest.mark.asyncio
    async def test_all_endpoints_time_out(self):
        def handler(request):
            raise httpx.ReadTimeout("slow", request=request)

        with pytest.raises(TransportTimeoutError) as exc:
            await provider_with(handler).call("eth_blockNumber")
        assert exc.value.details["endpoints_tried"] == 2

    @pytest.mark.asyncio
    async def test_all_endpoints_unreachable(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(TransportError) as exc:
            await provider_with(handler).call("eth_blockNumber")
        assert not isinstance(exc.value, TransportTimeoutError)

    @pytest.mark.asyncio
    async def test_error_object_is_classified_without_failover(self):
        calls = []

        def handler(request):
            calls.append(str(request.url))
            body = json.loads(request.content)
            return httpx.Response(200, json={
                "jsonrpc": "2.0", "id": body["id"],
                "error": {"code": -32000, "message": "nonce too low"},
            })

        with pytest.raises(NonceConflictError):
            await provider_with(handler).call("eth_sendRawTransaction", ["0x00"])
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_revert_reason_surfaces(self):
        def handler(request):
            body = json.loads(request.content)
            return httpx.Response(200, json={
                "jsonrpc": "2.0", "id": body["id"],
                "error": {"code": 3, "message": "execution reverted: insufficient profit", "data": "0x"},
            })

        with pytest.raises(SimulationRevertError) as exc:
            await provider_with(handler).call("eth_call", [{}, "pending"])
        assert exc.value.reason == "insufficient profit"

    @pytest.mark.asyncio
    async def test_no_endpoints(self):
        with pytest.raises(InfraError):
            await RPCProvider(1, []).call("eth_blockNumber")

    @pytest.mark.asyncio
    async def test_helpers_parse_hex(self):
        provider = provider_with(ok("0x2a"))
        assert await provider.get_chain_id() == 42
        block, latency = await provider.get_block_number()
        assert block == 42
        assert latency >= 0
        assert provider.get_stats_summary()[PRIMARY]["success_rate"] == 1.0

    def test_env_placeholders_expanded(self, monkeypatch):
        monkeypatch.setenv("NODE_KEY", "abc")
        provider = RPCProvider(1, ["https://node.example/${NODE_KEY}", ""])
        assert provider.rpc_urls == ["https://node.example/abc"]

    @pytest.mark.asyncio
    async def test_close_leaves_injected_client_open(self):
        client = httpx.AsyncClient(transport=httpx.MockTransport(ok("0x1")))
        provider = RPCProvider(1, [PRIMARY], client=client)
        await provider.close()
        assert not client.is_closed
        await client.aclose()
