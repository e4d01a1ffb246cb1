# PATH: chains/providers.py
"""
JSON-RPC transport with endpoint failover.

FAILOVER CONTRACT:
- endpoints are tried in configured order, one request each
- a JSON-RPC error object is the chain's answer: it is classified
  (chains.errors) and raised at once, later endpoints are not asked
- transport failures (timeout, connection, non-2xx, unparsable body) move on
  to the next endpoint
- when every endpoint fails: TransportTimeoutError if the last failure was a
  timeout, TransportError otherwise
- no endpoints configured -> InfraError (configuration problem, not retryable)
"""

import os
import time
from dataclasses import dataclass
from typing import Any

import httpx

from chains.errors import classify_rpc_error
from core.exceptions import InfraError, TransportError, TransportTimeoutError
from core.logging import get_logger

logger = get_logger(__name__)


@dataclass
class RPCStats:
    """Per-endpoint counters."""
    url: str
    total_requests: int = 0
    successful_requests: int = 0
    failed_requests: int = 0
    total_latency_ms: int = 0
    last_error: str | None = None
    last_success_ts: int | None = None

    @property
    def avg_latency_ms(self) -> int:
        if self.successful_requests == 0:
            return 0
        return self.total_latency_ms // self.successful_requests

    @property
    def success_rate(self) -> float:
        if self.total_requests == 0:
            return 0.0
        return self.successful_requests / self.total_requests

    def record_success(self, latency_ms: int) -> None:
        self.successful_requests += 1
        self.total_latency_ms += latency_ms
        self.last_success_ts = int(time.time() * 1000)

    def record_failure(self, error: str) -> None:
        self.failed_requests += 1
        self.last_error = error


@dataclass
class RPCResponse:
    result: Any
    latency_ms: int
    endpoint_used: str


class _EndpointDown(Exception):
    """One endpoint failed in transport; the caller moves on."""

    def __init__(self, cause: Exception, summary: str):
        super().__init__(summary)
        self.cause = cause


class RPCProvider:
    """
    Failover JSON-RPC client for one chain.

    The httpx client may be injected (tests use httpx.MockTransport); an
    injected client is left open on close().
    """

    def __init__(
        self,
        chain_id: int,
        rpc_urls: list[str],
        timeout_seconds: float = 10,
        client: httpx.AsyncClient | None = None,
    ):
        self.chain_id = chain_id
        self.timeout_seconds = timeout_seconds
        self._client = client
        self._owns_client = client is None
        self._request_id = 0

        # ${VAR} placeholders are resolved from the environment
        self.rpc_urls = [os.path.expandvars(url) for url in rpc_urls if url]
        self.stats: dict[str, RPCStats] = {url: RPCStats(url=url) for url in self.rpc_urls}

    def _http(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout_seconds),
                limits=httpx.Limits(max_connections=10),
            )
        return self._client

    async def close(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
        self._client = None

    def _payload(self, method: str, params: list | None) -> dict[str, Any]:
        self._request_id += 1
        return {"jsonrpc": "2.0", "method": method, "params": params or [], "id": self._request_id}

    async def _post(self, url: str, payload: dict[str, Any]) -> tuple[dict[str, Any], int]:
        started = time.monotonic()
        try:
            resp = await self._http().post(url, json=payload)
            resp.raise_for_status()
            body = resp.json()
        except httpx.TimeoutException as e:
            raise _EndpointDown(e, f"Timeout after {int((time.monotonic() - started) * 1000)}ms")
        except (httpx.HTTPError, ValueError) as e:
            raise _EndpointDown(e, str(e))
        return body, int((time.monotonic() - started) * 1000)

    async def call(self, method: str, params: list | None = None) -> RPCResponse:
        """
        Send one JSON-RPC request, failing over between endpoints.

        Raises:
            NonceConflictError, ReplacementUnderpricedError, SimulationRevertError,
            RPCError: node answered with an error object
            TransportTimeoutError, TransportError: every endpoint failed in transport
            InfraError: no endpoints configured
        """
        if not self.rpc_urls:
            raise InfraError("No RPC endpoints configured", details={"chain_id": self.chain_id})

        last_failure: _EndpointDown | None = None
        for url in self.rpc_urls:
            stats = self.stats[url]
            stats.total_requests += 1
            try:
                body, latency_ms = await self._post(url, self._payload(method, params))
            except _EndpointDown as down:
                stats.record_failure(str(down))
                last_failure = down
                logger.debug(
                    "RPC endpoint failed, trying next",
                    extra={"context": {"url": url, "method": method, "error": str(down)}},
                )
                continue

            error = body.get("error")
            if error is not None:
                fields = error if isinstance(error, dict) else {"message": str(error)}
                message = str(fields.get("message", error))
                stats.record_failure(message)
                logger.debug(
                    "RPC error response",
                    extra={"context": {"url": url, "method": method, "error": message}},
                )
                raise classify_rpc_error(
                    message,
                    rpc_code=fields.get("code"),
                    details={"url": url, "method": method, "data": fields.get("data")},
                )

            stats.record_success(latency_ms)
            return RPCResponse(result=body.get("result"), latency_ms=latency_ms, endpoint_used=url)

        details = {
            "chain_id": self.chain_id,
            "method": method,
            "endpoints_tried": len(self.rpc_urls),
            "last_error": str(last_failure),
        }
        if last_failure is not None and isinstance(last_failure.cause, httpx.TimeoutException):
            raise TransportTimeoutError(f"All RPC endpoints timed out for chain {self.chain_id}", details)
        raise TransportError(f"All RPC endpoints failed for chain {self.chain_id}", details=details)

    async def get_chain_id(self) -> int:
        response = await self.call("eth_chainId")
        return int(response.result, 16)

    async def get_block_number(self) -> tuple[int, int]:
        """Returns (block_number, latency_ms)."""
        response = await self.call("eth_blockNumber")
        return int(response.result, 16), response.latency_ms

    def get_stats_summary(self) -> dict:
        return {
            url: {
                "total_requests": s.total_requests,
                "success_rate": round(s.success_rate, 3),
                "avg_latency_ms": s.avg_latency_ms,
                "last_error": s.last_error,
            }
            for url, s in self.stats.items()
        }
