"""
chains/providers.py - RPC provider management with failover.

Provides reliable RPC access with:
- Ordered first-healthy endpoint failover (no load balancing)
- Request timeout handling
- Connection pooling
- Latency tracking and active-endpoint tracking
"""

import os
import time
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Optional

import httpx

from core.constants import DEFAULT_CALL_TIMEOUT_SECONDS, EndpointStatus, WEI_PER_ETH
from core.exceptions import ErrorCode, InfraError
from core.logging import get_logger

logger = get_logger("flarb.rpc")


@dataclass
class RPCStats:
    """Statistics for an RPC endpoint."""
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


@dataclass
class RPCResponse:
    """Response from an RPC call."""
    result: Any
    latency_ms: int
    endpoint_used: str


class FirstHealthyPolicy:
    """
    Endpoint selection: configured order, endpoints known to be offline
    moved to the back as a last resort. Never splits load.
    """

    def order(self, urls: list[str], health: dict[str, EndpointStatus]) -> list[str]:
        healthy = [u for u in urls if health.get(u) != EndpointStatus.OFFLINE]
        offline = [u for u in urls if health.get(u) == EndpointStatus.OFFLINE]
        return healthy + offline


def resolve_urls(urls: list[str]) -> list[str]:
    """Resolve ${ALCHEMY_API_KEY} in URLs; drop alchemy URLs without a key."""
    api_key = os.getenv("ALCHEMY_API_KEY", "")
    resolved = []
    for url in urls:
        resolved_url = url.replace("${ALCHEMY_API_KEY}", api_key)
        if api_key or "alchemy" not in resolved_url.lower():
            resolved.append(resolved_url)
    return resolved


class RPCProvider:
    """
    JSON-RPC provider with failover support.

    Tries endpoints in policy order until one succeeds, remembers which one
    served last (the active endpoint), and tracks per-endpoint stats.
    """

    def __init__(
        self,
        chain_id: int,
        rpc_urls: list[str],
        timeout_seconds: float = DEFAULT_CALL_TIMEOUT_SECONDS,
        policy: Optional[FirstHealthyPolicy] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.chain_id = chain_id
        self.timeout_seconds = timeout_seconds
        self.policy = policy or FirstHealthyPolicy()
        self._transport = transport
        self._client: httpx.AsyncClient | None = None
        self._request_id = 0

        self.rpc_urls = resolve_urls(rpc_urls)
        self.stats: dict[str, RPCStats] = {
            url: RPCStats(url=url) for url in self.rpc_urls
        }
        self.health: dict[str, EndpointStatus] = {
            url: EndpointStatus.PENDING for url in self.rpc_urls
        }
        self.active_url: str | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout_seconds),
                limits=httpx.Limits(max_connections=10),
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    def _next_request_id(self) -> int:
        self._request_id += 1
        return self._request_id

    def mark_health(self, url: str, status: EndpointStatus) -> None:
        """Feed monitor observations into the selection policy."""
        if url in self.health:
            self.health[url] = status

    async def request(
        self,
        url: str,
        method: str,
        params: list | None = None,
        timeout: float | None = None,
    ) -> RPCResponse:
        """
        Single JSON-RPC request against one endpoint, no failover.

        Raises:
            InfraError: on transport error, timeout or JSON-RPC error
        """
        client = await self._get_client()
        payload = {
            "jsonrpc": "2.0",
            "method": method,
            "params": params or [],
            "id": self._next_request_id(),
        }
        start = time.perf_counter()
        try:
            resp = await client.post(
                url,
                json=payload,
                timeout=timeout if timeout is not None else self.timeout_seconds,
            )
            body = resp.json()
        except httpx.TimeoutException as e:
            raise InfraError(
                code=ErrorCode.INFRA_TIMEOUT,
                message=f"Timeout calling {method}",
                details={"url": url, "method": method},
            ) from e
        except (httpx.HTTPError, ValueError) as e:
            raise InfraError(
                code=ErrorCode.INFRA_RPC_ERROR,
                message=f"Transport error calling {method}: {e}",
                details={"url": url, "method": method},
            ) from e
        latency_ms = int((time.perf_counter() - start) * 1000)

        if not isinstance(body, dict):
            raise InfraError(
                code=ErrorCode.INFRA_RPC_ERROR,
                message="Malformed JSON-RPC response",
                details={"url": url, "method": method},
            )
        if "error" in body:
            error = body["error"]
            error_msg = error.get("message", str(error)) if isinstance(error, dict) else str(error)
            raise InfraError(
                code=ErrorCode.INFRA_RPC_ERROR,
                message=f"RPC error: {error_msg}",
                details={"url": url, "method": method, "rpc_error": error},
            )
        return RPCResponse(result=body.get("result"), latency_ms=latency_ms, endpoint_used=url)

    async def call(
        self,
        method: str,
        params: list | None = None,
    ) -> RPCResponse:
        """
        Make an RPC call with failover.

        Raises:
            InfraError: If all endpoints fail
        """
        if not self.rpc_urls:
            raise InfraError(
                code=ErrorCode.INFRA_NO_ENDPOINTS,
                message="No RPC endpoints configured",
                details={"chain_id": self.chain_id},
            )

        last_error: Exception | None = None

        for url in self.policy.order(self.rpc_urls, self.health):
            stats = self.stats[url]
            stats.total_requests += 1
            try:
                response = await self.request(url, method, params)
            except InfraError as e:
                stats.failed_requests += 1
                stats.last_error = e.message
                last_error = e
                logger.debug(
                    f"RPC {method} failed on {url}: {e.message}",
                    extra={"context": {"endpoint": url, "method": method}},
                )
                continue

            stats.successful_requests += 1
            stats.total_latency_ms += response.latency_ms
            stats.last_success_ts = int(time.time() * 1000)
            if self.active_url != url:
                logger.info(
                    "Active RPC endpoint changed",
                    extra={"context": {"previous": self.active_url, "endpoint": url}},
                )
            self.active_url = url
            return response

        raise InfraError(
            code=ErrorCode.INFRA_RPC_ERROR,
            message=f"All RPC endpoints failed for chain {self.chain_id}",
            details={
                "chain_id": self.chain_id,
                "endpoints_tried": len(self.rpc_urls),
                "last_error": str(last_error),
            },
        )

    # =========================================================================
    # READ HELPERS
    # =========================================================================

    async def get_block_number(self) -> int:
        response = await self.call("eth_blockNumber")
        return int(response.result, 16)

    async def get_block(self, block: str = "latest") -> dict:
        response = await self.call("eth_getBlockByNumber", [block, False])
        if not response.result:
            raise InfraError(
                code=ErrorCode.INFRA_RPC_ERROR,
                message=f"Block {block} not found",
            )
        return response.result

    async def eth_call(
        self,
        to: str,
        data: str,
        block: str = "latest",
    ) -> str:
        """eth_call returning the raw hex result."""
        response = await self.call("eth_call", [{"to": to, "data": data}, block])
        return response.result

    async def get_gas_price(self) -> int:
        """Current gas price in wei."""
        response = await self.call("eth_gasPrice")
        return int(response.result, 16)

    async def get_balance(self, address: str, block: str = "latest") -> Decimal:
        """Native balance in ETH."""
        response = await self.call("eth_getBalance", [address, block])
        return Decimal(int(response.result, 16)) / WEI_PER_ETH

    async def get_transaction_count(self, address: str, block: str = "pending") -> int:
        response = await self.call("eth_getTransactionCount", [address, block])
        return int(response.result, 16)

    async def estimate_gas(self, tx: dict) -> int:
        response = await self.call("eth_estimateGas", [tx])
        return int(response.result, 16)

    async def send_raw_transaction(self, raw_tx: str) -> str:
        response = await self.call("eth_sendRawTransaction", [raw_tx])
        return response.result

    async def get_transaction_receipt(self, tx_hash: str) -> dict | None:
        response = await self.call("eth_getTransactionReceipt", [tx_hash])
        return response.result

    def get_stats_summary(self) -> dict:
        """Get statistics summary for all endpoints."""
        return {
            url: {
                "total_requests": s.total_requests,
                "success_rate": round(s.success_rate, 3),
                "avg_latency_ms": s.avg_latency_ms,
                "last_error": s.last_error,
                "health": self.health[url].value,
                "active": url == self.active_url,
            }
            for url, s in self.stats.items()
        }
