"""
chains/monitor.py - RPC endpoint health monitor.

Probes every configured endpoint with eth_blockNumber on its own timer,
records latency, and feeds Online/Offline back into the provider's
first-healthy policy. The active flag mirrors the endpoint that most
recently served a real call through the failover path.
"""

import asyncio
import time

from chains.providers import RPCProvider
from core.constants import DEFAULT_PROBE_TIMEOUT_SECONDS, EndpointStatus
from core.exceptions import InfraError
from core.logging import get_logger
from core.models import RpcEndpoint

logger = get_logger("flarb.rpc_monitor")


class RpcMonitor:
    """Liveness/latency probe over the provider's endpoint list."""

    def __init__(
        self,
        provider: RPCProvider,
        probe_timeout_seconds: float = DEFAULT_PROBE_TIMEOUT_SECONDS,
    ):
        self.provider = provider
        self.probe_timeout_seconds = probe_timeout_seconds
        self._endpoints: dict[str, RpcEndpoint] = {
            url: RpcEndpoint(url=url) for url in provider.rpc_urls
        }

    async def _probe(self, url: str) -> RpcEndpoint:
        start = time.perf_counter()
        try:
            await asyncio.wait_for(
                self.provider.request(url, "eth_blockNumber", timeout=self.probe_timeout_seconds),
                timeout=self.probe_timeout_seconds,
            )
        except (InfraError, asyncio.TimeoutError) as e:
            logger.warning(
                f"RPC endpoint offline: {url}",
                extra={"context": {"endpoint": url, "error": str(e)}},
            )
            return RpcEndpoint(url=url, latency_ms=None, status=EndpointStatus.OFFLINE)

        latency_ms = int((time.perf_counter() - start) * 1000)
        return RpcEndpoint(url=url, latency_ms=latency_ms, status=EndpointStatus.ONLINE)

    async def probe_all(self) -> list[RpcEndpoint]:
        """Probe every endpoint concurrently and return a snapshot."""
        urls = list(self._endpoints)
        results = await asyncio.gather(*(self._probe(url) for url in urls))
        for endpoint in results:
            self._endpoints[endpoint.url] = endpoint
            self.provider.mark_health(endpoint.url, endpoint.status)

        online = sum(1 for e in results if e.status is EndpointStatus.ONLINE)
        logger.info(
            "RPC probe complete",
            extra={"context": {"online": online, "total": len(results)}},
        )
        return self.snapshot()

    def snapshot(self) -> list[RpcEndpoint]:
        """Copies of the endpoint list with the active flag applied."""
        active = self.provider.active_url
        return [
            RpcEndpoint(
                url=e.url,
                latency_ms=e.latency_ms,
                status=e.status,
                is_active=e.url == active,
            )
            for e in self._endpoints.values()
        ]
