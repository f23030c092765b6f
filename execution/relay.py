"""
execution/relay.py - Flashbots-style private relay client.

Bundles are simulated with eth_callBundle against the target block and
submitted with eth_sendBundle. Every request carries an
X-Flashbots-Signature header signed by a throwaway reputation key.
No cross-block retry: a bundle targets exactly one block.
"""

import json
from dataclasses import dataclass
from typing import Optional

import httpx
from eth_account import Account
from eth_account.messages import encode_defunct
from eth_utils import keccak, to_hex

from core.constants import DEFAULT_CALL_TIMEOUT_SECONDS
from core.exceptions import ErrorCode, RelayError
from core.logging import get_logger

logger = get_logger("flarb.relay")


@dataclass(frozen=True)
class BundleSimulation:
    reverted: bool
    revert_reason: Optional[str] = None
    gas_used: Optional[int] = None


@dataclass(frozen=True)
class BundleSubmission:
    bundle_hash: Optional[str]
    target_block: int


class FlashbotsRelay:
    """
    Private relay over JSON-RPC.

    Usage:
        relay = FlashbotsRelay("https://relay-polygon.flashbots.net")
        sim = await relay.simulate([signed.raw], block + 1)
        if not sim.reverted:
            await relay.submit([signed.raw], block + 1)
    """

    def __init__(
        self,
        relay_url: str,
        auth_key: Optional[str] = None,
        timeout_seconds: float = DEFAULT_CALL_TIMEOUT_SECONDS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.relay_url = relay_url
        self._auth = Account.from_key(auth_key) if auth_key else Account.create()
        self.timeout_seconds = timeout_seconds
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None
        self._request_id = 0

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout_seconds),
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    def sign_body(self, body: str) -> str:
        """X-Flashbots-Signature value: address:signature(keccak(body))."""
        message = encode_defunct(text=to_hex(keccak(text=body)))
        signed = self._auth.sign_message(message)
        return f"{self._auth.address}:{to_hex(signed.signature)}"

    async def _rpc(self, method: str, params: list) -> dict:
        self._request_id += 1
        body = json.dumps({
            "jsonrpc": "2.0",
            "id": self._request_id,
            "method": method,
            "params": params,
        })
        client = await self._get_client()
        try:
            resp = await client.post(
                self.relay_url,
                content=body,
                headers={
                    "Content-Type": "application/json",
                    "X-Flashbots-Signature": self.sign_body(body),
                },
            )
            data = resp.json()
        except httpx.TimeoutException as e:
            raise RelayError(
                code=ErrorCode.INFRA_TIMEOUT,
                message=f"Relay {method} timed out",
                details={"relay": self.relay_url},
            ) from e
        except (httpx.HTTPError, ValueError) as e:
            raise RelayError(
                code=ErrorCode.RELAY_ERROR,
                message=f"Relay {method} failed: {e}",
                details={"relay": self.relay_url},
            ) from e

        if not isinstance(data, dict):
            raise RelayError(code=ErrorCode.RELAY_ERROR, message=f"Malformed relay response to {method}")
        if "error" in data:
            error = data["error"]
            msg = error.get("message", str(error)) if isinstance(error, dict) else str(error)
            raise RelayError(
                code=ErrorCode.RELAY_ERROR,
                message=f"Relay {method} error: {msg}",
                details={"relay": self.relay_url, "rpc_error": error},
            )
        return data.get("result") or {}

    async def simulate(self, signed_txs: list[str], target_block: int) -> BundleSimulation:
        """
        Simulate a bundle against target_block.

        Raises:
            RelayError: transport or relay-level error
        """
        result = await self._rpc("eth_callBundle", [{
            "txs": signed_txs,
            "blockNumber": hex(target_block),
            "stateBlockNumber": "latest",
        }])
        tx_results = result.get("results") or []
        for tx_result in tx_results:
            reason = tx_result.get("revert") or tx_result.get("error")
            if reason:
                logger.info(
                    "Bundle simulation reverted",
                    extra={"context": {"target_block": target_block, "revert": reason}},
                )
                return BundleSimulation(reverted=True, revert_reason=str(reason))
        gas_used = result.get("totalGasUsed")
        return BundleSimulation(reverted=False, gas_used=int(gas_used) if gas_used is not None else None)

    async def submit(self, signed_txs: list[str], target_block: int) -> BundleSubmission:
        """
        Submit a bundle for exactly target_block.

        Raises:
            RelayError: transport or relay-level error
        """
        result = await self._rpc("eth_sendBundle", [{
            "txs": signed_txs,
            "blockNumber": hex(target_block),
        }])
        bundle_hash = result.get("bundleHash") if isinstance(result, dict) else None
        logger.info(
            "Bundle submitted",
            extra={"context": {"target_block": target_block, "bundle_hash": bundle_hash}},
        )
        return BundleSubmission(bundle_hash=bundle_hash, target_block=target_block)
