"""
chains/wallet.py - Signing wallet and chain writer.

Wallet holds the single signing key. ChainWriter turns contract calls into
signed legacy transactions, broadcasts them through the failover provider
and waits for receipts. Nonce comes from the pending transaction count;
the dispatcher serializes callers so nonces stay ordered.
"""

import asyncio
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Optional

from eth_account import Account
from eth_utils import to_checksum_address, to_hex

from chains.providers import RPCProvider
from core.constants import DEFAULT_RECEIPT_TIMEOUT_SECONDS, WEI_PER_ETH
from core.exceptions import ErrorCode, ExecutionError, StartupError
from core.logging import get_logger

logger = get_logger("flarb.wallet")


@dataclass(frozen=True)
class SignedTransaction:
    raw: str      # 0x-prefixed RLP
    tx_hash: str  # 0x-prefixed keccak of raw
    gas_limit: int
    gas_price_wei: int


@dataclass(frozen=True)
class Receipt:
    tx_hash: str
    status: int
    gas_used: int
    effective_gas_price_wei: int
    block_number: Optional[int] = None

    @property
    def succeeded(self) -> bool:
        return self.status == 1

    @property
    def gas_cost_eth(self) -> Decimal:
        return Decimal(self.gas_used * self.effective_gas_price_wei) / WEI_PER_ETH


class Wallet:
    """The bot's only signer."""

    def __init__(self, private_key: str):
        if not private_key:
            raise StartupError(
                code=ErrorCode.STARTUP_MISSING_KEY,
                message="PRIVATE_KEY is not set",
            )
        try:
            self._account = Account.from_key(private_key)
        except (ValueError, TypeError) as e:
            raise StartupError(
                code=ErrorCode.STARTUP_MISSING_KEY,
                message="PRIVATE_KEY is not a valid secp256k1 key",
            ) from e

    @property
    def address(self) -> str:
        return self._account.address

    def sign_transaction(self, tx: dict[str, Any]) -> SignedTransaction:
        try:
            signed = self._account.sign_transaction(tx)
        except (ValueError, TypeError, KeyError) as e:
            raise ExecutionError(
                code=ErrorCode.EXEC_SIGN_FAILED,
                message=f"Could not sign transaction: {e}",
                details={"to": tx.get("to")},
            ) from e
        return SignedTransaction(
            raw=to_hex(signed.raw_transaction),
            tx_hash=to_hex(signed.hash),
            gas_limit=int(tx.get("gas", 0)),
            gas_price_wei=int(tx.get("gasPrice", 0)),
        )


def parse_receipt(tx_hash: str, raw: dict) -> Receipt:
    effective = raw.get("effectiveGasPrice") or raw.get("gasPrice") or "0x0"
    block = raw.get("blockNumber")
    return Receipt(
        tx_hash=tx_hash,
        status=int(raw.get("status", "0x0"), 16),
        gas_used=int(raw.get("gasUsed", "0x0"), 16),
        effective_gas_price_wei=int(effective, 16),
        block_number=int(block, 16) if block else None,
    )


class ChainWriter:
    """
    Live chain writer: build, estimate, sign, broadcast, wait.

    Raises InfraError/ExecutionError; the dispatcher converts those into
    failed trades.
    """

    def __init__(
        self,
        provider: RPCProvider,
        wallet: Wallet,
        chain_id: int,
        receipt_timeout_seconds: float = DEFAULT_RECEIPT_TIMEOUT_SECONDS,
        poll_interval_seconds: float = 2.0,
    ):
        self.provider = provider
        self.wallet = wallet
        self.chain_id = chain_id
        self.receipt_timeout_seconds = receipt_timeout_seconds
        self.poll_interval_seconds = poll_interval_seconds

    @property
    def address(self) -> str:
        return self.wallet.address

    async def build_transaction(self, to: str, data: str) -> dict[str, Any]:
        nonce = await self.provider.get_transaction_count(self.address, "pending")
        gas_price = await self.provider.get_gas_price()
        return {
            "from": self.address,
            "to": to_checksum_address(to),
            "data": data,
            "value": 0,
            "nonce": nonce,
            "gasPrice": gas_price,
            "chainId": self.chain_id,
        }

    async def estimate_gas(self, tx: dict[str, Any]) -> int:
        call = {
            "from": tx["from"],
            "to": tx["to"],
            "data": tx["data"],
            "value": hex(tx.get("value", 0)),
        }
        return await self.provider.estimate_gas(call)

    async def get_block_number(self) -> int:
        return await self.provider.get_block_number()

    def sign(self, tx: dict[str, Any]) -> SignedTransaction:
        unsigned = {k: v for k, v in tx.items() if k != "from"}
        return self.wallet.sign_transaction(unsigned)

    async def broadcast(self, signed: SignedTransaction) -> str:
        tx_hash = await self.provider.send_raw_transaction(signed.raw)
        logger.info(
            "Transaction broadcast",
            extra={"context": {"tx_hash": tx_hash}},
        )
        return tx_hash

    async def wait_receipt(self, tx_hash: str) -> Receipt:
        """Poll for a receipt until the timeout expires."""
        try:
            return await asyncio.wait_for(
                self._poll_receipt(tx_hash),
                timeout=self.receipt_timeout_seconds,
            )
        except asyncio.TimeoutError as e:
            raise ExecutionError(
                code=ErrorCode.EXEC_RECEIPT_TIMEOUT,
                message=f"No receipt after {self.receipt_timeout_seconds}s",
                details={"tx_hash": tx_hash},
            ) from e

    async def _poll_receipt(self, tx_hash: str) -> Receipt:
        while True:
            raw = await self.provider.get_transaction_receipt(tx_hash)
            if raw:
                return parse_receipt(tx_hash, raw)
            await asyncio.sleep(self.poll_interval_seconds)
