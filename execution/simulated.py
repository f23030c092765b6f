"""
execution/simulated.py - Deterministic writer and relay for simulation mode.

Simulation mode keeps live reads (reserves, gas, balances) and swaps only
the chain writer and the private relay for these fakes. Transactions are
still built, encoded and signed, but nothing leaves the process.
"""

from collections import deque
from typing import Any, Optional

from eth_utils import keccak, to_checksum_address, to_hex

from chains.wallet import Receipt, SignedTransaction, Wallet
from core.logging import get_logger
from execution.relay import BundleSimulation, BundleSubmission

logger = get_logger("flarb.simulated")

SIMULATED_GAS_PRICE_WEI = 30 * 10**9
SIMULATED_GAS_ESTIMATE = 350_000
SIMULATED_START_BLOCK = 50_000_000
# Recent broadcasts and bundles kept for inspection
SIMULATED_HISTORY_SIZE = 100


class SimulatedChainWriter:
    """Writer that signs but never broadcasts; every receipt succeeds unless told otherwise."""

    def __init__(
        self,
        wallet: Wallet,
        chain_id: int,
        gas_price_wei: int = SIMULATED_GAS_PRICE_WEI,
        gas_estimate: int = SIMULATED_GAS_ESTIMATE,
        receipt_status: int = 1,
        start_block: int = SIMULATED_START_BLOCK,
    ):
        self.wallet = wallet
        self.chain_id = chain_id
        self.gas_price_wei = gas_price_wei
        self.gas_estimate = gas_estimate
        self.receipt_status = receipt_status
        self._nonce = 0
        self._block = start_block
        self.broadcasts: deque[SignedTransaction] = deque(maxlen=SIMULATED_HISTORY_SIZE)

    @property
    def address(self) -> str:
        return self.wallet.address

    async def build_transaction(self, to: str, data: str) -> dict[str, Any]:
        return {
            "from": self.address,
            "to": to_checksum_address(to),
            "data": data,
            "value": 0,
            "nonce": self._nonce,
            "gasPrice": self.gas_price_wei,
            "chainId": self.chain_id,
        }

    async def estimate_gas(self, tx: dict[str, Any]) -> int:
        return self.gas_estimate

    async def get_block_number(self) -> int:
        return self._block

    def sign(self, tx: dict[str, Any]) -> SignedTransaction:
        unsigned = {k: v for k, v in tx.items() if k != "from"}
        return self.wallet.sign_transaction(unsigned)

    async def broadcast(self, signed: SignedTransaction) -> str:
        self.broadcasts.append(signed)
        self._nonce += 1
        self._block += 1
        logger.info(
            "Simulated broadcast",
            extra={"context": {"tx_hash": signed.tx_hash}},
        )
        return signed.tx_hash

    async def wait_receipt(self, tx_hash: str) -> Receipt:
        gas_limit = self.broadcasts[-1].gas_limit if self.broadcasts else self.gas_estimate
        return Receipt(
            tx_hash=tx_hash,
            status=self.receipt_status,
            gas_used=min(self.gas_estimate, gas_limit),
            effective_gas_price_wei=self.gas_price_wei,
            block_number=self._block,
        )


class SimulatedRelay:
    """Relay whose simulations pass (or revert, if configured) and whose bundles are never sent."""

    def __init__(self, revert_reason: Optional[str] = None):
        self.revert_reason = revert_reason
        self.simulations: deque[tuple[list[str], int]] = deque(maxlen=SIMULATED_HISTORY_SIZE)
        self.submissions: deque[tuple[list[str], int]] = deque(maxlen=SIMULATED_HISTORY_SIZE)

    async def simulate(self, signed_txs: list[str], target_block: int) -> BundleSimulation:
        self.simulations.append((list(signed_txs), target_block))
        if self.revert_reason:
            return BundleSimulation(reverted=True, revert_reason=self.revert_reason)
        return BundleSimulation(reverted=False)

    async def submit(self, signed_txs: list[str], target_block: int) -> BundleSubmission:
        self.submissions.append((list(signed_txs), target_block))
        bundle_hash = to_hex(keccak(text="".join(signed_txs) + str(target_block)))
        return BundleSubmission(bundle_hash=bundle_hash, target_block=target_block)
