# PATH: execution/dispatcher.py
"""
Execution dispatcher.

DISPATCH CONTRACT:
==================

Channels:
  STANDARD - build, estimate gas, gas limit = ceil(estimate * 1.2), sign,
             broadcast, wait for receipt, classify by receipt status
  PRIVATE  - build, estimate, sign, simulate the single-tx bundle against
             block N+1, submit for N+1 only if the simulation did not revert;
             the tx hash is returned optimistically

Outcomes:
  confirmed (success)       profit = loan * (spread - flash_loan_fee) - gas_cost
  reverted on chain         profit = -gas_cost
  failed before submission  profit = 0 (nothing spent)
  receipt timeout           profit = -(gas_limit * gas_price), worst case

Dispatches are serialized: one signer, ordered nonces.
==================
"""

import asyncio
from dataclasses import dataclass, field
from decimal import ROUND_CEILING, Decimal
from typing import Any, Dict, Optional

from core.constants import GAS_LIMIT_MULTIPLIER, WEI_PER_ETH, ExecutionChannel
from core.exceptions import ErrorCode, ExecutionError, FlarbError
from core.logging import get_logger
from core.models import Opportunity, make_trade_id
from core.result import capture
from dex.registry import DexRegistry
from execution.contract import encode_flash_loan_call
from execution.state_machine import DispatchState, DispatchStateMachine

logger = get_logger("flarb.dispatcher")


def estimate_profit(opportunity: Opportunity, flash_loan_fee: Decimal) -> Decimal:
    """Gross profit estimate before gas: loan * (spread - fee)."""
    return opportunity.loan_amount * (opportunity.spread - flash_loan_fee)


def gas_limit_for(estimate: int, multiplier: Decimal = GAS_LIMIT_MULTIPLIER) -> int:
    return int((Decimal(estimate) * multiplier).to_integral_value(rounding=ROUND_CEILING))


def gas_cost_eth(gas_units: int, gas_price_wei: int) -> Decimal:
    return Decimal(gas_units * gas_price_wei) / WEI_PER_ETH


@dataclass
class ExecutionResult:
    """Result of one dispatch."""
    trade_id: str
    channel: ExecutionChannel
    state: DispatchState
    profit: Decimal = Decimal("0")
    expected_profit: Decimal = Decimal("0")
    gas_cost: Decimal = Decimal("0")
    tx_hash: Optional[str] = None
    gas_used: Optional[int] = None
    target_block: Optional[int] = None
    error_code: Optional[ErrorCode] = None
    error_message: Optional[str] = None
    history: list = field(default_factory=list)

    @property
    def is_success(self) -> bool:
        return self.state == DispatchState.CONFIRMED

    def to_dict(self) -> Dict[str, Any]:
        return {
            "trade_id": self.trade_id,
            "channel": self.channel.value,
            "state": self.state.value,
            "is_success": self.is_success,
            "profit": str(self.profit),
            "expected_profit": str(self.expected_profit),
            "gas_cost": str(self.gas_cost),
            "tx_hash": self.tx_hash,
            "gas_used": self.gas_used,
            "target_block": self.target_block,
            "error_code": self.error_code.value if self.error_code else None,
            "error_message": self.error_message,
            "history": self.history,
        }


class ExecutionDispatcher:
    """
    Dispatches approved opportunities through the standard or private channel.

    writer: build_transaction / estimate_gas / get_block_number / sign / broadcast / wait_receipt
    relay:  simulate / submit
    Both can be overridden per call (simulation mode passes the fakes).
    """

    def __init__(
        self,
        registry: DexRegistry,
        contract_address: str,
        flash_loan_fee: Decimal,
        writer,
        relay,
        call_timeout_seconds: float,
        gas_multiplier: Decimal = GAS_LIMIT_MULTIPLIER,
    ):
        self.registry = registry
        self.contract_address = contract_address
        self.flash_loan_fee = flash_loan_fee
        self.writer = writer
        self.relay = relay
        self.call_timeout_seconds = call_timeout_seconds
        self.gas_multiplier = gas_multiplier
        self._lock = asyncio.Lock()

    async def dispatch(
        self,
        opportunity: Opportunity,
        writer=None,
        relay=None,
    ) -> ExecutionResult:
        async with self._lock:
            return await self._dispatch(opportunity, writer or self.writer, relay or self.relay)

    def _finish(
        self,
        sm: DispatchStateMachine,
        result: ExecutionResult,
        opportunity: Opportunity,
    ) -> ExecutionResult:
        result.state = sm.state
        result.history = sm.to_dict()["history"]
        level = logger.info if result.is_success else logger.warning
        level(
            f"Dispatch {result.state.value}: {opportunity.symbol}",
            extra={"context": {
                "trade_id": result.trade_id,
                "route": opportunity.symbol,
                "strategy": opportunity.strategy.value,
                "channel": result.channel.value,
                "stage": "dispatch",
                "profit": str(result.profit),
                "tx_hash": result.tx_hash,
                "error_code": result.error_code.value if result.error_code else None,
                "error": result.error_message,
            }},
        )
        return result

    def _fail(
        self,
        sm: DispatchStateMachine,
        result: ExecutionResult,
        opportunity: Opportunity,
        error: FlarbError,
        profit: Decimal = Decimal("0"),
    ) -> ExecutionResult:
        sm.fail(error.message)
        result.error_code = error.code
        result.error_message = error.message
        result.profit = profit
        return self._finish(sm, result, opportunity)

    async def _dispatch(self, opportunity: Opportunity, writer, relay) -> ExecutionResult:
        trade_id = make_trade_id(opportunity.id)
        sm = DispatchStateMachine(trade_id=trade_id)
        expected = estimate_profit(opportunity, self.flash_loan_fee)
        result = ExecutionResult(
            trade_id=trade_id,
            channel=opportunity.channel,
            state=sm.state,
            expected_profit=expected,
        )

        try:
            data = encode_flash_loan_call(opportunity, self.registry)
        except ExecutionError as e:
            return self._fail(sm, result, opportunity, e)

        built = await capture(
            writer.build_transaction(self.contract_address, data),
            ErrorCode.INFRA_RPC_ERROR, "buildTransaction", self.call_timeout_seconds,
        )
        if not built.ok:
            return self._fail(sm, result, opportunity, built.error)
        tx = built.value

        estimate = await capture(
            writer.estimate_gas(tx),
            ErrorCode.EXEC_GAS_ESTIMATE_FAILED, "estimateGas", self.call_timeout_seconds,
        )
        if not estimate.ok:
            return self._fail(sm, result, opportunity, estimate.error)
        tx["gas"] = gas_limit_for(estimate.value, self.gas_multiplier)

        try:
            signed = writer.sign(tx)
        except ExecutionError as e:
            return self._fail(sm, result, opportunity, e)
        sm.transition_to(DispatchState.SIGNED, reason=f"gas limit {tx['gas']}")

        if opportunity.channel is ExecutionChannel.PRIVATE:
            return await self._dispatch_private(
                sm, result, opportunity, writer, relay, signed, estimate.value, expected,
            )
        return await self._dispatch_standard(sm, result, opportunity, writer, signed, expected)

    async def _dispatch_standard(self, sm, result, opportunity, writer, signed, expected) -> ExecutionResult:
        sent = await capture(
            writer.broadcast(signed),
            ErrorCode.EXEC_BROADCAST_FAILED, "broadcast", self.call_timeout_seconds,
        )
        if not sent.ok:
            return self._fail(sm, result, opportunity, sent.error)
        result.tx_hash = sent.value
        sm.transition_to(DispatchState.SUBMITTED, reason="broadcast")

        receipt = await capture(
            writer.wait_receipt(sent.value),
            ErrorCode.EXEC_RECEIPT_TIMEOUT, "waitReceipt",
        )
        if not receipt.ok:
            worst_case = gas_cost_eth(signed.gas_limit, signed.gas_price_wei)
            result.gas_cost = worst_case
            return self._fail(sm, result, opportunity, receipt.error, profit=-worst_case)

        rcpt = receipt.value
        result.gas_used = rcpt.gas_used
        result.gas_cost = rcpt.gas_cost_eth
        if rcpt.succeeded:
            sm.transition_to(DispatchState.CONFIRMED, reason=f"block {rcpt.block_number}")
            result.profit = expected - result.gas_cost
            return self._finish(sm, result, opportunity)

        reverted = ExecutionError(
            code=ErrorCode.EXEC_REVERTED,
            message="Transaction reverted on chain",
            details={"tx_hash": rcpt.tx_hash},
        )
        return self._fail(sm, result, opportunity, reverted, profit=-result.gas_cost)

    async def _dispatch_private(
        self, sm, result, opportunity, writer, relay, signed, gas_estimate, expected,
    ) -> ExecutionResult:
        block = await capture(
            writer.get_block_number(),
            ErrorCode.INFRA_RPC_ERROR, "blockNumber", self.call_timeout_seconds,
        )
        if not block.ok:
            return self._fail(sm, result, opportunity, block.error)
        target = block.value + 1
        result.target_block = target

        sm.transition_to(DispatchState.SIMULATING, reason=f"target block {target}")
        simulation = await capture(
            relay.simulate([signed.raw], target),
            ErrorCode.RELAY_ERROR, "callBundle", self.call_timeout_seconds,
        )
        if not simulation.ok:
            return self._fail(sm, result, opportunity, simulation.error)
        if simulation.value.reverted:
            sm.transition_to(DispatchState.SIM_FAILED, reason=simulation.value.revert_reason or "reverted")
            result.error_code = ErrorCode.EXEC_SIMULATION_REVERTED
            result.error_message = f"Bundle simulation reverted: {simulation.value.revert_reason}"
            result.profit = Decimal("0")
            return self._finish(sm, result, opportunity)

        submitted = await capture(
            relay.submit([signed.raw], target),
            ErrorCode.RELAY_ERROR, "sendBundle", self.call_timeout_seconds,
        )
        if not submitted.ok:
            return self._fail(sm, result, opportunity, submitted.error)

        sm.transition_to(DispatchState.SUBMITTED, reason=f"bundle {submitted.value.bundle_hash}")
        result.tx_hash = signed.tx_hash
        result.gas_used = gas_estimate
        result.gas_cost = gas_cost_eth(gas_estimate, signed.gas_price_wei)
        # Optimistic: inclusion in block N+1 is not confirmed
        sm.transition_to(DispatchState.CONFIRMED, reason="bundle accepted by relay")
        result.profit = expected - result.gas_cost
        return self._finish(sm, result, opportunity)
