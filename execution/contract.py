"""
execution/contract.py - Flash-loan contract call encoding.

The contract is pre-deployed; only these entry points are used:

    executeFlashLoanPairwiseInterDEX(address tokenA, address tokenB,
                                     address dex1, address dex2, uint256 loanAmount)
    executeFlashLoanTriangular(address tokenA, address tokenB, address tokenC,
                               address dex, uint256 loanAmount)

DEX arguments are router addresses in trade-path order. loanAmount is wei.
"""

from decimal import ROUND_DOWN, Decimal

from eth_abi import encode
from eth_utils import function_signature_to_4byte_selector, to_checksum_address, to_hex

from core.constants import WEI_PER_ETH, Strategy
from core.exceptions import ErrorCode, ExecutionError
from core.models import Opportunity
from dex.registry import DexRegistry

PAIRWISE_SIGNATURE = "executeFlashLoanPairwiseInterDEX(address,address,address,address,uint256)"
TRIANGULAR_SIGNATURE = "executeFlashLoanTriangular(address,address,address,address,uint256)"

PAIRWISE_SELECTOR = function_signature_to_4byte_selector(PAIRWISE_SIGNATURE)
TRIANGULAR_SELECTOR = function_signature_to_4byte_selector(TRIANGULAR_SIGNATURE)


def eth_to_wei(amount: Decimal) -> int:
    return int((amount * WEI_PER_ETH).to_integral_value(rounding=ROUND_DOWN))


def encode_pairwise_call(
    token_a: str,
    token_b: str,
    dex1_router: str,
    dex2_router: str,
    loan_amount_wei: int,
) -> str:
    args = encode(
        ["address", "address", "address", "address", "uint256"],
        [
            to_checksum_address(token_a),
            to_checksum_address(token_b),
            to_checksum_address(dex1_router),
            to_checksum_address(dex2_router),
            loan_amount_wei,
        ],
    )
    return to_hex(PAIRWISE_SELECTOR + args)


def encode_triangular_call(
    token_a: str,
    token_b: str,
    token_c: str,
    dex_router: str,
    loan_amount_wei: int,
) -> str:
    args = encode(
        ["address", "address", "address", "address", "uint256"],
        [
            to_checksum_address(token_a),
            to_checksum_address(token_b),
            to_checksum_address(token_c),
            to_checksum_address(dex_router),
            loan_amount_wei,
        ],
    )
    return to_hex(TRIANGULAR_SELECTOR + args)


def encode_flash_loan_call(opportunity: Opportunity, registry: DexRegistry) -> str:
    """
    Encode the contract call for an approved opportunity.

    Raises:
        ExecutionError: unknown DEX or non-positive loan amount
    """
    loan_wei = eth_to_wei(opportunity.loan_amount)
    if loan_wei <= 0:
        raise ExecutionError(
            code=ErrorCode.EXEC_ENCODE_FAILED,
            message="Loan amount must be positive",
            details={"opportunity_id": opportunity.id},
        )

    route = opportunity.route
    if route.strategy is Strategy.PAIRWISE:
        path = opportunity.trade_path or route.dexes
        routers = []
        for name in path:
            dex = registry.get(name)
            if dex is None:
                raise ExecutionError(
                    code=ErrorCode.EXEC_ENCODE_FAILED,
                    message=f"Unknown DEX {name}",
                    details={"opportunity_id": opportunity.id},
                )
            routers.append(dex.router)
        return encode_pairwise_call(route.token_a, route.token_b, routers[0], routers[1], loan_wei)

    dex = registry.get(route.dexes[0])
    if dex is None:
        raise ExecutionError(
            code=ErrorCode.EXEC_ENCODE_FAILED,
            message=f"Unknown DEX {route.dexes[0]}",
            details={"opportunity_id": opportunity.id},
        )
    return encode_triangular_call(route.token_a, route.token_b, route.token_c, dex.router, loan_wei)
