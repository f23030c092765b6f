# PATH: tests/unit/test_contract.py
"""
Flash-loan contract call encoding.
"""

from decimal import Decimal

import pytest
from eth_abi import decode
from eth_utils import to_hex

from core.exceptions import ErrorCode, ExecutionError
from execution.contract import (
    PAIRWISE_SELECTOR,
    TRIANGULAR_SELECTOR,
    encode_flash_loan_call,
    eth_to_wei,
)
from fakes import (
    ROUTER_1,
    ROUTER_2,
    TOKEN_A,
    TOKEN_B,
    TOKEN_C,
    make_opportunity,
    make_registry,
    triangular_route,
)

ARG_TYPES = ["address", "address", "address", "address", "uint256"]


def _decode(data: str, selector: bytes) -> list:
    assert data.startswith(to_hex(selector))
    raw = bytes.fromhex(data[2 + 8:])
    return [v.lower() if isinstance(v, str) else v for v in decode(ARG_TYPES, raw)]


def test_eth_to_wei_truncates():
    assert eth_to_wei(Decimal("1.5")) == 15 * 10**17
    assert eth_to_wei(Decimal("0.0000000000000000019")) == 1


def test_pairwise_routers_follow_trade_path():
    opp = make_opportunity(loan_amount="2")
    opp.trade_path = ("DexTwo", "DexOne")

    args = _decode(encode_flash_loan_call(opp, make_registry()), PAIRWISE_SELECTOR)

    assert args == [TOKEN_A, TOKEN_B, ROUTER_2, ROUTER_1, 2 * 10**18]


def test_triangular_call():
    opp = make_opportunity(route=triangular_route(), loan_amount="0.5")

    args = _decode(encode_flash_loan_call(opp, make_registry()), TRIANGULAR_SELECTOR)

    assert args == [TOKEN_A, TOKEN_B, TOKEN_C, ROUTER_1, 5 * 10**17]


def test_selectors_differ():
    assert PAIRWISE_SELECTOR != TRIANGULAR_SELECTOR
    assert len(PAIRWISE_SELECTOR) == 4


@pytest.mark.parametrize("loan", ["0", "-1"])
def test_non_positive_loan_rejected(loan):
    with pytest.raises(ExecutionError) as exc_info:
        encode_flash_loan_call(make_opportunity(loan_amount=loan), make_registry())
    assert exc_info.value.code == ErrorCode.EXEC_ENCODE_FAILED


def test_unknown_dex_rejected():
    opp = make_opportunity()
    opp.trade_path = ("DexOne", "Elsewhere")
    with pytest.raises(ExecutionError) as exc_info:
        encode_flash_loan_call(opp, make_registry())
    assert "Elsewhere" in exc_info.value.message
