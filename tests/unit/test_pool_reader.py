# PATH: tests/unit/test_pool_reader.py
"""
Pool reader: ABI helpers, implied prices, per-tick cache.
"""

import asyncio
from decimal import Decimal
from fractions import Fraction

import pytest

from core.exceptions import ErrorCode, PoolError
from core.models import PoolReserves
from dex.pool_reader import (
    PoolReader,
    ReserveCache,
    decode_address,
    decode_reserves,
    encode_get_pair,
    encode_get_reserves,
    implied_price,
    implied_rate,
)
from fakes import FACTORY_1, ONE, TOKEN_A, TOKEN_B, FakeChain


class TestEncoding:
    def test_encode_get_pair_layout(self):
        data = encode_get_pair(TOKEN_A, TOKEN_B)
        assert data.startswith("0xe6a43905")
        # 0x + selector(8) + 2 words
        assert len(data) == 2 + 8 + 128
        assert data.endswith(TOKEN_B[2:])

    def test_encode_get_reserves(self):
        assert encode_get_reserves() == "0x0902f1ac"

    def test_decode_address(self):
        word = "0x" + TOKEN_A[2:].zfill(64)
        assert decode_address(word) == TOKEN_A

    def test_decode_reserves(self):
        raw = "0x" + hex(5)[2:].zfill(64) + hex(7)[2:].zfill(64) + "0" * 64
        assert decode_reserves(raw) == (5, 7)

    def test_short_reserves_raise_decode_error(self):
        with pytest.raises(PoolError) as exc_info:
            decode_reserves("0x1234")
        assert exc_info.value.code == ErrorCode.POOL_DECODE_ERROR

    def test_empty_address_raises_decode_error(self):
        with pytest.raises(PoolError):
            decode_address("0x")


class TestImpliedPrice:
    def setup_method(self):
        self.reserves = PoolReserves(
            pool_address="0x" + "01" * 20,
            reserve0=100 * ONE,
            reserve1=10_000 * ONE,
            token0=TOKEN_A,
        )

    def test_price_of_token0(self):
        assert implied_price(self.reserves, TOKEN_A) == Decimal(100)

    def test_price_of_token1(self):
        assert implied_price(self.reserves, TOKEN_B) == Decimal("0.01")

    def test_orientation_ignores_case(self):
        assert implied_price(self.reserves, TOKEN_A.upper().replace("0X", "0x")) == Decimal(100)

    def test_zero_base_reserve_raises(self):
        empty = PoolReserves("0x" + "01" * 20, 0, 5, TOKEN_A)
        with pytest.raises(PoolError) as exc_info:
            implied_price(empty, TOKEN_A)
        assert exc_info.value.code == ErrorCode.POOL_NO_LIQUIDITY

    def test_rate_is_exact(self):
        thirds = PoolReserves("0x" + "01" * 20, 3, 1, TOKEN_A)
        assert implied_rate(thirds, TOKEN_A) == Fraction(1, 3)
        assert implied_rate(thirds, TOKEN_B) == Fraction(3)


class TestPoolReader:
    @pytest.mark.asyncio
    async def test_reads_reserves_in_canonical_order(self):
        chain = FakeChain()
        pair = chain.add_pool(FACTORY_1, TOKEN_B, TOKEN_A, 10_000 * ONE, 100 * ONE)
        reader = PoolReader(chain)

        result = await reader.get_pool_reserves(FACTORY_1, TOKEN_A, TOKEN_B)

        assert result.ok
        assert result.value.pool_address == pair
        assert result.value.token0 == TOKEN_A
        assert result.value.reserve_of(TOKEN_A) == 100 * ONE
        assert result.value.reserve_of(TOKEN_B) == 10_000 * ONE

    @pytest.mark.asyncio
    async def test_missing_pair_is_not_found(self):
        reader = PoolReader(FakeChain())

        result = await reader.get_pair_address(FACTORY_1, TOKEN_A, TOKEN_B)

        assert not result.ok
        assert result.error.code == ErrorCode.POOL_NOT_FOUND

    @pytest.mark.asyncio
    async def test_zero_reserves_is_no_liquidity(self):
        chain = FakeChain()
        chain.add_pool(FACTORY_1, TOKEN_A, TOKEN_B, 0, 100 * ONE)

        result = await PoolReader(chain).get_pool_reserves(FACTORY_1, TOKEN_A, TOKEN_B)

        assert not result.ok
        assert result.error.code == ErrorCode.POOL_NO_LIQUIDITY

    @pytest.mark.asyncio
    async def test_rpc_failure_is_returned_not_raised(self):
        chain = FakeChain()
        chain.failing.add(FACTORY_1)

        result = await PoolReader(chain).get_pair_address(FACTORY_1, TOKEN_A, TOKEN_B)

        assert not result.ok
        assert result.error.code == ErrorCode.INFRA_RPC_ERROR

    @pytest.mark.asyncio
    async def test_concurrent_reads_share_one_fetch(self):
        chain = FakeChain()
        chain.add_pool(FACTORY_1, TOKEN_A, TOKEN_B, 100 * ONE, 10_000 * ONE)
        cache = ReserveCache()
        reader = PoolReader(chain, cache)

        results = await asyncio.gather(
            reader.get_pool_reserves(FACTORY_1, TOKEN_A, TOKEN_B),
            reader.get_pool_reserves(FACTORY_1, TOKEN_B, TOKEN_A),
        )

        assert all(r.ok for r in results)
        get_pair_calls = [c for c in chain.calls if c[1].startswith("0xe6a43905")]
        assert len(get_pair_calls) == 1
        # getPair + getReserves + token0
        assert len(chain.calls) == 3
        assert cache.hits == 2

    @pytest.mark.asyncio
    async def test_fresh_cache_reads_again(self):
        chain = FakeChain()
        chain.add_pool(FACTORY_1, TOKEN_A, TOKEN_B, 100 * ONE, 10_000 * ONE)

        await PoolReader(chain, ReserveCache()).get_pool_reserves(FACTORY_1, TOKEN_A, TOKEN_B)
        await PoolReader(chain, ReserveCache()).get_pool_reserves(FACTORY_1, TOKEN_A, TOKEN_B)

        assert len(chain.calls) == 6
