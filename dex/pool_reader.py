"""
dex/pool_reader.py - Uniswap-V2 style pair resolution and reserve reads.

Reads are memoized per tick through ReserveCache: a pair address or reserve
snapshot is fetched at most once per tick, and concurrent requests for the
same key share the in-flight read. Failures are returned as Result values
and are never retried here; the scanner skips the route for this cycle.
"""

import asyncio
from decimal import Decimal
from fractions import Fraction
from typing import Awaitable, Callable, Optional

from chains.providers import RPCProvider
from core.constants import ZERO_ADDRESS
from core.exceptions import ErrorCode, PoolError
from core.logging import get_logger
from core.models import PoolReserves
from core.result import Result, capture

logger = get_logger("flarb.pool_reader")


# =============================================================================
# ABI ENCODING (UniswapV2Factory / UniswapV2Pair)
# =============================================================================

# keccak256("getPair(address,address)")[:4]
SELECTOR_GET_PAIR = "e6a43905"
# keccak256("getReserves()")[:4]
SELECTOR_GET_RESERVES = "0902f1ac"
# keccak256("token0()")[:4]
SELECTOR_TOKEN0 = "0dfe1681"


def _strip_0x(value: str) -> str:
    return value[2:] if value.startswith("0x") else value


def encode_get_pair(token_a: str, token_b: str) -> str:
    """Encode factory.getPair(tokenA, tokenB)."""
    a_padded = _strip_0x(token_a.lower()).zfill(64)
    b_padded = _strip_0x(token_b.lower()).zfill(64)
    return f"0x{SELECTOR_GET_PAIR}{a_padded}{b_padded}"


def encode_get_reserves() -> str:
    return f"0x{SELECTOR_GET_RESERVES}"


def encode_token0() -> str:
    return f"0x{SELECTOR_TOKEN0}"


def decode_address(hex_result: str) -> str:
    """Decode a single ABI-encoded address word."""
    data = _strip_0x(hex_result or "")
    if len(data) < 64:
        raise PoolError(
            code=ErrorCode.POOL_DECODE_ERROR,
            message=f"Address response too short: {len(data)} chars",
            details={"raw": (hex_result or "")[:100]},
        )
    return "0x" + data[24:64].lower()


def decode_reserves(hex_result: str) -> tuple[int, int]:
    """
    Decode getReserves() -> (uint112 reserve0, uint112 reserve1, uint32 ts).

    Returns:
        (reserve0, reserve1)
    """
    data = _strip_0x(hex_result or "")
    if len(data) < 128:
        raise PoolError(
            code=ErrorCode.POOL_DECODE_ERROR,
            message=f"Reserves response too short: {len(data)} chars",
            details={"raw": (hex_result or "")[:100]},
        )
    return int(data[0:64], 16), int(data[64:128], 16)


# =============================================================================
# PRICES
# =============================================================================

def implied_rate(reserves: PoolReserves, base_token: str) -> Fraction:
    """
    Exact price of base_token denominated in the other token of the pair:
    reserveOf(other) / reserveOf(base).
    """
    if base_token.lower() == reserves.token0.lower():
        base, other = reserves.reserve0, reserves.reserve1
    else:
        base, other = reserves.reserve1, reserves.reserve0
    if base == 0:
        raise PoolError(
            code=ErrorCode.POOL_NO_LIQUIDITY,
            message="Zero reserve on base side",
            details={"pool": reserves.pool_address},
        )
    return Fraction(other, base)


def to_decimal(value: Fraction) -> Decimal:
    """Display form of an exact rate; rounded to the Decimal context."""
    return Decimal(value.numerator) / Decimal(value.denominator)


def implied_price(reserves: PoolReserves, base_token: str) -> Decimal:
    """Decimal form of implied_rate."""
    return to_decimal(implied_rate(reserves, base_token))


# =============================================================================
# PER-TICK CACHE
# =============================================================================

def _pair_key(factory: str, token_a: str, token_b: str) -> tuple[str, str, str]:
    a, b = sorted((token_a.lower(), token_b.lower()))
    return factory.lower(), a, b


class ReserveCache:
    """
    Per-tick memo of pair addresses and reserve snapshots.

    A fresh cache is created for each tick, so nothing outlives the tick.
    """

    def __init__(self):
        self._pairs: dict[tuple[str, str, str], asyncio.Future] = {}
        self._reserves: dict[str, asyncio.Future] = {}
        self.hits = 0
        self.misses = 0

    async def _memo(
        self,
        table: dict,
        key,
        fetch: Callable[[], Awaitable[Result]],
    ) -> Result:
        future = table.get(key)
        if future is None:
            self.misses += 1
            future = asyncio.ensure_future(fetch())
            table[key] = future
        else:
            self.hits += 1
        return await asyncio.shield(future)

    async def pair(self, factory: str, token_a: str, token_b: str, fetch) -> Result:
        return await self._memo(self._pairs, _pair_key(factory, token_a, token_b), fetch)

    async def reserves(self, pool: str, fetch) -> Result:
        return await self._memo(self._reserves, pool.lower(), fetch)


# =============================================================================
# READER
# =============================================================================

class PoolReader:
    """
    Reads pair addresses and reserves over the failover provider.

    Usage:
        reader = PoolReader(provider, ReserveCache())
        pair = await reader.get_pair_address(factory, token_a, token_b)
        reserves = await reader.get_reserves(pair.value)
    """

    def __init__(
        self,
        provider: RPCProvider,
        cache: Optional[ReserveCache] = None,
        timeout_seconds: Optional[float] = None,
    ):
        self.provider = provider
        self.cache = cache or ReserveCache()
        self.timeout_seconds = timeout_seconds

    async def _fetch_pair(self, factory: str, token_a: str, token_b: str) -> Result[str]:
        result = await capture(
            self.provider.eth_call(factory, encode_get_pair(token_a, token_b)),
            ErrorCode.INFRA_RPC_ERROR,
            "getPair",
            timeout=self.timeout_seconds,
        )
        if not result.ok:
            return result
        try:
            pair = decode_address(result.value)
        except PoolError as e:
            return Result.failure(e)
        if pair == ZERO_ADDRESS:
            return Result.failure(PoolError(
                code=ErrorCode.POOL_NOT_FOUND,
                message="Pair does not exist on factory",
                details={"factory": factory, "token_a": token_a, "token_b": token_b},
            ))
        return Result.success(pair)

    async def _fetch_reserves(self, pool: str) -> Result[PoolReserves]:
        reserves_call = await capture(
            self.provider.eth_call(pool, encode_get_reserves()),
            ErrorCode.INFRA_RPC_ERROR,
            "getReserves",
            timeout=self.timeout_seconds,
        )
        if not reserves_call.ok:
            return reserves_call
        token0_call = await capture(
            self.provider.eth_call(pool, encode_token0()),
            ErrorCode.INFRA_RPC_ERROR,
            "token0",
            timeout=self.timeout_seconds,
        )
        if not token0_call.ok:
            return token0_call

        try:
            reserve0, reserve1 = decode_reserves(reserves_call.value)
            token0 = decode_address(token0_call.value)
        except PoolError as e:
            return Result.failure(e)

        if reserve0 == 0 or reserve1 == 0:
            return Result.failure(PoolError(
                code=ErrorCode.POOL_NO_LIQUIDITY,
                message="Pool has zero reserves",
                details={"pool": pool},
            ))
        return Result.success(PoolReserves(
            pool_address=pool,
            reserve0=reserve0,
            reserve1=reserve1,
            token0=token0,
        ))

    async def get_pair_address(self, factory: str, token_a: str, token_b: str) -> Result[str]:
        return await self.cache.pair(
            factory, token_a, token_b,
            lambda: self._fetch_pair(factory, token_a, token_b),
        )

    async def get_reserves(self, pool: str) -> Result[PoolReserves]:
        return await self.cache.reserves(pool, lambda: self._fetch_reserves(pool))

    async def get_pool_reserves(self, factory: str, token_a: str, token_b: str) -> Result[PoolReserves]:
        """Resolve the pair then read its reserves."""
        pair = await self.get_pair_address(factory, token_a, token_b)
        if not pair.ok:
            return pair
        return await self.get_reserves(pair.value)
