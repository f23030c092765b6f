"""
strategy/scanner.py - Market scanner (pairwise and triangular).

PAIRWISE
========
Same token pair on two DEXes, both prices oriented with base = tokenA:
    spread = |p1 - p2| / min(p1, p2)
Emit iff spread > min_spread. Symmetric in (p1, p2).
Execution path buys tokenA on the cheaper DEX and sells on the dearer one.

TRIANGULAR
==========
Cycle A -> B -> C -> A on one DEX:
    price_ab = price of B in A
    price_bc = price of C in B
    price_ca = price of C in A
    r = (1 / price_ab) * (1 / price_bc) * price_ca
Emit iff r > 1 + min_spread, with spread = |1 - r|.
r is computed exactly from the integer reserves, so a balanced cycle
(r = 1) never emits.

Routes are scanned concurrently and fanned in before any decision is made.
A failing route is skipped for this cycle and never affects the others.
"""

import asyncio
from dataclasses import dataclass, field
from decimal import Decimal
from fractions import Fraction
from typing import Optional, Union

from chains.providers import RPCProvider
from core.constants import (
    VOLATILITY_HIGH_RATIO,
    VOLATILITY_MODERATE_RATIO,
    WEI_PER_GWEI,
    Strategy,
    Volatility,
)
from core.exceptions import ErrorCode, PoolError
from core.logging import get_logger
from core.models import MarketContext, Opportunity, PoolReserves, TokenRoute, make_opportunity_id
from core.result import capture
from dex.pool_reader import PoolReader, implied_price, implied_rate, to_decimal
from dex.registry import DexRegistry

logger = get_logger("flarb.scanner")

Rate = Union[Decimal, Fraction]


# =============================================================================
# PURE MATH
# =============================================================================

def pairwise_spread(price_1: Decimal, price_2: Decimal) -> Decimal:
    """Relative spread between two prices of the same pair."""
    low = min(price_1, price_2)
    if low <= 0:
        raise ValueError("prices must be positive")
    return abs(price_1 - price_2) / low


def triangular_ratio(price_ab: Rate, price_bc: Rate, price_ca: Rate) -> Fraction:
    """
    Round-trip rate of the A -> B -> C -> A cycle.

    Computed exactly so that a balanced cycle is exactly 1.
    """
    ab, bc, ca = Fraction(price_ab), Fraction(price_bc), Fraction(price_ca)
    if ab <= 0 or bc <= 0 or ca <= 0:
        raise ValueError("prices must be positive")
    return ca / (ab * bc)


def is_pairwise_opportunity(spread: Decimal, min_spread: Decimal) -> bool:
    return spread > min_spread


def is_triangular_opportunity(ratio: Rate, min_spread: Decimal) -> bool:
    return Fraction(ratio) > 1 + Fraction(min_spread)


def format_units(raw: int, decimals: int = 18) -> str:
    value = Decimal(raw) / (Decimal(10) ** decimals)
    return f"{value.quantize(Decimal('0.01'))}"


# =============================================================================
# SCAN RESULTS
# =============================================================================

@dataclass
class RouteScan:
    route: TokenRoute
    opportunity: Optional[Opportunity] = None
    skip_reason: Optional[str] = None
    stage: Optional[str] = None


@dataclass
class ScanResult:
    opportunities: list[Opportunity] = field(default_factory=list)
    skipped: dict[str, str] = field(default_factory=dict)
    routes_scanned: int = 0

    def to_dict(self) -> dict:
        return {
            "routes_scanned": self.routes_scanned,
            "opportunities": len(self.opportunities),
            "skipped": dict(self.skipped),
        }


# =============================================================================
# SCANNER
# =============================================================================

class MarketScanner:
    """
    Scans configured routes for price discrepancies.

    Usage:
        scanner = MarketScanner(DexRegistry.for_chain("polygon"))
        result = await scanner.scan(routes, PoolReader(provider), cycle=1, now=clock.now())
    """

    def __init__(self, registry: DexRegistry):
        self.registry = registry

    async def scan(
        self,
        routes: list[TokenRoute],
        reader: PoolReader,
        cycle: int,
        now: float,
    ) -> ScanResult:
        tasks = [self._scan_route(route, reader) for route in routes]
        outcomes = await asyncio.gather(*tasks, return_exceptions=True)

        result = ScanResult(routes_scanned=len(routes))
        for route, outcome in zip(routes, outcomes):
            if isinstance(outcome, BaseException):
                if isinstance(outcome, asyncio.CancelledError):
                    raise outcome
                logger.error(
                    f"Route scan crashed: {outcome}",
                    extra={"context": {
                        "route": route.symbol,
                        "strategy": route.strategy.value,
                        "stage": "scan",
                    }},
                    exc_info=outcome,
                )
                result.skipped[route.symbol] = f"scan error: {outcome}"
                continue
            if outcome.opportunity is None:
                if outcome.skip_reason:
                    result.skipped[route.symbol] = outcome.skip_reason
                continue
            result.opportunities.append(outcome.opportunity)

        for index, opportunity in enumerate(result.opportunities):
            opportunity.id = make_opportunity_id(cycle, now, index)
            opportunity.timestamp = now

        logger.info(
            "Scan complete",
            extra={"context": {"cycle": cycle, **result.to_dict()}},
        )
        return result

    def _skip(self, route: TokenRoute, stage: str, reason: str) -> RouteScan:
        logger.warning(
            f"Route skipped: {reason}",
            extra={"context": {
                "route": route.symbol,
                "strategy": route.strategy.value,
                "stage": stage,
            }},
        )
        return RouteScan(route=route, skip_reason=reason, stage=stage)

    async def _scan_route(self, route: TokenRoute, reader: PoolReader) -> RouteScan:
        errors = route.validation_errors()
        if errors:
            return self._skip(route, "config", "; ".join(errors))
        if route.strategy is Strategy.PAIRWISE:
            return await self._scan_pairwise(route, reader)
        return await self._scan_triangular(route, reader)

    async def _scan_pairwise(self, route: TokenRoute, reader: PoolReader) -> RouteScan:
        dexes = [self.registry.get(name) for name in route.dexes]
        for name, dex in zip(route.dexes, dexes):
            if dex is None:
                return self._skip(route, "config", f"unknown dex {name}")

        token_a, token_b = route.token_a, route.token_b
        reads = await asyncio.gather(*(
            reader.get_pool_reserves(dex.factory, token_a, token_b) for dex in dexes
        ))
        for dex, read in zip(dexes, reads):
            if not read.ok:
                return self._skip(route, "reserves", f"{dex.name}: {read.error}")

        try:
            prices = [implied_price(read.value, token_a) for read in reads]
        except PoolError as e:
            return self._skip(route, "price", str(e))

        spread = pairwise_spread(prices[0], prices[1])
        logger.debug(
            f"{route.symbol} spread {spread:.6f}",
            extra={"context": {"route": route.symbol, "prices": [str(p) for p in prices]}},
        )
        if not is_pairwise_opportunity(spread, route.min_spread):
            return RouteScan(route=route)

        cheap, dear = (0, 1) if prices[0] <= prices[1] else (1, 0)
        base_symbol = route.token_symbols[0]
        return RouteScan(route=route, opportunity=Opportunity(
            id="",
            route=route,
            spread=spread,
            liquidity=self._describe_liquidity(
                [(dex.name, read.value) for dex, read in zip(dexes, reads)],
                token_a,
                base_symbol,
            ),
            timestamp=0.0,
            trade_path=(dexes[cheap].name, dexes[dear].name),
            prices={dex.name: str(price) for dex, price in zip(dexes, prices)},
        ))

    async def _scan_triangular(self, route: TokenRoute, reader: PoolReader) -> RouteScan:
        dex = self.registry.get(route.dexes[0])
        if dex is None:
            return self._skip(route, "config", f"unknown dex {route.dexes[0]}")

        a, b, c = route.token_a, route.token_b, route.token_c
        legs = (("AB", a, b), ("BC", b, c), ("CA", c, a))
        reads = await asyncio.gather(*(
            reader.get_pool_reserves(dex.factory, x, y) for _, x, y in legs
        ))
        for (leg, _, _), read in zip(legs, reads):
            if not read.ok:
                return self._skip(route, "reserves", f"{dex.name} {leg}: {read.error}")

        r_ab, r_bc, r_ca = (read.value for read in reads)
        try:
            price_ab = implied_rate(r_ab, b)
            price_bc = implied_rate(r_bc, c)
            price_ca = implied_rate(r_ca, c)
        except PoolError as e:
            return self._skip(route, "price", str(e))

        ratio = triangular_ratio(price_ab, price_bc, price_ca)
        if not is_triangular_opportunity(ratio, route.min_spread):
            return RouteScan(route=route)

        symbols = route.token_symbols
        return RouteScan(route=route, opportunity=Opportunity(
            id="",
            route=route,
            spread=to_decimal(abs(1 - ratio)),
            liquidity=self._describe_liquidity(
                [(f"{dex.name} {leg}", r) for (leg, _, _), r in zip(legs, (r_ab, r_bc, r_ca))],
                a,
                symbols[0],
            ),
            timestamp=0.0,
            trade_path=tuple(symbols),
            prices={
                "AB": str(to_decimal(price_ab)),
                "BC": str(to_decimal(price_bc)),
                "CA": str(to_decimal(price_ca)),
                "ratio": str(to_decimal(ratio)),
            },
        ))

    @staticmethod
    def _describe_liquidity(
        pools: list[tuple[str, PoolReserves]],
        token: str,
        symbol: str,
    ) -> str:
        """Human-readable depth: base-token reserve where the pool holds it."""
        parts = []
        for label, reserves in pools:
            if token.lower() == reserves.token0.lower():
                parts.append(f"{label}: {format_units(reserves.reserve0)} {symbol}")
            else:
                parts.append(
                    f"{label}: {format_units(reserves.reserve0)} / {format_units(reserves.reserve1)}"
                )
        return ", ".join(parts)


# =============================================================================
# MARKET CONTEXT
# =============================================================================

def classify_volatility(gas_used: int, gas_limit: int) -> Volatility:
    if gas_limit <= 0:
        return Volatility.UNKNOWN
    ratio = gas_used / gas_limit
    if ratio > VOLATILITY_HIGH_RATIO:
        return Volatility.HIGH
    if ratio > VOLATILITY_MODERATE_RATIO:
        return Volatility.MODERATE
    return Volatility.LOW


async def read_market_context(
    provider: RPCProvider,
    timeout_seconds: float,
    sentiment: Optional[dict] = None,
) -> MarketContext:
    """Gas price and block-fullness volatility; failures fall back to unknown."""
    context = MarketContext(sentiment=dict(sentiment or {}))

    gas = await capture(provider.get_gas_price(), ErrorCode.INFRA_RPC_ERROR, "gasPrice", timeout_seconds)
    if gas.ok:
        context.gas_price_gwei = (Decimal(gas.value) / WEI_PER_GWEI).quantize(Decimal("0.01"))
    else:
        logger.warning(
            f"Gas price unavailable: {gas.error}",
            extra={"context": {"stage": "market_context"}},
        )

    block = await capture(provider.get_block("latest"), ErrorCode.INFRA_RPC_ERROR, "latestBlock", timeout_seconds)
    if block.ok:
        try:
            context.volatility = classify_volatility(
                int(block.value["gasUsed"], 16),
                int(block.value["gasLimit"], 16),
            )
        except (KeyError, TypeError, ValueError):
            context.volatility = Volatility.UNKNOWN
    return context
