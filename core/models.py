# PATH: core/models.py
"""
Core data models for FLARB.

ID CONTRACT
===========
  Opportunity: opp_{cycle}_{YYYYMMDD}_{HHMMSS}_{index}
  Trade:       trade_{opportunity_id}

Both are deterministic given (cycle, timestamp, index).

MONEY CONTRACT
==============
Prices, spreads, ETH amounts and PnL are Decimal and serialize as str.
Probabilities and latencies are float. Timestamps are Unix seconds.
"""

import copy
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Optional

from core.constants import (
    EndpointStatus,
    ExecutionChannel,
    RiskMode,
    Strategy,
    TradeStatus,
    Volatility,
)


def make_opportunity_id(cycle: int, timestamp: float, index: int) -> str:
    """Build a deterministic opportunity id (local time for readability)."""
    stamp = datetime.fromtimestamp(timestamp).strftime("%Y%m%d_%H%M%S")
    return f"opp_{cycle}_{stamp}_{index}"


def make_trade_id(opportunity_id: str) -> str:
    return f"trade_{opportunity_id}"


# =============================================================================
# ROUTES / POOLS
# =============================================================================

@dataclass(frozen=True)
class TokenRoute:
    """
    A configured arbitrage route.

    Pairwise routes name two DEXes and tokenA/tokenB.
    Triangular routes name one DEX and tokenA/tokenB/tokenC.
    """
    symbol: str
    strategy: Strategy
    dexes: tuple[str, ...]
    addresses: Dict[str, str]
    min_spread: Decimal
    chain: str = "polygon"

    @property
    def token_a(self) -> str:
        return self.addresses["tokenA"]

    @property
    def token_b(self) -> str:
        return self.addresses["tokenB"]

    @property
    def token_c(self) -> Optional[str]:
        return self.addresses.get("tokenC")

    @property
    def token_symbols(self) -> list[str]:
        return self.symbol.split("/")

    def validation_errors(self) -> list[str]:
        """Return a list of problems; empty when the route is usable."""
        errors = []
        if self.min_spread < 0:
            errors.append("min_spread must be >= 0")
        if self.strategy is Strategy.PAIRWISE:
            if len(self.dexes) != 2:
                errors.append("pairwise route needs exactly 2 dexes")
            roles = ("tokenA", "tokenB")
        else:
            if len(self.dexes) != 1:
                errors.append("triangular route needs exactly 1 dex")
            roles = ("tokenA", "tokenB", "tokenC")
        for role in roles:
            if not self.addresses.get(role):
                errors.append(f"missing address for {role}")
        return errors

    def to_dict(self) -> Dict[str, Any]:
        return {
            "symbol": self.symbol,
            "strategy": self.strategy.value,
            "dexes": list(self.dexes),
            "addresses": dict(self.addresses),
            "min_spread": str(self.min_spread),
            "chain": self.chain,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TokenRoute":
        return cls(
            symbol=data["symbol"],
            strategy=Strategy.parse(data["strategy"]),
            dexes=tuple(data.get("dexes", [])),
            addresses=dict(data.get("addresses", {})),
            min_spread=Decimal(str(data.get("min_spread", "0"))),
            chain=data.get("chain", "polygon"),
        )


@dataclass(frozen=True)
class PoolReserves:
    """Reserves of a constant-product pair plus its canonical token order."""
    pool_address: str
    reserve0: int
    reserve1: int
    token0: str

    def reserve_of(self, token: str) -> int:
        if token.lower() == self.token0.lower():
            return self.reserve0
        return self.reserve1

    def to_dict(self) -> Dict[str, Any]:
        return {
            "pool_address": self.pool_address,
            "reserve0": str(self.reserve0),
            "reserve1": str(self.reserve1),
            "token0": self.token0,
        }


# =============================================================================
# OPPORTUNITY / TRADE
# =============================================================================

@dataclass
class Opportunity:
    """
    A scanned price discrepancy.

    Created by the scanner, enriched once by the decision gate
    (p_success, loan_amount, rationale, channel), then treated as immutable.
    """
    id: str
    route: TokenRoute
    spread: Decimal
    liquidity: str
    timestamp: float
    trade_path: tuple[str, ...] = ()
    prices: Dict[str, str] = field(default_factory=dict)

    # Filled by the decision gate
    p_success: Optional[float] = None
    loan_amount: Decimal = Decimal("0")
    rationale: str = ""
    channel: ExecutionChannel = ExecutionChannel.STANDARD
    similar_trades: str = ""

    @property
    def strategy(self) -> Strategy:
        return self.route.strategy

    @property
    def symbol(self) -> str:
        return self.route.symbol

    def snapshot(self) -> "Opportunity":
        """Deep copy used when an opportunity is frozen into a Trade."""
        return copy.deepcopy(self)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "route": self.route.to_dict(),
            "symbol": self.symbol,
            "strategy": self.strategy.value,
            "spread": str(self.spread),
            "liquidity": self.liquidity,
            "timestamp": self.timestamp,
            "trade_path": list(self.trade_path),
            "prices": dict(self.prices),
            "p_success": self.p_success,
            "loan_amount": str(self.loan_amount),
            "rationale": self.rationale,
            "channel": self.channel.value,
            "similar_trades": self.similar_trades,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Opportunity":
        return cls(
            id=data["id"],
            route=TokenRoute.from_dict(data["route"]),
            spread=Decimal(str(data["spread"])),
            liquidity=data.get("liquidity", ""),
            timestamp=float(data["timestamp"]),
            trade_path=tuple(data.get("trade_path", [])),
            prices=dict(data.get("prices", {})),
            p_success=data.get("p_success"),
            loan_amount=Decimal(str(data.get("loan_amount", "0"))),
            rationale=data.get("rationale", ""),
            channel=ExecutionChannel(data.get("channel", ExecutionChannel.STANDARD.value)),
            similar_trades=data.get("similar_trades", ""),
        )


@dataclass(frozen=True)
class Trade:
    """
    Outcome of one executed decision.

    Created exactly once; never updated or deleted.
    """
    id: str
    opportunity: Opportunity
    status: TradeStatus
    profit: Decimal
    timestamp: float
    channel: ExecutionChannel = ExecutionChannel.STANDARD
    tx_hash: Optional[str] = None
    gas_cost: Decimal = Decimal("0")
    post_mortem: Optional[str] = None

    @property
    def strategy(self) -> Strategy:
        return self.opportunity.strategy

    @property
    def symbol(self) -> str:
        return self.opportunity.symbol

    @property
    def is_simulated(self) -> bool:
        return self.status is TradeStatus.SIMULATED

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "opportunity": self.opportunity.to_dict(),
            "strategy": self.strategy.value,
            "status": self.status.value,
            "profit": str(self.profit),
            "timestamp": self.timestamp,
            "channel": self.channel.value,
            "tx_hash": self.tx_hash,
            "gas_cost": str(self.gas_cost),
            "post_mortem": self.post_mortem,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Trade":
        return cls(
            id=data["id"],
            opportunity=Opportunity.from_dict(data["opportunity"]),
            status=TradeStatus(data["status"]),
            profit=Decimal(str(data["profit"])),
            timestamp=float(data["timestamp"]),
            channel=ExecutionChannel(data.get("channel", ExecutionChannel.STANDARD.value)),
            tx_hash=data.get("tx_hash"),
            gas_cost=Decimal(str(data.get("gas_cost", "0"))),
            post_mortem=data.get("post_mortem"),
        )


# =============================================================================
# MONITORING / RISK / STATS
# =============================================================================

@dataclass
class RpcEndpoint:
    """Observed health of one RPC endpoint."""
    url: str
    latency_ms: Optional[int] = None
    status: EndpointStatus = EndpointStatus.PENDING
    is_active: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "url": self.url,
            "latency_ms": self.latency_ms,
            "status": self.status.value,
            "is_active": self.is_active,
        }


@dataclass(frozen=True)
class RiskState:
    """Point-in-time snapshot of the risk state machine."""
    mode: RiskMode
    kill_switch_active: bool = False
    cooldown_until: Optional[float] = None
    cooldown_remaining_seconds: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "mode": self.mode.value,
            "kill_switch_active": self.kill_switch_active,
            "cooldown_until": self.cooldown_until,
            "cooldown_remaining_seconds": round(self.cooldown_remaining_seconds, 1),
        }


@dataclass
class MarketContext:
    """Advisory market data handed to the scorer."""
    gas_price_gwei: Optional[Decimal] = None
    volatility: Volatility = Volatility.UNKNOWN
    sentiment: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "gas_price_gwei": str(self.gas_price_gwei) if self.gas_price_gwei is not None else None,
            "volatility": self.volatility.value,
            "sentiment": copy.deepcopy(self.sentiment),
        }


@dataclass(frozen=True)
class BotStats:
    """Aggregates derived from the trade ledger."""
    total_pnl: Decimal = Decimal("0")
    trades_today: int = 0
    success_rate: float = 0.0
    gas_price_gwei: Optional[Decimal] = None
    volatility: Volatility = Volatility.UNKNOWN

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_pnl": str(self.total_pnl),
            "trades_today": self.trades_today,
            "success_rate": self.success_rate,
            "gas_price_gwei": str(self.gas_price_gwei) if self.gas_price_gwei is not None else None,
            "volatility": self.volatility.value,
        }
