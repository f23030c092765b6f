"""
strategy/stats.py - Stats aggregator.

Stats are a pure function of the ledger:
    total_pnl     sum of profit over non-simulated trades
    trades_today  non-simulated trades on the current local calendar day
    success_rate  successful / non-simulated * 100, rounded to 2 dp (0 if none)

StatsTracker maintains the same numbers incrementally; at any point its
snapshot equals compute_stats() over the same ledger.
"""

from collections import Counter
from datetime import date
from decimal import Decimal
from typing import Iterable

from core.constants import TradeStatus
from core.models import BotStats, MarketContext, Trade
from core.time import local_date


def _rate(successes: int, total: int) -> float:
    if total == 0:
        return 0.0
    return round(successes / total * 100, 2)


def compute_stats(trades: Iterable[Trade], now: float) -> BotStats:
    """Full recompute over the ledger."""
    today = local_date(now)
    total_pnl = Decimal("0")
    counted = 0
    successes = 0
    trades_today = 0
    for trade in trades:
        if trade.is_simulated:
            continue
        counted += 1
        total_pnl += trade.profit
        if trade.status is TradeStatus.SUCCESS:
            successes += 1
        if local_date(trade.timestamp) == today:
            trades_today += 1
    return BotStats(
        total_pnl=total_pnl,
        trades_today=trades_today,
        success_rate=_rate(successes, counted),
    )


def with_market_context(stats: BotStats, context: MarketContext | None) -> BotStats:
    if context is None:
        return stats
    return BotStats(
        total_pnl=stats.total_pnl,
        trades_today=stats.trades_today,
        success_rate=stats.success_rate,
        gas_price_gwei=context.gas_price_gwei,
        volatility=context.volatility,
    )


class StatsTracker:
    """Incremental counterpart of compute_stats."""

    def __init__(self, trades: Iterable[Trade] = ()):
        self._total_pnl = Decimal("0")
        self._counted = 0
        self._successes = 0
        self._per_day: Counter[date] = Counter()
        for trade in trades:
            self.add(trade)

    def add(self, trade: Trade) -> None:
        if trade.is_simulated:
            return
        self._counted += 1
        self._total_pnl += trade.profit
        if trade.status is TradeStatus.SUCCESS:
            self._successes += 1
        self._per_day[local_date(trade.timestamp)] += 1

    def snapshot(self, now: float) -> BotStats:
        return BotStats(
            total_pnl=self._total_pnl,
            trades_today=self._per_day.get(local_date(now), 0),
            success_rate=_rate(self._successes, self._counted),
        )
