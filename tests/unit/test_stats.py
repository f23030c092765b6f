# PATH: tests/unit/test_stats.py
"""
Stats aggregator: full recompute and incremental tracker agree.
"""

from decimal import Decimal

from core.constants import TradeStatus, Volatility
from core.models import MarketContext
from strategy.stats import StatsTracker, compute_stats, with_market_context
from fakes import make_trade

DAY = 24 * 60 * 60


def _ledger(now: float) -> list:
    return [
        make_trade(profit="0.10", status=TradeStatus.SUCCESS, timestamp=now, trade_id="a"),
        make_trade(profit="-0.02", status=TradeStatus.FAILED, timestamp=now, trade_id="b"),
        make_trade(profit="0.05", status=TradeStatus.SUCCESS, timestamp=now - 2 * DAY, trade_id="c"),
        make_trade(profit="9", status=TradeStatus.SIMULATED, timestamp=now, trade_id="d"),
    ]


def test_empty_ledger(clock):
    stats = compute_stats([], clock.now())
    assert stats.total_pnl == Decimal("0")
    assert stats.trades_today == 0
    assert stats.success_rate == 0.0


def test_compute_excludes_simulated(clock):
    stats = compute_stats(_ledger(clock.now()), clock.now())
    assert stats.total_pnl == Decimal("0.13")
    assert stats.trades_today == 2
    assert stats.success_rate == 66.67


def test_incremental_matches_full_recompute(clock):
    ledger = _ledger(clock.now())
    tracker = StatsTracker()
    for i, trade in enumerate(ledger):
        tracker.add(trade)
        assert tracker.snapshot(clock.now()) == compute_stats(ledger[: i + 1], clock.now())


def test_tracker_seeded_from_ledger(clock):
    ledger = _ledger(clock.now())
    assert StatsTracker(ledger).snapshot(clock.now()) == compute_stats(ledger, clock.now())


def test_trades_today_rolls_over(clock):
    tracker = StatsTracker(_ledger(clock.now()))
    clock.advance(3 * DAY)
    assert tracker.snapshot(clock.now()).trades_today == 0


def test_market_context_is_attached(clock):
    stats = compute_stats([], clock.now())
    enriched = with_market_context(stats, MarketContext(gas_price_gwei=Decimal("31.50"), volatility=Volatility.LOW))
    assert enriched.gas_price_gwei == Decimal("31.50")
    assert enriched.volatility is Volatility.LOW
    assert enriched.to_dict()["gas_price_gwei"] == "31.50"
    assert with_market_context(stats, None) is stats
