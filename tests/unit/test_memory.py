# PATH: tests/unit/test_memory.py
"""
Trade memory: similarity ranking and rendering.
"""

from decimal import Decimal

from core.constants import MEMORY_HEADER, NO_SIMILAR_TRADES, TradeStatus
from strategy.memory import (
    build_similarity_context,
    find_similar_trades,
    format_trade_line,
    similarity_score,
)
from fakes import make_opportunity, make_trade, pairwise_route, triangular_route


def _trade(symbol: str, spread: str, triangular: bool = False, trade_id: str = "t", **kwargs):
    route = triangular_route(symbol=symbol) if triangular else pairwise_route(symbol=symbol)
    opp = make_opportunity(route=route, spread=spread, opp_id=f"opp_{trade_id}")
    return make_trade(opportunity=opp, trade_id=trade_id, **kwargs)


class TestSimilarityScore:
    def test_same_symbol_same_strategy_same_spread(self):
        trade = _trade("AAA/BBB", "0.05")
        now = make_opportunity(spread="0.05")
        assert similarity_score(trade, now) == Decimal(5) + Decimal(3) + Decimal(10)

    def test_other_symbol_other_strategy(self):
        trade = _trade("AAA/BBB/CCC", "0.15", triangular=True)
        now = make_opportunity(spread="0.05")
        assert similarity_score(trade, now) == Decimal(5)


class TestFindSimilar:
    def test_empty_ledger_gives_fixed_text(self):
        assert build_similarity_context(make_opportunity(), []) == NO_SIMILAR_TRADES
        assert NO_SIMILAR_TRADES == "No similar trades in memory."

    def test_top_three_best_first(self):
        ledger = [
            _trade("XXX/YYY", "0.9", trade_id="far"),
            _trade("AAA/BBB", "0.05", trade_id="exact"),
            _trade("AAA/BBB/CCC", "0.05", triangular=True, trade_id="tri"),
            _trade("AAA/BBB", "0.30", trade_id="same_pair"),
        ]

        similar = find_similar_trades(make_opportunity(spread="0.05"), ledger)

        assert [t.id for t in similar] == ["exact", "same_pair", "tri"]

    def test_ties_keep_ledger_order(self):
        ledger = [_trade("AAA/BBB", "0.05", trade_id=f"t{i}") for i in range(5)]

        similar = find_similar_trades(make_opportunity(spread="0.05"), ledger)

        assert [t.id for t in similar] == ["t0", "t1", "t2"]

    def test_rendering(self):
        ledger = [
            _trade("AAA/BBB", "0.05", trade_id="a", profit="0.0123", post_mortem="Clean fill."),
            _trade("AAA/BBB", "0.05", trade_id="b", profit="-0.002", status=TradeStatus.FAILED),
        ]

        text = build_similarity_context(make_opportunity(spread="0.05"), ledger)

        assert text.splitlines() == [
            MEMORY_HEADER,
            "- SUCCESS: PnL 0.0123 ETH. Reason: Clean fill.",
            "- FAILED: PnL -0.0020 ETH. Reason: N/A",
        ]

    def test_line_format_for_simulated(self):
        trade = _trade("AAA/BBB", "0.05", status=TradeStatus.SIMULATED, profit="0.5")
        assert format_trade_line(trade) == "- SIMULATED: PnL 0.5000 ETH. Reason: N/A"
