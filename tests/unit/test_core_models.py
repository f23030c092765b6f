# PATH: tests/unit/test_core_models.py
"""
Unit tests for core data models.
"""

import unittest
from dataclasses import FrozenInstanceError
from datetime import datetime
from decimal import Decimal

from core.constants import ExecutionChannel, RiskMode, Strategy, TradeStatus
from core.models import (
    Opportunity,
    PoolReserves,
    RiskState,
    TokenRoute,
    Trade,
    make_opportunity_id,
    make_trade_id,
)
from fakes import TOKEN_A, TOKEN_B, make_opportunity, make_trade, pairwise_route, triangular_route


class TestIds(unittest.TestCase):
    def test_opportunity_id_format(self):
        ts = 1767614400.0
        stamp = datetime.fromtimestamp(ts).strftime("%Y%m%d_%H%M%S")
        self.assertEqual(make_opportunity_id(4, ts, 2), f"opp_4_{stamp}_2")

    def test_opportunity_id_deterministic(self):
        self.assertEqual(make_opportunity_id(1, 5.0, 0), make_opportunity_id(1, 5.0, 0))

    def test_trade_id(self):
        self.assertEqual(make_trade_id("opp_1_20260105_120000_0"), "trade_opp_1_20260105_120000_0")


class TestStrategy(unittest.TestCase):
    def test_legacy_names(self):
        self.assertIs(Strategy.parse("flashloan-pairwise-interdex"), Strategy.PAIRWISE)
        self.assertIs(Strategy.parse(" Flashloan-Triangular "), Strategy.TRIANGULAR)

    def test_unknown(self):
        with self.assertRaises(ValueError):
            Strategy.parse("quadrangular")


class TestTokenRoute(unittest.TestCase):
    def test_valid_routes(self):
        self.assertEqual(pairwise_route().validation_errors(), [])
        self.assertEqual(triangular_route().validation_errors(), [])

    def test_triangular_needs_token_c(self):
        route = TokenRoute(
            symbol="A/B/C",
            strategy=Strategy.TRIANGULAR,
            dexes=("DexOne",),
            addresses={"tokenA": TOKEN_A, "tokenB": TOKEN_B},
            min_spread=Decimal("0.003"),
        )
        self.assertIn("missing address for tokenC", route.validation_errors())

    def test_pairwise_needs_two_dexes(self):
        route = TokenRoute(
            symbol="A/B",
            strategy=Strategy.PAIRWISE,
            dexes=("DexOne",),
            addresses={"tokenA": TOKEN_A, "tokenB": TOKEN_B},
            min_spread=Decimal("-0.1"),
        )
        errors = route.validation_errors()
        self.assertIn("pairwise route needs exactly 2 dexes", errors)
        self.assertIn("min_spread must be >= 0", errors)

    def test_symbols(self):
        self.assertEqual(triangular_route().token_symbols, ["AAA", "BBB", "CCC"])


class TestPoolReserves(unittest.TestCase):
    def test_reserve_of_is_case_insensitive(self):
        reserves = PoolReserves("0x" + "01" * 20, 1, 2, TOKEN_A)
        self.assertEqual(reserves.reserve_of(TOKEN_A.upper().replace("0X", "0x")), 1)
        self.assertEqual(reserves.reserve_of(TOKEN_B), 2)
        self.assertEqual(reserves.to_dict()["reserve1"], "2")


class TestOpportunityAndTrade(unittest.TestCase):
    def test_snapshot_is_independent(self):
        opp = make_opportunity()
        snap = opp.snapshot()
        opp.p_success = 0.1
        opp.prices["DexOne"] = "1"
        self.assertEqual(snap.p_success, 0.9)
        self.assertNotIn("DexOne", snap.prices)

    def test_opportunity_dict_round_trip(self):
        opp = make_opportunity(route=triangular_route(), channel=ExecutionChannel.PRIVATE)
        opp.prices = {"AB": "1", "BC": "1", "CA": "1.1", "ratio": "1.1"}
        self.assertEqual(Opportunity.from_dict(opp.to_dict()), opp)

    def test_trade_dict_keeps_money_as_strings(self):
        trade = make_trade(profit="-0.0105", status=TradeStatus.FAILED)
        data = trade.to_dict()
        self.assertEqual(data["profit"], "-0.0105")
        self.assertEqual(data["status"], "failed")
        self.assertEqual(Trade.from_dict(data), trade)

    def test_simulated_flag(self):
        self.assertTrue(make_trade(status=TradeStatus.SIMULATED).is_simulated)
        self.assertFalse(make_trade().is_simulated)

    def test_trade_is_frozen(self):
        trade = make_trade()
        with self.assertRaises(FrozenInstanceError):
            trade.profit = Decimal("1")


class TestRiskState(unittest.TestCase):
    def test_to_dict(self):
        state = RiskState(mode=RiskMode.COOLDOWN, cooldown_until=10.0, cooldown_remaining_seconds=5.04)
        self.assertEqual(state.to_dict(), {
            "mode": RiskMode.COOLDOWN.value,
            "kill_switch_active": False,
            "cooldown_until": 10.0,
            "cooldown_remaining_seconds": 5.0,
        })


if __name__ == "__main__":
    unittest.main()
