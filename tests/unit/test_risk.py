# PATH: tests/unit/test_risk.py
"""
Risk state machine: kill switch, daily-loss cooldown, manual stop/start.
"""

from decimal import Decimal

import pytest

from core.constants import RiskMode, TradeStatus
from core.time import to_iso
from strategy.config import KillSwitchConfig, RiskConfig
from strategy.risk import RiskManager, daily_loss_exceeded, daily_realized_pnl
from fakes import make_trade

DAY = 24 * 60 * 60


def make_config(**overrides) -> RiskConfig:
    values = {
        "daily_loss_threshold": Decimal("0.02"),
        "cooldown_minutes": 60,
        "capital_eth": Decimal("5"),
        "kill_switch": KillSwitchConfig(enabled=True, threshold_eth=Decimal("0.5")),
    }
    values.update(overrides)
    return RiskConfig(**values)


@pytest.fixture
def risk(clock) -> RiskManager:
    manager = RiskManager(make_config(), clock=clock)
    manager.start()
    return manager


class TestModes:
    def test_starts_stopped(self, clock):
        assert RiskManager(make_config(), clock=clock).mode is RiskMode.STOPPED

    def test_start_and_stop(self, risk):
        assert risk.mode is RiskMode.ACTIVE
        assert risk.can_execute
        risk.stop()
        assert risk.mode is RiskMode.STOPPED
        assert not risk.can_execute

    def test_kill_switch_outranks_stop_and_cooldown(self, risk, clock):
        risk.evaluate_daily_loss([make_trade(profit="-1", timestamp=clock.now())])
        risk.stop()
        risk.check_kill_switch(Decimal("0.1"))
        assert risk.mode is RiskMode.KILL_SWITCH_ACTIVE

    def test_stop_outranks_cooldown(self, risk, clock):
        risk.evaluate_daily_loss([make_trade(profit="-1", timestamp=clock.now())])
        risk.stop()
        assert risk.mode is RiskMode.STOPPED


class TestKillSwitch:
    def test_low_balance_activates_and_sticks(self, risk):
        assert risk.check_kill_switch(Decimal("0.4"))
        assert risk.mode is RiskMode.KILL_SWITCH_ACTIVE

        # recovering balance never clears it
        assert risk.check_kill_switch(Decimal("0.6"))
        assert risk.kill_switch_active

    def test_threshold_boundary_is_exclusive(self, risk):
        assert not risk.check_kill_switch(Decimal("0.5"))

    def test_disabled_never_trips(self, clock):
        config = make_config(kill_switch=KillSwitchConfig(enabled=False, threshold_eth=Decimal("0.5")))
        manager = RiskManager(config, clock=clock)
        assert not manager.check_kill_switch(Decimal("0"))

    def test_start_refused_while_active(self, risk):
        risk.check_kill_switch(Decimal("0.1"))
        risk.stop()
        assert not risk.start()
        assert risk.mode is RiskMode.KILL_SWITCH_ACTIVE

    def test_reset_returns_to_previous_mode(self, risk):
        risk.check_kill_switch(Decimal("0.1"))
        assert risk.reset_kill_switch()
        assert risk.mode is RiskMode.ACTIVE
        reasons = [t["reason"] for t in risk.get_status()["triggers"]]
        assert reasons == ["KILL_SWITCH", "KILL_SWITCH_RESET"]

    def test_reset_without_active_switch_is_noop(self, risk):
        assert not risk.reset_kill_switch()
        assert risk.get_status()["triggers"] == []

    def test_trigger_timestamp_follows_clock(self, risk, clock):
        risk.check_kill_switch(Decimal("0.1"))
        assert risk.get_status()["triggers"][0]["timestamp"] == to_iso(clock.now())

    def test_restored_state_is_honored(self, clock):
        manager = RiskManager(make_config(), clock=clock, kill_switch_active=True)
        assert not manager.start()


class TestDailyLoss:
    def test_loss_over_threshold_starts_cooldown(self, risk, clock):
        # -0.25 / 5 = 5% > 2%
        triggered = risk.evaluate_daily_loss([make_trade(profit="-0.25", timestamp=clock.now())])

        assert triggered
        assert risk.cooldown_until == clock.now() + 60 * 60
        assert risk.mode is RiskMode.COOLDOWN
        details = risk.get_status()["triggers"][-1]["details"]
        assert details == "Daily loss limit of 2% hit. Pausing for 60 mins."

    def test_loss_at_threshold_does_not_trigger(self, risk, clock):
        # -0.1 / 5 = exactly 2%
        assert not risk.evaluate_daily_loss([make_trade(profit="-0.1", timestamp=clock.now())])
        assert risk.mode is RiskMode.ACTIVE

    def test_cooldown_expires_with_time(self, risk, clock):
        risk.evaluate_daily_loss([make_trade(profit="-1", timestamp=clock.now())])
        clock.advance(60 * 60 - 1)
        assert risk.mode is RiskMode.COOLDOWN
        clock.advance(1)
        assert risk.mode is RiskMode.ACTIVE
        assert risk.cooldown_until is None

    def test_cooldown_never_moves_backwards(self, clock):
        manager = RiskManager(make_config(), clock=clock, cooldown_until=clock.now() + 5 * DAY)
        manager.start()
        manager.evaluate_daily_loss([make_trade(profit="-1", timestamp=clock.now())])
        assert manager.cooldown_until == clock.now() + 5 * DAY

    def test_repeat_trigger_extends(self, risk, clock):
        ledger = [make_trade(profit="-1", timestamp=clock.now())]
        risk.evaluate_daily_loss(ledger)
        clock.advance(600)
        risk.evaluate_daily_loss(ledger)
        assert risk.cooldown_until == clock.now() + 60 * 60

    def test_simulated_and_old_trades_are_ignored(self, clock):
        ledger = [
            make_trade(profit="-3", status=TradeStatus.SIMULATED, timestamp=clock.now()),
            make_trade(profit="-3", status=TradeStatus.FAILED, timestamp=clock.now() - 3 * DAY),
            make_trade(profit="0.2", timestamp=clock.now()),
        ]
        assert daily_realized_pnl(ledger, clock.now()) == Decimal("0.2")

    @pytest.mark.parametrize(
        "pnl,capital,expected",
        [
            ("-0.25", "5", True),
            ("-0.1", "5", False),
            ("0.5", "5", False),
            ("-1", "0", False),
        ],
    )
    def test_daily_loss_exceeded(self, pnl, capital, expected):
        assert daily_loss_exceeded(Decimal(pnl), Decimal(capital), Decimal("0.02")) is expected


def test_snapshot_reports_remaining(risk, clock):
    risk.evaluate_daily_loss([make_trade(profit="-1", timestamp=clock.now())])
    clock.advance(600)
    snap = risk.snapshot()
    assert snap.mode is RiskMode.COOLDOWN
    assert snap.cooldown_remaining_seconds == 3000
    assert snap.to_dict()["mode"] == RiskMode.COOLDOWN.value
