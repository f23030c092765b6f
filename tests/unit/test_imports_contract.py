# PATH: tests/unit/test_imports_contract.py
"""
Import contract smoke tests.

PURPOSE: Catch ImportError regressions EARLY.
RUN FIRST: python -m pytest tests/unit/test_imports_contract.py -v

CRITICAL CONTRACTS (DO NOT WEAKEN):
━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
- RiskMode MUST expose the four modes
- TradeStatus values are persisted; they MUST NOT change
- Strategy MUST accept the legacy flash-loan names
- every package MUST import without side effects
━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
"""

import importlib
import unittest


class TestCoreConstantsImports(unittest.TestCase):
    """Test core.constants imports."""

    def test_import_risk_mode(self):
        """CRITICAL: Test RiskMode import."""
        from core.constants import RiskMode

        self.assertEqual(
            {m.value for m in RiskMode},
            {"ACTIVE", "COOLDOWN", "KILL_SWITCH_ACTIVE", "STOPPED"},
        )

    def test_import_trade_status(self):
        """CRITICAL: ledger lines store these values."""
        from core.constants import TradeStatus

        self.assertEqual(TradeStatus.SUCCESS.value, "success")
        self.assertEqual(TradeStatus.FAILED.value, "failed")
        self.assertEqual(TradeStatus.SIMULATED.value, "simulated")

    def test_strategy_aliases(self):
        from core.constants import Strategy

        self.assertIs(Strategy.parse("flashloan-pairwise-interdex"), Strategy.PAIRWISE)
        self.assertIs(Strategy.parse("flashloan-triangular"), Strategy.TRIANGULAR)
        self.assertIs(Strategy.parse(" Triangular "), Strategy.TRIANGULAR)


class TestCorePackageImports(unittest.TestCase):
    """core re-exports the shared types."""

    def test_core_reexports(self):
        import core

        for name in ("ErrorCode", "FlarbError", "RiskMode", "TradeStatus", "ExecutionChannel"):
            self.assertTrue(hasattr(core, name), name)


class TestModuleImports(unittest.TestCase):
    """Every module imports cleanly."""

    MODULES = [
        "core.constants",
        "core.exceptions",
        "core.logging",
        "core.models",
        "core.result",
        "core.scheduler",
        "core.time",
        "config",
        "chains.providers",
        "chains.monitor",
        "chains.wallet",
        "dex.registry",
        "dex.pool_reader",
        "strategy.config",
        "strategy.scanner",
        "strategy.memory",
        "strategy.decision",
        "strategy.risk",
        "strategy.stats",
        "strategy.bot",
        "strategy.jobs.run_bot",
        "ai.gemini",
        "ai.scorer",
        "execution.contract",
        "execution.state_machine",
        "execution.dispatcher",
        "execution.relay",
        "execution.simulated",
        "data.trade_store",
        "data.state_store",
        "monitoring.events",
    ]

    def test_all_modules_import(self):
        for name in self.MODULES:
            with self.subTest(module=name):
                importlib.import_module(name)


if __name__ == "__main__":
    unittest.main()
