"""
strategy/risk.py - Risk state machine.

MODES (priority order)
======================
  KILL_SWITCH_ACTIVE  wallet balance fell below the threshold; sticky until
                      reset_kill_switch()
  STOPPED             manual stop; start() returns to ACTIVE
  COOLDOWN            now < cooldown_until after a daily-loss trigger
  ACTIVE              trading allowed

INVARIANTS
==========
- cooldown_until never moves backwards while set; it clears only when
  time passes it.
- The kill switch never clears itself.
- Daily PnL counts realized (non-simulated) trades of the current local
  calendar day.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional

from core.constants import RISK_TRIGGER_HISTORY, RiskMode
from core.logging import get_logger
from core.models import RiskState, Trade
from core.time import SystemClock, is_same_local_day, to_iso
from strategy.config import RiskConfig

logger = get_logger("flarb.risk")


@dataclass
class RiskTrigger:
    """Risk trigger event."""
    timestamp: str
    reason: str
    details: Optional[str] = None


def daily_realized_pnl(trades: Iterable[Trade], now: float) -> Decimal:
    total = Decimal("0")
    for trade in trades:
        if trade.is_simulated:
            continue
        if is_same_local_day(trade.timestamp, now):
            total += trade.profit
    return total


def daily_loss_exceeded(pnl_today: Decimal, capital: Decimal, threshold: Decimal) -> bool:
    """Negative PnL whose fraction of capital exceeds the threshold."""
    if pnl_today >= 0 or capital <= 0:
        return False
    return abs(pnl_today / capital) > threshold


class RiskManager:
    """
    Kill switch, daily-loss cooldown and manual stop/start.

    The bot starts STOPPED; start() arms it.
    """

    def __init__(
        self,
        config: RiskConfig,
        clock=None,
        kill_switch_active: bool = False,
        cooldown_until: Optional[float] = None,
    ):
        self.config = config
        self.clock = clock or SystemClock()
        self._stopped = True
        self._kill_switch_active = kill_switch_active
        self._cooldown_until = cooldown_until
        self._triggers: List[RiskTrigger] = []
        self._last_balance: Optional[Decimal] = None

    # =========================================================================
    # STATE
    # =========================================================================

    @property
    def kill_switch_active(self) -> bool:
        return self._kill_switch_active

    @property
    def cooldown_until(self) -> Optional[float]:
        self._expire_cooldown()
        return self._cooldown_until

    @property
    def is_stopped(self) -> bool:
        return self._stopped

    def _expire_cooldown(self) -> None:
        if self._cooldown_until is not None and self.clock.now() >= self._cooldown_until:
            self._cooldown_until = None

    def cooldown_remaining(self) -> float:
        until = self.cooldown_until
        if until is None:
            return 0.0
        return max(0.0, until - self.clock.now())

    @property
    def mode(self) -> RiskMode:
        if self._kill_switch_active:
            return RiskMode.KILL_SWITCH_ACTIVE
        if self._stopped:
            return RiskMode.STOPPED
        if self.cooldown_remaining() > 0:
            return RiskMode.COOLDOWN
        return RiskMode.ACTIVE

    @property
    def can_execute(self) -> bool:
        return self.mode is RiskMode.ACTIVE

    def snapshot(self) -> RiskState:
        return RiskState(
            mode=self.mode,
            kill_switch_active=self._kill_switch_active,
            cooldown_until=self.cooldown_until,
            cooldown_remaining_seconds=self.cooldown_remaining(),
        )

    def _trigger(self, reason: str, details: Optional[str] = None) -> None:
        self._triggers.append(RiskTrigger(
            timestamp=to_iso(self.clock.now()),
            reason=reason,
            details=details,
        ))
        del self._triggers[:-RISK_TRIGGER_HISTORY]

    # =========================================================================
    # CHECKS
    # =========================================================================

    def check_kill_switch(self, balance_eth: Decimal) -> bool:
        """
        Compare the wallet balance with the threshold.

        Returns:
            True if the kill switch is active after the check
        """
        self._last_balance = balance_eth
        ks = self.config.kill_switch
        if not ks.enabled:
            return self._kill_switch_active
        if balance_eth < ks.threshold_eth and not self._kill_switch_active:
            self._kill_switch_active = True
            details = f"Balance {balance_eth} ETH < threshold {ks.threshold_eth} ETH"
            self._trigger("KILL_SWITCH", details)
            logger.critical(
                "Kill switch activated",
                extra={"context": {
                    "balance_eth": str(balance_eth),
                    "threshold_eth": str(ks.threshold_eth),
                }},
            )
        return self._kill_switch_active

    def evaluate_daily_loss(self, trades: Iterable[Trade]) -> bool:
        """
        Start (or extend) a cooldown when today's realized loss is too large.

        Returns:
            True if a cooldown was triggered by this call
        """
        now = self.clock.now()
        pnl_today = daily_realized_pnl(trades, now)
        capital = self.config.capital_eth
        if not daily_loss_exceeded(pnl_today, capital, self.config.daily_loss_threshold):
            return False

        proposed = now + self.config.cooldown_minutes * 60
        current = self.cooldown_until
        self._cooldown_until = proposed if current is None else max(current, proposed)
        percent = (self.config.daily_loss_threshold * 100).normalize()
        details = (
            f"Daily loss limit of {percent:f}% hit. "
            f"Pausing for {self.config.cooldown_minutes} mins."
        )
        self._trigger("DAILY_LOSS", details)
        logger.warning(
            details,
            extra={"context": {
                "pnl_today": str(pnl_today),
                "capital_eth": str(capital),
                "cooldown_until": self._cooldown_until,
            }},
        )
        return True

    # =========================================================================
    # CONTROL
    # =========================================================================

    def start(self) -> bool:
        """Stopped -> Active. Refused while the kill switch is active."""
        if self._kill_switch_active:
            logger.warning("Start refused: kill switch is active")
            return False
        self._stopped = False
        return True

    def stop(self) -> None:
        self._stopped = True

    def reset_kill_switch(self) -> bool:
        """
        Re-arm the kill switch. Does not touch the cooldown.

        Returns:
            True if an active kill switch was cleared
        """
        if not self._kill_switch_active:
            return False
        self._trigger("KILL_SWITCH_RESET", "Manually reset")
        self._kill_switch_active = False
        return True

    def get_status(self) -> Dict[str, Any]:
        return {
            **self.snapshot().to_dict(),
            "stopped": self._stopped,
            "last_balance_eth": str(self._last_balance) if self._last_balance is not None else None,
            "kill_switch_enabled": self.config.kill_switch.enabled,
            "kill_switch_threshold_eth": str(self.config.kill_switch.threshold_eth),
            "daily_loss_threshold": str(self.config.daily_loss_threshold),
            "triggers": [
                {"timestamp": t.timestamp, "reason": t.reason, "details": t.details}
                for t in self._triggers
            ],
        }
