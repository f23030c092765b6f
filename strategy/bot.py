"""
strategy/bot.py - The arbitrage control loop.

TICK CONTRACT:
==============
Every scan tick, in order:
  1. retry trade writes that failed on an earlier tick
  2. kill switch: awaited wallet balance probe (a failed probe skips the tick)
  3. risk mode: STOPPED / COOLDOWN / KILL_SWITCH_ACTIVE skip the tick
  4. scan all routes concurrently, read market context alongside
  5. score every candidate concurrently (fail-closed)
  6. dispatch approved candidates one at a time, re-checking the gate
     immediately before each dispatch
  7. record each trade (ledger, store, stats), then evaluate daily loss

An unexpected exception sets status "Error State"; the scheduler keeps
running and the next tick starts clean.

Control commands (start / stop / toggle_simulation_mode /
reset_kill_switch / update_config) are synchronous state transitions
followed by a broadcast. Read accessors return copies.
==============
"""

import asyncio
import copy
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

from core.constants import (
    MIN_TRADES_FOR_ADVICE,
    OPPORTUNITY_BUFFER_SIZE,
    RiskMode,
    TradeStatus,
)
from core.exceptions import ErrorCode, PersistenceError
from core.logging import get_logger, log_trade
from core.models import BotStats, MarketContext, Opportunity, RiskState, RpcEndpoint, Trade
from core.result import capture
from core.scheduler import Scheduler
from core.time import SystemClock
from dex.pool_reader import PoolReader, ReserveCache
from dex.registry import DexRegistry
from execution.dispatcher import ExecutionDispatcher, ExecutionResult
from monitoring.events import EventBroadcaster, EventType
from strategy.config import BotConfig, ConfigStore
from strategy.decision import DecisionGate, ScoreRequest, should_execute
from strategy.memory import build_similarity_context
from strategy.risk import RiskManager
from strategy.scanner import MarketScanner, read_market_context
from strategy.stats import StatsTracker, with_market_context

logger = get_logger("flarb.bot")

TICK_JOB = "tick"
RPC_MONITOR_JOB = "rpc_monitor"
ADVICE_JOB = "advice"
SENTIMENT_JOB = "sentiment"
TRADING_JOBS = (TICK_JOB, ADVICE_JOB, SENTIMENT_JOB)

POST_MORTEM_UNAVAILABLE = "Post-trade analysis by AI failed."


@dataclass
class BotDependencies:
    """
    Collaborators injected into the bot.

    scorer must provide analyze_trade / suggest_config_changes /
    market_sentiment (ai.scorer.OpportunityScorer or a fake).
    """
    provider: Any
    registry: DexRegistry
    gate: DecisionGate
    scorer: Any
    dispatcher: ExecutionDispatcher
    trade_store: Any
    risk_store: Any
    config_store: ConfigStore
    broadcaster: EventBroadcaster
    monitor: Any
    wallet_address: str
    simulated_writer: Any
    simulated_relay: Any
    clock: Any = field(default_factory=SystemClock)
    reader_factory: Optional[Callable[[], PoolReader]] = None


@dataclass
class TickReport:
    """What one tick did; returned for logging and tests."""
    cycle: int
    skipped_reason: Optional[str] = None
    opportunities_found: int = 0
    scored: int = 0
    approved: int = 0
    trades: list[Trade] = field(default_factory=list)
    error: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "cycle": self.cycle,
            "skipped_reason": self.skipped_reason,
            "opportunities_found": self.opportunities_found,
            "scored": self.scored,
            "approved": self.approved,
            "trades": [t.id for t in self.trades],
            "error": self.error,
        }


class ArbitrageBot:
    """
    Usage:
        bot = ArbitrageBot(deps, config, simulation_mode=True)
        bot.start()
        await bot.scheduler.run_forever()
    """

    def __init__(
        self,
        deps: BotDependencies,
        config: BotConfig,
        simulation_mode: bool = False,
    ):
        self.deps = deps
        self.config = config
        self.simulation_mode = simulation_mode
        self.clock = deps.clock
        self.scheduler = Scheduler(clock=self.clock)
        self.scanner = MarketScanner(deps.registry)

        persisted = deps.risk_store.load()
        self.risk = RiskManager(
            config.risk,
            clock=self.clock,
            kill_switch_active=persisted.kill_switch_active,
            cooldown_until=persisted.cooldown_until,
        )

        self._ledger: list[Trade] = deps.trade_store.load_all()
        self._stats = StatsTracker(self._ledger)
        self._pending_writes: list[Trade] = []
        self._opportunities: deque[Opportunity] = deque(maxlen=OPPORTUNITY_BUFFER_SIZE)
        self._market_context: Optional[MarketContext] = None
        self._sentiment: dict[str, Any] = {"overall": "neutral", "tokens": {}}
        self._strategic_advice: Optional[str] = None
        self._cycle = 0
        self.is_running = False
        self.status_message = "Initialized"

        self._log(f"Loaded {len(self._ledger)} trades from persistent history.")
        if persisted.kill_switch_active:
            self._log("Kill switch is active from a previous run; reset it to trade.", level="warning")

    # =========================================================================
    # EVENTS
    # =========================================================================

    def _log(self, message: str, level: str = "info", **context: Any) -> None:
        getattr(logger, level)(message, extra={"context": context})
        self.deps.broadcaster.log(message, level=level, **context)

    def _set_status(self, is_running: bool, message: str) -> None:
        self.is_running = is_running
        self.status_message = message
        self.deps.broadcaster.publish(EventType.STATUS_UPDATE, self.get_status())

    def _publish_stats(self) -> None:
        self.deps.broadcaster.publish(EventType.STATS_UPDATE, self.get_stats())

    def _save_risk_state(self) -> None:
        try:
            self.deps.risk_store.save(self.risk.cooldown_until, self.risk.kill_switch_active)
        except PersistenceError as e:
            self._log(f"Could not persist risk state: {e.message}", level="error", stage="risk_state")

    # =========================================================================
    # CONTROL COMMANDS
    # =========================================================================

    def _schedule_trading_jobs(self) -> None:
        intervals = self.config.intervals
        self.scheduler.add_job(TICK_JOB, intervals.scan_seconds, self.tick)
        self.scheduler.add_job(ADVICE_JOB, intervals.advice_seconds, self.refresh_advice)
        self.scheduler.add_job(SENTIMENT_JOB, intervals.sentiment_seconds, self.refresh_sentiment)

    def _cancel_trading_jobs(self) -> None:
        for name in TRADING_JOBS:
            self.scheduler.cancel(name)

    def start(self) -> bool:
        """
        Stopped -> Active and schedule the periodic jobs. Refused while the
        kill switch is active; a no-op when already running.
        """
        was_running = not self.risk.is_stopped
        if not self.risk.start():
            self._log("Start refused: kill switch is active.", level="warning")
            self._set_status(False, "Halted - Kill Switch Active")
            return False
        if was_running:
            self._log("Start ignored: bot is already running.")
            return True
        self._schedule_trading_jobs()
        if not self.scheduler.has_job(RPC_MONITOR_JOB):
            self.scheduler.add_job(RPC_MONITOR_JOB, self.config.intervals.rpc_monitor_seconds, self.monitor_rpc)
        mode = "SIMULATION" if self.simulation_mode else "LIVE"
        self._log(f"Bot started in {mode} mode.")
        self._set_status(True, "Running")
        return True

    def stop(self) -> None:
        """Cancel future runs; an in-flight tick finishes but dispatches nothing new."""
        self.risk.stop()
        self.scheduler.cancel_all()
        self._log("Stopping bot via manual override...")
        self._set_status(False, "Stopped (Manual)")

    def toggle_simulation_mode(self) -> bool:
        self.simulation_mode = not self.simulation_mode
        mode = "SIMULATION" if self.simulation_mode else "LIVE"
        self._log(f"Execution mode switched to {mode}.")
        self._set_status(self.is_running, self.status_message)
        return self.simulation_mode

    def reset_kill_switch(self) -> None:
        cleared = self.risk.reset_kill_switch()
        self._save_risk_state()
        self.deps.broadcaster.publish(EventType.KILL_SWITCH_UPDATE, {"kill_switch_active": False})
        self._log("Kill switch manually reset.")
        if self.risk.is_stopped:
            self._set_status(False, "Stopped")
        elif cleared:
            self._schedule_trading_jobs()
            self._set_status(True, "Running")

    def update_config(self, new_config: BotConfig, manual: bool = True) -> None:
        """
        Persist and apply a new configuration; takes effect on the next tick.

        Raises:
            ConfigError: the configuration is invalid (nothing is applied)
        """
        self.deps.config_store.save(new_config)
        self.config = new_config
        self.risk.config = new_config.risk
        self.deps.dispatcher.flash_loan_fee = new_config.flash_loan.fee
        self.deps.dispatcher.contract_address = new_config.flash_loan.contract_address
        if manual:
            self._log("Manual configuration override has been applied.")
        self.deps.broadcaster.publish(EventType.CONFIG_UPDATE, new_config.to_dict())

    # =========================================================================
    # READ ACCESSORS
    # =========================================================================

    def get_status(self) -> dict[str, Any]:
        return {
            "is_running": self.is_running,
            "status_message": self.status_message,
            "simulation_mode": self.simulation_mode,
            "risk": self.risk.snapshot().to_dict(),
        }

    def get_stats(self) -> BotStats:
        return with_market_context(self._stats.snapshot(self.clock.now()), self._market_context)

    def get_opportunities(self) -> list[Opportunity]:
        return [o.snapshot() for o in self._opportunities]

    def get_trade_history(self, limit: Optional[int] = None) -> list[Trade]:
        """Newest first."""
        history = list(reversed(self._ledger))
        if limit is not None:
            history = history[:limit]
        return copy.deepcopy(history)

    def get_rpc_status(self) -> list[RpcEndpoint]:
        return self.deps.monitor.snapshot()

    def get_risk_state(self) -> RiskState:
        return self.risk.snapshot()

    def get_risk_status(self) -> dict[str, Any]:
        return self.risk.get_status()

    def get_logs(self) -> list[dict[str, Any]]:
        return self.deps.broadcaster.recent_logs()

    def get_config(self) -> BotConfig:
        return copy.deepcopy(self.config)

    def get_market_sentiment(self) -> dict[str, Any]:
        return copy.deepcopy(self._sentiment)

    def get_strategic_advice(self) -> Optional[str]:
        return self._strategic_advice

    @property
    def pending_writes(self) -> int:
        return len(self._pending_writes)

    # =========================================================================
    # PERIODIC JOBS
    # =========================================================================

    async def monitor_rpc(self) -> list[RpcEndpoint]:
        endpoints = await self.deps.monitor.probe_all()
        self.deps.broadcaster.publish(EventType.RPC_STATUS_UPDATE, [e.to_dict() for e in endpoints])
        return endpoints

    async def refresh_advice(self) -> Optional[str]:
        if len(self._ledger) < MIN_TRADES_FOR_ADVICE:
            return None
        self._log("Asking Gemini for a strategic performance review...")
        advice = await self.deps.scorer.suggest_config_changes(self.get_trade_history(), self.config)
        self._strategic_advice = advice
        self._log(f"Gemini Suggestion: {advice}")
        self.deps.broadcaster.publish(EventType.STRATEGIC_ADVICE, advice)
        return advice

    async def refresh_sentiment(self) -> dict[str, Any]:
        self._log("Fetching market sentiment analysis from Gemini...")
        symbols = [route.symbol for route in self.config.tokens]
        self._sentiment = await self.deps.scorer.market_sentiment(symbols)
        self.deps.broadcaster.publish(EventType.SENTIMENT_UPDATE, self._sentiment)
        return self.get_market_sentiment()

    # =========================================================================
    # TICK
    # =========================================================================

    async def tick(self) -> TickReport:
        self._cycle += 1
        report = TickReport(cycle=self._cycle)
        try:
            await self._tick(report)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(
                f"Tick failed: {e}",
                extra={"context": {"cycle": report.cycle, "stage": "tick"}},
                exc_info=True,
            )
            self.deps.broadcaster.log(f"ERROR: {e}", level="error", cycle=report.cycle)
            self._set_status(False, "Error State")
            report.error = str(e)
        return report

    async def _tick(self, report: TickReport) -> None:
        self._flush_pending_writes()

        if not await self._check_kill_switch(report):
            return
        if not self._check_risk_mode(report):
            return

        self._set_status(True, "Scanning for opportunities...")
        timeouts = self.config.timeouts
        reader = self._new_reader()
        scan, market = await asyncio.gather(
            self.scanner.scan(self.config.tokens, reader, self._cycle, self.clock.now()),
            read_market_context(self.deps.provider, timeouts.call_seconds, self._sentiment),
        )
        self._market_context = market
        report.opportunities_found = len(scan.opportunities)
        self._publish_stats()

        if not scan.opportunities:
            self._log("No new opportunities found in this scan.")
            return

        self._log(f"Found {len(scan.opportunities)} potential opportunities. Analyzing with Gemini...")
        scored = await self._score(scan.opportunities, market)
        report.scored = len(scored)

        visible = [o for o in scored if (o.p_success or 0) > 0]
        for opportunity in reversed(visible):
            self._opportunities.appendleft(opportunity.snapshot())
        self.deps.broadcaster.publish(
            EventType.OPPORTUNITIES_UPDATE, [o.to_dict() for o in self._opportunities],
        )

        threshold = self.config.p_success_threshold
        approved = [o for o in scored if should_execute(o.p_success, threshold, self.risk.mode)]
        report.approved = len(approved)
        if approved:
            self._log(f"Gemini approved {len(approved)} trade(s) for execution.")

        for opportunity in approved:
            # Risk may have changed during the previous dispatch
            if not should_execute(opportunity.p_success, self.config.p_success_threshold, self.risk.mode):
                self._log(
                    f"Skipping {opportunity.symbol}: risk mode is {self.risk.mode.value}.",
                    level="warning",
                    route=opportunity.symbol,
                    stage="dispatch",
                )
                continue
            report.trades.append(await self._execute(opportunity))

        if self.risk.mode is RiskMode.ACTIVE:
            self._set_status(True, "Running")

    def _new_reader(self) -> PoolReader:
        if self.deps.reader_factory is not None:
            return self.deps.reader_factory()
        return PoolReader(self.deps.provider, ReserveCache(), self.config.timeouts.call_seconds)

    async def _check_kill_switch(self, report: TickReport) -> bool:
        """False when the tick must stop here."""
        kill_switch = self.config.risk.kill_switch
        if not kill_switch.enabled:
            return True
        if self.risk.kill_switch_active:
            report.skipped_reason = "kill switch active"
            self._set_status(False, "Halted - Kill Switch Active")
            return False

        balance = await capture(
            self.deps.provider.get_balance(self.deps.wallet_address),
            ErrorCode.INFRA_RPC_ERROR, "balance probe", self.config.timeouts.call_seconds,
        )
        if not balance.ok:
            report.skipped_reason = "balance probe failed"
            self._log(
                f"Balance probe failed, skipping tick: {balance.error.message}",
                level="warning",
                stage="kill_switch",
            )
            return False

        if self.risk.check_kill_switch(balance.value):
            report.skipped_reason = "kill switch active"
            message = (
                f"KILL SWITCH ACTIVATED: balance {balance.value} ETH is below "
                f"{kill_switch.threshold_eth} ETH. Trading halted."
            )
            self._cancel_trading_jobs()
            self._save_risk_state()
            self._log(message, level="critical", stage="kill_switch")
            self.deps.broadcaster.publish(EventType.RISK_TRIGGERED, message)
            self.deps.broadcaster.publish(EventType.KILL_SWITCH_UPDATE, {
                "kill_switch_active": True,
                "balance_eth": str(balance.value),
                "threshold_eth": str(kill_switch.threshold_eth),
            })
            self._set_status(False, "Halted - Kill Switch Active")
            return False
        return True

    def _check_risk_mode(self, report: TickReport) -> bool:
        mode = self.risk.mode
        if mode is RiskMode.ACTIVE:
            return True
        report.skipped_reason = mode.value
        if mode is RiskMode.COOLDOWN:
            remaining = self.risk.cooldown_remaining() / 60
            self._set_status(False, f"Paused - Risk Cooldown ({remaining:.1f}m)")
        elif mode is RiskMode.STOPPED:
            self._set_status(False, "Stopped")
        else:
            self._set_status(False, "Halted - Kill Switch Active")
        return False

    async def _score(self, opportunities: list[Opportunity], market: MarketContext) -> list[Opportunity]:
        ledger = list(self._ledger)
        flash_loan = self.config.flash_loan
        requests = [
            ScoreRequest(
                opportunity=opportunity,
                market_context=market,
                similarity_context=build_similarity_context(opportunity, ledger),
                flash_loan_provider=flash_loan.provider,
                flash_loan_fee=flash_loan.fee,
            )
            for opportunity in opportunities
        ]
        return list(await asyncio.gather(*(self.deps.gate.evaluate(r) for r in requests)))

    async def _execute(self, opportunity: Opportunity) -> Trade:
        self._set_status(True, f"Executing {opportunity.symbol}...")
        if self.simulation_mode:
            result = await self.deps.dispatcher.dispatch(
                opportunity,
                writer=self.deps.simulated_writer,
                relay=self.deps.simulated_relay,
            )
            status = TradeStatus.SIMULATED
        else:
            result = await self.deps.dispatcher.dispatch(opportunity)
            status = TradeStatus.SUCCESS if result.is_success else TradeStatus.FAILED

        post_mortem = await self._post_mortem(opportunity, status, result)
        trade = Trade(
            id=result.trade_id,
            opportunity=opportunity.snapshot(),
            status=status,
            profit=result.profit,
            timestamp=self.clock.now(),
            channel=opportunity.channel,
            tx_hash=result.tx_hash,
            gas_cost=result.gas_cost,
            post_mortem=post_mortem,
        )
        self._record_trade(trade)

        log_trade(
            logger, trade.id, trade.status.value, str(trade.profit),
            tx_hash=trade.tx_hash, route=trade.symbol, channel=trade.channel.value,
            simulated=trade.is_simulated,
        )
        self.deps.broadcaster.log(
            f"Trade {trade.symbol}: {trade.status.value.upper()}. "
            f"PnL: {trade.profit:.6f} ETH. Hash: {trade.tx_hash}",
        )
        self.deps.broadcaster.log(f"Gemini Post-Mortem: {post_mortem}")
        self.deps.broadcaster.publish(EventType.HISTORY_UPDATE, trade)

        if self.risk.evaluate_daily_loss(self._ledger):
            reason = self.risk.get_status()["triggers"][-1]["details"]
            self._log(f"RISK ALERT: {reason}", level="warning", stage="daily_loss")
            self.deps.broadcaster.publish(EventType.RISK_TRIGGERED, reason)
            self._save_risk_state()

        self._publish_stats()
        return trade

    async def _post_mortem(self, opportunity: Opportunity, status: TradeStatus, result: ExecutionResult) -> str:
        analysis = await capture(
            self.deps.scorer.analyze_trade(opportunity, status, result),
            ErrorCode.SCORER_ERROR, "post mortem", self.config.timeouts.scorer_seconds,
        )
        return analysis.value_or(POST_MORTEM_UNAVAILABLE)

    # =========================================================================
    # LEDGER
    # =========================================================================

    def _record_trade(self, trade: Trade) -> None:
        self._ledger.append(trade)
        self._stats.add(trade)
        try:
            self.deps.trade_store.append(trade)
        except PersistenceError as e:
            self._pending_writes.append(trade)
            self._log(
                f"Trade {trade.id} kept in memory, write will be retried: {e.message}",
                level="error",
                trade_id=trade.id,
                stage="persist",
            )

    def _flush_pending_writes(self) -> None:
        while self._pending_writes:
            trade = self._pending_writes[0]
            try:
                self.deps.trade_store.append(trade)
            except PersistenceError as e:
                self._log(
                    f"Retry of {len(self._pending_writes)} pending trade write(s) failed: {e.message}",
                    level="error",
                    stage="persist",
                )
                return
            self._pending_writes.pop(0)
            logger.info("Pending trade persisted", extra={"context": {"trade_id": trade.id}})