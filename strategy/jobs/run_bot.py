#!/usr/bin/env python3
"""
strategy/jobs/run_bot.py - CLI entrypoint for the arbitrage bot.

Usage:
    python -m strategy.jobs.run_bot --simulation
    python -m strategy.jobs.run_bot --live --config config/bot.yaml --duration 3600

Secrets come from the environment (.env): PRIVATE_KEY, RPC_URL_1..RPC_URL_9
or RPC_URLS, GEMINI_API_KEY, FLASHBOTS_RELAY_URL, ALCHEMY_API_KEY.
"""

import asyncio
import signal
import sys
from datetime import datetime, timedelta
from pathlib import Path

import click

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from ai.gemini import GeminiClient
from ai.scorer import OpportunityScorer
from chains.monitor import RpcMonitor
from chains.providers import RPCProvider
from chains.wallet import ChainWriter, Wallet
from config import DEFAULT_BOT_CONFIG
from core.exceptions import ConfigError, StartupError
from core.logging import get_logger, log_error, set_global_context, setup_logging
from core.time import SystemClock
from data.state_store import RiskStateStore
from data.trade_store import JsonlTradeStore
from dex.registry import DexRegistry
from execution.dispatcher import ExecutionDispatcher
from execution.relay import FlashbotsRelay
from execution.simulated import SimulatedChainWriter, SimulatedRelay
from monitoring.events import EventBroadcaster
from strategy.bot import ArbitrageBot, BotDependencies
from strategy.config import ConfigStore, load_env_settings, relay_url_for
from strategy.decision import DecisionGate

logger = get_logger("flarb.run_bot")

# Graceful shutdown flag
_shutdown_requested = False


def handle_shutdown(signum: int, frame: object) -> None:
    """Handle shutdown signals."""
    global _shutdown_requested
    _shutdown_requested = True
    logger.info("Shutdown requested", extra={"context": {"signal": signum}})


def build_bot(
    config_path: Path,
    trades_file: Path,
    state_file: Path,
    simulation: bool,
    env_file: str | None = None,
) -> tuple[ArbitrageBot, list]:
    """
    Wire every collaborator from config and environment.

    Returns:
        (bot, closables) where closables expose `async close()`

    Raises:
        StartupError: missing PRIVATE_KEY or no RPC endpoints
        ConfigError: invalid bot.yaml or unknown chain
    """
    env = load_env_settings(env_file)
    env.require_startup()

    config_store = ConfigStore(config_path)
    config = config_store.load()
    clock = SystemClock()

    wallet = Wallet(env.private_key)
    provider = RPCProvider(config.chain_id, env.rpc_urls, timeout_seconds=config.timeouts.call_seconds)
    registry = DexRegistry.for_chain(config.chain)
    writer = ChainWriter(
        provider, wallet, config.chain_id,
        receipt_timeout_seconds=config.timeouts.receipt_seconds,
    )
    relay = FlashbotsRelay(
        relay_url_for(config.chain, env.flashbots_relay_url),
        timeout_seconds=config.timeouts.call_seconds,
    )
    gemini = GeminiClient(
        env.gemini_api_key,
        model=config.scorer_model,
        timeout_seconds=config.timeouts.scorer_seconds,
    )
    if not env.gemini_api_key:
        logger.warning("GEMINI_API_KEY is not set; every opportunity will fail closed")
    scorer = OpportunityScorer(gemini)

    deps = BotDependencies(
        provider=provider,
        registry=registry,
        gate=DecisionGate(scorer, timeout_seconds=config.timeouts.scorer_seconds),
        scorer=scorer,
        dispatcher=ExecutionDispatcher(
            registry=registry,
            contract_address=config.flash_loan.contract_address,
            flash_loan_fee=config.flash_loan.fee,
            writer=writer,
            relay=relay,
            call_timeout_seconds=config.timeouts.call_seconds,
        ),
        trade_store=JsonlTradeStore(trades_file),
        risk_store=RiskStateStore(state_file),
        config_store=config_store,
        broadcaster=EventBroadcaster(),
        monitor=RpcMonitor(provider, probe_timeout_seconds=config.timeouts.probe_seconds),
        wallet_address=wallet.address,
        simulated_writer=SimulatedChainWriter(wallet, config.chain_id),
        simulated_relay=SimulatedRelay(),
        clock=clock,
    )
    bot = ArbitrageBot(deps, config, simulation_mode=simulation)
    return bot, [provider, relay, gemini]


async def run_bot_loop(
    bot: ArbitrageBot,
    closables: list,
    duration_seconds: int | None,
    poll_seconds: float = 0.5,
) -> None:
    """Drive the scheduler until shutdown or the duration limit."""
    end_time = None
    if duration_seconds:
        end_time = datetime.now() + timedelta(seconds=duration_seconds)

    try:
        await bot.monitor_rpc()
        if not bot.start():
            logger.error("Bot refused to start")
            return

        while not _shutdown_requested:
            if end_time and datetime.now() >= end_time:
                logger.info("Duration limit reached")
                break
            bot.scheduler.run_pending()
            await asyncio.sleep(poll_seconds)
    finally:
        if not bot.risk.is_stopped:
            bot.stop()
        await bot.scheduler.close(wait=True)
        logger.info(
            "RPC endpoint stats",
            extra={"context": {"endpoints": bot.deps.provider.get_stats_summary()}},
        )
        for closable in closables:
            await closable.close()


@click.command()
@click.option(
    "--config",
    "config_path",
    default=str(DEFAULT_BOT_CONFIG),
    type=click.Path(dir_okay=False),
    help="Bot config YAML (written back on config updates)",
)
@click.option(
    "--env-file",
    default=None,
    type=click.Path(dir_okay=False),
    help="dotenv file with secrets (default: .env lookup)",
)
@click.option(
    "--trades-file",
    default="data/runtime/trades.jsonl",
    help="Append-only trade ledger",
)
@click.option(
    "--state-file",
    default="data/runtime/risk_state.json",
    help="Persisted cooldown / kill switch state",
)
@click.option(
    "--simulation/--live",
    default=True,
    help="Simulation signs but never broadcasts",
)
@click.option(
    "--duration",
    "-d",
    default=None,
    type=int,
    help="Session duration in seconds (default: infinite)",
)
@click.option(
    "--log-level",
    "-l",
    default="INFO",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"]),
    help="Log level",
)
@click.option(
    "--json-logs/--no-json-logs",
    default=True,
    help="Use JSON log format",
)
@click.option(
    "--log-file",
    default=None,
    help="Also write logs to this file",
)
def main(
    config_path: str,
    env_file: str | None,
    trades_file: str,
    state_file: str,
    simulation: bool,
    duration: int | None,
    log_level: str,
    json_logs: bool,
    log_file: str | None,
) -> None:
    """
    FLARB flash-loan arbitrage bot.

    Scans configured routes, scores candidates with Gemini and dispatches
    approved flash-loan trades.
    """
    setup_logging(level=log_level, json_output=json_logs, log_file=log_file)
    set_global_context(
        service="flarb",
        version="0.1.0",
        mode="simulation" if simulation else "live",
    )

    signal.signal(signal.SIGINT, handle_shutdown)
    signal.signal(signal.SIGTERM, handle_shutdown)

    try:
        bot, closables = build_bot(
            Path(config_path), Path(trades_file), Path(state_file), simulation, env_file,
        )
    except (StartupError, ConfigError) as e:
        log_error(logger, e.code.value, f"Startup failed: {e.message}", **e.details)
        click.echo(f"Startup failed: {e}", err=True)
        sys.exit(1)

    logger.info(
        "Starting FLARB",
        extra={
            "context": {
                "config": config_path,
                "routes": len(bot.config.tokens),
                "simulation": simulation,
                "duration_seconds": duration,
            }
        }
    )

    try:
        asyncio.run(run_bot_loop(bot, closables, duration))
    except KeyboardInterrupt:
        logger.info("Bot interrupted")
    except Exception as e:
        logger.error(
            f"Bot error: {e}",
            extra={"context": {"error": str(e)}},
            exc_info=True,
        )
        sys.exit(1)

    stats = bot.get_stats()
    history = bot.get_trade_history()

    click.echo("\n" + "=" * 60)
    click.echo("FLARB SESSION SUMMARY")
    click.echo("=" * 60)
    click.echo(f"Mode: {'simulation' if bot.simulation_mode else 'live'}")
    click.echo(f"Final status: {bot.status_message}")
    click.echo(f"Trades in ledger: {len(history)}")
    click.echo(f"Trades today: {stats.trades_today}")
    click.echo(f"Total PnL: {stats.total_pnl:.6f} ETH")
    click.echo(f"Success rate: {stats.success_rate}%")
    click.echo(f"Risk mode: {bot.get_risk_state().mode.value}")
    click.echo("=" * 60)


if __name__ == "__main__":
    main()
