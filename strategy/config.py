"""
strategy/config.py - Bot configuration.

Routes, decision threshold, flash-loan terms, risk limits, intervals and
timeouts, loaded from YAML. Secrets come from the environment (.env).
"""

import os
from dataclasses import dataclass, field, replace
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv

from config import DEFAULT_BOT_CONFIG
from core.constants import (
    DEFAULT_ADVICE_INTERVAL_SECONDS,
    DEFAULT_CALL_TIMEOUT_SECONDS,
    DEFAULT_CAPITAL_ETH,
    DEFAULT_CHAIN,
    DEFAULT_CHAIN_ID,
    DEFAULT_COOLDOWN_MINUTES,
    DEFAULT_DAILY_LOSS_THRESHOLD,
    DEFAULT_FLASH_LOAN_FEE,
    DEFAULT_KILL_SWITCH_THRESHOLD_ETH,
    DEFAULT_P_SUCCESS_THRESHOLD,
    DEFAULT_PROBE_TIMEOUT_SECONDS,
    DEFAULT_RECEIPT_TIMEOUT_SECONDS,
    DEFAULT_RPC_MONITOR_INTERVAL_SECONDS,
    DEFAULT_SCAN_INTERVAL_SECONDS,
    DEFAULT_SCORER_TIMEOUT_SECONDS,
    DEFAULT_SENTIMENT_INTERVAL_SECONDS,
    Strategy,
)
from core.exceptions import ConfigError, ErrorCode, StartupError
from core.logging import get_logger
from core.models import TokenRoute

logger = get_logger("flarb.config")

DEFAULT_FLASHBOTS_RELAY = "https://relay.flashbots.net"
POLYGON_FLASHBOTS_RELAY = "https://relay-polygon.flashbots.net"
MAX_RPC_URL_INDEX = 9


def _decimal(value: Any, name: str) -> Decimal:
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError) as e:
        raise ConfigError(f"{name} is not a number: {value!r}", details={"field": name}) from e


@dataclass
class KillSwitchConfig:
    enabled: bool = True
    threshold_eth: Decimal = DEFAULT_KILL_SWITCH_THRESHOLD_ETH


@dataclass
class RiskConfig:
    daily_loss_threshold: Decimal = DEFAULT_DAILY_LOSS_THRESHOLD
    cooldown_minutes: int = DEFAULT_COOLDOWN_MINUTES
    capital_eth: Decimal = DEFAULT_CAPITAL_ETH
    kill_switch: KillSwitchConfig = field(default_factory=KillSwitchConfig)


@dataclass
class FlashLoanConfig:
    provider: str = "Aave V3"
    fee: Decimal = DEFAULT_FLASH_LOAN_FEE
    contract_address: str = ""


@dataclass
class IntervalConfig:
    scan_seconds: float = DEFAULT_SCAN_INTERVAL_SECONDS
    rpc_monitor_seconds: float = DEFAULT_RPC_MONITOR_INTERVAL_SECONDS
    advice_seconds: float = DEFAULT_ADVICE_INTERVAL_SECONDS
    sentiment_seconds: float = DEFAULT_SENTIMENT_INTERVAL_SECONDS


@dataclass
class TimeoutConfig:
    call_seconds: float = DEFAULT_CALL_TIMEOUT_SECONDS
    probe_seconds: float = DEFAULT_PROBE_TIMEOUT_SECONDS
    scorer_seconds: float = DEFAULT_SCORER_TIMEOUT_SECONDS
    receipt_seconds: float = DEFAULT_RECEIPT_TIMEOUT_SECONDS


@dataclass
class BotConfig:
    """Full bot configuration. Replaced wholesale on update; read per tick."""
    tokens: list[TokenRoute] = field(default_factory=list)
    p_success_threshold: float = DEFAULT_P_SUCCESS_THRESHOLD
    flash_loan: FlashLoanConfig = field(default_factory=FlashLoanConfig)
    risk: RiskConfig = field(default_factory=RiskConfig)
    intervals: IntervalConfig = field(default_factory=IntervalConfig)
    timeouts: TimeoutConfig = field(default_factory=TimeoutConfig)
    chain: str = DEFAULT_CHAIN
    chain_id: int = DEFAULT_CHAIN_ID
    scorer_model: str = "gemini-2.5-flash"

    def validate(self) -> None:
        """Raise ConfigError on the first invalid value."""
        if not 0.0 <= self.p_success_threshold <= 1.0:
            raise ConfigError(
                f"p_success_threshold must be within [0, 1], got {self.p_success_threshold}",
            )
        if self.flash_loan.fee < 0:
            raise ConfigError("flash_loan.fee must be >= 0")
        if self.risk.capital_eth <= 0:
            raise ConfigError("risk.capital_eth must be > 0")
        if self.risk.cooldown_minutes < 0:
            raise ConfigError("risk.cooldown_minutes must be >= 0")
        for route in self.tokens:
            errors = route.validation_errors()
            if errors:
                raise ConfigError(
                    f"Invalid route {route.symbol}: {'; '.join(errors)}",
                    details={"route": route.symbol, "errors": errors},
                )

    def with_threshold(self, threshold: float) -> "BotConfig":
        return replace(self, p_success_threshold=threshold)

    def to_dict(self) -> dict[str, Any]:
        return {
            "chain": self.chain,
            "chain_id": self.chain_id,
            "tokens": [
                {
                    "symbol": r.symbol,
                    "strategy": r.strategy.value,
                    "dexes": list(r.dexes),
                    "min_spread": str(r.min_spread),
                    "addresses": dict(r.addresses),
                }
                for r in self.tokens
            ],
            "p_success_threshold": self.p_success_threshold,
            "flash_loan": {
                "provider": self.flash_loan.provider,
                "fee": str(self.flash_loan.fee),
                "contract_address": self.flash_loan.contract_address,
            },
            "risk": {
                "daily_loss_threshold": str(self.risk.daily_loss_threshold),
                "cooldown_minutes": self.risk.cooldown_minutes,
                "capital_eth": str(self.risk.capital_eth),
                "kill_switch": {
                    "enabled": self.risk.kill_switch.enabled,
                    "threshold_eth": str(self.risk.kill_switch.threshold_eth),
                },
            },
            "intervals": {
                "scan_seconds": self.intervals.scan_seconds,
                "rpc_monitor_seconds": self.intervals.rpc_monitor_seconds,
                "advice_seconds": self.intervals.advice_seconds,
                "sentiment_seconds": self.intervals.sentiment_seconds,
            },
            "timeouts": {
                "call_seconds": self.timeouts.call_seconds,
                "probe_seconds": self.timeouts.probe_seconds,
                "scorer_seconds": self.timeouts.scorer_seconds,
                "receipt_seconds": self.timeouts.receipt_seconds,
            },
            "scorer": {"model": self.scorer_model},
        }


def parse_route(data: dict[str, Any], chain: str) -> TokenRoute:
    try:
        return TokenRoute(
            symbol=data["symbol"],
            strategy=Strategy.parse(data["strategy"]),
            dexes=tuple(data.get("dexes", [])),
            addresses=dict(data.get("addresses", {})),
            min_spread=_decimal(data.get("min_spread", "0"), "min_spread"),
            chain=data.get("chain", chain),
        )
    except KeyError as e:
        raise ConfigError(f"Route is missing {e}", details={"route": data}) from e
    except ValueError as e:
        raise ConfigError(f"Invalid route: {e}", details={"route": data}) from e


def parse_bot_config(data: dict[str, Any]) -> BotConfig:
    """Build a validated BotConfig from a parsed YAML mapping."""
    chain = data.get("chain", DEFAULT_CHAIN)

    risk_data = data.get("risk", {})
    ks_data = risk_data.get("kill_switch", {})
    flash_data = data.get("flash_loan", {})
    intervals_data = data.get("intervals", {})
    timeouts_data = data.get("timeouts", {})

    config = BotConfig(
        tokens=[parse_route(r, chain) for r in data.get("tokens", [])],
        p_success_threshold=float(data.get("p_success_threshold", DEFAULT_P_SUCCESS_THRESHOLD)),
        flash_loan=FlashLoanConfig(
            provider=flash_data.get("provider", "Aave V3"),
            fee=_decimal(flash_data.get("fee", DEFAULT_FLASH_LOAN_FEE), "flash_loan.fee"),
            contract_address=flash_data.get("contract_address", ""),
        ),
        risk=RiskConfig(
            daily_loss_threshold=_decimal(
                risk_data.get("daily_loss_threshold", DEFAULT_DAILY_LOSS_THRESHOLD),
                "risk.daily_loss_threshold",
            ),
            cooldown_minutes=int(risk_data.get("cooldown_minutes", DEFAULT_COOLDOWN_MINUTES)),
            capital_eth=_decimal(risk_data.get("capital_eth", DEFAULT_CAPITAL_ETH), "risk.capital_eth"),
            kill_switch=KillSwitchConfig(
                enabled=bool(ks_data.get("enabled", True)),
                threshold_eth=_decimal(
                    ks_data.get("threshold_eth", DEFAULT_KILL_SWITCH_THRESHOLD_ETH),
                    "risk.kill_switch.threshold_eth",
                ),
            ),
        ),
        intervals=IntervalConfig(
            scan_seconds=float(intervals_data.get("scan_seconds", DEFAULT_SCAN_INTERVAL_SECONDS)),
            rpc_monitor_seconds=float(
                intervals_data.get("rpc_monitor_seconds", DEFAULT_RPC_MONITOR_INTERVAL_SECONDS)
            ),
            advice_seconds=float(intervals_data.get("advice_seconds", DEFAULT_ADVICE_INTERVAL_SECONDS)),
            sentiment_seconds=float(
                intervals_data.get("sentiment_seconds", DEFAULT_SENTIMENT_INTERVAL_SECONDS)
            ),
        ),
        timeouts=TimeoutConfig(
            call_seconds=float(timeouts_data.get("call_seconds", DEFAULT_CALL_TIMEOUT_SECONDS)),
            probe_seconds=float(timeouts_data.get("probe_seconds", DEFAULT_PROBE_TIMEOUT_SECONDS)),
            scorer_seconds=float(timeouts_data.get("scorer_seconds", DEFAULT_SCORER_TIMEOUT_SECONDS)),
            receipt_seconds=float(timeouts_data.get("receipt_seconds", DEFAULT_RECEIPT_TIMEOUT_SECONDS)),
        ),
        chain=chain,
        chain_id=int(data.get("chain_id", DEFAULT_CHAIN_ID)),
        scorer_model=data.get("scorer", {}).get("model", "gemini-2.5-flash"),
    )
    config.validate()
    return config


def load_bot_config(config_path: Path | None = None) -> BotConfig:
    """
    Load bot configuration from YAML.

    Args:
        config_path: Path to bot.yaml (default: packaged config/bot.yaml)
    """
    if config_path is None:
        config_path = DEFAULT_BOT_CONFIG

    with open(config_path, encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}

    return parse_bot_config(data)


class ConfigStore:
    """
    YAML-backed configuration store.

    A missing file falls back to the packaged defaults; save() always writes
    the given path.
    """

    def __init__(self, path: Path | str):
        self.path = Path(path)

    def load(self) -> BotConfig:
        if not self.path.exists():
            logger.info(
                "Config file missing, using packaged defaults",
                extra={"context": {"path": str(self.path)}},
            )
            return load_bot_config(DEFAULT_BOT_CONFIG)
        return load_bot_config(self.path)

    def save(self, config: BotConfig) -> None:
        config.validate()
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        with open(tmp, "w", encoding="utf-8") as f:
            yaml.safe_dump(config.to_dict(), f, sort_keys=False)
        tmp.replace(self.path)


# =============================================================================
# SECRETS / ENVIRONMENT
# =============================================================================

@dataclass
class EnvSettings:
    """Secrets and endpoints from the environment."""
    private_key: str
    rpc_urls: list[str]
    gemini_api_key: str = ""
    flashbots_relay_url: str = ""

    def require_startup(self) -> None:
        """Fatal startup checks: signing key and at least one RPC endpoint."""
        if not self.private_key:
            raise StartupError(
                code=ErrorCode.STARTUP_MISSING_KEY,
                message="PRIVATE_KEY is not set",
            )
        if not self.rpc_urls:
            raise StartupError(
                code=ErrorCode.STARTUP_NO_ENDPOINTS,
                message="No RPC endpoints configured (set RPC_URL_1..RPC_URL_9 or RPC_URLS)",
            )


def load_env_settings(dotenv_path: str | None = None) -> EnvSettings:
    """Read secrets from the environment, loading .env first."""
    load_dotenv(dotenv_path)

    urls = []
    for i in range(1, MAX_RPC_URL_INDEX + 1):
        url = os.getenv(f"RPC_URL_{i}", "").strip()
        if url:
            urls.append(url)
    for url in os.getenv("RPC_URLS", "").split(","):
        url = url.strip()
        if url and url not in urls:
            urls.append(url)

    return EnvSettings(
        private_key=os.getenv("PRIVATE_KEY", "").strip(),
        rpc_urls=urls,
        gemini_api_key=os.getenv("GEMINI_API_KEY", "").strip(),
        flashbots_relay_url=os.getenv("FLASHBOTS_RELAY_URL", "").strip(),
    )


def relay_url_for(chain: str, override: str = "") -> str:
    """Explicit FLASHBOTS_RELAY_URL wins; otherwise the chain's relay."""
    if override:
        return override
    if chain == "polygon":
        return POLYGON_FLASHBOTS_RELAY
    return DEFAULT_FLASHBOTS_RELAY
