# PATH: core/constants.py
"""
Constants for FLARB.

Contains enums, defaults, and configuration constants.
"""

from decimal import Decimal
from enum import Enum
from typing import Final

# =============================================================================
# ENUMS
# =============================================================================


class Strategy(str, Enum):
    """Arbitrage strategy kinds."""
    PAIRWISE = "pairwise"
    TRIANGULAR = "triangular"

    @classmethod
    def parse(cls, value: "str | Strategy") -> "Strategy":
        """Accept canonical values and the legacy flash-loan names."""
        if isinstance(value, Strategy):
            return value
        normalized = str(value).strip().lower()
        alias = STRATEGY_ALIASES.get(normalized, normalized)
        return cls(alias)


STRATEGY_ALIASES: Final[dict[str, str]] = {
    "flashloan-pairwise-interdex": "pairwise",
    "flashloan-triangular": "triangular",
}


class TradeStatus(str, Enum):
    """Terminal outcome of an executed decision."""
    SUCCESS = "success"
    FAILED = "failed"
    SIMULATED = "simulated"


class EndpointStatus(str, Enum):
    """RPC endpoint health as observed by the monitor."""
    ONLINE = "online"
    OFFLINE = "offline"
    PENDING = "pending"


class ExecutionChannel(str, Enum):
    """How a transaction reaches the chain."""
    STANDARD = "standard"
    PRIVATE = "private"


class RiskMode(str, Enum):
    """Risk state machine modes."""
    ACTIVE = "ACTIVE"
    COOLDOWN = "COOLDOWN"
    KILL_SWITCH_ACTIVE = "KILL_SWITCH_ACTIVE"
    STOPPED = "STOPPED"


class Volatility(str, Enum):
    """Coarse volatility bucket derived from block gas usage."""
    HIGH = "high"
    MODERATE = "moderate"
    LOW = "low"
    UNKNOWN = "unknown"


class Sentiment(str, Enum):
    BULLISH = "bullish"
    BEARISH = "bearish"
    NEUTRAL = "neutral"


# =============================================================================
# CHAIN / TOKEN DEFAULTS
# =============================================================================

ZERO_ADDRESS: Final = "0x0000000000000000000000000000000000000000"

WEI_PER_ETH: Final = Decimal(10) ** 18
WEI_PER_GWEI: Final = Decimal(10) ** 9

# Polygon PoS
DEFAULT_CHAIN: Final = "polygon"
DEFAULT_CHAIN_ID: Final = 137

# =============================================================================
# LOOP / SCHEDULER DEFAULTS
# =============================================================================

DEFAULT_SCAN_INTERVAL_SECONDS: Final = 20
DEFAULT_RPC_MONITOR_INTERVAL_SECONDS: Final = 60
DEFAULT_ADVICE_INTERVAL_SECONDS: Final = 300
DEFAULT_SENTIMENT_INTERVAL_SECONDS: Final = 900

DEFAULT_CALL_TIMEOUT_SECONDS: Final = 10
DEFAULT_PROBE_TIMEOUT_SECONDS: Final = 5
DEFAULT_SCORER_TIMEOUT_SECONDS: Final = 20
DEFAULT_RECEIPT_TIMEOUT_SECONDS: Final = 120

# =============================================================================
# DECISION / EXECUTION DEFAULTS
# =============================================================================

DEFAULT_P_SUCCESS_THRESHOLD: Final = 0.7
DEFAULT_FLASH_LOAN_FEE: Final = Decimal("0.0009")
GAS_LIMIT_MULTIPLIER: Final = Decimal("1.2")

# Simulated executions report this gas cost when no estimate is available
DEFAULT_SIMULATED_GAS_COST_ETH: Final = Decimal("0.001")

# =============================================================================
# RISK DEFAULTS
# =============================================================================

DEFAULT_DAILY_LOSS_THRESHOLD: Final = Decimal("0.02")
DEFAULT_COOLDOWN_MINUTES: Final = 60
DEFAULT_CAPITAL_ETH: Final = Decimal("10")
DEFAULT_KILL_SWITCH_THRESHOLD_ETH: Final = Decimal("0.5")

# =============================================================================
# BUFFERS / MEMORY
# =============================================================================

OPPORTUNITY_BUFFER_SIZE: Final = 20
LOG_BUFFER_SIZE: Final = 100
RISK_TRIGGER_HISTORY: Final = 5
SIMILAR_TRADES_LIMIT: Final = 3
MIN_TRADES_FOR_ADVICE: Final = 5
SUBSCRIBER_QUEUE_SIZE: Final = 256

NO_SIMILAR_TRADES: Final = "No similar trades in memory."
MEMORY_HEADER: Final = "Historical Memory (Similar Past Trades):"

# Block gas usage ratio buckets
VOLATILITY_HIGH_RATIO: Final = 0.8
VOLATILITY_MODERATE_RATIO: Final = 0.6
