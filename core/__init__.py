"""
core - Core utilities and models for FLARB.

This package contains:
- models.py: Data models (TokenRoute, Opportunity, Trade, RpcEndpoint, RiskState)
- constants.py: Enums and defaults
- exceptions.py: Typed exceptions with error codes
- result.py: Result type for collaborator boundaries
- time.py: Clocks and calendar-day helpers
- scheduler.py: Periodic job scheduler
- logging.py: Structured JSON logging
"""

from core.constants import (
    EndpointStatus,
    ExecutionChannel,
    RiskMode,
    Strategy,
    TradeStatus,
)
from core.exceptions import (
    ConfigError,
    ErrorCode,
    ExecutionError,
    FlarbError,
    InfraError,
    PersistenceError,
    PoolError,
    RelayError,
    ScoringError,
    StartupError,
)
from core.logging import get_logger, setup_logging
from core.models import (
    BotStats,
    MarketContext,
    Opportunity,
    PoolReserves,
    RiskState,
    RpcEndpoint,
    TokenRoute,
    Trade,
)
from core.result import Result, capture

__all__ = [
    # Constants
    "EndpointStatus",
    "ExecutionChannel",
    "RiskMode",
    "Strategy",
    "TradeStatus",
    # Exceptions
    "ConfigError",
    "ErrorCode",
    "ExecutionError",
    "FlarbError",
    "InfraError",
    "PersistenceError",
    "PoolError",
    "RelayError",
    "ScoringError",
    "StartupError",
    # Models
    "BotStats",
    "MarketContext",
    "Opportunity",
    "PoolReserves",
    "RiskState",
    "RpcEndpoint",
    "TokenRoute",
    "Trade",
    # Result
    "Result",
    "capture",
    # Logging
    "get_logger",
    "setup_logging",
]
