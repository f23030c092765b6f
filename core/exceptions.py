# PATH: core/exceptions.py
"""
Typed exceptions for FLARB.

Every error carries an ErrorCode so callers can tell infra failures,
pool problems, scorer failures and on-chain rejections apart.
"""

from enum import Enum
from typing import Optional


class ErrorCode(str, Enum):
    """Error codes for logging and fail-closed handling."""

    # Infrastructure
    INFRA_RPC_ERROR = "INFRA_RPC_ERROR"
    INFRA_TIMEOUT = "INFRA_TIMEOUT"
    INFRA_NO_ENDPOINTS = "INFRA_NO_ENDPOINTS"

    # Pools
    POOL_NOT_FOUND = "POOL_NOT_FOUND"
    POOL_NO_LIQUIDITY = "POOL_NO_LIQUIDITY"
    POOL_DECODE_ERROR = "POOL_DECODE_ERROR"
    ROUTE_INVALID = "ROUTE_INVALID"
    DEX_UNKNOWN = "DEX_UNKNOWN"

    # Scoring
    SCORER_ERROR = "SCORER_ERROR"
    SCORER_TIMEOUT = "SCORER_TIMEOUT"
    SCORER_MALFORMED = "SCORER_MALFORMED"
    SCORER_UNAVAILABLE = "SCORER_UNAVAILABLE"

    # Execution
    EXEC_ENCODE_FAILED = "EXEC_ENCODE_FAILED"
    EXEC_GAS_ESTIMATE_FAILED = "EXEC_GAS_ESTIMATE_FAILED"
    EXEC_SIGN_FAILED = "EXEC_SIGN_FAILED"
    EXEC_BROADCAST_FAILED = "EXEC_BROADCAST_FAILED"
    EXEC_RECEIPT_TIMEOUT = "EXEC_RECEIPT_TIMEOUT"
    EXEC_REVERTED = "EXEC_REVERTED"
    EXEC_SIMULATION_REVERTED = "EXEC_SIMULATION_REVERTED"
    EXEC_INVALID_TRANSITION = "EXEC_INVALID_TRANSITION"
    RELAY_ERROR = "RELAY_ERROR"

    # State / config
    PERSISTENCE_ERROR = "PERSISTENCE_ERROR"
    CONFIG_INVALID = "CONFIG_INVALID"
    STARTUP_MISSING_KEY = "STARTUP_MISSING_KEY"
    STARTUP_NO_ENDPOINTS = "STARTUP_NO_ENDPOINTS"

    UNKNOWN = "UNKNOWN"


class FlarbError(Exception):
    """Base exception for FLARB."""

    def __init__(
        self,
        message: str = "",
        code: ErrorCode = ErrorCode.UNKNOWN,
        details: Optional[dict] = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = details or {}

    def __str__(self):
        return f"[{self.code.value}] {self.message}"

    def to_dict(self) -> dict:
        return {
            "code": self.code.value,
            "message": self.message,
            "details": self.details,
        }


class InfraError(FlarbError):
    """Infrastructure-related errors (RPC, timeouts)."""
    pass


class PoolError(FlarbError):
    """Pair resolution or reserve read failed."""
    pass


class ScoringError(FlarbError):
    """AI scoring collaborator failed or answered garbage."""
    pass


class ExecutionError(FlarbError):
    """Building, signing or broadcasting a transaction failed."""
    pass


class RelayError(FlarbError):
    """Private relay rejected or failed a request."""
    pass


class PersistenceError(FlarbError):
    """Trade or state could not be written."""
    pass


class ConfigError(FlarbError):
    """Invalid configuration."""

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(message, ErrorCode.CONFIG_INVALID, details)


class StartupError(FlarbError):
    """Fatal startup condition; the bot refuses to start."""
    pass
