"""
core/result.py - Explicit result-or-error values for collaborator calls.

Collaborator boundaries (RPC, scorer, relay, store) return a Result so the
caller applies its documented fail-closed default instead of catching
exceptions ad hoc.

Usage:
    result = await capture(provider.get_balance(address), ErrorCode.INFRA_RPC_ERROR,
                           "balance probe", timeout=5)
    if not result.ok:
        ...
"""

import asyncio
from dataclasses import dataclass
from typing import Awaitable, Generic, Optional, TypeVar

import httpx

from core.exceptions import ErrorCode, FlarbError

T = TypeVar("T")


@dataclass(frozen=True)
class Result(Generic[T]):
    """Either a value or a FlarbError, never both."""
    value: Optional[T] = None
    error: Optional[FlarbError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value: T) -> "Result[T]":
        return cls(value=value)

    @classmethod
    def failure(cls, error: FlarbError) -> "Result[T]":
        return cls(error=error)

    def unwrap(self) -> T:
        if self.error is not None:
            raise self.error
        return self.value

    def value_or(self, default: T) -> T:
        return self.value if self.error is None else default


def to_error(
    exc: BaseException,
    code: ErrorCode,
    stage: str,
    timeout: float | None = None,
) -> FlarbError:
    """Map an exception raised by a collaborator to a typed error."""
    if isinstance(exc, FlarbError):
        return exc
    if isinstance(exc, (asyncio.TimeoutError, httpx.TimeoutException)):
        return FlarbError(
            message=f"{stage} timed out",
            code=ErrorCode.INFRA_TIMEOUT,
            details={"stage": stage, "timeout_seconds": timeout},
        )
    return FlarbError(
        message=f"{stage} failed: {exc}",
        code=code,
        details={"stage": stage, "error_type": type(exc).__name__},
    )


async def capture(
    awaitable: Awaitable[T],
    code: ErrorCode,
    stage: str,
    timeout: float | None = None,
) -> Result[T]:
    """Await a collaborator call with an optional timeout and wrap the outcome."""
    try:
        if timeout is not None:
            value = await asyncio.wait_for(awaitable, timeout=timeout)
        else:
            value = await awaitable
    except asyncio.CancelledError:
        raise
    except Exception as e:
        return Result.failure(to_error(e, code, stage, timeout))
    return Result.success(value)
