"""
strategy/decision.py - Decision gate in front of the execution dispatcher.

FAIL-CLOSED CONTRACT
====================
Any scorer error, timeout or malformed answer yields p_success = 0 and
loan_amount = 0, so the opportunity can never pass the gate.

EXECUTION RULE
==============
    execute  iff  p_success >= threshold  AND  risk mode is ACTIVE
The boundary is inclusive: p_success == threshold executes.
"""

import asyncio
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

from core.constants import ExecutionChannel, RiskMode
from core.exceptions import ErrorCode, ScoringError
from core.logging import get_logger, log_opportunity
from core.models import MarketContext, Opportunity
from core.result import to_error

logger = get_logger("flarb.decision")

FAILED_RATIONALE = "AI analysis failed."


@dataclass(frozen=True)
class ScoreRequest:
    opportunity: Opportunity
    market_context: MarketContext
    similarity_context: str
    flash_loan_provider: str
    flash_loan_fee: Decimal


@dataclass(frozen=True)
class ScoreResult:
    p_success: float
    loan_amount: Decimal
    rationale: str
    channel: ExecutionChannel = ExecutionChannel.STANDARD
    failed: bool = False
    error_code: Optional[ErrorCode] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "p_success": self.p_success,
            "loan_amount": str(self.loan_amount),
            "rationale": self.rationale,
            "channel": self.channel.value,
            "failed": self.failed,
            "error_code": self.error_code.value if self.error_code else None,
        }


def fail_closed(reason: str, code: ErrorCode = ErrorCode.SCORER_ERROR) -> ScoreResult:
    return ScoreResult(
        p_success=0.0,
        loan_amount=Decimal("0"),
        rationale=f"{FAILED_RATIONALE} {reason}".strip(),
        failed=True,
        error_code=code,
    )


def _malformed(message: str, payload: Any) -> ScoringError:
    return ScoringError(
        code=ErrorCode.SCORER_MALFORMED,
        message=message,
        details={"payload": str(payload)[:200]},
    )


def parse_score_response(payload: Any) -> ScoreResult:
    """
    Validate a scorer answer.

    Accepts {pSuccess, loanAmount, rationale, channel | useFlashbots}.
    Snake-case keys are accepted too.

    Raises:
        ScoringError(SCORER_MALFORMED)
    """
    if not isinstance(payload, dict):
        raise _malformed("Score response is not an object", payload)

    p_success = payload.get("pSuccess", payload.get("p_success"))
    if isinstance(p_success, bool) or not isinstance(p_success, (int, float)):
        raise _malformed("pSuccess missing or not a number", payload)
    p_success = float(p_success)
    if not 0.0 <= p_success <= 1.0:
        raise _malformed(f"pSuccess out of range: {p_success}", payload)

    raw_amount = payload.get("loanAmount", payload.get("loan_amount"))
    if isinstance(raw_amount, bool) or raw_amount is None:
        raise _malformed("loanAmount missing", payload)
    try:
        loan_amount = Decimal(str(raw_amount))
    except (InvalidOperation, ValueError):
        raise _malformed(f"loanAmount not a number: {raw_amount!r}", payload)
    if not loan_amount.is_finite() or loan_amount < 0:
        raise _malformed(f"loanAmount invalid: {loan_amount}", payload)

    rationale = payload.get("rationale", "")
    if not isinstance(rationale, str):
        raise _malformed("rationale is not a string", payload)

    channel_value = payload.get("channel")
    if channel_value is not None:
        try:
            channel = ExecutionChannel(str(channel_value).lower())
        except ValueError:
            raise _malformed(f"unknown channel {channel_value!r}", payload)
    else:
        use_private = payload.get("useFlashbots", payload.get("use_flashbots", False))
        if not isinstance(use_private, bool):
            raise _malformed("useFlashbots is not a boolean", payload)
        channel = ExecutionChannel.PRIVATE if use_private else ExecutionChannel.STANDARD

    return ScoreResult(
        p_success=p_success,
        loan_amount=loan_amount,
        rationale=rationale,
        channel=channel,
    )


def should_execute(p_success: Optional[float], threshold: float, mode: RiskMode) -> bool:
    """Inclusive threshold and Active risk mode, both required."""
    if p_success is None:
        return False
    return p_success >= threshold and mode is RiskMode.ACTIVE


def apply_score(opportunity: Opportunity, score: ScoreResult, similarity_context: str) -> Opportunity:
    """Enrich the opportunity once with the gate's verdict."""
    opportunity.p_success = score.p_success
    opportunity.loan_amount = score.loan_amount
    opportunity.rationale = score.rationale
    opportunity.channel = score.channel
    opportunity.similar_trades = similarity_context
    return opportunity


class DecisionGate:
    """
    Wraps the scorer with a timeout and fail-closed parsing.

    The scorer is any object with `async score(request: ScoreRequest) -> dict`.
    """

    def __init__(self, scorer, timeout_seconds: float):
        self.scorer = scorer
        self.timeout_seconds = timeout_seconds

    async def score(self, request: ScoreRequest) -> ScoreResult:
        try:
            payload = await asyncio.wait_for(
                self.scorer.score(request),
                timeout=self.timeout_seconds,
            )
        except asyncio.CancelledError:
            raise
        except Exception as e:
            error = to_error(e, ErrorCode.SCORER_ERROR, "score", self.timeout_seconds)
            code = ErrorCode.SCORER_TIMEOUT if error.code is ErrorCode.INFRA_TIMEOUT else error.code
            logger.warning(
                f"Scorer failed, failing closed: {error.message}",
                extra={"context": {
                    "route": request.opportunity.symbol,
                    "strategy": request.opportunity.strategy.value,
                    "stage": "score",
                    "error_code": code.value,
                }},
            )
            return fail_closed(error.message, code)

        try:
            return parse_score_response(payload)
        except ScoringError as e:
            logger.warning(
                f"Malformed scorer response, failing closed: {e.message}",
                extra={"context": {
                    "route": request.opportunity.symbol,
                    "stage": "score",
                    "error_code": e.code.value,
                }},
            )
            return fail_closed(e.message, e.code)

    async def evaluate(self, request: ScoreRequest) -> Opportunity:
        """Score and enrich the request's opportunity."""
        result = await self.score(request)
        opportunity = apply_score(request.opportunity, result, request.similarity_context)
        log_opportunity(
            logger,
            opportunity.id,
            opportunity.symbol,
            opportunity.strategy.value,
            f"{opportunity.spread:.6f}",
            p_success=opportunity.p_success,
            loan_amount=str(opportunity.loan_amount),
            channel=opportunity.channel.value,
        )
        return opportunity
