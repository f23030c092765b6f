"""
ai/scorer.py - Opportunity scoring and advisory prompts.

The scorer is a collaborator of the decision gate: score() returns the raw
JSON object and leaves validation (and fail-closed handling) to
strategy.decision. The advisory calls never raise; each returns a fixed
fallback when the model is unavailable.
"""

from typing import Any, Iterable, Optional

from ai.gemini import GeminiClient
from core.constants import ExecutionChannel, Sentiment, Strategy, TradeStatus
from core.exceptions import ErrorCode, FlarbError, ScoringError
from core.logging import get_logger
from core.models import Opportunity, Trade
from strategy.decision import ScoreRequest

logger = get_logger("flarb.scorer")

POST_MORTEM_FAILED = "Post-trade analysis by AI failed."
ADVICE_FAILED = "Could not retrieve AI-driven advice."
ADVICE_TRADE_WINDOW = 10

SCORE_TEMPERATURE = 0.5
ADVICE_TEMPERATURE = 0.7

FLASH_LOAN_SCHEMA: dict[str, Any] = {
    "type": "OBJECT",
    "properties": {
        "pSuccess": {
            "type": "NUMBER",
            "description": "Estimated probability of the atomic transaction succeeding (0.0 to 1.0).",
        },
        "loanAmount": {
            "type": "NUMBER",
            "description": "Suggested flash loan amount in ETH.",
        },
        "rationale": {
            "type": "STRING",
            "description": "Brief explanation of the decision, considering flash loan risks.",
        },
        "useFlashbots": {
            "type": "BOOLEAN",
            "description": "True if private relay execution is recommended to prevent front-running.",
        },
    },
    "required": ["pSuccess", "loanAmount", "rationale", "useFlashbots"],
}


def neutral_sentiment() -> dict[str, Any]:
    return {"overall": Sentiment.NEUTRAL.value, "tokens": {}}


def sentiment_schema(symbols: Iterable[str]) -> dict[str, Any]:
    return {
        "type": "OBJECT",
        "properties": {
            "overall": {"type": "STRING"},
            "tokens": {
                "type": "OBJECT",
                "properties": {symbol: {"type": "STRING"} for symbol in symbols},
            },
        },
        "required": ["overall", "tokens"],
    }


def _pct(value, places: int = 4) -> str:
    return f"{value * 100:.{places}f}%"


def _market_lines(request: ScoreRequest, route_label: str) -> str:
    ctx = request.market_context
    sentiment = ctx.sentiment or {}
    symbol = request.opportunity.symbol
    token_sentiment = (sentiment.get("tokens") or {}).get(symbol, Sentiment.NEUTRAL.value)
    gas = ctx.gas_price_gwei if ctx.gas_price_gwei is not None else "unknown"
    return (
        f"Market Context:\n"
        f"- Gas Price: {gas} Gwei\n"
        f"- Network Volatility: {ctx.volatility.value}\n"
        f"- Overall Market Sentiment: {sentiment.get('overall', Sentiment.NEUTRAL.value)}\n"
        f"- {route_label} Sentiment ({symbol}): {token_sentiment}"
    )


def build_score_prompt(request: ScoreRequest) -> str:
    """
    Strategy-specific assessment prompt.

    Raises:
        ScoringError: strategy has no prompt
    """
    opp = request.opportunity
    fee = request.flash_loan_fee
    loan_lines = (
        f"Flash Loan Provider: {request.flash_loan_provider}\n"
        f"Flash Loan Fee: {fee * 100}%"
    )

    def details(route_line: str) -> str:
        return (
            "Opportunity Details:\n"
            f"- Strategy: {opp.strategy.value}\n"
            f"- Token Route: {opp.symbol}\n"
            f"{route_line}\n"
            f"- Gross Spread: {_pct(opp.spread)}\n"
            f"- Net Spread (after loan fee): {_pct(opp.spread - fee)}\n"
            f"- Pool Liquidity: {opp.liquidity}"
        )

    if opp.strategy is Strategy.TRIANGULAR:
        return "\n\n".join([
            f"Analyze this FLASH LOAN TRIANGULAR arbitrage opportunity on {opp.route.chain}.\n"
            "This is an atomic transaction: borrow -> swap A->B -> swap B->C -> swap C->A -> repay. "
            "All legs must succeed.",
            loan_lines,
            _market_lines(request, "Token Route"),
            details(f"- DEX: {opp.route.dexes[0]}"),
            request.similarity_context,
            "Task: Provide a strategic assessment for a TRIANGULAR flash loan.\n"
            "1. pSuccess: Probability of success. Lower than pairwise because of three swaps. "
            "High volatility is extremely risky here and low liquidity greatly increases slippage.\n"
            "2. loanAmount: Optimal loan amount in ETH. Stay conservative because of multi-leg slippage.\n"
            "3. rationale: Explain the decision, highlighting the risk of triangular routes and the "
            "available liquidity.\n"
            "4. useFlashbots: Recommend private relay execution; triangular routes are not viable "
            "without MEV protection.",
        ])

    if opp.strategy is Strategy.PAIRWISE:
        path = opp.trade_path or opp.route.dexes
        return "\n\n".join([
            f"Analyze this FLASH LOAN PAIRWISE INTER-DEX arbitrage opportunity on {opp.route.chain}.\n"
            "This is an atomic transaction: borrow -> buy on DEX A -> sell on DEX B -> repay.",
            loan_lines,
            _market_lines(request, "Token"),
            details(f"- Arbitrage Route: {' -> '.join(path)}"),
            request.similarity_context,
            "Task: Provide a strategic assessment for an INTER-DEX flash loan.\n"
            "1. pSuccess: Probability of success. Account for the gas cost of swapping on two DEXes "
            "and for network latency. Check that liquidity is sufficient on both ends.\n"
            "2. loanAmount: Optimal loan amount in ETH, sized to the thinner of the two pools.\n"
            "3. rationale: Explain whether the spread covers multi-DEX gas and whether liquidity "
            "supports the loan.\n"
            "4. useFlashbots: Recommend private relay execution to prevent front-running.",
        ])

    raise ScoringError(
        code=ErrorCode.SCORER_MALFORMED,
        message=f"Unknown strategy type: {opp.strategy}",
    )


def build_post_mortem_prompt(opportunity: Opportunity, status: TradeStatus, result) -> str:
    channel = (
        "Flashbots (MEV Protected)"
        if opportunity.channel is ExecutionChannel.PRIVATE
        else "Standard"
    )
    p_success = opportunity.p_success or 0.0
    return (
        "A crypto arbitrage trade was executed. Provide a brief post-mortem analysis.\n\n"
        "Trade Details:\n"
        f"- Strategy: {opportunity.strategy.value}\n"
        f"- Token Pair: {opportunity.symbol}\n"
        f"- Predicted P(Success): {p_success * 100:.2f}%\n"
        f"- Execution: {channel}\n"
        f"- Status: {status.value}\n"
        f"- Actual PnL: {result.profit:.5f} ETH\n"
        f"- On-Chain Tx: {result.tx_hash}\n"
        f"- Failure: {result.error_message or 'none'}\n\n"
        "Task: Explain the likely reason for the outcome and provide a one-sentence learning.\n"
        "- If SUCCESS: what contributed (accurate prediction, low congestion, MEV protection)?\n"
        "- If FAILED: what was the likely cause (slippage revert, front-run, high gas)?"
    )


def build_advice_prompt(trades: list[Trade], config) -> str:
    recent = "\n".join(
        f"- {t.symbol} ({t.strategy.value}): {t.status.value}, PnL: {t.profit:.4f} ETH"
        for t in trades[:ADVICE_TRADE_WINDOW]
    )
    return (
        "Act as a quantitative analyst. Based on recent trade history and bot config, "
        "suggest one single improvement.\n\n"
        "Current Config:\n"
        f"- P(Success) Threshold: {config.p_success_threshold}\n"
        f"- Daily Loss Threshold: {config.risk.daily_loss_threshold * 100}%\n\n"
        f"Recent Trades (last {ADVICE_TRADE_WINDOW}):\n{recent}\n\n"
        "Analysis Task: Suggest one actionable sentence.\n"
        "- If many failed trades had a high P(Success), suggest increasing the threshold.\n"
        "- If there are few trades, suggest decreasing the threshold.\n"
        "- If losses are frequent, suggest tightening the daily loss threshold."
    )


class OpportunityScorer:
    """Gemini-backed scorer and advisor."""

    def __init__(self, client: GeminiClient):
        self.client = client

    async def score(self, request: ScoreRequest) -> Any:
        """
        Raises:
            ScoringError: prompt, transport or JSON failure
        """
        prompt = build_score_prompt(request)
        return await self.client.generate_json(
            prompt, FLASH_LOAN_SCHEMA, temperature=SCORE_TEMPERATURE,
        )

    async def analyze_trade(self, opportunity: Opportunity, status: TradeStatus, result) -> str:
        try:
            text = await self.client.generate(build_post_mortem_prompt(opportunity, status, result))
        except FlarbError as e:
            logger.warning(
                f"Post-mortem unavailable: {e.message}",
                extra={"context": {"route": opportunity.symbol, "stage": "post_mortem"}},
            )
            return POST_MORTEM_FAILED
        return text.strip() or POST_MORTEM_FAILED

    async def suggest_config_changes(self, trades: list[Trade], config) -> str:
        try:
            text = await self.client.generate(
                build_advice_prompt(trades, config), temperature=ADVICE_TEMPERATURE,
            )
        except FlarbError as e:
            logger.warning(f"Strategic advice unavailable: {e.message}")
            return ADVICE_FAILED
        return text.strip() or ADVICE_FAILED

    async def market_sentiment(self, symbols: list[str]) -> dict[str, Any]:
        prompt = (
            "Based on general market news, provide a sentiment analysis for the following "
            f"crypto tokens: {', '.join(symbols)}.\n"
            "Also provide an 'overall' market sentiment.\n"
            "Possible sentiments are: bullish, bearish, neutral."
        )
        try:
            data = await self.client.generate_json(prompt, sentiment_schema(symbols))
        except FlarbError as e:
            logger.warning(f"Sentiment unavailable: {e.message}")
            return neutral_sentiment()
        return normalize_sentiment(data)


def normalize_sentiment(data: Any) -> dict[str, Any]:
    """Coerce a model answer into {overall, tokens}; unknown labels become neutral."""
    if not isinstance(data, dict):
        return neutral_sentiment()

    def label(value: Any) -> str:
        try:
            return Sentiment(str(value).lower()).value
        except ValueError:
            return Sentiment.NEUTRAL.value

    tokens: Optional[dict] = data.get("tokens")
    return {
        "overall": label(data.get("overall")),
        "tokens": {str(k): label(v) for k, v in (tokens or {}).items()} if isinstance(tokens, dict) else {},
    }
