"""
strategy/memory.py - Similarity recall over the trade ledger.

Score per past trade:
    +5 same symbol
    +3 same strategy
    +1 / (|spread_past - spread_now| + 0.1)

Top 3 by score; ties keep ledger order. The rendered text is advisory
context for the scorer and never gates execution.
"""

from decimal import Decimal
from typing import Iterable

from core.constants import MEMORY_HEADER, NO_SIMILAR_TRADES, SIMILAR_TRADES_LIMIT
from core.models import Opportunity, Trade

SAME_SYMBOL_WEIGHT = Decimal(5)
SAME_STRATEGY_WEIGHT = Decimal(3)
SPREAD_SMOOTHING = Decimal("0.1")


def similarity_score(trade: Trade, opportunity: Opportunity) -> Decimal:
    score = Decimal(0)
    if trade.symbol == opportunity.symbol:
        score += SAME_SYMBOL_WEIGHT
    if trade.strategy == opportunity.strategy:
        score += SAME_STRATEGY_WEIGHT
    spread_gap = abs(trade.opportunity.spread - opportunity.spread)
    score += Decimal(1) / (spread_gap + SPREAD_SMOOTHING)
    return score


def find_similar_trades(
    opportunity: Opportunity,
    ledger: Iterable[Trade],
    limit: int = SIMILAR_TRADES_LIMIT,
) -> list[Trade]:
    """Most similar past trades, best first; sorted() keeps ties in ledger order."""
    scored = [(similarity_score(trade, opportunity), trade) for trade in ledger]
    scored = sorted(scored, key=lambda pair: pair[0], reverse=True)
    return [trade for _, trade in scored[:limit]]


def format_trade_line(trade: Trade) -> str:
    reason = trade.post_mortem or "N/A"
    return f"- {trade.status.value.upper()}: PnL {trade.profit:.4f} ETH. Reason: {reason}"


def build_similarity_context(opportunity: Opportunity, ledger: Iterable[Trade]) -> str:
    """Render the similarity block, or the fixed no-match text."""
    similar = find_similar_trades(opportunity, ledger)
    if not similar:
        return NO_SIMILAR_TRADES
    lines = [MEMORY_HEADER]
    lines.extend(format_trade_line(trade) for trade in similar)
    return "\n".join(lines)
