"""
data/trade_store.py - Append-only JSONL trade ledger.

One JSON object per line, in append order. There is no update or delete:
a Trade is written exactly once. Unreadable lines are logged and skipped
on load so one torn write cannot hide the rest of the ledger.
"""

import json
from pathlib import Path
from typing import Optional

from core.exceptions import ErrorCode, PersistenceError
from core.logging import get_logger
from core.models import BotStats, Trade
from strategy.stats import compute_stats

logger = get_logger("flarb.trade_store")


class JsonlTradeStore:
    """
    Usage:
        store = JsonlTradeStore(Path("data/runtime/trades.jsonl"))
        store.append(trade)
        newest = store.query(limit=50)
    """

    def __init__(self, path: Path | str):
        self.path = Path(path)

    def append(self, trade: Trade) -> None:
        """
        Append one trade.

        Raises:
            PersistenceError: the line could not be written
        """
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.path, "a", encoding="utf-8") as f:
                f.write(json.dumps(trade.to_dict()) + "\n")
        except OSError as e:
            raise PersistenceError(
                code=ErrorCode.PERSISTENCE_ERROR,
                message=f"Could not append trade {trade.id}: {e}",
                details={"path": str(self.path), "trade_id": trade.id},
            ) from e

    def load_all(self) -> list[Trade]:
        """All trades in ledger (append) order."""
        trades: list[Trade] = []
        if not self.path.exists():
            return trades

        with open(self.path, "r", encoding="utf-8") as f:
            for line_no, line in enumerate(f, start=1):
                if not line.strip():
                    continue
                try:
                    trades.append(Trade.from_dict(json.loads(line)))
                except (ValueError, KeyError, TypeError) as e:
                    logger.error(
                        f"Skipping unreadable ledger line {line_no}: {e}",
                        extra={"context": {"path": str(self.path), "line": line_no}},
                    )
        return trades

    def query(self, limit: Optional[int] = None, offset: int = 0) -> list[Trade]:
        """Newest first, paginated."""
        trades = sorted(self.load_all(), key=lambda t: t.timestamp, reverse=True)
        if offset:
            trades = trades[offset:]
        if limit is not None:
            trades = trades[:limit]
        return trades

    def aggregate_stats(self, now: float) -> BotStats:
        return compute_stats(self.load_all(), now)
