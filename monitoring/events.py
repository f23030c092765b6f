"""
monitoring/events.py - Typed event broadcast.

Publishing never blocks: each subscriber owns a bounded asyncio.Queue and
a subscriber whose queue is full is dropped. Payloads are JSON-safe copies,
so no subscriber can observe or mutate bot-owned state.
"""

import asyncio
import copy
import json
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from core.constants import LOG_BUFFER_SIZE, SUBSCRIBER_QUEUE_SIZE
from core.logging import get_logger
from core.time import now_iso

logger = get_logger("flarb.events")


class EventType(str, Enum):
    LOG = "log"
    STATUS_UPDATE = "status_update"
    RISK_TRIGGERED = "risk_triggered"
    OPPORTUNITIES_UPDATE = "opportunities_update"
    HISTORY_UPDATE = "history_update"
    RPC_STATUS_UPDATE = "rpc_status_update"
    KILL_SWITCH_UPDATE = "kill_switch_update"
    CONFIG_UPDATE = "config_update"
    STATS_UPDATE = "stats_update"
    STRATEGIC_ADVICE = "strategic_advice"
    SENTIMENT_UPDATE = "sentiment_update"


@dataclass(frozen=True)
class Event:
    type: EventType
    data: Any
    timestamp: str = field(default_factory=now_iso)

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type.value, "data": self.data, "timestamp": self.timestamp}


def _json_safe(data: Any) -> Any:
    if hasattr(data, "to_dict"):
        data = data.to_dict()
    elif isinstance(data, list):
        data = [d.to_dict() if hasattr(d, "to_dict") else d for d in data]
    # Round-trip through JSON: deep copy with Decimals and enums stringified
    return json.loads(json.dumps(data, default=str))


class Subscription:
    def __init__(self, broadcaster: "EventBroadcaster", maxsize: int):
        self._broadcaster = broadcaster
        self.queue: asyncio.Queue[Event] = asyncio.Queue(maxsize=maxsize)
        self.dropped = False

    async def get(self) -> Event:
        return await self.queue.get()

    def close(self) -> None:
        self._broadcaster.unsubscribe(self)


class EventBroadcaster:
    """Fan-out of bot events to any number of subscribers."""

    def __init__(self, queue_size: int = SUBSCRIBER_QUEUE_SIZE, log_buffer: int = LOG_BUFFER_SIZE):
        self.queue_size = queue_size
        self._subscribers: list[Subscription] = []
        self._logs: deque[dict[str, Any]] = deque(maxlen=log_buffer)

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def subscribe(self, maxsize: Optional[int] = None) -> Subscription:
        sub = Subscription(self, maxsize or self.queue_size)
        self._subscribers.append(sub)
        return sub

    def unsubscribe(self, sub: Subscription) -> None:
        if sub in self._subscribers:
            self._subscribers.remove(sub)

    def publish(self, event_type: EventType, data: Any = None) -> Event:
        event = Event(type=event_type, data=_json_safe(data))
        for sub in list(self._subscribers):
            try:
                sub.queue.put_nowait(Event(event.type, copy.deepcopy(event.data), event.timestamp))
            except asyncio.QueueFull:
                sub.dropped = True
                self.unsubscribe(sub)
                logger.warning(
                    "Dropped slow event subscriber",
                    extra={"context": {"event": event_type.value, "subscribers": self.subscriber_count}},
                )
        return event

    def log(self, message: str, level: str = "info", **context: Any) -> None:
        """Record a dashboard log line and broadcast it."""
        entry = {
            "timestamp": now_iso(),
            "level": level,
            "message": message,
            "context": _json_safe(context) if context else {},
        }
        self._logs.appendleft(entry)
        self.publish(EventType.LOG, entry)

    def recent_logs(self) -> list[dict[str, Any]]:
        return copy.deepcopy(list(self._logs))
