# PATH: monitoring/__init__.py
"""
Monitoring package for FLARB.

- events.py: typed event broadcast with bounded subscriber queues
"""

from monitoring.events import Event, EventBroadcaster, EventType, Subscription

__all__ = [
    "Event",
    "EventBroadcaster",
    "EventType",
    "Subscription",
]
