"""
Domain events and their delivery.
"""

from .domain_event import DomainEvent, EventType
from .publisher import (
    Notifier,
    NullNotifier,
    RecordingNotifier,
    RedisNotifier,
    dispatch_after_commit,
    get_notifier,
)

__all__ = [
    "DomainEvent",
    "EventType",
    "Notifier",
    "NullNotifier",
    "RecordingNotifier",
    "RedisNotifier",
    "dispatch_after_commit",
    "get_notifier",
]
