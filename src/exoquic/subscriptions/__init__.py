"""
Subscription engine for exoquic.

This package provides:
- ConnectionState: States of a subscriber's connection
- ReconnectBackoff: Growing delay between reconnect attempts
- ReplayCache: Persistent log of delivered event batches
- Subscriber: Base class of PlainSubscriber and CachingSubscriber
"""

from exoquic.subscriptions.replay import EventBatch, ReplayCache
from exoquic.subscriptions.state import VALID_TRANSITIONS, ConnectionState, is_valid_transition
from exoquic.subscriptions.backoff import ReconnectBackoff
from exoquic.subscriptions.subscriber import (
    ActivityHook,
    BatchCallback,
    CachingSubscriber,
    PlainSubscriber,
    Subscriber,
)

__all__ = [
    # State machine
    "ConnectionState",
    "VALID_TRANSITIONS",
    "is_valid_transition",
    "ReconnectBackoff",
    # Replay
    "EventBatch",
    "ReplayCache",
    # Subscribers
    "ActivityHook",
    "BatchCallback",
    "CachingSubscriber",
    "PlainSubscriber",
    "Subscriber",
]
