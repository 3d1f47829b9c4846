"""Storage layer."""

from tradewise.storage.database import Database, get_database, init_database
from tradewise.storage.order_repo import CopyOrderRepository, TraderWatchRepository
from tradewise.storage.signal_repo import SignalRepository
from tradewise.storage.subscriber_repo import SubscriberDirectory
from tradewise.storage import cache, filter_state_cache

__all__ = [
    "Database",
    "get_database",
    "init_database",
    "CopyOrderRepository",
    "TraderWatchRepository",
    "SignalRepository",
    "SubscriberDirectory",
    "cache",
    "filter_state_cache",
]
