"""
Queue store module.
Contains the Redis connection and the durable notification queue.
"""

from notifyq.store.connection import (
    close_redis,
    create_redis,
    init_redis,
)
from notifyq.store.errors import (
    JobDecodeError,
    QueueStoreError,
    StoreContentionError,
    StoreUnavailableError,
)
from notifyq.store.queue import NotificationQueue

__all__ = [
    "create_redis",
    "init_redis",
    "close_redis",
    "NotificationQueue",
    "QueueStoreError",
    "StoreUnavailableError",
    "StoreContentionError",
    "JobDecodeError",
]
