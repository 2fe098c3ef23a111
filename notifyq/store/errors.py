"""
Queue store exceptions.
"""

from collections.abc import Iterator
from contextlib import contextmanager
from uuid import UUID

from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import RedisError
from redis.exceptions import TimeoutError as RedisTimeoutError


class QueueStoreError(Exception):
    """A queue store operation failed; the job's state was not changed."""


class StoreUnavailableError(QueueStoreError):
    """The backing store could not be reached."""

    def __init__(self, operation: str, cause: Exception):
        super().__init__(f"Queue store unavailable during {operation}: {cause}")
        self.operation = operation


class StoreContentionError(QueueStoreError):
    """An optimistic transaction kept losing to concurrent writers."""

    def __init__(self, operation: str, attempts: int):
        super().__init__(f"Queue store contended during {operation} after {attempts} attempts")
        self.operation = operation


class JobDecodeError(QueueStoreError):
    """A claimed job's record is missing or cannot be deserialized."""

    def __init__(self, job_id: UUID | str, reason: str):
        super().__init__(f"Unreadable job record {job_id}: {reason}")
        self.job_id = str(job_id)
        self.reason = reason


@contextmanager
def translate_redis_errors(operation: str) -> Iterator[None]:
    """Re-raise redis client errors as queue store errors."""
    try:
        yield
    except (RedisConnectionError, RedisTimeoutError) as e:
        raise StoreUnavailableError(operation, e) from e
    except RedisError as e:
        raise QueueStoreError(f"Queue store error during {operation}: {e}") from e
