"""
Redis-backed notification queue.

Jobs live in five containers: ``pending`` and ``retry`` are sorted sets
scored by ``scheduled_for``, ``processing`` is a set, and ``completed`` /
``failed`` are sorted sets scored by the time the job finished. Each job's
record is a JSON string keyed by its id. Every transition between containers
is a single MULTI/EXEC, guarded by WATCH where the move depends on what is
currently stored, so concurrent workers never both own the same job.
"""

import asyncio
import logging
import sys
from collections.abc import Callable
from datetime import datetime, timedelta
from uuid import UUID

from pydantic import ValidationError
from redis.asyncio import Redis
from redis.asyncio.client import Pipeline
from redis.exceptions import WatchError

from notifyq.config import Settings, get_settings
from notifyq.constants import (
    KEY_COMPLETED,
    KEY_ERROR,
    KEY_FAILED,
    KEY_JOB,
    KEY_LEASES,
    KEY_PENDING,
    KEY_PROCESSING,
    KEY_RETRY,
    KEY_SEQUENCE,
    KEY_SEQUENCE_COUNTER,
    KEY_STATS_DELIVERED,
    KEY_STATS_FAILED,
    WATCH_RETRY_LIMIT,
    JobState,
)
from notifyq.observability.metrics import NullMetrics
from notifyq.store.errors import JobDecodeError, StoreContentionError, translate_redis_errors
from notifyq.types.job import NotificationJob, QueueStats, utcnow

logger = logging.getLogger(__name__)

UNREADABLE_RECORD_ERROR = "Unreadable job record"


def _encode(job: NotificationJob) -> str:
    return job.model_dump_json()


def _decode(job_id: str, raw: str | None) -> NotificationJob:
    if raw is None:
        raise JobDecodeError(job_id, "job record not found")
    try:
        return NotificationJob.model_validate_json(raw)
    except ValidationError as e:
        raise JobDecodeError(job_id, str(e)) from e


def _sequence_rank(value: str | None) -> int:
    # Jobs without a sequence entry sort after every sequenced job.
    return int(value) if value is not None else sys.maxsize


class NotificationQueue:
    """
    Durable queue store for notification jobs.

    Implements atomic operations for:
    - Submission into ``pending``
    - Claiming the earliest ready job from ``pending`` or ``retry``
    - Resolving a claimed job to ``completed``, ``retry`` or ``failed``
    - Lease expiry recovery and retention cleanup
    """

    def __init__(
        self,
        redis: Redis,
        settings: Settings | None = None,
        metrics: NullMetrics | None = None,
        key_prefix: str | None = None,
    ):
        """
        Initialize the queue store.

        Args:
            redis: Async Redis client created with ``decode_responses=True``.
            settings: Application settings. Defaults to the cached settings.
            metrics: Metrics sink. Defaults to a no-op sink.
            key_prefix: Namespace for all keys. Defaults to ``queue_key_prefix``.
        """
        self._redis = redis
        self._settings = settings or get_settings()
        self._metrics = metrics or NullMetrics()
        self._prefix = key_prefix or self._settings.queue_key_prefix

        self.pending_key = self._key(KEY_PENDING)
        self.retry_key = self._key(KEY_RETRY)
        self.processing_key = self._key(KEY_PROCESSING)
        self.completed_key = self._key(KEY_COMPLETED)
        self.failed_key = self._key(KEY_FAILED)
        self.leases_key = self._key(KEY_LEASES)
        self.sequence_key = self._key(KEY_SEQUENCE)
        self.sequence_counter_key = self._key(KEY_SEQUENCE_COUNTER)
        self.delivered_counter_key = self._key(KEY_STATS_DELIVERED)
        self.failed_counter_key = self._key(KEY_STATS_FAILED)

    def _key(self, *parts: str) -> str:
        return ":".join((self._prefix, *parts))

    def job_key(self, job_id: UUID | str) -> str:
        return self._key(KEY_JOB, str(job_id))

    def error_key(self, job_id: UUID | str) -> str:
        return self._key(KEY_ERROR, str(job_id))

    async def ping(self) -> bool:
        """Check connectivity to the backing store."""
        with translate_redis_errors("ping"):
            return bool(await self._redis.ping())

    async def submit(self, job: NotificationJob) -> NotificationJob:
        """
        Insert a new job into ``pending``, indexed by ``scheduled_for``.

        Args:
            job: The job to queue.

        Returns:
            The job, with ``state`` set to PENDING.

        Raises:
            QueueStoreError: If the store rejected or could not receive the write.
        """
        job_id = str(job.id)

        with translate_redis_errors("submit"):
            sequence = await self._redis.incr(self.sequence_counter_key)

            async with self._redis.pipeline(transaction=True) as pipe:
                pipe.set(self.job_key(job_id), _encode(job))
                pipe.hset(self.sequence_key, job_id, sequence)
                pipe.zadd(self.pending_key, {job_id: job.scheduled_for.timestamp()})
                await pipe.execute()

        job.state = JobState.PENDING
        self._metrics.record_job_submitted()

        logger.info(
            "Queued notification job",
            extra={
                "job_id": job_id,
                "correlation_ref": job.correlation_ref,
                "scheduled_for": job.scheduled_for.isoformat(),
            },
        )
        return job

    async def claim_next(
        self,
        now: datetime | None = None,
        worker_id: str | None = None,
    ) -> NotificationJob | None:
        """
        Claim the earliest ready job from ``pending`` or ``retry``.

        Both containers are queried and merged by ``scheduled_for``; equal
        scores are served in insertion order. The move into ``processing``
        happens in one WATCH-guarded transaction, so concurrent callers
        never claim the same job.

        Args:
            now: The claim instant. Defaults to the current time.
            worker_id: Claiming worker, for logs and metrics.

        Returns:
            The claimed job, or None if nothing is eligible.

        Raises:
            JobDecodeError: The job was claimed but its record is unreadable.
                It stays in ``processing`` so the caller can fail it.
            QueueStoreError: The store could not be read or written.
        """
        now = now or utcnow()
        now_ts = now.timestamp()
        lease_expires_at = now_ts + self._settings.worker_lease_duration_seconds

        with translate_redis_errors("claim_next"):
            async with self._redis.pipeline(transaction=True) as pipe:
                for _ in range(WATCH_RETRY_LIMIT):
                    try:
                        await pipe.watch(self.pending_key, self.retry_key)

                        picked = await self._select_ready(pipe, now_ts)
                        if picked is None:
                            return None

                        source_key, job_id = picked

                        pipe.multi()
                        pipe.zrem(source_key, job_id)
                        pipe.sadd(self.processing_key, job_id)
                        pipe.zadd(self.leases_key, {job_id: lease_expires_at})
                        await pipe.execute()
                        break
                    except WatchError:
                        logger.debug("Claim contended, retrying", extra={"worker_id": worker_id})
                        await asyncio.sleep(0)
                else:
                    raise StoreContentionError("claim_next", WATCH_RETRY_LIMIT)

            raw = await self._redis.get(self.job_key(job_id))

        if worker_id is not None:
            self._metrics.record_lease_acquired(worker_id)

        job = _decode(job_id, raw)
        job.state = JobState.PROCESSING

        logger.info(
            "Claimed notification job",
            extra={
                "job_id": job_id,
                "worker_id": worker_id,
                "source": JobState.RETRYING if source_key == self.retry_key else JobState.PENDING,
                "attempts": job.attempts,
            },
        )
        return job

    async def _select_ready(self, pipe: Pipeline, now_ts: float) -> tuple[str, str] | None:
        """Pick ``(container_key, job_id)`` of the earliest ready job, or None."""
        containers = (self.pending_key, self.retry_key)

        head_scores = []
        for key in containers:
            head = await pipe.zrangebyscore(key, "-inf", now_ts, start=0, num=1, withscores=True)
            if head:
                head_scores.append(head[0][1])

        if not head_scores:
            return None

        earliest = min(head_scores)

        candidates: list[tuple[str, str]] = []
        for key in containers:
            for member in await pipe.zrangebyscore(key, earliest, earliest):
                candidates.append((key, member))

        if len(candidates) == 1:
            return candidates[0]

        sequences = await pipe.hmget(self.sequence_key, [member for _, member in candidates])
        ranked = sorted(zip(candidates, sequences), key=lambda item: _sequence_rank(item[1]))
        return ranked[0][0]

    async def _move_from_processing(
        self,
        job_id: str,
        operation: str,
        stage: Callable[[Pipeline], None],
    ) -> bool:
        """
        Atomically remove a job from ``processing`` and apply ``stage``.

        Returns:
            False if the job was no longer in ``processing`` (its lease was
            recovered by the reaper, or it was already resolved).
        """
        with translate_redis_errors(operation):
            async with self._redis.pipeline(transaction=True) as pipe:
                for _ in range(WATCH_RETRY_LIMIT):
                    try:
                        await pipe.watch(self.processing_key)

                        if not await pipe.sismember(self.processing_key, job_id):
                            logger.warning(
                                "Job is not in processing, transition skipped",
                                extra={"job_id": job_id, "operation": operation},
                            )
                            return False

                        pipe.multi()
                        pipe.srem(self.processing_key, job_id)
                        pipe.zrem(self.leases_key, job_id)
                        stage(pipe)
                        await pipe.execute()
                        return True
                    except WatchError:
                        await asyncio.sleep(0)

        raise StoreContentionError(operation, WATCH_RETRY_LIMIT)

    async def record_attempt(self, job: NotificationJob) -> bool:
        """
        Persist a claimed job's attempt fields before it is delivered.

        The write only lands while the job is still in ``processing``, so a
        job recovered by the reaper keeps the count of every send that was
        started, even if the worker never resolved it.

        Returns:
            False if the job was no longer in ``processing``.
        """
        job_id = str(job.id)

        with translate_redis_errors("record_attempt"):
            async with self._redis.pipeline(transaction=True) as pipe:
                for _ in range(WATCH_RETRY_LIMIT):
                    try:
                        await pipe.watch(self.processing_key)

                        if not await pipe.sismember(self.processing_key, job_id):
                            logger.warning(
                                "Job is not in processing, attempt not recorded",
                                extra={"job_id": job_id},
                            )
                            return False

                        pipe.multi()
                        pipe.set(self.job_key(job_id), _encode(job))
                        await pipe.execute()
                        return True
                    except WatchError:
                        await asyncio.sleep(0)

        raise StoreContentionError("record_attempt", WATCH_RETRY_LIMIT)

    async def complete(self, job: NotificationJob, now: datetime | None = None) -> bool:
        """
        Move a delivered job from ``processing`` to ``completed``.

        The updated record is written with the completed retention TTL and
        the delivered counter is incremented in the same transaction.

        Returns:
            True if the job was moved.
        """
        now = now or utcnow()
        job_id = str(job.id)

        def stage(pipe: Pipeline) -> None:
            pipe.set(
                self.job_key(job_id),
                _encode(job),
                ex=self._settings.completed_retention_seconds,
            )
            pipe.zadd(self.completed_key, {job_id: now.timestamp()})
            pipe.incr(self.delivered_counter_key)
            pipe.hdel(self.sequence_key, job_id)

        moved = await self._move_from_processing(job_id, "complete", stage)
        if moved:
            job.state = JobState.COMPLETED
            self._metrics.record_job_resolved(JobState.COMPLETED)
            logger.info(
                "Notification job completed",
                extra={"job_id": job_id, "attempts": job.attempts},
            )
        return moved

    async def retry(
        self,
        job: NotificationJob,
        delay: float,
        now: datetime | None = None,
    ) -> bool:
        """
        Move a failed job from ``processing`` to ``retry``.

        ``scheduled_for`` becomes ``now + delay``. The updated record
        (attempts, last error, timestamps) is persisted in the same
        transaction as the move.

        Args:
            job: The claimed job with its attempt fields already updated.
            delay: Backoff in seconds; must be positive.
            now: Reference time. Defaults to the current time.

        Returns:
            True if the job was moved.
        """
        if delay <= 0:
            raise ValueError(f"retry delay must be positive, got {delay}")

        now = now or utcnow()
        job_id = str(job.id)
        scheduled_for = now + timedelta(seconds=delay)
        updated = job.model_copy(update={"scheduled_for": scheduled_for})

        def stage(pipe: Pipeline) -> None:
            pipe.set(self.job_key(job_id), _encode(updated))
            pipe.zadd(self.retry_key, {job_id: scheduled_for.timestamp()})

        moved = await self._move_from_processing(job_id, "retry", stage)
        if moved:
            job.scheduled_for = scheduled_for
            job.state = JobState.RETRYING
            self._metrics.record_job_resolved(JobState.RETRYING)
            logger.info(
                "Notification job queued for retry",
                extra={
                    "job_id": job_id,
                    "attempts": job.attempts,
                    "max_attempts": job.max_attempts,
                    "delay_seconds": delay,
                },
            )
        return moved

    async def fail(
        self,
        job_id: UUID | str,
        error: str,
        job: NotificationJob | None = None,
        now: datetime | None = None,
    ) -> bool:
        """
        Move a job from ``processing`` to ``failed``.

        Args:
            job_id: The job id.
            error: Human-readable reason, stored for inspection.
            job: Updated record to persist. When omitted (unreadable record),
                the existing record only receives the retention TTL.
            now: Reference time. Defaults to the current time.

        Returns:
            True if the job was moved.
        """
        now = now or utcnow()
        job_id = str(job_id)
        ttl = self._settings.failed_retention_seconds

        def stage(pipe: Pipeline) -> None:
            if job is not None:
                pipe.set(self.job_key(job_id), _encode(job), ex=ttl)
            else:
                pipe.expire(self.job_key(job_id), ttl)
            pipe.set(self.error_key(job_id), error, ex=ttl)
            pipe.zadd(self.failed_key, {job_id: now.timestamp()})
            pipe.incr(self.failed_counter_key)
            pipe.hdel(self.sequence_key, job_id)

        moved = await self._move_from_processing(job_id, "fail", stage)
        if moved:
            if job is not None:
                job.state = JobState.FAILED
            self._metrics.record_job_resolved(JobState.FAILED)
            logger.warning(
                "Notification job failed permanently",
                extra={
                    "job_id": job_id,
                    "attempts": job.attempts if job is not None else None,
                    "error": error,
                },
            )
        return moved

    async def stats(self) -> QueueStats:
        """
        Get per-container counts from one consistent snapshot.
        For observability only; never use these counts to schedule work.
        """
        with translate_redis_errors("stats"):
            async with self._redis.pipeline(transaction=True) as pipe:
                pipe.zcard(self.pending_key)
                pipe.zcard(self.retry_key)
                pipe.scard(self.processing_key)
                pipe.zcard(self.completed_key)
                pipe.zcard(self.failed_key)
                pipe.get(self.delivered_counter_key)
                pending, retry, processing, completed, failed, delivered = await pipe.execute()

        return QueueStats(
            pending_count=pending,
            retry_count=retry,
            processing_count=processing,
            completed_count=completed,
            failed_count=failed,
            total_delivered_count=int(delivered or 0),
        )

    async def status_of(self, job_id: UUID | str) -> JobState:
        """
        Resolve which container holds a job.

        Returns:
            The job's state, or UNKNOWN if no container holds it (never
            submitted, or expired after its retention window).
        """
        job_id = str(job_id)

        with translate_redis_errors("status_of"):
            async with self._redis.pipeline(transaction=True) as pipe:
                pipe.zscore(self.pending_key, job_id)
                pipe.zscore(self.retry_key, job_id)
                pipe.sismember(self.processing_key, job_id)
                pipe.zscore(self.completed_key, job_id)
                pipe.zscore(self.failed_key, job_id)
                pending, retry, processing, completed, failed = await pipe.execute()

        if pending is not None:
            return JobState.PENDING
        if retry is not None:
            return JobState.RETRYING
        if processing:
            return JobState.PROCESSING
        if completed is not None:
            return JobState.COMPLETED
        if failed is not None:
            return JobState.FAILED
        return JobState.UNKNOWN

    async def get_job(self, job_id: UUID | str) -> NotificationJob | None:
        """
        Get a job record with its current state.

        Returns:
            The job, or None if its record no longer exists.

        Raises:
            JobDecodeError: If the record exists but cannot be read.
        """
        with translate_redis_errors("get_job"):
            raw = await self._redis.get(self.job_key(job_id))

        if raw is None:
            return None

        job = _decode(str(job_id), raw)
        job.state = await self.status_of(job_id)
        return job

    async def get_error(self, job_id: UUID | str) -> str | None:
        """Get the error recorded when a job moved to ``failed``."""
        with translate_redis_errors("get_error"):
            return await self._redis.get(self.error_key(job_id))

    async def recover_expired_leases(self, now: datetime | None = None) -> int:
        """
        Return jobs whose processing lease has expired to ``retry``.

        This is called by the reaper to handle worker crashes. Recovered
        jobs become eligible immediately and keep their attempt count.
        A recovered job whose record is unreadable is moved to ``failed``.

        Returns:
            Number of recovered jobs.
        """
        now = now or utcnow()

        with translate_redis_errors("recover_expired_leases"):
            expired = await self._redis.zrangebyscore(self.leases_key, "-inf", now.timestamp())

        recovered = 0
        for job_id in expired:
            if await self._recover_lease(job_id, now):
                recovered += 1

        if recovered > 0:
            self._metrics.record_lease_expired(recovered)
            logger.info(f"Recovered {recovered} jobs with expired leases")

        return recovered

    async def _recover_lease(self, job_id: str, now: datetime) -> bool:
        now_ts = now.timestamp()
        ttl = self._settings.failed_retention_seconds

        with translate_redis_errors("recover_expired_lease"):
            async with self._redis.pipeline(transaction=True) as pipe:
                for _ in range(WATCH_RETRY_LIMIT):
                    try:
                        await pipe.watch(self.processing_key, self.leases_key)

                        lease_expires_at = await pipe.zscore(self.leases_key, job_id)
                        if lease_expires_at is None or lease_expires_at > now_ts:
                            return False

                        owned = await pipe.sismember(self.processing_key, job_id)
                        raw = await pipe.get(self.job_key(job_id))

                        pipe.multi()
                        pipe.zrem(self.leases_key, job_id)

                        if not owned:
                            # Stale lease entry for a job that already left processing
                            await pipe.execute()
                            return False

                        pipe.srem(self.processing_key, job_id)
                        try:
                            job = _decode(job_id, raw)
                        except JobDecodeError as e:
                            pipe.expire(self.job_key(job_id), ttl)
                            pipe.set(self.error_key(job_id), f"{UNREADABLE_RECORD_ERROR}: {e.reason}", ex=ttl)
                            pipe.zadd(self.failed_key, {job_id: now_ts})
                            pipe.incr(self.failed_counter_key)
                            pipe.hdel(self.sequence_key, job_id)
                        else:
                            job.scheduled_for = now
                            pipe.set(self.job_key(job_id), _encode(job))
                            pipe.zadd(self.retry_key, {job_id: now_ts})

                        await pipe.execute()
                        logger.warning(
                            "Recovered job with expired lease",
                            extra={"job_id": job_id},
                        )
                        return True
                    except WatchError:
                        await asyncio.sleep(0)

        raise StoreContentionError("recover_expired_lease", WATCH_RETRY_LIMIT)

    async def purge_expired(self, now: datetime | None = None) -> int:
        """
        Drop ``completed`` and ``failed`` index entries past their retention.

        Records expire on their own TTL; this keeps container membership in
        step so expired jobs resolve to UNKNOWN.

        Returns:
            Number of index entries removed.
        """
        now_ts = (now or utcnow()).timestamp()

        with translate_redis_errors("purge_expired"):
            async with self._redis.pipeline(transaction=True) as pipe:
                pipe.zremrangebyscore(
                    self.completed_key,
                    "-inf",
                    now_ts - self._settings.completed_retention_seconds,
                )
                pipe.zremrangebyscore(
                    self.failed_key,
                    "-inf",
                    now_ts - self._settings.failed_retention_seconds,
                )
                completed_removed, failed_removed = await pipe.execute()

        removed = completed_removed + failed_removed
        if removed > 0:
            logger.info(
                f"Purged {removed} expired terminal jobs",
                extra={"completed": completed_removed, "failed": failed_removed},
            )
        return removed
