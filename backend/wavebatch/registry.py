"""Job and batch repositories with a retention policy for finalized batches."""

import asyncio
import logging
import time
from typing import Protocol

from wavebatch.models.batch import Batch
from wavebatch.models.job import Job

logger = logging.getLogger(__name__)


class NotFoundError(Exception):
    """Raised when a job or batch id is not in the registry."""


class Registry(Protocol):
    def create_job(self, job: Job) -> Job: ...

    def get_job(self, job_id: str) -> Job: ...

    def create_batch(self, batch: Batch) -> Batch: ...

    def get_batch(self, batch_id: str) -> Batch: ...

    def jobs_for_batch(self, batch_id: str) -> list[Job]: ...

    def lock_for(self, batch_id: str) -> asyncio.Lock: ...

    def archive_lock_for(self, batch_id: str) -> asyncio.Lock: ...

    def mark_finalized(self, batch_id: str, now: float | None = None) -> None: ...

    def evict_finalized(self, older_than_seconds: float, now: float | None = None) -> int: ...


class InMemoryRegistry:
    """Process-local store of Job and Batch records.

    Records are mutated in place by the reconciler while it holds the batch
    lock returned by lock_for(). Nothing here is durable across restarts.
    """

    def __init__(self) -> None:
        self._jobs: dict[str, Job] = {}
        self._batches: dict[str, Batch] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        # serialises archive writes so a stale progress update never lands after the final one
        self._archive_locks: dict[str, asyncio.Lock] = {}
        # monotonic time each batch was finalized, for retention
        self._finalized_at: dict[str, float] = {}

    def create_job(self, job: Job) -> Job:
        if job.batch_id not in self._batches:
            raise NotFoundError(f"Batch {job.batch_id} not found")
        self._jobs[job.id] = job
        return job

    def get_job(self, job_id: str) -> Job:
        job = self._jobs.get(job_id)
        if job is None:
            raise NotFoundError(f"Job {job_id} not found")
        return job

    def create_batch(self, batch: Batch) -> Batch:
        self._batches[batch.id] = batch
        self._locks[batch.id] = asyncio.Lock()
        self._archive_locks[batch.id] = asyncio.Lock()
        return batch

    def get_batch(self, batch_id: str) -> Batch:
        batch = self._batches.get(batch_id)
        if batch is None:
            raise NotFoundError(f"Batch {batch_id} not found")
        return batch

    def jobs_for_batch(self, batch_id: str) -> list[Job]:
        return [j for j in self._jobs.values() if j.batch_id == batch_id]

    def lock_for(self, batch_id: str) -> asyncio.Lock:
        lock = self._locks.get(batch_id)
        if lock is None:
            raise NotFoundError(f"Batch {batch_id} not found")
        return lock

    def archive_lock_for(self, batch_id: str) -> asyncio.Lock:
        lock = self._archive_locks.get(batch_id)
        if lock is None:
            raise NotFoundError(f"Batch {batch_id} not found")
        return lock

    def mark_finalized(self, batch_id: str, now: float | None = None) -> None:
        self._finalized_at[batch_id] = time.monotonic() if now is None else now

    def evict_finalized(self, older_than_seconds: float, now: float | None = None) -> int:
        """Drop finalized batches (and their jobs) whose grace period has elapsed.

        Returns the number of batches evicted.
        """
        now = time.monotonic() if now is None else now
        expired = [
            batch_id
            for batch_id, finalized_at in self._finalized_at.items()
            if now - finalized_at >= older_than_seconds
        ]
        for batch_id in expired:
            for job in self.jobs_for_batch(batch_id):
                del self._jobs[job.id]
            self._batches.pop(batch_id, None)
            self._locks.pop(batch_id, None)
            self._archive_locks.pop(batch_id, None)
            del self._finalized_at[batch_id]
        if expired:
            logger.info("evicted %d finalized batch(es)", len(expired))
        return len(expired)

    def __len__(self) -> int:
        return len(self._batches)
