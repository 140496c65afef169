"""Completion reconciler: the only writer of terminal job state and batch finalization.

Pollers and the webhook route both report outcomes here, possibly for the same
job at the same time. Every mutation of a batch and its jobs happens while
holding that batch's lock, so:

* a job moves to ``completed`` or ``failed`` exactly once; later reports are no-ops;
* a batch is finalized exactly once, when every expected unit has been seen,
  and only that one caller writes the final archive record.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Protocol

from wavebatch.models.batch import Batch, BatchSnapshot
from wavebatch.models.job import Job, SubmissionFailedId
from wavebatch.registry import NotFoundError, Registry
from wavebatch.services.airtable import ArchiveError, snapshot_fields
from wavebatch.services.backoff import backoff_delays

logger = logging.getLogger(__name__)


class UnknownJobError(Exception):
    """Raised when an outcome is reported for a job the registry does not hold."""


class ArchiveSink(Protocol):
    async def update(self, record_id: str, fields: dict[str, Any]) -> None: ...


@dataclass(frozen=True)
class Completed:
    outputs: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class Failed:
    reason: str = "failed"


Outcome = Completed | Failed


class CompletionReconciler:
    def __init__(
        self,
        registry: Registry,
        archive: ArchiveSink,
        *,
        finalize_attempts: int = 3,
        finalize_retry_delay: float = 2.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._registry = registry
        self._archive = archive
        self._finalize_attempts = max(1, finalize_attempts)
        self._finalize_retry_delay = finalize_retry_delay
        self._sleep = sleep

    async def report_outcome(self, job_id: str, outcome: Outcome) -> bool:
        """Apply *outcome* to *job_id*.

        Returns True if the outcome was applied, False if the job was already
        terminal. Raises UnknownJobError if the job is not registered.
        """
        job = self._lookup(job_id)
        snapshot: BatchSnapshot | None = None
        async with self._lock(job.batch_id, job_id):
            if job.is_terminal:
                logger.info("task %s already %s; ignoring %s", job_id, job.status, type(outcome).__name__)
                return False
            batch = self._registry.get_batch(job.batch_id)
            if isinstance(outcome, Completed):
                job.status = "completed"
                batch.seen_ids.append(job_id)
                batch.outputs.extend(outcome.outputs)
                logger.info("task %s marked as completed (%d output(s))", job_id, len(outcome.outputs))
            else:
                job.status = "failed"
                batch.seen_ids.append(job_id)
                batch.failed_ids.append(job_id)
                logger.info("task %s marked as failed: %s", job_id, outcome.reason)
            snapshot = self._finalize_if_complete(batch)

        if snapshot is not None:
            await self._write_final(snapshot)
        return True

    async def register_job(self, batch_id: str, job_id: str) -> Job:
        """Record a successfully submitted job against its batch."""
        async with self._registry.lock_for(batch_id):
            batch = self._registry.get_batch(batch_id)
            job = self._registry.create_job(Job(id=job_id, batch_id=batch_id))
            batch.job_ids.append(job_id)
        return job

    async def record_submission_failure(self, batch_id: str, failure_id: SubmissionFailedId) -> None:
        """Count a unit that never reached the engine as seen and failed."""
        snapshot: BatchSnapshot | None = None
        async with self._registry.lock_for(batch_id):
            batch = self._registry.get_batch(batch_id)
            batch.job_ids.append(failure_id)
            batch.seen_ids.append(failure_id)
            batch.failed_ids.append(failure_id)
            logger.info("run %s: unit %s recorded as submission failure", batch_id, failure_id)
            snapshot = self._finalize_if_complete(batch)
        if snapshot is not None:
            await self._write_final(snapshot)

    async def record_poll_attempt(self, job_id: str) -> int:
        """Count one poll attempt for *job_id* and return the running total."""
        job = self._lookup(job_id)
        async with self._lock(job.batch_id, job_id):
            if not job.is_terminal:
                job.retries += 1
                if job.status == "submitted":
                    job.status = "processing"
            return job.retries

    async def publish_progress(self, batch_id: str) -> None:
        """Push the batch's current id lists to the archive record.

        Skipped once the batch is finalized; the final write supersedes it.
        Raises ArchiveError on failure.
        """
        async with self._registry.archive_lock_for(batch_id):
            async with self._registry.lock_for(batch_id):
                batch = self._registry.get_batch(batch_id)
                if batch.finalized:
                    return
                snapshot = batch.snapshot()
            await self._archive.update(snapshot.archive_record_id, snapshot_fields(snapshot))

    def _lookup(self, job_id: str) -> Job:
        try:
            return self._registry.get_job(job_id)
        except NotFoundError as exc:
            raise UnknownJobError(f"Task {job_id} not found") from exc

    def _lock(self, batch_id: str, job_id: str) -> asyncio.Lock:
        try:
            return self._registry.lock_for(batch_id)
        except NotFoundError as exc:
            # batch evicted between job lookup and locking
            raise UnknownJobError(f"Task {job_id} not found") from exc

    def _finalize_if_complete(self, batch: Batch) -> BatchSnapshot | None:
        """Must be called with the batch lock held."""
        if batch.finalized or not batch.all_seen:
            return None
        batch.finalized = True
        batch.status = "completed"
        batch.finalized_at = datetime.now(UTC)
        self._registry.mark_finalized(batch.id)
        logger.info(
            "run %s: all %d task(s) processed, %d failed",
            batch.id,
            batch.expected_count,
            len(batch.failed_ids),
        )
        return batch.snapshot()

    async def _write_final(self, snapshot: BatchSnapshot) -> None:
        """Write the final archive record, retrying a bounded number of times.

        The batch stays finalized even if every attempt fails.
        """
        fields = snapshot_fields(snapshot)
        delays = backoff_delays(self._finalize_retry_delay, 2.0, self._finalize_retry_delay * 8)
        async with self._registry.archive_lock_for(snapshot.run_id):
            for attempt in range(1, self._finalize_attempts + 1):
                try:
                    await self._archive.update(snapshot.archive_record_id, fields)
                    return
                except ArchiveError as exc:
                    logger.warning(
                        "run %s: final archive write attempt %d/%d failed: %s",
                        snapshot.run_id,
                        attempt,
                        self._finalize_attempts,
                        exc,
                    )
                    if attempt < self._finalize_attempts:
                        await self._sleep(next(delays))
        logger.error(
            "run %s: archive record %s left stale after %d attempts",
            snapshot.run_id,
            snapshot.archive_record_id,
            self._finalize_attempts,
        )
