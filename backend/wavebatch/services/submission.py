"""Batch submission pipeline: prepares inputs, anchors the archive record,
submits each unit to the engine and starts a supervised poller per job."""

import asyncio
import logging
import time
import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from wavebatch.models.batch import Batch
from wavebatch.models.job import SubmissionFailedId
from wavebatch.registry import Registry
from wavebatch.schemas.batch import BatchSubmitRequest
from wavebatch.services.airtable import AirtableArchive, ArchiveError, initial_fields
from wavebatch.services.images import ImageFetcher, InputPreparationError
from wavebatch.services.poller import Poller
from wavebatch.services.reconciler import CompletionReconciler
from wavebatch.services.supervisor import TaskSupervisor
from wavebatch.services.wavespeed import SubmissionError, WaveSpeedClient

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SubmittedBatch:
    run_id: str
    archive_record_id: str


def new_run_id() -> str:
    return f"run-{int(time.time() * 1000)}-{uuid.uuid4().hex[:9]}"


class SubmissionPipeline:
    def __init__(
        self,
        images: ImageFetcher,
        engine: WaveSpeedClient,
        archive: AirtableArchive,
        reconciler: CompletionReconciler,
        registry: Registry,
        supervisor: TaskSupervisor,
        poller: Poller,
        *,
        submission_delay: float = 1.2,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._images = images
        self._engine = engine
        self._archive = archive
        self._reconciler = reconciler
        self._registry = registry
        self._supervisor = supervisor
        self._poller = poller
        self._submission_delay = submission_delay
        self._sleep = sleep

    async def submit(self, request: BatchSubmitRequest) -> SubmittedBatch:
        """Run a batch request through to the point where every unit is submitted.

        Raises InputPreparationError if any input image cannot be prepared, and
        ArchiveError if the archive record cannot be created; in both cases no
        batch is created and nothing is submitted. Per-unit submission failures
        are recorded as failed units and never raised.
        """
        run_id = new_run_id()
        logger.info("run %s: starting %d task(s)", run_id, request.batch_count)

        try:
            images = await self._images.prepare(request.subject_url, request.reference_urls)
        except InputPreparationError:
            logger.error("run %s: failed to prepare input images; batch aborted", run_id)
            raise

        record_id = await self._archive.create(
            initial_fields(run_id, request.prompt, request.width, request.height)
        )
        self._registry.create_batch(
            Batch(
                id=run_id,
                archive_record_id=record_id,
                expected_count=request.batch_count,
                prompt=request.prompt,
                width=request.width,
                height=request.height,
            )
        )

        for index in range(request.batch_count):
            if index > 0:
                await self._sleep(self._submission_delay)
            position = f"{index + 1}/{request.batch_count}"
            try:
                request_id = await self._engine.submit(request.prompt, images, request.width, request.height)
            except SubmissionError as exc:
                logger.error("run %s: task %s submission failed: %s", run_id, position, exc)
                failure_id = SubmissionFailedId(created_ms=int(time.time() * 1000), index=index)
                await self._reconciler.record_submission_failure(run_id, failure_id)
                continue

            await self._reconciler.register_job(run_id, request_id)
            logger.info("run %s: task %s submitted as %s", run_id, position, request_id)
            self._supervisor.spawn(self._poller.poll_until_done(request_id), name=f"poll-{request_id}")
            await self._publish_progress(run_id)

        return SubmittedBatch(run_id=run_id, archive_record_id=record_id)

    async def _publish_progress(self, run_id: str) -> None:
        try:
            await self._reconciler.publish_progress(run_id)
        except ArchiveError as exc:
            logger.warning("run %s: progress update failed: %s", run_id, exc)
