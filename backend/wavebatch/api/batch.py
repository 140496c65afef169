"""Batch submission and status API router."""

import logging

from fastapi import APIRouter, Depends

from wavebatch.deps import Services, get_services
from wavebatch.schemas.batch import BatchStatusResponse, BatchSubmitRequest, BatchSubmitResponse

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/api/batch")
async def submit_batch(
    body: BatchSubmitRequest,
    services: Services = Depends(get_services),
) -> BatchSubmitResponse:
    """Submit a batch of generation tasks. Returns once every unit has been submitted."""
    submitted = await services.pipeline.submit(body)
    return BatchSubmitResponse(run_id=submitted.run_id, parent_id=submitted.archive_record_id)


@router.get("/status/{run_id}")
async def batch_status(
    run_id: str,
    services: Services = Depends(get_services),
) -> BatchStatusResponse:
    """Return a snapshot of the batch. Raises NotFoundError for unknown or evicted runs."""
    batch = services.registry.get_batch(run_id)
    return BatchStatusResponse.from_snapshot(batch.snapshot())
