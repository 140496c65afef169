"""Pydantic schemas for batch endpoints. Wire names are camelCase."""

import time

from pydantic import BaseModel, Field, field_validator
from pydantic.alias_generators import to_camel

from wavebatch.models.batch import BatchSnapshot

_CAMEL = {"alias_generator": to_camel, "populate_by_name": True}


class BatchSubmitRequest(BaseModel):
    prompt: str = Field(..., min_length=1)
    subject_url: str = Field(..., min_length=1, description="Primary image to edit")
    reference_urls: list[str] = Field(default_factory=list)
    width: int = Field(..., ge=256, le=2048)
    height: int = Field(..., ge=256, le=2048)
    batch_count: int = Field(..., ge=1, le=10)

    model_config = _CAMEL

    @field_validator("prompt", "subject_url")
    @classmethod
    def strip_required(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("must not be blank")
        return v

    @field_validator("reference_urls", mode="before")
    @classmethod
    def split_reference_urls(cls, v: object) -> object:
        # The form posts a comma-separated string; JSON clients send a list.
        if v is None:
            return []
        if isinstance(v, str):
            v = v.split(",")
        if isinstance(v, list):
            return [str(u).strip() for u in v if str(u).strip()]
        return v


class BatchSubmitResponse(BaseModel):
    run_id: str
    parent_id: str
    message: str = "Batch submitted successfully"

    model_config = _CAMEL


class BatchStatusResponse(BaseModel):
    run_id: str
    status: str
    prompt: str
    total_tasks: int
    completed_tasks: int
    failed_tasks: int
    request_ids: list[str]
    seen_ids: list[str]
    failed_ids: list[str]
    start_time: int
    elapsed_seconds: int

    model_config = _CAMEL

    @classmethod
    def from_snapshot(cls, snapshot: BatchSnapshot, now: float | None = None) -> "BatchStatusResponse":
        now = time.time() if now is None else now
        return cls(
            run_id=snapshot.run_id,
            status=snapshot.status,
            prompt=snapshot.prompt,
            total_tasks=len(snapshot.request_ids),
            # "completed" here means terminal, failures included
            completed_tasks=len(snapshot.seen_ids),
            failed_tasks=len(snapshot.failed_ids),
            request_ids=snapshot.request_ids,
            seen_ids=snapshot.seen_ids,
            failed_ids=snapshot.failed_ids,
            start_time=int(snapshot.started_at * 1000),
            elapsed_seconds=round(now - snapshot.started_at),
        )


class ErrorResponse(BaseModel):
    error: str
    detail: str | None = None
